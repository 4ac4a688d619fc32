"""Remittance Service — tests for the state machine and its orchestration pipeline.

Tests cover:
    - create: blocked by IMPEDITIVA -> RemittanceBlocked, record ERROR, no remittance
    - create: ALERTA only -> READY remittance with mapped payload, record PROCESSED
    - create: permission (403), missing record (404), competing active remittance (409)
    - create: unmappable record -> TransformError, nothing from the attempt persisted
    - create: two concurrent requests for one record -> one READY, one ConflictError
    - send: success -> SENT with protocol, REQUEST/RESPONSE logs, token redacted
    - send: rejection and transport failure -> ERROR persisted, TransportFailureError
    - send: unexpected exception -> ERROR persisted, exception propagates
    - send: lost READY -> SENDING race -> InvalidTransitionError
    - retry: ERROR -> READY, same payload, transmits again
    - retry: any other status refused and left unchanged
    - cancel: non-terminal only; its audit entry rolls back with the transaction
    - search/stats restricted to viewable units
"""

import asyncio

import pytest
from sqlalchemy import select, update

import remessa.services.validation_engine as engine_module
from remessa.core.domain_types import Module, UserRole, ValidationLevel, ValidationOperator
from remessa.core.errors import (
    ConflictError, ForbiddenError, InvalidTransitionError,
    ResourceNotFoundError, TransformError, TransportFailureError,
)
from remessa.models.audit_log import AuditLog
from remessa.models.remittance import Remittance
from remessa.models.source_record import SourceRecord
from remessa.models.validation_result import ValidationResult
from remessa.services.audit_sink import AuditSink
from remessa.services.permission_resolver import PermissionResolver
from remessa.services.remittance_service import (
    RemittanceBlocked, RemittanceCreated, RemittanceFilters, RemittanceService,
)
from remessa.services.transform_mapper import EsfingePayloadMapper
from remessa.services.transmission_adapter import TransmissionAdapter
from remessa.services.validation_engine import ValidationEngine

HOMOLOGATION_TOKEN = "homolog-token-0123456789"
TCE_BASE_URL = "https://tce.test/esfinge"


async def _create_ready(remittance_service, test_db, record, user):
    outcome = await remittance_service.create(record.id, user.id)
    await test_db.commit()
    assert isinstance(outcome, RemittanceCreated)
    return outcome.remittance


async def _reload(test_db, remittance_id: int) -> Remittance:
    result = await test_db.execute(
        select(Remittance).where(Remittance.id == remittance_id)
        .execution_options(populate_existing=True),
    )
    return result.scalar_one()


def _service_on(session, tce) -> RemittanceService:
    """A service wired to its own session, as a separate request would be."""
    return RemittanceService(
        db=session,
        resolver=PermissionResolver(session),
        engine=ValidationEngine(session),
        mapper=EsfingePayloadMapper(),
        adapter=TransmissionAdapter(session, tce, base_url=TCE_BASE_URL, timeout_seconds=5),
        audit=AuditSink(session),
    )


# ─── create ──────────────────────────────────────────────────────

async def test_create_blocked_by_impeditiva(
    remittance_service, test_db, make_record, unit, operator, cd001_rule,
):
    record = await make_record(unit, Module.COMPRA_DIRETA, {"valor": 350000})

    outcome = await remittance_service.create(record.id, operator.id)
    await test_db.commit()

    assert isinstance(outcome, RemittanceBlocked)
    assert [v.code for v in outcome.violations] == ["CD001"]
    assert record.status == "ERROR"
    remittances = (await test_db.execute(select(Remittance))).scalars().all()
    assert remittances == []
    audit = (await test_db.execute(select(AuditLog.action))).scalars().all()
    assert audit == ["REMITTANCE_BLOCKED"]


async def test_create_with_alert_only_is_ready(
    remittance_service, test_db, contract_record, operator, ct001_rule,
):
    outcome = await remittance_service.create(contract_record.id, operator.id)
    await test_db.commit()

    assert isinstance(outcome, RemittanceCreated)
    remittance = outcome.remittance
    assert remittance.status == "READY"
    assert remittance.unit_id == contract_record.unit_id
    assert remittance.payload["cabecalho"]["codigoUnidadeGestora"] == "UG001"
    assert remittance.payload["dados"]["numero"] == "CT-2024-001"
    assert outcome.validation.summary()["alertas"] == 1
    assert contract_record.status == "PROCESSED"


async def test_create_requires_create_permission(
    remittance_service, contract_record, viewer,
):
    with pytest.raises(ForbiddenError):
        await remittance_service.create(contract_record.id, viewer.id)


async def test_create_missing_record_is_not_found_before_forbidden(
    remittance_service, viewer,
):
    with pytest.raises(ResourceNotFoundError):
        await remittance_service.create(999, viewer.id)


async def test_create_conflicts_with_active_remittance(
    remittance_service, test_db, contract_record, operator,
):
    await _create_ready(remittance_service, test_db, contract_record, operator)

    with pytest.raises(ConflictError):
        await remittance_service.create(contract_record.id, operator.id)


async def test_create_unmappable_record_raises_transform_error(
    remittance_service, make_record, unit, operator,
):
    record = await make_record(unit, Module.CONTRATO, {"numero": "X"}, competency="2024-13")

    with pytest.raises(TransformError):
        await remittance_service.create(record.id, operator.id)


async def test_concurrent_creates_yield_one_ready_remittance(
    test_session_factory, test_db, contract_record, operator, tce,
):
    record_id, user_id = contract_record.id, operator.id

    async with test_session_factory() as first, test_session_factory() as second:
        outcomes = await asyncio.gather(
            _service_on(first, tce).create(record_id, user_id),
            _service_on(second, tce).create(record_id, user_id),
            return_exceptions=True,
        )

    assert len([o for o in outcomes if isinstance(o, RemittanceCreated)]) == 1
    assert len([o for o in outcomes if isinstance(o, ConflictError)]) == 1
    statuses = (await test_db.execute(
        select(Remittance.status).where(Remittance.source_record_id == record_id),
    )).scalars().all()
    assert statuses == ["READY"]
    assert engine_module._record_locks == {}


async def test_failed_create_leaves_no_partial_rows(
    remittance_service, test_db, make_record, make_rule, unit, operator,
):
    await make_rule(
        "CT900", Module.CONTRATO, "numero", ValidationOperator.EQUALS, "X",
        ValidationLevel.ALERTA,
    )
    record = await make_record(unit, Module.CONTRATO, {"numero": "X"}, competency="2024-13")
    record_id = record.id

    with pytest.raises(TransformError):
        await remittance_service.create(record_id, operator.id)

    results = (await test_db.execute(select(ValidationResult))).scalars().all()
    assert results == []
    stored = (await test_db.execute(
        select(SourceRecord.status).where(SourceRecord.id == record_id),
    )).scalar_one()
    assert stored == "RECEIVED"


# ─── send ────────────────────────────────────────────────────────

async def test_send_success_marks_sent_and_logs_exchange(
    remittance_service, test_db, contract_record, operator, tce,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)

    result = await remittance_service.send(remittance.id, operator.id)

    assert result.response.success is True
    sent = await _reload(test_db, remittance.id)
    assert sent.status == "SENT"
    assert sent.protocol.startswith("TCE-")
    assert sent.sent_at is not None
    assert sent.error_message is None

    assert tce.calls[0]["url"] == f"{TCE_BASE_URL}/contrato"
    assert tce.calls[0]["headers"]["Authorization"] == f"Bearer {HOMOLOGATION_TOKEN}"

    logs = await remittance_service.logs(remittance.id, operator.id)
    assert [log.direction for log in logs] == ["REQUEST", "RESPONSE"]
    assert logs[0].headers["Authorization"] == f"Bearer {HOMOLOGATION_TOKEN[:10]}..."
    assert logs[0].body == sent.payload
    assert logs[1].status_code == 200


async def test_send_rejected_persists_error(
    remittance_service, test_db, contract_record, operator, tce,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)
    tce.outcome = "rejected"

    with pytest.raises(TransportFailureError) as exc:
        await remittance_service.send(remittance.id, operator.id)

    assert exc.value.errors == ["Layout inválido para o módulo"]
    failed = await _reload(test_db, remittance.id)
    assert failed.status == "ERROR"
    assert failed.error_message == "Remessa rejeitada pelo TCE (simulado)"
    assert failed.protocol is None


async def test_send_transport_error_then_retry_succeeds(
    remittance_service, test_db, contract_record, operator, tce,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)
    tce.outcome = "transport_error"

    with pytest.raises(TransportFailureError):
        await remittance_service.send(remittance.id, operator.id)
    assert (await _reload(test_db, remittance.id)).status == "ERROR"

    retried = await remittance_service.retry(remittance.id, operator.id)
    await test_db.commit()
    assert retried.status == "READY"
    assert retried.error_message is None

    tce.outcome = "success"
    result = await remittance_service.send(remittance.id, operator.id)
    assert result.remittance.status == "SENT"
    assert tce.calls[0]["payload"] == tce.calls[1]["payload"]

    logs = await remittance_service.logs(remittance.id, operator.id)
    assert [log.direction for log in logs] == ["REQUEST", "RESPONSE", "REQUEST", "RESPONSE"]
    assert logs[1].status_code == 500


async def test_send_unexpected_exception_persists_error(
    remittance_service, test_db, contract_record, operator, tce, monkeypatch,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)

    async def explode(*args, **kwargs):
        raise RuntimeError("serializer crashed")

    monkeypatch.setattr(tce, "request", explode)

    with pytest.raises(RuntimeError):
        await remittance_service.send(remittance.id, operator.id)

    failed = await _reload(test_db, remittance.id)
    assert failed.status == "ERROR"
    assert failed.error_message == "serializer crashed"


async def test_send_requires_ready(
    remittance_service, test_db, contract_record, operator,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)
    await remittance_service.send(remittance.id, operator.id)

    with pytest.raises(InvalidTransitionError) as exc:
        await remittance_service.send(remittance.id, operator.id)
    assert exc.value.current_status == "SENT"


async def test_send_loses_race_to_concurrent_sender(
    remittance_service, test_db, contract_record, operator, tce,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)
    # another request already claimed it; the identity map still says READY
    await test_db.execute(
        update(Remittance).where(Remittance.id == remittance.id)
        .values(status="SENDING").execution_options(synchronize_session=False),
    )
    await test_db.commit()

    with pytest.raises(InvalidTransitionError) as exc:
        await remittance_service.send(remittance.id, operator.id)

    assert exc.value.current_status == "SENDING"
    assert tce.calls == []


async def test_send_requires_transmit_permission(
    remittance_service, test_db, contract_record, operator, viewer,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)

    with pytest.raises(ForbiddenError):
        await remittance_service.send(remittance.id, viewer.id)


# ─── retry / cancel ──────────────────────────────────────────────

@pytest.mark.parametrize("status", ["READY", "SENDING", "SENT", "CANCELLED"])
async def test_retry_only_from_error(
    remittance_service, test_db, contract_record, operator, status,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)
    remittance_id = remittance.id
    await test_db.execute(
        update(Remittance).where(Remittance.id == remittance_id).values(status=status),
    )
    await test_db.commit()

    with pytest.raises(InvalidTransitionError) as exc:
        await remittance_service.retry(remittance_id, operator.id)

    assert exc.value.current_status == status
    assert exc.value.code == "INVALID_TRANSITION"
    assert (await _reload(test_db, remittance_id)).status == status


async def test_retry_conflicts_with_newer_active_remittance(
    remittance_service, test_db, contract_record, operator, tce,
):
    first = await _create_ready(remittance_service, test_db, contract_record, operator)
    tce.outcome = "rejected"
    with pytest.raises(TransportFailureError):
        await remittance_service.send(first.id, operator.id)
    await _create_ready(remittance_service, test_db, contract_record, operator)

    with pytest.raises(ConflictError):
        await remittance_service.retry(first.id, operator.id)


async def test_cancel_ready_then_cancel_again_fails(
    remittance_service, test_db, contract_record, operator,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)

    cancelled = await remittance_service.cancel(remittance.id, operator.id)
    await test_db.commit()
    assert cancelled.status == "CANCELLED"

    with pytest.raises(InvalidTransitionError):
        await remittance_service.cancel(remittance.id, operator.id)


async def test_cancel_audit_entry_rides_the_transaction(
    remittance_service, test_db, contract_record, operator,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)
    remittance_id = remittance.id

    await remittance_service.cancel(remittance_id, operator.id)
    await test_db.rollback()

    actions = (await test_db.execute(select(AuditLog.action))).scalars().all()
    assert actions == ["REMITTANCE_CREATED"]
    assert (await _reload(test_db, remittance_id)).status == "READY"


async def test_cancelled_record_can_be_remitted_again(
    remittance_service, test_db, contract_record, operator,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)
    await remittance_service.cancel(remittance.id, operator.id)
    await test_db.commit()

    again = await _create_ready(remittance_service, test_db, contract_record, operator)
    assert again.id != remittance.id


# ─── queries ─────────────────────────────────────────────────────

async def test_search_and_stats_restricted_to_viewable_units(
    remittance_service, test_db, make_record, make_user,
    unit, other_unit, operator, admin,
):
    mine = await make_record(unit, Module.CONTRATO, {"numero": "A"})
    theirs = await make_record(other_unit, Module.EMPENHO, {"numero": "B"})
    await _create_ready(remittance_service, test_db, mine, operator)
    await _create_ready(remittance_service, test_db, theirs, admin)

    page = await remittance_service.search(RemittanceFilters(), operator.id)
    assert page["total"] == 1
    assert page["data"][0].unit_id == unit.id

    stats = await remittance_service.stats(admin.id)
    assert stats == {
        "total": 2,
        "by_status": {"READY": 2},
        "by_module": {"CONTRATO": 1, "EMPENHO": 1},
    }

    outsider = await make_user(UserRole.OPERATOR, "fora@econect.ms.gov.br")
    assert (await remittance_service.stats(outsider.id))["total"] == 0


async def test_search_filters_by_status(
    remittance_service, test_db, contract_record, operator,
):
    remittance = await _create_ready(remittance_service, test_db, contract_record, operator)
    await remittance_service.cancel(remittance.id, operator.id)
    await test_db.commit()

    ready = await remittance_service.search(RemittanceFilters(status="READY"), operator.id)
    cancelled = await remittance_service.search(
        RemittanceFilters(status="CANCELLED"), operator.id,
    )
    assert ready["total"] == 0
    assert cancelled["total"] == 1
