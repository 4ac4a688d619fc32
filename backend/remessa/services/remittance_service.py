"""Remittance Service — the remittance state machine and its orchestration pipeline.

Invariants:
    - Every operation: lookup (NotFound) -> capability check (Forbidden) -> guard -> effect
    - create is an explicit pipeline: authorize -> validate -> transform -> persist READY;
      blocking violations are a normal tagged outcome (RemittanceBlocked), not an exception
    - At most one READY/SENDING remittance per source record (checked on create and retry)
    - create runs under record_lock plus a row lock on the source record, from the
      sibling check through the commit; two creates for one record yield one READY
      remittance and one ConflictError
    - send: READY -> SENDING is a conditional UPDATE committed BEFORE the outbound call;
      a concurrent send that loses the race fails with InvalidTransitionError
    - send failure (authority rejection or transport exception) -> ERROR committed,
      THEN TransportFailureError (or the original exception) propagates
    - retry never re-runs validation or transformation

Design Decisions:
    - Collaborators injected through __init__ (resolver, engine, mapper, adapter):
      no service reaches for a global
    - create() and send() commit themselves: the create check must stay locked until
      its rows are durable, and the SENDING marker must be durable before the call
    - After a rollback only captured ids are used; loaded rows are expired
    - Validation runs as replace_results() on create so results always describe the
      current payload and never accumulate across attempts
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.core.domain_types import (
    PermissionAction, RemittanceStatus, SourceRecordStatus,
)
from remessa.core.enforce_transitions import (
    check_can_cancel, check_can_retry, check_can_send, check_no_active_remittance,
)
from remessa.core.errors import (
    ConflictError, ErrorContext, InvalidTransitionError,
    ResourceNotFoundError, TransportFailureError,
)
from remessa.core.repository_protocols import TransformMapper, TransmissionResult
from remessa.models.remittance import Remittance
from remessa.models.remittance_log import RemittanceLog
from remessa.models.unit import Unit
from remessa.services.audit_sink import AuditSink
from remessa.services.permission_resolver import PermissionResolver
from remessa.services.transmission_adapter import TransmissionAdapter
from remessa.services.validation_engine import (
    ValidationEngine, ValidationOutcome, ViolationItem, record_lock,
)

logger = logging.getLogger(__name__)

RESOURCE = "remittances"


# ─── Tagged outcomes ─────────────────────────────────────────────

@dataclass
class RemittanceCreated:
    remittance: Remittance
    validation: ValidationOutcome


@dataclass
class RemittanceBlocked:
    validation: ValidationOutcome
    violations: list[ViolationItem] = field(default_factory=list)


@dataclass
class SendResult:
    remittance: Remittance
    response: TransmissionResult


@dataclass
class RemittanceFilters:
    status: str | None = None
    module: str | None = None
    competency: str | None = None
    unit_id: int | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    page: int = 1
    limit: int = 10


class RemittanceService:
    """Orchestrates validation, transformation and transmission of remittances."""

    def __init__(
        self,
        db: AsyncSession,
        resolver: PermissionResolver,
        engine: ValidationEngine,
        mapper: TransformMapper,
        adapter: TransmissionAdapter,
        audit: AuditSink | None = None,
    ):
        self.db = db
        self.resolver = resolver
        self.engine = engine
        self.mapper = mapper
        self.adapter = adapter
        self.audit = audit or AuditSink(db)

    # ─── Queries ─────────────────────────────────────────────────

    async def get_or_404(self, remittance_id: int) -> Remittance:
        result = await self.db.execute(
            select(Remittance).where(Remittance.id == remittance_id),
        )
        remittance = result.scalar_one_or_none()
        if remittance is None:
            raise ResourceNotFoundError("Remittance", remittance_id)
        return remittance

    async def get(self, remittance_id: int, user_id: int) -> Remittance:
        remittance = await self.get_or_404(remittance_id)
        await self.resolver.require(
            user_id, remittance.unit_id, remittance.module,
            PermissionAction.VIEW, RESOURCE,
        )
        return remittance

    async def logs(self, remittance_id: int, user_id: int) -> list[RemittanceLog]:
        """Request/response trail, oldest first."""
        remittance = await self.get(remittance_id, user_id)
        result = await self.db.execute(
            select(RemittanceLog)
            .where(RemittanceLog.remittance_id == remittance.id)
            .order_by(RemittanceLog.created_at, RemittanceLog.id),
        )
        return list(result.scalars().all())

    async def search(self, filters: RemittanceFilters, user_id: int) -> dict:
        """Paginated listing restricted to the units the principal may view."""
        conditions = []
        if filters.status:
            conditions.append(Remittance.status == filters.status)
        if filters.module:
            conditions.append(Remittance.module == filters.module)
        if filters.competency:
            conditions.append(Remittance.competency == filters.competency)
        if filters.unit_id is not None:
            conditions.append(Remittance.unit_id == filters.unit_id)
        if filters.date_from is not None:
            conditions.append(Remittance.created_at >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(Remittance.created_at <= filters.date_to)

        units = await self.resolver.permitted_units(user_id, PermissionAction.VIEW)
        if isinstance(units, frozenset):
            conditions.append(Remittance.unit_id.in_(sorted(units)))

        total = (await self.db.execute(
            select(func.count()).select_from(Remittance).where(*conditions),
        )).scalar_one()
        result = await self.db.execute(
            select(Remittance)
            .where(*conditions)
            .order_by(Remittance.created_at.desc(), Remittance.id.desc())
            .limit(filters.limit)
            .offset((filters.page - 1) * filters.limit),
        )
        return {
            "data": list(result.scalars().all()),
            "total": total,
            "page": filters.page,
            "limit": filters.limit,
        }

    async def stats(self, user_id: int) -> dict:
        """Counts by status and module over the remittances the principal may view."""
        query = select(Remittance.status, Remittance.module)
        units = await self.resolver.permitted_units(user_id, PermissionAction.VIEW)
        if isinstance(units, frozenset):
            query = query.where(Remittance.unit_id.in_(sorted(units)))
        rows = (await self.db.execute(query)).all()

        by_status: dict[str, int] = {}
        by_module: dict[str, int] = {}
        for status, module in rows:
            by_status[status] = by_status.get(status, 0) + 1
            by_module[module] = by_module.get(module, 0) + 1
        return {"total": len(rows), "by_status": by_status, "by_module": by_module}

    # ─── Transitions ─────────────────────────────────────────────

    async def create(
        self, source_record_id: int, user_id: int,
    ) -> RemittanceCreated | RemittanceBlocked:
        """authorize -> validate -> transform -> persist READY. Commits."""
        record = await self.engine.get_record_or_404(source_record_id)
        await self.resolver.require(
            user_id, record.unit_id, record.module,
            PermissionAction.CREATE, RESOURCE,
        )
        context = ErrorContext(source_record_id=source_record_id, user_id=user_id)

        async with record_lock(source_record_id):
            try:
                return await self._create_locked(source_record_id, user_id, context)
            except Exception:
                await self.db.rollback()
                raise

    async def _create_locked(
        self, source_record_id: int, user_id: int, context: ErrorContext,
    ) -> RemittanceCreated | RemittanceBlocked:
        # row lock first: a concurrent create waits here until this one commits
        record = await self.engine.lock_record_row(source_record_id)

        error = check_no_active_remittance(
            await self._sibling_statuses(source_record_id),
        )
        if error:
            raise ConflictError(error["message"], context)

        record.status = SourceRecordStatus.PROCESSING.value
        await self.db.flush()

        outcome = await self.engine.replace_results(source_record_id)
        if outcome.has_blocking_errors:
            record.status = SourceRecordStatus.ERROR.value
            self.audit.record(
                "REMITTANCE_BLOCKED", "SourceRecord", source_record_id, user_id,
                new_value={"violations": [v.code for v in outcome.blocking]},
            )
            await self.db.commit()
            logger.info(
                f"Remittance creation blocked by {len(outcome.blocking)} violation(s)",
                extra={"source_record_id": source_record_id, "user_id": user_id},
            )
            return RemittanceBlocked(validation=outcome, violations=outcome.blocking)

        unit = await self._get_unit(record.unit_id)
        payload = self.mapper.transform(record, unit.code)

        remittance = Remittance(
            source_record_id=source_record_id,
            unit_id=record.unit_id,
            module=record.module,
            competency=record.competency,
            status=RemittanceStatus.READY.value,
            payload=payload,
        )
        self.db.add(remittance)
        record.status = SourceRecordStatus.PROCESSED.value
        await self.db.flush()
        self.audit.record(
            "REMITTANCE_CREATED", "Remittance", remittance.id, user_id,
            new_value={"status": remittance.status, "source_record_id": source_record_id},
        )
        await self.db.commit()
        logger.info(
            "Remittance created",
            extra={"remittance_id": remittance.id, "source_record_id": source_record_id},
        )
        return RemittanceCreated(remittance=remittance, validation=outcome)

    async def send(self, remittance_id: int, user_id: int) -> SendResult:
        """READY -> SENDING -> SENT | ERROR. Commits twice."""
        remittance = await self.get_or_404(remittance_id)
        await self.resolver.require(
            user_id, remittance.unit_id, remittance.module,
            PermissionAction.TRANSMIT, RESOURCE,
        )
        context = ErrorContext(remittance_id=remittance.id, user_id=user_id)

        error = check_can_send(remittance.status)
        if error:
            raise InvalidTransitionError(error["message"], remittance.status, context)

        remittance = await self._mark_sending(remittance_id, context)
        unit = await self._get_unit(remittance.unit_id)

        try:
            result = await self.adapter.send(remittance, unit)
        except Exception as e:
            await self._record_unexpected_failure(remittance_id, str(e) or e.__class__.__name__)
            raise

        if result.success:
            remittance.status = RemittanceStatus.SENT.value
            remittance.protocol = result.protocol
            remittance.sent_at = datetime.now(timezone.utc)
            remittance.error_message = None
        else:
            remittance.status = RemittanceStatus.ERROR.value
            remittance.error_message = result.message
        self.audit.record(
            "REMITTANCE_SENT" if result.success else "REMITTANCE_SEND_FAILED",
            "Remittance", remittance.id, user_id,
            old_value={"status": RemittanceStatus.SENDING.value},
            new_value={"status": remittance.status, "protocol": remittance.protocol},
        )
        await self.db.commit()

        if not result.success:
            logger.error(
                f"Remittance transmission failed: {result.message}",
                extra={"remittance_id": remittance.id, "error_code": "TRANSPORT_FAILURE"},
            )
            raise TransportFailureError(result.message, result.errors, context)

        logger.info(
            f"Remittance sent, protocol {remittance.protocol}",
            extra={"remittance_id": remittance.id},
        )
        return SendResult(remittance=remittance, response=result)

    async def cancel(self, remittance_id: int, user_id: int) -> Remittance:
        """Any non-terminal status -> CANCELLED. Does not interrupt an in-flight send."""
        remittance = await self.get_or_404(remittance_id)
        await self.resolver.require(
            user_id, remittance.unit_id, remittance.module,
            PermissionAction.DELETE, RESOURCE,
        )
        error = check_can_cancel(remittance.status)
        if error:
            raise InvalidTransitionError(
                error["message"], remittance.status,
                ErrorContext(remittance_id=remittance.id, user_id=user_id),
            )
        previous = remittance.status
        remittance.status = RemittanceStatus.CANCELLED.value
        self.audit.record(
            "REMITTANCE_CANCELLED", "Remittance", remittance.id, user_id,
            old_value={"status": previous},
            new_value={"status": remittance.status},
        )
        await self.db.flush()
        return remittance

    async def retry(self, remittance_id: int, user_id: int) -> Remittance:
        """ERROR -> READY, error cleared. Payload reused as is."""
        remittance = await self.get_or_404(remittance_id)
        await self.resolver.require(
            user_id, remittance.unit_id, remittance.module,
            PermissionAction.TRANSMIT, RESOURCE,
        )
        context = ErrorContext(remittance_id=remittance.id, user_id=user_id)
        error = check_can_retry(remittance.status)
        if error:
            raise InvalidTransitionError(error["message"], remittance.status, context)

        if remittance.source_record_id is not None:
            error = check_no_active_remittance(
                await self._sibling_statuses(
                    remittance.source_record_id, exclude_id=remittance.id,
                ),
            )
            if error:
                raise ConflictError(error["message"], context)

        remittance.status = RemittanceStatus.READY.value
        remittance.error_message = None
        self.audit.record(
            "REMITTANCE_RETRIED", "Remittance", remittance.id, user_id,
            old_value={"status": RemittanceStatus.ERROR.value},
            new_value={"status": remittance.status},
        )
        await self.db.flush()
        return remittance

    # ─── Helpers ─────────────────────────────────────────────────

    async def _sibling_statuses(
        self, source_record_id: int, exclude_id: int | None = None,
    ) -> list[str]:
        query = select(Remittance.status).where(
            Remittance.source_record_id == source_record_id,
        )
        if exclude_id is not None:
            query = query.where(Remittance.id != exclude_id)
        return list((await self.db.execute(query)).scalars().all())

    async def _get_unit(self, unit_id: int) -> Unit:
        result = await self.db.execute(select(Unit).where(Unit.id == unit_id))
        unit = result.scalar_one_or_none()
        if unit is None:
            raise ResourceNotFoundError("Unit", unit_id)
        return unit

    async def _mark_sending(
        self, remittance_id: int, context: ErrorContext,
    ) -> Remittance:
        """Conditional READY -> SENDING; the committed row is the send lock."""
        result = await self.db.execute(
            update(Remittance)
            .where(
                Remittance.id == remittance_id,
                Remittance.status == RemittanceStatus.READY.value,
            )
            .values(
                status=RemittanceStatus.SENDING.value,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:
            # lost the race: another request moved it out of READY.
            # rollback expires loaded rows, so only the id is used from here on
            await self.db.rollback()
            current = await self._reload(remittance_id)
            error = check_can_send(current.status)
            raise InvalidTransitionError(
                error["message"] if error else "Remittance is already being transmitted",
                current.status, context,
            )
        await self.db.commit()
        return await self._reload(remittance_id)

    async def _reload(self, remittance_id: int) -> Remittance:
        result = await self.db.execute(
            select(Remittance)
            .where(Remittance.id == remittance_id)
            .execution_options(populate_existing=True),
        )
        remittance = result.scalar_one_or_none()
        if remittance is None:
            raise ResourceNotFoundError("Remittance", remittance_id)
        return remittance

    async def _record_unexpected_failure(
        self, remittance_id: int, message: str,
    ) -> None:
        """Persist ERROR after a non-transport exception escaped the adapter."""
        await self.db.rollback()
        remittance = await self._reload(remittance_id)
        remittance.status = RemittanceStatus.ERROR.value
        remittance.error_message = message
        await self.db.commit()
        logger.error(
            f"Unexpected failure during transmission: {message}",
            extra={"remittance_id": remittance_id, "error_code": "TRANSPORT_FAILURE"},
        )
