"""Service test fixtures — async DB + FastAPI test client + controllable TCE.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - get_transport overridden with the `tce` fixture (no network, outcome switchable)
    - db_manager patched so the readiness probe hits the test engine
    - Per-record validation locks cleared between tests

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for route tests
      (PostgreSQL-specific features not exercised here)
    - RecordingTransport wraps MockTransport: tests flip `outcome` mid-test to
      drive success -> rejection -> retry paths through the real adapter
"""

import httpx
import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from remessa.api.dependencies import get_transport
from remessa.core.domain_types import (
    Module, UnitEnvironment, UserRole, ValidationLevel, ValidationOperator,
)
from remessa.core.repository_protocols import TransportResponse
from remessa.db.base import Base
from remessa.infrastructure.database import get_db, DatabaseSessionManager
from remessa.infrastructure.tce_transport import MockTransport
import remessa.infrastructure.database as db_module
import remessa.services.validation_engine as engine_module
from remessa.main import app
from remessa.models.source_record import SourceRecord
from remessa.models.unit import Unit
from remessa.models.user import User
from remessa.models.user_permission import UserPermission
from remessa.models.validation_rule import ValidationRule
from remessa.services.audit_sink import AuditSink
from remessa.services.permission_resolver import PermissionResolver
from remessa.services.remittance_service import RemittanceService
from remessa.services.transform_mapper import EsfingePayloadMapper
from remessa.services.transmission_adapter import TransmissionAdapter
from remessa.services.validation_engine import ValidationEngine

TCE_BASE_URL = "https://tce.test/esfinge"
HOMOLOGATION_TOKEN = "homolog-token-0123456789"
PRODUCTION_TOKEN = "prod-token-9876543210"


class RecordingTransport:
    """MockTransport with a switchable outcome and a call log."""

    def __init__(self, outcome: str = "success"):
        self.outcome = outcome
        self.calls: list[dict] = []

    async def request(
        self, method: str, url: str, payload: dict,
        headers: dict[str, str], timeout: float,
    ) -> TransportResponse:
        self.calls.append(
            {"method": method, "url": url, "payload": payload, "headers": headers},
        )
        return await MockTransport(self.outcome).request(
            method, url, payload, headers, timeout,
        )


@pytest.fixture(autouse=True)
def clear_record_locks():
    engine_module._record_locks.clear()
    yield
    engine_module._record_locks.clear()


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def tce():
    return RecordingTransport()


@pytest.fixture
async def client(test_engine, test_session_factory, tce):
    """FastAPI test client with DB and TCE transport overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_transport] = lambda: tce

    # Patch db_manager for the readiness probe, which uses it directly
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


@pytest.fixture
def auth():
    """auth(user) -> headers identifying user to the API."""
    def _headers(user: User) -> dict[str, str]:
        return {"X-User-Id": str(user.id)}
    return _headers


# ─── Services ────────────────────────────────────────────────────

@pytest.fixture
def resolver(test_db):
    return PermissionResolver(test_db)


@pytest.fixture
def validation_engine(test_db):
    return ValidationEngine(test_db)


@pytest.fixture
def adapter(test_db, tce):
    return TransmissionAdapter(test_db, tce, base_url=TCE_BASE_URL, timeout_seconds=5)


@pytest.fixture
def remittance_service(test_db, resolver, validation_engine, adapter):
    return RemittanceService(
        db=test_db,
        resolver=resolver,
        engine=validation_engine,
        mapper=EsfingePayloadMapper(),
        adapter=adapter,
        audit=AuditSink(test_db),
    )


# ─── Seed rows ───────────────────────────────────────────────────

async def _persist(db: AsyncSession, obj):
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return obj


@pytest.fixture
async def unit(test_db):
    return await _persist(test_db, Unit(
        code="UG001",
        name="Secretaria de Estado de Fazenda",
        environment=UnitEnvironment.HOMOLOGACAO.value,
        homologation_token=HOMOLOGATION_TOKEN,
        production_token=PRODUCTION_TOKEN,
    ))


@pytest.fixture
async def other_unit(test_db):
    return await _persist(test_db, Unit(
        code="UG002",
        name="Secretaria de Estado de Saúde",
        environment=UnitEnvironment.PRODUCAO.value,
        production_token=PRODUCTION_TOKEN,
    ))


@pytest.fixture
async def make_user(test_db):
    async def _make(role: UserRole, email: str, active: bool = True) -> User:
        return await _persist(test_db, User(
            name=email.split("@")[0], email=email, role=role.value, active=active,
        ))
    return _make


@pytest.fixture
async def make_grant(test_db):
    async def _make(user: User, unit_id=None, module=None, **flags) -> UserPermission:
        return await _persist(test_db, UserPermission(
            user_id=user.id, unit_id=unit_id, module=module, **flags,
        ))
    return _make


@pytest.fixture
async def admin(make_user):
    return await make_user(UserRole.ADMIN, "admin@econect.ms.gov.br")


@pytest.fixture
async def manager(make_user):
    return await make_user(UserRole.MANAGER, "gestor@econect.ms.gov.br")


@pytest.fixture
async def operator(make_user, make_grant, unit):
    """Operator with every capability on `unit`, all modules."""
    user = await make_user(UserRole.OPERATOR, "operador@econect.ms.gov.br")
    await make_grant(
        user, unit_id=unit.id, can_view=True, can_create=True,
        can_edit=True, can_delete=True, can_transmit=True,
    )
    return user


@pytest.fixture
async def viewer(make_user, make_grant, unit):
    user = await make_user(UserRole.VIEWER, "consulta@econect.ms.gov.br")
    await make_grant(user, unit_id=unit.id, can_view=True)
    return user


@pytest.fixture
async def inactive_user(make_user):
    return await make_user(UserRole.ADMIN, "inativo@econect.ms.gov.br", active=False)


@pytest.fixture
async def make_rule(test_db):
    async def _make(code: str, module: Module, field: str, operator: ValidationOperator,
                    value: str = "", level: ValidationLevel = ValidationLevel.IMPEDITIVA,
                    active: bool = True) -> ValidationRule:
        return await _persist(test_db, ValidationRule(
            code=code, module=module.value, field=field, operator=operator.value,
            value=value, level=level.value, message=f"Rule {code} fired", active=active,
        ))
    return _make


@pytest.fixture
async def cd001_rule(make_rule):
    return await make_rule(
        "CD001", Module.COMPRA_DIRETA, "valor",
        ValidationOperator.GREATER_THAN, "330000",
    )


@pytest.fixture
async def ct001_rule(make_rule):
    return await make_rule(
        "CT001", Module.CONTRATO, "vigencia",
        ValidationOperator.GREATER_THAN, "365", ValidationLevel.ALERTA,
    )


@pytest.fixture
async def make_record(test_db):
    async def _make(unit: Unit, module: Module, payload: dict,
                    competency: str = "2024-03") -> SourceRecord:
        return await _persist(test_db, SourceRecord(
            unit_id=unit.id, module=module.value, competency=competency,
            payload=payload, status="RECEIVED",
        ))
    return _make


@pytest.fixture
async def contract_record(make_record, unit):
    return await make_record(unit, Module.CONTRATO, {
        "numero": "CT-2024-001",
        "vigencia": 400,
        "fornecedor": {"cnpj": "12345678000190", "nome": "Construtora Alfa"},
    })


@pytest.fixture
def httpx_tce():
    """Factory: HttpTransport-compatible httpx client answering with `handler`."""
    def _client(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return _client
