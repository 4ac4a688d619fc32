"""API Dependencies — principal resolution and service wiring for route handlers.

Invariants:
    - Every protected route receives an active Principal or fails with 401/403
      before its body runs (missing/unknown X-User-Id -> 401, inactive -> 403)
    - Services are built per request around the request's AsyncSession
    - The TCE transport is built once per process from Settings (get_transport)

Design Decisions:
    - Identity comes from the upstream identity provider as the X-User-Id header:
      this service never issues or verifies credentials
    - Factories are plain Depends() callables so tests swap them with
      app.dependency_overrides (transport, db) instead of patching modules
"""

import logging
from functools import lru_cache

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.config import get_settings
from remessa.core.domain_types import Principal, UserRole
from remessa.core.errors import AuthenticationError, ErrorContext, ForbiddenError
from remessa.core.repository_protocols import Transport
from remessa.infrastructure.database import get_db
from remessa.infrastructure.tce_transport import build_transport
from remessa.services.audit_sink import AuditSink
from remessa.services.permission_resolver import PermissionResolver
from remessa.services.remittance_service import RemittanceService
from remessa.services.transform_mapper import EsfingePayloadMapper
from remessa.services.transmission_adapter import TransmissionAdapter
from remessa.services.validation_engine import ValidationEngine

logger = logging.getLogger(__name__)


async def get_current_principal(
    x_user_id: int | None = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Resolve the caller from the identity provider's X-User-Id header."""
    if x_user_id is None:
        raise AuthenticationError("Missing X-User-Id header")
    principal = await PermissionResolver(db).load_principal(x_user_id)
    if principal is None:
        raise AuthenticationError(f"Unknown user {x_user_id}")
    if not principal.active:
        raise ForbiddenError(
            "access", "the API (user is inactive)", ErrorContext(user_id=x_user_id),
        )
    return principal


def require_role(*roles: UserRole):
    """Dependency factory: the principal must hold one of roles."""
    allowed = {r.value for r in roles}

    async def dependency(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if principal.role not in allowed:
            logger.warning(
                f"Role {principal.role} denied, requires one of {sorted(allowed)}",
                extra={"user_id": principal.id, "error_code": "FORBIDDEN"},
            )
            raise ForbiddenError(
                "manage", "this configuration", ErrorContext(user_id=principal.id),
            )
        return principal

    return dependency


require_admin = require_role(UserRole.ADMIN)
require_manager = require_role(UserRole.ADMIN, UserRole.MANAGER)


@lru_cache
def get_transport() -> Transport:
    return build_transport(get_settings())


def get_resolver(db: AsyncSession = Depends(get_db)) -> PermissionResolver:
    return PermissionResolver(db)


def get_validation_engine(db: AsyncSession = Depends(get_db)) -> ValidationEngine:
    return ValidationEngine(db)


def get_remittance_service(
    db: AsyncSession = Depends(get_db),
    transport: Transport = Depends(get_transport),
) -> RemittanceService:
    """Wire the state machine with its collaborators around one session."""
    settings = get_settings()
    return RemittanceService(
        db=db,
        resolver=PermissionResolver(db),
        engine=ValidationEngine(db),
        mapper=EsfingePayloadMapper(),
        adapter=TransmissionAdapter(
            db,
            transport,
            base_url=settings.tce_api_base_url,
            timeout_seconds=settings.tce_api_timeout_seconds,
        ),
        audit=AuditSink(db),
    )
