"""Permission Resolver — loads principals and grants, delegates decisions to the pure cascade.

Invariants:
    - Read-only: never writes to the store
    - Every decision re-reads the principal (active flag and role may change between requests)
    - Depends only on the store; higher-level services depend on this class, never the reverse

Design Decisions:
    - Thin async shell around core/permission_cascade.py (functional core, imperative shell)
    - require() raises ForbiddenError so services open every operation with one line
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.core import permission_cascade
from remessa.core.domain_types import PermissionAction, Principal
from remessa.core.errors import ErrorContext, ForbiddenError
from remessa.models.user import User
from remessa.models.user_permission import UserPermission

logger = logging.getLogger(__name__)


class PermissionResolver:
    """Four-tier grant resolution: unit+module -> module -> unit -> global."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_principal(self, user_id: int) -> Principal | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return Principal(id=user.id, role=user.role, active=user.active)

    async def load_grants(self, user_id: int) -> list[UserPermission]:
        result = await self.db.execute(
            select(UserPermission)
            .where(UserPermission.user_id == user_id)
            .order_by(UserPermission.id),
        )
        return list(result.scalars().all())

    async def authorize(
        self,
        user_id: int,
        unit_id: int | None,
        module: str | None,
        action: PermissionAction | str,
    ) -> bool:
        """True when the cascade grants action on (unit_id, module)."""
        principal = await self.load_principal(user_id)
        if principal is None or not principal.active:
            return False
        if principal.is_admin:
            return True
        grants = await self.load_grants(user_id)
        return permission_cascade.resolve(
            principal, grants, unit_id, module, action,
        )

    async def require(
        self,
        user_id: int,
        unit_id: int | None,
        module: str | None,
        action: PermissionAction | str,
        resource: str = "this resource",
    ) -> None:
        """Raise ForbiddenError unless authorize() allows the action."""
        if await self.authorize(user_id, unit_id, module, action):
            return
        action_value = PermissionAction(action).value
        logger.warning(
            f"Permission denied: {action_value} on unit={unit_id} module={module}",
            extra={"user_id": user_id, "error_code": "FORBIDDEN"},
        )
        raise ForbiddenError(
            action_value, resource, ErrorContext(user_id=user_id),
        )

    async def permitted_units(
        self, user_id: int, action: PermissionAction | str,
    ):
        """ALL_UNITS or frozenset of unit ids."""
        principal = await self.load_principal(user_id)
        if principal is None or not principal.active:
            return frozenset()
        grants = [] if principal.is_admin else await self.load_grants(user_id)
        return permission_cascade.permitted_units(principal, grants, action)

    async def permitted_modules(
        self,
        user_id: int,
        action: PermissionAction | str,
        unit_id: int | None = None,
    ):
        """ALL_MODULES or frozenset of module names."""
        principal = await self.load_principal(user_id)
        if principal is None or not principal.active:
            return frozenset()
        grants = [] if principal.is_admin else await self.load_grants(user_id)
        return permission_cascade.permitted_modules(
            principal, grants, action, unit_id,
        )
