"""Permission Cascade — pure four-tier resolution over a principal's grants.

Invariants:
    - Inactive principals are denied before anything else, admins allowed next
    - Tier order: (unit, module) -> (None, module) -> (unit, None) -> (None, None)
    - The first matching tier decides, even when its flag is False
    - No grants, or no matching tier -> deny
    - Every function is read-only over the grants it receives

Design Decisions:
    - Grants are duck-typed (GrantLike protocol): ORM rows and test doubles both work
    - Shell loads the grants once per decision (services/permission_resolver.py)
      and hands them here; no IO in this module
    - A unit-less grant (global or module-wide) scopes every unit, so it yields
      ALL_UNITS in permitted_units (matches the grant semantics used by resolve)
"""

from collections.abc import Iterable
from typing import Protocol

from remessa.core.domain_types import (
    ALL_MODULES, ALL_UNITS, PermissionAction, Principal,
)


class GrantLike(Protocol):
    """Structural contract for a permission grant row."""
    unit_id: int | None
    module: str | None
    can_view: bool
    can_create: bool
    can_edit: bool
    can_delete: bool
    can_transmit: bool


_ACTION_FIELDS = {
    PermissionAction.VIEW: "can_view",
    PermissionAction.CREATE: "can_create",
    PermissionAction.EDIT: "can_edit",
    PermissionAction.DELETE: "can_delete",
    PermissionAction.TRANSMIT: "can_transmit",
}


def action_field(action: PermissionAction | str) -> str:
    """Map an action to its grant boolean column."""
    return _ACTION_FIELDS[PermissionAction(action)]


def grant_allows(grant: GrantLike, action: PermissionAction | str) -> bool:
    return getattr(grant, action_field(action)) is True


def _find(
    grants: list[GrantLike], unit_id: int | None, module: str | None,
) -> GrantLike | None:
    for grant in grants:
        if grant.unit_id == unit_id and grant.module == module:
            return grant
    return None


def matching_grant(
    grants: Iterable[GrantLike], unit_id: int | None, module: str | None,
) -> GrantLike | None:
    """Return the most specific grant covering (unit_id, module), or None."""
    grants = list(grants)
    tiers: list[tuple[int | None, str | None]] = []
    if unit_id is not None and module:
        tiers.append((unit_id, module))
    if module:
        tiers.append((None, module))
    if unit_id is not None:
        tiers.append((unit_id, None))
    tiers.append((None, None))

    for tier_unit, tier_module in tiers:
        grant = _find(grants, tier_unit, tier_module)
        if grant is not None:
            return grant
    return None


def resolve(
    principal: Principal | None,
    grants: Iterable[GrantLike],
    unit_id: int | None,
    module: str | None,
    action: PermissionAction | str,
) -> bool:
    """Decide whether principal may perform action on (unit_id, module). Pure."""
    if principal is None or not principal.active:
        return False
    if principal.is_admin:
        return True
    grant = matching_grant(grants, unit_id, module)
    if grant is None:
        return False
    return grant_allows(grant, action)


def permitted_units(
    principal: Principal | None,
    grants: Iterable[GrantLike],
    action: PermissionAction | str,
):
    """ALL_UNITS or the frozenset of unit ids where action is granted."""
    if principal is None or not principal.active:
        return frozenset()
    if principal.is_admin:
        return ALL_UNITS
    allowed = [g for g in grants if grant_allows(g, action)]
    if any(g.unit_id is None for g in allowed):
        return ALL_UNITS
    return frozenset(g.unit_id for g in allowed)


def permitted_modules(
    principal: Principal | None,
    grants: Iterable[GrantLike],
    action: PermissionAction | str,
    unit_id: int | None = None,
):
    """ALL_MODULES or the frozenset of modules where action is granted."""
    if principal is None or not principal.active:
        return frozenset()
    if principal.is_admin:
        return ALL_MODULES
    allowed = [g for g in grants if grant_allows(g, action)]
    if any(g.unit_id is None and g.module is None for g in allowed):
        return ALL_MODULES
    if unit_id is not None and any(
        g.unit_id == unit_id and g.module is None for g in allowed
    ):
        return ALL_MODULES

    modules = set()
    for grant in allowed:
        if grant.module is None:
            continue
        if unit_id is not None and grant.unit_id is not None and grant.unit_id != unit_id:
            continue
        modules.add(grant.module)
    return frozenset(modules)
