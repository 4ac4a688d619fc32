"""Permissions — cascade queries and grant administration.

Invariants:
    - Queries (check/units/modules) and grant reads need ADMIN or MANAGER
    - Grant writes need ADMIN
    - (user_id, unit_id, module) unique per grant, NULL-aware: checked here because
      SQL unique indexes treat NULLs as distinct
    - Bulk creation skips duplicates (existing or repeated in the batch), never fails on them

Design Decisions:
    - Queries delegate to PermissionResolver: one decision path for routes and services
    - ALL_UNITS / ALL_MODULES serialized as {"all": true, "items": []}
"""

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.api.dependencies import get_resolver, require_admin, require_manager
from remessa.core.domain_types import Module, PermissionAction, Principal
from remessa.core.errors import ConflictError, ResourceNotFoundError
from remessa.infrastructure.database import get_db
from remessa.models.unit import Unit
from remessa.models.user import User
from remessa.models.user_permission import UserPermission
from remessa.schemas.permission import (
    BulkCreateResponse, GrantBulkCreate, GrantCreate, GrantResponse, GrantUpdate,
    PermissionCheckResponse, PermittedScopeResponse,
)
from remessa.services.audit_sink import AuditSink
from remessa.services.permission_resolver import PermissionResolver

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/permissions", tags=["permissions"])

_FLAGS = ("can_view", "can_create", "can_edit", "can_delete", "can_transmit")


# ─── Cascade queries ─────────────────────────────────────────────

@router.get("/check", response_model=PermissionCheckResponse)
async def check_permission(
    user_id: int = Query(gt=0),
    action: PermissionAction = Query(),
    unit_id: int | None = Query(None, gt=0),
    module: Module | None = Query(None),
    _: Principal = Depends(require_manager),
    resolver: PermissionResolver = Depends(get_resolver),
):
    module_value = module.value if module else None
    allowed = await resolver.authorize(user_id, unit_id, module_value, action)
    return PermissionCheckResponse(
        user_id=user_id, unit_id=unit_id, module=module_value,
        action=action, allowed=allowed,
    )


@router.get("/units", response_model=PermittedScopeResponse)
async def permitted_units(
    user_id: int = Query(gt=0),
    action: PermissionAction = Query(),
    _: Principal = Depends(require_manager),
    resolver: PermissionResolver = Depends(get_resolver),
):
    units = await resolver.permitted_units(user_id, action)
    return _scope_response(user_id, action, units)


@router.get("/modules", response_model=PermittedScopeResponse)
async def permitted_modules(
    user_id: int = Query(gt=0),
    action: PermissionAction = Query(),
    unit_id: int | None = Query(None, gt=0),
    _: Principal = Depends(require_manager),
    resolver: PermissionResolver = Depends(get_resolver),
):
    modules = await resolver.permitted_modules(user_id, action, unit_id)
    return _scope_response(user_id, action, modules)


def _scope_response(user_id: int, action: PermissionAction, scope) -> PermittedScopeResponse:
    if isinstance(scope, frozenset):
        return PermittedScopeResponse(
            user_id=user_id, action=action, all=False, items=sorted(scope),
        )
    return PermittedScopeResponse(user_id=user_id, action=action, all=True, items=[])


# ─── Grant CRUD ──────────────────────────────────────────────────

async def get_grant_or_404(grant_id: int, db: AsyncSession) -> UserPermission:
    result = await db.execute(
        select(UserPermission).where(UserPermission.id == grant_id),
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        raise ResourceNotFoundError("UserPermission", grant_id)
    return grant


async def _find_same_scope(
    db: AsyncSession, user_id: int, unit_id: int | None, module: str | None,
) -> UserPermission | None:
    query = select(UserPermission).where(UserPermission.user_id == user_id)
    query = query.where(
        UserPermission.unit_id.is_(None) if unit_id is None
        else UserPermission.unit_id == unit_id,
    )
    query = query.where(
        UserPermission.module.is_(None) if module is None
        else UserPermission.module == module,
    )
    return (await db.execute(query)).scalars().first()


async def _check_references(db: AsyncSession, user_id: int, unit_id: int | None) -> None:
    if (await db.execute(select(User.id).where(User.id == user_id))).scalar_one_or_none() is None:
        raise ResourceNotFoundError("User", user_id)
    if unit_id is not None and (
        await db.execute(select(Unit.id).where(Unit.id == unit_id))
    ).scalar_one_or_none() is None:
        raise ResourceNotFoundError("Unit", unit_id)


def _new_grant(body: GrantCreate) -> UserPermission:
    return UserPermission(
        user_id=body.user_id,
        unit_id=body.unit_id,
        module=body.module.value if body.module else None,
        **{flag: getattr(body, flag) for flag in _FLAGS},
    )


@router.get("/grants", response_model=list[GrantResponse])
async def list_grants(
    user_id: int | None = Query(None, gt=0),
    unit_id: int | None = Query(None, gt=0),
    module: Module | None = Query(None),
    _: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    query = select(UserPermission).order_by(UserPermission.id)
    if user_id is not None:
        query = query.where(UserPermission.user_id == user_id)
    if unit_id is not None:
        query = query.where(UserPermission.unit_id == unit_id)
    if module is not None:
        query = query.where(UserPermission.module == module.value)
    return list((await db.execute(query)).scalars().all())


@router.get("/grants/{grant_id}", response_model=GrantResponse)
async def get_grant(
    grant_id: int,
    _: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    return await get_grant_or_404(grant_id, db)


@router.post(
    "/grants", response_model=GrantResponse, status_code=status.HTTP_201_CREATED,
)
async def create_grant(
    body: GrantCreate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await _check_references(db, body.user_id, body.unit_id)
    module = body.module.value if body.module else None
    if await _find_same_scope(db, body.user_id, body.unit_id, module):
        raise ConflictError(
            f"User {body.user_id} already has a grant for unit={body.unit_id} module={module}",
        )
    grant = _new_grant(body)
    db.add(grant)
    await db.flush()
    AuditSink(db).record(
        "GRANT_CREATED", "UserPermission", grant.id, principal.id,
        new_value=GrantResponse.model_validate(grant).model_dump(mode="json"),
    )
    await db.commit()
    logger.info(
        f"Grant {grant.id} created for user {body.user_id}",
        extra={"user_id": principal.id},
    )
    return grant


@router.post(
    "/grants/bulk", response_model=BulkCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_grants_bulk(
    body: GrantBulkCreate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create many grants at once; same-scope duplicates are skipped."""
    created: list[UserPermission] = []
    seen: set[tuple] = set()
    skipped = 0
    for item in body.grants:
        module = item.module.value if item.module else None
        key = (item.user_id, item.unit_id, module)
        if key in seen or await _find_same_scope(db, *key):
            skipped += 1
            continue
        await _check_references(db, item.user_id, item.unit_id)
        seen.add(key)
        grant = _new_grant(item)
        db.add(grant)
        created.append(grant)
    await db.flush()
    AuditSink(db).record(
        "GRANTS_BULK_CREATED", "UserPermission", None, principal.id,
        new_value={"created": [g.id for g in created], "skipped": skipped},
    )
    await db.commit()
    return BulkCreateResponse(
        created=[GrantResponse.model_validate(g) for g in created],
        skipped=skipped,
    )


@router.patch("/grants/{grant_id}", response_model=GrantResponse)
async def update_grant(
    grant_id: int,
    body: GrantUpdate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    grant = await get_grant_or_404(grant_id, db)
    old = GrantResponse.model_validate(grant).model_dump(mode="json")
    for flag, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(grant, flag, value)
    await db.flush()
    AuditSink(db).record(
        "GRANT_UPDATED", "UserPermission", grant.id, principal.id,
        old_value=old,
        new_value=GrantResponse.model_validate(grant).model_dump(mode="json"),
    )
    await db.commit()
    return grant


@router.delete("/grants/{grant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_grant(
    grant_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    grant = await get_grant_or_404(grant_id, db)
    old = GrantResponse.model_validate(grant).model_dump(mode="json")
    await db.delete(grant)
    AuditSink(db).record(
        "GRANT_DELETED", "UserPermission", grant_id, principal.id, old_value=old,
    )
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/grants/users/{user_id}")
async def delete_user_grants(
    user_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Remove every grant of a user. Returns how many were removed."""
    result = await db.execute(
        delete(UserPermission).where(UserPermission.user_id == user_id),
    )
    count = result.rowcount or 0
    AuditSink(db).record(
        "GRANTS_REMOVED", "User", user_id, principal.id, new_value={"count": count},
    )
    await db.commit()
    return {"count": count}
