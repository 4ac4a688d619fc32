"""Units — registry of source units (UGs) and their TCE credentials.

Invariants:
    - code unique (409)
    - Listing shows only the units the principal may view
    - Tokens are accepted on write and never returned
    - create/update: ADMIN or MANAGER; delete: ADMIN, refused while records reference the unit
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.api.dependencies import (
    get_current_principal, get_resolver, require_admin, require_manager,
)
from remessa.core.domain_types import PermissionAction, Principal
from remessa.core.errors import ConflictError, ResourceNotFoundError
from remessa.infrastructure.database import get_db
from remessa.models.remittance import Remittance
from remessa.models.source_record import SourceRecord
from remessa.models.unit import Unit
from remessa.schemas.administration import UnitCreate, UnitResponse, UnitUpdate
from remessa.services.audit_sink import AuditSink
from remessa.services.permission_resolver import PermissionResolver

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/units", tags=["units"])

_SECRET_FIELDS = {"production_token", "homologation_token"}


async def get_unit_or_404(unit_id: int, db: AsyncSession) -> Unit:
    result = await db.execute(select(Unit).where(Unit.id == unit_id))
    unit = result.scalar_one_or_none()
    if unit is None:
        raise ResourceNotFoundError("Unit", unit_id)
    return unit


def _redacted(values: dict) -> dict:
    return {k: ("***" if k in _SECRET_FIELDS and v else v) for k, v in values.items()}


@router.get("", response_model=list[UnitResponse])
async def list_units(
    principal: Principal = Depends(get_current_principal),
    resolver: PermissionResolver = Depends(get_resolver),
    db: AsyncSession = Depends(get_db),
):
    query = select(Unit).order_by(Unit.code)
    units = await resolver.permitted_units(principal.id, PermissionAction.VIEW)
    if isinstance(units, frozenset):
        query = query.where(Unit.id.in_(sorted(units)))
    return list((await db.execute(query)).scalars().all())


@router.get("/{unit_id}", response_model=UnitResponse)
async def get_unit(
    unit_id: int,
    principal: Principal = Depends(get_current_principal),
    resolver: PermissionResolver = Depends(get_resolver),
    db: AsyncSession = Depends(get_db),
):
    unit = await get_unit_or_404(unit_id, db)
    await resolver.require(principal.id, unit.id, None, PermissionAction.VIEW, "units")
    return unit


@router.post("", response_model=UnitResponse, status_code=status.HTTP_201_CREATED)
async def create_unit(
    body: UnitCreate,
    principal: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    existing = await db.execute(select(Unit.id).where(Unit.code == body.code))
    if existing.first() is not None:
        raise ConflictError(f"Unit code '{body.code}' already exists")
    unit = Unit(**body.model_dump(mode="json"))
    db.add(unit)
    await db.flush()
    AuditSink(db).record(
        "UNIT_CREATED", "Unit", unit.id, principal.id,
        new_value=_redacted(body.model_dump(mode="json")),
    )
    await db.commit()
    return unit


@router.patch("/{unit_id}", response_model=UnitResponse)
async def update_unit(
    unit_id: int,
    body: UnitUpdate,
    principal: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    unit = await get_unit_or_404(unit_id, db)
    changes = body.model_dump(mode="json", exclude_unset=True)
    old = {key: getattr(unit, key) for key in changes}
    for key, value in changes.items():
        setattr(unit, key, value)
    await db.flush()
    AuditSink(db).record(
        "UNIT_UPDATED", "Unit", unit.id, principal.id,
        old_value=_redacted(old), new_value=_redacted(changes),
    )
    await db.commit()
    return unit


@router.delete("/{unit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_unit(
    unit_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    unit = await get_unit_or_404(unit_id, db)
    for model in (SourceRecord, Remittance):
        in_use = await db.execute(select(model.id).where(model.unit_id == unit.id).limit(1))
        if in_use.first() is not None:
            raise ConflictError(f"Unit {unit.code} still has {model.__tablename__}")
    await db.delete(unit)
    AuditSink(db).record(
        "UNIT_DELETED", "Unit", unit_id, principal.id, old_value={"code": unit.code},
    )
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
