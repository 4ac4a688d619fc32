"""Source Records — ingestion, corrective edits and removal of records awaiting submission.

Invariants:
    - create needs `create`, edit needs `edit`, delete needs `delete` on the record's unit/module
    - Listing is restricted to the units the principal may view
    - A record with a READY/SENDING remittance cannot be deleted (409)
    - Deleting a record removes its validation results and detaches its remittances

Design Decisions:
    - Thin CRUD kept in the route (no service): no pipeline semantics besides the
      permission checks, which go through the shared PermissionResolver
"""

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.api.dependencies import get_current_principal, get_resolver
from remessa.core.domain_types import Module, PermissionAction, Principal, SourceRecordStatus
from remessa.core.enforce_transitions import check_no_active_remittance
from remessa.core.errors import ConflictError, ResourceNotFoundError
from remessa.infrastructure.database import get_db
from remessa.models.remittance import Remittance
from remessa.models.source_record import SourceRecord
from remessa.models.unit import Unit
from remessa.models.validation_result import ValidationResult
from remessa.schemas.source_record import (
    COMPETENCY_PATTERN, SourceRecordCreate, SourceRecordResponse, SourceRecordUpdate,
)
from remessa.services.audit_sink import AuditSink
from remessa.services.permission_resolver import PermissionResolver

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/source-records", tags=["source-records"])

RESOURCE = "source records"


async def get_record_or_404(source_record_id: int, db: AsyncSession) -> SourceRecord:
    result = await db.execute(
        select(SourceRecord).where(SourceRecord.id == source_record_id),
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise ResourceNotFoundError("SourceRecord", source_record_id)
    return record


@router.post(
    "", response_model=SourceRecordResponse, status_code=status.HTTP_201_CREATED,
)
async def create_source_record(
    body: SourceRecordCreate,
    principal: Principal = Depends(get_current_principal),
    resolver: PermissionResolver = Depends(get_resolver),
    db: AsyncSession = Depends(get_db),
):
    """Ingest one record. Status starts at RECEIVED."""
    unit = (await db.execute(select(Unit).where(Unit.id == body.unit_id))).scalar_one_or_none()
    if unit is None:
        raise ResourceNotFoundError("Unit", body.unit_id)
    await resolver.require(
        principal.id, unit.id, body.module.value, PermissionAction.CREATE, RESOURCE,
    )
    record = SourceRecord(
        unit_id=unit.id,
        module=body.module.value,
        competency=body.competency,
        payload=body.payload,
        status=SourceRecordStatus.RECEIVED.value,
    )
    db.add(record)
    await db.flush()
    AuditSink(db).record(
        "SOURCE_RECORD_CREATED", "SourceRecord", record.id, principal.id,
        new_value={"unit_id": record.unit_id, "module": record.module,
                   "competency": record.competency},
    )
    await db.commit()
    logger.info(
        "Source record ingested",
        extra={"source_record_id": record.id, "user_id": principal.id},
    )
    return record


@router.get("")
async def list_source_records(
    unit_id: int | None = Query(None, gt=0),
    module: Module | None = Query(None),
    status_filter: SourceRecordStatus | None = Query(None, alias="status"),
    competency: str | None = Query(None, pattern=COMPETENCY_PATTERN),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    resolver: PermissionResolver = Depends(get_resolver),
    db: AsyncSession = Depends(get_db),
):
    """List records in the principal's view units, newest first."""
    conditions = []
    if unit_id is not None:
        conditions.append(SourceRecord.unit_id == unit_id)
    if module is not None:
        conditions.append(SourceRecord.module == module.value)
    if status_filter is not None:
        conditions.append(SourceRecord.status == status_filter.value)
    if competency:
        conditions.append(SourceRecord.competency == competency)
    units = await resolver.permitted_units(principal.id, PermissionAction.VIEW)
    if isinstance(units, frozenset):
        conditions.append(SourceRecord.unit_id.in_(sorted(units)))

    total = (await db.execute(
        select(func.count()).select_from(SourceRecord).where(*conditions),
    )).scalar_one()
    result = await db.execute(
        select(SourceRecord)
        .where(*conditions)
        .order_by(SourceRecord.created_at.desc(), SourceRecord.id.desc())
        .limit(limit)
        .offset((page - 1) * limit),
    )
    return {
        "data": [
            SourceRecordResponse.model_validate(r).model_dump(mode="json")
            for r in result.scalars().all()
        ],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/{source_record_id}", response_model=SourceRecordResponse)
async def get_source_record(
    source_record_id: int,
    principal: Principal = Depends(get_current_principal),
    resolver: PermissionResolver = Depends(get_resolver),
    db: AsyncSession = Depends(get_db),
):
    record = await get_record_or_404(source_record_id, db)
    await resolver.require(
        principal.id, record.unit_id, record.module, PermissionAction.VIEW, RESOURCE,
    )
    return record


@router.patch("/{source_record_id}", response_model=SourceRecordResponse)
async def update_source_record(
    source_record_id: int,
    body: SourceRecordUpdate,
    principal: Principal = Depends(get_current_principal),
    resolver: PermissionResolver = Depends(get_resolver),
    db: AsyncSession = Depends(get_db),
):
    """Corrective edit of competency and/or payload."""
    record = await get_record_or_404(source_record_id, db)
    await resolver.require(
        principal.id, record.unit_id, record.module, PermissionAction.EDIT, RESOURCE,
    )
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    old = {key: getattr(record, key) for key in changes}
    for key, value in changes.items():
        setattr(record, key, value)
    await db.flush()
    AuditSink(db).record(
        "SOURCE_RECORD_UPDATED", "SourceRecord", record.id, principal.id,
        old_value=old, new_value=changes,
    )
    await db.commit()
    return record


@router.delete("/{source_record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_source_record(
    source_record_id: int,
    principal: Principal = Depends(get_current_principal),
    resolver: PermissionResolver = Depends(get_resolver),
    db: AsyncSession = Depends(get_db),
):
    record = await get_record_or_404(source_record_id, db)
    await resolver.require(
        principal.id, record.unit_id, record.module, PermissionAction.DELETE, RESOURCE,
    )
    statuses = (await db.execute(
        select(Remittance.status).where(Remittance.source_record_id == record.id),
    )).scalars().all()
    error = check_no_active_remittance(list(statuses))
    if error:
        raise ConflictError(error["message"])

    await db.execute(
        delete(ValidationResult).where(ValidationResult.source_record_id == record.id),
    )
    await db.execute(
        update(Remittance)
        .where(Remittance.source_record_id == record.id)
        .values(source_record_id=None),
    )
    await db.delete(record)
    AuditSink(db).record(
        "SOURCE_RECORD_DELETED", "SourceRecord", source_record_id, principal.id,
        old_value={"unit_id": record.unit_id, "module": record.module},
    )
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
