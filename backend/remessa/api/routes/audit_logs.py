"""Audit Logs — read-only view over the append-only audit trail.

Invariants:
    - No write endpoints: entries are produced only by AuditSink
    - ADMIN or MANAGER only
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.api.dependencies import require_manager
from remessa.core.domain_types import Principal
from remessa.core.errors import ResourceNotFoundError
from remessa.infrastructure.database import get_db
from remessa.models.audit_log import AuditLog
from remessa.schemas.administration import AuditLogResponse

router = APIRouter(prefix="/api/v1/audit-logs", tags=["audit-logs"])


@router.get("")
async def list_audit_logs(
    entity: str | None = Query(None, max_length=50),
    entity_id: int | None = Query(None),
    action: str | None = Query(None, max_length=50),
    user_id: int | None = Query(None),
    date_from: datetime | None = Query(None, alias="from"),
    date_to: datetime | None = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    _: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    conditions = []
    if entity:
        conditions.append(AuditLog.entity == entity)
    if entity_id is not None:
        conditions.append(AuditLog.entity_id == entity_id)
    if action:
        conditions.append(AuditLog.action == action)
    if user_id is not None:
        conditions.append(AuditLog.user_id == user_id)
    if date_from is not None:
        conditions.append(AuditLog.created_at >= date_from)
    if date_to is not None:
        conditions.append(AuditLog.created_at <= date_to)

    total = (await db.execute(
        select(func.count()).select_from(AuditLog).where(*conditions),
    )).scalar_one()
    result = await db.execute(
        select(AuditLog)
        .where(*conditions)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .offset((page - 1) * limit),
    )
    return {
        "data": [
            AuditLogResponse.model_validate(a).model_dump(mode="json")
            for a in result.scalars().all()
        ],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/{audit_id}", response_model=AuditLogResponse)
async def get_audit_log(
    audit_id: int,
    _: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(AuditLog).where(AuditLog.id == audit_id))
    entry = result.scalar_one_or_none()
    if entry is None:
        raise ResourceNotFoundError("AuditLog", audit_id)
    return entry
