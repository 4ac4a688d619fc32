"""Remittances — lifecycle endpoints over the remittance state machine.

Invariants:
    - Every endpoint resolves the principal first (401/403 before any lookup)
    - Routes own the commit for cancel and retry; create and send commit in the service
    - A blocked creation still commits: validation results and the ERROR status of
      the source record are persisted before the 422 is returned

Design Decisions:
    - RemittanceBlocked -> ValidationBlockedError mapped here, at the HTTP boundary;
      the service reports blocking as a normal outcome
    - /stats declared before /{remittance_id} so the literal path wins
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.api.dependencies import get_current_principal, get_remittance_service
from remessa.core.domain_types import Module, Principal, RemittanceStatus
from remessa.core.errors import ErrorContext, ValidationBlockedError
from remessa.infrastructure.database import get_db
from remessa.schemas.remittance import (
    RemittanceCreate, RemittanceCreatedResponse, RemittanceLogResponse,
    RemittancePage, RemittanceResponse, RemittanceStats, TransmissionResponse,
)
from remessa.services.remittance_service import (
    RemittanceBlocked, RemittanceFilters, RemittanceService,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/remittances", tags=["remittances"])


@router.post(
    "", response_model=RemittanceCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_remittance(
    body: RemittanceCreate,
    principal: Principal = Depends(get_current_principal),
    service: RemittanceService = Depends(get_remittance_service),
):
    """Validate, transform and persist a READY remittance for a source record."""
    outcome = await service.create(body.source_record_id, principal.id)
    if isinstance(outcome, RemittanceBlocked):
        raise ValidationBlockedError(
            [v.to_dict() for v in outcome.violations],
            ErrorContext(source_record_id=body.source_record_id, user_id=principal.id),
        )
    return RemittanceCreatedResponse(
        remittance=RemittanceResponse.model_validate(outcome.remittance),
        validation=outcome.validation.to_dict(),
    )


@router.get("", response_model=RemittancePage)
async def list_remittances(
    status_filter: RemittanceStatus | None = Query(None, alias="status"),
    module: Module | None = Query(None),
    competency: str | None = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    unit_id: int | None = Query(None, gt=0),
    date_from: datetime | None = Query(None, alias="from"),
    date_to: datetime | None = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    service: RemittanceService = Depends(get_remittance_service),
):
    """List remittances the principal may view, newest first."""
    filters = RemittanceFilters(
        status=status_filter.value if status_filter else None,
        module=module.value if module else None,
        competency=competency,
        unit_id=unit_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    result = await service.search(filters, principal.id)
    return RemittancePage(
        data=[RemittanceResponse.model_validate(r) for r in result["data"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
    )


@router.get("/stats", response_model=RemittanceStats)
async def remittance_stats(
    principal: Principal = Depends(get_current_principal),
    service: RemittanceService = Depends(get_remittance_service),
):
    return RemittanceStats(**await service.stats(principal.id))


@router.get("/{remittance_id}", response_model=RemittanceResponse)
async def get_remittance(
    remittance_id: int,
    principal: Principal = Depends(get_current_principal),
    service: RemittanceService = Depends(get_remittance_service),
):
    return await service.get(remittance_id, principal.id)


@router.get("/{remittance_id}/logs", response_model=list[RemittanceLogResponse])
async def get_remittance_logs(
    remittance_id: int,
    principal: Principal = Depends(get_current_principal),
    service: RemittanceService = Depends(get_remittance_service),
):
    """Request/response trail of every transmission attempt, oldest first."""
    return await service.logs(remittance_id, principal.id)


@router.post("/{remittance_id}/send", response_model=TransmissionResponse)
async def send_remittance(
    remittance_id: int,
    principal: Principal = Depends(get_current_principal),
    service: RemittanceService = Depends(get_remittance_service),
):
    """Transmit a READY remittance. Failure -> ERROR persisted, then 502."""
    result = await service.send(remittance_id, principal.id)
    return TransmissionResponse(
        remittance=RemittanceResponse.model_validate(result.remittance),
        response=result.response.to_dict(),
        duration_ms=result.response.duration_ms,
    )


@router.post("/{remittance_id}/cancel", response_model=RemittanceResponse)
async def cancel_remittance(
    remittance_id: int,
    principal: Principal = Depends(get_current_principal),
    service: RemittanceService = Depends(get_remittance_service),
    db: AsyncSession = Depends(get_db),
):
    remittance = await service.cancel(remittance_id, principal.id)
    await db.commit()
    return remittance


@router.post("/{remittance_id}/retry", response_model=RemittanceResponse)
async def retry_remittance(
    remittance_id: int,
    principal: Principal = Depends(get_current_principal),
    service: RemittanceService = Depends(get_remittance_service),
    db: AsyncSession = Depends(get_db),
):
    """ERROR -> READY. The stored payload is reused; no revalidation."""
    remittance = await service.retry(remittance_id, principal.id)
    await db.commit()
    return remittance
