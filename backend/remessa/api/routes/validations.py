"""Validations — run, inspect and clear validation passes over source records.

Invariants:
    - Record lookup (404) precedes the permission check (403)
    - validate/revalidate/clear need `edit` on the record's unit/module; reads need `view`
    - Listing across records is restricted to the units the principal may view
    - Passes commit inside the engine, under the record lock

Design Decisions:
    - Per-record endpoints live under /source-records/{id}, cross-record lookups
      under /results
"""

import logging

from fastapi import APIRouter, Depends, Query

from remessa.api.dependencies import (
    get_current_principal, get_resolver, get_validation_engine,
)
from remessa.core.domain_types import PermissionAction, Principal, ValidationLevel
from remessa.schemas.validation import ValidationOutcomeResponse, ValidationResultResponse
from remessa.services.permission_resolver import PermissionResolver
from remessa.services.validation_engine import ValidationEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/validations", tags=["validations"])

RESOURCE = "validations"


async def _authorized_record(
    source_record_id: int,
    action: PermissionAction,
    principal: Principal,
    engine: ValidationEngine,
    resolver: PermissionResolver,
):
    record = await engine.get_record_or_404(source_record_id)
    await resolver.require(
        principal.id, record.unit_id, record.module, action, RESOURCE,
    )
    return record


@router.post(
    "/source-records/{source_record_id}/validate",
    response_model=ValidationOutcomeResponse,
)
async def validate_record(
    source_record_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: ValidationEngine = Depends(get_validation_engine),
    resolver: PermissionResolver = Depends(get_resolver),
):
    """Run one pass; results are added to any previous ones."""
    await _authorized_record(
        source_record_id, PermissionAction.EDIT, principal, engine, resolver,
    )
    outcome = await engine.evaluate(source_record_id)
    return outcome.to_dict()


@router.post(
    "/source-records/{source_record_id}/revalidate",
    response_model=ValidationOutcomeResponse,
)
async def revalidate_record(
    source_record_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: ValidationEngine = Depends(get_validation_engine),
    resolver: PermissionResolver = Depends(get_resolver),
):
    """Clear previous results, then run a fresh pass."""
    await _authorized_record(
        source_record_id, PermissionAction.EDIT, principal, engine, resolver,
    )
    outcome = await engine.revalidate(source_record_id)
    return outcome.to_dict()


@router.get(
    "/source-records/{source_record_id}",
    response_model=list[ValidationResultResponse],
)
async def list_record_results(
    source_record_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: ValidationEngine = Depends(get_validation_engine),
    resolver: PermissionResolver = Depends(get_resolver),
):
    await _authorized_record(
        source_record_id, PermissionAction.VIEW, principal, engine, resolver,
    )
    return await engine.list_results(source_record_id)


@router.delete("/source-records/{source_record_id}")
async def clear_record_results(
    source_record_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: ValidationEngine = Depends(get_validation_engine),
    resolver: PermissionResolver = Depends(get_resolver),
):
    await _authorized_record(
        source_record_id, PermissionAction.EDIT, principal, engine, resolver,
    )
    count = await engine.clear_results(source_record_id)
    return {"count": count}


@router.get("/results")
async def search_results(
    source_record_id: int | None = Query(None, gt=0),
    level: ValidationLevel | None = Query(None),
    code: str | None = Query(None, max_length=40),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_current_principal),
    engine: ValidationEngine = Depends(get_validation_engine),
    resolver: PermissionResolver = Depends(get_resolver),
):
    """Results across records, newest first, within the principal's view units."""
    units = await resolver.permitted_units(principal.id, PermissionAction.VIEW)
    result = await engine.search_results(
        source_record_id=source_record_id,
        level=level.value if level else None,
        code=code,
        unit_ids=units if isinstance(units, frozenset) else None,
        page=page,
        limit=limit,
    )
    return {
        "data": [
            ValidationResultResponse.model_validate(r).model_dump(mode="json")
            for r in result["data"]
        ],
        "total": result["total"],
        "page": result["page"],
        "limit": result["limit"],
    }


@router.get("/results/{result_id}", response_model=ValidationResultResponse)
async def get_result(
    result_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: ValidationEngine = Depends(get_validation_engine),
    resolver: PermissionResolver = Depends(get_resolver),
):
    found = await engine.get_result_or_404(result_id)
    await _authorized_record(
        found.source_record_id, PermissionAction.VIEW, principal, engine, resolver,
    )
    return found
