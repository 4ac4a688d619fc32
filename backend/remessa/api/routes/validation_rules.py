"""Validation Rules — configuration of the per-module rule set used by the engine.

Invariants:
    - Reads: any active principal; create/update: ADMIN or MANAGER; delete: ADMIN
    - code is unique (409 on create and on rename)
    - An update is re-checked against the merged operator/value pair
"""

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.exceptions import RequestValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.api.dependencies import get_current_principal, require_admin, require_manager
from remessa.core.domain_types import Module, Principal, ValidationLevel, ValidationOperator
from remessa.core.errors import ConflictError, ResourceNotFoundError
from remessa.infrastructure.database import get_db
from remessa.models.validation_rule import ValidationRule
from remessa.schemas.validation import (
    ValidationRuleCreate, ValidationRuleResponse, ValidationRuleUpdate,
    check_operator_value,
)
from remessa.services.audit_sink import AuditSink

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/validation-rules", tags=["validation-rules"])


async def get_rule_or_404(rule_id: int, db: AsyncSession) -> ValidationRule:
    result = await db.execute(select(ValidationRule).where(ValidationRule.id == rule_id))
    rule = result.scalar_one_or_none()
    if rule is None:
        raise ResourceNotFoundError("ValidationRule", rule_id)
    return rule


async def _ensure_code_free(db: AsyncSession, code: str, exclude_id: int | None = None) -> None:
    query = select(ValidationRule.id).where(ValidationRule.code == code)
    if exclude_id is not None:
        query = query.where(ValidationRule.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise ConflictError(f"Validation rule code '{code}' already exists")


@router.get("", response_model=list[ValidationRuleResponse])
async def list_rules(
    module: Module | None = Query(None),
    level: ValidationLevel | None = Query(None),
    active: bool | None = Query(None),
    _: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    query = select(ValidationRule).order_by(ValidationRule.module, ValidationRule.id)
    if module is not None:
        query = query.where(ValidationRule.module == module.value)
    if level is not None:
        query = query.where(ValidationRule.level == level.value)
    if active is not None:
        query = query.where(ValidationRule.active.is_(active))
    return list((await db.execute(query)).scalars().all())


@router.get("/{rule_id}", response_model=ValidationRuleResponse)
async def get_rule(
    rule_id: int,
    _: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await get_rule_or_404(rule_id, db)


@router.post(
    "", response_model=ValidationRuleResponse, status_code=status.HTTP_201_CREATED,
)
async def create_rule(
    body: ValidationRuleCreate,
    principal: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    await _ensure_code_free(db, body.code)
    rule = ValidationRule(**body.model_dump(mode="json"))
    db.add(rule)
    await db.flush()
    AuditSink(db).record(
        "VALIDATION_RULE_CREATED", "ValidationRule", rule.id, principal.id,
        new_value=body.model_dump(mode="json"),
    )
    await db.commit()
    return rule


@router.patch("/{rule_id}", response_model=ValidationRuleResponse)
async def update_rule(
    rule_id: int,
    body: ValidationRuleUpdate,
    principal: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    rule = await get_rule_or_404(rule_id, db)
    changes = body.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    if "code" in changes and changes["code"] != rule.code:
        await _ensure_code_free(db, changes["code"], exclude_id=rule.id)
    try:
        check_operator_value(
            ValidationOperator(changes.get("operator", rule.operator)),
            changes.get("value", rule.value),
        )
    except ValueError as e:
        raise RequestValidationError([{
            "loc": ("body", "value"), "msg": str(e), "type": "value_error",
        }])

    old = {key: getattr(rule, key) for key in changes}
    for key, value in changes.items():
        setattr(rule, key, value)
    await db.flush()
    AuditSink(db).record(
        "VALIDATION_RULE_UPDATED", "ValidationRule", rule.id, principal.id,
        old_value=old, new_value=changes,
    )
    await db.commit()
    return rule


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Historical ValidationResults keep the rule's code; rule_id is not a FK."""
    rule = await get_rule_or_404(rule_id, db)
    await db.delete(rule)
    AuditSink(db).record(
        "VALIDATION_RULE_DELETED", "ValidationRule", rule_id, principal.id,
        old_value={"code": rule.code, "module": rule.module},
    )
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
