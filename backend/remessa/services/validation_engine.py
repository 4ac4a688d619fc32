"""Validation Engine — evaluates a module's active rules against a source record.

Invariants:
    - One pass = one snapshot of active rules, loaded once before any evaluation
    - Every fired rule is persisted as a ValidationResult and returned
    - has_blocking_errors iff at least one fired rule is IMPEDITIVA
    - revalidate = clear all results of the record, then evaluate (never additive)
    - evaluate / revalidate / clear_results hold the record lock until their commit,
      so two passes over one record never interleave their writes
    - A malformed REGEX rule does not fire and does not abort the pass

Design Decisions:
    - record_lock is process-local (asyncio); the SELECT ... FOR UPDATE on the
      source record row serializes passes across workers on PostgreSQL
    - A lock slot lives only while someone holds or awaits it
    - replace_results() neither locks nor commits: remittance creation runs it
      inside its own locked unit of work
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.core.domain_types import ValidationLevel, ValidationOperator
from remessa.core.errors import ResourceNotFoundError
from remessa.core.validation_operators import (
    evaluate_rule, get_field_value, pattern_error, safe_stringify,
)
from remessa.models.source_record import SourceRecord
from remessa.models.validation_result import ValidationResult
from remessa.models.validation_rule import ValidationRule

logger = logging.getLogger(__name__)


@dataclass
class _LockSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


_record_locks: dict[int, _LockSlot] = {}


@dataclass
class ViolationItem:
    rule_id: int
    code: str
    level: str
    field: str
    message: str
    value: str

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "code": self.code,
            "level": self.level,
            "field": self.field,
            "message": self.message,
            "value": self.value,
        }


@dataclass
class ValidationOutcome:
    source_record_id: int
    module: str
    violations: list[ViolationItem] = field(default_factory=list)

    @property
    def blocking(self) -> list[ViolationItem]:
        return [v for v in self.violations if v.level == ValidationLevel.IMPEDITIVA.value]

    @property
    def has_blocking_errors(self) -> bool:
        return bool(self.blocking)

    def summary(self) -> dict:
        alerts = sum(1 for v in self.violations if v.level == ValidationLevel.ALERTA.value)
        return {
            "total": len(self.violations),
            "impeditivas": len(self.blocking),
            "alertas": alerts,
        }

    def to_dict(self) -> dict:
        return {
            "source_record_id": self.source_record_id,
            "module": self.module,
            "has_blocking_errors": self.has_blocking_errors,
            "validations": [v.to_dict() for v in self.violations],
            "summary": self.summary(),
        }


@asynccontextmanager
async def record_lock(source_record_id: int) -> AsyncIterator[None]:
    """Serialize work on one source record within this process.

    The slot is dropped once its last holder or waiter leaves.
    """
    slot = _record_locks.setdefault(source_record_id, _LockSlot())
    slot.users += 1
    try:
        async with slot.lock:
            yield
    finally:
        slot.users -= 1
        if slot.users == 0:
            _record_locks.pop(source_record_id, None)


class ValidationEngine:
    """Rule engine over SourceRecord payloads."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_record_or_404(self, source_record_id: int) -> SourceRecord:
        result = await self.db.execute(
            select(SourceRecord).where(SourceRecord.id == source_record_id),
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise ResourceNotFoundError("SourceRecord", source_record_id)
        return record

    async def active_rules(self, module: str) -> list[ValidationRule]:
        """Snapshot of the module's active rules, in id order."""
        result = await self.db.execute(
            select(ValidationRule)
            .where(ValidationRule.module == module, ValidationRule.active.is_(True))
            .order_by(ValidationRule.id),
        )
        return list(result.scalars().all())

    async def lock_record_row(self, source_record_id: int) -> SourceRecord:
        """Load the record with a row lock held until the transaction ends."""
        result = await self.db.execute(
            select(SourceRecord)
            .where(SourceRecord.id == source_record_id)
            .with_for_update()
            .execution_options(populate_existing=True),
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise ResourceNotFoundError("SourceRecord", source_record_id)
        return record

    async def evaluate(self, source_record_id: int) -> ValidationOutcome:
        """Run one validation pass and commit every fired rule."""
        async with record_lock(source_record_id):
            record = await self.lock_record_row(source_record_id)
            outcome = await self._evaluate(record)
            await self.db.commit()
            return outcome

    async def revalidate(self, source_record_id: int) -> ValidationOutcome:
        """Clear previous results and evaluate again, atomically per record."""
        async with record_lock(source_record_id):
            outcome = await self.replace_results(source_record_id)
            await self.db.commit()
            return outcome

    async def replace_results(self, source_record_id: int) -> ValidationOutcome:
        """Clear and evaluate inside the caller's transaction.

        The caller holds record_lock(source_record_id) and commits.
        """
        record = await self.lock_record_row(source_record_id)
        await self._clear(source_record_id)
        return await self._evaluate(record)

    async def list_results(self, source_record_id: int) -> list[ValidationResult]:
        await self.get_record_or_404(source_record_id)
        result = await self.db.execute(
            select(ValidationResult)
            .where(ValidationResult.source_record_id == source_record_id)
            .order_by(ValidationResult.created_at.desc(), ValidationResult.id.desc()),
        )
        return list(result.scalars().all())

    async def get_result_or_404(self, result_id: int) -> ValidationResult:
        result = await self.db.execute(
            select(ValidationResult).where(ValidationResult.id == result_id),
        )
        found = result.scalar_one_or_none()
        if found is None:
            raise ResourceNotFoundError("ValidationResult", result_id)
        return found

    async def search_results(
        self,
        source_record_id: int | None = None,
        level: str | None = None,
        code: str | None = None,
        unit_ids: frozenset | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict:
        """Results across records. unit_ids=None means no unit restriction."""
        conditions = []
        if source_record_id is not None:
            conditions.append(ValidationResult.source_record_id == source_record_id)
        if level:
            conditions.append(ValidationResult.level == level)
        if code:
            conditions.append(ValidationResult.code == code)
        if unit_ids is not None:
            conditions.append(SourceRecord.unit_id.in_(sorted(unit_ids)))

        base = (
            select(ValidationResult)
            .join(SourceRecord, SourceRecord.id == ValidationResult.source_record_id)
            .where(*conditions)
        )
        total = (await self.db.execute(
            select(func.count()).select_from(base.subquery()),
        )).scalar_one()
        rows = await self.db.execute(
            base.order_by(ValidationResult.created_at.desc(), ValidationResult.id.desc())
            .limit(limit)
            .offset((page - 1) * limit),
        )
        return {
            "data": list(rows.scalars().all()),
            "total": total,
            "page": page,
            "limit": limit,
        }

    async def clear_results(self, source_record_id: int) -> int:
        async with record_lock(source_record_id):
            await self.lock_record_row(source_record_id)
            removed = await self._clear(source_record_id)
            await self.db.commit()
            return removed

    async def _clear(self, source_record_id: int) -> int:
        result = await self.db.execute(
            delete(ValidationResult)
            .where(ValidationResult.source_record_id == source_record_id),
        )
        await self.db.flush()
        return result.rowcount or 0

    async def _evaluate(self, record: SourceRecord) -> ValidationOutcome:
        rules = await self.active_rules(record.module)
        payload = record.payload or {}
        outcome = ValidationOutcome(
            source_record_id=record.id, module=record.module,
        )

        for rule in rules:
            if not self._is_evaluable(rule):
                continue
            field_value = get_field_value(payload, rule.field)
            if not evaluate_rule(field_value, rule.operator, rule.value):
                continue
            item = ViolationItem(
                rule_id=rule.id,
                code=rule.code,
                level=rule.level,
                field=rule.field,
                message=rule.message,
                value=safe_stringify(field_value),
            )
            outcome.violations.append(item)
            self.db.add(ValidationResult(
                source_record_id=record.id,
                rule_id=rule.id,
                code=rule.code,
                level=rule.level,
                field=rule.field,
                message=rule.message,
                value=item.value,
            ))

        await self.db.flush()
        logger.info(
            f"Validated source record: {outcome.summary()}",
            extra={"source_record_id": record.id, "tce_module": record.module},
        )
        return outcome

    def _is_evaluable(self, rule: ValidationRule) -> bool:
        """Skip rules whose operator is unknown or whose pattern does not compile."""
        try:
            operator = ValidationOperator(rule.operator)
        except ValueError:
            logger.warning(
                f"Rule {rule.code} has unknown operator '{rule.operator}', skipped",
                extra={"error_code": "UNKNOWN_OPERATOR"},
            )
            return False
        if operator == ValidationOperator.REGEX:
            error = pattern_error(rule.value)
            if error:
                logger.warning(
                    f"Rule {rule.code} has malformed pattern ({error}), treated as non-match",
                    extra={"error_code": "MALFORMED_PATTERN"},
                )
                return False
        return True
