"""Validation Schemas — rules (configuration) and results (engine output).

Invariants:
    - ValidationRuleCreate.operator and .level are closed enums
    - REGEX rules must compile at the boundary; rules written directly to the store
      are still tolerated by the engine (non-match + warning)
    - IN / NOT_IN rules need at least one non-blank item

Design Decisions:
    - model_validator for cross-field checks (operator decides what value must look like)
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from remessa.core.domain_types import Module, ValidationLevel, ValidationOperator
from remessa.core.validation_operators import pattern_error, split_list_value


class ValidationRuleCreate(BaseModel):
    module: Module
    field: str = Field(min_length=1, max_length=200)
    operator: ValidationOperator
    value: str = Field("", max_length=1000)
    level: ValidationLevel
    code: str = Field(min_length=1, max_length=40)
    message: str = Field(min_length=1, max_length=500)
    active: bool = True

    @field_validator("field", "code")
    @classmethod
    def strip_identifiers(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty or whitespace")
        return v

    @model_validator(mode="after")
    def validate_operator_value(self):
        check_operator_value(self.operator, self.value)
        return self


class ValidationRuleUpdate(BaseModel):
    """Partial update — only provided fields change."""
    module: Module | None = None
    field: str | None = Field(None, min_length=1, max_length=200)
    operator: ValidationOperator | None = None
    value: str | None = Field(None, max_length=1000)
    level: ValidationLevel | None = None
    code: str | None = Field(None, min_length=1, max_length=40)
    message: str | None = Field(None, min_length=1, max_length=500)
    active: bool | None = None

    @model_validator(mode="after")
    def validate_operator_value(self):
        if self.operator is not None and self.value is not None:
            check_operator_value(self.operator, self.value)
        return self


class ValidationRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    module: str
    field: str
    operator: str
    value: str
    level: str
    code: str
    message: str
    active: bool
    created_at: datetime
    updated_at: datetime


class ValidationResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_record_id: int
    rule_id: int | None
    code: str
    level: str
    field: str
    message: str
    value: str | None
    created_at: datetime


class ValidationSummary(BaseModel):
    total: int
    impeditivas: int
    alertas: int


class ValidationOutcomeResponse(BaseModel):
    source_record_id: int
    module: str
    has_blocking_errors: bool
    validations: list[dict]
    summary: ValidationSummary


def check_operator_value(operator: ValidationOperator, value: str) -> None:
    if operator == ValidationOperator.REGEX:
        error = pattern_error(value)
        if error:
            raise ValueError(f"invalid regular expression: {error}")
    if operator in (ValidationOperator.IN, ValidationOperator.NOT_IN):
        if not [item for item in split_list_value(value) if item]:
            raise ValueError(f"{operator.value} requires a comma-separated list")
