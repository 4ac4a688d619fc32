"""Validation Operators — pure rule evaluation over a structured payload.

Invariants:
    - evaluate_rule returns True when the rule FIRES (operator encodes the violation)
    - get_field_value never raises: missing keys and non-container hops yield None
    - Numeric operators never fire on non-numeric operands (NaN semantics)
    - REGEX with a malformed pattern never fires
    - REQUIRED fires only when the value is absent or blank after stripping

Design Decisions:
    - Pure functions, no IO and no logging: the engine decides how to report
      malformed rules via pattern_error() (ADR: core never imports from shell)
    - Canonical stringification mirrors JSON: None -> "", bool -> true/false,
      integral floats without ".0", containers -> compact JSON
    - Numeric list indices accepted in field paths ("itens.0.valor")
"""

import json
import math
import re
from typing import Any

from remessa.core.domain_types import ValidationOperator


_NUMERIC_OPERATORS = {
    ValidationOperator.GREATER_THAN: lambda a, b: a > b,
    ValidationOperator.LESS_THAN: lambda a, b: a < b,
    ValidationOperator.GREATER_THAN_OR_EQUALS: lambda a, b: a >= b,
    ValidationOperator.LESS_THAN_OR_EQUALS: lambda a, b: a <= b,
}


def get_field_value(payload: Any, path: str) -> Any:
    """Resolve a dot-delimited path inside nested dicts/lists. Absent -> None."""
    current = payload
    for key in path.split("."):
        if isinstance(current, dict):
            if key not in current:
                return None
            current = current[key]
        elif isinstance(current, list) and key.isdigit():
            index = int(key)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def safe_stringify(value: Any) -> str:
    """Canonical text form used by every string operator."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def to_number(value: Any) -> float:
    """Coerce to float; anything non-numeric becomes NaN."""
    if value is None or isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return math.nan
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def split_list_value(rule_value: str) -> list[str]:
    """IN / NOT_IN comparison values are comma-separated, whitespace-trimmed."""
    return [item.strip() for item in rule_value.split(",")]


def pattern_error(pattern: str) -> str | None:
    """Return the compile error for a REGEX rule value, or None if it compiles."""
    try:
        re.compile(pattern)
    except re.error as e:
        return str(e)
    return None


def evaluate_rule(
    field_value: Any, operator: ValidationOperator | str, rule_value: str,
) -> bool:
    """True when the rule fires for this field value. Pure."""
    operator = ValidationOperator(operator)
    rule_value = rule_value or ""

    if operator in _NUMERIC_OPERATORS:
        left, right = to_number(field_value), to_number(rule_value)
        if math.isnan(left) or math.isnan(right):
            return False
        return _NUMERIC_OPERATORS[operator](left, right)

    if operator == ValidationOperator.REQUIRED:
        return field_value is None or not safe_stringify(field_value).strip()

    text = safe_stringify(field_value)

    if operator == ValidationOperator.EQUALS:
        return text == rule_value
    if operator == ValidationOperator.NOT_EQUALS:
        return text != rule_value
    if operator == ValidationOperator.CONTAINS:
        return rule_value in text
    if operator == ValidationOperator.NOT_CONTAINS:
        return rule_value not in text
    if operator == ValidationOperator.IN:
        return text in split_list_value(rule_value)
    if operator == ValidationOperator.NOT_IN:
        return text not in split_list_value(rule_value)
    if operator == ValidationOperator.REGEX:
        try:
            return re.search(rule_value, text) is not None
        except re.error:
            return False
    return False
