"""Validation Operators — tests for pure rule evaluation.

Tests cover:
    - Numeric operators fire strictly past the threshold (330000 vs 330001)
    - Non-numeric field or rule values never fire a numeric operator
    - REQUIRED fires only for absent or blank values
    - String operators compare the canonical text form
    - IN / NOT_IN split on commas and trim whitespace
    - REGEX uses search semantics; a malformed pattern never fires
    - Dotted path resolution through dicts and lists
"""

import math

import pytest

from remessa.core.domain_types import ValidationOperator as Op
from remessa.core.validation_operators import (
    evaluate_rule, get_field_value, pattern_error, safe_stringify,
    split_list_value, to_number,
)


# ─── Numeric operators ───────────────────────────────────────────

def test_greater_than_does_not_fire_at_threshold():
    assert evaluate_rule(330000, Op.GREATER_THAN, "330000") is False


def test_greater_than_fires_just_above_threshold():
    assert evaluate_rule(330001, Op.GREATER_THAN, "330000") is True


def test_greater_than_accepts_numeric_strings():
    assert evaluate_rule("350000.50", Op.GREATER_THAN, "330000") is True


@pytest.mark.parametrize("value", [None, "", "abc", True, {"x": 1}, [1]])
def test_numeric_operator_never_fires_for_non_numbers(value):
    assert evaluate_rule(value, Op.GREATER_THAN, "0") is False
    assert evaluate_rule(value, Op.LESS_THAN, "0") is False


def test_numeric_operator_never_fires_for_non_numeric_rule_value():
    assert evaluate_rule(10, Op.LESS_THAN, "dez") is False


def test_inclusive_bounds():
    assert evaluate_rule(365, Op.GREATER_THAN_OR_EQUALS, "365") is True
    assert evaluate_rule(365, Op.LESS_THAN_OR_EQUALS, "365") is True
    assert evaluate_rule(364, Op.GREATER_THAN_OR_EQUALS, "365") is False


def test_to_number_maps_garbage_to_nan():
    assert math.isnan(to_number("  "))
    assert math.isnan(to_number(False))
    assert to_number(" 12.5 ") == 12.5


# ─── REQUIRED ────────────────────────────────────────────────────

@pytest.mark.parametrize("value", [None, "", "   "])
def test_required_fires_for_absent_or_blank(value):
    assert evaluate_rule(value, Op.REQUIRED, "") is True


@pytest.mark.parametrize("value", [0, False, "x", [], {}])
def test_required_does_not_fire_for_present_values(value):
    assert evaluate_rule(value, Op.REQUIRED, "") is False


# ─── String operators ────────────────────────────────────────────

def test_equals_compares_canonical_text():
    assert evaluate_rule(100.0, Op.EQUALS, "100") is True
    assert evaluate_rule(True, Op.EQUALS, "true") is True
    assert evaluate_rule(None, Op.EQUALS, "") is True


def test_not_equals_is_negation():
    assert evaluate_rule("A", Op.NOT_EQUALS, "B") is True
    assert evaluate_rule("A", Op.NOT_EQUALS, "A") is False


def test_contains_and_not_contains():
    assert evaluate_rule("Construtora Alfa", Op.CONTAINS, "Alfa") is True
    assert evaluate_rule("Construtora Alfa", Op.NOT_CONTAINS, "Beta") is True


def test_in_trims_items():
    assert evaluate_rule("PR", Op.IN, "SP, PR ,MS") is True
    assert evaluate_rule("RJ", Op.IN, "SP, PR ,MS") is False
    assert evaluate_rule("RJ", Op.NOT_IN, "SP, PR ,MS") is True


def test_split_list_value():
    assert split_list_value(" a,b , c") == ["a", "b", "c"]


def test_safe_stringify_containers_are_compact_json():
    assert safe_stringify({"a": [1, 2]}) == '{"a":[1,2]}'
    assert safe_stringify(1.5) == "1.5"


# ─── REGEX ───────────────────────────────────────────────────────

def test_regex_uses_search_semantics():
    assert evaluate_rule("CT-2024-001", Op.REGEX, r"\d{4}") is True
    assert evaluate_rule("sem numero", Op.REGEX, r"^\d+$") is False


def test_malformed_regex_never_fires():
    assert evaluate_rule("anything", Op.REGEX, "[unclosed") is False


def test_pattern_error_reports_compile_failure():
    assert pattern_error("[unclosed") is not None
    assert pattern_error(r"^\d+$") is None


# ─── Field resolution ────────────────────────────────────────────

def test_get_field_value_resolves_nested_paths():
    payload = {"fornecedor": {"cnpj": "123"}, "itens": [{"valor": 10}, {"valor": 20}]}
    assert get_field_value(payload, "fornecedor.cnpj") == "123"
    assert get_field_value(payload, "itens.1.valor") == 20


def test_get_field_value_absent_is_none():
    payload = {"itens": [{"valor": 10}]}
    assert get_field_value(payload, "fornecedor.cnpj") is None
    assert get_field_value(payload, "itens.5.valor") is None
    assert get_field_value(payload, "itens.x") is None


def test_unknown_operator_raises():
    with pytest.raises(ValueError):
        evaluate_rule("x", "BETWEEN", "1")
