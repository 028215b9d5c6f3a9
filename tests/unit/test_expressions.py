"""
Unit Tests for the Sandboxed Expression Language

Formulas and trigger conditions must only ever compute arithmetic and
boolean logic over supplied values.
"""
import pytest

from medbrain.core.logic.expressions import (
    evaluate,
    evaluate_condition,
    evaluate_formula,
    identifiers,
    parse,
    placeholders,
)
from medbrain.utils import ExpressionError, ExpressionSyntaxError, UnboundVariableError


class TestLexicalHelpers:

    def test_placeholders_in_order_without_duplicates(self):
        assert placeholders("({glicemia} * {insulina}) / 405 + {glicemia}") == ["glicemia", "insulina"]

    def test_identifiers_skip_keywords(self):
        assert identifiers("vitamina_b12 < 500 OR homocisteina > 8") == ["vitamina_b12", "homocisteina"]

    @pytest.mark.parametrize("condition", ["ferritina < 1e2", "ferritina < 1E2", "ferritina > 2.5e-1"])
    def test_identifiers_skip_exponent_of_numeric_literals(self, condition):
        assert identifiers(condition) == ["ferritina"]


class TestSandbox:

    @pytest.mark.parametrize("expression", [
        "__import__('os').system('ls')",
        "x.__class__",
        "values[0]",
        "(lambda: 1)()",
        "[i for i in range(3)]",
        "'text'",
    ])
    def test_rejects_forbidden_constructs(self, expression):
        with pytest.raises(ExpressionSyntaxError):
            parse(expression)

    def test_rejects_unparseable_text(self):
        with pytest.raises(ExpressionSyntaxError):
            parse("1 +* 2")

    def test_unbound_name_detected_before_evaluation(self):
        with pytest.raises(UnboundVariableError) as exc_info:
            evaluate("1 / 0 + missing", {})
        assert exc_info.value.name == "missing"

    def test_chained_comparison(self):
        assert evaluate("1 < x <= 3", {"x": 3}) is True
        assert evaluate("1 < x <= 3", {"x": 4}) is False

    def test_division_by_zero(self):
        with pytest.raises(ExpressionError) as exc_info:
            evaluate("x / y", {"x": 1, "y": 0})
        assert exc_info.value.code == "DIVISION_BY_ZERO"


class TestFormulas:

    def test_homa_ir(self):
        assert evaluate_formula("({glicemia} * {insulina}) / 405", {"glicemia": 90, "insulina": 9}) == 2.0

    def test_formula_without_placeholders_is_invalid(self):
        with pytest.raises(ExpressionSyntaxError):
            evaluate_formula("100 / 4", {})

    def test_missing_value_names_the_slug(self):
        with pytest.raises(UnboundVariableError) as exc_info:
            evaluate_formula("{ldl} / {hdl}", {"ldl": 100})
        assert exc_info.value.name == "hdl"

    def test_boolean_result_is_rejected(self):
        with pytest.raises(ExpressionError):
            evaluate_formula("{ldl} > {hdl}", {"ldl": 100, "hdl": 50})


class TestConditions:

    def test_condition_is_case_insensitive(self):
        assert evaluate_condition("TSH > 2.5 AND Vitamina_D3 < 40", {"tsh": 3.1, "vitamina_d3": 28}) is True

    def test_or_short_circuits_on_value(self):
        values = {"vitamina_b12": 650, "homocisteina": 9.5}
        assert evaluate_condition("vitamina_b12 < 500 or homocisteina > 8", values) is True

    def test_literals(self):
        assert evaluate_condition("true and not false", {}) is True

    def test_missing_identifier_raises(self):
        with pytest.raises(UnboundVariableError):
            evaluate_condition("ferritina < 50", {})

    def test_scientific_notation_literal(self):
        assert evaluate_condition("ferritina < 1e2", {"ferritina": 50}) is True
        assert evaluate_condition("ferritina < 1e2", {"ferritina": 150}) is False
