"""Tests for formula parsing and restricted evaluation."""

import math

import pytest

from modelit._errors import EvaluationError, FormulaParseError
from modelit._formula import (
    TimeReference,
    base_name,
    evaluate_formula,
    parse_formula,
    parse_time_reference,
    validate_formula,
)


class TestParseFormula:
    """Tests for reference extraction."""

    def test_plain_names(self) -> None:
        parsed = parse_formula("REVENUE - COGS")
        assert parsed.names == ("REVENUE", "COGS")
        assert parsed.dependencies == ("COGS", "REVENUE")
        assert not parsed.is_time_dependent

    def test_time_references(self) -> None:
        parsed = parse_formula("CASH[t-1] + REVENUE[t] - EXPENSES[t]")
        assert parsed.names == ()
        assert parsed.time_references == (
            TimeReference("CASH", -1, "CASH[t-1]"),
            TimeReference("REVENUE", 0, "REVENUE[t]"),
            TimeReference("EXPENSES", 0, "EXPENSES[t]"),
        )
        assert parsed.dependencies == ("CASH[t-1]", "EXPENSES[t]", "REVENUE[t]")
        assert parsed.is_time_dependent

    def test_forward_offset(self) -> None:
        parsed = parse_formula("X[t+2] * 2")
        assert parsed.time_references == (TimeReference("X", 2, "X[t+2]"),)

    def test_whitespace_inside_brackets(self) -> None:
        parsed = parse_formula("X[ t - 3 ] + 1")
        assert parsed.time_references[0].variable == "X"
        assert parsed.time_references[0].offset == -3

    def test_mixed_plain_and_temporal(self) -> None:
        parsed = parse_formula("GROWTH * SALES[t-1]")
        assert parsed.names == ("GROWTH",)
        assert parsed.dependencies == ("GROWTH", "SALES[t-1]")

    def test_math_functions_and_constants_are_not_dependencies(self) -> None:
        parsed = parse_formula("max(A, 0) + sqrt(B) * PI + e")
        assert parsed.names == ("A", "B")

    def test_math_names_are_case_insensitive(self) -> None:
        parsed = parse_formula("MAX(A, B) + Sqrt(C)")
        assert parsed.names == ("A", "B", "C")

    def test_numbers_are_not_names(self) -> None:
        parsed = parse_formula("2.5e3 * RATE + 10")
        assert parsed.names == ("RATE",)

    def test_repeated_names_are_listed_once(self) -> None:
        parsed = parse_formula("A * A + A")
        assert parsed.names == ("A",)
        assert parsed.dependencies == ("A",)

    def test_constant_formula_has_no_dependencies(self) -> None:
        parsed = parse_formula("42")
        assert parsed.dependencies == ()

    @pytest.mark.parametrize(
        "formula",
        [
            "A +",
            "(A + B",
            "A.b",
            "A[0]",
            "A if B else C",
            "A < B",
            "lambda: 1",
            "unknown_fn(A)",
            "'text'",
            "",
            "   ",
        ],
    )
    def test_malformed_formulas_raise(self, formula: str) -> None:
        with pytest.raises(FormulaParseError):
            parse_formula(formula)

    def test_validate_formula(self) -> None:
        assert validate_formula("A + B") is None
        message = validate_formula("A +")
        assert message is not None
        assert "invalid syntax" in message

    def test_overly_nested_formula_raises_parse_error(self) -> None:
        with pytest.raises(FormulaParseError):
            parse_formula("-" * 100_000 + "1")


class TestTokenHelpers:
    def test_parse_time_reference(self) -> None:
        assert parse_time_reference("CASH[t-1]") == TimeReference("CASH", -1, "CASH[t-1]")
        assert parse_time_reference("CASH") is None

    def test_base_name(self) -> None:
        assert base_name("CASH[t-12]") == "CASH"
        assert base_name("X[t]") == "X"
        assert base_name("REVENUE") == "REVENUE"


class TestEvaluateFormula:
    """Tests for the restricted evaluator."""

    def test_arithmetic(self) -> None:
        assert evaluate_formula("A * 0.3", {"A": 100}) == pytest.approx(30.0)
        assert evaluate_formula("(A + B) / 2", {"A": 1, "B": 2}) == pytest.approx(1.5)
        assert evaluate_formula("-A + +B", {"A": 1, "B": 3}) == pytest.approx(2.0)

    def test_caret_is_power_with_power_precedence(self) -> None:
        assert evaluate_formula("2 ^ 3", {}) == 8.0
        assert evaluate_formula("2 * 3 ^ 2", {}) == 18.0
        assert evaluate_formula("2 ** 3", {}) == 8.0

    def test_time_offset_substitution(self) -> None:
        result = evaluate_formula(
            "CASH[t-1] + REVENUE[t] - EXPENSES[t]",
            {"CASH[t-1]": 1000, "REVENUE[t]": 100, "EXPENSES[t]": 50},
        )
        assert result == 1050.0

    def test_functions(self) -> None:
        assert evaluate_formula("max(A, B, 3)", {"A": 1, "B": 2}) == 3.0
        assert evaluate_formula("min(A, B)", {"A": 1, "B": 2}) == 1.0
        assert evaluate_formula("abs(A)", {"A": -4}) == 4.0
        assert evaluate_formula("sqrt(16)", {}) == 4.0
        assert evaluate_formula("log(e)", {}) == pytest.approx(1.0)
        assert evaluate_formula("atan2(1, 1)", {}) == pytest.approx(math.pi / 4)
        assert evaluate_formula("floor(2.7) + ceil(2.1)", {}) == 5.0

    def test_round_goes_half_away_from_zero(self) -> None:
        assert evaluate_formula("round(2.5)", {}) == 3.0
        assert evaluate_formula("round(-2.5)", {}) == -3.0
        assert evaluate_formula("round(1.234, 2)", {}) == pytest.approx(1.23)

    def test_constants(self) -> None:
        assert evaluate_formula("pi", {}) == pytest.approx(math.pi)
        assert evaluate_formula("PI * 2", {}) == pytest.approx(2 * math.pi)

    def test_substitution_shadows_constant(self) -> None:
        assert evaluate_formula("e + 1", {"e": 1.0}) == 2.0

    def test_result_is_float(self) -> None:
        assert isinstance(evaluate_formula("1 + 1", {}), float)

    def test_unresolved_token_raises_parse_error(self) -> None:
        with pytest.raises(FormulaParseError, match="unresolved token 'B'"):
            evaluate_formula("A + B", {"A": 1})

    def test_unresolved_time_token_raises_parse_error(self) -> None:
        with pytest.raises(FormulaParseError, match=r"CASH\[t-1\]"):
            evaluate_formula("CASH[t-1] + 1", {"CASH": 1})

    def test_division_by_zero(self) -> None:
        with pytest.raises(EvaluationError, match="division by zero"):
            evaluate_formula("A / B", {"A": 1, "B": 0})

    def test_math_domain_error(self) -> None:
        with pytest.raises(EvaluationError):
            evaluate_formula("sqrt(A)", {"A": -1})

    def test_overflow(self) -> None:
        with pytest.raises(EvaluationError):
            evaluate_formula("10 ^ 400", {})

    def test_complex_result_is_rejected(self) -> None:
        with pytest.raises(EvaluationError):
            evaluate_formula("A ^ 0.5", {"A": -4})

    def test_wrong_argument_count(self) -> None:
        with pytest.raises(EvaluationError):
            evaluate_formula("sqrt(1, 2)", {})

    def test_non_finite_input_is_rejected(self) -> None:
        with pytest.raises(EvaluationError):
            evaluate_formula("A + 1", {"A": float("nan")})

    def test_long_formula_beyond_recursion_limit(self) -> None:
        formula = " + ".join(["X"] * 1500)
        with pytest.raises(EvaluationError, match="too deeply nested"):
            evaluate_formula(formula, {"X": 1.0})
