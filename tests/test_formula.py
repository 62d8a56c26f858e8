"""Tests for the formula parser and evaluator."""

import math

import pytest

from fanstats.errors import ValidationError
from fanstats.processor.formula import (
    BinaryOp,
    Call,
    Literal,
    ParamRef,
    VariableRef,
    evaluate,
    parse,
    referenced_parameters,
    referenced_variables,
    resolve_text,
    validate_formula,
)
from fanstats.processor.registry import build_default_registry
from fanstats.schema.models import UNAVAILABLE, Variable, VariableType


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def registry():
    return build_default_registry()


# ---------------------------------------------------------------------------
# parse
# ---------------------------------------------------------------------------

class TestParse:
    def test_stats_reference(self):
        assert parse("stats.remoteImages") == VariableRef("remoteImages")

    def test_bracket_reference(self):
        assert parse("[stats.female]") == VariableRef("female")

    def test_bare_bracket_reference(self):
        assert parse("[female]") == VariableRef("female")

    def test_bare_name(self):
        assert parse("indoor") == VariableRef("indoor")

    def test_literal(self):
        assert parse("42") == Literal(42.0)

    def test_param_token(self):
        assert parse("[PARAM:jerseyPrice]") == ParamRef("jerseyPrice")

    def test_param_namespace(self):
        assert parse("param.rate") == ParamRef("rate")

    def test_binary_precedence(self):
        expr = parse("stats.a + stats.b * 2")
        assert expr == BinaryOp("+", VariableRef("a"),
                                BinaryOp("*", VariableRef("b"), Literal(2.0)))

    def test_percentage_call(self):
        expr = parse("percentage(stats.approvedImages, stats.remoteImages)")
        assert expr == Call("percentage", (VariableRef("approvedImages"),
                                           VariableRef("remoteImages")))

    def test_function_names_case_insensitive(self):
        assert parse("MAX(stats.a, stats.b)") == Call("max", (VariableRef("a"), VariableRef("b")))

    def test_whitespace_stripped(self):
        assert parse("  stats.a  ") == VariableRef("a")

    def test_empty_formula(self):
        with pytest.raises(ValidationError):
            parse("   ")

    def test_unknown_function(self):
        with pytest.raises(ValidationError) as exc:
            parse("sqrt(stats.a)")
        assert exc.value.token == "sqrt"

    def test_wrong_arity(self):
        with pytest.raises(ValidationError):
            parse("percentage(stats.a)")

    def test_power_rejected(self):
        with pytest.raises(ValidationError):
            parse("stats.a ** 2")

    def test_string_literal_rejected(self):
        with pytest.raises(ValidationError):
            parse("'hello'")

    def test_attribute_chain_rejected(self):
        with pytest.raises(ValidationError):
            parse("stats.a.b")

    def test_unsupported_bracket_token(self):
        with pytest.raises(ValidationError) as exc:
            parse("[MANUAL:key]")
        assert exc.value.token == "[MANUAL:key]"

    def test_syntax_error(self):
        with pytest.raises(ValidationError):
            parse("stats.a +")

    def test_bare_namespace_rejected(self):
        with pytest.raises(ValidationError):
            parse("stats")


class TestReferences:
    def test_variables_in_first_use_order(self):
        assert referenced_variables("stats.b + stats.a + stats.b") == ("b", "a")

    def test_parameters(self):
        assert referenced_parameters("stats.jersey * [PARAM:price]") == ("price",)


# ---------------------------------------------------------------------------
# evaluate
# ---------------------------------------------------------------------------

class TestEvaluate:
    def test_single_variable(self):
        assert evaluate("stats.remoteImages", {"remoteImages": 120}) == 120

    def test_missing_variable_is_unavailable(self):
        assert evaluate("stats.remoteImages", {}) is UNAVAILABLE

    def test_unavailable_propagates(self):
        assert evaluate("stats.a + stats.b", {"a": 1}) is UNAVAILABLE

    def test_zero_is_not_unavailable(self):
        assert evaluate("stats.a", {"a": 0}) == 0

    def test_arithmetic(self):
        assert evaluate("(stats.a + stats.b) * 2 - 1", {"a": 3, "b": 4}) == 13

    def test_division_by_zero_is_zero(self):
        assert evaluate("stats.a / stats.b", {"a": 10, "b": 0}) == 0

    def test_percentage(self):
        stats = {"female": 180, "male": 220}
        assert evaluate("percentage(stats.female, stats.female + stats.male)", stats) == 45.0

    @pytest.mark.parametrize("n", [0, 1, 250, -3])
    def test_percentage_of_zero_is_zero(self, n):
        result = evaluate("percentage(stats.approvedImages, stats.remoteImages)",
                          {"approvedImages": n, "remoteImages": 0})
        assert result == 0
        assert not math.isnan(result)

    def test_max_min(self):
        stats = {"a": 3, "b": 9}
        assert evaluate("max(stats.a, stats.b)", stats) == 9
        assert evaluate("min(stats.a, stats.b)", stats) == 3

    def test_max_min_skip_unavailable(self):
        assert evaluate("max(stats.a, stats.missing)", {"a": 3}) == 3
        assert evaluate("min(stats.missing, stats.a, 7)", {"a": 3}) == 3
        assert evaluate("max(stats.x, stats.y)", {}) is UNAVAILABLE

    def test_percentage_still_needs_every_argument(self):
        assert evaluate("percentage(stats.a, stats.missing)", {"a": 3}) is UNAVAILABLE

    def test_long_formula_rejected(self):
        formula = " + ".join(["stats.a"] * 5000)
        with pytest.raises(ValidationError):
            parse(formula)
        assert evaluate(formula, {"a": 1}) is UNAVAILABLE

    def test_long_formula_within_limits(self):
        assert evaluate(" + ".join(["stats.a"] * 100), {"a": 1}) == 100

    def test_round_half_up(self):
        assert evaluate("round(stats.a)", {"a": 2.5}) == 3

    def test_abs(self):
        assert evaluate("abs(stats.a)", {"a": -4}) == 4

    def test_unary_minus(self):
        assert evaluate("-stats.a", {"a": 4}) == -4

    def test_text_value_is_unavailable(self):
        assert evaluate("stats.country", {"country": "Hungary"}) is UNAVAILABLE

    def test_nan_value_is_unavailable(self):
        assert evaluate("stats.a", {"a": float("nan")}) is UNAVAILABLE

    def test_parameters(self):
        assert evaluate("stats.jersey * [PARAM:price]", {"jersey": 3},
                        parameters={"price": 10}) == 30

    def test_missing_parameter_is_unavailable(self):
        assert evaluate("stats.jersey * param.price", {"jersey": 3}) is UNAVAILABLE

    def test_malformed_string_is_unavailable(self):
        assert evaluate("stats.a +", {"a": 1}) is UNAVAILABLE

    def test_accepts_parsed_tree(self):
        expr = parse("stats.a + 1")
        assert evaluate(expr, {"a": 1}) == 2

    def test_deterministic(self):
        stats = {"a": 7, "b": 3}
        results = {evaluate("percentage(stats.a, stats.a + stats.b)", stats) for _ in range(5)}
        assert results == {70.0}


class TestDerivedVariables:
    def test_derived_from_registry(self, registry):
        stats = {"remoteImages": 10, "hostessImages": 5, "selfies": 1}
        assert evaluate("stats.allImages", stats, registry=registry) == 16

    def test_nested_derived(self, registry):
        stats = {"indoor": 10, "outdoor": 20, "stadium": 5}
        assert evaluate("stats.totalFans", stats, registry=registry) == 35

    def test_stored_value_wins(self, registry):
        assert evaluate("stats.allImages", {"allImages": 99}, registry=registry) == 99

    def test_derived_without_registry_is_unavailable(self):
        assert evaluate("stats.allImages", {"remoteImages": 1}) is UNAVAILABLE

    def test_derived_missing_input(self, registry):
        assert evaluate("stats.allImages", {"remoteImages": 1}, registry=registry) is UNAVAILABLE

    def test_cycle_is_unavailable(self):
        registry = build_default_registry([
            Variable(name="ping", label="Ping", type=VariableType.COUNT, category="X",
                     derived=True, formula="pong + 1", is_custom=True),
            Variable(name="pong", label="Pong", type=VariableType.COUNT, category="X",
                     derived=True, formula="ping + 1", is_custom=True),
        ])
        assert evaluate("stats.ping", {}, registry=registry) is UNAVAILABLE
        assert evaluate("stats.pong + 1", {}, registry=registry) is UNAVAILABLE

    def test_cycle_broken_by_stored_value(self):
        registry = build_default_registry([
            Variable(name="ping", label="Ping", type=VariableType.COUNT, category="X",
                     derived=True, formula="pong + 1", is_custom=True),
            Variable(name="pong", label="Pong", type=VariableType.COUNT, category="X",
                     derived=True, formula="ping + 1", is_custom=True),
        ])
        assert evaluate("stats.ping", {"pong": 4}, registry=registry) == 5


# ---------------------------------------------------------------------------
# resolve_text / validate_formula
# ---------------------------------------------------------------------------

class TestResolveText:
    def test_string_passthrough(self):
        assert resolve_text("stats.reportText1", {"reportText1": "Great game"}) == "Great game"

    def test_missing(self):
        assert resolve_text("stats.reportText1", {}) is UNAVAILABLE

    def test_integer_float(self):
        assert resolve_text("[stats.a]", {"a": 12.0}) == "12"

    def test_malformed(self):
        assert resolve_text("stats.", {}) is UNAVAILABLE


class TestValidateFormula:
    def test_valid(self, registry):
        check = validate_formula("stats.female + stats.male", registry)
        assert check.is_valid
        assert check.variables == ("female", "male")

    def test_unknown_variable(self, registry):
        check = validate_formula("stats.female + stats.aliens", registry)
        assert not check.is_valid
        assert check.unknown == ("aliens",)
        assert check.token == "aliens"

    def test_syntax_error(self):
        check = validate_formula("stats.a *")
        assert not check.is_valid
        assert check.error
