"""Formula evaluator - parse chart formulas once, evaluate them as a tree walk.

A formula is a small closed expression over named statistics variables::

    stats.remoteImages
    [stats.female] + [stats.male]
    percentage(stats.approvedImages, stats.remoteImages)
    (stats.jersey * param.jerseyPrice) / 1000

Grammar:
    - numeric literals
    - variable references: ``stats.<name>``, ``[stats.<name>]``, ``[<name>]``
      or a bare ``<name>`` (registry formulas use the bare form)
    - parameter references: ``param.<key>`` or ``[PARAM:<key>]``, supplied by
      the chart element
    - unary ``+`` / ``-``, binary ``+ - * /``, parentheses
    - calls: ``percentage(n, d)``, ``max(...)``, ``min(...)``, ``round(x)``,
      ``abs(x)`` (names are case-insensitive)

Python's own parser does the tokenising; the resulting tree is checked node by
node and converted into the tiny immutable AST below, so anything outside the
grammar is rejected with a ``ValidationError`` naming the offending token.

Evaluation never raises for data problems: division by zero gives ``0``, and a
variable with no value makes the whole formula ``UNAVAILABLE``.

Usage::

    from fanstats.processor.formula import evaluate, parse

    expr = parse("percentage(stats.female, stats.female + stats.male)")
    evaluate(expr, {"female": 180, "male": 220})   # -> 45.0
    evaluate(expr, {"female": 180})                # -> UNAVAILABLE
"""

from __future__ import annotations

import ast
import functools
import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from fanstats.errors import ValidationError
from fanstats.schema.models import UNAVAILABLE, Unavailable

if TYPE_CHECKING:
    from fanstats.processor.registry import VariableRegistry

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")

_BRACKET_TOKEN = re.compile(r"\[([A-Za-z0-9_:.]*)\]")

STATS_NAMESPACE = "stats"
PARAM_NAMESPACE = "param"

# Function name -> (min args, max args or None)
FUNCTIONS: dict[str, tuple[int, int | None]] = {
    "percentage": (2, 2),
    "max": (1, None),
    "min": (1, None),
    "round": (1, 1),
    "abs": (1, 1),
}

_BINARY_OPS = {ast.Add: "+", ast.Sub: "-", ast.Mult: "*", ast.Div: "/"}
_UNARY_OPS = {ast.UAdd: "+", ast.USub: "-"}


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    value: float


@dataclass(frozen=True)
class VariableRef:
    name: str


@dataclass(frozen=True)
class ParamRef:
    key: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Expr"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Expr"
    right: "Expr"


@dataclass(frozen=True)
class Call:
    func: str
    args: tuple["Expr", ...]


Expr = Union[Literal, VariableRef, ParamRef, UnaryOp, BinaryOp, Call]

Result = Union[float, Unavailable]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _expand_brackets(formula: str) -> str:
    """Rewrite bracket tokens into the dotted form Python can parse."""

    def _replace(match: re.Match) -> str:
        token = match.group(1)
        if token.upper().startswith("PARAM:"):
            return f"{PARAM_NAMESPACE}.{token[6:]}"
        if ":" in token or not token:
            raise ValidationError(f"Unsupported token [{token}]", token=f"[{token}]")
        return token

    return _BRACKET_TOKEN.sub(_replace, formula)


def _segment(source: str, node: ast.AST) -> str:
    return ast.get_source_segment(source, node) or type(node).__name__


def _check_name(name: str, source: str) -> str:
    if not NAME_PATTERN.match(name):
        raise ValidationError(f"Invalid variable name {name!r} in {source!r}", token=name)
    return name


def _convert(node: ast.AST, source: str) -> Expr:
    """Convert a Python AST node into a formula node, rejecting the rest."""
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return Literal(float(node.value))
        raise ValidationError(
            f"Unsupported literal {_segment(source, node)} in {source!r}",
            token=_segment(source, node),
        )

    if isinstance(node, ast.Name):
        if node.id in (STATS_NAMESPACE, PARAM_NAMESPACE):
            raise ValidationError(f"Bare namespace {node.id!r} in {source!r}", token=node.id)
        return VariableRef(_check_name(node.id, source))

    if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
        if node.value.id == STATS_NAMESPACE:
            return VariableRef(_check_name(node.attr, source))
        if node.value.id == PARAM_NAMESPACE:
            return ParamRef(_check_name(node.attr, source))

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return UnaryOp(_UNARY_OPS[type(node.op)], _convert(node.operand, source))

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        return BinaryOp(
            _BINARY_OPS[type(node.op)],
            _convert(node.left, source),
            _convert(node.right, source),
        )

    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
        func = node.func.id.lower()
        if func not in FUNCTIONS:
            raise ValidationError(f"Unknown function {node.func.id!r} in {source!r}",
                                  token=node.func.id)
        if node.keywords:
            raise ValidationError(f"Keyword arguments are not supported in {source!r}",
                                  token=_segment(source, node))
        lo, hi = FUNCTIONS[func]
        n = len(node.args)
        if n < lo or (hi is not None and n > hi):
            raise ValidationError(
                f"{func}() takes {lo if lo == hi else f'at least {lo}'} argument(s), got {n}",
                token=node.func.id,
            )
        return Call(func, tuple(_convert(a, source) for a in node.args))

    token = _segment(source, node)
    raise ValidationError(f"Unsupported expression {token!r} in {source!r}", token=token)


@functools.lru_cache(maxsize=2048)
def parse(formula: str) -> Expr:
    """Parse a formula string into an expression tree.

    Raises:
        ValidationError: If the formula is empty or falls outside the grammar.
    """
    if not isinstance(formula, str) or not formula.strip():
        raise ValidationError("Empty formula", token="")
    source = _expand_brackets(formula.strip())
    try:
        tree = ast.parse(source, mode="eval")
        return _convert(tree.body, source)
    except SyntaxError as exc:
        token = source[exc.offset - 1:] if exc.offset else source
        raise ValidationError(f"Syntax error in formula {formula!r}",
                              token=token.strip() or source) from exc
    except (RecursionError, MemoryError) as exc:
        raise ValidationError(f"Formula too deeply nested ({len(source)} chars)",
                              token=source[:40]) from exc


def _walk(expr: Expr):
    yield expr
    if isinstance(expr, UnaryOp):
        yield from _walk(expr.operand)
    elif isinstance(expr, BinaryOp):
        yield from _walk(expr.left)
        yield from _walk(expr.right)
    elif isinstance(expr, Call):
        for arg in expr.args:
            yield from _walk(arg)


def referenced_variables(formula: str | Expr) -> tuple[str, ...]:
    """Variable names used by a formula, in first-use order."""
    expr = parse(formula) if isinstance(formula, str) else formula
    seen: dict[str, None] = {}
    for node in _walk(expr):
        if isinstance(node, VariableRef):
            seen.setdefault(node.name, None)
    return tuple(seen)


def referenced_parameters(formula: str | Expr) -> tuple[str, ...]:
    expr = parse(formula) if isinstance(formula, str) else formula
    seen: dict[str, None] = {}
    for node in _walk(expr):
        if isinstance(node, ParamRef):
            seen.setdefault(node.key, None)
    return tuple(seen)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _as_number(value: Any) -> Result:
    """Coerce a stats value to float.  Text, None and NaN are unavailable."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return UNAVAILABLE
    if math.isnan(value) or math.isinf(value):
        return UNAVAILABLE
    return float(value)


def _safe_divide(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


class _Evaluator:
    """Tree walk over one (stats, parameters) pair."""

    def __init__(self, stats: Mapping[str, Any], registry: "VariableRegistry | None",
                 parameters: Mapping[str, float] | None):
        self.stats = stats
        self.registry = registry
        self.parameters = parameters or {}
        self._resolving: set[str] = set()

    def eval(self, expr: Expr) -> Result:
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, VariableRef):
            return self._variable(expr.name)
        if isinstance(expr, ParamRef):
            return _as_number(self.parameters.get(expr.key))
        if isinstance(expr, UnaryOp):
            operand = self.eval(expr.operand)
            if operand is UNAVAILABLE:
                return UNAVAILABLE
            return -operand if expr.op == "-" else operand
        if isinstance(expr, BinaryOp):
            return self._binary(expr)
        if isinstance(expr, Call):
            return self._call(expr)
        raise TypeError(f"Unknown formula node: {expr!r}")

    def _variable(self, name: str) -> Result:
        if name in self.stats:
            return _as_number(self.stats[name])
        if self.registry is None:
            return UNAVAILABLE
        variable = self.registry.get(name)
        if variable is None or not variable.derived or not variable.formula:
            return UNAVAILABLE
        if name in self._resolving:
            logger.warning("Cycle while resolving derived variable %r", name)
            return UNAVAILABLE
        self._resolving.add(name)
        try:
            return self.eval(parse(variable.formula))
        except ValidationError:
            logger.warning("Derived variable %r has an invalid formula", name)
            return UNAVAILABLE
        finally:
            self._resolving.discard(name)

    def _binary(self, expr: BinaryOp) -> Result:
        left = self.eval(expr.left)
        right = self.eval(expr.right)
        if left is UNAVAILABLE or right is UNAVAILABLE:
            return UNAVAILABLE
        if expr.op == "+":
            return left + right
        if expr.op == "-":
            return left - right
        if expr.op == "*":
            return left * right
        return _safe_divide(left, right)

    def _call(self, expr: Call) -> Result:
        args = [self.eval(a) for a in expr.args]
        if expr.func in ("max", "min"):
            # Unavailable arguments are dropped; N/A only when none are left
            valid = [a for a in args if a is not UNAVAILABLE]
            if not valid:
                return UNAVAILABLE
            return max(valid) if expr.func == "max" else min(valid)
        if any(a is UNAVAILABLE for a in args):
            return UNAVAILABLE
        if expr.func == "percentage":
            return _safe_divide(args[0], args[1]) * 100
        if expr.func == "round":
            return _round_half_up(args[0])
        return abs(args[0])


def evaluate(
    formula: str | Expr,
    stats: Mapping[str, Any],
    *,
    registry: "VariableRegistry | None" = None,
    parameters: Mapping[str, float] | None = None,
) -> Result:
    """Evaluate a formula against a statistics record.

    Args:
        formula: Formula string or a tree returned by :func:`parse`.
        stats: Flat mapping of variable name to value.  Absence means unknown.
        registry: Optional registry used to compute derived variables that
            are missing from ``stats``.
        parameters: Values for ``param.<key>`` references.

    Returns:
        A float, or ``UNAVAILABLE`` when a referenced variable or parameter
        has no numeric value.  Malformed formula strings also give
        ``UNAVAILABLE`` (with a logged warning); use :func:`parse` to fail
        fast instead.
    """
    if isinstance(formula, str):
        try:
            expr = parse(formula)
        except ValidationError as exc:
            logger.warning("Cannot evaluate formula %r: %s", formula, exc)
            return UNAVAILABLE
    else:
        expr = formula

    try:
        result = _Evaluator(stats, registry, parameters).eval(expr)
    except RecursionError:
        logger.warning("Formula %r too deeply nested to evaluate", formula)
        return UNAVAILABLE
    if result is not UNAVAILABLE and (math.isnan(result) or math.isinf(result)):
        return UNAVAILABLE
    return result


def resolve_text(formula: str, stats: Mapping[str, Any]) -> str | Unavailable:
    """Resolve a single-reference formula to its raw value as a string.

    Used for text, table and image elements, whose values are passed through
    unmodified.  Numbers are rendered without a trailing ``.0``.
    """
    try:
        expr = parse(formula)
    except ValidationError as exc:
        logger.warning("Cannot resolve text formula %r: %s", formula, exc)
        return UNAVAILABLE
    if not isinstance(expr, VariableRef):
        value = evaluate(expr, stats)
    else:
        value = stats.get(expr.name)
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return UNAVAILABLE
    if value is UNAVAILABLE:
        return UNAVAILABLE
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FormulaCheck:
    """Outcome of :func:`validate_formula`."""
    is_valid: bool
    error: str | None = None
    token: str | None = None
    variables: tuple[str, ...] = ()
    unknown: tuple[str, ...] = ()


def validate_formula(formula: str, registry: "VariableRegistry | None" = None) -> FormulaCheck:
    """Check syntax and, given a registry, that every variable is registered."""
    try:
        expr = parse(formula)
    except ValidationError as exc:
        return FormulaCheck(is_valid=False, error=str(exc), token=exc.token)

    variables = referenced_variables(expr)
    unknown: tuple[str, ...] = ()
    if registry is not None:
        unknown = tuple(v for v in variables if registry.get(v) is None)
    if unknown:
        return FormulaCheck(
            is_valid=False,
            error=f"Unknown variable(s): {', '.join(unknown)}",
            token=unknown[0],
            variables=variables,
            unknown=unknown,
        )
    return FormulaCheck(is_valid=True, variables=variables)
