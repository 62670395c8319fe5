"""Formula parsing and restricted evaluation.

A formula is an arithmetic expression over variable names, e.g.
``REVENUE * 0.3`` or ``CASH[t-1] + REVENUE[t] - EXPENSES[t]``.

Two kinds of references are recognised:

- plain names (``REVENUE``), meaning the value at the current time step;
- time-offset tokens (``CASH[t-1]``, ``X[t]``, ``X[t+2]``), meaning the value
  at a step relative to the current one.

Evaluation goes through Python's ``ast`` with a whitelist of node types, so a
formula can only do arithmetic over the numbers it is handed.
"""

from __future__ import annotations

import ast
import math
import operator
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from ._errors import EvaluationError, FormulaParseError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

IDENTIFIER_PATTERN = r"[A-Za-z_][A-Za-z0-9_]*"

TIME_REFERENCE_RE = re.compile(rf"\b({IDENTIFIER_PATTERN})\[\s*[tT]\s*(?:([+-])\s*(\d+))?\s*\]")
_PLAIN_NAME_RE = re.compile(rf"\b({IDENTIFIER_PATTERN})\b(?!\s*\[)")

_PLACEHOLDER = "__modelit_ref_{}__"


def _round(x: float, ndigits: float = 0) -> float:
    # Half away from zero, unlike the builtin round().
    factor = 10.0 ** int(ndigits)
    return math.copysign(math.floor(abs(x) * factor + 0.5) / factor, x)


MATH_FUNCTIONS: dict[str, Callable[..., float]] = {
    "abs": abs,
    "acos": math.acos,
    "acosh": math.acosh,
    "asin": math.asin,
    "asinh": math.asinh,
    "atan": math.atan,
    "atan2": math.atan2,
    "atanh": math.atanh,
    "ceil": math.ceil,
    "cos": math.cos,
    "cosh": math.cosh,
    "exp": math.exp,
    "floor": math.floor,
    "log": math.log,
    "log10": math.log10,
    "max": max,
    "min": min,
    "pow": math.pow,
    "round": _round,
    "sin": math.sin,
    "sinh": math.sinh,
    "sqrt": math.sqrt,
    "tan": math.tan,
    "tanh": math.tanh,
}

MATH_CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "e": math.e,
}

_BINARY_OPERATORS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Expression,
    ast.BinOp,
    ast.UnaryOp,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Call,
    *_BINARY_OPERATORS,
    *_UNARY_OPERATORS,
)


def is_math_name(name: str) -> bool:
    """Check whether an identifier is a recognised math function or constant."""
    lowered = name.lower()
    return lowered in MATH_FUNCTIONS or lowered in MATH_CONSTANTS


@dataclass(frozen=True, slots=True)
class TimeReference:
    """A time-offset token such as ``CASH[t-1]``.

    Attributes:
        variable: Base variable name (``CASH``).
        offset: Relative step (``-1``); 0 for ``[t]``.
        text: The token exactly as written in the formula.

    """

    variable: str
    offset: int
    text: str


@dataclass(frozen=True, slots=True)
class ParsedFormula:
    """Result of parsing a formula.

    Attributes:
        formula: The stripped formula text.
        names: Plain variable names referenced at the current step.
        time_references: Time-offset tokens in order of appearance.
        dependencies: Sorted union of plain names and time-offset token texts.

    """

    formula: str
    names: tuple[str, ...]
    time_references: tuple[TimeReference, ...]
    dependencies: tuple[str, ...]

    @property
    def is_time_dependent(self) -> bool:
        """Whether the formula contains at least one time-offset token."""
        return len(self.time_references) > 0


def _time_reference_from_match(match: re.Match[str]) -> TimeReference:
    variable, sign, digits = match.groups()
    offset = 0
    if digits is not None:
        offset = int(digits) if sign == "+" else -int(digits)
    return TimeReference(variable=variable, offset=offset, text=match.group(0))


def parse_time_reference(token: str) -> TimeReference | None:
    """Parse a single dependency token as a time-offset reference.

    Returns:
        The TimeReference, or None if the token is a plain name.

    """
    match = TIME_REFERENCE_RE.fullmatch(token.strip())
    if match is None:
        return None
    return _time_reference_from_match(match)


def base_name(token: str) -> str:
    """Collapse a dependency token to the variable it refers to.

    >>> base_name("CASH[t-1]")
    'CASH'
    >>> base_name("REVENUE")
    'REVENUE'

    """
    reference = parse_time_reference(token)
    return reference.variable if reference is not None else token


def _check_syntax(tree: ast.Expression, formula: str) -> None:
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            msg = f"unsupported syntax '{type(node).__name__}'"
            raise FormulaParseError(formula, msg)
        match node:
            case ast.Constant(value=value):
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    msg = f"unsupported literal {value!r}"
                    raise FormulaParseError(formula, msg)
            case ast.Call(func=ast.Name(id=name), keywords=[]):
                if name.lower() not in MATH_FUNCTIONS:
                    msg = f"unknown function '{name}'"
                    raise FormulaParseError(formula, msg)
            case ast.Call():
                msg = "only plain calls to math functions are allowed"
                raise FormulaParseError(formula, msg)


@lru_cache(maxsize=1024)
def _compile(formula: str) -> tuple[ast.Expression, dict[str, str]]:
    """Turn formula text into a checked AST.

    Time-offset tokens are swapped for placeholder identifiers before parsing
    and ``^`` becomes ``**`` so that power binds tighter than ``*`` and ``+``.
    """
    placeholders: dict[str, str] = {}

    def _replace(match: re.Match[str]) -> str:
        key = _PLACEHOLDER.format(len(placeholders))
        placeholders[key] = match.group(0)
        return key

    text = TIME_REFERENCE_RE.sub(_replace, formula.strip()).replace("^", "**")
    if not text:
        raise FormulaParseError(formula, "empty formula")
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as e:
        raise FormulaParseError(formula, f"invalid syntax ({e.msg})") from e
    except (RecursionError, MemoryError) as e:
        # The parser reports overly nested input as MemoryError ("too complex") or RecursionError.
        raise FormulaParseError(formula, "formula is too deeply nested") from e
    _check_syntax(tree, formula)
    return tree, placeholders


@lru_cache(maxsize=1024)
def parse_formula(formula: str) -> ParsedFormula:
    """Extract the references of a formula and check its syntax.

    Args:
        formula: The formula text.

    Returns:
        The ParsedFormula.

    Raises:
        FormulaParseError: If the formula is malformed.

    """
    cleaned = formula.strip()
    _compile(cleaned)

    time_references = tuple(_time_reference_from_match(m) for m in TIME_REFERENCE_RE.finditer(cleaned))
    without_time_refs = TIME_REFERENCE_RE.sub(" ", cleaned)
    names = tuple(
        dict.fromkeys(
            name for name in _PLAIN_NAME_RE.findall(without_time_refs) if not is_math_name(name)
        ),
    )
    dependencies = tuple(sorted({*names, *(ref.text for ref in time_references)}))

    return ParsedFormula(
        formula=cleaned,
        names=names,
        time_references=time_references,
        dependencies=dependencies,
    )


def validate_formula(formula: str) -> str | None:
    """Check a formula without raising.

    Returns:
        None if the formula parses, otherwise the error message.

    """
    try:
        parse_formula(formula)
    except FormulaParseError as e:
        return str(e)
    return None


def _eval_node(node: ast.AST, formula: str, env: Mapping[str, float], placeholders: dict[str, str]) -> Any:
    match node:
        case ast.Constant(value=value):
            return float(value)
        case ast.Name(id=name):
            token = placeholders.get(name, name)
            if token in env:
                value = env[token]
                if not math.isfinite(value):
                    msg = f"'{token}' has invalid value {value!r}"
                    raise EvaluationError(formula, msg)
                return float(value)
            if name not in placeholders and name.lower() in MATH_CONSTANTS:
                return MATH_CONSTANTS[name.lower()]
            msg = f"unresolved token '{token}'"
            raise FormulaParseError(formula, msg)
        case ast.BinOp(left=left, op=op, right=right):
            return _BINARY_OPERATORS[type(op)](
                _eval_node(left, formula, env, placeholders),
                _eval_node(right, formula, env, placeholders),
            )
        case ast.UnaryOp(op=op, operand=operand):
            return _UNARY_OPERATORS[type(op)](_eval_node(operand, formula, env, placeholders))
        case ast.Call(func=ast.Name(id=name), args=args):
            func = MATH_FUNCTIONS[name.lower()]
            return func(*(_eval_node(arg, formula, env, placeholders) for arg in args))
        case _:
            msg = f"unsupported syntax '{type(node).__name__}'"
            raise FormulaParseError(formula, msg)


def evaluate_formula(formula: str, substitutions: Mapping[str, float]) -> float:
    """Compute a formula from a flat token substitution map.

    Args:
        formula: The formula text.
        substitutions: Maps each token as written (``REVENUE``, ``CASH[t-1]``)
            to its numeric value.

    Returns:
        The result as a float.

    Raises:
        FormulaParseError: If the formula is malformed or a token has no substitution.
        EvaluationError: If the arithmetic fails or yields a non-finite number.

    Example:
        >>> evaluate_formula("CASH[t-1] + 2 ^ 3", {"CASH[t-1]": 1.0})
        9.0

    """
    tree, placeholders = _compile(formula.strip())
    try:
        result = _eval_node(tree.body, formula, substitutions, placeholders)
    except ZeroDivisionError as e:
        raise EvaluationError(formula, "division by zero") from e
    except RecursionError as e:
        raise EvaluationError(formula, "formula is too deeply nested to evaluate") from e
    except (ArithmeticError, ValueError, TypeError) as e:
        raise EvaluationError(formula, str(e)) from e

    if isinstance(result, complex) or not math.isfinite(result):
        msg = f"non-finite result {result!r}"
        raise EvaluationError(formula, msg)
    return float(result)
