"""
Safe arithmetic expression evaluator.

Used by calculation questions and ``{{= ... }}`` template interpolation.
Expressions are parsed with :mod:`ast` and interpreted over a whitelist:

- numeric literals
- names and dotted names (``capital``, ``financial.burn_rate``) resolved
  from a mapping of numeric variables
- ``+ - * / // % **`` and unary ``+ -``
- calls to ``min``, ``max``, ``abs``, ``round``

Anything else (attribute access on values, subscripts, lambdas, comparisons,
string literals, arbitrary calls) is rejected with ExpressionError. Nothing is
ever passed to ``eval``.

Example:
    >>> evaluate("financial.capital / financial.burn_rate", {
    ...     "financial.capital": 50000, "financial.burn_rate": 4000})
    12.5
"""

from __future__ import annotations

import ast
import math
import operator
from collections.abc import Callable, Mapping
from functools import lru_cache

from warroom.core.exceptions import ValidationError

MAX_EXPRESSION_LENGTH = 500
MAX_EXPONENT = 64


class ExpressionError(ValidationError):
    """Raised when an expression is malformed, disallowed, or evaluates to a non-finite value."""
    pass


_BINARY_OPS: dict[type[ast.operator], Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS: dict[str, Callable[..., float]] = {
    "min": min,
    "max": max,
    "abs": abs,
    "round": round,
}


@lru_cache(maxsize=256)
def parse(expression: str) -> ast.Expression:
    """
    Parse and whitelist-check an expression.

    Args:
        expression: Source text

    Returns:
        Parsed AST (cached per source string)

    Raises:
        ExpressionError: On syntax errors or disallowed constructs
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ExpressionError("Empty expression")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError(f"Expression longer than {MAX_EXPRESSION_LENGTH} characters")

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Invalid expression '{expression}': {e.msg}") from e

    for node in ast.walk(tree):
        _check_node(node)
    return tree


def _check_node(node: ast.AST) -> None:
    """Reject any node outside the whitelist."""
    if isinstance(node, (ast.Expression, ast.Load)):
        return
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ExpressionError(f"Unsupported literal: {node.value!r}")
        return
    if isinstance(node, ast.BinOp):
        if type(node.op) not in _BINARY_OPS:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        return
    if isinstance(node, ast.UnaryOp):
        if type(node.op) not in _UNARY_OPS:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        return
    if isinstance(node, ast.Name):
        if node.id.startswith("_"):
            raise ExpressionError(f"Unsupported name: {node.id}")
        return
    if isinstance(node, ast.Attribute):
        # Only dotted variable names: a.b.c
        if _dotted_name(node) is None or node.attr.startswith("_"):
            raise ExpressionError("Attribute access is only allowed in dotted variable names")
        return
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            raise ExpressionError("Only min, max, abs and round may be called")
        if node.keywords:
            raise ExpressionError("Keyword arguments are not supported")
        return
    if isinstance(node, tuple(_BINARY_OPS) + tuple(_UNARY_OPS)):
        return
    raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")


def _dotted_name(node: ast.AST) -> str | None:
    """Flatten ``a.b.c`` into a string; None if the chain is not names only."""
    parts: list[str] = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return ".".join(reversed(parts))


def evaluate(expression: str, variables: Mapping[str, float] | None = None) -> float:
    """
    Evaluate an arithmetic expression over named numeric variables.

    Args:
        expression: Source text, e.g. ``"capital / burn_rate"``
        variables: Mapping of (dotted) names to numbers

    Returns:
        Finite float result

    Raises:
        ExpressionError: Unknown variable, division by zero, disallowed syntax,
            or a non-finite result
    """
    tree = parse(expression)
    try:
        result = float(_eval(tree.body, variables or {}))
    except OverflowError as e:
        raise ExpressionError(f"Expression '{expression}' overflows") from e
    if not math.isfinite(result):
        raise ExpressionError(f"Expression '{expression}' is not finite")
    return result


def _eval(node: ast.AST, variables: Mapping[str, float]) -> float:
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, (ast.Name, ast.Attribute)):
        name = node.id if isinstance(node, ast.Name) else _dotted_name(node)
        if name not in variables:
            raise ExpressionError(f"Unknown variable: {name}")
        value = variables[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ExpressionError(f"Variable {name} is not numeric")
        if not math.isfinite(value):
            raise ExpressionError(f"Variable {name} is not finite")
        return value

    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPS[type(node.op)](_eval(node.operand, variables))

    if isinstance(node, ast.BinOp):
        left = _eval(node.left, variables)
        right = _eval(node.right, variables)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ExpressionError(f"Exponent {right} exceeds {MAX_EXPONENT}")
        try:
            result = _BINARY_OPS[type(node.op)](left, right)
            if isinstance(result, complex):
                raise ExpressionError("Expression produced a complex number")
            # float keeps nested powers from building unbounded ints
            return float(result)
        except ZeroDivisionError as e:
            raise ExpressionError("Division by zero") from e
        except OverflowError as e:
            raise ExpressionError("Numeric overflow") from e

    if isinstance(node, ast.Call):
        args = [_eval(arg, variables) for arg in node.args]
        try:
            return _FUNCTIONS[node.func.id](*args)
        except TypeError as e:
            raise ExpressionError(f"Bad arguments to {node.func.id}: {e}") from e

    raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")


def variable_names(expression: str) -> set[str]:
    """Names an expression refers to (function names excluded)."""
    tree = parse(expression)
    names: set[str] = set()
    called = {id(n.func) for n in ast.walk(tree) if isinstance(n, ast.Call)}
    for node in ast.walk(tree):
        if id(node) in called:
            continue
        if isinstance(node, ast.Attribute):
            dotted = _dotted_name(node)
            if dotted:
                names.add(dotted)
        elif isinstance(node, ast.Name):
            names.add(node.id)
    # Drop prefixes of dotted names (the Name node inside a.b)
    return {n for n in names if not any(other.startswith(n + ".") for other in names)}
