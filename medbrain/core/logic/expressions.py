"""
Sandboxed Expression Language

Metric formulas (`"{ldl} / {hdl}"`) and protocol trigger conditions
(`"vitamina_d3 < 40 or ferritina < 30"`) are parsed with Python's `ast`
module in `eval` mode and walked node by node. Only arithmetic, comparison
and boolean nodes are accepted; names resolve exclusively against the
supplied environment. Nothing is ever passed to `eval()`.

Usage:
    from medbrain.core.logic.expressions import evaluate_formula, evaluate_condition

    evaluate_formula("{ldl} / {hdl}", {"ldl": 120, "hdl": 60})      # 2.0
    evaluate_condition("vitamina_d3 < 40", {"vitamina_d3": 28.0})   # True
"""
from __future__ import annotations

import ast
import math
import operator
import re
from typing import Any, Dict, List, Mapping

from medbrain.utils.exceptions import (
    ExpressionError,
    ExpressionSyntaxError,
    UnboundVariableError,
)

# ── Lexical helpers ───────────────────────────────────────────────────────────
PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")
# Letters inside a numeric literal (the `e` of `1e2`) are not identifiers.
IDENTIFIER_RE = re.compile(r"(?<![0-9.])[a-z][a-z0-9_]*")

KEYWORDS = frozenset({"or", "and", "not", "true", "false"})

# Placeholders are rewritten to plain names so `ast` can parse the formula.
_PLACEHOLDER_PREFIX = "__v_"

_BIN_OPS = {
    ast.Add:  operator.add,
    ast.Sub:  operator.sub,
    ast.Mult: operator.mul,
    ast.Div:  operator.truediv,
    ast.Pow:  operator.pow,
    ast.Mod:  operator.mod,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not:  operator.not_,
}

_CMP_OPS = {
    ast.Lt:    operator.lt,
    ast.LtE:   operator.le,
    ast.Gt:    operator.gt,
    ast.GtE:   operator.ge,
    ast.Eq:    operator.eq,
    ast.NotEq: operator.ne,
}


def placeholders(formula: str) -> List[str]:
    """Return the `{slug}` names of a formula in order of first appearance."""
    seen: List[str] = []
    for match in PLACEHOLDER_RE.findall(formula or ""):
        name = match.strip()
        if name not in seen:
            seen.append(name)
    return seen


def identifiers(condition: str) -> List[str]:
    """Return the bare identifiers of a lowercased condition, minus keywords."""
    seen: List[str] = []
    for token in IDENTIFIER_RE.findall((condition or "").lower()):
        if token in KEYWORDS or token in seen:
            continue
        seen.append(token)
    return seen


# ── Parsing ───────────────────────────────────────────────────────────────────

def parse(expression: str) -> ast.Expression:
    """
    Parse an expression and check it against the node whitelist.

    Raises:
        ExpressionSyntaxError: unparseable text or a forbidden construct
            (calls, attributes, subscripts, lambdas, comprehensions, ...).
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except (SyntaxError, ValueError) as exc:
        raise ExpressionSyntaxError(f"Invalid expression: {exc}", expression) from exc

    for node in ast.walk(tree):
        if not _is_allowed(node):
            raise ExpressionSyntaxError(
                f"Unsupported construct: {type(node).__name__}", expression
            )
    return tree


def _is_allowed(node: ast.AST) -> bool:
    if isinstance(node, (ast.Expression, ast.BinOp, ast.UnaryOp, ast.BoolOp,
                         ast.Compare, ast.Name, ast.Load, ast.And, ast.Or)):
        return True
    if isinstance(node, ast.Constant):
        return isinstance(node.value, (int, float, bool)) and node.value is not None
    return type(node) in _BIN_OPS or type(node) in _UNARY_OPS or type(node) in _CMP_OPS


# ── Evaluation ────────────────────────────────────────────────────────────────

def evaluate(expression: str, env: Mapping[str, Any]) -> Any:
    """
    Evaluate a whitelisted expression against `env`.

    Every name is checked before anything is computed, so a missing
    variable never yields a partial result.

    Raises:
        ExpressionSyntaxError: forbidden or unparseable input.
        UnboundVariableError: a name with no binding in `env`.
        ExpressionError: arithmetic failure (division by zero, overflow).
    """
    tree = parse(expression)

    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and node.id not in env:
            raise UnboundVariableError(_display_name(node.id), expression)

    try:
        return _eval_node(tree.body, env)
    except ZeroDivisionError as exc:
        raise ExpressionError("Division by zero", expression, code="DIVISION_BY_ZERO") from exc
    except (OverflowError, ValueError, TypeError) as exc:
        raise ExpressionError(f"Evaluation failed: {exc}", expression) from exc


def _eval_node(node: ast.AST, env: Mapping[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        return env[node.id]

    if isinstance(node, ast.BinOp):
        return _BIN_OPS[type(node.op)](_eval_node(node.left, env), _eval_node(node.right, env))

    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand, env))

    if isinstance(node, ast.BoolOp):
        # Short-circuit like Python's own and/or
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = _eval_node(value, env)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = _eval_node(value, env)
            if result:
                return result
        return result

    if isinstance(node, ast.Compare):
        left = _eval_node(node.left, env)
        for op, comparator in zip(node.ops, node.comparators):
            right = _eval_node(comparator, env)
            if not _CMP_OPS[type(op)](left, right):
                return False
            left = right
        return True

    raise ExpressionSyntaxError(f"Unsupported construct: {type(node).__name__}")


def _display_name(name: str) -> str:
    if name.startswith(_PLACEHOLDER_PREFIX):
        return name[len(_PLACEHOLDER_PREFIX):]
    return name


# ── Formula / condition front-ends ───────────────────────────────────────────

def evaluate_formula(formula: str, values: Mapping[str, float]) -> float:
    """
    Evaluate a metric formula whose variables are written as `{slug}`.

    Raises:
        ExpressionSyntaxError: no placeholders, or forbidden syntax.
        UnboundVariableError: a referenced slug is missing from `values`.
        ExpressionError: the result is not a finite number.
    """
    names = placeholders(formula)
    if not names:
        raise ExpressionSyntaxError("Invalid formula: no biomarker placeholders", formula)

    env: Dict[str, float] = {}
    for name in names:
        if name not in values:
            raise UnboundVariableError(name, formula)
        env[_PLACEHOLDER_PREFIX + name] = float(values[name])

    rewritten = PLACEHOLDER_RE.sub(
        lambda m: _PLACEHOLDER_PREFIX + m.group(1).strip(), formula
    )
    result = evaluate(rewritten, env)

    if isinstance(result, bool) or not isinstance(result, (int, float)):
        raise ExpressionError("Formula did not produce a number", formula)
    if not math.isfinite(result):
        raise ExpressionError("Formula produced a non-finite value", formula)
    return float(result)


def evaluate_condition(condition: str, values: Mapping[str, float]) -> bool:
    """
    Evaluate a protocol trigger condition over biomarker slugs.

    The condition is lowercased; `true`/`false` map to booleans.

    Raises:
        UnboundVariableError: a referenced slug is missing from `values`.
        ExpressionSyntaxError: forbidden or unparseable input.
    """
    lowered = (condition or "").lower()
    env: Dict[str, Any] = {"true": True, "false": False}
    for name in identifiers(lowered):
        if name not in values:
            raise UnboundVariableError(name, condition)
        env[name] = float(values[name])
    return bool(evaluate(lowered, env))

