"""Arithmetic formulas over other columns of the same item.

Expressions reference columns by title in braces, e.g. ``{Budget} - {Spent}``.
Only numeric literals, column references, ``+ - * / // % **``, unary minus and
the functions ``abs``, ``min``, ``max``, ``round`` are accepted.
"""

from __future__ import annotations

import ast
import math
import operator
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

_REFERENCE_RE = re.compile(r"\{([^{}]+)\}")

_BINARY_OPERATORS: dict[type[ast.operator], Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: math.pow,
}
_FUNCTIONS: dict[str, Callable[..., float]] = {
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
}


class FormulaError(ValueError):
    """Expression is not a supported formula."""


@dataclass(frozen=True)
class Formula:
    """Parsed formula with the column titles it references."""

    expression: str
    references: tuple[str, ...]
    tree: ast.Expression

    def evaluate(self, resolve: Callable[[str], Any]) -> float | int | None:
        """Evaluate with `resolve(title)` supplying referenced values.

        Returns None when a referenced value is missing or not numeric, or the
        arithmetic is undefined (division by zero, overflow).
        """
        values: dict[str, float | int] = {}
        for index, title in enumerate(self.references):
            raw = resolve(title)
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                return None
            values[_ref_name(index)] = raw
        try:
            result = _eval_node(self.tree.body, values)
        except (ZeroDivisionError, OverflowError, ValueError, TypeError):
            return None
        if isinstance(result, float) and not math.isfinite(result):
            return None
        return result


def _ref_name(index: int) -> str:
    return f"__ref_{index}"


def compile_formula(expression: str) -> Formula:
    """Parse and validate a formula expression."""
    if not expression or not expression.strip():
        raise FormulaError("Formula expression is empty.")
    references: list[str] = []

    def _substitute(match: re.Match[str]) -> str:
        title = match.group(1).strip()
        if title not in references:
            references.append(title)
        return _ref_name(references.index(title))

    source = _REFERENCE_RE.sub(_substitute, expression)
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as err:
        raise FormulaError(f"Formula is not valid: {err.msg}") from err
    _check_node(tree.body, allowed_names={_ref_name(i) for i in range(len(references))})
    return Formula(expression=expression, references=tuple(references), tree=tree)


def _check_node(node: ast.AST, *, allowed_names: set[str]) -> None:
    match node:
        case ast.Constant(value=value):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise FormulaError("Only numeric literals are allowed in formulas.")
        case ast.Name(id=name):
            if name not in allowed_names:
                raise FormulaError(f"Unknown name in formula: {name}")
        case ast.BinOp(left=left, op=op, right=right):
            if type(op) not in _BINARY_OPERATORS:
                raise FormulaError("Unsupported operator in formula.")
            _check_node(left, allowed_names=allowed_names)
            _check_node(right, allowed_names=allowed_names)
        case ast.UnaryOp(op=ast.USub() | ast.UAdd(), operand=operand):
            _check_node(operand, allowed_names=allowed_names)
        case ast.Call(func=ast.Name(id=name), args=args, keywords=[]):
            if name not in _FUNCTIONS or not args:
                raise FormulaError(f"Unsupported function in formula: {name}")
            for arg in args:
                _check_node(arg, allowed_names=allowed_names)
        case _:
            raise FormulaError("Unsupported expression in formula.")


def _eval_node(node: ast.AST, values: dict[str, float | int]) -> float | int:
    match node:
        case ast.Constant(value=value):
            return value
        case ast.Name(id=name):
            return values[name]
        case ast.BinOp(left=left, op=op, right=right):
            return _BINARY_OPERATORS[type(op)](_eval_node(left, values), _eval_node(right, values))
        case ast.UnaryOp(op=ast.USub(), operand=operand):
            return -_eval_node(operand, values)
        case ast.UnaryOp(operand=operand):
            return _eval_node(operand, values)
        case ast.Call(func=ast.Name(id=name), args=args):
            return _FUNCTIONS[name](*(_eval_node(arg, values) for arg in args))
    raise FormulaError("Unsupported expression in formula.")
