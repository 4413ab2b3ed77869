"""
Expression DSL for the fluent builder.

IR nodes are pydantic models whose `==` means structural equality, so the
operator syntax lives on a thin wrapper instead:

    >>> from sqlchain import col, avg
    >>> cond = (col("am") == 1) & (col("hp") > 100)
    >>> metric = round(avg("mpg"), 1)

Strings passed where a column is expected (function arguments, builder
arguments) name columns; strings on the right of an operator are literals.
"""

import math
from typing import Optional, Union

from pydantic import BaseModel

from .errors import BuildError, MisplacedAggregateError
from .ir_types import (
    BinaryOp,
    BinaryOperator,
    ColumnRef,
    FunctionCall,
    FunctionName,
    LiteralValue,
    Star,
    UnaryOp,
    UnaryOperator,
    contains_aggregate,
)

_NODE_TYPES = (ColumnRef, LiteralValue, Star, UnaryOp, BinaryOp, FunctionCall)


class Expr:
    """Wraps an IR expression node and adds Python operators."""

    __slots__ = ("node",)

    def __init__(self, node: BaseModel):
        if not isinstance(node, _NODE_TYPES):
            raise TypeError(f"Expected an IR expression node, got {type(node).__name__}")
        self.node = node

    # ========== Comparison Operators ==========

    def __eq__(self, other) -> "Expr":  # type: ignore[override]
        return _binary(BinaryOperator.EQ, self, other)

    def __ne__(self, other) -> "Expr":  # type: ignore[override]
        return _binary(BinaryOperator.NE, self, other)

    def __lt__(self, other) -> "Expr":
        return _binary(BinaryOperator.LT, self, other)

    def __le__(self, other) -> "Expr":
        return _binary(BinaryOperator.LE, self, other)

    def __gt__(self, other) -> "Expr":
        return _binary(BinaryOperator.GT, self, other)

    def __ge__(self, other) -> "Expr":
        return _binary(BinaryOperator.GE, self, other)

    __hash__ = None

    # ========== Arithmetic Operators ==========

    def __add__(self, other) -> "Expr":
        return _binary(BinaryOperator.ADD, self, other)

    def __radd__(self, other) -> "Expr":
        return _binary(BinaryOperator.ADD, other, self)

    def __sub__(self, other) -> "Expr":
        return _binary(BinaryOperator.SUB, self, other)

    def __rsub__(self, other) -> "Expr":
        return _binary(BinaryOperator.SUB, other, self)

    def __mul__(self, other) -> "Expr":
        return _binary(BinaryOperator.MUL, self, other)

    def __rmul__(self, other) -> "Expr":
        return _binary(BinaryOperator.MUL, other, self)

    def __truediv__(self, other) -> "Expr":
        return _binary(BinaryOperator.DIV, self, other)

    def __rtruediv__(self, other) -> "Expr":
        return _binary(BinaryOperator.DIV, other, self)

    def __neg__(self) -> "Expr":
        node = self.node
        if isinstance(node, LiteralValue) and _is_number(node.value):
            return Expr(LiteralValue(value=-node.value))
        return Expr(UnaryOp(op=UnaryOperator.NEG, operand=node))

    # ========== Logical Operators ==========

    def __and__(self, other) -> "Expr":
        return _binary(BinaryOperator.AND, self, other)

    def __rand__(self, other) -> "Expr":
        return _binary(BinaryOperator.AND, other, self)

    def __or__(self, other) -> "Expr":
        return _binary(BinaryOperator.OR, self, other)

    def __ror__(self, other) -> "Expr":
        return _binary(BinaryOperator.OR, other, self)

    def __invert__(self) -> "Expr":
        return Expr(UnaryOp(op=UnaryOperator.NOT, operand=self.node))

    def __bool__(self):
        raise TypeError("Combine conditions with & and |, not 'and'/'or'")

    # builtin round(expr) / round(expr, 2)
    def __round__(self, ndigits: Optional[int] = None) -> "Expr":
        return round_(self, ndigits)

    def __repr__(self) -> str:
        from .generator import implicit_name

        return f"Expr({implicit_name(self.node)})"


ExprLike = Union[Expr, BaseModel, str, int, float, bool, None]


def col(name: str, relation: Optional[str] = None) -> Expr:
    """Column reference, e.g. col("mpg") or col("cyl", relation="mtcars")."""
    return Expr(ColumnRef(name=name, relation=relation))


def lit(value) -> Expr:
    """Literal value: bool, int, float, str or None."""
    if value is not None and not isinstance(value, (bool, int, float, str)):
        raise TypeError(f"Unsupported literal type: {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise BuildError(f"Non-finite float {value!r} has no SQL literal form")
    return Expr(LiteralValue(value=value))


def count(expr: ExprLike = None) -> Expr:
    """COUNT(expr), or COUNT(*) when no expression is given."""
    argument = Star() if expr is None else to_node(expr)
    return _aggregate(FunctionName.COUNT, argument)


def sum_(expr: ExprLike) -> Expr:
    return _aggregate(FunctionName.SUM, to_node(expr))


def avg(expr: ExprLike) -> Expr:
    return _aggregate(FunctionName.AVG, to_node(expr))


def min_(expr: ExprLike) -> Expr:
    return _aggregate(FunctionName.MIN, to_node(expr))


def max_(expr: ExprLike) -> Expr:
    return _aggregate(FunctionName.MAX, to_node(expr))


def round_(expr: ExprLike, precision: Optional[int] = None) -> Expr:
    """ROUND(expr[, precision]). Leaving precision out keeps the single-argument form."""
    if precision is not None and (isinstance(precision, bool) or not isinstance(precision, int)):
        raise TypeError(f"ROUND precision must be an integer, got {precision!r}")
    return Expr(FunctionCall(function=FunctionName.ROUND, argument=to_node(expr), precision=precision))


def to_node(value: ExprLike) -> BaseModel:
    """Coerce a column-position argument: strings name columns."""
    if isinstance(value, str):
        return ColumnRef(name=value)
    return _operand(value)


def _operand(value: ExprLike) -> BaseModel:
    """Coerce an operator operand: strings are literals."""
    if isinstance(value, Expr):
        return value.node
    if isinstance(value, _NODE_TYPES):
        return value
    return lit(value).node


def _binary(op: BinaryOperator, left: ExprLike, right: ExprLike) -> Expr:
    return Expr(BinaryOp(op=op, left=_operand(left), right=_operand(right)))


def _aggregate(function: FunctionName, argument: BaseModel) -> Expr:
    if contains_aggregate(argument):
        raise MisplacedAggregateError(f"{function.value}() cannot wrap another aggregate")
    if isinstance(argument, Star) and function is not FunctionName.COUNT:
        raise TypeError(f"{function.value}(*) is not valid; only COUNT accepts *")
    return Expr(FunctionCall(function=function, argument=argument))


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
