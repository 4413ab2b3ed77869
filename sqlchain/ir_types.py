"""Pydantic models for the query Intermediate Representation (IR)."""

import math
from enum import Enum
from typing import Annotated, Iterator, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UnaryOperator(str, Enum):
    """Prefix operators."""

    NEG = "-"
    NOT = "NOT"


class BinaryOperator(str, Enum):
    """Infix operators, grouped by precedence level."""

    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    AND = "AND"
    OR = "OR"

    @property
    def is_arithmetic(self) -> bool:
        return self in _ARITHMETIC

    @property
    def is_comparison(self) -> bool:
        return self in _COMPARISON

    @property
    def is_logical(self) -> bool:
        return self in (BinaryOperator.AND, BinaryOperator.OR)


_ARITHMETIC = frozenset({BinaryOperator.ADD, BinaryOperator.SUB, BinaryOperator.MUL, BinaryOperator.DIV})
_COMPARISON = frozenset({
    BinaryOperator.EQ, BinaryOperator.NE, BinaryOperator.LT,
    BinaryOperator.LE, BinaryOperator.GT, BinaryOperator.GE,
})


class FunctionName(str, Enum):
    """Closed set of callable functions."""

    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"
    ROUND = "ROUND"

    @property
    def is_aggregate(self) -> bool:
        # ROUND is scalar; it may wrap an aggregate but never aggregates itself
        return self is not FunctionName.ROUND


class SortDirection(str, Enum):
    """Sort direction for ORDER BY entries."""

    ASC = "ASC"
    DESC = "DESC"


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class ColumnRef(_Node):
    """Column reference, optionally qualified with a relation name or alias."""
    kind: Literal['column'] = 'column'
    name: str
    relation: Optional[str] = None


class LiteralValue(_Node):
    """Constant value. bool must come before int to prevent coercion."""
    kind: Literal['literal'] = 'literal'
    value: Union[bool, int, float, str, None] = None

    @field_validator("value")
    @classmethod
    def check_finite(cls, value):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError(f"Non-finite float {value!r} has no SQL literal form")
        return value


class Star(_Node):
    """`*` as a projection entry or as the COUNT argument."""
    kind: Literal['star'] = 'star'


class UnaryOp(_Node):
    kind: Literal['unary'] = 'unary'
    op: UnaryOperator
    operand: 'Expression'


class BinaryOp(_Node):
    kind: Literal['binary'] = 'binary'
    op: BinaryOperator
    left: 'Expression'
    right: 'Expression'


class FunctionCall(_Node):
    """Call to one of the supported functions.

    `precision` is only meaningful for ROUND; None means the caller did not
    supply one (SQL default of 0).
    """
    kind: Literal['function'] = 'function'
    function: FunctionName
    argument: 'Expression'
    precision: Optional[int] = None


Expression = Annotated[
    Union[ColumnRef, LiteralValue, Star, UnaryOp, BinaryOp, FunctionCall],
    Field(discriminator='kind'),
]

UnaryOp.model_rebuild()
BinaryOp.model_rebuild()
FunctionCall.model_rebuild()


class AliasRef(_Node):
    """Reference to a projection alias (ORDER BY avg_mpg)."""
    kind: Literal['alias'] = 'alias'
    name: str


SortTarget = Annotated[
    Union[ColumnRef, LiteralValue, Star, UnaryOp, BinaryOp, FunctionCall, AliasRef],
    Field(discriminator='kind'),
]


class Relation(_Node):
    """Source relation in the FROM clause."""
    name: str
    schema_name: Optional[str] = None
    alias: Optional[str] = None

    def names(self) -> Tuple[str, ...]:
        """Qualifiers that refer to this relation."""
        return (self.alias, self.name) if self.alias else (self.name,)


class Projection(_Node):
    """One SELECT-list entry."""
    expression: Expression
    alias: Optional[str] = None


class SortKey(_Node):
    """One ORDER BY entry."""
    target: SortTarget
    direction: SortDirection = SortDirection.ASC


class QueryIR(_Node):
    """Intermediate Representation of a single relational query."""

    version: int = 1  # Schema version for future migrations
    source: Relation
    projection: Tuple[Projection, ...] = Field(..., min_length=1)
    filter: Optional[Expression] = None
    group_by: Tuple[ColumnRef, ...] = ()
    sort: Tuple[SortKey, ...] = ()
    limit: Optional[int] = Field(None, ge=0)


def iter_nodes(expr) -> Iterator[BaseModel]:
    """Yield expr and all of its sub-expressions, depth first."""
    yield expr
    if isinstance(expr, UnaryOp):
        yield from iter_nodes(expr.operand)
    elif isinstance(expr, BinaryOp):
        yield from iter_nodes(expr.left)
        yield from iter_nodes(expr.right)
    elif isinstance(expr, FunctionCall):
        yield from iter_nodes(expr.argument)


def contains_aggregate(expr) -> bool:
    """True if any aggregating function call appears in the expression tree."""
    return any(
        isinstance(node, FunctionCall) and node.function.is_aggregate
        for node in iter_nodes(expr)
    )
