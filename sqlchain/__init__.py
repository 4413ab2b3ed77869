"""Bidirectional translation between a fluent query builder and SQL via a shared IR."""

from .ir_types import (
    QueryIR,
    Relation,
    Projection,
    SortKey,
    SortDirection,
    ColumnRef,
    LiteralValue,
    Star,
    UnaryOp,
    UnaryOperator,
    BinaryOp,
    BinaryOperator,
    FunctionCall,
    FunctionName,
    AliasRef,
)
from .errors import (
    SqlChainError,
    ParseError,
    UnexpectedClauseError,
    UnexpectedTokenError,
    UnknownFunctionError,
    UnboundAliasError,
    TrailingInputError,
    BuildError,
    NonBooleanFilterError,
    InvalidLimitError,
    ProjectionNotAggregatedError,
    MisplacedAggregateError,
    UnboundSortKeyError,
    ExecutionError,
    UnknownColumnError,
    TypeMismatchError,
    ExecutionTimeoutError,
    DriverError,
)
from .parser import parse_sql_to_ir
from .generator import ir_to_sql, GeneratorOptions, QuoteStyle, implicit_name
from .validator import validate_ir
from .dsl import Expr, col, lit, count, sum_, avg, min_, max_, round_
from .builder import QueryBuilder, from_
from .round_trip import compare_sql_ast, find_ir_differences, validate_round_trip, RoundTripResult, SQLComparisonResult

__all__ = [
    "QueryIR",
    "Relation",
    "Projection",
    "SortKey",
    "SortDirection",
    "ColumnRef",
    "LiteralValue",
    "Star",
    "UnaryOp",
    "UnaryOperator",
    "BinaryOp",
    "BinaryOperator",
    "FunctionCall",
    "FunctionName",
    "AliasRef",
    "SqlChainError",
    "ParseError",
    "UnexpectedClauseError",
    "UnexpectedTokenError",
    "UnknownFunctionError",
    "UnboundAliasError",
    "TrailingInputError",
    "BuildError",
    "NonBooleanFilterError",
    "InvalidLimitError",
    "ProjectionNotAggregatedError",
    "MisplacedAggregateError",
    "UnboundSortKeyError",
    "ExecutionError",
    "UnknownColumnError",
    "TypeMismatchError",
    "ExecutionTimeoutError",
    "DriverError",
    "parse_sql_to_ir",
    "ir_to_sql",
    "GeneratorOptions",
    "QuoteStyle",
    "implicit_name",
    "validate_ir",
    "Expr",
    "col",
    "lit",
    "count",
    "sum_",
    "avg",
    "min_",
    "max_",
    "round_",
    "QueryBuilder",
    "from_",
    "compare_sql_ast",
    "find_ir_differences",
    "validate_round_trip",
    "RoundTripResult",
    "SQLComparisonResult",
]
