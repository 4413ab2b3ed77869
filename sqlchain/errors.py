"""
Custom exceptions for translation and execution.
"""

from typing import Optional


class SqlChainError(Exception):
    """Base exception for all sqlchain errors."""
    pass


# -----------------------------
# Parse errors
# -----------------------------


class ParseError(SqlChainError):
    """SQL text could not be turned into a QueryIR.

    Carries the character offset plus 1-based line/column of the offending
    token so callers can point at it.
    """

    def __init__(
        self,
        message: str,
        position: int,
        line: int,
        column: int,
        hint: Optional[str] = None,
    ):
        super().__init__(f"{message} (line {line}, column {column})")
        self.message = message
        self.position = position
        self.line = line
        self.column = column
        self.hint = hint


class UnexpectedClauseError(ParseError):
    """Clause keyword out of order, or a clause this grammar does not support."""
    pass


class UnexpectedTokenError(ParseError):
    """Token that cannot start or continue the current construct."""
    pass


class UnknownFunctionError(ParseError):
    """Function name outside the supported set."""

    def __init__(self, name: str, position: int, line: int, column: int):
        super().__init__(
            f"Unknown function '{name}'",
            position,
            line,
            column,
            hint="Supported functions: COUNT, SUM, AVG, MIN, MAX, ROUND",
        )
        self.name = name


class UnboundAliasError(ParseError):
    """ORDER BY name that resolves to neither an alias nor a grouped expression."""

    def __init__(self, name: str, position: int, line: int, column: int):
        super().__init__(
            f"ORDER BY references '{name}', which is not a SELECT alias or GROUP BY key",
            position,
            line,
            column,
        )
        self.name = name


class TrailingInputError(ParseError):
    """Content left over after the final clause."""
    pass


# -----------------------------
# Build errors
# -----------------------------


class BuildError(SqlChainError):
    """Fluent builder chain cannot produce a valid QueryIR."""
    pass


class NonBooleanFilterError(BuildError):
    """filter() was given an expression that cannot be a predicate."""
    pass


class InvalidLimitError(BuildError):
    """limit() was given a negative or non-integer row count."""

    def __init__(self, limit):
        super().__init__(f"LIMIT must be a non-negative integer, got {limit!r}")
        self.limit = limit


class ProjectionNotAggregatedError(BuildError):
    """Projection entry is neither a GROUP BY key nor an aggregate."""

    def __init__(self, message: str, index: int, entry=None):
        super().__init__(message)
        self.index = index
        self.entry = entry


class MisplacedAggregateError(BuildError):
    """Aggregate nested in another aggregate, or used inside a filter."""
    pass


class UnboundSortKeyError(BuildError):
    """Sort key that a grouped query cannot order by."""
    pass


# -----------------------------
# Execution errors
# -----------------------------


class ExecutionError(SqlChainError):
    """Execution collaborator failed. The driver message is kept verbatim."""
    pass


class UnknownColumnError(ExecutionError):
    """Query referenced a column the data source does not have."""
    pass


class TypeMismatchError(ExecutionError):
    """Driver rejected an operation on incompatible types."""
    pass


class ExecutionTimeoutError(ExecutionError):
    """Execution did not finish within the caller-supplied timeout."""

    def __init__(self, timeout: float):
        super().__init__(f"Query did not complete within {timeout} seconds")
        self.timeout = timeout


class DriverError(ExecutionError):
    """Any other driver failure."""
    pass
