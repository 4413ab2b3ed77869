"""
SQL Generator - Converts IR back to SQL.

Total over valid IR: anything that could fail here is rejected earlier by
the parser or the builder. Output is a single statement with no trailing
semicolon.
"""

import math
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .ir_types import (
    AliasRef,
    BinaryOp,
    BinaryOperator,
    ColumnRef,
    FunctionCall,
    FunctionName,
    LiteralValue,
    Projection,
    QueryIR,
    Relation,
    SortKey,
    Star,
    UnaryOp,
    UnaryOperator,
    contains_aggregate,
)
from .tokenizer import KEYWORDS


class QuoteStyle(str, Enum):
    """How identifiers are quoted in generated SQL."""

    NONE = "none"  # bare where safe, double quotes otherwise
    DOUBLE = "double"  # ANSI, Postgres, DuckDB, SQLite
    BACKTICK = "backtick"  # MySQL, BigQuery
    BRACKET = "bracket"  # SQL Server


class GeneratorOptions(BaseModel):
    """Per-call generation settings. Not part of the IR."""
    model_config = ConfigDict(frozen=True)

    quote_style: QuoteStyle = QuoteStyle.DOUBLE
    pretty: bool = False


_BARE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Binding strength, loosest first. Atoms bind tightest.
_OR, _AND, _NOT, _COMPARISON, _ADDITIVE, _MULTIPLICATIVE, _NEGATION, _ATOM = range(1, 9)

_BINARY_PRECEDENCE = {
    BinaryOperator.OR: _OR,
    BinaryOperator.AND: _AND,
    BinaryOperator.EQ: _COMPARISON,
    BinaryOperator.NE: _COMPARISON,
    BinaryOperator.LT: _COMPARISON,
    BinaryOperator.LE: _COMPARISON,
    BinaryOperator.GT: _COMPARISON,
    BinaryOperator.GE: _COMPARISON,
    BinaryOperator.ADD: _ADDITIVE,
    BinaryOperator.SUB: _ADDITIVE,
    BinaryOperator.MUL: _MULTIPLICATIVE,
    BinaryOperator.DIV: _MULTIPLICATIVE,
}


def ir_to_sql(ir: QueryIR, options: Optional[GeneratorOptions] = None) -> str:
    """
    Convert QueryIR to SQL string.

    Clauses are emitted in canonical order (SELECT, FROM, WHERE, GROUP BY,
    ORDER BY, LIMIT), each only when present.
    """
    options = options or GeneratorOptions()
    quote = options.quote_style
    parts = []

    # SELECT
    select_cols = [generate_projection(p, quote) for p in ir.projection]
    if options.pretty and len(select_cols) > 1:
        parts.append("SELECT\n  " + ",\n  ".join(select_cols))
    else:
        parts.append("SELECT " + ", ".join(select_cols))

    # FROM
    parts.append("FROM " + generate_relation(ir.source, quote))

    # WHERE
    if ir.filter is not None:
        parts.append("WHERE " + generate_expression(ir.filter, quote))

    # GROUP BY
    if ir.group_by:
        parts.append("GROUP BY " + ", ".join(generate_expression(c, quote) for c in ir.group_by))

    # ORDER BY
    if ir.sort:
        shadowed = frozenset(_projection_names(ir.projection))
        qualifier = ir.source.alias or ir.source.name
        parts.append("ORDER BY " + ", ".join(
            generate_sort_key(k, quote, shadowed, qualifier) for k in ir.sort
        ))

    # LIMIT
    if ir.limit is not None:
        parts.append(f"LIMIT {ir.limit}")

    return ("\n" if options.pretty else " ").join(parts)


def generate_projection(projection: Projection, quote: QuoteStyle = QuoteStyle.DOUBLE) -> str:
    """Generate a single SELECT entry, with its alias when one is needed."""
    result = generate_expression(projection.expression, quote)
    alias = projection.alias
    if alias is not None and (
        contains_aggregate(projection.expression)
        or alias != implicit_name(projection.expression)
    ):
        result += f" AS {quote_identifier(alias, quote)}"
    return result


def generate_relation(relation: Relation, quote: QuoteStyle = QuoteStyle.DOUBLE) -> str:
    """Generate the FROM target. No AS keyword for table aliases."""
    result = quote_identifier(relation.name, quote)
    if relation.schema_name:
        result = f"{quote_identifier(relation.schema_name, quote)}.{result}"
    if relation.alias:
        result += f" {quote_identifier(relation.alias, quote)}"
    return result


def generate_sort_key(
    key: SortKey,
    quote: QuoteStyle = QuoteStyle.DOUBLE,
    shadowed: frozenset = frozenset(),
    qualifier: Optional[str] = None,
) -> str:
    """
    Generate one ORDER BY entry.

    A bare column whose name is also a projection name in `shadowed` would
    read back as that projection, so it is qualified with `qualifier`.
    """
    target = key.target
    if isinstance(target, AliasRef):
        return f"{quote_identifier(target.name, quote)} {key.direction.value}"
    if (
        isinstance(target, ColumnRef)
        and target.relation is None
        and target.name in shadowed
        and qualifier
    ):
        target = ColumnRef(name=target.name, relation=qualifier)
    target = generate_expression(target, quote)
    return f"{target} {key.direction.value}"


def generate_expression(expr, quote: QuoteStyle = QuoteStyle.DOUBLE) -> str:
    """Render an expression tree with the minimum parentheses that keep its shape."""
    if isinstance(expr, ColumnRef):
        if expr.relation:
            return f"{quote_identifier(expr.relation, quote)}.{quote_identifier(expr.name, quote)}"
        return quote_identifier(expr.name, quote)

    if isinstance(expr, LiteralValue):
        return format_value(expr.value)

    if isinstance(expr, Star):
        return "*"

    if isinstance(expr, UnaryOp):
        operand = generate_expression(expr.operand, quote)
        if expr.op is UnaryOperator.NOT:
            if _precedence(expr.operand) < _NOT:
                operand = f"({operand})"
            return f"NOT {operand}"
        # A bare number after "-" would be read back as a negative literal,
        # and "--" starts a comment.
        if (
            _precedence(expr.operand) <= _NEGATION
            or _is_number(expr.operand)
        ):
            operand = f"({operand})"
        return f"-{operand}"

    if isinstance(expr, BinaryOp):
        precedence = _BINARY_PRECEDENCE[expr.op]
        left = generate_expression(expr.left, quote)
        right = generate_expression(expr.right, quote)
        # Comparisons do not chain, so both sides need parentheses at equal level
        left_limit = precedence + 1 if expr.op.is_comparison else precedence
        if _precedence(expr.left) < left_limit:
            left = f"({left})"
        if _precedence(expr.right) <= precedence:
            right = f"({right})"
        return f"{left} {expr.op.value} {right}"

    if isinstance(expr, FunctionCall):
        argument = generate_expression(expr.argument, quote)
        if expr.function is FunctionName.ROUND and expr.precision is not None:
            return f"ROUND({argument}, {expr.precision})"
        return f"{expr.function.value}({argument})"

    raise TypeError(f"Cannot generate SQL for {type(expr).__name__}")


def implicit_name(expr) -> str:
    """
    Name a projection gets when it has no alias.

    A plain column is named after the column; anything else after its
    canonical unquoted rendering, e.g. ROUND(AVG(mpg)).
    """
    if isinstance(expr, ColumnRef):
        return expr.name
    return generate_expression(expr, QuoteStyle.NONE)


def quote_identifier(name: str, quote: QuoteStyle = QuoteStyle.DOUBLE) -> str:
    """Quote an identifier in the requested style, escaping embedded delimiters."""
    if quote is QuoteStyle.BACKTICK:
        return "`" + name.replace("`", "``") + "`"
    if quote is QuoteStyle.BRACKET:
        return "[" + name.replace("]", "]]") + "]"
    if quote is QuoteStyle.NONE and _BARE_IDENTIFIER.match(name) and name.upper() not in KEYWORDS:
        return name
    return '"' + name.replace('"', '""') + '"'


def format_value(value) -> str:
    """Format a literal value for SQL. Integers never gain a decimal point."""
    if value is None:
        return "NULL"
    elif isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    elif isinstance(value, str):
        # Escape single quotes
        escaped = value.replace("'", "''")
        return f"'{escaped}'"
    elif isinstance(value, int):
        return str(value)
    elif isinstance(value, float):
        assert math.isfinite(value), f"Non-finite literal {value!r} has no SQL form"
        return repr(value)
    raise TypeError(f"Unsupported literal type: {type(value).__name__}")


def _is_number(expr) -> bool:
    return (
        isinstance(expr, LiteralValue)
        and isinstance(expr.value, (int, float))
        and not isinstance(expr.value, bool)
    )


def _precedence(expr) -> int:
    if isinstance(expr, BinaryOp):
        return _BINARY_PRECEDENCE[expr.op]
    if isinstance(expr, UnaryOp):
        return _NOT if expr.op is UnaryOperator.NOT else _NEGATION
    if _is_number(expr) and expr.value < 0:
        return _NEGATION
    return _ATOM


def _projection_names(projection):
    """Names a bare ORDER BY identifier binds to instead of a column."""
    for entry in projection:
        if entry.alias is not None:
            yield entry.alias
        elif not isinstance(entry.expression, (ColumnRef, Star)):
            yield implicit_name(entry.expression)
