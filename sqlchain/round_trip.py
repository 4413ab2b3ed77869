"""Round-trip checking: SQL → IR → SQL must preserve meaning.

`validate_round_trip` re-parses the regenerated SQL and compares the two
IRs, so a lossy conversion is reported as the projection entry or sort key
that changed. `compare_sql_ast` is an independent check on sqlglot ASTs for
SQL that did not come from the generator; formatting, keyword case and
redundant parentheses do not count as differences there.
"""

import logging
from typing import List, Optional

import sqlglot
from pydantic import BaseModel
from sqlglot import exp
from sqlglot.errors import SqlglotError
from sqlglot.optimizer import optimize

from .errors import ParseError
from .generator import GeneratorOptions, QuoteStyle, implicit_name, ir_to_sql
from .ir_types import AliasRef, ColumnRef, QueryIR, Relation
from .parser import parse_sql_to_ir

logger = logging.getLogger(__name__)


class SQLComparisonResult(BaseModel):
    """Result of comparing two SQL statements."""
    equivalent: bool
    differences: List[str] = []
    original_normalized: Optional[str] = None
    regenerated_normalized: Optional[str] = None


class RoundTripResult(BaseModel):
    """Result of a full SQL → IR → SQL round trip."""
    supported: bool
    errors: List[str] = []
    differences: List[str] = []
    regenerated_sql: Optional[str] = None
    hint: Optional[str] = None


def compare_sql_ast(sql1: str, sql2: str, dialect: str = "postgres") -> SQLComparisonResult:
    """
    Compare two single-table SELECT statements on their sqlglot ASTs.

    Both sides go through sqlglot's optimizer first so qualification and
    quoting are canonical. When that fails the raw ASTs are compared.
    """
    try:
        ast1 = sqlglot.parse_one(sql1, read=dialect)
        ast2 = sqlglot.parse_one(sql2, read=dialect)
    except SqlglotError as e:
        return SQLComparisonResult(equivalent=False, differences=[f"Parse error: {e}"])

    try:
        ast1 = optimize(ast1, dialect=dialect)
        ast2 = optimize(ast2, dialect=dialect)
    except SqlglotError as e:
        logger.debug(f"optimize() failed, comparing raw ASTs: {e}")

    norm1 = ast1.sql(dialect=dialect, normalize=True)
    norm2 = ast2.sql(dialect=dialect, normalize=True)
    if ast1 == ast2 or norm1.lower() == norm2.lower():
        return SQLComparisonResult(equivalent=True, original_normalized=norm1, regenerated_normalized=norm2)

    return SQLComparisonResult(
        equivalent=False,
        differences=_ast_differences(ast1, ast2, dialect) or ["SQL statements differ"],
        original_normalized=norm1,
        regenerated_normalized=norm2,
    )


def _ast_differences(ast1: exp.Expression, ast2: exp.Expression, dialect: str) -> List[str]:
    """Name the SELECT entries, sort keys and clauses in which two ASTs differ."""
    if not (isinstance(ast1, exp.Select) and isinstance(ast2, exp.Select)):
        return ["Only single SELECT statements can be compared"]

    def render(node) -> str:
        return node.sql(dialect=dialect) if node is not None else "nothing"

    differences = []
    left, right = ast1.find(exp.From), ast2.find(exp.From)
    if left != right:
        differences.append(f"Source differs: {render(left)} vs {render(right)}")

    selects1, selects2 = ast1.selects, ast2.selects
    if len(selects1) != len(selects2):
        differences.append(f"Projection count differs: {len(selects1)} vs {len(selects2)}")
    else:
        for index, (left, right) in enumerate(zip(selects1, selects2)):
            if left.unalias() != right.unalias():
                differences.append(
                    f"Projection {index} computes {render(left.unalias())} vs {render(right.unalias())}"
                )
            elif left.alias_or_name != right.alias_or_name:
                differences.append(
                    f"Projection {index} alias differs: {left.alias_or_name!r} vs {right.alias_or_name!r}"
                )

    for key, label in (("where", "Filter"), ("group", "GROUP BY"), ("limit", "LIMIT")):
        left, right = ast1.args.get(key), ast2.args.get(key)
        if left != right:
            differences.append(f"{label} differs: {render(left)} vs {render(right)}")

    order1 = ast1.args.get("order")
    order2 = ast2.args.get("order")
    keys1 = order1.expressions if order1 else []
    keys2 = order2.expressions if order2 else []
    if len(keys1) != len(keys2):
        differences.append(f"Sort key count differs: {len(keys1)} vs {len(keys2)}")
    else:
        for index, (left, right) in enumerate(zip(keys1, keys2)):
            if left.this != right.this:
                differences.append(f"Sort key {index} binds to {render(left.this)} vs {render(right.this)}")
            elif bool(left.args.get("desc")) != bool(right.args.get("desc")):
                differences.append(f"Sort key {index} direction differs")

    return differences


def find_ir_differences(expected: QueryIR, actual: QueryIR) -> List[str]:
    """
    Describe where two IRs disagree, in IR terms.

    Projection entries and sort keys are compared position by position, so
    a renamed alias or a sort key that re-binds from an alias to a column
    is named precisely instead of flagging the whole clause.
    """
    differences = []

    if expected.source != actual.source:
        differences.append(
            f"Source differs: {_describe_relation(expected.source)} vs {_describe_relation(actual.source)}"
        )

    if len(expected.projection) != len(actual.projection):
        differences.append(
            f"Projection count differs: {len(expected.projection)} vs {len(actual.projection)}"
        )
    else:
        for index, (left, right) in enumerate(zip(expected.projection, actual.projection)):
            if left.expression != right.expression:
                differences.append(
                    f"Projection {index} computes {_describe(left.expression)} vs {_describe(right.expression)}"
                )
            elif left.alias != right.alias:
                differences.append(f"Projection {index} alias differs: {left.alias!r} vs {right.alias!r}")

    if expected.filter != actual.filter:
        differences.append(f"Filter differs: {_describe(expected.filter)} vs {_describe(actual.filter)}")

    if expected.group_by != actual.group_by:
        left = ", ".join(implicit_name(c) for c in expected.group_by) or "nothing"
        right = ", ".join(implicit_name(c) for c in actual.group_by) or "nothing"
        differences.append(f"GROUP BY differs: {left} vs {right}")

    if len(expected.sort) != len(actual.sort):
        differences.append(f"Sort key count differs: {len(expected.sort)} vs {len(actual.sort)}")
    else:
        for index, (left, right) in enumerate(zip(expected.sort, actual.sort)):
            if left.target != right.target:
                differences.append(
                    f"Sort key {index} binds to {_describe(left.target)} vs {_describe(right.target)}"
                )
            elif left.direction is not right.direction:
                differences.append(
                    f"Sort key {index} direction differs: {left.direction.value} vs {right.direction.value}"
                )

    if expected.limit != actual.limit:
        differences.append(f"LIMIT differs: {expected.limit} vs {actual.limit}")

    return differences


def _describe(node) -> str:
    if node is None:
        return "nothing"
    if isinstance(node, AliasRef):
        return f"alias '{node.name}'"
    if isinstance(node, ColumnRef):
        return f"column '{implicit_name(node)}'"
    return f"'{implicit_name(node)}'"


def _describe_relation(relation: Relation) -> str:
    name = f"{relation.schema_name}.{relation.name}" if relation.schema_name else relation.name
    return f"'{name} {relation.alias}'" if relation.alias else f"'{name}'"


def validate_round_trip(sql: str, options: Optional[GeneratorOptions] = None) -> RoundTripResult:
    """
    Parse SQL, regenerate it from the IR and check that nothing was lost.

    The regenerated SQL is parsed again; the round trip is lossless when
    both parses produce the same IR. Identifiers are regenerated unquoted
    where possible so the text reads like the input.
    """
    options = options or GeneratorOptions(quote_style=QuoteStyle.NONE)

    try:
        ir = parse_sql_to_ir(sql)
    except ParseError as e:
        return RoundTripResult(supported=False, errors=[str(e)], hint=e.hint)

    regenerated = ir_to_sql(ir, options)
    try:
        differences = find_ir_differences(ir, parse_sql_to_ir(regenerated))
    except ParseError as e:
        differences = [f"Regenerated SQL does not parse: {e}"]

    if not differences:
        return RoundTripResult(supported=True, regenerated_sql=regenerated)

    logger.warning(f"Round-trip mismatch: {differences}")
    return RoundTripResult(
        supported=False,
        errors=["Round-trip validation failed: regenerated SQL differs from original"],
        differences=differences,
        regenerated_sql=regenerated,
        hint="The query cannot be losslessly converted. Use SQL mode for this query.",
    )
