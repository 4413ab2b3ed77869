"""Validation logic for the query IR.

The parser and the builder both call into these helpers so that a query is
held to the same rules whichever way it was produced.
"""

from typing import Optional, Sequence

from .generator import implicit_name
from .ir_types import (
    AliasRef,
    BinaryOp,
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
    iter_nodes,
)


def normalize_columns(expr, source: Relation):
    """Drop qualifiers that name the query's own source relation."""
    if isinstance(expr, ColumnRef):
        if expr.relation is not None and expr.relation in source.names():
            return ColumnRef(name=expr.name)
        return expr
    if isinstance(expr, UnaryOp):
        return expr.model_copy(update={"operand": normalize_columns(expr.operand, source)})
    if isinstance(expr, BinaryOp):
        return expr.model_copy(update={
            "left": normalize_columns(expr.left, source),
            "right": normalize_columns(expr.right, source),
        })
    if isinstance(expr, FunctionCall):
        return expr.model_copy(update={"argument": normalize_columns(expr.argument, source)})
    return expr


def make_projection(expr, alias: Optional[str]) -> Projection:
    """Build a Projection, dropping an alias that only repeats the implicit name."""
    if alias is not None and not contains_aggregate(expr) and alias == implicit_name(expr):
        alias = None
    return Projection(expression=expr, alias=alias)


def find_nested_aggregate(expr) -> Optional[FunctionCall]:
    """Return the first aggregate call found inside another aggregate call."""
    for node in iter_nodes(expr):
        if isinstance(node, FunctionCall) and node.function.is_aggregate:
            for inner in iter_nodes(node.argument):
                if isinstance(inner, FunctionCall) and inner.function.is_aggregate:
                    return inner
    return None


def find_misplaced_star(expr, allow_root: bool = False) -> Optional[Star]:
    """Return a `*` that is neither the whole projection nor COUNT's argument."""
    if isinstance(expr, Star):
        return None if allow_root else expr
    for node in iter_nodes(expr):
        if isinstance(node, FunctionCall) and isinstance(node.argument, Star):
            if node.function is not FunctionName.COUNT:
                return node.argument
        elif isinstance(node, UnaryOp) and isinstance(node.operand, Star):
            return node.operand
        elif isinstance(node, BinaryOp):
            for side in (node.left, node.right):
                if isinstance(side, Star):
                    return side
    return None


def is_predicate(expr) -> bool:
    """
    Best-effort static check that an expression can be boolean-valued.

    Columns are accepted since they may hold booleans; numeric and string
    literals, arithmetic, negation and function calls are not.
    """
    if isinstance(expr, LiteralValue):
        return expr.value is None or isinstance(expr.value, bool)
    if isinstance(expr, ColumnRef):
        return True
    if isinstance(expr, UnaryOp):
        return expr.op is UnaryOperator.NOT
    if isinstance(expr, BinaryOp):
        return expr.op.is_comparison or expr.op.is_logical
    return False


def grouping_active(projection: Sequence[Projection], group_by: Sequence[ColumnRef]) -> bool:
    """True when the query aggregates, explicitly or through an aggregate in SELECT."""
    return bool(group_by) or any(contains_aggregate(p.expression) for p in projection)


def is_grouped(expr, group_by: Sequence[ColumnRef]) -> bool:
    """True if expr is built only from group keys, literals and aggregate calls."""
    if isinstance(expr, ColumnRef):
        return expr in group_by
    if isinstance(expr, LiteralValue):
        return True
    if isinstance(expr, Star):
        return False
    if isinstance(expr, FunctionCall):
        return expr.function.is_aggregate or is_grouped(expr.argument, group_by)
    if isinstance(expr, UnaryOp):
        return is_grouped(expr.operand, group_by)
    if isinstance(expr, BinaryOp):
        return is_grouped(expr.left, group_by) and is_grouped(expr.right, group_by)
    return False


def find_ungrouped_projection(
    projection: Sequence[Projection],
    group_by: Sequence[ColumnRef],
) -> Optional[int]:
    """Index of the first projection entry that breaks the grouping rule, if any."""
    if not grouping_active(projection, group_by):
        return None
    for index, entry in enumerate(projection):
        if not is_grouped(entry.expression, group_by):
            return index
    return None


def resolve_sort_target(target, projection: Sequence[Projection]):
    """Bind a sort expression to a projection alias when one computes the same thing."""
    if isinstance(target, AliasRef):
        return target
    for entry in projection:
        if entry.alias is not None and entry.expression == target:
            return AliasRef(name=entry.alias)
    return target


def find_implicit_target(name: str, projection: Sequence[Projection]):
    """Expression of the unaliased computed entry whose implicit name is `name`, if any."""
    for entry in projection:
        if entry.alias is not None or isinstance(entry.expression, (ColumnRef, Star)):
            continue
        if implicit_name(entry.expression) == name:
            return entry.expression
    return None


def is_sortable(
    target,
    projection: Sequence[Projection],
    group_by: Sequence[ColumnRef],
) -> bool:
    """Whether a (resolved) sort target is valid for the query's grouping."""
    if isinstance(target, AliasRef):
        return any(entry.alias == target.name for entry in projection)
    if not grouping_active(projection, group_by):
        return True
    return is_grouped(target, group_by)


def validate_ir(ir: QueryIR) -> None:
    """
    Validate IR constraints for an IR that did not come from the parser or builder.

    Raises ValueError if validation fails.
    """
    for index, entry in enumerate(ir.projection):
        star = find_misplaced_star(entry.expression, allow_root=True)
        if star is not None:
            raise ValueError(f"'*' is only allowed as a SELECT entry or COUNT(*) (projection {index})")
        if find_nested_aggregate(entry.expression) is not None:
            raise ValueError(f"Aggregate functions cannot be nested (projection {index})")

    if ir.filter is not None:
        if contains_aggregate(ir.filter):
            raise ValueError("Aggregate functions are not allowed in the filter")
        if find_misplaced_star(ir.filter) is not None:
            raise ValueError("'*' is not allowed in the filter")

    index = find_ungrouped_projection(ir.projection, ir.group_by)
    if index is not None:
        raise ValueError(
            f"Column '{implicit_name(ir.projection[index].expression)}' in SELECT must be "
            "in GROUP BY or use an aggregate function"
        )

    for key in ir.sort:
        if not isinstance(key.target, AliasRef) and find_misplaced_star(key.target) is not None:
            raise ValueError("'*' is not allowed in ORDER BY")
        if not is_sortable(key.target, ir.projection, ir.group_by):
            raise ValueError(f"ORDER BY target {_describe_sort_key(key)} is not available")


def _describe_sort_key(key: SortKey) -> str:
    if isinstance(key.target, AliasRef):
        return f"'{key.target.name}'"
    return f"'{implicit_name(key.target)}'"
