"""
Fluent, immutable query builder.

Every step returns a new builder; the receiver is never modified, so a
partially built chain can be shared and extended in different directions:

    base = from_("mtcars").filter(col("am") == 1)
    by_cyl = base.group_by("cyl").aggregate(round(avg("mpg")), "avg_mpg").select("cyl")
    top = base.sort_by("mpg", SortDirection.DESC).limit(5)

Checks that depend on the whole query (grouping, sort binding) run in
build(); checks on a single argument run in the step that receives it.
"""

import logging
from typing import Optional, Tuple, Union

from .dsl import Expr, ExprLike, to_node
from .errors import (
    BuildError,
    InvalidLimitError,
    MisplacedAggregateError,
    NonBooleanFilterError,
    ProjectionNotAggregatedError,
    UnboundSortKeyError,
)
from .generator import GeneratorOptions, implicit_name, ir_to_sql
from .ir_types import (
    AliasRef,
    BinaryOp,
    BinaryOperator,
    ColumnRef,
    Projection,
    QueryIR,
    Relation,
    SortDirection,
    SortKey,
    Star,
    contains_aggregate,
)
from .validator import (
    find_implicit_target,
    find_misplaced_star,
    find_nested_aggregate,
    find_ungrouped_projection,
    is_predicate,
    is_sortable,
    make_projection,
    normalize_columns,
    resolve_sort_target,
)

logger = logging.getLogger(__name__)


class QueryBuilder:
    """Persistent builder for a single-relation QueryIR."""

    __slots__ = ("_source", "_items", "_filter", "_group_by", "_sort", "_limit")

    def __init__(self, relation: Union[str, Relation]):
        self._source = _as_relation(relation)
        self._items: Tuple[Tuple[object, Optional[str]], ...] = ()
        self._filter = None
        self._group_by: Tuple[ColumnRef, ...] = ()
        self._sort: Tuple[Tuple[object, SortDirection], ...] = ()
        self._limit: Optional[int] = None

    def _replace(self, **changes) -> "QueryBuilder":
        clone = QueryBuilder.__new__(QueryBuilder)
        for slot in QueryBuilder.__slots__:
            setattr(clone, slot, changes.get(slot, getattr(self, slot)))
        return clone

    # ========== Chain Steps ==========

    def filter(self, condition: ExprLike) -> "QueryBuilder":
        """Add a row filter. Repeated calls are combined with AND."""
        node = to_node(condition)
        if contains_aggregate(node):
            raise MisplacedAggregateError("Aggregate functions are not allowed in a filter")
        if find_misplaced_star(node) is not None:
            raise NonBooleanFilterError("'*' cannot be used as a filter")
        if not is_predicate(node):
            raise NonBooleanFilterError(
                f"Filter must be a boolean expression, got {implicit_name(node)}"
            )
        if self._filter is not None:
            node = BinaryOp(op=BinaryOperator.AND, left=self._filter, right=node)
        return self._replace(_filter=node)

    def group_by(self, *columns: Union[str, Expr, ColumnRef]) -> "QueryBuilder":
        """Set the grouping keys, replacing any previous ones."""
        keys = []
        for column in columns:
            node = to_node(column)
            if not isinstance(node, ColumnRef):
                raise BuildError(f"GROUP BY accepts column references only, got {implicit_name(node)}")
            keys.append(node)
        return self._replace(_group_by=tuple(keys))

    def select(self, expr: ExprLike, alias: Optional[str] = None) -> "QueryBuilder":
        """Append a projection entry."""
        node = _projection_node(expr)
        return self._replace(_items=self._items + ((node, alias),))

    def aggregate(self, expr: ExprLike, alias: str) -> "QueryBuilder":
        """Append an aggregated projection entry under the given alias."""
        node = _projection_node(expr)
        if not contains_aggregate(node):
            raise BuildError(f"aggregate() expects an aggregate expression, got {implicit_name(node)}")
        return self._replace(_items=self._items + ((node, alias),))

    def sort_by(
        self,
        target: Union[str, ExprLike],
        direction: Union[SortDirection, str] = SortDirection.ASC,
    ) -> "QueryBuilder":
        """
        Append a sort key; earlier calls sort first.

        A string names a projection alias when one matches at build time,
        then an unaliased computed entry by its implicit name (e.g. "mpg * 2"),
        otherwise a column.
        """
        if isinstance(direction, str):
            direction = SortDirection(direction.upper())
        if not isinstance(target, str):
            target = to_node(target)
        return self._replace(_sort=self._sort + ((target, direction),))

    def limit(self, n: int) -> "QueryBuilder":
        """Cap the number of returned rows."""
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            raise InvalidLimitError(n)
        return self._replace(_limit=n)

    # ========== Terminal Steps ==========

    def build(self) -> QueryIR:
        """Validate the chain and produce the QueryIR."""
        source = self._source

        if self._items:
            projection = tuple(
                make_projection(normalize_columns(node, source), alias)
                for node, alias in self._items
            )
        else:
            projection = (Projection(expression=Star()),)

        for index, entry in enumerate(projection):
            if find_nested_aggregate(entry.expression) is not None:
                raise MisplacedAggregateError(
                    f"Aggregate functions cannot be nested: {implicit_name(entry.expression)}"
                )
            if find_misplaced_star(entry.expression, allow_root=True) is not None:
                raise BuildError(f"'*' is only allowed alone or inside COUNT (projection {index})")

        group_by = tuple(normalize_columns(key, source) for key in self._group_by)
        filter_expr = normalize_columns(self._filter, source) if self._filter is not None else None

        index = find_ungrouped_projection(projection, group_by)
        if index is not None:
            name = _entry_name(projection[index])
            raise ProjectionNotAggregatedError(
                f"Projection '{name}' must be a GROUP BY key or an aggregate",
                index,
                name,
            )

        aliases = {entry.alias for entry in projection if entry.alias is not None}
        sort = []
        for target, direction in self._sort:
            if isinstance(target, str):
                if target in aliases:
                    target = AliasRef(name=target)
                else:
                    target = find_implicit_target(target, projection) or ColumnRef(name=target)
            else:
                target = resolve_sort_target(normalize_columns(target, source), projection)
            if isinstance(target, Star) or find_misplaced_star(target) is not None:
                raise UnboundSortKeyError("'*' cannot be used as a sort key")
            if not is_sortable(target, projection, group_by):
                raise UnboundSortKeyError(
                    f"Sort key '{_target_name(target)}' is not a projection alias, "
                    "GROUP BY key or aggregate"
                )
            sort.append(SortKey(target=target, direction=direction))

        ir = QueryIR(
            source=source,
            projection=projection,
            filter=filter_expr,
            group_by=group_by,
            sort=tuple(sort),
            limit=self._limit,
        )
        logger.debug(f"Built IR for {source.name} with {len(projection)} projection(s)")
        return ir

    def to_sql(self, options: Optional[GeneratorOptions] = None) -> str:
        """Build and render the query as SQL."""
        return ir_to_sql(self.build(), options)

    def __repr__(self) -> str:
        return f"QueryBuilder({self._source.name!r})"


def from_(relation: Union[str, Relation]) -> QueryBuilder:
    """Start a builder chain on a table, e.g. from_("mtcars") or from_("analytics.mtcars")."""
    return QueryBuilder(relation)


def _as_relation(relation: Union[str, Relation]) -> Relation:
    if isinstance(relation, Relation):
        return relation
    if not isinstance(relation, str) or not relation:
        raise BuildError(f"Relation must be a table name, got {relation!r}")
    schema, _, name = relation.rpartition(".")
    return Relation(name=name, schema_name=schema or None)


def _projection_node(expr: ExprLike):
    node = to_node(expr)
    if find_nested_aggregate(node) is not None:
        raise MisplacedAggregateError(f"Aggregate functions cannot be nested: {implicit_name(node)}")
    return node


def _entry_name(entry: Projection) -> str:
    return entry.alias or implicit_name(entry.expression)


def _target_name(target) -> str:
    if isinstance(target, AliasRef):
        return target.name
    return implicit_name(target)
