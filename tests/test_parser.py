"""Unit tests for the SQL → IR parser."""

import pytest
from sqlchain import (
    ir_to_sql,
    parse_sql_to_ir,
    ParseError,
    TrailingInputError,
    UnboundAliasError,
    UnexpectedClauseError,
    UnexpectedTokenError,
    UnknownFunctionError,
)
from sqlchain.ir_types import (
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
    SortDirection,
    SortKey,
    Star,
    UnaryOp,
    UnaryOperator,
)

SCENARIO_SQL = (
    "SELECT ROUND(AVG(mpg)) as avg_mpg, cyl FROM mtcars "
    "WHERE am = 1 GROUP BY cyl ORDER BY avg_mpg DESC;"
)


def _where(condition: str):
    return parse_sql_to_ir(f"SELECT * FROM t WHERE {condition}").filter


class TestBasicSelect:
    """Test basic SELECT queries."""

    def test_select_star(self):
        """Test SELECT *"""
        ir = parse_sql_to_ir("SELECT * FROM mtcars")
        assert ir.projection == (Projection(expression=Star()),)
        assert ir.source == Relation(name="mtcars")
        assert ir.filter is None
        assert ir.group_by == ()
        assert ir.sort == ()
        assert ir.limit is None

    def test_select_columns(self):
        """Test SELECT with specific columns"""
        ir = parse_sql_to_ir("SELECT mpg, cyl FROM mtcars")
        assert [p.expression for p in ir.projection] == [ColumnRef(name="mpg"), ColumnRef(name="cyl")]
        assert all(p.alias is None for p in ir.projection)

    def test_select_with_alias(self):
        """Test SELECT with AS alias and bare alias"""
        ir = parse_sql_to_ir("SELECT mpg AS miles, hp horsepower FROM mtcars")
        assert ir.projection[0].alias == "miles"
        assert ir.projection[1].alias == "horsepower"
        assert ir.projection[1].expression == ColumnRef(name="hp")

    def test_alias_equal_to_column_name_is_dropped(self):
        """Test an alias that only repeats the column name is not kept"""
        ir = parse_sql_to_ir("SELECT cyl AS cyl FROM mtcars")
        assert ir.projection[0].alias is None

    def test_keywords_case_insensitive(self):
        """Test lower-case keywords"""
        ir = parse_sql_to_ir("select mpg from mtcars where am = 1 limit 5")
        assert ir.limit == 5
        assert ir.filter == BinaryOp(op=BinaryOperator.EQ, left=ColumnRef(name="am"), right=LiteralValue(value=1))

    def test_trailing_semicolon(self):
        """Test a single trailing semicolon is accepted"""
        ir = parse_sql_to_ir("SELECT mpg FROM mtcars;")
        assert ir.source.name == "mtcars"

    def test_quoted_identifiers(self):
        """Test quoted column and table names"""
        ir = parse_sql_to_ir('SELECT "my col", `order` FROM [car data]')
        assert ir.projection[0].expression == ColumnRef(name="my col")
        assert ir.projection[1].expression == ColumnRef(name="order")
        assert ir.source.name == "car data"

    def test_schema_qualified_relation(self):
        """Test schema.table with a table alias"""
        ir = parse_sql_to_ir("SELECT * FROM analytics.mtcars m")
        assert ir.source == Relation(name="mtcars", schema_name="analytics", alias="m")


class TestQualifiedColumns:
    """Test column qualifier normalisation."""

    def test_table_qualifier_is_dropped(self):
        """Test mtcars.mpg becomes mpg"""
        ir = parse_sql_to_ir("SELECT mtcars.mpg FROM mtcars")
        assert ir.projection[0].expression == ColumnRef(name="mpg")

    def test_alias_qualifier_is_dropped(self):
        """Test m.mpg becomes mpg when m aliases the source"""
        ir = parse_sql_to_ir("SELECT m.mpg FROM mtcars m WHERE m.am = 1")
        assert ir.projection[0].expression == ColumnRef(name="mpg")
        assert ir.filter.left == ColumnRef(name="am")

    def test_foreign_qualifier_is_kept(self):
        """Test a qualifier that does not name the source stays"""
        ir = parse_sql_to_ir("SELECT other.mpg FROM mtcars")
        assert ir.projection[0].expression == ColumnRef(name="mpg", relation="other")


class TestScenario:
    """Test the reference aggregation query."""

    def test_scenario_parses_to_expected_ir(self):
        """Test the full IR of the grouped, sorted scenario query"""
        expected = QueryIR(
            source=Relation(name="mtcars"),
            projection=(
                Projection(
                    expression=FunctionCall(
                        function=FunctionName.ROUND,
                        argument=FunctionCall(function=FunctionName.AVG, argument=ColumnRef(name="mpg")),
                    ),
                    alias="avg_mpg",
                ),
                Projection(expression=ColumnRef(name="cyl")),
            ),
            filter=BinaryOp(op=BinaryOperator.EQ, left=ColumnRef(name="am"), right=LiteralValue(value=1)),
            group_by=(ColumnRef(name="cyl"),),
            sort=(SortKey(target=AliasRef(name="avg_mpg"), direction=SortDirection.DESC),),
        )
        assert parse_sql_to_ir(SCENARIO_SQL) == expected

    def test_scenario_keeps_integer_literal(self):
        """Test am = 1 stays an integer comparison"""
        ir = parse_sql_to_ir(SCENARIO_SQL)
        value = ir.filter.right.value
        assert value == 1
        assert isinstance(value, int) and not isinstance(value, bool)

    def test_round_without_precision(self):
        """Test ROUND with a single argument records no precision"""
        ir = parse_sql_to_ir(SCENARIO_SQL)
        assert ir.projection[0].expression.precision is None


class TestExpressions:
    """Test expression parsing and precedence."""

    def test_multiplication_binds_tighter_than_addition(self):
        """Test a + b * c > 10"""
        expr = _where("a + b * c > 10")
        assert expr == BinaryOp(
            op=BinaryOperator.GT,
            left=BinaryOp(
                op=BinaryOperator.ADD,
                left=ColumnRef(name="a"),
                right=BinaryOp(op=BinaryOperator.MUL, left=ColumnRef(name="b"), right=ColumnRef(name="c")),
            ),
            right=LiteralValue(value=10),
        )

    def test_left_associative_subtraction(self):
        """Test a - b - c groups as (a - b) - c"""
        ir = parse_sql_to_ir("SELECT a - b - c AS d FROM t")
        expr = ir.projection[0].expression
        assert expr.op is BinaryOperator.SUB
        assert expr.left == BinaryOp(op=BinaryOperator.SUB, left=ColumnRef(name="a"), right=ColumnRef(name="b"))
        assert expr.right == ColumnRef(name="c")

    def test_and_binds_tighter_than_or(self):
        """Test a = 1 OR b = 2 AND c = 3"""
        expr = _where("a = 1 OR b = 2 AND c = 3")
        assert expr.op is BinaryOperator.OR
        assert expr.right.op is BinaryOperator.AND

    def test_parentheses_override_precedence(self):
        """Test (a = 1 OR b = 2) AND c = 3"""
        expr = _where("(a = 1 OR b = 2) AND c = 3")
        assert expr.op is BinaryOperator.AND
        assert expr.left.op is BinaryOperator.OR

    def test_not_applies_to_comparison(self):
        """Test NOT a = 1 AND b = 2 negates only the first comparison"""
        expr = _where("NOT a = 1 AND b = 2")
        assert expr.op is BinaryOperator.AND
        assert expr.left == UnaryOp(
            op=UnaryOperator.NOT,
            operand=BinaryOp(op=BinaryOperator.EQ, left=ColumnRef(name="a"), right=LiteralValue(value=1)),
        )

    def test_negative_number_is_literal(self):
        """Test -5 folds into a negative literal"""
        expr = _where("x > -5")
        assert expr.right == LiteralValue(value=-5)

    def test_negated_column_is_unary(self):
        """Test -mpg is a negation node"""
        ir = parse_sql_to_ir("SELECT -mpg AS neg FROM mtcars")
        assert ir.projection[0].expression == UnaryOp(op=UnaryOperator.NEG, operand=ColumnRef(name="mpg"))

    def test_literals(self):
        """Test string, float, boolean and NULL literals"""
        assert _where("name = 'it''s'").right == LiteralValue(value="it's")
        assert _where("wt > 2.5").right == LiteralValue(value=2.5)
        assert _where("flag = TRUE").right.value is True
        assert _where("flag = NULL").right == LiteralValue(value=None)

    def test_not_equal_spellings(self):
        """Test <> and != both parse to NE"""
        assert _where("a <> 1").op is BinaryOperator.NE
        assert _where("a != 1").op is BinaryOperator.NE

    def test_chained_comparison_rejected(self):
        """Test a < b < c is rejected"""
        with pytest.raises(UnexpectedTokenError):
            parse_sql_to_ir("SELECT * FROM t WHERE a < b < c")

    def test_unsupported_operators_rejected(self):
        """Test IS / IN / LIKE"""
        for condition in ("a IS NULL", "a IN (1, 2)", "a LIKE 'x%'"):
            with pytest.raises(UnexpectedTokenError):
                parse_sql_to_ir(f"SELECT * FROM t WHERE {condition}")


class TestFunctions:
    """Test function calls."""

    def test_count_star(self):
        """Test COUNT(*)"""
        ir = parse_sql_to_ir("SELECT COUNT(*) FROM mtcars")
        assert ir.projection[0].expression == FunctionCall(function=FunctionName.COUNT, argument=Star())

    def test_lowercase_function_names(self):
        """Test function names are case-insensitive"""
        ir = parse_sql_to_ir("SELECT count(*) AS n, avg(mpg) AS m FROM mtcars")
        assert ir.projection[0].expression.function is FunctionName.COUNT
        assert ir.projection[1].expression.function is FunctionName.AVG

    def test_all_aggregates(self):
        """Test SUM, AVG, MIN, MAX"""
        ir = parse_sql_to_ir("SELECT SUM(hp), AVG(hp), MIN(hp), MAX(hp) FROM mtcars")
        assert [p.expression.function for p in ir.projection] == [
            FunctionName.SUM, FunctionName.AVG, FunctionName.MIN, FunctionName.MAX,
        ]

    def test_round_with_precision(self):
        """Test ROUND(x, 2) and a negative precision"""
        ir = parse_sql_to_ir("SELECT ROUND(AVG(mpg), 2) AS m, ROUND(SUM(hp), -1) AS h FROM mtcars")
        assert ir.projection[0].expression.precision == 2
        assert ir.projection[1].expression.precision == -1

    def test_unknown_function(self):
        """Test an unsupported function name"""
        with pytest.raises(UnknownFunctionError) as exc_info:
            parse_sql_to_ir("SELECT MEDIAN(mpg) FROM mtcars")
        assert exc_info.value.name == "MEDIAN"
        assert exc_info.value.position == 7
        assert "COUNT" in exc_info.value.hint

    def test_nested_aggregate_rejected(self):
        """Test SUM(AVG(x)) points at the inner aggregate"""
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_sql_to_ir("SELECT SUM(AVG(mpg)) FROM mtcars")
        assert exc_info.value.position == 11

    def test_round_may_wrap_aggregate(self):
        """Test ROUND is not an aggregate"""
        ir = parse_sql_to_ir("SELECT ROUND(MAX(hp)) AS top FROM mtcars")
        assert ir.projection[0].expression.argument.function is FunctionName.MAX

    def test_count_distinct_rejected(self):
        """Test COUNT(DISTINCT x)"""
        with pytest.raises(UnexpectedTokenError):
            parse_sql_to_ir("SELECT COUNT(DISTINCT cyl) FROM mtcars")

    def test_extra_argument_rejected(self):
        """Test only ROUND takes a second argument"""
        with pytest.raises(UnexpectedTokenError):
            parse_sql_to_ir("SELECT SUM(hp, 2) FROM mtcars")


class TestGrouping:
    """Test GROUP BY and aggregate rules."""

    def test_group_by_with_count(self):
        """Test grouped key plus aggregate"""
        ir = parse_sql_to_ir("SELECT cyl, COUNT(*) AS n FROM mtcars GROUP BY cyl")
        assert ir.group_by == (ColumnRef(name="cyl"),)
        assert ir.projection[1].alias == "n"

    def test_multiple_group_keys(self):
        """Test GROUP BY with two keys"""
        ir = parse_sql_to_ir("SELECT cyl, gear, COUNT(*) AS n FROM mtcars GROUP BY cyl, gear")
        assert ir.group_by == (ColumnRef(name="cyl"), ColumnRef(name="gear"))

    def test_aggregate_without_group_by(self):
        """Test a whole-table aggregate"""
        ir = parse_sql_to_ir("SELECT AVG(hp) FROM mtcars")
        assert ir.group_by == ()

    def test_literal_allowed_in_grouped_projection(self):
        """Test literals need no grouping"""
        ir = parse_sql_to_ir("SELECT cyl, 1 AS one, COUNT(*) AS n FROM mtcars GROUP BY cyl")
        assert ir.projection[1] == Projection(expression=LiteralValue(value=1), alias="one")

    def test_ungrouped_column_rejected(self):
        """Test a column that is neither grouped nor aggregated"""
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_sql_to_ir("SELECT cyl, mpg FROM mtcars GROUP BY cyl")
        assert exc_info.value.position == 12

    def test_column_mixed_with_aggregate_rejected(self):
        """Test an aggregate makes the query grouped"""
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_sql_to_ir("SELECT mpg, AVG(hp) FROM mtcars")
        assert exc_info.value.position == 7

    def test_aggregate_in_where_rejected(self):
        """Test aggregates cannot filter rows"""
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_sql_to_ir("SELECT cyl FROM mtcars WHERE AVG(mpg) > 20")
        assert exc_info.value.position == 29

    def test_group_by_expression_rejected(self):
        """Test GROUP BY accepts columns only"""
        with pytest.raises(UnexpectedTokenError):
            parse_sql_to_ir("SELECT COUNT(*) FROM mtcars GROUP BY cyl + 1")


class TestOrderBy:
    """Test ORDER BY resolution."""

    def test_order_by_alias(self):
        """Test a bare alias becomes an alias reference, ASC by default"""
        ir = parse_sql_to_ir("SELECT AVG(mpg) AS m, cyl FROM mtcars GROUP BY cyl ORDER BY m")
        assert ir.sort == (SortKey(target=AliasRef(name="m"), direction=SortDirection.ASC),)

    def test_order_by_expression_binds_to_alias(self):
        """Test ORDER BY AVG(mpg) binds to the projection computing it"""
        ir = parse_sql_to_ir("SELECT AVG(mpg) AS m, cyl FROM mtcars GROUP BY cyl ORDER BY AVG(mpg) DESC")
        assert ir.sort == (SortKey(target=AliasRef(name="m"), direction=SortDirection.DESC),)

    def test_order_by_columns_keeps_order(self):
        """Test primary and secondary sort keys"""
        ir = parse_sql_to_ir("SELECT mpg FROM mtcars ORDER BY hp DESC, mpg")
        assert ir.sort == (
            SortKey(target=ColumnRef(name="hp"), direction=SortDirection.DESC),
            SortKey(target=ColumnRef(name="mpg"), direction=SortDirection.ASC),
        )

    def test_order_by_group_key(self):
        """Test a grouped column can be sorted on"""
        ir = parse_sql_to_ir("SELECT cyl, COUNT(*) AS n FROM mtcars GROUP BY cyl ORDER BY cyl DESC")
        assert ir.sort[0].target == ColumnRef(name="cyl")

    def test_order_by_unprojected_aggregate(self):
        """Test an aggregate that is not projected can still be sorted on"""
        ir = parse_sql_to_ir("SELECT cyl FROM mtcars GROUP BY cyl ORDER BY COUNT(*) DESC")
        assert ir.sort[0].target == FunctionCall(function=FunctionName.COUNT, argument=Star())

    def test_unbound_alias(self):
        """Test a bare name a grouped query cannot sort on"""
        with pytest.raises(UnboundAliasError) as exc_info:
            parse_sql_to_ir("SELECT cyl, COUNT(*) AS n FROM mtcars GROUP BY cyl ORDER BY mpg")
        assert exc_info.value.name == "mpg"
        assert exc_info.value.position == 60

    def test_ungrouped_sort_expression(self):
        """Test an ungrouped expression in a grouped query"""
        with pytest.raises(UnexpectedTokenError):
            parse_sql_to_ir("SELECT cyl, COUNT(*) AS n FROM mtcars GROUP BY cyl ORDER BY mpg + 1")

    def test_order_by_implicit_name(self):
        """Test a quoted name matching an unaliased expression sorts on that expression"""
        ir = parse_sql_to_ir('SELECT mpg * 2 FROM mtcars ORDER BY "mpg * 2" DESC')
        assert ir.sort == (
            SortKey(
                target=BinaryOp(op=BinaryOperator.MUL, left=ColumnRef(name="mpg"), right=LiteralValue(value=2)),
                direction=SortDirection.DESC,
            ),
        )

    def test_order_by_implicit_aggregate_name(self):
        """Test an unaliased aggregate in a grouped query is reachable by its implicit name"""
        ir = parse_sql_to_ir('SELECT cyl, COUNT(*) FROM mtcars GROUP BY cyl ORDER BY "COUNT(*)"')
        assert ir.sort[0].target == FunctionCall(function=FunctionName.COUNT, argument=Star())

    def test_qualified_column_shadowed_by_alias(self):
        """Test a qualified sort column stays a column when an alias has its name"""
        ir = parse_sql_to_ir("SELECT hp AS mpg FROM mtcars ORDER BY mtcars.mpg")
        assert ir.sort[0].target == ColumnRef(name="mpg")
        sql = ir_to_sql(ir)
        assert sql.endswith('ORDER BY "mtcars"."mpg" ASC')
        assert parse_sql_to_ir(sql) == ir


class TestLimit:
    """Test LIMIT."""

    def test_limit(self):
        """Test LIMIT n"""
        assert parse_sql_to_ir("SELECT * FROM mtcars LIMIT 10").limit == 10

    def test_limit_zero(self):
        """Test LIMIT 0"""
        assert parse_sql_to_ir("SELECT * FROM mtcars LIMIT 0").limit == 0

    def test_negative_limit_rejected(self):
        """Test LIMIT -1"""
        with pytest.raises(UnexpectedTokenError):
            parse_sql_to_ir("SELECT * FROM mtcars LIMIT -1")

    def test_fractional_limit_rejected(self):
        """Test LIMIT 2.5"""
        with pytest.raises(UnexpectedTokenError):
            parse_sql_to_ir("SELECT * FROM mtcars LIMIT 2.5")


class TestParseErrors:
    """Test error kinds and positions."""

    def test_missing_select_list(self):
        """Test SELECT FROM reports the FROM clause"""
        with pytest.raises(UnexpectedClauseError) as exc_info:
            parse_sql_to_ir("SELECT FROM mtcars")
        error = exc_info.value
        assert error.position == 7
        assert error.line == 1
        assert error.column == 8
        assert "(line 1, column 8)" in str(error)

    def test_clause_out_of_order(self):
        """Test WHERE after LIMIT"""
        with pytest.raises(UnexpectedClauseError) as exc_info:
            parse_sql_to_ir("SELECT mpg FROM mtcars LIMIT 5 WHERE am = 1")
        assert exc_info.value.position == 31

    def test_group_by_after_order_by(self):
        """Test GROUP BY after ORDER BY"""
        with pytest.raises(UnexpectedClauseError):
            parse_sql_to_ir("SELECT cyl FROM mtcars ORDER BY cyl GROUP BY cyl")

    def test_having_rejected_with_hint(self):
        """Test HAVING is an unsupported clause"""
        with pytest.raises(UnexpectedClauseError) as exc_info:
            parse_sql_to_ir("SELECT cyl, COUNT(*) AS n FROM mtcars GROUP BY cyl HAVING COUNT(*) > 1")
        assert "HAVING" in exc_info.value.hint

    def test_join_rejected(self):
        """Test JOIN is an unsupported clause"""
        with pytest.raises(UnexpectedClauseError) as exc_info:
            parse_sql_to_ir("SELECT * FROM a JOIN b ON a.id = b.id")
        assert exc_info.value.hint is not None

    def test_position_on_later_line(self):
        """Test line/column of an error on the third line"""
        with pytest.raises(UnexpectedClauseError) as exc_info:
            parse_sql_to_ir("SELECT mpg\nFROM mtcars\nHAVING mpg > 1")
        assert exc_info.value.line == 3
        assert exc_info.value.column == 1

    def test_trailing_input(self):
        """Test leftover tokens after the last clause"""
        with pytest.raises(TrailingInputError):
            parse_sql_to_ir("SELECT mpg FROM mtcars m extra")

    def test_trailing_input_after_semicolon(self):
        """Test nothing may follow the semicolon"""
        with pytest.raises(TrailingInputError):
            parse_sql_to_ir("SELECT mpg FROM mtcars; garbage")

    def test_out_of_range_number(self):
        """Test a number that overflows to infinity"""
        with pytest.raises(UnexpectedTokenError) as exc_info:
            parse_sql_to_ir("SELECT a FROM t WHERE a > 1e999")
        assert exc_info.value.message == "Number '1e999' is out of range"
        assert exc_info.value.position == 26

    def test_second_statement_is_trailing_input(self):
        """Test a second statement after the semicolon"""
        with pytest.raises(TrailingInputError) as exc_info:
            parse_sql_to_ir("SELECT a FROM t; SELECT b FROM t")
        assert exc_info.value.position == 17
        assert exc_info.value.column == 18

    def test_clause_after_semicolon_is_trailing_input(self):
        """Test a clause keyword after the semicolon is not read as a misplaced clause"""
        with pytest.raises(TrailingInputError):
            parse_sql_to_ir("SELECT a FROM t; WHERE a = 1")

    def test_select_distinct_rejected(self):
        """Test SELECT DISTINCT"""
        with pytest.raises(UnexpectedTokenError):
            parse_sql_to_ir("SELECT DISTINCT cyl FROM mtcars")

    def test_subquery_rejected(self):
        """Test a subquery in FROM"""
        with pytest.raises(UnexpectedTokenError):
            parse_sql_to_ir("SELECT * FROM (SELECT * FROM mtcars) sub")

    def test_missing_from(self):
        """Test a query without FROM"""
        with pytest.raises(UnexpectedTokenError):
            parse_sql_to_ir("SELECT mpg")

    def test_all_parse_errors_share_base(self):
        """Test every parse failure is a ParseError"""
        for sql in ("SELECT FROM t", "SELECT MEDIAN(a) FROM t", "SELECT a FROM t b c", "SELECT 'x"):
            with pytest.raises(ParseError):
                parse_sql_to_ir(sql)
