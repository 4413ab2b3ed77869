"""SQL to IR parser.

Recursive descent over the token stream produced by the tokenizer. Clauses
are read in their fixed order (SELECT, FROM, WHERE, GROUP BY, ORDER BY,
LIMIT); expressions use the usual SQL precedence, loosest first:

    OR < AND < NOT < comparison < + - < * / < unary minus

Parsing is all-or-nothing: the first problem raises a ParseError carrying
the position of the offending token.
"""

import logging
import math
from typing import List, Optional, Tuple

from .errors import (
    ParseError,
    TrailingInputError,
    UnboundAliasError,
    UnexpectedClauseError,
    UnexpectedTokenError,
    UnknownFunctionError,
)
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
    SortDirection,
    SortKey,
    Star,
    UnaryOp,
    UnaryOperator,
    contains_aggregate,
)
from .tokenizer import CLAUSE_KEYWORDS, UNSUPPORTED_CLAUSES, Token, TokenType, tokenize
from .validator import (
    find_implicit_target,
    find_ungrouped_projection,
    is_sortable,
    make_projection,
    normalize_columns,
    resolve_sort_target,
)

logger = logging.getLogger(__name__)

_COMPARISON_OPERATORS = {
    "=": BinaryOperator.EQ,
    "!=": BinaryOperator.NE,
    "<": BinaryOperator.LT,
    "<=": BinaryOperator.LE,
    ">": BinaryOperator.GT,
    ">=": BinaryOperator.GE,
}
_ADDITIVE_OPERATORS = {"+": BinaryOperator.ADD, "-": BinaryOperator.SUB}
_MULTIPLICATIVE_OPERATORS = {"*": BinaryOperator.MUL, "/": BinaryOperator.DIV}

_IDENTIFIER_TYPES = (TokenType.IDENTIFIER, TokenType.QUOTED_IDENTIFIER)


def parse_sql_to_ir(sql: str) -> QueryIR:
    """
    Parse SQL string into QueryIR representation.

    Args:
        sql: A single SELECT statement, optionally terminated by ';'

    Returns:
        QueryIR object

    Raises:
        ParseError: UnexpectedClauseError, UnexpectedTokenError,
            UnknownFunctionError, UnboundAliasError or TrailingInputError
    """
    ir = _Parser(tokenize(sql)).parse_query()
    logger.debug(f"Parsed query on '{ir.source.name}' with {len(ir.projection)} projection(s)")
    return ir


class _Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.index = 0

    # -----------------------------
    # Token helpers
    # -----------------------------

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.index + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.current
        if token.type is not TokenType.EOF:
            self.index += 1
        return token

    def error(self, cls, message: str, token: Token, hint: Optional[str] = None) -> ParseError:
        return cls(message, token.position, token.line, token.column, hint=hint)

    def unexpected(self, token: Token, expected: str) -> ParseError:
        """Error for a token that does not fit; clause keywords get UnexpectedClauseError."""
        if token.type is TokenType.KEYWORD:
            if token.value in UNSUPPORTED_CLAUSES:
                return self.error(
                    UnexpectedClauseError,
                    f"Unsupported clause {token.value}",
                    token,
                    hint=UNSUPPORTED_CLAUSES[token.value],
                )
            if token.value in CLAUSE_KEYWORDS:
                return self.error(
                    UnexpectedClauseError,
                    f"Unexpected {token.value} clause; expected {expected}",
                    token,
                    hint="Clauses must appear in the order SELECT, FROM, WHERE, GROUP BY, ORDER BY, LIMIT",
                )
        return self.error(UnexpectedTokenError, f"Unexpected {_describe(token)}; expected {expected}", token)

    def expect_keyword(self, name: str) -> Token:
        if not self.current.is_keyword(name):
            raise self.unexpected(self.current, name)
        return self.advance()

    def expect(self, token_type: TokenType, expected: str) -> Token:
        if self.current.type is not token_type:
            raise self.unexpected(self.current, expected)
        return self.advance()

    def expect_identifier(self, expected: str = "an identifier") -> Token:
        if self.current.type not in _IDENTIFIER_TYPES:
            raise self.unexpected(self.current, expected)
        return self.advance()

    # -----------------------------
    # Clauses
    # -----------------------------

    def parse_query(self) -> QueryIR:
        self.expect_keyword("SELECT")
        if self.current.is_keyword("DISTINCT", "ALL"):
            raise self.error(
                UnexpectedTokenError,
                f"SELECT {self.current.value} is not supported",
                self.current,
                hint="Use GROUP BY to de-duplicate rows",
            )

        items = self.parse_select_list()
        self.expect_keyword("FROM")
        source = self.parse_relation()
        projection = [
            make_projection(normalize_columns(expr, source), alias) for expr, alias, _ in items
        ]

        filter_expr = None
        filter_token = None
        if self.current.is_keyword("WHERE"):
            self.advance()
            filter_token = self.current
            filter_expr = self.parse_expression()

        group_by: List[ColumnRef] = []
        if self.current.is_keyword("GROUP"):
            self.advance()
            self.expect_keyword("BY")
            group_by = self.parse_group_by()

        sort_items: List[Tuple[object, SortDirection, Token, bool]] = []
        if self.current.is_keyword("ORDER"):
            self.advance()
            self.expect_keyword("BY")
            sort_items = self.parse_order_by(projection)

        limit = None
        if self.current.is_keyword("LIMIT"):
            self.advance()
            limit = self.parse_limit()

        terminated = self.current.type is TokenType.SEMICOLON
        if terminated:
            self.advance()
        self.parse_end(terminated)

        return self.assemble(source, items, projection, filter_expr, filter_token, group_by, sort_items, limit)

    def parse_end(self, terminated: bool) -> None:
        """Only EOF may follow; after the terminator nothing at all may."""
        token = self.current
        if token.type is TokenType.EOF:
            return
        if not terminated and token.type is TokenType.KEYWORD and (
            token.value in CLAUSE_KEYWORDS or token.value in UNSUPPORTED_CLAUSES
        ):
            raise self.unexpected(token, "end of query")
        raise self.error(
            TrailingInputError,
            f"Unexpected trailing input starting at {_describe(token)}",
            token,
        )

    def parse_select_list(self) -> List[Tuple[object, Optional[str], Token]]:
        """Parse SELECT entries into (expression, alias, first token) triples."""
        items = []
        while True:
            start = self.current
            if start.is_operator("*"):
                self.advance()
                items.append((Star(), None, start))
            else:
                expr = self.parse_expression()
                items.append((expr, self.parse_alias(), start))
            if self.current.type is not TokenType.COMMA:
                return items
            self.advance()

    def parse_alias(self) -> Optional[str]:
        if self.current.is_keyword("AS"):
            self.advance()
            return self.expect_identifier("an alias after AS").value
        if self.current.type in _IDENTIFIER_TYPES:
            return self.advance().value
        return None

    def parse_relation(self) -> Relation:
        if self.current.type is TokenType.LPAREN:
            raise self.error(
                UnexpectedTokenError,
                "Subqueries are not supported in FROM",
                self.current,
                hint="Query a named relation",
            )
        name = self.expect_identifier("a relation name").value
        schema_name = None
        if self.current.type is TokenType.DOT:
            self.advance()
            schema_name, name = name, self.expect_identifier("a relation name").value
        alias = self.parse_alias()
        return Relation(name=name, schema_name=schema_name, alias=alias)

    def parse_group_by(self) -> List[ColumnRef]:
        columns = []
        while True:
            token = self.current
            expr = self.parse_expression()
            if not isinstance(expr, ColumnRef):
                raise self.error(UnexpectedTokenError, "GROUP BY entries must be column references", token)
            columns.append(expr)
            if self.current.type is not TokenType.COMMA:
                return columns
            self.advance()

    def parse_order_by(self, projection: List[Projection]) -> List[Tuple[object, SortDirection, Token, bool]]:
        """Parse ORDER BY entries into (target, direction, first token, is bare name)."""
        aliases = {p.alias for p in projection if p.alias is not None}
        items = []
        while True:
            token = self.current
            bare = (
                token.type in _IDENTIFIER_TYPES
                and self.peek().type not in (TokenType.DOT, TokenType.LPAREN, TokenType.OPERATOR)
            )
            implied = find_implicit_target(token.value, projection) if bare else None
            if bare and token.value in aliases:
                self.advance()
                target = AliasRef(name=token.value)
            elif implied is not None:
                self.advance()
                target = implied
            else:
                target = self.parse_expression()

            direction = SortDirection.ASC
            if self.current.is_keyword("ASC", "DESC"):
                direction = SortDirection(self.advance().value)
            items.append((target, direction, token, bare))

            if self.current.type is not TokenType.COMMA:
                return items
            self.advance()

    def parse_limit(self) -> int:
        token = self.current
        if token.type is not TokenType.NUMBER or not token.value.isdigit():
            raise self.error(UnexpectedTokenError, "LIMIT requires a non-negative integer", token)
        self.advance()
        return int(token.value)

    # -----------------------------
    # Expressions
    # -----------------------------

    def parse_expression(self):
        return self.parse_or()

    def parse_or(self):
        left = self.parse_and()
        while self.current.is_keyword("OR"):
            self.advance()
            left = BinaryOp(op=BinaryOperator.OR, left=left, right=self.parse_and())
        return left

    def parse_and(self):
        left = self.parse_not()
        while self.current.is_keyword("AND"):
            self.advance()
            left = BinaryOp(op=BinaryOperator.AND, left=left, right=self.parse_not())
        return left

    def parse_not(self):
        if self.current.is_keyword("NOT"):
            self.advance()
            return UnaryOp(op=UnaryOperator.NOT, operand=self.parse_not())
        return self.parse_comparison()

    def parse_comparison(self):
        left = self.parse_additive()
        token = self.current
        if token.type is TokenType.OPERATOR and token.value in _COMPARISON_OPERATORS:
            self.advance()
            right = self.parse_additive()
            left = BinaryOp(op=_COMPARISON_OPERATORS[token.value], left=left, right=right)
            following = self.current
            if following.type is TokenType.OPERATOR and following.value in _COMPARISON_OPERATORS:
                raise self.error(
                    UnexpectedTokenError,
                    "Comparisons cannot be chained",
                    following,
                    hint="Combine comparisons with AND",
                )
        if token.is_keyword("IS", "IN", "LIKE", "BETWEEN"):
            raise self.error(UnexpectedTokenError, f"Operator {token.value} is not supported", token)
        return left

    def parse_additive(self):
        left = self.parse_multiplicative()
        while self.current.type is TokenType.OPERATOR and self.current.value in _ADDITIVE_OPERATORS:
            op = _ADDITIVE_OPERATORS[self.advance().value]
            left = BinaryOp(op=op, left=left, right=self.parse_multiplicative())
        return left

    def parse_multiplicative(self):
        left = self.parse_unary()
        while self.current.type is TokenType.OPERATOR and self.current.value in _MULTIPLICATIVE_OPERATORS:
            op = _MULTIPLICATIVE_OPERATORS[self.advance().value]
            left = BinaryOp(op=op, left=left, right=self.parse_unary())
        return left

    def number_value(self, token: Token):
        text = token.value
        if text.isdigit():
            return int(text)
        try:
            value = float(text)
        except ValueError:
            raise self.error(UnexpectedTokenError, f"Malformed number '{text}'", token) from None
        if not math.isfinite(value):
            raise self.error(UnexpectedTokenError, f"Number '{text}' is out of range", token)
        return value

    def parse_unary(self):
        if self.current.is_operator("-"):
            self.advance()
            if self.current.type is TokenType.NUMBER:
                return LiteralValue(value=-self.number_value(self.advance()))
            return UnaryOp(op=UnaryOperator.NEG, operand=self.parse_unary())
        return self.parse_primary()

    def parse_primary(self):
        token = self.current

        if token.type is TokenType.NUMBER:
            self.advance()
            return LiteralValue(value=self.number_value(token))

        if token.type is TokenType.STRING:
            self.advance()
            return LiteralValue(value=token.value)

        if token.is_keyword("TRUE", "FALSE"):
            self.advance()
            return LiteralValue(value=token.value == "TRUE")

        if token.is_keyword("NULL"):
            self.advance()
            return LiteralValue(value=None)

        if token.type is TokenType.LPAREN:
            self.advance()
            if self.current.is_keyword("SELECT"):
                raise self.error(UnexpectedTokenError, "Subqueries are not supported", self.current)
            expr = self.parse_expression()
            self.expect(TokenType.RPAREN, "')'")
            return expr

        if token.type is TokenType.IDENTIFIER and self.peek().type is TokenType.LPAREN:
            return self.parse_function_call()

        if token.type in _IDENTIFIER_TYPES:
            self.advance()
            if self.current.type is TokenType.DOT:
                self.advance()
                column = self.expect_identifier("a column name")
                return ColumnRef(name=column.value, relation=token.value)
            return ColumnRef(name=token.value)

        if token.is_keyword("CASE", "OVER"):
            raise self.error(UnexpectedTokenError, f"{token.value} expressions are not supported", token)

        raise self.unexpected(token, "an expression")

    def parse_function_call(self) -> FunctionCall:
        name_token = self.advance()
        try:
            function = FunctionName(name_token.value.upper())
        except ValueError:
            raise UnknownFunctionError(
                name_token.value, name_token.position, name_token.line, name_token.column
            ) from None
        self.advance()  # (

        if self.current.is_keyword("DISTINCT"):
            raise self.error(UnexpectedTokenError, f"{function.value}(DISTINCT ...) is not supported", self.current)

        argument_token = self.current
        if function is FunctionName.COUNT and argument_token.is_operator("*"):
            self.advance()
            argument = Star()
        else:
            argument = self.parse_expression()

        precision = None
        if self.current.type is TokenType.COMMA:
            if function is not FunctionName.ROUND:
                raise self.error(
                    UnexpectedTokenError, f"{function.value} takes a single argument", self.current
                )
            self.advance()
            precision = self.parse_precision()
        self.expect(TokenType.RPAREN, "')'")

        if function.is_aggregate and contains_aggregate(argument):
            raise self.error(UnexpectedTokenError, "Aggregate functions cannot be nested", argument_token)
        return FunctionCall(function=function, argument=argument, precision=precision)

    def parse_precision(self) -> int:
        token = self.current
        negative = False
        if token.is_operator("-"):
            self.advance()
            negative = True
        number = self.current
        if number.type is not TokenType.NUMBER or not number.value.isdigit():
            raise self.error(UnexpectedTokenError, "ROUND precision must be an integer literal", token)
        self.advance()
        return -int(number.value) if negative else int(number.value)

    # -----------------------------
    # Assembly
    # -----------------------------

    def assemble(self, source, items, projection, filter_expr, filter_token, group_by, sort_items, limit) -> QueryIR:
        """Normalise the remaining clauses and enforce the IR invariants."""
        group_by = [normalize_columns(column, source) for column in group_by]

        if filter_expr is not None:
            filter_expr = normalize_columns(filter_expr, source)
            if contains_aggregate(filter_expr):
                raise self.error(
                    UnexpectedTokenError,
                    "Aggregate functions are not allowed in WHERE",
                    filter_token,
                )

        index = find_ungrouped_projection(projection, group_by)
        if index is not None:
            raise self.error(
                UnexpectedTokenError,
                "SELECT entry must appear in GROUP BY or be used in an aggregate function",
                items[index][2],
            )

        sort: List[SortKey] = []
        for target, direction, token, bare in sort_items:
            target = resolve_sort_target(normalize_columns(target, source), projection)
            if not is_sortable(target, projection, group_by):
                if bare:
                    raise UnboundAliasError(token.value, token.position, token.line, token.column)
                raise self.error(
                    UnexpectedTokenError,
                    "ORDER BY expression must be grouped or aggregated",
                    token,
                )
            sort.append(SortKey(target=target, direction=direction))

        return QueryIR(
            source=source,
            projection=tuple(projection),
            filter=filter_expr,
            group_by=tuple(group_by),
            sort=tuple(sort),
            limit=limit,
        )


def _describe(token: Token) -> str:
    if token.type is TokenType.EOF:
        return "end of input"
    if token.type is TokenType.STRING:
        return f"string '{token.value}'"
    return f"'{token.value}'"
