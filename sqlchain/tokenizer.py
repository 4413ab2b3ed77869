"""SQL tokenizer.

Lexing is done by sqlglot's tokenizer, restricted to the grammar the parser
supports. Its tokens are mapped onto a small set of token types, each
carrying the character offset and 1-based line/column where it starts so
the parser can report errors precisely.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List

from sqlglot.errors import TokenError
from sqlglot.tokens import Tokenizer
from sqlglot.tokens import TokenType as SqlglotTokenType

from .errors import UnexpectedTokenError


class TokenType(Enum):
    KEYWORD = "keyword"
    IDENTIFIER = "identifier"
    QUOTED_IDENTIFIER = "quoted_identifier"
    NUMBER = "number"
    STRING = "string"
    OPERATOR = "operator"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    DOT = "."
    SEMICOLON = ";"
    EOF = "eof"


# Clause keywords understood by the parser, in the order they must appear.
CLAUSE_KEYWORDS = ("SELECT", "FROM", "WHERE", "GROUP", "ORDER", "LIMIT")

# Clause-level keywords recognised only so they can be rejected with a hint.
UNSUPPORTED_CLAUSES = {
    "HAVING": "HAVING is not supported; filter before aggregating with WHERE",
    "JOIN": "Joins are not supported; query a single relation",
    "INNER": "Joins are not supported; query a single relation",
    "LEFT": "Joins are not supported; query a single relation",
    "RIGHT": "Joins are not supported; query a single relation",
    "FULL": "Joins are not supported; query a single relation",
    "CROSS": "Joins are not supported; query a single relation",
    "ON": "Joins are not supported; query a single relation",
    "USING": "Joins are not supported; query a single relation",
    "UNION": "Set operations are not supported",
    "INTERSECT": "Set operations are not supported",
    "EXCEPT": "Set operations are not supported",
    "WITH": "Common table expressions are not supported",
    "OFFSET": "OFFSET is not supported; use LIMIT only",
    "FETCH": "FETCH is not supported; use LIMIT",
    "WINDOW": "Window functions are not supported",
    "QUALIFY": "Window functions are not supported",
    "INTO": "Only read queries are supported",
}

KEYWORDS = frozenset({
    "SELECT", "FROM", "WHERE", "GROUP", "BY", "ORDER", "ASC", "DESC", "LIMIT",
    "AS", "AND", "OR", "NOT", "NULL", "TRUE", "FALSE",
    "DISTINCT", "ALL", "IS", "IN", "LIKE", "BETWEEN", "CASE", "WHEN", "THEN",
    "ELSE", "END", "OVER", "OUTER",
}) | frozenset(UNSUPPORTED_CLAUSES)


class _QueryTokenizer(Tokenizer):
    """sqlglot tokenizer that knows only the supported operators.

    Every word comes out as a VAR and is classified against KEYWORDS
    afterwards, so sqlglot's own keyword table never changes how a name
    is read (``date`` or ``count`` stay ordinary identifiers).
    """

    IDENTIFIERS = ['"', "`", ("[", "]")]
    KEYWORDS = {
        "<=": SqlglotTokenType.LTE,
        ">=": SqlglotTokenType.GTE,
        "<>": SqlglotTokenType.NEQ,
        "!=": SqlglotTokenType.NEQ,
    }


_OPERATORS = {
    SqlglotTokenType.PLUS: "+",
    SqlglotTokenType.DASH: "-",
    SqlglotTokenType.STAR: "*",
    SqlglotTokenType.SLASH: "/",
    SqlglotTokenType.EQ: "=",
    SqlglotTokenType.NEQ: "!=",
    SqlglotTokenType.LT: "<",
    SqlglotTokenType.LTE: "<=",
    SqlglotTokenType.GT: ">",
    SqlglotTokenType.GTE: ">=",
}

_PUNCTUATION = {
    SqlglotTokenType.L_PAREN: TokenType.LPAREN,
    SqlglotTokenType.R_PAREN: TokenType.RPAREN,
    SqlglotTokenType.COMMA: TokenType.COMMA,
    SqlglotTokenType.DOT: TokenType.DOT,
    SqlglotTokenType.SEMICOLON: TokenType.SEMICOLON,
}

_UNTERMINATED = {
    "'": "Unterminated string literal",
    '"': "Unterminated quoted identifier",
    "`": "Unterminated quoted identifier",
    "[": "Unterminated quoted identifier",
}


@dataclass(frozen=True)
class Token:
    """Lexical token."""

    type: TokenType
    value: str
    position: int
    line: int
    column: int

    def is_keyword(self, *names: str) -> bool:
        return self.type is TokenType.KEYWORD and self.value in names

    def is_operator(self, *ops: str) -> bool:
        return self.type is TokenType.OPERATOR and self.value in ops

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r})"


def tokenize(sql: str) -> List[Token]:
    """
    Tokenize SQL text.

    Whitespace and comments are dropped. The returned list always ends with
    an EOF token positioned at the end of the input.

    Raises:
        UnexpectedTokenError: on unterminated literals or characters the
            grammar has no use for.
    """
    tokenizer = _QueryTokenizer()
    try:
        raw_tokens = tokenizer.tokenize(sql)
    except TokenError as e:
        scanned = tokenizer.tokens
        position = _skip_whitespace(sql, scanned[-1].end + 1 if scanned else 0)
        char = sql[position] if position < len(sql) else ""
        message = _UNTERMINATED.get(char, f"Could not tokenize input at {char!r}")
        raise UnexpectedTokenError(message, position, *_location(sql, position)) from e

    tokens = [_convert(sql, raw) for raw in raw_tokens]
    tokens.append(Token(TokenType.EOF, "", len(sql), *_location(sql, len(sql))))
    return tokens


def _convert(sql: str, raw) -> Token:
    position = raw.start
    line, column = _location(sql, position)
    kind = raw.token_type

    if kind == SqlglotTokenType.VAR:
        bad = next((i for i, ch in enumerate(raw.text) if not (ch.isalnum() or ch == "_")), None)
        if bad is not None:
            position += bad
            line, column = _location(sql, position)
            raise UnexpectedTokenError(f"Unexpected character {raw.text[bad]!r}", position, line, column)
        upper = raw.text.upper()
        if upper in KEYWORDS:
            return Token(TokenType.KEYWORD, upper, position, line, column)
        return Token(TokenType.IDENTIFIER, raw.text, position, line, column)

    if kind == SqlglotTokenType.IDENTIFIER:
        return Token(TokenType.QUOTED_IDENTIFIER, raw.text, position, line, column)
    if kind == SqlglotTokenType.NUMBER:
        return Token(TokenType.NUMBER, raw.text, position, line, column)
    if kind == SqlglotTokenType.STRING:
        return Token(TokenType.STRING, raw.text, position, line, column)
    if kind in _OPERATORS:
        return Token(TokenType.OPERATOR, _OPERATORS[kind], position, line, column)
    if kind in _PUNCTUATION:
        return Token(_PUNCTUATION[kind], raw.text, position, line, column)

    raise UnexpectedTokenError(f"Unexpected character {sql[position]!r}", position, line, column)


def _location(sql: str, position: int):
    """1-based (line, column) of a character offset."""
    line = sql.count("\n", 0, position) + 1
    column = position - sql.rfind("\n", 0, position)
    return line, column


def _skip_whitespace(sql: str, position: int) -> int:
    while position < len(sql) and sql[position].isspace():
        position += 1
    return position
