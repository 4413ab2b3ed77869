from .base import Cancellation, QueryConnector
from . import register_connector
from .results import QueryResult, infer_column_types
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError, DBAPIError, SQLAlchemyError
from sqlchain import QuoteStyle
from sqlchain.errors import DriverError, ExecutionError, TypeMismatchError, UnknownColumnError
import logging
import threading

logger = logging.getLogger(__name__)

# Checked before the column patterns: Postgres reports type errors as
# "operator does not exist"
_TYPE_MISMATCH_PATTERNS = (
    'operator does not exist',
    'invalid input syntax',
    'datatype mismatch',
    'conversion failed',
    'cannot be cast',
)
_UNKNOWN_COLUMN_PATTERNS = (
    'no such column',
    'unknown column',
    'invalid column name',
)


@register_connector('sqlalchemy')
class SQLAlchemyConnector(QueryConnector):
    """Any database SQLAlchemy can reach. config: {"url": "postgresql://..."}"""

    def __init__(self, name: str, config: dict):
        super().__init__(name, config)
        self._engine = None
        self._engine_lock = threading.Lock()

    def get_engine(self) -> Engine:
        """Return SQLAlchemy engine for this connection"""
        with self._engine_lock:
            if not self._engine:
                self._engine = create_engine(self.config['url'])
        return self._engine

    @property
    def quote_style(self) -> QuoteStyle:
        return quote_style_for_dialect(self.get_engine().dialect.name)

    def _run(self, sql: str, cancellation: Cancellation) -> QueryResult:
        engine = self.get_engine()
        try:
            with engine.connect() as connection:
                result = connection.execute(text(sql))
                columns = list(result.keys())
                rows = [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            logger.debug(f"[{self.name}] Driver error: {e}")
            raise translate_sqlalchemy_error(e) from e
        return QueryResult(columns=columns, types=infer_column_types(columns, rows), rows=rows)

    def validate_config(self) -> dict:
        errors = []
        if 'url' not in self.config:
            errors.append("url is required")
        else:
            try:
                make_url(self.config['url'])
            except ArgumentError as e:
                errors.append(f"Invalid url: {e}")
        return {"valid": len(errors) == 0, "errors": errors}

    def close(self):
        """Close connection and clean up resources"""
        with self._engine_lock:
            if self._engine:
                self._engine.dispose()
                self._engine = None


def quote_style_for_dialect(dialect: str) -> QuoteStyle:
    """Identifier quoting a SQLAlchemy dialect expects."""
    if dialect in ('mysql', 'mariadb', 'bigquery'):
        return QuoteStyle.BACKTICK
    if dialect == 'mssql':
        return QuoteStyle.BRACKET
    return QuoteStyle.DOUBLE


def translate_sqlalchemy_error(error: SQLAlchemyError) -> ExecutionError:
    """Map a SQLAlchemy/DBAPI failure onto the execution error taxonomy.

    The message is the driver's own (the DBAPI exception when there is one).
    """
    message = str(error.orig) if isinstance(error, DBAPIError) and error.orig is not None else str(error)
    lowered = message.lower()
    if any(pattern in lowered for pattern in _TYPE_MISMATCH_PATTERNS):
        return TypeMismatchError(message)
    if any(pattern in lowered for pattern in _UNKNOWN_COLUMN_PATTERNS):
        return UnknownColumnError(message)
    if 'column' in lowered and 'does not exist' in lowered:
        return UnknownColumnError(message)
    return DriverError(message)
