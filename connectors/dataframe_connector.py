"""Run queries against in-memory pandas DataFrames through DuckDB."""

import logging
from typing import Dict

import duckdb
import pandas as pd

from sqlchain.errors import DriverError, ExecutionError, TypeMismatchError, UnknownColumnError

from . import register_connector
from .base import Cancellation, QueryConnector
from .results import QueryResult

logger = logging.getLogger(__name__)


@register_connector('dataframe')
class DataFrameConnector(QueryConnector):
    """DuckDB over pandas frames.

    config: {"frames": {"mtcars": df, ...}}. Each frame is exposed as a
    table under its key. Every call gets its own in-memory DuckDB
    connection, so concurrent calls never see each other's state.
    """

    def __init__(self, name: str, config: dict):
        super().__init__(name, config)
        self.frames: Dict[str, pd.DataFrame] = dict(config.get('frames') or {})

    def _run(self, sql: str, cancellation: Cancellation) -> QueryResult:
        conn = duckdb.connect(database=':memory:')
        cancellation.set(conn.interrupt)
        try:
            for table, frame in self.frames.items():
                conn.register(table, frame)
            cursor = conn.execute(sql)
            columns = [d[0] for d in cursor.description]
            types = [str(d[1]) for d in cursor.description]
            rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
        except duckdb.Error as e:
            logger.debug(f"[{self.name}] DuckDB error: {e}")
            raise translate_duckdb_error(e) from e
        finally:
            conn.close()
        return QueryResult(columns=columns, types=types, rows=rows)

    def validate_config(self) -> dict:
        errors = []
        if not self.frames:
            errors.append("frames is required")
        for table, frame in self.frames.items():
            if not isinstance(frame, pd.DataFrame):
                errors.append(f"Frame '{table}' is not a pandas DataFrame")
        return {"valid": len(errors) == 0, "errors": errors}


def translate_duckdb_error(error: Exception) -> ExecutionError:
    """Map a DuckDB exception onto the execution error taxonomy, keeping its message."""
    message = str(error)
    if isinstance(error, duckdb.BinderException):
        lowered = message.lower()
        if 'column' in lowered and 'not found' in lowered:
            return UnknownColumnError(message)
        if 'no function matches' in lowered or 'cannot compare' in lowered:
            return TypeMismatchError(message)
    if isinstance(error, (duckdb.ConversionException, duckdb.TypeMismatchException)):
        return TypeMismatchError(message)
    return DriverError(message)


def sqldf(sql: str, **frames: pd.DataFrame) -> pd.DataFrame:
    """Run SQL over keyword-named DataFrames and return a DataFrame.

    >>> sqldf("SELECT cyl, COUNT(*) AS n FROM mtcars GROUP BY cyl", mtcars=df)
    """
    connector = DataFrameConnector('sqldf', {'frames': frames})
    return connector.execute(sql).to_dataframe()
