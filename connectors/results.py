"""Query results returned by every connector."""

import datetime
from typing import Any, Dict, List

import pandas as pd
from pydantic import BaseModel


class QueryResult(BaseModel):
    """Column names, column types and rows (one dict per row, keyed by column)."""
    columns: List[str]
    types: List[str]
    rows: List[Dict[str, Any]]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=self.columns)


def infer_type_from_value(value) -> str:
    """Infer SQL type from Python value."""
    if value is None:
        return 'NULL'
    elif isinstance(value, bool):
        return 'BOOLEAN'
    elif isinstance(value, datetime.datetime):
        return 'TIMESTAMP'
    elif isinstance(value, datetime.date):
        return 'DATE'
    elif isinstance(value, datetime.time):
        return 'TIME'
    elif isinstance(value, int):
        return 'BIGINT'
    elif isinstance(value, float):
        return 'DOUBLE'
    elif isinstance(value, str):
        return 'VARCHAR'
    elif isinstance(value, bytes):
        return 'BLOB'
    else:
        return 'UNKNOWN'


def infer_column_types(columns: List[str], rows: List[Dict[str, Any]]) -> List[str]:
    """Type of each column from its first non-NULL value."""
    types = []
    for col in columns:
        inferred_type = 'NULL'
        for row in rows:
            if row.get(col) is not None:
                inferred_type = infer_type_from_value(row[col])
                break
        types.append(inferred_type)
    return types
