"""
ODBC SQL type helpers for column-type-aware parameter binding.

Type codes are the pyodbc.SQL_* constants reported by the target catalog.
Large-object columns are bound with long input sizes so the driver sends the
value with data-at-execution chunks instead of a single inline buffer.
"""

import datetime
import decimal
import uuid
from typing import Any, Optional, Tuple

import pyodbc

from ..models import SqlColumn


CHARACTER_LOB_TYPES = frozenset({pyodbc.SQL_LONGVARCHAR, pyodbc.SQL_WLONGVARCHAR})
BINARY_LOB_TYPES = frozenset({pyodbc.SQL_LONGVARBINARY})
VARIABLE_CHARACTER_TYPES = frozenset({pyodbc.SQL_VARCHAR, pyodbc.SQL_WVARCHAR})
VARIABLE_BINARY_TYPES = frozenset({pyodbc.SQL_VARBINARY})

# Larger declared sizes (or 0, which drivers report for varchar(max)) are treated as LOBs
MAX_INLINE_SIZE = 8000

# Fallback when the target catalog does not report a type for a projected column
PYTHON_TYPE_CODES = {
    str: pyodbc.SQL_WVARCHAR,
    bytes: pyodbc.SQL_VARBINARY,
    bytearray: pyodbc.SQL_VARBINARY,
    bool: pyodbc.SQL_BIT,
    int: pyodbc.SQL_BIGINT,
    float: pyodbc.SQL_DOUBLE,
    decimal.Decimal: pyodbc.SQL_DECIMAL,
    datetime.datetime: pyodbc.SQL_TYPE_TIMESTAMP,
    datetime.date: pyodbc.SQL_TYPE_DATE,
    datetime.time: pyodbc.SQL_TYPE_TIME,
    uuid.UUID: pyodbc.SQL_GUID,
}

InputSize = Optional[Tuple[int, int, int]]


def type_code_for_python_type(python_type: Any) -> int:
    """Map a cursor.description type to an ODBC SQL type code."""
    return PYTHON_TYPE_CODES.get(python_type, pyodbc.SQL_UNKNOWN_TYPE)


def is_character_lob(column: SqlColumn) -> bool:
    if column.type_code in CHARACTER_LOB_TYPES:
        return True
    return column.type_code in VARIABLE_CHARACTER_TYPES and _unbounded(column.size)


def is_binary_lob(column: SqlColumn) -> bool:
    if column.type_code in BINARY_LOB_TYPES:
        return True
    return column.type_code in VARIABLE_BINARY_TYPES and _unbounded(column.size)


def _unbounded(size: Optional[int]) -> bool:
    return not size or size > MAX_INLINE_SIZE


def bind_value(column: SqlColumn, value: Any) -> InputSize:
    """
    Input size for one parameter.

    Returns:
        (sql_type, size, decimal_digits) for LOB values and typed NULLs,
        None when pyodbc should bind the value as-is
    """
    if value is None:
        if column.type_code == pyodbc.SQL_UNKNOWN_TYPE:
            return None
        return (column.type_code, column.size or 0, column.decimal_digits or 0)

    if isinstance(value, str) and is_character_lob(column):
        long_type = pyodbc.SQL_LONGVARCHAR if column.type_code == pyodbc.SQL_LONGVARCHAR else pyodbc.SQL_WLONGVARCHAR
        return (long_type, len(value), 0)

    if isinstance(value, (bytes, bytearray, memoryview)) and is_binary_lob(column):
        return (pyodbc.SQL_LONGVARBINARY, len(value), 0)

    return None
