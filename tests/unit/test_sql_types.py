"""Unit tests for column-type-aware parameter binding."""

import datetime

import pyodbc

from data_migrator.database.sql_types import (
    bind_value,
    is_binary_lob,
    is_character_lob,
    type_code_for_python_type
)
from data_migrator.models import SqlColumn


class TestLobDetection:

    def test_long_types_are_lobs(self):
        assert is_character_lob(SqlColumn("NOTES", pyodbc.SQL_WLONGVARCHAR))
        assert is_binary_lob(SqlColumn("IMAGE", pyodbc.SQL_LONGVARBINARY))

    def test_unbounded_varchar_is_lob(self):
        # varchar(max) is reported with size 0
        assert is_character_lob(SqlColumn("NOTES", pyodbc.SQL_VARCHAR, size=0))
        assert is_binary_lob(SqlColumn("IMAGE", pyodbc.SQL_VARBINARY, size=2 ** 31 - 1))

    def test_bounded_varchar_is_not_lob(self):
        assert not is_character_lob(SqlColumn("NAME", pyodbc.SQL_VARCHAR, size=50))
        assert not is_binary_lob(SqlColumn("HASH", pyodbc.SQL_VARBINARY, size=32))


class TestBindValue:

    def test_plain_values_bind_as_is(self):
        assert bind_value(SqlColumn("NAME", pyodbc.SQL_VARCHAR, size=50), "Ada") is None
        assert bind_value(SqlColumn("ID", pyodbc.SQL_INTEGER, size=10), 7) is None

    def test_null_is_typed_from_column(self):
        column = SqlColumn("AMOUNT", pyodbc.SQL_DECIMAL, size=12, decimal_digits=2)

        assert bind_value(column, None) == (pyodbc.SQL_DECIMAL, 12, 2)

    def test_null_of_unknown_type_binds_as_is(self):
        assert bind_value(SqlColumn("X", pyodbc.SQL_UNKNOWN_TYPE), None) is None

    def test_character_lob_uses_value_length(self):
        text = "x" * 100000

        assert bind_value(SqlColumn("NOTES", pyodbc.SQL_WLONGVARCHAR), text) == \
            (pyodbc.SQL_WLONGVARCHAR, 100000, 0)
        assert bind_value(SqlColumn("NOTES", pyodbc.SQL_LONGVARCHAR), text) == \
            (pyodbc.SQL_LONGVARCHAR, 100000, 0)
        assert bind_value(SqlColumn("NOTES", pyodbc.SQL_VARCHAR, size=0), text) == \
            (pyodbc.SQL_WLONGVARCHAR, 100000, 0)

    def test_binary_lob_uses_value_length(self):
        data = bytes(range(256)) * 40

        assert bind_value(SqlColumn("IMAGE", pyodbc.SQL_LONGVARBINARY), data) == \
            (pyodbc.SQL_LONGVARBINARY, len(data), 0)

    def test_mismatched_value_type_binds_as_is(self):
        assert bind_value(SqlColumn("NOTES", pyodbc.SQL_WLONGVARCHAR), 12) is None


def test_type_code_for_python_type():
    assert type_code_for_python_type(str) == pyodbc.SQL_WVARCHAR
    assert type_code_for_python_type(datetime.datetime) == pyodbc.SQL_TYPE_TIMESTAMP
    assert type_code_for_python_type(object) == pyodbc.SQL_UNKNOWN_TYPE
