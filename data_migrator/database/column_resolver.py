"""
Column Resolver - Target-Driven Column Lists

The target schema is authoritative for every insert: its columns decide the
number, order and types of bind parameters. Source columns are later looked up
by name, so extra source columns are ignored and reordered columns still bind
correctly.
"""

import logging
from typing import Dict, Optional

import pyodbc

from ..exceptions import SchemaIntrospectionError
from ..models import SqlColumn
from .sql_types import type_code_for_python_type


class ColumnResolver:
    """Resolves the ordered column name -> SqlColumn mapping of a target table."""

    PROJECTION_QUERY = "SELECT * FROM {table} WHERE 1 = 0"

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger(__name__)

    def resolve(self, connection: pyodbc.Connection, table_name: str,
                schema_name: Optional[str] = None) -> Dict[str, SqlColumn]:
        """
        Introspect a target table with a zero-row projection.

        Column order comes from the projection. Type codes come from the
        target catalog (cursor.columns), falling back to the projection's
        Python type when the catalog has no entry for a column.

        Args:
            connection: Open target connection
            table_name: Unqualified table name
            schema_name: Target schema, if any

        Returns:
            Ordered mapping of column name to SqlColumn (empty if the table has no columns)

        Raises:
            SchemaIntrospectionError: If the projection query fails
        """
        qualified = f"{schema_name}.{table_name}" if schema_name else table_name
        query = self.PROJECTION_QUERY.format(table=qualified)

        cursor = connection.cursor()
        try:
            cursor.execute(query)
            description = list(cursor.description or [])
        except pyodbc.Error as e:
            self.logger.error(f"Cannot introspect columns of {qualified} on target: {e}")
            raise SchemaIntrospectionError(f"Cannot introspect columns of {qualified}: {e}",
                                           table_name=table_name) from e
        finally:
            cursor.close()

        catalog = self._catalog_columns(connection, table_name, schema_name)

        columns: Dict[str, SqlColumn] = {}
        for entry in description:
            name, python_type, _display_size, internal_size, precision, scale = entry[:6]
            known = catalog.get(name.upper())
            if known is not None:
                known.name = name
                columns[name] = known
            else:
                columns[name] = SqlColumn(
                    name=name,
                    type_code=type_code_for_python_type(python_type),
                    size=internal_size or precision or 0,
                    decimal_digits=scale or 0
                )

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"Resolved {len(columns)} target columns for {qualified}: "
                              f"{[(c.name, c.type_code) for c in columns.values()]}")
        return columns

    def _catalog_columns(self, connection: pyodbc.Connection, table_name: str,
                         schema_name: Optional[str]) -> Dict[str, SqlColumn]:
        """Catalog column metadata keyed by upper-cased name; empty if the driver cannot supply it."""
        result = {}
        cursor = connection.cursor()
        try:
            for row in cursor.columns(table=table_name, schema=schema_name):
                # Catalog patterns treat '_' as a wildcard
                if row.table_name.upper() != table_name.upper():
                    continue
                result[row.column_name.upper()] = SqlColumn(
                    name=row.column_name,
                    type_code=row.data_type,
                    size=row.column_size or 0,
                    decimal_digits=row.decimal_digits or 0,
                    type_name=row.type_name
                )
        except pyodbc.Error as e:
            self.logger.debug(f"Catalog column lookup failed for {table_name}, using projection types: {e}")
            return {}
        finally:
            cursor.close()
        return result
