"""
Table Catalog - Catalog Phase of a Migration

Enumerates the source tables, drops tables that carry no transferable data,
keeps only tables that already exist on the target, and snapshots each
retained table's row count for the progress denominator.

Exclusion rules, applied in order:
1. Recycle-bin objects (names starting with BIN$)
2. The schema-migration history tables (DATABASECHANGELOG, DATABASECHANGELOGLOCK)
3. Sequence-emulation tables (exactly one column, auto-incrementing)
4. Tables missing from the target catalog
"""

import logging
from typing import Collection, List, Optional

import pyodbc

from ..exceptions import CatalogError
from ..models import CatalogSnapshot, ConnectionProfile, TableDescriptor
from .connections import ConnectionManager


class TableCatalog:
    """Builds the CatalogSnapshot for a source/target pair."""

    RECYCLE_BIN_PREFIX = "BIN$"
    HISTORY_TABLE = "DATABASECHANGELOG"
    RECORD_COUNT_QUERY = "SELECT COUNT(*) FROM {table}"

    def __init__(self, connection_manager: ConnectionManager, logger: logging.Logger = None):
        self.connections = connection_manager
        self.logger = logger or logging.getLogger(__name__)

    def build(self, source_profile: ConnectionProfile, target_profile: ConnectionProfile) -> CatalogSnapshot:
        """
        Run the catalog phase.

        Opens one source and one target connection, used for this phase only.

        Returns:
            Retained tables in source enumeration order with row counts and total

        Raises:
            DatabaseConnectionError: If either side cannot be opened
            CatalogError: If tables cannot be enumerated or counted
        """
        snapshot = CatalogSnapshot()

        self.logger.debug("Looking up table names")
        with self.connections.get_connection(source_profile) as source_db:
            candidates = self.list_tables(source_db, source_profile)

            with self.connections.get_connection(target_profile) as target_db:
                target_tables = {name.upper() for name in self.list_tables(target_db, target_profile)}

            for table_name in candidates:
                reason = self.exclusion_reason(source_db, source_profile.schema_name, table_name, target_tables)
                if reason:
                    snapshot.excluded[table_name] = reason
                    self.logger.info(f"Excluding {table_name}: {reason}")
                    continue

                row_count = self.count_rows(source_db, source_profile.qualify(table_name))
                # Zero-row tables stay in the set; they add nothing to the total
                snapshot.tables.append(TableDescriptor(name=table_name, row_count=row_count))
                snapshot.total_row_count += row_count
                self.logger.debug(f"Adding table {table_name} ({row_count} rows)")

        self.logger.info(f"Catalog phase retained {len(snapshot.tables)} tables "
                         f"({snapshot.total_row_count:,} rows), excluded {len(snapshot.excluded)}")
        return snapshot

    def list_tables(self, connection: pyodbc.Connection, profile: ConnectionProfile) -> List[str]:
        """
        Base table names in the profile's schema, in catalog order.

        Raises:
            CatalogError: If the driver cannot enumerate tables
        """
        cursor = connection.cursor()
        try:
            return [row.table_name for row in cursor.tables(schema=profile.schema_name, tableType='TABLE')]
        except pyodbc.Error as e:
            self.logger.error(f"Cannot enumerate tables on {profile.display_name}: {e}")
            raise CatalogError(f"Cannot enumerate tables on {profile.display_name}: {e}") from e
        finally:
            cursor.close()

    def exclusion_reason(self, connection: pyodbc.Connection, schema_name: Optional[str],
                         table_name: str, target_tables: Collection[str]) -> Optional[str]:
        """
        Reason a source table is excluded from copying, or None if it is retained.

        Args:
            connection: Open source connection (for column metadata)
            schema_name: Source schema
            table_name: Candidate table
            target_tables: Upper-cased table names present on the target
        """
        if table_name.startswith(self.RECYCLE_BIN_PREFIX):
            return "recycle bin object"
        if table_name.upper().startswith(self.HISTORY_TABLE):
            return "schema migration history table"
        if self.is_sequence_table(connection, schema_name, table_name):
            return "sequence emulation table"
        if table_name.upper() not in target_tables:
            return "not present in target"
        return None

    def is_sequence_table(self, connection: pyodbc.Connection, schema_name: Optional[str],
                          table_name: str) -> bool:
        """
        True when the table has exactly one column and that column auto-increments.

        Metadata lookup failures are treated as "not a sequence".
        """
        cursor = connection.cursor()
        try:
            column_rows = [
                row for row in cursor.columns(table=table_name, schema=schema_name)
                # Catalog patterns treat '_' as a wildcard
                if row.table_name.upper() == table_name.upper()
            ]
        except pyodbc.Error as e:
            self.logger.debug(f"Column metadata unavailable for {table_name}: {e}")
            return False
        finally:
            cursor.close()

        return len(column_rows) == 1 and is_auto_increment(column_rows[0])

    def count_rows(self, connection: pyodbc.Connection, qualified_table_name: str) -> int:
        """
        Row count snapshot for a source table.

        Raises:
            CatalogError: If the count query fails
        """
        query = self.RECORD_COUNT_QUERY.format(table=qualified_table_name)
        cursor = connection.cursor()
        try:
            cursor.execute(query)
            row = cursor.fetchone()
            return int(row[0]) if row is not None else 0
        except pyodbc.Error as e:
            self.logger.error(f"Exception executing {query}: {e}")
            raise CatalogError(f"Cannot count rows of {qualified_table_name}: {e}",
                               table_name=qualified_table_name) from e
        finally:
            cursor.close()


def is_auto_increment(column_row) -> bool:
    """
    Whether a catalog column row describes an auto-incrementing column.

    ODBC's SQLColumns has no standard auto-increment flag, so this checks the
    IS_AUTOINCREMENT extension column some drivers return, then identity or
    serial markers in the type name and default expression.
    """
    flag = getattr(column_row, 'is_autoincrement', None)
    if isinstance(flag, str) and flag.strip().upper() in ('YES', 'Y', 'TRUE'):
        return True

    type_name = (getattr(column_row, 'type_name', None) or '').lower()
    if any(marker in type_name for marker in ('identity', 'autoincrement', 'auto_increment', 'serial')):
        return True

    column_def = (getattr(column_row, 'column_def', None) or '').lower()
    return 'nextval(' in column_def or 'identity' in column_def
