"""
Row Copier - Streams One Table from Source to Target

Copies every row of one table over a private pair of connections:

1. Open a fresh source and a fresh target connection
2. Resolve the target columns (authoritative for binding order and types)
3. Prepare one parameterized single-row INSERT, reused for every row
4. Stream SELECT * from the source with fetchmany; bind each target column by
   name from the source row, LOBs with long input sizes, NULLs typed from the
   target column; execute and apply the RetryPolicy to failures
5. Commit once, checkpoint embedded engines, close both connections

Every row read from the source is reported to the ProgressTracker whether or
not its insert persisted, so progress reflects rows attempted.
"""

import logging
import time
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import pyodbc

from ..config.migration_defaults import MigrationDefaults
from ..exceptions import ColumnNotFoundError, RetryExhaustedError, TableCopyError
from ..interfaces import ProgressTrackerInterface, RowCopierInterface
from ..models import ConnectionProfile, SqlColumn, TableCopyResult, TableDescriptor, TableStatus
from .column_resolver import ColumnResolver
from .connections import ConnectionManager
from .retry_policy import Disposition, ErrorKind, RetryPolicy, extract_diagnostic
from .sql_types import InputSize, bind_value


class RowCopier(RowCopierInterface):
    """
    Copies the rows of one table per copy_table() call.

    A single instance may be shared by all workers: per-table state (connections,
    cursors, prepared statement, column map) lives only inside copy_table().
    """

    SELECT_ALL_QUERY = "SELECT * FROM {table}"
    INSERT_STATEMENT = "INSERT INTO {table} ({columns}) VALUES ({placeholders})"

    def __init__(self, source_profile: ConnectionProfile, target_profile: ConnectionProfile,
                 connection_manager: Optional[ConnectionManager] = None,
                 progress: Optional[ProgressTrackerInterface] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 column_resolver: Optional[ColumnResolver] = None,
                 fetch_size: int = MigrationDefaults.FETCH_SIZE,
                 logger: logging.Logger = None):
        """
        Initialize the row copier.

        Args:
            source_profile: Source connection settings
            target_profile: Target connection settings
            connection_manager: Opens and closes the per-table connections
            progress: Receives one record_row() per attempted row
            retry_policy: Classifies failed inserts
            column_resolver: Resolves target columns
            fetch_size: Source rows fetched per round trip
            logger: Optional logger instance
        """
        if fetch_size <= 0:
            raise ValueError("fetch_size must be positive")
        self.source_profile = source_profile
        self.target_profile = target_profile
        self.connections = connection_manager or ConnectionManager()
        self.progress = progress
        self.retry_policy = retry_policy or RetryPolicy()
        self.column_resolver = column_resolver or ColumnResolver()
        self.fetch_size = fetch_size
        self.logger = logger or logging.getLogger(__name__)

    def copy_table(self, table: TableDescriptor) -> TableCopyResult:
        """
        Copy all rows of a table.

        Table-fatal failures are logged and reported through the returned
        result (status ABORTED); rows inserted before the failure are still
        committed.

        Args:
            table: Table selected by the catalog phase

        Returns:
            TableCopyResult for the table

        Raises:
            DatabaseConnectionError: If either connection cannot be opened
            SchemaIntrospectionError: If the target columns cannot be introspected
        """
        start_time = time.time()
        result = TableCopyResult(table_name=table.name, expected_rows=table.row_count)
        self.logger.debug(f"Migrating table {table.name} with {table.row_count} records")

        with self.connections.get_connection(self.source_profile) as source_db, \
                self.connections.get_connection(self.target_profile) as target_db:

            table.columns = self.column_resolver.resolve(target_db, table.name, self.target_profile.schema_name)
            if not table.columns:
                self.logger.info(f"Columns are empty for {table.name}, nothing to copy")
                result.status = TableStatus.SKIPPED
                result.elapsed_seconds = time.time() - start_time
                return result

            try:
                self._copy_rows(source_db, target_db, table, result)
                result.status = TableStatus.COMPLETED
            except TableCopyError as e:
                result.status = TableStatus.ABORTED
                result.error_kind = e.error_kind
                result.error_message = str(e)
                self.logger.error(f"Aborted copy of {table.name} after {result.rows_attempted:,} of "
                                  f"{table.row_count:,} rows: {e}")

            self._finish(source_db, target_db, result)

        # Column metadata is not retained once the copy is over
        table.columns = {}
        result.elapsed_seconds = time.time() - start_time

        if result.rows_lost:
            self.logger.warning(f"Lost {result.rows_lost} records from {table.name}")
        else:
            self.logger.debug(f"Lost 0 records from {table.name}")
        self.logger.info(f"Copied {result.rows_copied:,}/{table.row_count:,} rows of {table.name} "
                         f"in {result.elapsed_seconds:.2f}s ({result.status.value})")
        return result

    def build_insert_statement(self, qualified_table_name: str, columns: Dict[str, SqlColumn]) -> str:
        """Single-row INSERT with one placeholder per target column, in target order."""
        return self.INSERT_STATEMENT.format(
            table=qualified_table_name,
            columns=", ".join(columns.keys()),
            placeholders=", ".join("?" for _ in columns)
        )

    def bind_row(self, row: Sequence[Any], columns: Dict[str, SqlColumn],
                 source_index: Dict[str, int], table_name: str) -> Tuple[List[Any], List[InputSize]]:
        """
        Parameters and input sizes for one source row.

        Values are looked up by target column name (case-insensitive), never
        by position.

        Raises:
            ColumnNotFoundError: If a target column has no same-named source column
        """
        params = []
        input_sizes = []
        for name, column in columns.items():
            index = source_index.get(name.upper())
            if index is None:
                raise ColumnNotFoundError(f"Column {name} of {table_name} not found in source row",
                                          table_name=table_name, column_name=name)
            value = row[index]
            params.append(value)
            input_sizes.append(bind_value(column, value))
        return params, input_sizes

    def _copy_rows(self, source_db: pyodbc.Connection, target_db: pyodbc.Connection,
                   table: TableDescriptor, result: TableCopyResult) -> None:
        insert_sql = self.build_insert_statement(self.target_profile.qualify(table.name), table.columns)
        select_sql = self.SELECT_ALL_QUERY.format(table=self.source_profile.qualify(table.name))
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"SQL: {insert_sql}")

        source_cursor = source_db.cursor()
        target_cursor = target_db.cursor()
        try:
            try:
                source_cursor.execute(select_sql)
            except pyodbc.Error as e:
                raise self._table_error(f"Cannot read {table.name} from source", table.name, e) from e
            except Exception as e:
                raise self._unexpected_error(f"Cannot read {table.name} from source", table.name, e) from e

            source_index = {entry[0].upper(): i for i, entry in enumerate(source_cursor.description)}

            for row in self._stream_rows(source_cursor, table.name):
                try:
                    if self._copy_row(target_cursor, insert_sql, row, table, source_index):
                        result.rows_copied += 1
                    else:
                        result.rows_lost += 1
                except TableCopyError:
                    result.rows_lost += 1
                    raise
                finally:
                    result.rows_attempted += 1
                    if self.progress is not None:
                        self.progress.record_row()
        finally:
            self._close_cursor(source_cursor)
            self._close_cursor(target_cursor)

    def _stream_rows(self, cursor: pyodbc.Cursor, table_name: str) -> Iterator[Sequence[Any]]:
        # A failed fetch leaves the cursor unusable, so fetch errors are never retried
        while True:
            try:
                rows = cursor.fetchmany(self.fetch_size)
            except pyodbc.Error as e:
                raise self._table_error(f"Error reading {table_name} from source", table_name, e) from e
            except Exception as e:
                raise self._unexpected_error(f"Error reading {table_name} from source", table_name, e) from e
            if not rows:
                return
            yield from rows

    def _copy_row(self, cursor: pyodbc.Cursor, sql: str, row: Sequence[Any],
                  table: TableDescriptor, source_index: Dict[str, int]) -> bool:
        """
        Insert one row, applying the retry policy.

        Returns:
            True if the row was inserted, False if it was skipped
        """
        try:
            params, input_sizes = self.bind_row(row, table.columns, source_index, table.name)
        except ColumnNotFoundError as e:
            self.logger.error(f"Error processing {table.name}: {e}")
            raise
        except Exception as e:
            raise self._unexpected_error(f"Cannot bind row of {table.name}", table.name, e) from e

        attempt = 0
        while True:
            attempt += 1
            try:
                cursor.setinputsizes(input_sizes if any(size is not None for size in input_sizes) else None)
                cursor.execute(sql, params)
                return True
            except pyodbc.Error as e:
                decision = self.retry_policy.decide(e, attempt)
            except Exception as e:
                self.logger.error(f"Tried insert statement {sql}; parameters={params!r:.500}")
                raise self._unexpected_error(f"Error inserting into {table.name}", table.name, e) from e

            if decision.disposition is Disposition.RETRY_UNBOUNDED:
                self.logger.warning(f"Target session limit reached inserting into {table.name} "
                                    f"(attempt {attempt}), retrying: {decision.diagnostic.message}")
                if self.retry_policy.session_retry_delay_seconds > 0:
                    time.sleep(self.retry_policy.session_retry_delay_seconds)
                continue

            if decision.disposition is Disposition.RETRY_BOUNDED:
                if decision.retry:
                    self.logger.warning(f"Transient error inserting into {table.name} "
                                        f"(attempt {attempt}), retrying: {decision.diagnostic.message}")
                    continue
                self.logger.error(f"Giving up on {table.name} after {attempt} attempts. "
                                  f"Tried insert statement {sql}")
                raise RetryExhaustedError(
                    f"Transient error persisted after {attempt} attempts: {decision.diagnostic.message}",
                    table_name=table.name,
                    error_kind=decision.kind.value,
                    attempts=attempt,
                    sqlstate=decision.diagnostic.sqlstate,
                    native_code=decision.diagnostic.native_code
                )

            if decision.disposition is Disposition.SKIP_ROW:
                self.logger.warning(f"Column count was {len(table.columns)}; skipping row of {table.name}: "
                                    f"{decision.diagnostic.message}")
                return False

            if decision.disposition is Disposition.ABORT_TABLE:
                self.logger.error(f"Couldn't find {table.name} on target. Tried insert statement {sql}")
            else:
                self.logger.error(f"Unclassified error inserting into {table.name} "
                                  f"(sqlstate={decision.diagnostic.sqlstate}, "
                                  f"native={decision.diagnostic.native_code}). Tried insert statement {sql}; "
                                  f"parameters={params!r:.500}: {decision.diagnostic.message}")
            raise TableCopyError(
                decision.diagnostic.message,
                table_name=table.name,
                error_kind=decision.kind.value,
                sqlstate=decision.diagnostic.sqlstate,
                native_code=decision.diagnostic.native_code
            )

    def _finish(self, source_db: pyodbc.Connection, target_db: pyodbc.Connection,
                result: TableCopyResult) -> None:
        """Single commit for the table, then checkpoints for embedded engines."""
        try:
            target_db.commit()
        except pyodbc.Error as e:
            self.logger.error(f"Commit failed for {result.table_name}, "
                              f"{result.rows_copied:,} inserted rows were not persisted: {e}")
            result.rows_lost += result.rows_copied
            result.rows_copied = 0
            result.status = TableStatus.ABORTED
            result.error_kind = self.retry_policy.classify(e).value
            result.error_message = f"Commit failed: {e}"
            return

        for connection, profile in ((source_db, self.source_profile), (target_db, self.target_profile)):
            try:
                self.connections.checkpoint(connection, profile)
            except pyodbc.Error as e:
                self.logger.warning(f"Checkpoint failed on {profile.display_name} after {result.table_name}: {e}")

    def _table_error(self, message: str, table_name: str, error: pyodbc.Error) -> TableCopyError:
        diagnostic = extract_diagnostic(error)
        kind = self.retry_policy.classify(error)
        self.logger.error(f"{message}: {diagnostic.message}")
        return TableCopyError(f"{message}: {diagnostic.message}", table_name=table_name,
                              error_kind=kind.value, sqlstate=diagnostic.sqlstate,
                              native_code=diagnostic.native_code)

    def _unexpected_error(self, message: str, table_name: str, error: Exception) -> TableCopyError:
        """Table-fatal error for failures raised outside the driver, such as value decoding."""
        self.logger.error(f"{message}: {type(error).__name__}: {error}")
        return TableCopyError(f"{message}: {type(error).__name__}: {error}", table_name=table_name,
                              error_kind=ErrorKind.UNKNOWN.value)

    def _close_cursor(self, cursor: pyodbc.Cursor) -> None:
        try:
            cursor.close()
        except pyodbc.Error as e:
            self.logger.debug(f"Error closing cursor: {e}")
