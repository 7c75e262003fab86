"""
Connection Management - Per-Table Connection Pairs

Each table copy opens its own source and target connection and closes both on
every exit path. Nothing is pooled: the number of open connections is bounded
by the worker pool's concurrency cap.

KEY FEATURES:
- Explicit transactions: autocommit disabled, one commit per table
- Repeated open attempts before a connection failure becomes job-fatal
- Embedded file-backed engines (HSQLDB, SQLite, DuckDB) detected from the
  profile driver or the driver's SQL_DRIVER_NAME, with session tuning on open
  and an explicit checkpoint before close
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import pyodbc

from ..config.migration_defaults import MigrationDefaults
from ..exceptions import DatabaseConnectionError
from ..models import ConnectionProfile

# Per-table connections must really close; driver manager pooling would keep them open
pyodbc.pooling = False


@dataclass(frozen=True)
class EngineDialect:
    """
    Engine-specific statements for embedded databases.

    Attributes:
        name: Engine name used in log messages
        markers: Lowercase substrings identifying the engine in a driver name
        embedded: Whether the engine is file-backed and needs explicit checkpoints
        checkpoint_sql: Statement forcing the engine to persist its log
        session_setup: Statements executed once on every new connection
    """
    name: str
    markers: Tuple[str, ...]
    embedded: bool = False
    checkpoint_sql: Optional[str] = None
    session_setup: Tuple[str, ...] = ()


GENERIC_DIALECT = EngineDialect(name="generic", markers=())

EMBEDDED_DIALECTS = (
    EngineDialect(
        name="hsqldb",
        markers=("hsql",),
        embedded=True,
        checkpoint_sql="CHECKPOINT",
        # Disable the engine's redo log while bulk loading
        session_setup=("SET FILES LOG FALSE",)
    ),
    EngineDialect(
        name="sqlite",
        markers=("sqlite",),
        embedded=True,
        checkpoint_sql="PRAGMA wal_checkpoint(FULL)"
    ),
    EngineDialect(
        name="duckdb",
        markers=("duckdb",),
        embedded=True,
        checkpoint_sql="CHECKPOINT"
    ),
)


def dialect_for_driver_name(driver_name: Optional[str]) -> EngineDialect:
    """Match a driver name against the embedded engine markers."""
    if driver_name:
        lowered = driver_name.lower()
        for dialect in EMBEDDED_DIALECTS:
            if any(marker in lowered for marker in dialect.markers):
                return dialect
    return GENERIC_DIALECT


class ConnectionManager:
    """
    Opens, tunes, checkpoints and closes connections for ConnectionProfiles.

    Thread-safe: holds no per-connection state, so one instance is shared by
    all workers of a job.
    """

    def __init__(self, connect_attempts: int = MigrationDefaults.CONNECT_ATTEMPTS,
                 retry_delay_seconds: float = MigrationDefaults.CONNECT_RETRY_DELAY_SECONDS):
        """
        Initialize the connection manager.

        Args:
            connect_attempts: Attempts before raising DatabaseConnectionError
            retry_delay_seconds: Pause between attempts
        """
        if connect_attempts <= 0:
            raise ValueError("connect_attempts must be positive")
        self.logger = logging.getLogger(__name__)
        self.connect_attempts = connect_attempts
        self.retry_delay_seconds = retry_delay_seconds

    def open_connection(self, profile: ConnectionProfile) -> pyodbc.Connection:
        """
        Open a connection with autocommit disabled.

        Args:
            profile: Connection settings for the source or target

        Returns:
            Open pyodbc connection

        Raises:
            DatabaseConnectionError: If every attempt fails
        """
        last_error = None
        for attempt in range(1, self.connect_attempts + 1):
            try:
                self.logger.debug(f"Opening {profile.display_name} schema={profile.schema_name} "
                                  f"(attempt {attempt}/{self.connect_attempts})")
                connection = pyodbc.connect(
                    profile.connection_string,
                    autocommit=False,  # Explicit commit once per table
                    timeout=profile.connection_timeout
                )
            except pyodbc.Error as e:
                last_error = e
                self.logger.warning(f"Connection attempt {attempt}/{self.connect_attempts} "
                                    f"to {profile.display_name} failed: {e}")
                if attempt < self.connect_attempts and self.retry_delay_seconds > 0:
                    time.sleep(self.retry_delay_seconds)
                continue

            try:
                self._prepare_session(connection, profile)
            except pyodbc.Error as e:
                self.close_quietly(connection, profile)
                raise DatabaseConnectionError(
                    f"Failed to prepare session on {profile.display_name}: {e}",
                    profile_name=profile.name,
                    attempts=attempt
                ) from e
            return connection

        self.logger.error(f"Giving up on {profile.display_name} after {self.connect_attempts} attempts")
        raise DatabaseConnectionError(
            f"Failed to connect to {profile.display_name}: {last_error}",
            profile_name=profile.name,
            attempts=self.connect_attempts
        ) from last_error

    @contextmanager
    def get_connection(self, profile: ConnectionProfile) -> Iterator[pyodbc.Connection]:
        """
        Context manager for a connection that is closed on every exit path.

        Yields:
            pyodbc.Connection: Active database connection

        Raises:
            DatabaseConnectionError: If connection cannot be established
        """
        connection = self.open_connection(profile)
        try:
            yield connection
        finally:
            self.close_quietly(connection, profile)

    def _prepare_session(self, connection: pyodbc.Connection, profile: ConnectionProfile) -> None:
        if profile.charset:
            connection.setdecoding(pyodbc.SQL_CHAR, encoding=profile.charset)
            connection.setencoding(encoding=profile.charset)

        dialect = self.detect_dialect(connection, profile)
        if dialect.session_setup:
            self.logger.debug(f"Applying {dialect.name} session setup on {profile.display_name}")
            cursor = connection.cursor()
            try:
                for statement in dialect.session_setup:
                    cursor.execute(statement)
            finally:
                cursor.close()

    def detect_dialect(self, connection: pyodbc.Connection, profile: ConnectionProfile) -> EngineDialect:
        """
        Identify the engine behind a connection.

        The profile's driver_id is checked first, then the driver's own
        SQL_DRIVER_NAME and SQL_DBMS_NAME.
        """
        dialect = dialect_for_driver_name(profile.driver_id)
        if dialect.embedded:
            return dialect

        for info_type in (pyodbc.SQL_DRIVER_NAME, pyodbc.SQL_DBMS_NAME):
            try:
                reported = connection.getinfo(info_type)
            except pyodbc.Error as e:
                self.logger.debug(f"getinfo({info_type}) failed on {profile.display_name}: {e}")
                continue
            dialect = dialect_for_driver_name(reported)
            if dialect.embedded:
                return dialect
        return GENERIC_DIALECT

    def checkpoint(self, connection: pyodbc.Connection, profile: ConnectionProfile) -> bool:
        """
        Force an embedded engine to persist its log.

        Returns:
            True if a checkpoint statement was executed, False for server engines
        """
        dialect = self.detect_dialect(connection, profile)
        if not dialect.embedded or not dialect.checkpoint_sql:
            return False

        cursor = connection.cursor()
        try:
            cursor.execute(dialect.checkpoint_sql)
        finally:
            cursor.close()
        self.logger.debug(f"{dialect.name} checkpoint issued on {profile.display_name}")
        return True

    def close_quietly(self, connection: pyodbc.Connection, profile: ConnectionProfile) -> None:
        """Close a connection, logging (not raising) close failures."""
        try:
            connection.close()
        except pyodbc.Error as e:
            self.logger.warning(f"Error closing connection to {profile.display_name}: {e}")
