"""
Core data models for the data migration system.

This module defines the primary data structures shared by the catalog phase,
the per-table row copiers, the worker pool and the progress tracker.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class TableStatus(Enum):
    """Final state of a single table copy."""
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ConnectionProfile:
    """
    Connection settings for one side (source or target) of a migration.

    Immutable once constructed. Shared by every worker for its side, but each
    worker opens its own physical connection from it.

    Attributes:
        driver_id: ODBC driver name (e.g. "ODBC Driver 18 for SQL Server", "SQLite3")
        address: Server address, DSN host or database file path
        username: Login name (omitted from the connection string when empty)
        password: Login password (never rendered by repr or summaries)
        schema_name: Schema that owns the migrated tables
        database: Optional database/catalog name
        connection_timeout: Login timeout in seconds passed to pyodbc.connect
        charset: Optional text encoding applied with setdecoding/setencoding
        options: Extra "KEY=value" pairs appended to the connection string
        connection_string_override: Complete connection string used verbatim when set
        name: Display name used in log messages ("source", "target", ...)
    """
    driver_id: str
    address: str
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    schema_name: Optional[str] = None
    database: Optional[str] = None
    connection_timeout: int = 30
    charset: Optional[str] = None
    options: Tuple[Tuple[str, str], ...] = ()
    connection_string_override: Optional[str] = field(default=None, repr=False)
    name: str = "database"

    def __post_init__(self):
        """Validate the profile has enough information to connect."""
        if not self.connection_string_override:
            if not self.driver_id:
                raise ValueError("driver_id cannot be empty")
            if not self.address:
                raise ValueError("address cannot be empty")
        if self.connection_timeout < 0:
            raise ValueError("connection_timeout cannot be negative")

    @property
    def connection_string(self) -> str:
        """ODBC connection string for pyodbc.connect."""
        if self.connection_string_override:
            return self.connection_string_override

        parts = [f"DRIVER={{{self.driver_id}}}", f"SERVER={self.address}"]
        if self.database:
            parts.append(f"DATABASE={self.database}")
        if self.username:
            parts.append(f"UID={self.username}")
            parts.append(f"PWD={self.password or ''}")
        parts.extend(f"{key}={value}" for key, value in self.options)
        return ";".join(parts) + ";"

    @property
    def display_name(self) -> str:
        """Log-safe description of the profile."""
        if self.connection_string_override and not self.address:
            return f"{self.name} (connection string)"
        location = f"{self.address}/{self.database}" if self.database else self.address
        return f"{self.name} ({location})"

    def qualify(self, table_name: str) -> str:
        """Table name prefixed with this profile's schema, if one is configured."""
        if self.schema_name:
            return f"{self.schema_name}.{table_name}"
        return table_name


@dataclass
class SqlColumn:
    """
    Target column metadata used to bind insert parameters.

    Attributes:
        name: Column name as reported by the target
        type_code: ODBC SQL type code (pyodbc.SQL_* constant)
        size: Column size (characters, bytes or precision); 0 when unbounded/unknown
        decimal_digits: Scale for exact numeric and time types
        type_name: Driver-reported type name, informational only
    """
    name: str
    type_code: int
    size: int = 0
    decimal_digits: int = 0
    type_name: Optional[str] = None


@dataclass
class TableDescriptor:
    """
    A table selected for copying.

    Attributes:
        name: Table name as enumerated from the source catalog
        row_count: Source row count snapshot taken during the catalog phase
        columns: Ordered column name -> SqlColumn mapping, resolved from the TARGET
                 schema at copy time (empty until then)
    """
    name: str
    row_count: int = 0
    columns: Dict[str, SqlColumn] = field(default_factory=dict)

    def __post_init__(self):
        """Validate table descriptor."""
        if not self.name:
            raise ValueError("name cannot be empty")
        if self.row_count < 0:
            raise ValueError("row_count cannot be negative")


@dataclass
class CatalogSnapshot:
    """
    Result of the catalog phase.

    Attributes:
        tables: Retained tables in source enumeration order
        total_row_count: Sum of retained tables' row counts (progress denominator)
        excluded: Excluded table name -> exclusion reason
    """
    tables: List[TableDescriptor] = field(default_factory=list)
    total_row_count: int = 0
    excluded: Dict[str, str] = field(default_factory=dict)

    @property
    def table_names(self) -> List[str]:
        return [table.name for table in self.tables]


@dataclass
class ProgressState:
    """Point-in-time view of job progress."""
    total_row_count: int = 0
    copied_row_count: int = 0

    @property
    def percent(self) -> int:
        if self.total_row_count <= 0:
            return 100
        return int(self.copied_row_count / self.total_row_count * 100)


@dataclass
class TableCopyResult:
    """
    Outcome of copying one table.

    rows_attempted counts every row read from the source cursor, whether or
    not its insert persisted; rows_copied + rows_lost == rows_attempted.
    """
    table_name: str
    expected_rows: int = 0
    rows_attempted: int = 0
    rows_copied: int = 0
    rows_lost: int = 0
    status: TableStatus = TableStatus.PENDING
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status in (TableStatus.COMPLETED, TableStatus.SKIPPED)


@dataclass
class MigrationResult:
    """
    Results from a complete migration run.

    Attributes:
        tables_planned: Number of tables retained by the catalog phase
        total_row_count: Progress denominator fixed at job start
        table_results: Per-table outcomes in completion order
        processing_time_seconds: Wall-clock duration of the run
        performance_metrics: Throughput and resource metrics from PerformanceMonitor
    """
    tables_planned: int = 0
    total_row_count: int = 0
    table_results: List[TableCopyResult] = None
    processing_time_seconds: float = 0.0
    performance_metrics: Dict[str, object] = None

    def __post_init__(self):
        """Initialize default values for mutable fields."""
        if self.table_results is None:
            self.table_results = []
        if self.performance_metrics is None:
            self.performance_metrics = {}

    @property
    def rows_attempted(self) -> int:
        return sum(r.rows_attempted for r in self.table_results)

    @property
    def rows_copied(self) -> int:
        return sum(r.rows_copied for r in self.table_results)

    @property
    def rows_lost(self) -> int:
        return sum(r.rows_lost for r in self.table_results)

    @property
    def aborted_tables(self) -> List[str]:
        return [r.table_name for r in self.table_results if r.status is TableStatus.ABORTED]

    @property
    def success_rate(self) -> float:
        """Percentage of attempted rows that persisted."""
        if self.rows_attempted == 0:
            return 0.0
        return (self.rows_copied / self.rows_attempted) * 100.0
