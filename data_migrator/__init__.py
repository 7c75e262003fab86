"""
Data Migration System

Copies the rows of every eligible table from a source relational database to a
structurally compatible target database over ODBC, with bounded concurrency,
classified driver error handling and live progress reporting.
"""

__version__ = "1.0.0"

from .models import (
    CatalogSnapshot,
    ConnectionProfile,
    MigrationResult,
    ProgressState,
    SqlColumn,
    TableCopyResult,
    TableDescriptor,
    TableStatus
)

from .interfaces import (
    DispatchPolicyInterface,
    PerformanceMonitorInterface,
    ProgressTrackerInterface,
    RowCopierInterface
)

from .exceptions import (
    CatalogError,
    ColumnNotFoundError,
    ConfigurationError,
    DatabaseConnectionError,
    DataMigrationError,
    MigrationAbortedError,
    RetryExhaustedError,
    SchemaIntrospectionError,
    TableCopyError
)

from .logging_setup import configure_logging
from .processing.migration_job import MigrationJob

__all__ = [
    'CatalogSnapshot',
    'ConnectionProfile',
    'MigrationResult',
    'ProgressState',
    'SqlColumn',
    'TableCopyResult',
    'TableDescriptor',
    'TableStatus',
    'DispatchPolicyInterface',
    'PerformanceMonitorInterface',
    'ProgressTrackerInterface',
    'RowCopierInterface',
    'CatalogError',
    'ColumnNotFoundError',
    'ConfigurationError',
    'DatabaseConnectionError',
    'DataMigrationError',
    'MigrationAbortedError',
    'RetryExhaustedError',
    'SchemaIntrospectionError',
    'TableCopyError',
    'configure_logging',
    'MigrationJob'
]
