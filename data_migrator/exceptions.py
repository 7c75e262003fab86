"""
Custom exceptions for the data migration system.

This module defines the three failure tiers of a migration run:
- Row-tolerated conditions never raise out of the row copier (they are logged and counted).
- Table-fatal conditions raise TableCopyError and abort a single table copy.
- Job-fatal conditions raise MigrationAbortedError and abort the whole run.
"""


class DataMigrationError(Exception):
    """Base exception for all data migration related errors."""

    def __init__(self, message: str, table_name: str = None):
        """
        Initialize data migration error.

        Args:
            message: Error description
            table_name: Optional name of the table being processed when the error occurred
        """
        super().__init__(message)
        self.table_name = table_name


class ConfigurationError(DataMigrationError):
    """Exception raised when configuration is invalid or missing."""
    pass


class MigrationAbortedError(DataMigrationError):
    """Job-fatal failure: the whole migration run stops and surfaces this to the caller."""
    pass


class DatabaseConnectionError(MigrationAbortedError):
    """Exception raised when a source or target connection cannot be opened."""

    def __init__(self, message: str, profile_name: str = None, attempts: int = 0):
        """
        Initialize database connection error.

        Args:
            message: Error description
            profile_name: Display name of the connection profile that failed
            attempts: Number of connection attempts made before giving up
        """
        super().__init__(message)
        self.profile_name = profile_name
        self.attempts = attempts


class CatalogError(MigrationAbortedError):
    """Exception raised when tables cannot be enumerated or counted during the catalog phase."""
    pass


class SchemaIntrospectionError(MigrationAbortedError):
    """Exception raised when the target columns of a table cannot be introspected."""
    pass


class TableCopyError(DataMigrationError):
    """
    Table-fatal failure: the copy of one table stops, other tables are unaffected.

    Attributes:
        error_kind: Classified driver error kind (ErrorKind value) when one is known
        sqlstate: SQLSTATE reported by the driver, if any
        native_code: Vendor error code reported by the driver, if any
    """

    def __init__(self, message: str, table_name: str = None, error_kind: str = None,
                 sqlstate: str = None, native_code: int = None):
        super().__init__(message, table_name)
        self.error_kind = error_kind
        self.sqlstate = sqlstate
        self.native_code = native_code


class RetryExhaustedError(TableCopyError):
    """Exception raised when a bounded retry gives up on a row."""

    def __init__(self, message: str, table_name: str = None, error_kind: str = None,
                 attempts: int = 0, sqlstate: str = None, native_code: int = None):
        super().__init__(message, table_name, error_kind, sqlstate, native_code)
        self.attempts = attempts


class ColumnNotFoundError(TableCopyError):
    """Exception raised when a target column has no same-named column in the source row."""

    def __init__(self, message: str, table_name: str = None, column_name: str = None):
        super().__init__(message, table_name, error_kind="column_not_found")
        self.column_name = column_name
