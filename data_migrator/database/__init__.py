"""Database access components: connections, catalog, column resolution and row copying."""

from .column_resolver import ColumnResolver
from .connections import ConnectionManager, EngineDialect
from .retry_policy import Disposition, ErrorKind, RetryPolicy
from .row_copier import RowCopier
from .table_catalog import TableCatalog

__all__ = [
    'ColumnResolver',
    'ConnectionManager',
    'EngineDialect',
    'Disposition',
    'ErrorKind',
    'RetryPolicy',
    'RowCopier',
    'TableCatalog'
]
