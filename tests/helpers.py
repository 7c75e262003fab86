"""In-memory stand-ins for pyodbc connections used by the test suite.

FakeServer.connect has the pyodbc.connect signature and routes each
connection string to a FakeDatabase, so tests patch it over
`data_migrator.database.connections.pyodbc.connect` and run the real copy
code against it. Only the SQL the migrator itself issues is understood.
"""
import re
import threading
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pyodbc


SELECT_PROJECTION = re.compile(r"^SELECT \* FROM (\S+) WHERE 1 = 0$", re.IGNORECASE)
SELECT_ALL = re.compile(r"^SELECT \* FROM (\S+)$", re.IGNORECASE)
SELECT_COUNT = re.compile(r"^SELECT COUNT\(\*\) FROM (\S+)$", re.IGNORECASE)
INSERT = re.compile(r"^INSERT INTO (\S+) \((.*)\) VALUES \((.*)\)$", re.IGNORECASE)

PYTHON_TYPES = {
    pyodbc.SQL_INTEGER: int,
    pyodbc.SQL_BIGINT: int,
    pyodbc.SQL_DECIMAL: float,
    pyodbc.SQL_VARCHAR: str,
    pyodbc.SQL_WVARCHAR: str,
    pyodbc.SQL_LONGVARCHAR: str,
    pyodbc.SQL_WLONGVARCHAR: str,
    pyodbc.SQL_VARBINARY: bytes,
    pyodbc.SQL_LONGVARBINARY: bytes,
    pyodbc.SQL_TYPE_TIMESTAMP: object,
}


def odbc_error(error_class, sqlstate: str, message: str, native_code: int = 0):
    """A pyodbc error shaped the way drivers report them: (sqlstate, message)."""
    return error_class(sqlstate, f"[{sqlstate}] [FakeDriver]{message} ({native_code}) (SQLExecDirectW)")


def table_not_found(name: str):
    return odbc_error(pyodbc.ProgrammingError, "42S02", f"Invalid object name '{name}'.", 208)


class FakeColumn:
    def __init__(self, name: str, data_type: int = pyodbc.SQL_VARCHAR, size: int = 50,
                 decimal_digits: int = 0, type_name: str = None, auto_increment: bool = False):
        self.name = name
        self.data_type = data_type
        self.size = size
        self.decimal_digits = decimal_digits
        self.type_name = type_name or ("int identity" if auto_increment else "varchar")
        self.auto_increment = auto_increment


class FakeTable:
    def __init__(self, name: str, columns: List[FakeColumn], rows: Sequence[Sequence[Any]] = (),
                 primary_key: Optional[str] = None):
        self.name = name
        self.columns = columns
        self.rows: List[Tuple[Any, ...]] = [tuple(row) for row in rows]
        self.primary_key = primary_key

    def column_index(self, name: str) -> int:
        for i, column in enumerate(self.columns):
            if column.name.upper() == name.upper():
                return i
        raise KeyError(name)

    def as_dicts(self) -> List[Dict[str, Any]]:
        return [{c.name: row[i] for i, c in enumerate(self.columns)} for row in self.rows]


class FakeDatabase:
    """Tables plus hooks for injecting driver failures."""

    def __init__(self, driver_name: str = "msodbcsql17.dll", dbms_name: str = "Microsoft SQL Server"):
        self.driver_name = driver_name
        self.dbms_name = dbms_name
        self.tables: Dict[str, FakeTable] = {}
        self.statements: List[str] = []
        self.input_sizes: List[Any] = []
        self.insert_hooks: Dict[str, Callable[[Sequence[Any]], Optional[Exception]]] = {}
        self.fail_tables_listing = False
        self.fail_count_for = set()
        self.fail_projection_for = set()
        self.fetch_errors: Dict[str, Exception] = {}
        self.commits = 0
        self.lock = threading.Lock()

    def add_table(self, table: FakeTable) -> FakeTable:
        self.tables[table.name.upper()] = table
        return table

    def table(self, qualified_name: str) -> FakeTable:
        name = qualified_name.split(".")[-1].upper()
        if name not in self.tables:
            raise table_not_found(qualified_name)
        return self.tables[name]


class FakeCursor:
    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.database = connection.database
        self.description = None
        self._rows: List[Any] = []
        self._position = 0
        self._input_sizes = None
        self._fetch_error = None
        self.closed = False

    def execute(self, sql: str, *params):
        if len(params) == 1 and isinstance(params[0], (list, tuple)):
            params = tuple(params[0])
        sql = sql.strip()
        with self.database.lock:
            self.database.statements.append(sql)

        match = SELECT_PROJECTION.match(sql)
        if match:
            name = match.group(1)
            if name.split(".")[-1].upper() in self.database.fail_projection_for:
                raise odbc_error(pyodbc.OperationalError, "HY000", "Projection failed", 0)
            self._load(self.database.table(name), [])
            return self

        match = SELECT_COUNT.match(sql)
        if match:
            name = match.group(1)
            if name.split(".")[-1].upper() in self.database.fail_count_for:
                raise odbc_error(pyodbc.OperationalError, "HY000", "Count failed", 0)
            table = self.database.table(name)
            self.description = [("count", int, None, 10, 10, 0, False)]
            self._rows = [(len(table.rows),)]
            self._position = 0
            return self

        match = SELECT_ALL.match(sql)
        if match:
            table = self.database.table(match.group(1))
            self._load(table, list(table.rows))
            self._fetch_error = self.database.fetch_errors.get(table.name.upper())
            return self

        match = INSERT.match(sql)
        if match:
            self._insert(match.group(1), [c.strip() for c in match.group(2).split(",")], list(params))
            return self

        # Session setup and checkpoint statements are only recorded
        return self

    def _load(self, table: FakeTable, rows: List[Any]) -> None:
        self.description = [
            (c.name, PYTHON_TYPES.get(c.data_type, str), None, c.size, c.size, c.decimal_digits, True)
            for c in table.columns
        ]
        self._rows = rows
        self._position = 0

    def _insert(self, name: str, column_names: List[str], params: List[Any]) -> None:
        table = self.database.table(name)
        hook = self.database.insert_hooks.get(table.name.upper())
        if hook is not None:
            error = hook(params)
            if error is not None:
                raise error

        if len(column_names) != len(params):
            raise odbc_error(pyodbc.Error, "07002", "COUNT field incorrect or syntax error", 0)

        row = [None] * len(table.columns)
        for column_name, value in zip(column_names, params):
            row[table.column_index(column_name)] = value
        row = tuple(row)

        with self.database.lock:
            self.database.input_sizes.append(self._input_sizes)
            if table.primary_key is not None:
                key_index = table.column_index(table.primary_key)
                existing = {r[key_index] for r in table.rows}
                existing.update(r[key_index] for t, r in self.connection.pending if t is table)
                if row[key_index] in existing:
                    raise odbc_error(pyodbc.IntegrityError, "23000",
                                     f"Violation of PRIMARY KEY constraint on {table.name}", 2627)
            self.connection.pending.append((table, row))

    def setinputsizes(self, sizes):
        self._input_sizes = list(sizes) if sizes is not None else None

    def fetchone(self):
        if self._position >= len(self._rows):
            return None
        row = self._rows[self._position]
        self._position += 1
        return row

    def fetchmany(self, size: int = 1):
        # Injected fetch errors fire once the first batch has been delivered
        if self._fetch_error is not None and self._position > 0:
            raise self._fetch_error
        rows = self._rows[self._position:self._position + size]
        self._position += len(rows)
        return rows

    def fetchall(self):
        rows = self._rows[self._position:]
        self._position = len(self._rows)
        return rows

    def tables(self, table=None, catalog=None, schema=None, tableType=None):
        if self.database.fail_tables_listing:
            raise odbc_error(pyodbc.Error, "HY000", "Catalog unavailable", 0)
        self._rows = [SimpleNamespace(table_name=t.name, table_schem=schema, table_type="TABLE")
                      for t in self.database.tables.values()]
        self._position = 0
        return self

    def columns(self, table=None, catalog=None, schema=None, column=None):
        # '_' matches any character, as in ODBC catalog patterns
        pattern = re.compile("^" + re.escape(table or "%").replace("_", ".").replace("%", ".*") + "$",
                             re.IGNORECASE)
        self._rows = [
            SimpleNamespace(
                table_name=t.name,
                column_name=c.name,
                data_type=c.data_type,
                type_name=c.type_name,
                column_size=c.size,
                decimal_digits=c.decimal_digits,
                column_def=None,
                is_autoincrement="YES" if c.auto_increment else "NO"
            )
            for t in self.database.tables.values() if pattern.match(t.name)
            for c in t.columns
        ]
        self._position = 0
        return self

    def __iter__(self):
        while True:
            row = self.fetchone()
            if row is None:
                return
            yield row

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, database: FakeDatabase, autocommit: bool = False):
        self.database = database
        self.autocommit = autocommit
        self.pending: List[Tuple[FakeTable, Tuple[Any, ...]]] = []
        self.closed = False
        self.encoding = None

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        with self.database.lock:
            for table, row in self.pending:
                table.rows.append(row)
            self.database.commits += 1
        self.pending = []

    def rollback(self):
        self.pending = []

    def getinfo(self, info_type):
        if info_type == pyodbc.SQL_DRIVER_NAME:
            return self.database.driver_name
        if info_type == pyodbc.SQL_DBMS_NAME:
            return self.database.dbms_name
        return None

    def setdecoding(self, sqltype, encoding=None, ctype=None):
        self.encoding = encoding

    def setencoding(self, encoding=None, ctype=None):
        self.encoding = encoding

    def close(self):
        # Uncommitted work is discarded on close
        self.pending = []
        self.closed = True


class FakeServer:
    """Routes connection strings to databases; counts opens and refusals."""

    def __init__(self):
        self.databases: Dict[str, FakeDatabase] = {}
        self.connections: List[FakeConnection] = []
        self.refuse: Dict[str, int] = {}
        self.lock = threading.Lock()

    def register(self, profile, database: FakeDatabase) -> FakeDatabase:
        self.databases[profile.connection_string] = database
        return database

    def connect(self, connection_string: str, autocommit: bool = False, timeout: int = 0, **kwargs):
        with self.lock:
            remaining = self.refuse.get(connection_string, 0)
            if remaining:
                self.refuse[connection_string] = remaining - 1
                raise odbc_error(pyodbc.OperationalError, "08001", "Unable to connect to server", 53)
            if connection_string not in self.databases:
                raise odbc_error(pyodbc.InterfaceError, "IM002", "Data source name not found", 0)
            connection = FakeConnection(self.databases[connection_string], autocommit=autocommit)
            self.connections.append(connection)
            return connection

    @property
    def open_connections(self) -> int:
        with self.lock:
            return sum(1 for c in self.connections if not c.closed)
