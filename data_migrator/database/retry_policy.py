"""
Retry Policy - Classification of Failed Row Inserts

Driver errors are classified from structured diagnostics, never from message
text: the SQLSTATE carried in pyodbc.Error.args and the vendor native error
code that pyodbc appends to each diagnostic record as "(<code>) (<SQL function>)".

| ErrorKind          | Disposition                                   |
|--------------------|-----------------------------------------------|
| TABLE_NOT_FOUND    | abort the table                               |
| SESSION_LIMIT      | retry the same row until it succeeds          |
| PARAMETER_MISMATCH | skip the row and continue                     |
| TRANSIENT_READ     | retry until transient_attempt_limit attempts, then abort |
| UNKNOWN            | re-raise (table-fatal)                        |
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from ..config.migration_defaults import MigrationDefaults


class ErrorKind(Enum):
    """Structured category of a driver error."""
    TABLE_NOT_FOUND = "table_not_found"
    SESSION_LIMIT = "session_limit"
    PARAMETER_MISMATCH = "parameter_mismatch"
    TRANSIENT_READ = "transient_read"
    UNKNOWN = "unknown"


class Disposition(Enum):
    """What the row copier does with a classified failure."""
    ABORT_TABLE = "abort_table"
    RETRY_UNBOUNDED = "retry_unbounded"
    RETRY_BOUNDED = "retry_bounded"
    SKIP_ROW = "skip_row"
    RAISE = "raise"


DEFAULT_SQLSTATE_KINDS: Dict[str, ErrorKind] = {
    '42S02': ErrorKind.TABLE_NOT_FOUND,      # base table or view not found
    '42P01': ErrorKind.TABLE_NOT_FOUND,      # PostgreSQL undefined_table
    '08004': ErrorKind.SESSION_LIMIT,        # server rejected the connection
    '53300': ErrorKind.SESSION_LIMIT,        # PostgreSQL too_many_connections
    '07001': ErrorKind.PARAMETER_MISMATCH,   # wrong number of parameters
    '07002': ErrorKind.PARAMETER_MISMATCH,   # COUNT field incorrect
    'HYT00': ErrorKind.TRANSIENT_READ,       # timeout expired
    'HYT01': ErrorKind.TRANSIENT_READ,       # connection timeout expired
    '08S01': ErrorKind.TRANSIENT_READ,       # communication link failure
}

DEFAULT_NATIVE_CODE_KINDS: Dict[int, ErrorKind] = {
    942: ErrorKind.TABLE_NOT_FOUND,          # ORA-00942
    208: ErrorKind.TABLE_NOT_FOUND,          # SQL Server invalid object name
    1146: ErrorKind.TABLE_NOT_FOUND,         # MySQL table doesn't exist
    12519: ErrorKind.SESSION_LIMIT,          # ORA-12519 no appropriate service handler
    12516: ErrorKind.SESSION_LIMIT,          # ORA-12516
    18: ErrorKind.SESSION_LIMIT,             # ORA-00018 maximum sessions exceeded
    20: ErrorKind.SESSION_LIMIT,             # ORA-00020 maximum processes exceeded
    1040: ErrorKind.SESSION_LIMIT,           # MySQL too many connections
    1008: ErrorKind.PARAMETER_MISMATCH,      # ORA-01008 not all variables bound
    1555: ErrorKind.TRANSIENT_READ,          # ORA-01555 snapshot too old
}

DISPOSITIONS: Dict[ErrorKind, Disposition] = {
    ErrorKind.TABLE_NOT_FOUND: Disposition.ABORT_TABLE,
    ErrorKind.SESSION_LIMIT: Disposition.RETRY_UNBOUNDED,
    ErrorKind.PARAMETER_MISMATCH: Disposition.SKIP_ROW,
    ErrorKind.TRANSIENT_READ: Disposition.RETRY_BOUNDED,
    ErrorKind.UNKNOWN: Disposition.RAISE,
}

_SQLSTATE_PATTERN = re.compile(r'^[0-9A-Z]{5}$')
_NATIVE_CODE_PATTERN = re.compile(r'\((-?\d+)\)\s*\(SQL\w+\)')


@dataclass(frozen=True)
class DriverDiagnostic:
    """Structured fields extracted from a driver exception."""
    sqlstate: Optional[str] = None
    native_code: Optional[int] = None
    message: str = ""


@dataclass(frozen=True)
class RetryDecision:
    """
    Outcome of classifying one failed attempt.

    Attributes:
        kind: Classified error kind
        disposition: Action for this kind
        retry: Whether the row should be executed again
        attempt: 1-based number of the failed attempt
    """
    kind: ErrorKind
    disposition: Disposition
    retry: bool
    attempt: int
    diagnostic: DriverDiagnostic


def extract_diagnostic(error: BaseException) -> DriverDiagnostic:
    """
    Read the SQLSTATE and native code of a driver exception.

    pyodbc stores (sqlstate, message) in args for driver errors and
    (message, sqlstate) for errors raised by pyodbc itself; explicit
    `sqlstate`/`native_code` attributes (other DB-API drivers) take precedence.
    """
    sqlstate = getattr(error, 'sqlstate', None)
    native_code = getattr(error, 'native_code', None)
    message = ""

    for arg in getattr(error, 'args', ()):
        if not isinstance(arg, str):
            continue
        if sqlstate is None and _SQLSTATE_PATTERN.match(arg):
            sqlstate = arg
        elif not message:
            message = arg

    if native_code is None and message:
        match = _NATIVE_CODE_PATTERN.search(message)
        if match:
            native_code = int(match.group(1))

    return DriverDiagnostic(sqlstate=sqlstate, native_code=native_code, message=message or str(error))


class RetryPolicy:
    """
    Maps driver errors to ErrorKinds once, and ErrorKinds to dispositions.

    Stateless apart from its configuration, so one instance is shared by all workers.
    """

    def __init__(self, transient_attempt_limit: int = MigrationDefaults.TRANSIENT_ATTEMPT_LIMIT,
                 session_retry_delay_seconds: float = MigrationDefaults.SESSION_RETRY_DELAY_SECONDS,
                 sqlstate_kinds: Optional[Mapping[str, ErrorKind]] = None,
                 native_code_kinds: Optional[Mapping[int, ErrorKind]] = None):
        """
        Initialize the retry policy.

        Args:
            transient_attempt_limit: Total executions of a row allowed under TRANSIENT_READ failures
            session_retry_delay_seconds: Pause before re-executing after SESSION_LIMIT
            sqlstate_kinds: SQLSTATE -> ErrorKind overrides merged over the defaults
            native_code_kinds: Native code -> ErrorKind overrides merged over the defaults
        """
        if transient_attempt_limit < 1:
            raise ValueError("transient_attempt_limit must be positive")
        self.transient_attempt_limit = transient_attempt_limit
        self.session_retry_delay_seconds = session_retry_delay_seconds
        self.sqlstate_kinds = dict(DEFAULT_SQLSTATE_KINDS)
        self.sqlstate_kinds.update(sqlstate_kinds or {})
        self.native_code_kinds = dict(DEFAULT_NATIVE_CODE_KINDS)
        self.native_code_kinds.update(native_code_kinds or {})

    def classify(self, error: BaseException) -> ErrorKind:
        """Classify a driver error; SQLSTATE wins over the native code."""
        return self._classify(extract_diagnostic(error))

    def _classify(self, diagnostic: DriverDiagnostic) -> ErrorKind:
        if diagnostic.sqlstate in self.sqlstate_kinds:
            return self.sqlstate_kinds[diagnostic.sqlstate]
        if diagnostic.native_code is not None and diagnostic.native_code in self.native_code_kinds:
            return self.native_code_kinds[diagnostic.native_code]
        return ErrorKind.UNKNOWN

    def decide(self, error: BaseException, attempt: int) -> RetryDecision:
        """
        Decide what to do after a failed insert attempt.

        Args:
            error: Exception raised by cursor.execute
            attempt: 1-based number of the attempt that failed

        Returns:
            RetryDecision; retry is True only for SESSION_LIMIT and for
            TRANSIENT_READ while fewer than transient_attempt_limit attempts were made
        """
        diagnostic = extract_diagnostic(error)
        kind = self._classify(diagnostic)
        disposition = DISPOSITIONS[kind]

        if disposition is Disposition.RETRY_UNBOUNDED:
            retry = True
        elif disposition is Disposition.RETRY_BOUNDED:
            retry = attempt < self.transient_attempt_limit
        else:
            retry = False

        return RetryDecision(kind=kind, disposition=disposition, retry=retry,
                             attempt=attempt, diagnostic=diagnostic)
