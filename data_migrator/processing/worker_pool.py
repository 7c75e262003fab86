"""
Worker Pool - Concurrent Table Copies

Runs one RowCopier.copy_table() per table on OS threads, at most
`concurrency_cap` at a time, dispatching in catalog order.

KEY FEATURES:
- Thread pool, NOT a connection pool: every copy opens its own connection pair
- Table-fatal failures (TableCopyError) are contained: the table is reported
  as aborted and the remaining tables still run
- Job-fatal failures (MigrationAbortedError) stop further dispatch; copies
  already running are allowed to finish, then the first failure is re-raised

DISPATCH POLICIES:
- queue (default): bounded ThreadPoolExecutor. A new table is submitted only
  when a running copy finishes, so active copies never exceed the cap.
- inline: a thread is launched while fewer than `cap` threaded copies are
  active; otherwise the copy runs on the dispatching thread itself. Completion
  of threaded copies is detected by polling the active count every
  `poll_interval_seconds`. While the dispatcher runs a copy inline, up to
  cap + 1 copies can be active.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Union

from ..config.migration_defaults import MigrationDefaults
from ..exceptions import ConfigurationError, TableCopyError
from ..interfaces import DispatchPolicyInterface, RowCopierInterface
from ..models import TableCopyResult, TableDescriptor, TableStatus


CopyFunction = Callable[[TableDescriptor], TableCopyResult]


class ActivityCounter:
    """Lock-guarded count of running copies, with the peak seen."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active = 0
        self._peak = 0

    def __enter__(self):
        with self._lock:
            self._active += 1
            self._peak = max(self._peak, self._active)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        with self._lock:
            self._active -= 1
        return False

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    @property
    def peak(self) -> int:
        with self._lock:
            return self._peak


class QueueDispatchPolicy(DispatchPolicyInterface):
    """Bounded executor dispatch; active copies never exceed the cap."""

    name = "queue"

    def __init__(self, concurrency_cap: int = MigrationDefaults.CONCURRENCY_CAP,
                 logger: logging.Logger = None):
        if concurrency_cap < 1:
            raise ConfigurationError("concurrency_cap must be at least 1")
        self.concurrency_cap = concurrency_cap
        self.activity = ActivityCounter()
        self.logger = logger or logging.getLogger(__name__)

    def run(self, tables: List[TableDescriptor], copy_table: CopyFunction) -> List[TableCopyResult]:
        results: List[TableCopyResult] = []
        failure: Optional[BaseException] = None
        remaining = deque(tables)

        with ThreadPoolExecutor(max_workers=self.concurrency_cap, thread_name_prefix="table-copy") as executor:
            running = set()
            while running or (remaining and failure is None):
                while remaining and failure is None and len(running) < self.concurrency_cap:
                    table = remaining.popleft()
                    running.add(executor.submit(self._tracked, copy_table, table))

                done, running = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    try:
                        results.append(future.result())
                    except Exception as e:
                        if failure is None:
                            failure = e
                            self.logger.error(f"Stopping dispatch after fatal error, "
                                              f"{len(remaining)} tables not started: {e}")
                        else:
                            self.logger.error(f"Additional fatal error while draining: {e}")

        if failure is not None:
            raise failure
        return results

    def _tracked(self, copy_table: CopyFunction, table: TableDescriptor) -> TableCopyResult:
        with self.activity:
            return copy_table(table)


class InlineDispatchPolicy(DispatchPolicyInterface):
    """Thread-or-inline dispatch with polled completion."""

    name = "inline"

    def __init__(self, concurrency_cap: int = MigrationDefaults.CONCURRENCY_CAP,
                 poll_interval_seconds: float = MigrationDefaults.POLL_INTERVAL_SECONDS,
                 logger: logging.Logger = None):
        if concurrency_cap < 1:
            raise ConfigurationError("concurrency_cap must be at least 1")
        if poll_interval_seconds < 0:
            raise ConfigurationError("poll_interval_seconds cannot be negative")
        self.concurrency_cap = concurrency_cap
        self.poll_interval_seconds = poll_interval_seconds
        self.activity = ActivityCounter()
        self.logger = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._threaded_active = 0

    @property
    def threaded_active(self) -> int:
        with self._lock:
            return self._threaded_active

    def run(self, tables: List[TableDescriptor], copy_table: CopyFunction) -> List[TableCopyResult]:
        results: List[TableCopyResult] = []
        failures: List[BaseException] = []
        threads = []

        def worker(table: TableDescriptor) -> None:
            try:
                result = self._tracked(copy_table, table)
                with self._lock:
                    results.append(result)
            except Exception as e:
                self.logger.error(f"Fatal error copying {table.name}: {e}")
                with self._lock:
                    failures.append(e)
            finally:
                with self._lock:
                    self._threaded_active -= 1

        for table in tables:
            with self._lock:
                if failures:
                    self.logger.error("Stopping dispatch after fatal error")
                    break
                launch = self._threaded_active < self.concurrency_cap
                if launch:
                    self._threaded_active += 1

            if launch:
                thread = threading.Thread(target=worker, args=(table,), name=f"table-copy-{table.name}")
                threads.append(thread)
                thread.start()
                continue

            self.logger.debug(f"All {self.concurrency_cap} threads busy, copying {table.name} inline")
            try:
                result = self._tracked(copy_table, table)
            except Exception as e:
                self.logger.error(f"Fatal error copying {table.name}: {e}")
                with self._lock:
                    failures.append(e)
                break
            with self._lock:
                results.append(result)

        while self.threaded_active > 0:
            time.sleep(self.poll_interval_seconds)
        for thread in threads:
            thread.join()

        if failures:
            raise failures[0]
        return results

    def _tracked(self, copy_table: CopyFunction, table: TableDescriptor) -> TableCopyResult:
        with self.activity:
            return copy_table(table)


class WorkerPool:
    """Copies a list of tables concurrently with the configured dispatch policy."""

    def __init__(self, concurrency_cap: int = MigrationDefaults.CONCURRENCY_CAP,
                 dispatch_policy: Union[str, DispatchPolicyInterface] = MigrationDefaults.DISPATCH_POLICY,
                 poll_interval_seconds: float = MigrationDefaults.POLL_INTERVAL_SECONDS,
                 logger: logging.Logger = None):
        """
        Initialize the worker pool.

        Args:
            concurrency_cap: Maximum concurrent table copies
            dispatch_policy: 'queue', 'inline' or a DispatchPolicyInterface instance
            poll_interval_seconds: Completion polling interval for the inline policy
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger(__name__)
        self.concurrency_cap = concurrency_cap

        if isinstance(dispatch_policy, DispatchPolicyInterface):
            self.policy = dispatch_policy
        elif dispatch_policy == QueueDispatchPolicy.name:
            self.policy = QueueDispatchPolicy(concurrency_cap, logger=self.logger)
        elif dispatch_policy == InlineDispatchPolicy.name:
            self.policy = InlineDispatchPolicy(concurrency_cap, poll_interval_seconds, logger=self.logger)
        else:
            raise ConfigurationError(f"Unknown dispatch policy: {dispatch_policy!r}")

    @property
    def peak_concurrency(self) -> int:
        """Most copies observed running at once."""
        activity = getattr(self.policy, "activity", None)
        return activity.peak if activity is not None else 0

    def run(self, tables: List[TableDescriptor], copier: RowCopierInterface,
            on_result: Optional[Callable[[TableCopyResult], None]] = None) -> List[TableCopyResult]:
        """
        Copy every table and wait for all copies to finish.

        Args:
            tables: Tables in dispatch order
            copier: Row copier shared by all workers
            on_result: Called with each table's result as it completes

        Returns:
            Per-table results in completion order

        Raises:
            MigrationAbortedError: First job-fatal failure, after running copies finished
        """
        if not tables:
            self.logger.info("No tables to copy")
            return []

        self.logger.info(f"Copying {len(tables)} tables with up to {self.concurrency_cap} workers "
                         f"({getattr(self.policy, 'name', type(self.policy).__name__)} dispatch)")

        def copy_one(table: TableDescriptor) -> TableCopyResult:
            try:
                result = copier.copy_table(table)
            except TableCopyError as e:
                self.logger.error(f"Copy of {table.name} aborted: {e}")
                result = TableCopyResult(
                    table_name=table.name,
                    expected_rows=table.row_count,
                    status=TableStatus.ABORTED,
                    error_kind=e.error_kind,
                    error_message=str(e)
                )
            if on_result is not None:
                on_result(result)
            return result

        results = self.policy.run(tables, copy_one)
        self.logger.debug(f"Worker pool finished, peak concurrency {self.peak_concurrency}")
        return results

    def summarize(self, results: List[TableCopyResult]) -> Dict[str, int]:
        """Count results by status."""
        summary = {status.value: 0 for status in TableStatus}
        for result in results:
            summary[result.status.value] += 1
        return summary
