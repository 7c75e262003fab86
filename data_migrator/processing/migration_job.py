"""
Migration Job - Orchestrates a Full Source-to-Target Copy

Flow: catalog phase → ProgressTracker(total) → WorkerPool → N × RowCopier →
target checkpoint → MigrationResult.

The job owns nothing between runs: every phase opens the connections it
needs from the ConnectionProfiles and closes them before returning.
"""

import logging
from typing import Optional, TextIO

import pyodbc

from ..config.config_manager import ConfigManager, MigrationParameters
from ..database.column_resolver import ColumnResolver
from ..database.connections import ConnectionManager
from ..database.retry_policy import RetryPolicy
from ..database.row_copier import RowCopier
from ..database.table_catalog import TableCatalog
from ..exceptions import MigrationAbortedError
from ..models import CatalogSnapshot, ConnectionProfile, MigrationResult
from ..monitoring.performance_monitor import PerformanceMonitor
from ..monitoring.progress_tracker import ProgressTracker
from .worker_pool import WorkerPool


class MigrationJob:
    """
    Copies every eligible table from a source database to a target database.

    Usage:
        job = MigrationJob(source_profile, target_profile)
        result = job.run()
        if result.aborted_tables:
            ...
    """

    def __init__(self, source_profile: ConnectionProfile, target_profile: ConnectionProfile,
                 parameters: Optional[MigrationParameters] = None,
                 writer: Optional[TextIO] = None,
                 interactive: Optional[bool] = None,
                 connection_manager: Optional[ConnectionManager] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 monitor: Optional[PerformanceMonitor] = None):
        """
        Initialize the migration job.

        Args:
            source_profile: Source connection settings
            target_profile: Target connection settings
            parameters: Concurrency, retry and progress settings (defaults if omitted)
            writer: Progress output sink; defaults to sys.stdout
            interactive: Force single-line or line-per-interval progress output
            connection_manager: Connection factory shared by all phases
            retry_policy: Classification of failed inserts
            monitor: Performance monitor for the run
        """
        self.logger = logging.getLogger(__name__)
        self.source_profile = source_profile
        self.target_profile = target_profile
        self.parameters = parameters or MigrationParameters()
        self.parameters.validate()
        self.writer = writer
        self.interactive = interactive

        self.connections = connection_manager or ConnectionManager(
            connect_attempts=self.parameters.connect_attempts,
            retry_delay_seconds=self.parameters.connect_retry_delay_seconds
        )
        self.retry_policy = retry_policy or RetryPolicy(
            transient_attempt_limit=self.parameters.transient_attempt_limit,
            session_retry_delay_seconds=self.parameters.session_retry_delay_seconds
        )
        self.monitor = monitor or PerformanceMonitor()
        self.catalog = TableCatalog(self.connections)
        self.progress: Optional[ProgressTracker] = None
        self.pool: Optional[WorkerPool] = None

    @classmethod
    def from_config(cls, config_manager: ConfigManager, writer: Optional[TextIO] = None) -> 'MigrationJob':
        """Build a job from the environment-driven ConfigManager."""
        config_manager.validate_configuration()
        return cls(
            source_profile=config_manager.get_source_profile(),
            target_profile=config_manager.get_target_profile(),
            parameters=config_manager.get_migration_parameters(),
            writer=writer
        )

    def run(self) -> MigrationResult:
        """
        Run the catalog phase, copy every retained table and finalize the target.

        Returns:
            MigrationResult with per-table outcomes and performance metrics

        Raises:
            MigrationAbortedError: On any job-fatal condition, after running copies finished
        """
        self.logger.info(f"Starting migration {self.source_profile.display_name} -> "
                         f"{self.target_profile.display_name}")
        self.monitor.start_monitoring()
        try:
            self.monitor.start_stage("catalog")
            snapshot = self.catalog.build(self.source_profile, self.target_profile)
            self.monitor.end_stage("catalog")

            self.monitor.start_stage("copy")
            self._copy_tables(snapshot)
            self.monitor.end_stage("copy")

            self.monitor.start_stage("finalize")
            self._finalize_target()
            self.monitor.end_stage("finalize")

            self.monitor.record_metric("progress_overflow_rows", self.progress.overflow_count)
            self.monitor.record_metric("peak_concurrency", self.pool.peak_concurrency)
        except MigrationAbortedError as e:
            self.logger.error(f"Migration aborted: {e}")
            raise
        finally:
            result = self.monitor.stop_monitoring()

        result.tables_planned = len(snapshot.tables)
        result.total_row_count = snapshot.total_row_count
        self.monitor.log_performance_report()

        if result.aborted_tables:
            self.logger.warning(f"Migration finished with {len(result.aborted_tables)} aborted tables: "
                                f"{', '.join(result.aborted_tables)}")
        self.logger.info(f"Migration finished: {result.rows_copied:,}/{result.total_row_count:,} rows copied, "
                         f"{result.rows_lost:,} lost, {len(result.table_results)} tables")
        return result

    def _copy_tables(self, snapshot: CatalogSnapshot) -> None:
        self.progress = ProgressTracker(
            snapshot.total_row_count,
            writer=self.writer,
            interactive=self.interactive,
            line_interval=self.parameters.progress_line_interval
        )
        copier = RowCopier(
            self.source_profile,
            self.target_profile,
            connection_manager=self.connections,
            progress=self.progress,
            retry_policy=self.retry_policy,
            column_resolver=ColumnResolver(),
            fetch_size=self.parameters.fetch_size
        )
        self.pool = WorkerPool(
            concurrency_cap=self.parameters.concurrency_cap,
            dispatch_policy=self.parameters.dispatch_policy,
            poll_interval_seconds=self.parameters.poll_interval_seconds
        )
        try:
            self.pool.run(snapshot.tables, copier, on_result=self.monitor.record_table_result)
        finally:
            self.progress.finish()

    def _finalize_target(self) -> None:
        """Final checkpoint so an embedded target persists everything written."""
        with self.connections.get_connection(self.target_profile) as target_db:
            try:
                if self.connections.checkpoint(target_db, self.target_profile):
                    self.logger.info(f"Final checkpoint issued on {self.target_profile.display_name}")
            except pyodbc.Error as e:
                self.logger.warning(f"Final checkpoint failed on {self.target_profile.display_name}: {e}")
