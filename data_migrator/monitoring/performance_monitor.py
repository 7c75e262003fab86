"""
Performance monitoring for migration runs.

Samples process memory and CPU with psutil on a background thread and times
the job stages (catalog, copy, finalize). Table results recorded during the
run are returned in the MigrationResult from stop_monitoring().
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import psutil

from ..interfaces import PerformanceMonitorInterface
from ..models import MigrationResult, TableCopyResult


STAGES = ("catalog", "copy", "finalize")


@dataclass
class PerformanceMetrics:
    """Container for performance metrics."""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    tables_completed: int = 0
    tables_skipped: int = 0
    tables_aborted: int = 0
    rows_attempted: int = 0
    rows_copied: int = 0
    rows_lost: int = 0

    stage_times: Dict[str, float] = field(default_factory=lambda: {stage: 0.0 for stage in STAGES})

    peak_memory_mb: float = 0.0
    avg_cpu_percent: float = 0.0

    rows_per_second: float = 0.0

    custom_metrics: Dict[str, Any] = field(default_factory=dict)


class PerformanceMonitor(PerformanceMonitorInterface):
    """
    Performance monitor for a migration job.

    record_table_result() is called from worker threads, so counters are
    updated under a lock.
    """

    def __init__(self, sample_interval_seconds: float = 0.5):
        self.logger = logging.getLogger(__name__)
        self.sample_interval_seconds = sample_interval_seconds
        self._metrics = PerformanceMetrics()
        self._table_results: List[TableCopyResult] = []
        self._lock = threading.Lock()
        self._is_monitoring = False
        self._monitoring_thread = None
        self._stop_monitoring_flag = threading.Event()

        self._memory_samples = []
        self._cpu_samples = []
        self._stage_start_times = {}
        self._process = psutil.Process()

    @property
    def is_monitoring(self) -> bool:
        return self._is_monitoring

    def start_monitoring(self) -> None:
        """Start performance monitoring with resource tracking."""
        if self._is_monitoring:
            self.logger.warning("Performance monitoring already started")
            return

        self._metrics = PerformanceMetrics()
        self._metrics.start_time = datetime.now()
        self._table_results = []
        self._memory_samples = []
        self._cpu_samples = []
        self._stage_start_times = {}
        self._is_monitoring = True
        self._stop_monitoring_flag.clear()

        # Prime cpu_percent so the first sample is meaningful
        self._process.cpu_percent(interval=None)

        self._monitoring_thread = threading.Thread(
            target=self._monitor_resources,
            name="migration-resource-monitor",
            daemon=True
        )
        self._monitoring_thread.start()
        self.logger.debug("Performance monitoring started")

    def stop_monitoring(self) -> MigrationResult:
        """Stop monitoring and return the collected table results and metrics."""
        if not self._is_monitoring:
            self.logger.warning("Performance monitoring not started")
            return MigrationResult()

        self._metrics.end_time = datetime.now()
        self._is_monitoring = False
        self._stop_monitoring_flag.set()

        if self._monitoring_thread and self._monitoring_thread.is_alive():
            self._monitoring_thread.join(timeout=2.0)

        self._sample_resources()
        self._calculate_final_metrics()

        with self._lock:
            table_results = list(self._table_results)

        result = MigrationResult(
            table_results=table_results,
            processing_time_seconds=self._get_total_processing_time(),
            performance_metrics=self._get_performance_summary()
        )

        self.logger.info(f"Performance monitoring stopped. Copied {result.rows_copied:,} rows from "
                         f"{len(table_results)} tables in {result.processing_time_seconds:.2f} seconds "
                         f"({self._metrics.rows_per_second:.1f} rows/s)")
        return result

    def record_metric(self, metric_name: str, value: Any) -> None:
        """Record a custom performance metric."""
        if not self._is_monitoring:
            return
        with self._lock:
            self._metrics.custom_metrics[metric_name] = value
        self.logger.debug(f"Recorded metric: {metric_name} = {value}")

    def get_current_metrics(self) -> Dict[str, Any]:
        """Get current performance metrics snapshot."""
        if not self._is_monitoring:
            return {}

        elapsed_seconds = (datetime.now() - self._metrics.start_time).total_seconds()
        with self._lock:
            rows_copied = self._metrics.rows_copied
            return {
                'elapsed_time_seconds': elapsed_seconds,
                'tables_finished': len(self._table_results),
                'rows_attempted': self._metrics.rows_attempted,
                'rows_copied': rows_copied,
                'rows_lost': self._metrics.rows_lost,
                'rows_per_second': rows_copied / elapsed_seconds if elapsed_seconds > 0 else 0.0,
                'current_memory_mb': self._get_current_memory_mb(),
                'peak_memory_mb': self._metrics.peak_memory_mb,
                'avg_cpu_percent': self._get_avg_cpu_percent(),
                'custom_metrics': self._metrics.custom_metrics.copy()
            }

    def start_stage(self, stage_name: str) -> None:
        """Start timing a job stage."""
        self._stage_start_times[stage_name] = time.time()

    def end_stage(self, stage_name: str) -> float:
        """End timing a job stage and return its duration."""
        started = self._stage_start_times.pop(stage_name, None)
        if started is None:
            return 0.0
        duration = time.time() - started
        self._metrics.stage_times[stage_name] = self._metrics.stage_times.get(stage_name, 0.0) + duration
        return duration

    def record_table_result(self, result: TableCopyResult) -> None:
        """Record the outcome of one table copy."""
        with self._lock:
            self._table_results.append(result)
            self._metrics.rows_attempted += result.rows_attempted
            self._metrics.rows_copied += result.rows_copied
            self._metrics.rows_lost += result.rows_lost
            if result.status.value == "completed":
                self._metrics.tables_completed += 1
            elif result.status.value == "skipped":
                self._metrics.tables_skipped += 1
            elif result.status.value == "aborted":
                self._metrics.tables_aborted += 1

    def log_performance_report(self) -> None:
        """Log a summary of the finished run."""
        if not self._metrics.end_time:
            self.logger.warning("Performance monitoring not completed")
            return

        total_time = self._get_total_processing_time()
        self.logger.info(f"Migration finished in {total_time:.2f}s: "
                         f"{self._metrics.tables_completed} tables completed, "
                         f"{self._metrics.tables_skipped} skipped, {self._metrics.tables_aborted} aborted")
        self.logger.info(f"Rows: {self._metrics.rows_copied:,} copied, {self._metrics.rows_lost:,} lost "
                         f"({self._metrics.rows_per_second:.1f} rows/s)")
        for stage_name, stage_time in self._metrics.stage_times.items():
            percentage = (stage_time / total_time * 100) if total_time > 0 else 0
            self.logger.info(f"  {stage_name}: {stage_time:.2f}s ({percentage:.1f}%)")
        self.logger.info(f"Peak memory {self._metrics.peak_memory_mb:.1f} MB, "
                         f"average CPU {self._metrics.avg_cpu_percent:.1f}%")

    def _monitor_resources(self) -> None:
        """Monitor process resources in background thread."""
        while not self._stop_monitoring_flag.is_set():
            try:
                self._sample_resources()
            except psutil.Error as e:
                self.logger.warning(f"Error monitoring resources: {e}")
                break
            self._stop_monitoring_flag.wait(self.sample_interval_seconds)

    def _sample_resources(self) -> None:
        memory_mb = self._get_current_memory_mb()
        self._memory_samples.append(memory_mb)
        if memory_mb > self._metrics.peak_memory_mb:
            self._metrics.peak_memory_mb = memory_mb
        self._cpu_samples.append(self._process.cpu_percent(interval=None))

    def _get_current_memory_mb(self) -> float:
        try:
            return self._process.memory_info().rss / 1024 / 1024
        except psutil.Error:
            return 0.0

    def _get_avg_cpu_percent(self) -> float:
        if not self._cpu_samples:
            return 0.0
        return sum(self._cpu_samples) / len(self._cpu_samples)

    def _calculate_final_metrics(self) -> None:
        total_time = self._get_total_processing_time()
        if total_time > 0:
            self._metrics.rows_per_second = self._metrics.rows_copied / total_time
        self._metrics.avg_cpu_percent = self._get_avg_cpu_percent()

    def _get_total_processing_time(self) -> float:
        if not self._metrics.start_time or not self._metrics.end_time:
            return 0.0
        return (self._metrics.end_time - self._metrics.start_time).total_seconds()

    def _get_performance_summary(self) -> Dict[str, Any]:
        total_time = self._get_total_processing_time()
        return {
            'total_processing_time_seconds': total_time,
            'rows_per_second': self._metrics.rows_per_second,
            'tables_completed': self._metrics.tables_completed,
            'tables_skipped': self._metrics.tables_skipped,
            'tables_aborted': self._metrics.tables_aborted,
            'stage_timings': {
                **{f'{name}_time_seconds': value for name, value in self._metrics.stage_times.items()},
                **{f'{name}_percent': (value / total_time * 100) if total_time > 0 else 0
                   for name, value in self._metrics.stage_times.items()},
            },
            'resource_usage': {
                'peak_memory_mb': self._metrics.peak_memory_mb,
                'avg_cpu_percent': self._metrics.avg_cpu_percent,
                'memory_samples_count': len(self._memory_samples),
                'cpu_samples_count': len(self._cpu_samples),
            },
            'custom_metrics': self._metrics.custom_metrics.copy()
        }
