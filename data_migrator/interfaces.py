"""
Abstract interfaces and base classes for the data migration system.

This module defines the contracts that the copy pipeline components implement
so the worker pool and the migration job can be wired with alternative
implementations (and with test doubles).
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

from .models import MigrationResult, ProgressState, TableCopyResult, TableDescriptor


class RowCopierInterface(ABC):
    """Abstract interface for components that copy the rows of one table."""

    @abstractmethod
    def copy_table(self, table: TableDescriptor) -> TableCopyResult:
        """
        Copy every row of a table from the source to the target.

        Args:
            table: Table selected by the catalog phase

        Returns:
            Per-table outcome (completed, skipped or aborted)

        Raises:
            MigrationAbortedError: On job-fatal conditions (connection or introspection failure)
        """
        pass


class ProgressTrackerInterface(ABC):
    """Abstract interface for row progress aggregation."""

    @abstractmethod
    def record_row(self, count: int = 1) -> None:
        """
        Record that rows were attempted.

        Args:
            count: Number of attempted rows to add
        """
        pass

    @abstractmethod
    def snapshot(self) -> ProgressState:
        """
        Get the current progress state.

        Returns:
            Copy of total and copied row counts
        """
        pass


class DispatchPolicyInterface(ABC):
    """
    Abstract interface for table dispatch strategies used by the WorkerPool.

    Allows:
    - Bounded queue dispatch (production)
    - Inline-fallback dispatch matching the legacy scheduling behaviour
    """

    @abstractmethod
    def run(self, tables: List[TableDescriptor],
            copy_table: Callable[[TableDescriptor], TableCopyResult]) -> List[TableCopyResult]:
        """
        Run copy_table once per table and wait for every copy to finish.

        Args:
            tables: Tables in dispatch order
            copy_table: Callable performing one table copy

        Returns:
            Per-table results in completion order
        """
        pass


class PerformanceMonitorInterface(ABC):
    """Abstract interface for performance monitoring components."""

    @abstractmethod
    def start_monitoring(self) -> None:
        """Start performance monitoring."""
        pass

    @abstractmethod
    def stop_monitoring(self) -> MigrationResult:
        """
        Stop monitoring and return results.

        Returns:
            Migration results with performance metrics
        """
        pass

    @abstractmethod
    def record_metric(self, metric_name: str, value: Any) -> None:
        """
        Record a performance metric.

        Args:
            metric_name: Name of the metric
            value: Metric value
        """
        pass

    @abstractmethod
    def get_current_metrics(self) -> Dict[str, Any]:
        """
        Get current performance metrics.

        Returns:
            Dictionary of current metric values
        """
        pass
