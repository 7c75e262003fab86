"""
Monitoring module for the data migration system.

Row progress reporting and job performance metrics.
"""

from .performance_monitor import PerformanceMetrics, PerformanceMonitor
from .progress_tracker import ProgressTracker

__all__ = [
    'PerformanceMonitor',
    'PerformanceMetrics',
    'ProgressTracker'
]
