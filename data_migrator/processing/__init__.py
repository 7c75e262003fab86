"""
Processing module for the data migration system.

Concurrent table dispatch and whole-job orchestration.
"""

from .migration_job import MigrationJob
from .worker_pool import InlineDispatchPolicy, QueueDispatchPolicy, WorkerPool

__all__ = [
    'MigrationJob',
    'WorkerPool',
    'QueueDispatchPolicy',
    'InlineDispatchPolicy'
]
