"""
Centralized configuration defaults for data migration runs.

This module defines operational configuration constants used throughout the system.
These are migration infrastructure settings shared across all runs. Environment
variables (see config_manager) and constructor arguments override them at runtime.

Single Source of Truth: Change these values once; all modules automatically use updated defaults.
"""


class MigrationDefaults:
    """
    Centralized operational configuration for table copies.

    All values are defaults that can be overridden via environment variables:
    - DATA_MIGRATOR_CONCURRENCY=4
    - DATA_MIGRATOR_LOG_LEVEL=DEBUG
    """

    # Parallelization
    CONCURRENCY_CAP = 3  # Maximum table copies running at once
    DISPATCH_POLICY = "queue"  # "queue" (bounded pool) or "inline" (legacy synchronous fallback)
    POLL_INTERVAL_SECONDS = 5.0  # Drain polling interval for the inline policy

    # Row streaming
    FETCH_SIZE = 500  # Source rows fetched per round trip

    # Retry policy
    TRANSIENT_ATTEMPT_LIMIT = 6  # Executions of a row before a transient read error aborts the table
    SESSION_RETRY_DELAY_SECONDS = 1.0  # Pause between retries while the target is at its session limit

    # Connections
    CONNECT_ATTEMPTS = 3  # Attempts before a connection failure becomes job-fatal
    CONNECT_RETRY_DELAY_SECONDS = 5.0
    CONNECTION_TIMEOUT = 30  # Login timeout in seconds

    # Progress
    PROGRESS_BAR_WIDTH = 48
    PROGRESS_LINE_INTERVAL = 5000  # Rows between lines when output is not a terminal

    # Logging
    LOG_LEVEL = "WARNING"  # Default logging level (CRITICAL, ERROR, WARNING, INFO, DEBUG)

    @classmethod
    def to_dict(cls) -> dict:
        """
        Export all defaults as a dictionary.

        Returns:
            Dictionary of all MigrationDefaults class attributes.
        """
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if not key.startswith('_') and key.isupper()
        }

    @classmethod
    def log_summary(cls, logger=None):
        """
        Log a summary of all operational defaults.

        Args:
            logger: Optional logger instance. If None, prints to stdout.
        """
        config_dict = cls.to_dict()
        summary = "\n".join([f"  {key}: {value}" for key, value in sorted(config_dict.items())])
        message = f"Migration Configuration Defaults:\n{summary}"

        if logger:
            logger.info(message)
        else:
            print(message)
