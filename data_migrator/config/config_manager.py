"""
Centralized configuration management for the data migration system.

This module provides the ConfigManager class that serves as the single source of truth
for source/target connection profiles and migration parameters, resolved from
environment variables with MigrationDefaults as fallback.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..exceptions import ConfigurationError
from ..models import ConnectionProfile
from .migration_defaults import MigrationDefaults


ENV_PREFIX = "DATA_MIGRATOR"
DISPATCH_POLICIES = ("queue", "inline")


def _env_name(*parts: str) -> str:
    return "_".join((ENV_PREFIX,) + tuple(p.upper() for p in parts))


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _parse_options(raw: str) -> Tuple[Tuple[str, str], ...]:
    """Parse 'KEY=value;KEY2=value2' into connection string option pairs."""
    options = []
    for item in raw.split(';'):
        if not item.strip():
            continue
        if '=' not in item:
            raise ConfigurationError(f"Invalid connection option {item!r}, expected KEY=value")
        key, value = item.split('=', 1)
        options.append((key.strip(), value.strip()))
    return tuple(options)


@dataclass
class DatabaseProfileConfig:
    """Connection settings for one side of the migration with environment variable support."""
    side: str
    driver: str = "ODBC Driver 17 for SQL Server"
    address: str = "localhost"
    database: str = ""
    username: str = ""
    password: str = ""
    schema: str = ""
    connection_timeout: int = MigrationDefaults.CONNECTION_TIMEOUT
    charset: str = ""
    options: str = ""
    connection_string: str = ""

    @classmethod
    def from_environment(cls, side: str) -> 'DatabaseProfileConfig':
        """
        Create connection settings from DATA_MIGRATOR_<SIDE>_* environment variables.

        Args:
            side: "source" or "target"
        """
        env = lambda key, default='': os.environ.get(_env_name(side, key), default)

        return cls(
            side=side,
            driver=env('DRIVER', cls.driver),
            address=env('ADDRESS', cls.address),
            database=env('DATABASE'),
            username=env('USERNAME'),
            password=env('PASSWORD'),
            schema=env('SCHEMA'),
            connection_timeout=_env_int(_env_name(side, 'CONNECTION_TIMEOUT'), cls.connection_timeout),
            charset=env('CHARSET'),
            options=env('OPTIONS'),
            connection_string=env('CONNECTION_STRING')
        )

    def to_profile(self) -> ConnectionProfile:
        """Build the immutable ConnectionProfile consumed by the copy pipeline."""
        try:
            return ConnectionProfile(
                driver_id=self.driver,
                address=self.address,
                username=self.username or None,
                password=self.password or None,
                schema_name=self.schema or None,
                database=self.database or None,
                connection_timeout=self.connection_timeout,
                charset=self.charset or None,
                options=_parse_options(self.options),
                connection_string_override=self.connection_string or None,
                name=self.side
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid {self.side} connection settings: {e}")


@dataclass
class MigrationParameters:
    """Migration parameters with environment variable support."""
    concurrency_cap: int = MigrationDefaults.CONCURRENCY_CAP
    dispatch_policy: str = MigrationDefaults.DISPATCH_POLICY
    poll_interval_seconds: float = MigrationDefaults.POLL_INTERVAL_SECONDS
    fetch_size: int = MigrationDefaults.FETCH_SIZE
    transient_attempt_limit: int = MigrationDefaults.TRANSIENT_ATTEMPT_LIMIT
    session_retry_delay_seconds: float = MigrationDefaults.SESSION_RETRY_DELAY_SECONDS
    connect_attempts: int = MigrationDefaults.CONNECT_ATTEMPTS
    connect_retry_delay_seconds: float = MigrationDefaults.CONNECT_RETRY_DELAY_SECONDS
    progress_line_interval: int = MigrationDefaults.PROGRESS_LINE_INTERVAL
    log_level: str = MigrationDefaults.LOG_LEVEL

    @classmethod
    def from_environment(cls) -> 'MigrationParameters':
        """Create migration parameters from environment variables."""
        return cls(
            concurrency_cap=_env_int(_env_name('CONCURRENCY'), cls.concurrency_cap),
            dispatch_policy=os.environ.get(_env_name('DISPATCH_POLICY'), cls.dispatch_policy).lower(),
            poll_interval_seconds=_env_float(_env_name('POLL_INTERVAL_SECONDS'), cls.poll_interval_seconds),
            fetch_size=_env_int(_env_name('FETCH_SIZE'), cls.fetch_size),
            transient_attempt_limit=_env_int(_env_name('TRANSIENT_ATTEMPTS'), cls.transient_attempt_limit),
            session_retry_delay_seconds=_env_float(_env_name('SESSION_RETRY_DELAY_SECONDS'),
                                                   cls.session_retry_delay_seconds),
            connect_attempts=_env_int(_env_name('CONNECT_ATTEMPTS'), cls.connect_attempts),
            connect_retry_delay_seconds=_env_float(_env_name('CONNECT_RETRY_DELAY_SECONDS'),
                                                   cls.connect_retry_delay_seconds),
            progress_line_interval=_env_int(_env_name('PROGRESS_INTERVAL'), cls.progress_line_interval),
            log_level=os.environ.get(_env_name('LOG_LEVEL'), cls.log_level).upper()
        )

    def validate(self) -> None:
        """
        Validate parameter ranges.

        Raises:
            ConfigurationError: If any parameter is out of range
        """
        errors = []
        if self.concurrency_cap <= 0:
            errors.append("concurrency_cap must be positive")
        if self.dispatch_policy not in DISPATCH_POLICIES:
            errors.append(f"dispatch_policy must be one of {', '.join(DISPATCH_POLICIES)}")
        if self.poll_interval_seconds < 0:
            errors.append("poll_interval_seconds cannot be negative")
        if self.fetch_size <= 0:
            errors.append("fetch_size must be positive")
        if self.transient_attempt_limit <= 0:
            errors.append("transient_attempt_limit must be positive")
        if self.session_retry_delay_seconds < 0:
            errors.append("session_retry_delay_seconds cannot be negative")
        if self.connect_attempts <= 0:
            errors.append("connect_attempts must be positive")
        if self.progress_line_interval <= 0:
            errors.append("progress_line_interval must be positive")
        if not isinstance(getattr(logging, self.log_level, None), int):
            errors.append(f"log_level {self.log_level!r} is not a logging level")

        if errors:
            raise ConfigurationError(f"Invalid migration parameters: {'; '.join(errors)}")


class ConfigManager:
    """
    Centralized configuration manager serving as single source of truth.

    This class consolidates:
    - Source and target connection profiles
    - Migration parameters (concurrency, retry, progress, logging)
    - Environment variable handling
    """

    def __init__(self):
        """Initialize the configuration manager from environment variables."""
        self.logger = logging.getLogger(__name__)

        self.source_config = DatabaseProfileConfig.from_environment('source')
        self.target_config = DatabaseProfileConfig.from_environment('target')
        self.migration_params = MigrationParameters.from_environment()

        self._profile_cache: Dict[str, ConnectionProfile] = {}

        self.logger.info(f"ConfigManager initialized: source={self.source_config.address}, "
                         f"target={self.target_config.address}")
        self.logger.info(f"Concurrency cap: {self.migration_params.concurrency_cap} "
                         f"({self.migration_params.dispatch_policy} dispatch)")

    def get_source_profile(self) -> ConnectionProfile:
        """Get the source ConnectionProfile."""
        return self._get_profile(self.source_config)

    def get_target_profile(self) -> ConnectionProfile:
        """Get the target ConnectionProfile."""
        return self._get_profile(self.target_config)

    def get_migration_parameters(self) -> MigrationParameters:
        """Get migration parameters."""
        return self.migration_params

    def _get_profile(self, config: DatabaseProfileConfig) -> ConnectionProfile:
        if config.side not in self._profile_cache:
            self._profile_cache[config.side] = config.to_profile()
        return self._profile_cache[config.side]

    def validate_configuration(self) -> bool:
        """
        Validate all configuration settings.

        Returns:
            True if all configurations are valid

        Raises:
            ConfigurationError: If any configuration is invalid
        """
        errors = []

        try:
            source = self.get_source_profile()
            target = self.get_target_profile()
            if source.connection_string == target.connection_string and source.schema_name == target.schema_name:
                errors.append("Source and target resolve to the same database and schema")
        except ConfigurationError as e:
            errors.append(str(e))

        try:
            self.migration_params.validate()
        except ConfigurationError as e:
            errors.append(str(e))

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

        self.logger.info("Configuration validation passed")
        return True

    def get_configuration_summary(self) -> Dict[str, Any]:
        """
        Get a summary of all configuration settings. Passwords are masked.

        Returns:
            Dictionary containing configuration summary
        """
        def side_summary(config: DatabaseProfileConfig) -> Dict[str, Any]:
            return {
                'driver': config.driver,
                'address': config.address,
                'database': config.database,
                'schema': config.schema,
                'username': config.username,
                'password': '***' if config.password else '',
                'connection_string_override': bool(config.connection_string),
                'connection_timeout': config.connection_timeout
            }

        return {
            'source': side_summary(self.source_config),
            'target': side_summary(self.target_config),
            'migration': {
                'concurrency_cap': self.migration_params.concurrency_cap,
                'dispatch_policy': self.migration_params.dispatch_policy,
                'poll_interval_seconds': self.migration_params.poll_interval_seconds,
                'fetch_size': self.migration_params.fetch_size,
                'transient_attempt_limit': self.migration_params.transient_attempt_limit,
                'session_retry_delay_seconds': self.migration_params.session_retry_delay_seconds,
                'connect_attempts': self.migration_params.connect_attempts,
                'progress_line_interval': self.migration_params.progress_line_interval,
                'log_level': self.migration_params.log_level
            }
        }

    def reload_configuration(self) -> None:
        """Reload configuration from environment variables and clear cache."""
        self.source_config = DatabaseProfileConfig.from_environment('source')
        self.target_config = DatabaseProfileConfig.from_environment('target')
        self.migration_params = MigrationParameters.from_environment()
        self._profile_cache.clear()

        self.logger.info("Configuration reloaded from environment variables")


# Global configuration manager instance
_global_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """
    Get the global configuration manager instance.

    Returns:
        Global ConfigManager instance
    """
    global _global_config_manager

    if _global_config_manager is None:
        _global_config_manager = ConfigManager()

    return _global_config_manager


def reset_config_manager() -> None:
    """Reset the global configuration manager instance."""
    global _global_config_manager
    _global_config_manager = None
