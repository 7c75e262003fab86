"""Configuration management components."""

from .config_manager import (
    ConfigManager,
    DatabaseProfileConfig,
    MigrationParameters,
    get_config_manager,
    reset_config_manager
)
from .migration_defaults import MigrationDefaults

__all__ = [
    'ConfigManager',
    'DatabaseProfileConfig',
    'MigrationParameters',
    'MigrationDefaults',
    'get_config_manager',
    'reset_config_manager'
]
