"""Application configuration helpers."""

from __future__ import annotations

from .env import env_bool, env_float, env_int, require_env_vars
from .errors import (
    ConfigurationError,
    InvalidConfigurationValueError,
    MissingConfigurationError,
)
from .imports import ImportConfig, get_import_config
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "ImportConfig",
    "InvalidConfigurationValueError",
    "MissingConfigurationError",
    "StorageConfig",
    "configure_logging",
    "env_bool",
    "env_float",
    "env_int",
    "get_database_config",
    "get_import_config",
    "get_storage_config",
    "require_env_vars",
]
