"""Configuration management for the acquisition pipeline."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_app_config, validate_config_file
from .models import (
    DEFAULT_AUTH_MARKERS,
    AppConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    SchedulerSettings,
    StageConfig,
    StagesConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "parse_app_config",
    "validate_config_file",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "StageConfig",
    "StagesConfig",
    "SchedulerSettings",
    "LoggingConfig",
    "EnvironmentConfig",
    "DEFAULT_AUTH_MARKERS",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
