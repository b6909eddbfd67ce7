"""
Configuration module for Sigrun.

Uses pydantic-settings for environment variable loading and layered YAML files.
"""

from sigrun.config.settings import Settings, find_project_root
from sigrun.config.sources import ConfigFileError
from sigrun.config.types import (
    ConfigBase,
    HistoryConfig,
    LoggingConfig,
    LoopConfig,
    ProviderConfig,
    SessionConfig,
)

__all__ = [
    "ConfigBase",
    "ConfigFileError",
    "HistoryConfig",
    "LoggingConfig",
    "LoopConfig",
    "ProviderConfig",
    "SessionConfig",
    "Settings",
    "find_project_root",
]
