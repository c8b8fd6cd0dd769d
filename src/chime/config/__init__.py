"""Configuration module."""

from chime.config.loader import get_default_config, load_config
from chime.config.models import (
    ChimeConfig,
    ConfigError,
    DispatchConfig,
    LoggingConfig,
    SchedulerConfig,
    ServerConfig,
)
from chime.config.paths import (
    get_chime_home,
    get_config_path,
    get_logs_path,
    get_store_path,
)

__all__ = [
    "ChimeConfig",
    "ConfigError",
    "DispatchConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "ServerConfig",
    "get_chime_home",
    "get_config_path",
    "get_default_config",
    "get_logs_path",
    "get_store_path",
    "load_config",
]
