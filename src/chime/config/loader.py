"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

import pydantic
from pydantic import SecretStr

from chime.config.models import ChimeConfig, ConfigError
from chime.config.paths import get_config_path

TOKEN_ENV_VAR = "CHIME_DISPATCH_TOKEN"


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.chime/config.toml (or CHIME_HOME)
        Path("/etc/chime/config.toml"),  # System-wide
    ]


def _resolve_env_secrets(config: dict[str, Any]) -> dict[str, Any]:
    """Fill the dispatch auth token from the environment if not set in config."""
    dispatch = config.setdefault("dispatch", {})
    if dispatch.get("auth_token") is None:
        value = os.environ.get(TOKEN_ENV_VAR)
        if value:
            dispatch["auth_token"] = SecretStr(value)
    return config


def load_config(path: Path | None = None) -> ChimeConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default
            locations and falls back to defaults when none exists.

    Returns:
        Validated ChimeConfig instance.

    Raises:
        FileNotFoundError: If an explicit config file does not exist.
        ConfigError: If the config file is invalid.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in _get_default_config_paths():
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _resolve_env_secrets(raw_config)

    try:
        return ChimeConfig.model_validate(raw_config)
    except pydantic.ValidationError as e:
        source = config_path or "defaults"
        raise ConfigError(f"Invalid configuration ({source}): {e}") from e


def get_default_config() -> ChimeConfig:
    """Get a default configuration for development/testing."""
    return ChimeConfig()
