"""Configuration models using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator

from chime.config.paths import get_store_path


class ConfigError(Exception):
    """Configuration error."""

    pass


class SchedulerConfig(BaseModel):
    """Configuration for the scheduler engine."""

    store_path: Path = Field(default_factory=get_store_path)
    # Seconds allowed for a single delivery
    dispatch_timeout: float = Field(default=10.0, gt=0)
    # Offset applied by the CLI/API when a request omits one
    default_tz_offset: float = Field(default=0.0, ge=-12, le=14)


class DispatchConfig(BaseModel):
    """Configuration for payload delivery.

    ``webhook`` POSTs payloads to target URLs; ``log`` only logs them.
    """

    mode: Literal["webhook", "log"] = "webhook"
    auth_token: SecretStr | None = None
    headers: dict[str, str] = {}


class ServerConfig(BaseModel):
    """Configuration for the HTTP admin server."""

    host: str = "127.0.0.1"
    port: int = 8080


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_to_file: bool = False
    retention_days: int = Field(default=7, ge=1)

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


class ChimeConfig(BaseModel):
    """Root configuration model."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
