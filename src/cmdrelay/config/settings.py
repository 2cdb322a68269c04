"""Configuration management for cmdrelay.

Loads settings from an optional YAML configuration file, environment
variables (``CMDRELAY_`` prefix, ``__`` for nested sections) and
command-line overrides. Settings are immutable once constructed.

Invalid values for the listen host, listen port and log level never
abort startup: a warning is logged and the default is used instead.
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/cmdrelay.yaml")

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 9772


class LogLevel(str, enum.Enum):
    """Log verbosity accepted on the command line."""

    DEBUG = "debug"
    INFO = "info"
    ERROR = "error"
    SILENT = "silent"

    def to_logging_level(self) -> int:
        """Return the matching threshold for the ``logging`` module."""
        if self is LogLevel.DEBUG:
            return logging.DEBUG
        if self is LogLevel.INFO:
            return logging.INFO
        if self is LogLevel.ERROR:
            return logging.ERROR
        # Above CRITICAL, nothing gets through
        return logging.CRITICAL + 10


DEFAULT_LOG_LEVEL = LogLevel.INFO


def _warn_invalid(argument: str, value: Any, default: Any) -> None:
    logger.warning(
        "Provided invalid value for argument: --%s %s (using default %s)",
        argument, value, default,
    )


class ServerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str = Field(default=DEFAULT_HOST, min_length=1)
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)

    @field_validator("host", mode="wrap")
    @classmethod
    def _fallback_host(cls, value: Any, handler: Any) -> str:
        try:
            return handler(value)
        except ValidationError:
            _warn_invalid("host", value, DEFAULT_HOST)
            return DEFAULT_HOST

    @field_validator("port", mode="wrap")
    @classmethod
    def _fallback_port(cls, value: Any, handler: Any) -> int:
        # bool is an int subclass; "--port true" is not a port
        if isinstance(value, bool):
            _warn_invalid("port", value, DEFAULT_PORT)
            return DEFAULT_PORT
        try:
            return handler(value)
        except ValidationError:
            _warn_invalid("port", value, DEFAULT_PORT)
            return DEFAULT_PORT


class LoggingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: LogLevel = Field(default=DEFAULT_LOG_LEVEL)
    format: str = Field(default="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    file: str | None = Field(default=None)

    @field_validator("level", mode="wrap")
    @classmethod
    def _fallback_level(cls, value: Any, handler: Any) -> LogLevel:
        try:
            return handler(value.lower() if isinstance(value, str) else value)
        except ValidationError:
            _warn_invalid("log", value, DEFAULT_LOG_LEVEL.value)
            return DEFAULT_LOG_LEVEL


class RelaySettings(BaseSettings):
    """Root configuration for the relay.

    Constructed once before the server starts and passed explicitly to
    the application factory and the logging setup.
    """

    model_config = {
        "env_prefix": "CMDRELAY_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "frozen": True,
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(
    config_path: Path | str | None = None,
    *,
    host: str | None = None,
    port: str | int | None = None,
    log_level: str | None = None,
) -> RelaySettings:
    """Load settings from YAML + environment variables + overrides.

    Priority: command-line overrides > YAML file > env vars > defaults.
    Overrides left as ``None`` are not applied.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if path.exists():
        with open(path) as f:
            loaded = yaml.safe_load(f) or {}
        if isinstance(loaded, dict):
            data = loaded
            logger.info("Loaded configuration from %s", path)
        else:
            logger.warning("Ignoring configuration file %s: expected a mapping", path)
    else:
        logger.info("Config file %s not found, using defaults + env vars", path)

    _apply_overrides(data, host=host, port=port, log_level=log_level)

    return RelaySettings(**data)


def _apply_overrides(
    data: dict[str, Any],
    host: str | None,
    port: str | int | None,
    log_level: str | None,
) -> None:
    """Merge command-line values into the nested settings structure."""
    for section in ("server", "logging"):
        value = data.get(section)
        if isinstance(value, dict):
            continue
        if value is not None:
            logger.warning(
                "Ignoring configuration section %r: expected a mapping, got %s",
                section, type(value).__name__,
            )
        data[section] = {}

    if host is not None:
        data["server"]["host"] = host
    if port is not None:
        data["server"]["port"] = port
    if log_level is not None:
        data["logging"]["level"] = log_level
