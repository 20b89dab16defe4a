"""Configuration models and loader for run-events.

Configuration is a small YAML document:

    enabled: true
    transport:
      sink_url: https://events.example.com/
      timeout: 10.0
    retry:
      base_delay_ms: 10
      max_attempts: 10
    diagnostics: log

The RUN_EVENTS_SINK_URL environment variable overrides transport.sink_url.
Loaded configuration is cached in a module singleton (get_config()); tests
reset it with _reset_config().
"""

import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from run_events.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

__all__ = [
    "SINK_URL_ENV",
    "EventsConfig",
    "RetryConfig",
    "TransportConfig",
    "get_config",
    "load_config",
    "load_config_file",
]

SINK_URL_ENV = "RUN_EVENTS_SINK_URL"


class RetryConfig(BaseModel):
    """Exponential backoff policy for event delivery.

    Attributes:
        base_delay_ms: Delay before the second attempt; doubles on each retry.
        max_attempts: Total send attempts, including the first.

    """

    model_config = ConfigDict(frozen=True)

    base_delay_ms: int = Field(default=10, gt=0, description="Initial backoff delay in ms")
    max_attempts: int = Field(default=10, ge=1, description="Maximum send attempts")

    @property
    def base_delay(self) -> float:
        """Base delay in seconds."""
        return self.base_delay_ms / 1000.0


class TransportConfig(BaseModel):
    """HTTP transport settings."""

    model_config = ConfigDict(frozen=True)

    sink_url: str | None = Field(default=None, description="CloudEvents sink URL")
    timeout: float = Field(default=10.0, gt=0, description="Request timeout in seconds")
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("sink_url", mode="before")
    @classmethod
    def blank_url_is_unset(cls, v: Any) -> Any:
        """Treat empty or whitespace-only URLs as not configured."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class EventsConfig(BaseModel):
    """Top-level run-events configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    transport: TransportConfig = Field(default_factory=TransportConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    diagnostics: Literal["log", "off"] = Field(
        default="log",
        description="Where delivery failures are recorded besides the warning log",
    )

    @field_validator("transport", "retry", mode="before")
    @classmethod
    def coerce_none_to_default(cls, v: Any) -> Any:
        """YAML parses empty sections as None."""
        if v is None:
            return {}
        return v


_config: EventsConfig | None = None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    sink_url = os.environ.get(SINK_URL_ENV)
    if not sink_url:
        return data
    transport = dict(data.get("transport") or {})
    transport["sink_url"] = sink_url
    logger.debug("Sink URL overridden from %s", SINK_URL_ENV)
    return {**data, "transport": transport}


def load_config(data: dict[str, Any] | None = None) -> EventsConfig:
    """Validate configuration data and cache it as the active config.

    Args:
        data: Parsed configuration mapping. None loads defaults.

    Returns:
        Validated EventsConfig.

    Raises:
        ConfigError: If the data fails validation.

    """
    global _config
    merged = _apply_env_overrides(dict(data or {}))
    try:
        config = EventsConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid run-events configuration: {e}") from e
    _config = config
    return config


def load_config_file(path: Path) -> EventsConfig:
    """Load configuration from a YAML file.

    Raises:
        ConfigError: If the file is unreadable, not valid YAML, not a mapping,
            or fails validation.

    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    logger.info("Loaded run-events config from %s", path)
    return load_config(data)


def get_config() -> EventsConfig:
    """Return the active config, loading defaults on first use."""
    if _config is None:
        return load_config()
    return _config


def _reset_config() -> None:
    """Clear the cached config (for tests)."""
    global _config
    _config = None
