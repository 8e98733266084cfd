"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigError


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class ClientSettings(BaseSettings):
    """Top-level client settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    url: str = "ws://localhost:8080"

    # Reconnection
    auto_reconnect: bool = True
    reconnect_interval: float = Field(default=5.0, ge=0)  # seconds, fixed delay
    max_reconnect_attempts: int | None = Field(default=None, ge=0)  # None = unbounded

    # Transport
    heartbeat: float | None = None  # seconds between WebSocket pings
    connect_timeout: float = Field(default=10.0, gt=0)

    # Signing identity for the CLI (hex or esec text)
    secret_key: str | None = None

    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "ESCLIENT_", "env_nested_delimiter": "__"}

    def reconnect_allowed(self, attempts: int) -> bool:
        """Whether another reconnect may be scheduled after *attempts* tries."""
        if not self.auto_reconnect:
            return False
        return self.max_reconnect_attempts is None or attempts < self.max_reconnect_attempts


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ClientSettings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                try:
                    data = tomli.load(f)
                except tomli.TOMLDecodeError as exc:
                    raise ConfigError(f"Invalid config file {path}: {exc}") from exc

    if overrides:
        data.update(overrides)

    try:
        return ClientSettings(**data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
