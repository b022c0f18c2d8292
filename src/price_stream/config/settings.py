"""Configuration settings using Pydantic for validation."""

from pathlib import Path
from typing import Any, List, Optional, Union
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import os
import re
import yaml


class StreamConfig(BaseModel):
    """Ticker stream connection configuration."""
    url: str = Field(default="wss://stream.binance.com:9443/ws/!ticker@arr", description="WebSocket endpoint")
    symbols: List[str] = Field(
        default=["btcusdt", "ethusdt", "bnbusdt", "adausdt", "solusdt"],
        description="Allow-list of instrument identifiers"
    )
    reconnect_delay_ms: int = Field(default=5000, ge=0, description="Fixed delay before a reconnect attempt")
    max_reconnect_attempts: Optional[int] = Field(
        default=10, ge=1, description="Consecutive reconnect attempts before giving up; null for unlimited"
    )
    open_timeout_seconds: float = Field(default=10.0, gt=0, description="WebSocket handshake timeout")
    ping_interval_seconds: Optional[float] = Field(default=20.0, description="Keepalive ping interval")
    ping_timeout_seconds: Optional[float] = Field(default=10.0, description="Keepalive pong timeout")
    max_message_bytes: int = Field(default=4 * 2**20, description="Maximum inbound frame size")

    @field_validator('symbols')
    @classmethod
    def normalize_symbols(cls, v):
        symbols = [s.strip().lower() for s in v if s and s.strip()]
        if not symbols:
            raise ValueError("At least one symbol must be configured")
        return symbols

    @property
    def reconnect_delay_seconds(self) -> float:
        return self.reconnect_delay_ms / 1000.0


class HistoryConfig(BaseModel):
    """Per-symbol history retention."""
    capacity: int = Field(default=100, ge=1, description="Maximum ticks retained per symbol")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")
    output: str = Field(default="stdout", description="Log output destination")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        level = v.upper()
        if level not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"Unknown log level '{v}'")
        return level


class PriceStreamSettings(BaseSettings):
    """Main price stream settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Service configuration
    service_name: str = Field(default="price-stream", description="Service name")
    environment: str = Field(default="local", description="Environment: local, dev, prod")

    # Component configurations
    stream: StreamConfig = Field(default_factory=StreamConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        if v not in ['local', 'dev', 'prod']:
            raise ValueError("Environment must be 'local', 'dev', or 'prod'")
        return v


# ${NAME} or ${NAME:-fallback}
_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def _resolve_reference(match: "re.Match[str]") -> str:
    name, fallback = match.group(1), match.group(2)
    value = os.environ.get(name)
    if value is not None:
        return value
    if fallback is None:
        raise ValueError(f"Required environment variable '{name}' is not set")
    return fallback


def substitute_env_vars(obj: Any) -> Any:
    """
    Expand ``${NAME}`` and ``${NAME:-fallback}`` in every string of a parsed YAML tree.

    Raises:
        ValueError: If a reference without a fallback names an unset variable
    """
    if isinstance(obj, str):
        return _ENV_REFERENCE.sub(_resolve_reference, obj)
    if isinstance(obj, dict):
        return {key: substitute_env_vars(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]
    return obj


def load_settings(config_file: Union[str, Path, None] = None) -> PriceStreamSettings:
    """
    Build settings from an optional YAML file, then the environment.

    Values in the file take precedence over ``.env`` and environment variables,
    which only fill fields the file leaves out. Without a file the settings come
    from the environment alone.

    Raises:
        FileNotFoundError: If ``config_file`` is given but does not exist
        ValueError: If the file references an unset required variable
    """
    if config_file is None:
        return PriceStreamSettings()

    path = Path(config_file)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    raw_config = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return PriceStreamSettings(**substitute_env_vars(raw_config))
