"""Configuration loading for the price stream."""

from .settings import (
    HistoryConfig,
    LoggingConfig,
    PriceStreamSettings,
    StreamConfig,
    load_settings,
)

__all__ = ["HistoryConfig", "LoggingConfig", "PriceStreamSettings", "StreamConfig", "load_settings"]
