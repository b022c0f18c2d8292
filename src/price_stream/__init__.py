"""
Price Stream - live market-price ingestion with bounded per-symbol history.

This package streams ticker updates over a persistent WebSocket connection,
classifies each update's price direction and keeps a bounded, memory-resident
series per instrument for downstream consumers.
"""

from .classifier import classify
from .clients.ticker_stream import StreamClient
from .history import HistoryStore
from .listeners import CallbackListener, PriceStreamListener
from .models import ConnectionState, Direction, PriceDelta, PriceTick, TickerRecord

__version__ = "1.0.0"
__author__ = "Price Stream Team"

__all__ = [
    "CallbackListener",
    "ConnectionState",
    "Direction",
    "HistoryStore",
    "PriceDelta",
    "PriceStreamListener",
    "PriceTick",
    "StreamClient",
    "TickerRecord",
    "classify",
]
