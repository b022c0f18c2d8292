"""Pytest configuration and shared fixtures."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from price_stream.config.settings import StreamConfig
from price_stream.history import HistoryStore
from price_stream.listeners import PriceStreamListener
from price_stream.models import Direction, PriceTick


class _Drop:
    """Queue marker that ends the fake socket's message stream."""

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    def feed(self, message: Any) -> None:
        self._queue.put_nowait(message)

    def drop(self, error: Optional[BaseException] = None) -> None:
        """Simulate the server closing the connection, optionally abnormally."""
        self._queue.put_nowait(_Drop(error))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if isinstance(item, _Drop):
            if item.error is not None:
                raise item.error
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        self.close_calls += 1


class FakeConnector:
    """Callable replacing websockets.connect; hands out FakeWebSocket instances."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.sockets: List[FakeWebSocket] = []
        self.failures: List[BaseException] = []
        self.fail_always: Optional[BaseException] = None
        self.gate: Optional[asyncio.Event] = None

    async def __call__(self, url: str, **kwargs):
        self.calls.append({'url': url, **kwargs})
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)
        if self.fail_always is not None:
            raise self.fail_always
        websocket = FakeWebSocket()
        self.sockets.append(websocket)
        return websocket

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]


class RecordingListener(PriceStreamListener):
    """Listener that records every notification in order."""

    def __init__(self):
        self.events: List[str] = []
        self.errors: List[BaseException] = []
        self.batches: List[List[PriceTick]] = []

    def on_connect(self):
        self.events.append('connect')

    def on_disconnect(self):
        self.events.append('disconnect')

    def on_error(self, error):
        self.events.append('error')
        self.errors.append(error)

    def on_price_update(self, ticks):
        self.events.append('price_update')
        self.batches.append(list(ticks))


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_tick(symbol: str = "BTCUSDT", price: str = "100.00", observed_at: int = 0,
              direction: Direction = Direction.NONE) -> PriceTick:
    return PriceTick(symbol=symbol, price=price, observed_at=observed_at, direction=direction)


@pytest.fixture
def stream_config() -> StreamConfig:
    """Stream configuration with a short reconnect delay."""
    return StreamConfig(
        url="wss://example.test/ws/!ticker@arr",
        symbols=["btcusdt", "ethusdt"],
        reconnect_delay_ms=10,
        max_reconnect_attempts=3,
    )


@pytest.fixture
def history_store() -> HistoryStore:
    return HistoryStore(capacity=100)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def sample_ticker_frame() -> str:
    """Ticker array with one allowed and one filtered-out symbol."""
    return json.dumps([
        {'e': '24hrTicker', 'E': 1640995200000, 's': 'BTCUSDT', 'c': '100.00', 'P': '90.00'},
        {'e': '24hrTicker', 'E': 1640995200000, 's': 'DOGEUSDT', 'c': '0.17', 'P': '0.10'},
    ])


@pytest.fixture
def flat_ticker_frame() -> str:
    return json.dumps([
        {'e': '24hrTicker', 'E': 1640995200000, 's': 'ETHUSDT', 'c': '50.00', 'P': '50.00'},
    ])
