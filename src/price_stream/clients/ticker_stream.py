"""Ticker-array WebSocket client with fixed-delay reconnection."""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, InvalidURI, WebSocketException

from ..classifier import classify
from ..config.settings import StreamConfig
from ..history import HistoryStore
from ..listeners import PriceStreamListener
from ..models import ConnectionState, PriceTick, TickerRecord
from ..utils.logging import log_error_with_context

logger = logging.getLogger(__name__)

Connector = Callable[..., Awaitable[Any]]


class StreamClient:
    """
    WebSocket client for live ticker-array updates.

    Each inbound frame is decoded, filtered against the configured allow-list,
    classified, recorded into the shared HistoryStore and pushed to every
    registered listener. A dropped connection is retried after a fixed delay,
    with at most one reconnect timer armed at a time.

    All methods must be called from the event loop the client runs on.
    """

    def __init__(
        self,
        config: StreamConfig,
        store: HistoryStore,
        listeners: Optional[Iterable[PriceStreamListener]] = None,
        connector: Optional[Connector] = None,
    ):
        self.config = config
        self.store = store
        self._allowed = frozenset(symbol.lower() for symbol in config.symbols)
        self._listeners: List[PriceStreamListener] = list(listeners or [])
        self._connector = connector or websockets.connect

        self.websocket: Optional[Any] = None
        self._state = ConnectionState.DISCONNECTED
        self._connecting = False
        # Bumped by disconnect(); stale handshakes and receive loops compare against it.
        self._generation = 0
        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_attempts = 0

        self.stats = {
            'messages_received': 0,
            'frames_processed': 0,
            'decode_errors': 0,
            'records_rejected': 0,
            'ticks_emitted': 0,
            'last_message_time': None,
            'connection_count': 0,
            'reconnects_scheduled': 0,
        }

    def add_listener(self, listener: PriceStreamListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: PriceStreamListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self.websocket is not None

    def connection_state_label(self) -> str:
        if self._connecting:
            return "Connecting..."
        if self.is_connected():
            return "Connected"
        return "Disconnected"

    async def connect(self) -> bool:
        """
        Open the stream unless it is open or an attempt is already in flight.

        Returns True when the client ends up connected. Failures are reported
        through the listeners' ``on_error`` and do not arm a reconnect.
        """
        if self._connecting or self.is_connected():
            return self.is_connected()

        # An explicit connect supersedes any pending retry and resets the budget.
        self._cancel_reconnect()
        self._reconnect_attempts = 0
        return await self._open(reconnecting=False)

    async def disconnect(self) -> None:
        """Close the stream and cancel any pending reconnect. Safe to call repeatedly."""
        self._generation += 1
        self._cancel_reconnect()

        websocket, self.websocket = self.websocket, None
        receive_task, self._receive_task = self._receive_task, None
        self._connecting = False
        self._state = ConnectionState.DISCONNECTED

        if receive_task is not None and receive_task is not asyncio.current_task():
            receive_task.cancel()
            await asyncio.gather(receive_task, return_exceptions=True)

        if websocket is None:
            return

        try:
            await websocket.close()
        except (OSError, WebSocketException) as e:
            logger.warning(f"Error while closing ticker stream: {e}")

        logger.info("Disconnected from ticker stream")
        self._notify_disconnect()

    async def __aenter__(self) -> "StreamClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    async def _open(self, reconnecting: bool) -> bool:
        """Perform one connection attempt."""
        self._connecting = True
        self._state = ConnectionState.CONNECTING
        generation = self._generation
        url = self.config.url

        logger.info(f"Connecting to ticker stream: {url}")

        try:
            websocket = await self._connector(
                url,
                open_timeout=self.config.open_timeout_seconds,
                ping_interval=self.config.ping_interval_seconds,
                ping_timeout=self.config.ping_timeout_seconds,
                max_size=self.config.max_message_bytes,
            )
        except (InvalidURI, ValueError) as e:
            if generation == self._generation:
                self._connect_failed(e, url)
            return False
        except Exception as e:
            # Transport failures, timeouts and anything else the connector raises
            if generation == self._generation:
                self._connect_failed(e, url)
                if reconnecting:
                    self._schedule_reconnect()
            return False

        if generation != self._generation:
            # disconnect() ran while the handshake was pending
            logger.info("Discarding connection that completed after disconnect")
            await websocket.close()
            return False

        self.websocket = websocket
        self._connecting = False
        self._state = ConnectionState.CONNECTED
        self._reconnect_attempts = 0
        self.stats['connection_count'] += 1

        logger.info("Successfully connected to ticker stream")

        self._receive_task = asyncio.create_task(self._receive_loop(websocket, generation))
        self._notify_connect()
        return True

    def _connect_failed(self, error: BaseException, url: str) -> None:
        self._connecting = False
        self._state = ConnectionState.DISCONNECTED
        log_error_with_context(logger, error, "connect", url=url)
        self._notify_error(error)

    async def _receive_loop(self, websocket: Any, generation: int) -> None:
        """Process frames one at a time, in arrival order, until the socket closes."""
        try:
            async for raw_message in websocket:
                try:
                    self._handle_message(raw_message)
                except Exception as e:
                    self.stats['decode_errors'] += 1
                    log_error_with_context(logger, e, "handle_message")
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as e:
            logger.warning(f"Ticker stream closed abnormally: {e}")
            if generation == self._generation:
                self._notify_error(e)
        except (OSError, WebSocketException) as e:
            log_error_with_context(logger, e, "receive")
            if generation == self._generation:
                self._notify_error(e)

        self._handle_close(generation)

    def _handle_close(self, generation: int) -> None:
        if generation != self._generation:
            # Closed by disconnect(), which owns the teardown.
            return

        self.websocket = None
        self._receive_task = None
        self._state = ConnectionState.DISCONNECTED

        logger.warning("Ticker stream disconnected")
        self._notify_disconnect()
        self._schedule_reconnect()

    def _handle_message(self, raw_message: Any) -> None:
        """Decode one frame and dispatch the classified batch."""
        self.stats['messages_received'] += 1
        self.stats['last_message_time'] = time.time()

        try:
            payload = json.loads(raw_message)
        except (TypeError, ValueError) as e:
            self.stats['decode_errors'] += 1
            logger.warning(f"Failed to parse ticker frame: {e}")
            logger.debug(f"Raw message: {str(raw_message)[:200]}...")
            return

        if not isinstance(payload, list):
            logger.debug(f"Ignoring non-array frame ({type(payload).__name__})")
            return

        ticks = self._build_ticks(payload)
        self.stats['frames_processed'] += 1
        self.stats['ticks_emitted'] += len(ticks)

        self.store.record(ticks)
        self._notify_price_update(ticks)

    def _build_ticks(self, records: List[Any]) -> List[PriceTick]:
        observed_at = int(time.time() * 1000)
        latest: Dict[str, PriceTick] = {}

        for item in records:
            try:
                record = TickerRecord.model_validate(item)
            except ValidationError as e:
                self.stats['records_rejected'] += 1
                logger.debug(f"Rejected ticker record: {e.error_count()} validation error(s)")
                continue

            if record.symbol.lower() not in self._allowed:
                continue

            symbol = record.symbol.upper()
            # One tick per symbol per batch; a repeated symbol keeps its last record
            latest.pop(symbol, None)
            latest[symbol] = PriceTick(
                symbol=symbol,
                price=record.formatted_price(),
                observed_at=observed_at,
                direction=classify(record.current_price, record.reference_price),
            )

        return list(latest.values())

    def _schedule_reconnect(self) -> None:
        """Arm the reconnect timer unless one is armed or the budget is spent."""
        if self._reconnect_handle is not None:
            return

        max_attempts = self.config.max_reconnect_attempts
        if max_attempts is not None and self._reconnect_attempts >= max_attempts:
            self._state = ConnectionState.FAILED
            logger.error(f"Max reconnection attempts reached ({max_attempts}), giving up")
            return

        self._reconnect_attempts += 1
        delay = self.config.reconnect_delay_seconds
        logger.info(f"Reconnection attempt {self._reconnect_attempts} in {delay}s")

        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._on_reconnect_timer)
        self._state = ConnectionState.RECONNECT_PENDING
        self.stats['reconnects_scheduled'] += 1

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        self._reconnect_task = asyncio.ensure_future(self._reconnect())

    async def _reconnect(self) -> None:
        if self._connecting or self.is_connected():
            return
        logger.info("Attempting to reconnect to ticker stream...")
        await self._open(reconnecting=True)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        if self._state is ConnectionState.RECONNECT_PENDING:
            self._state = ConnectionState.DISCONNECTED

    def _notify_connect(self) -> None:
        for listener in list(self._listeners):
            try:
                listener.on_connect()
            except Exception as e:
                log_error_with_context(logger, e, "on_connect", listener=type(listener).__name__)

    def _notify_disconnect(self) -> None:
        for listener in list(self._listeners):
            try:
                listener.on_disconnect()
            except Exception as e:
                log_error_with_context(logger, e, "on_disconnect", listener=type(listener).__name__)

    def _notify_error(self, error: BaseException) -> None:
        for listener in list(self._listeners):
            try:
                listener.on_error(error)
            except Exception as e:
                log_error_with_context(logger, e, "on_error", listener=type(listener).__name__)

    def _notify_price_update(self, ticks: List[PriceTick]) -> None:
        for listener in list(self._listeners):
            try:
                listener.on_price_update(list(ticks))
            except Exception as e:
                log_error_with_context(logger, e, "on_price_update", listener=type(listener).__name__)

    def get_stats(self) -> Dict[str, Any]:
        """Get connection and processing statistics."""
        last_message_age = None
        if self.stats['last_message_time']:
            last_message_age = time.time() - self.stats['last_message_time']

        return {
            **self.stats,
            'state': self._state.value,
            'is_connected': self.is_connected(),
            'reconnect_attempts': self._reconnect_attempts,
            'last_message_age_seconds': last_message_age,
        }

    async def health_check(self) -> Dict[str, Any]:
        """Perform health check on the WebSocket connection."""
        stats = self.get_stats()
        issues = []

        if not stats['is_connected']:
            issues.append(f"WebSocket not connected ({stats['state']})")

        # No messages for >30 seconds is concerning
        if stats['last_message_age_seconds'] and stats['last_message_age_seconds'] > 30:
            issues.append(f"No messages for {stats['last_message_age_seconds']:.1f}s")

        if stats['messages_received'] > 0:
            error_rate = stats['decode_errors'] / stats['messages_received']
            if error_rate > 0.05:
                issues.append(f"High error rate: {error_rate:.2%}")

        return {
            'status': 'unhealthy' if issues else 'healthy',
            'issues': issues,
            'stats': stats
        }
