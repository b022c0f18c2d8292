"""Price stream service - wires settings, logging, the history store and the client."""

import asyncio
import logging
import signal
import threading
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from .clients.ticker_stream import Connector, StreamClient
from .config.settings import PriceStreamSettings, load_settings
from .history import HistoryStore
from .listeners import PriceStreamListener
from .utils.logging import setup_logging


logger = logging.getLogger(__name__)


class PriceStreamService:
    """Runs one stream client against one shared history store until stopped."""

    def __init__(
        self,
        settings: Union[PriceStreamSettings, str, None] = None,
        listeners: Optional[Iterable[PriceStreamListener]] = None,
        store: Optional[HistoryStore] = None,
        connector: Optional[Connector] = None,
        configure_logging: bool = True,
    ):
        if settings is None or isinstance(settings, str):
            settings = load_settings(settings)
        self.settings = settings

        if configure_logging:
            setup_logging(settings.logging, settings.service_name)

        # An empty store is falsy (it defines __len__), so test identity
        self.store = store if store is not None else HistoryStore(capacity=settings.history.capacity)
        self.client = StreamClient(
            settings.stream,
            self.store,
            listeners=listeners,
            connector=connector,
        )
        self._shutdown_event = asyncio.Event()
        self._signals_installed: list = []
        logger.info(f"Price stream service initialized ({len(settings.stream.symbols)} symbols)")

    async def start(self) -> None:
        """Connect and block until stop() is called or a shutdown signal arrives."""
        self._setup_signal_handlers()

        logger.info("Starting price stream service")
        try:
            await self.client.connect()
            await self._shutdown_event.wait()
        finally:
            logger.info("Shutting down price stream service")
            await self.client.disconnect()
            self._remove_signal_handlers()
            logger.info("Price stream service stopped")

    def stop(self) -> None:
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        if threading.current_thread() is not threading.main_thread():
            return

        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
                self._signals_installed.append(signum)
            except (NotImplementedError, RuntimeError):
                # Windows event loops do not support signal handlers
                logger.debug(f"Signal handler for {signum} not installed")

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in self._signals_installed:
            loop.remove_signal_handler(signum)
        self._signals_installed.clear()

    def _on_signal(self, signum: int) -> None:
        logger.info(f"Received signal {signum}, initiating shutdown")
        self.stop()

    async def health_check(self) -> dict:
        """Perform health check."""
        client_health = await self.client.health_check()
        return {
            "service": self.settings.service_name,
            "status": client_health["status"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": {
                "stream_client": client_health,
                "history_store": self.store.get_stats(),
            },
        }
