"""Notification interface between the stream client and its consumers."""

from typing import Callable, Optional, Sequence

from .models import PriceTick


class PriceStreamListener:
    """
    Receives stream client notifications.

    All methods are invoked synchronously from the client's event loop and
    default to no-ops, so subclasses override only what they need. Handlers
    must not block.
    """

    def on_connect(self) -> None:
        pass

    def on_disconnect(self) -> None:
        pass

    def on_error(self, error: BaseException) -> None:
        pass

    def on_price_update(self, ticks: Sequence[PriceTick]) -> None:
        pass


class CallbackListener(PriceStreamListener):
    """Listener built from plain callables; any of them may be omitted."""

    def __init__(
        self,
        on_connect: Optional[Callable[[], None]] = None,
        on_disconnect: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_price_update: Optional[Callable[[Sequence[PriceTick]], None]] = None,
    ):
        self._on_connect = on_connect
        self._on_disconnect = on_disconnect
        self._on_error = on_error
        self._on_price_update = on_price_update

    def on_connect(self) -> None:
        if self._on_connect:
            self._on_connect()

    def on_disconnect(self) -> None:
        if self._on_disconnect:
            self._on_disconnect()

    def on_error(self, error: BaseException) -> None:
        if self._on_error:
            self._on_error(error)

    def on_price_update(self, ticks: Sequence[PriceTick]) -> None:
        if self._on_price_update:
            self._on_price_update(ticks)
