"""Bounded per-symbol price history."""

import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional

from .models import PriceDelta, PriceTick

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


class HistoryStore:
    """
    Keyed store of bounded tick sequences, one per symbol.

    Features:
    - Arrival-order retention per symbol
    - Oldest-first eviction beyond a fixed capacity
    - Copy-on-read accessors, so callers can never mutate stored state
    - One lock per store guarding writes and snapshots

    A single instance is meant to be shared: construct it once and pass it to
    every StreamClient and reader that should see the same series.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"History capacity must be at least 1, got {capacity}")

        self.capacity = capacity
        self._history: Dict[str, Deque[PriceTick]] = {}
        self._lock = threading.Lock()

        self.stats = {
            'ticks_recorded': 0,
            'ticks_evicted': 0,
        }

        logger.info(f"HistoryStore initialized: capacity={capacity}")

    @staticmethod
    def _key(symbol: str) -> str:
        return symbol.upper()

    def record(self, ticks: Iterable[PriceTick]) -> None:
        """Append ticks to their symbols' sequences, evicting the oldest overflow."""
        with self._lock:
            for tick in ticks:
                key = self._key(tick.symbol)
                series = self._history.get(key)
                if series is None:
                    series = deque(maxlen=self.capacity)
                    self._history[key] = series

                if len(series) == self.capacity:
                    self.stats['ticks_evicted'] += 1
                series.append(tick)
                self.stats['ticks_recorded'] += 1

    def history(self, symbol: str) -> List[PriceTick]:
        """Snapshot of a symbol's series, oldest first; empty if unseen."""
        with self._lock:
            series = self._history.get(self._key(symbol))
            return list(series) if series else []

    def latest(self, symbol: str) -> Optional[PriceTick]:
        with self._lock:
            series = self._history.get(self._key(symbol))
            return series[-1] if series else None

    def delta(self, symbol: str) -> Optional[PriceDelta]:
        """
        Change between the last two ticks of a symbol.

        Returns None with fewer than two ticks. The percentage is 0 when the
        earlier price is not positive.
        """
        with self._lock:
            series = self._history.get(self._key(symbol))
            if not series or len(series) < 2:
                return None
            current = series[-1].price_value
            previous = series[-2].price_value

        change = current - previous
        percent_change = (change / previous) * 100 if previous > 0 else 0
        return PriceDelta(change=float(change), percent_change=float(percent_change))

    def clear(self, symbol: Optional[str] = None) -> None:
        """Drop one symbol's history, or everything when no symbol is given."""
        with self._lock:
            if symbol is None:
                count = len(self._history)
                self._history.clear()
                logger.info(f"Cleared history for all {count} symbols")
            elif self._history.pop(self._key(symbol), None) is not None:
                logger.info(f"Cleared history for {self._key(symbol)}")

    def snapshot_all(self) -> Dict[str, List[PriceTick]]:
        with self._lock:
            return {symbol: list(series) for symbol, series in self._history.items()}

    def symbols(self) -> List[str]:
        with self._lock:
            return list(self._history.keys())

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        with self._lock:
            symbol_counts = {symbol: len(series) for symbol, series in self._history.items()}
            stats = dict(self.stats)

        return {
            **stats,
            'capacity': self.capacity,
            'symbol_counts': symbol_counts,
            'total_retained': sum(symbol_counts.values()),
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)
