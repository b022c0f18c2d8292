"""Data containers shared by the stream client and the history store."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

PRICE_QUANTUM = Decimal("0.01")


class Direction(str, Enum):
    """Price direction relative to the reference value of the same update."""
    INCREASE = "increase"
    DECREASE = "decrease"
    NONE = "none"


class ConnectionState(Enum):
    """Lifecycle of a StreamClient connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_PENDING = "reconnect_pending"
    FAILED = "failed"


@dataclass(frozen=True)
class PriceTick:
    """One classified price observation."""
    symbol: str
    price: str
    observed_at: int
    direction: Direction

    @property
    def price_value(self) -> Decimal:
        return Decimal(self.price)


@dataclass(frozen=True)
class PriceDelta:
    """Change between the two most recent ticks of a symbol."""
    change: float
    percent_change: float


class TickerRecord(BaseModel):
    """
    Typed view of one raw ticker record from the wire.

    Only the fields the pipeline needs are decoded; everything else in the
    record is ignored. A record missing ``s``, ``c`` or ``P`` fails validation.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    symbol: str = Field(alias="s", min_length=1)
    current_price: Decimal = Field(alias="c")
    reference_price: float = Field(alias="P")

    @field_validator("current_price")
    @classmethod
    def validate_current_price(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v < 0:
            raise ValueError("current price must be a finite, non-negative number")
        try:
            v.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ValueError("current price is too large to render with two decimals")
        return v

    def formatted_price(self) -> str:
        """Current price rendered with two fractional digits."""
        return str(self.current_price.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP))
