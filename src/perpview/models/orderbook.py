"""OrderBook, Level and the wire-level snapshot/delta batches that feed the engine."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from perpview.models.market import VenueTag


class Level(BaseModel):
    """Single materialized price level. Size is always positive."""

    model_config = ConfigDict(frozen=True)

    price: Decimal = Field(..., gt=0)
    size: Decimal = Field(..., gt=0)
    orders: int = Field(0, ge=0)


class OrderBook(BaseModel):
    """Canonical L2 book for one (venue, symbol). Immutable; replaced on every update."""

    model_config = ConfigDict(frozen=True)

    venue: VenueTag
    symbol: str
    bids: tuple[Level, ...] = ()
    asks: tuple[Level, ...] = ()
    timestamp_ms: int = Field(..., ge=0)  # receive clock, ms epoch

    @model_validator(mode="after")
    def _check_well_formed(self) -> OrderBook:
        for prev, cur in zip(self.bids, self.bids[1:]):
            if not prev.price > cur.price:
                raise ValueError(f"bids not strictly descending at {cur.price}")
        for prev, cur in zip(self.asks, self.asks[1:]):
            if not prev.price < cur.price:
                raise ValueError(f"asks not strictly ascending at {cur.price}")
        if self.bids and self.asks and self.bids[0].price >= self.asks[0].price:
            raise ValueError(
                f"crossed book: bid {self.bids[0].price} >= ask {self.asks[0].price}"
            )
        return self

    @classmethod
    def empty(cls, venue: VenueTag, symbol: str, timestamp_ms: int = 0) -> OrderBook:
        return cls(venue=venue, symbol=symbol, timestamp_ms=timestamp_ms)

    @property
    def best_bid(self) -> Level | None:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Level | None:
        return self.asks[0] if self.asks else None

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks

    def top(self, n: int = 5) -> tuple[tuple[Level, ...], tuple[Level, ...]]:
        """Return (top N bids, top N asks)."""
        return self.bids[:n], self.asks[:n]


class LevelChange(BaseModel):
    """Wire-level price point. Size 0 means "remove this price"."""

    price: Decimal = Field(..., gt=0)
    size: Decimal = Field(..., ge=0)
    orders: int = Field(0, ge=0)


class OrderBookSnapshot(BaseModel):
    """Full book as received from a venue (absolute sizes on both sides)."""

    symbol: str
    bids: list[LevelChange] = Field(default_factory=list)
    asks: list[LevelChange] = Field(default_factory=list)
    exchange_ts: int | None = None  # ms epoch, venue clock


class OrderBookDelta(BaseModel):
    """One message worth of level replacements/removals, applied as a batch."""

    symbol: str
    bids: list[LevelChange] = Field(default_factory=list)
    asks: list[LevelChange] = Field(default_factory=list)
    exchange_ts: int | None = None
