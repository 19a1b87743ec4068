"""L2 orderbook state machine - apply snapshot/delta batches, enforce sort and crossed-book invariants."""

from __future__ import annotations

from decimal import Decimal

import structlog

from perpview.errors import CrossedBookError
from perpview.models.market import VenueTag
from perpview.models.orderbook import (
    Level,
    LevelChange,
    OrderBook,
    OrderBookDelta,
    OrderBookSnapshot,
)

log = structlog.get_logger(__name__)


class OrderBookEngine:
    """In-memory L2 book for one (venue, symbol) stream.

    Levels are kept as price -> (size, orders) maps; every applied message
    produces a fresh immutable OrderBook. The engine outlives reconnects of
    its stream so published timestamps stay monotonic.
    """

    __slots__ = (
        "venue",
        "symbol",
        "bids",
        "asks",
        "_has_snapshot",
        "_last_ts",
        "_warned_delta_before_snapshot",
        "updates_applied",
    )

    def __init__(self, venue: VenueTag, symbol: str) -> None:
        self.venue = venue
        self.symbol = symbol
        # price -> (size, orders); bids: higher is better, asks: lower is better
        self.bids: dict[Decimal, tuple[Decimal, int]] = {}
        self.asks: dict[Decimal, tuple[Decimal, int]] = {}
        self._has_snapshot = False
        self._last_ts = 0
        self._warned_delta_before_snapshot = False
        self.updates_applied = 0

    @property
    def has_snapshot(self) -> bool:
        return self._has_snapshot

    def reset(self) -> None:
        """Drop all levels. The next message must be a snapshot."""
        self.bids = {}
        self.asks = {}
        self._has_snapshot = False
        self._warned_delta_before_snapshot = False

    def apply_snapshot(self, snapshot: OrderBookSnapshot, ingest_ts: int) -> OrderBook:
        """Replace the book with a full snapshot. Zero-size levels are skipped."""
        self.bids = _levels_from(snapshot.bids)
        self.asks = _levels_from(snapshot.asks)
        self._has_snapshot = True
        self._warned_delta_before_snapshot = False
        return self._publish(ingest_ts)

    def apply_delta(self, delta: OrderBookDelta, ingest_ts: int) -> OrderBook | None:
        """Apply one message's level changes. Size 0 removes a price, otherwise the size is replaced.

        Returns None when no snapshot has been applied yet (the delta is ignored).
        """
        if not self._has_snapshot:
            if not self._warned_delta_before_snapshot:
                self._warned_delta_before_snapshot = True
                log.debug("orderbook_delta_before_snapshot", venue=self.venue.value, symbol=self.symbol)
            return None
        _merge(self.bids, delta.bids)
        _merge(self.asks, delta.asks)
        return self._publish(ingest_ts)

    def to_book(self, ingest_ts: int | None = None) -> OrderBook:
        """Export current state without applying anything."""
        return self._build(self._stamp(ingest_ts or self._last_ts))

    def _publish(self, ingest_ts: int) -> OrderBook:
        best_bid = max(self.bids) if self.bids else None
        best_ask = min(self.asks) if self.asks else None
        if best_bid is not None and best_ask is not None and best_bid >= best_ask:
            log.warning(
                "orderbook_crossed",
                venue=self.venue.value,
                symbol=self.symbol,
                best_bid=str(best_bid),
                best_ask=str(best_ask),
            )
            self.reset()
            raise CrossedBookError(f"{self.venue.value} {self.symbol}: bid {best_bid} >= ask {best_ask}")
        self.updates_applied += 1
        return self._build(self._stamp(ingest_ts))

    def _stamp(self, ingest_ts: int) -> int:
        self._last_ts = max(self._last_ts, ingest_ts)
        return self._last_ts

    def _build(self, ts: int) -> OrderBook:
        bids = tuple(
            Level(price=p, size=s, orders=n) for p, (s, n) in sorted(self.bids.items(), reverse=True)
        )
        asks = tuple(Level(price=p, size=s, orders=n) for p, (s, n) in sorted(self.asks.items()))
        return OrderBook(venue=self.venue, symbol=self.symbol, bids=bids, asks=asks, timestamp_ms=ts)


def _levels_from(changes: list[LevelChange]) -> dict[Decimal, tuple[Decimal, int]]:
    out: dict[Decimal, tuple[Decimal, int]] = {}
    for lev in changes:
        if lev.size > 0:
            out[lev.price] = (lev.size, lev.orders)
    return out


def _merge(side: dict[Decimal, tuple[Decimal, int]], changes: list[LevelChange]) -> None:
    for lev in changes:
        if lev.size == 0:
            side.pop(lev.price, None)
        else:
            side[lev.price] = (lev.size, lev.orders)
