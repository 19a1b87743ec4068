"""Hyperliquid feed - each l2Book message replaces the published book."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, AsyncIterator

import structlog
from pydantic import ValidationError

from perpview.errors import NotReadyError
from perpview.models.market import VenueTag
from perpview.models.orderbook import Level, OrderBook
from perpview.venues.hyperliquid.stream import Connect, HyperliquidStream, L2BookMessage, WireLevel

if TYPE_CHECKING:
    from perpview.venues.base import VenueAdapter

log = structlog.get_logger(__name__)


def _levels(raw: list[WireLevel]) -> tuple[Level, ...]:
    return tuple(Level(price=lev.px, size=lev.sz, orders=lev.n) for lev in raw)


class HyperliquidFeed:
    venue = VenueTag.HYPERLIQUID

    def __init__(self, owner: VenueAdapter, ws_url: str, symbol: str, *, connect: Connect | None = None) -> None:
        self.symbol = symbol
        self.ws_url = ws_url
        self.discarded = 0
        self._owner = owner
        self._connect = connect
        self._stream: HyperliquidStream | None = None
        self._last_ts = 0

    async def open(self) -> None:
        self._stream = HyperliquidStream(self.ws_url, self.symbol, connect=self._connect)
        await self._stream.connect()

    def messages(self) -> AsyncIterator[L2BookMessage]:
        if self._stream is None:
            raise NotReadyError(f"hyperliquid {self.symbol} stream is not open")
        return self._stream.messages()

    async def apply(self, message: L2BookMessage) -> None:
        if message.data.coin != self.symbol:
            return
        bids_raw, asks_raw = message.data.levels
        if not bids_raw or not asks_raw:
            self.discarded += 1
            log.debug("hyperliquid_one_sided_book", coin=self.symbol)
            return
        self._last_ts = max(self._last_ts, int(time.time() * 1000))
        try:
            book = OrderBook(
                venue=self.venue,
                symbol=self.symbol,
                bids=_levels(bids_raw),
                asks=_levels(asks_raw),
                timestamp_ms=self._last_ts,
            )
        except ValidationError as e:
            # Crossed, unsorted or zero-size snapshot; keep the previous book.
            self.discarded += 1
            log.warning("hyperliquid_book_discarded", coin=self.symbol, error=str(e).splitlines()[0])
            return
        self._owner._publish_book(book)

    def drain(self, hard_error: bool) -> None:
        # The last snapshot stays published; it is still meaningful for a short window.
        log.debug("hyperliquid_drain", coin=self.symbol, hard_error=hard_error)

    async def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            await stream.close()
