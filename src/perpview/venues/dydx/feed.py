"""dYdX indexer websocket feed - v4_orderbook diffs into the book engine, v4_markets into the summary."""

from __future__ import annotations

import asyncio
import json
import time
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from perpview.errors import CrossedBookError, FeedSchemaError, TransientError
from perpview.models.market import MarketSummary, VenueTag
from perpview.orderbook.engine import OrderBookEngine
from perpview.venues.dydx.normalize import (
    markets_update_for,
    parse_book_snapshot,
    parse_book_update,
    summary_fields,
    ticker_for,
)

if TYPE_CHECKING:
    from perpview.venues.base import VenueAdapter

log = structlog.get_logger(__name__)

ORDERBOOK_CHANNEL = "v4_orderbook"
MARKETS_CHANNEL = "v4_markets"
RECV_TIMEOUT_SEC = 30.0
UNSUBSCRIBE_TIMEOUT_SEC = 0.5

Connect = Callable[[str], Awaitable[Any]]


async def _default_connect(url: str) -> Any:
    return await websockets.connect(
        url,
        ping_interval=20,
        ping_timeout=20,
        close_timeout=1,
        max_size=2**23,
    )


def _now_ms() -> int:
    return int(time.time() * 1000)


class DydxFeed:
    """One websocket session for one ticker. Reused by the supervisor across reconnects."""

    venue = VenueTag.DYDX

    def __init__(
        self,
        owner: VenueAdapter,
        ws_url: str,
        symbol: str,
        *,
        connect: Connect | None = None,
        recv_timeout_sec: float = RECV_TIMEOUT_SEC,
    ) -> None:
        self.symbol = symbol
        self.ticker = ticker_for(symbol)
        self.ws_url = ws_url
        self.engine = OrderBookEngine(VenueTag.DYDX, symbol)
        self.resubscribes = 0
        self._owner = owner
        self._connect = connect or _default_connect
        self._recv_timeout = recv_timeout_sec
        self._ws: Any = None

    def _orderbook_request(self, kind: str) -> dict[str, Any]:
        req: dict[str, Any] = {"type": kind, "channel": ORDERBOOK_CHANNEL, "id": self.ticker}
        if kind == "subscribe":
            req["batched"] = False
        return req

    async def _send(self, payload: dict[str, Any]) -> None:
        await self._ws.send(json.dumps(payload))

    async def open(self) -> None:
        self.engine.reset()
        self._ws = await self._connect(self.ws_url)
        await self._send({"type": "subscribe", "channel": MARKETS_CHANNEL, "batched": False})
        await self._send(self._orderbook_request("subscribe"))
        log.info("dydx_subscribed", url=self.ws_url, ticker=self.ticker)

    async def messages(self) -> AsyncIterator[dict[str, Any]]:
        ws = self._ws
        if ws is None:
            return
        while True:
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=self._recv_timeout)
            except ConnectionClosedOK:
                return
            except asyncio.TimeoutError as e:
                raise TransientError(f"no dYdX message for {self._recv_timeout}s") from e
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError as e:
                raise FeedSchemaError(f"dYdX sent non-JSON frame: {str(raw)[:120]}") from e
            if not isinstance(msg, dict):
                raise FeedSchemaError(f"dYdX message is not an object: {str(raw)[:120]}")
            yield msg

    async def apply(self, message: dict[str, Any]) -> None:
        mtype = message.get("type")
        if mtype == "error":
            raise TransientError(f"dYdX error: {message.get('message')}")
        channel = message.get("channel")
        try:
            if channel == ORDERBOOK_CHANNEL:
                await self._apply_orderbook(message)
            elif channel == MARKETS_CHANNEL:
                self._apply_markets(message)
        except FeedSchemaError as e:
            log.error("dydx_schema_error", ticker=self.ticker, type=mtype, channel=channel, error=str(e))
            raise

    async def _apply_orderbook(self, message: dict[str, Any]) -> None:
        if message.get("id") != self.ticker:
            return
        mtype = message.get("type")
        contents = message.get("contents")
        try:
            if mtype == "subscribed":
                book = self.engine.apply_snapshot(parse_book_snapshot(contents, self.symbol), _now_ms())
            elif mtype == "channel_data":
                book = self.engine.apply_delta(parse_book_update(contents, self.symbol), _now_ms())
                if book is None:
                    return
            else:
                return
        except CrossedBookError:
            self._owner._clear_book(self.symbol)
            await self._resubscribe()
            return
        self._owner._publish_book(book)

    def _apply_markets(self, message: dict[str, Any]) -> None:
        market = markets_update_for(message, self.ticker)
        if not market:
            return
        fields = summary_fields(market)
        if fields:
            self._owner._merge_stream_summary(
                MarketSummary(symbol=self.symbol, updated_ms=_now_ms(), **fields)
            )

    async def _resubscribe(self) -> None:
        self.resubscribes += 1
        log.warning("dydx_orderbook_resubscribe", ticker=self.ticker, count=self.resubscribes)
        await self._send(self._orderbook_request("unsubscribe"))
        await self._send(self._orderbook_request("subscribe"))

    def drain(self, hard_error: bool) -> None:
        self.engine.reset()
        if hard_error:
            self._owner._clear_book(self.symbol)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await asyncio.wait_for(
                ws.send(json.dumps(self._orderbook_request("unsubscribe"))),
                timeout=UNSUBSCRIBE_TIMEOUT_SEC,
            )
        except (asyncio.TimeoutError, ConnectionClosed) as e:
            log.debug("dydx_unsubscribe_skipped", ticker=self.ticker, error=str(e))
        await ws.close()
