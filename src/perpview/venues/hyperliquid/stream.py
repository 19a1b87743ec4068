"""Typed Hyperliquid websocket client - l2Book subscription yielding validated models."""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from typing import Any, AsyncIterator, Awaitable, Callable, Literal

import structlog
import websockets
from pydantic import BaseModel, ValidationError
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from perpview.errors import FeedSchemaError, TransientError

log = structlog.get_logger(__name__)

PING_INTERVAL_SEC = 20.0
MAX_IDLE_PINGS = 3

Connect = Callable[[str], Awaitable[Any]]


class WireLevel(BaseModel):
    px: Decimal
    sz: Decimal
    n: int = 0


class L2BookData(BaseModel):
    coin: str
    time: int
    levels: tuple[list[WireLevel], list[WireLevel]]  # (bids, asks)


class L2BookMessage(BaseModel):
    channel: Literal["l2Book"]
    data: L2BookData


async def _default_connect(url: str) -> Any:
    return await websockets.connect(url, ping_interval=None, close_timeout=1, max_size=2**22)


class HyperliquidStream:
    """One l2Book subscription for one coin.

    Hyperliquid drops silent connections, so an application-level
    {"method": "ping"} is sent whenever no frame arrived for ping_interval_sec.
    """

    def __init__(
        self,
        ws_url: str,
        coin: str,
        *,
        connect: Connect | None = None,
        ping_interval_sec: float = PING_INTERVAL_SEC,
        max_idle_pings: int = MAX_IDLE_PINGS,
    ) -> None:
        self.ws_url = ws_url
        self.coin = coin
        self._connect = connect or _default_connect
        self._ping_interval = ping_interval_sec
        self._max_idle_pings = max_idle_pings
        self._ws: Any = None

    @property
    def subscription(self) -> dict[str, str]:
        return {"type": "l2Book", "coin": self.coin}

    async def connect(self) -> None:
        self._ws = await self._connect(self.ws_url)
        await self._ws.send(json.dumps({"method": "subscribe", "subscription": self.subscription}))
        log.info("hyperliquid_subscribed", url=self.ws_url, coin=self.coin)

    async def messages(self) -> AsyncIterator[L2BookMessage]:
        ws = self._ws
        if ws is None:
            return
        idle_pings = 0
        while True:
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=self._ping_interval)
            except ConnectionClosedOK:
                return
            except asyncio.TimeoutError:
                if idle_pings >= self._max_idle_pings:
                    raise TransientError(f"Hyperliquid silent after {idle_pings} pings")
                idle_pings += 1
                await ws.send(json.dumps({"method": "ping"}))
                continue
            idle_pings = 0
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError as e:
                raise FeedSchemaError(f"Hyperliquid sent non-JSON frame: {str(raw)[:120]}") from e
            channel = msg.get("channel") if isinstance(msg, dict) else None
            if channel == "l2Book":
                try:
                    book = L2BookMessage.model_validate(msg)
                except ValidationError as e:
                    log.warning("hyperliquid_book_discarded", coin=self.coin, error=str(e).splitlines()[0])
                    continue
                yield book
            elif channel == "error":
                raise TransientError(f"Hyperliquid error: {msg.get('data')}")
            # subscriptionResponse, pong and other channels carry nothing for the book

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await asyncio.wait_for(
                ws.send(json.dumps({"method": "unsubscribe", "subscription": self.subscription})),
                timeout=0.5,
            )
        except (asyncio.TimeoutError, ConnectionClosed) as e:
            log.debug("hyperliquid_unsubscribe_skipped", coin=self.coin, error=str(e))
        await ws.close()
