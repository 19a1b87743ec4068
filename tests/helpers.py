"""Fakes and wire fixtures shared by the test modules."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

DYDX_MARKETS: dict[str, dict[str, Any]] = {
    "BTC-USD": {
        "ticker": "BTC-USD",
        "clobPairId": "0",
        "status": "ACTIVE",
        "oraclePrice": "50000.5",
        "volume24H": "1234567.89",
        "openInterest": "321.5",
        "nextFundingRate": "0.0000125",
        "initialMarginFraction": "0.05",
        "stepSize": "0.0001",
        "tickSize": "1",
    },
    "ETH-USD": {
        "ticker": "ETH-USD",
        "clobPairId": "1",
        "status": "ACTIVE",
        "oraclePrice": "3000.25",
        "volume24H": "765432.1",
        "openInterest": "4567.8",
        "nextFundingRate": "-0.000004",
        "initialMarginFraction": "0.05",
        "stepSize": "0.001",
        "tickSize": "0.1",
    },
    "LUNA-USD": {
        "ticker": "LUNA-USD",
        "clobPairId": "9",
        "status": "FINAL_SETTLEMENT",
        "oraclePrice": "0.1",
        "volume24H": "0",
        "openInterest": "0",
        "nextFundingRate": "0",
        "initialMarginFraction": "0.5",
        "stepSize": "10",
        "tickSize": "0.0001",
    },
}

HL_META_AND_CTXS: list[Any] = [
    {
        "universe": [
            {"name": "BTC", "szDecimals": 5, "maxLeverage": 40},
            {"name": "ETH", "szDecimals": 4, "maxLeverage": 25},
            {"name": "kPEPE", "szDecimals": 0, "maxLeverage": 10},
            {"name": "OLD", "szDecimals": 2, "maxLeverage": 3, "isDelisted": True},
        ]
    },
    [
        {"markPx": "50010.0", "dayNtlVlm": "987654321.5", "openInterest": "12345.6", "funding": "0.0000100"},
        {"markPx": "3001.5", "dayNtlVlm": "123456789.0", "openInterest": "98765.4", "funding": "-0.0000031"},
        {"markPx": "0.0123", "dayNtlVlm": "1000.0", "openInterest": "5.0", "funding": "0.0"},
        {"markPx": "1.0", "dayNtlVlm": "0.0", "openInterest": "0.0", "funding": "0.0"},
    ],
]


def dydx_snapshot(bids: list[tuple[str, str]], asks: list[tuple[str, str]], ticker: str = "BTC-USD") -> dict[str, Any]:
    return {
        "type": "subscribed",
        "connection_id": "conn-1",
        "message_id": 1,
        "channel": "v4_orderbook",
        "id": ticker,
        "contents": {
            "bids": [{"price": p, "size": s} for p, s in bids],
            "asks": [{"price": p, "size": s} for p, s in asks],
        },
    }


def dydx_update(
    bids: list[tuple[str, str]] | None = None,
    asks: list[tuple[str, str]] | None = None,
    ticker: str = "BTC-USD",
) -> dict[str, Any]:
    contents: dict[str, Any] = {}
    if bids is not None:
        contents["bids"] = [[p, s] for p, s in bids]
    if asks is not None:
        contents["asks"] = [[p, s] for p, s in asks]
    return {
        "type": "channel_data",
        "connection_id": "conn-1",
        "message_id": 2,
        "channel": "v4_orderbook",
        "id": ticker,
        "version": "1.0.0",
        "contents": contents,
    }


def hl_book(coin: str, bids: list[tuple[str, str]], asks: list[tuple[str, str]], time_ms: int = 1_700_000_000_000) -> dict[str, Any]:
    return {
        "channel": "l2Book",
        "data": {
            "coin": coin,
            "time": time_ms,
            "levels": [
                [{"px": p, "sz": s, "n": 1} for p, s in bids],
                [{"px": p, "sz": s, "n": 1} for p, s in asks],
            ],
        },
    }


class FakeWebSocket:
    """In-memory stand-in for a websockets ClientConnection."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._frames: asyncio.Queue[Any] = asyncio.Queue()

    def push(self, msg: dict[str, Any] | str) -> None:
        self._frames.put_nowait(msg if isinstance(msg, str) else json.dumps(msg))

    def end(self) -> None:
        """Graceful close from the remote side."""
        self._frames.put_nowait(ConnectionClosedOK(None, None))

    def drop(self) -> None:
        """Abnormal close (no close frame)."""
        self._frames.put_nowait(ConnectionClosedError(None, None))

    async def recv(self) -> str:
        item = await self._frames.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    """Hands out scripted sockets (or raises scripted errors); fresh sockets once the script runs out."""

    def __init__(self, *outcomes: FakeWebSocket | Exception) -> None:
        self.outcomes = list(outcomes)
        self.sockets: list[FakeWebSocket] = []
        self.urls: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.urls)

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        out = self.outcomes.pop(0) if self.outcomes else FakeWebSocket()
        if isinstance(out, Exception):
            raise out
        self.sockets.append(out)
        return out


async def fast_sleep(_delay: float) -> None:
    await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def dydx_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/perpetualMarkets"):
        ticker = request.url.params.get("ticker")
        if ticker is None:
            return httpx.Response(200, json={"markets": DYDX_MARKETS})
        if ticker not in DYDX_MARKETS:
            return httpx.Response(404, json={"errors": [{"msg": "ticker not found"}]})
        return httpx.Response(200, json={"markets": {ticker: DYDX_MARKETS[ticker]}})
    if path.endswith("/perpetualPositions"):
        return httpx.Response(
            200,
            json={
                "positions": [
                    {"market": "BTC-USD", "status": "OPEN", "side": "LONG", "size": "0.25",
                     "entryPrice": "48000", "unrealizedPnl": "500.5"},
                    {"market": "ETH-USD", "status": "OPEN", "side": "SHORT", "size": "-2",
                     "entryPrice": "3100", "unrealizedPnl": "200"},
                ]
            },
        )
    if path.endswith("/orders"):
        return httpx.Response(
            200,
            json=[
                {"ticker": "BTC-USD", "side": "BUY", "size": "0.01", "price": "45000", "status": "OPEN",
                 "clientId": "123", "clobPairId": "0", "orderFlags": "64", "subaccountNumber": 0},
            ],
        )
    return httpx.Response(404)


def hl_handler(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    kind = body.get("type")
    if kind == "metaAndAssetCtxs":
        return httpx.Response(200, json=HL_META_AND_CTXS)
    if kind == "clearinghouseState":
        return httpx.Response(
            200,
            json={
                "assetPositions": [
                    {"type": "oneWay", "position": {
                        "coin": "ETH", "szi": "-1.5", "entryPx": "3050.0", "liquidationPx": "3900.1",
                        "unrealizedPnl": "73.5", "marginUsed": "457.5", "returnOnEquity": "0.16",
                        "leverage": {"type": "cross", "value": 10}}},
                    {"type": "oneWay", "position": {"coin": "BTC", "szi": "0.0", "entryPx": None,
                                                    "leverage": {"type": "cross", "value": 20}}},
                ],
                "marginSummary": {"accountValue": "10000.0"},
            },
        )
    if kind == "openOrders":
        return httpx.Response(
            200,
            json=[{"coin": "BTC", "side": "A", "limitPx": "52000.0", "sz": "0.002", "oid": 77, "timestamp": 1}],
        )
    return httpx.Response(400, json={"error": "unknown type"})


def counting(handler: Callable[[httpx.Request], httpx.Response]) -> tuple[Callable[[httpx.Request], httpx.Response], list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def wrapped(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return wrapped, seen
