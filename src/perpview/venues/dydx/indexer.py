"""dYdX v4 indexer REST client - perpetual markets, positions, orders."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from perpview.errors import NotFoundError, TransientError
from perpview.venues.http import request_json

log = structlog.get_logger(__name__)


class IndexerClient:
    """Thin wrapper over the public indexer endpoints. Uses the caller's AsyncClient."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, *, retry_attempts: int = 0) -> None:
        self._client = client
        self.base_url = base_url.rstrip("/")
        self.retry_attempts = retry_attempts

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await request_json(
            self._client,
            "GET",
            f"{self.base_url}{path}",
            params=params,
            retry_attempts=self.retry_attempts,
        )

    async def perpetual_markets(self, ticker: str | None = None) -> dict[str, dict[str, Any]]:
        """GET /perpetualMarkets -> {ticker: market}."""
        data = await self._get("/perpetualMarkets", {"ticker": ticker} if ticker else None)
        markets = data.get("markets") if isinstance(data, dict) else None
        if not isinstance(markets, dict):
            raise TransientError("perpetualMarkets response has no markets object")
        return markets

    async def perpetual_market(self, ticker: str) -> dict[str, Any]:
        market = (await self.perpetual_markets(ticker)).get(ticker)
        if not isinstance(market, dict):
            raise NotFoundError(f"dYdX has no perpetual market {ticker}")
        return market

    async def perpetual_positions(self, address: str, subaccount: int = 0) -> list[dict[str, Any]]:
        data = await self._get(
            "/perpetualPositions",
            {"address": address, "subaccountNumber": subaccount, "status": "OPEN"},
        )
        positions = data.get("positions") if isinstance(data, dict) else None
        if not isinstance(positions, list):
            raise TransientError("perpetualPositions response has no positions list")
        log.debug("dydx_positions_fetched", address=address, count=len(positions))
        return positions

    async def open_orders(self, address: str, subaccount: int = 0) -> list[dict[str, Any]]:
        data = await self._get(
            "/orders",
            {"address": address, "subaccountNumber": subaccount, "status": "OPEN"},
        )
        if not isinstance(data, list):
            raise TransientError("orders response is not a list")
        log.debug("dydx_orders_fetched", address=address, count=len(data))
        return data
