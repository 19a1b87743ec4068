"""Hyperliquid info endpoint (POST /info) - universe metadata, asset contexts, account state."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from perpview.errors import TransientError
from perpview.venues.http import request_json

log = structlog.get_logger(__name__)


class InfoClient:
    def __init__(self, client: httpx.AsyncClient, base_url: str, *, retry_attempts: int = 0) -> None:
        self._client = client
        self.base_url = base_url.rstrip("/")
        self.retry_attempts = retry_attempts

    async def _post(self, body: dict[str, Any]) -> Any:
        return await request_json(
            self._client,
            "POST",
            f"{self.base_url}/info",
            json=body,
            retry_attempts=self.retry_attempts,
        )

    async def meta_and_asset_ctxs(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Return (universe, asset contexts); both lists are index-aligned."""
        data = await self._post({"type": "metaAndAssetCtxs"})
        if not isinstance(data, list) or len(data) != 2 or not isinstance(data[0], dict):
            raise TransientError("metaAndAssetCtxs response is not [meta, ctxs]")
        universe = data[0].get("universe")
        ctxs = data[1]
        if not isinstance(universe, list) or not isinstance(ctxs, list):
            raise TransientError("metaAndAssetCtxs response is missing universe or contexts")
        return universe, ctxs

    async def clearinghouse_state(self, user: str) -> dict[str, Any]:
        data = await self._post({"type": "clearinghouseState", "user": user})
        if not isinstance(data, dict):
            raise TransientError("clearinghouseState response is not an object")
        return data

    async def open_orders(self, user: str) -> list[dict[str, Any]]:
        data = await self._post({"type": "openOrders", "user": user})
        if not isinstance(data, list):
            raise TransientError("openOrders response is not a list")
        log.debug("hyperliquid_orders_fetched", user=user, count=len(data))
        return data
