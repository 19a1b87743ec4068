"""Shared fixtures: config, mocked REST clients, adapters wired to fake websockets."""

from __future__ import annotations

from typing import AsyncIterator

import httpx
import pytest
import pytest_asyncio
from helpers import FakeConnector, counting, dydx_handler, fast_sleep, hl_handler

from perpview.config.settings import AggregatorConfig
from perpview.venues.dydx.adapter import DydxAdapter
from perpview.venues.gateway import DryRunGateway
from perpview.venues.hyperliquid.adapter import HyperliquidAdapter


@pytest.fixture
def config() -> AggregatorConfig:
    return AggregatorConfig(retry_attempts=0, timeout_ms=2000, order_timeout_ms=2000)


@pytest.fixture
def gateway() -> DryRunGateway:
    return DryRunGateway()


@pytest.fixture
def dydx_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def hl_connector() -> FakeConnector:
    return FakeConnector()


@pytest_asyncio.fixture
async def dydx(config, gateway, dydx_connector) -> AsyncIterator[DydxAdapter]:
    handler, seen = counting(dydx_handler)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = DydxAdapter(config, gateway=gateway, client=client, connect=dydx_connector, sleep=fast_sleep)
    await adapter.load_metadata()
    seen.clear()
    adapter.requests = seen  # type: ignore[attr-defined]
    yield adapter
    await adapter.aclose()
    await client.aclose()


@pytest_asyncio.fixture
async def hyperliquid(config, gateway, hl_connector) -> AsyncIterator[HyperliquidAdapter]:
    handler, seen = counting(hl_handler)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = HyperliquidAdapter(config, gateway=gateway, client=client, connect=hl_connector, sleep=fast_sleep)
    await adapter.load_metadata()
    seen.clear()
    adapter.requests = seen  # type: ignore[attr-defined]
    yield adapter
    await adapter.aclose()
    await client.aclose()
