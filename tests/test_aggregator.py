"""Aggregator facade: dispatch, partial start, summary fallback, bootstrap."""

from __future__ import annotations

from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from helpers import FakeWebSocket, dydx_handler, hl_book, hl_handler, wait_until

from perpview.aggregator import Aggregator
from perpview.errors import ConfigError, NotFoundError, TransientError
from perpview.models.market import VenueTag
from perpview.models.trade import OrderKind, Side, TradeRequest


@pytest_asyncio.fixture
async def agg(config, dydx, hyperliquid):
    aggregator = Aggregator(config, {VenueTag.DYDX: dydx, VenueTag.HYPERLIQUID: hyperliquid})
    yield aggregator
    await aggregator.aclose()


def _fail_summary(adapter):
    async def boom(symbol):
        raise TransientError("indexer down")

    adapter._fetch_summary = boom


@pytest.mark.asyncio
async def test_partial_start_keeps_the_other_venue(agg, hl_connector):
    ws = FakeWebSocket()
    hl_connector.outcomes.append(ws)
    failures = await agg.start_all_market_updates("kPEPE")
    assert list(failures) == [VenueTag.DYDX]
    assert isinstance(failures[VenueTag.DYDX], ConfigError)
    assert agg.adapter(VenueTag.HYPERLIQUID).active_symbol == "kPEPE"

    ws.push(hl_book("kPEPE", [("0.0122", "10")], [("0.0124", "10")]))
    await wait_until(lambda: agg.adapter(VenueTag.HYPERLIQUID).session_status().messages_applied >= 1)
    book = agg.get_exchange_orderbook(VenueTag.HYPERLIQUID, "KPEPE")
    assert book.best_bid.price == Decimal("0.0122")


@pytest.mark.asyncio
async def test_summary_falls_back_to_last_known(agg, dydx):
    fresh = await agg.get_exchange_summary(VenueTag.DYDX, "BTC")
    _fail_summary(dydx)
    cached = await agg.get_exchange_summary(VenueTag.DYDX, "btc")
    assert cached == fresh
    views = {v.venue: v for v in await agg.compare("BTC")}
    assert views[VenueTag.DYDX].summary_stale
    assert views[VenueTag.DYDX].summary == fresh


@pytest.mark.asyncio
async def test_summary_without_cache_raises(agg, hyperliquid):
    _fail_summary(hyperliquid)
    with pytest.raises(TransientError):
        await agg.get_exchange_summary(VenueTag.HYPERLIQUID, "BTC")
    views = {v.venue: v for v in await agg.compare("BTC")}
    assert views[VenueTag.HYPERLIQUID].summary is None
    assert "indexer down" in views[VenueTag.HYPERLIQUID].error


@pytest.mark.asyncio
async def test_compare_before_any_book(agg):
    views = await agg.compare("ETH")
    assert [v.venue for v in views] == [VenueTag.DYDX, VenueTag.HYPERLIQUID]
    for view in views:
        assert view.book.is_empty
        assert view.book.symbol == "ETH"
        assert view.summary is not None
        assert not view.summary_stale
        assert view.status is None
    assert views[0].leverage.max_leverage == Decimal("20.00")
    assert views[1].leverage.max_leverage == Decimal("25")


@pytest.mark.asyncio
async def test_dispatch_by_tag(agg, gateway):
    req = TradeRequest(
        asset="ETH", side=Side.SELL, kind=OrderKind.LIMIT, usd_value=Decimal("60"), limit_price=Decimal("3000")
    )
    receipt = await agg.place_trade(VenueTag.HYPERLIQUID, req)
    assert receipt.venue is VenueTag.HYPERLIQUID
    assert gateway.submitted[0].venue_symbol == "ETH"
    await agg.cancel_order(VenueTag.DYDX, "1:0:64:0")
    assert gateway.cancelled == [(VenueTag.DYDX, "1:0:64:0")]
    assert agg.get_leverage_info(VenueTag.HYPERLIQUID, "BTC").max_leverage == Decimal("40")
    positions = await agg.get_positions(VenueTag.HYPERLIQUID, "0xabc")
    assert [p.symbol for p in positions] == ["ETH"]
    orders = await agg.get_open_orders(VenueTag.DYDX, "dydx1abc")
    assert orders[0].symbol == "BTC"


def test_unknown_tag_is_not_found(config):
    with pytest.raises(NotFoundError):
        Aggregator(config, {}).adapter(VenueTag.DYDX)


@pytest.mark.asyncio
async def test_create_loads_both_venues(config):
    clients = {
        VenueTag.DYDX: httpx.AsyncClient(transport=httpx.MockTransport(dydx_handler)),
        VenueTag.HYPERLIQUID: httpx.AsyncClient(transport=httpx.MockTransport(hl_handler)),
    }
    async with await Aggregator.create(config, clients=clients) as agg:
        assert agg.adapter(VenueTag.DYDX).get_available_assets() == ["BTC", "ETH"]
        assert agg.adapter(VenueTag.HYPERLIQUID).get_available_assets() == ["BTC", "ETH", "kPEPE"]
        assert not agg.adapter(VenueTag.DYDX).is_testnet
        assert agg.adapter(VenueTag.DYDX).indexer_url == "https://indexer.dydx.trade/v4"
    for client in clients.values():
        await client.aclose()


@pytest.mark.asyncio
async def test_create_fails_when_a_venue_cannot_bootstrap(config):
    down = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    ok = httpx.AsyncClient(transport=httpx.MockTransport(hl_handler))
    with pytest.raises(TransientError):
        await Aggregator.create(config, clients={VenueTag.DYDX: down, VenueTag.HYPERLIQUID: ok})
    await down.aclose()
    await ok.aclose()
