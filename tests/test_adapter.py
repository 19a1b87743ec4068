"""Adapter contract shared by both venues: symbol switching, order flow, lifecycle."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from decimal import Decimal

import httpx
import pytest
from helpers import FakeConnector, FakeWebSocket, dydx_snapshot, fast_sleep, hl_book, hl_handler, wait_until

from perpview.errors import ConfigError, NotFoundError, NotReadyError, RejectedError, RejectReason, TransientError
from perpview.models.market import VenueTag
from perpview.models.trade import OrderKind, Side, TimeInForce, TradeRequest
from perpview.venues.gateway import DryRunGateway
from perpview.venues.hyperliquid.adapter import HyperliquidAdapter
from perpview.venues.supervisor import SupervisorState


async def _stream_btc(adapter, connector, bid="49990", ask="50000.00"):
    ws = FakeWebSocket()
    connector.outcomes.append(ws)
    await adapter.start_market_updates("BTC")
    ws.push(dydx_snapshot(bids=[(bid, "1")], asks=[(ask, "1")]))
    await wait_until(lambda: adapter.session_status().messages_applied >= 1)
    return ws


@pytest.mark.asyncio
async def test_symbol_switch_drops_old_book_and_supervisor(dydx, dydx_connector):
    ws_btc = await _stream_btc(dydx, dydx_connector)
    old = dydx._supervisor
    ws_eth = FakeWebSocket()
    dydx_connector.outcomes.append(ws_eth)

    await dydx.start_market_updates("ETH")

    with pytest.raises(NotReadyError):
        dydx.get_orderbook("BTC")
    assert old.done
    assert old.state is SupervisorState.STOPPED
    assert dydx._supervisor is not old
    assert dydx.active_symbol == "ETH"
    assert ws_btc.closed
    assert ws_btc.sent[-1] == {"type": "unsubscribe", "channel": "v4_orderbook", "id": "BTC-USD"}
    await wait_until(lambda: any(m.get("id") == "ETH-USD" for m in ws_eth.sent))

    # A late BTC snapshot can no longer be published
    ws_eth.push(dydx_snapshot(bids=[("100", "1")], asks=[("101", "1")], ticker="BTC-USD"))
    ws_eth.push(dydx_snapshot(bids=[("2999", "1")], asks=[("3000", "1")], ticker="ETH-USD"))
    await wait_until(lambda: dydx.session_status().messages_applied >= 2)
    assert dydx.get_orderbook("ETH").best_ask.price == Decimal("3000")
    with pytest.raises(NotReadyError):
        dydx.get_orderbook("BTC")


@pytest.mark.asyncio
async def test_same_symbol_again_is_a_noop(dydx, dydx_connector):
    await _stream_btc(dydx, dydx_connector)
    sup = dydx._supervisor
    await dydx.start_market_updates("btc")
    assert dydx._supervisor is sup
    assert dydx_connector.calls == 1
    assert dydx.get_orderbook("BTC").best_bid is not None


class SlowCloseWebSocket(FakeWebSocket):
    async def close(self):
        await asyncio.sleep(0.3)
        await super().close()


@pytest.mark.asyncio
async def test_cancelled_symbol_switch_still_streams_the_new_symbol(dydx, dydx_connector):
    dydx_connector.outcomes.append(SlowCloseWebSocket())
    await dydx.start_market_updates("BTC")
    await wait_until(lambda: dydx_connector.calls == 1)
    ws_eth = FakeWebSocket()
    dydx_connector.outcomes.append(ws_eth)

    switch = asyncio.create_task(dydx.start_market_updates("ETH"))
    await wait_until(lambda: dydx.active_symbol == "ETH")
    switch.cancel()
    with pytest.raises(asyncio.CancelledError):
        await switch
    eth = dydx._supervisor
    assert eth.started

    # Retrying the switch keeps the running supervisor
    await dydx.start_market_updates("ETH")
    assert dydx._supervisor is eth
    await wait_until(lambda: any(m.get("id") == "ETH-USD" for m in ws_eth.sent))
    ws_eth.push(dydx_snapshot(bids=[("2999", "1")], asks=[("3000", "1")], ticker="ETH-USD"))
    await wait_until(lambda: dydx.session_status().messages_applied >= 1)
    assert dydx.get_orderbook("ETH").best_bid.price == Decimal("2999")
    assert dydx.session_status().state is SupervisorState.STREAMING


@pytest.mark.asyncio
@pytest.mark.parametrize("symbol", ["", "   ", "DOGE"])
async def test_unknown_or_empty_symbol_is_config_error(dydx, dydx_connector, symbol):
    with pytest.raises(ConfigError):
        await dydx.start_market_updates(symbol)
    assert dydx_connector.calls == 0


@pytest.mark.asyncio
async def test_market_buy_goes_out_as_ioc_limit_at_the_ask(dydx, dydx_connector, gateway):
    await _stream_btc(dydx, dydx_connector)
    receipt = await dydx.place_order(TradeRequest(asset="BTC", side=Side.BUY, usd_value=Decimal("1000")))

    payload = gateway.submitted[0]
    assert payload.venue_symbol == "BTC-USD"
    assert payload.size == Decimal("0.0200")
    assert payload.price == Decimal("50000.00")
    assert payload.time_in_force is TimeInForce.IOC
    assert payload.kind is OrderKind.LIMIT
    assert receipt.venue is VenueTag.DYDX
    assert receipt.order_id == f"dry-{payload.client_order_id}"
    assert receipt.status == "dry_run"
    assert gateway.leverage_updates == []


@pytest.mark.asyncio
async def test_below_minimum_makes_no_network_call(dydx, dydx_connector, gateway):
    with pytest.raises(RejectedError) as exc:
        await dydx.place_order(TradeRequest(asset="BTC", side=Side.BUY, usd_value=Decimal("1")))
    assert exc.value.reason is RejectReason.BELOW_MINIMUM
    assert dydx.requests == []
    assert dydx_connector.calls == 0
    assert gateway.submitted == []
    assert gateway.leverage_updates == []


@pytest.mark.asyncio
async def test_market_order_without_book_is_not_ready(dydx, gateway):
    with pytest.raises(NotReadyError):
        await dydx.place_order(TradeRequest(asset="BTC", side=Side.BUY, usd_value=Decimal("100")))
    assert gateway.submitted == []


@pytest.mark.asyncio
async def test_leverage_is_set_before_submit(dydx, dydx_connector, gateway):
    await _stream_btc(dydx, dydx_connector)
    await dydx.place_order(
        TradeRequest(asset="BTC", side=Side.SELL, usd_value=Decimal("500"), leverage=5, cross_margin=False)
    )
    assert gateway.leverage_updates == [(VenueTag.DYDX, "BTC-USD", 5, False)]
    assert gateway.submitted[0].leverage == 5
    assert gateway.submitted[0].price == Decimal("49990")


@pytest.mark.asyncio
async def test_leverage_above_venue_max_is_rejected(dydx, dydx_connector, gateway):
    await _stream_btc(dydx, dydx_connector)
    with pytest.raises(RejectedError) as exc:
        await dydx.place_order(TradeRequest(asset="BTC", side=Side.BUY, usd_value=Decimal("500"), leverage=21))
    assert exc.value.reason is RejectReason.MARGIN
    assert gateway.submitted == [] and gateway.leverage_updates == []


@pytest.mark.asyncio
async def test_limit_order_needs_no_book(hyperliquid, gateway):
    req = TradeRequest(
        asset="eth", side=Side.BUY, kind=OrderKind.LIMIT, usd_value=Decimal("300"), limit_price=Decimal("3000")
    )
    await hyperliquid.place_order(req)
    payload = gateway.submitted[0]
    assert payload.venue_symbol == "ETH"
    assert payload.size == Decimal("0.1000")
    assert payload.time_in_force is TimeInForce.GTC


@pytest.mark.asyncio
async def test_unknown_asset_order_is_not_found(hyperliquid):
    with pytest.raises(NotFoundError):
        await hyperliquid.place_order(TradeRequest(asset="DOGE", side=Side.BUY, usd_value=Decimal("100")))


@pytest.mark.asyncio
async def test_close_position_is_reduce_only_on_the_opposite_side(dydx, dydx_connector, gateway):
    await _stream_btc(dydx, dydx_connector)
    await dydx.close_position("BTC", Decimal("0.001"))
    await dydx.close_position("BTC", Decimal("-0.001"))
    sell, buy = gateway.submitted
    assert (sell.side, sell.reduce_only, sell.price) == (Side.SELL, True, Decimal("49990"))
    assert sell.size == Decimal("0.0010")
    assert (buy.side, buy.price) == (Side.BUY, Decimal("50000.00"))
    with pytest.raises(RejectedError) as exc:
        await dydx.close_position("BTC", Decimal("0"))
    assert exc.value.reason is RejectReason.TOO_SMALL


@pytest.mark.asyncio
async def test_close_position_sends_the_exact_size_even_below_the_floor(hyperliquid, hl_connector, gateway):
    ws = FakeWebSocket()
    hl_connector.outcomes.append(ws)
    await hyperliquid.start_market_updates("kPEPE")
    ws.push(hl_book("kPEPE", [("0.0030", "1000000")], [("0.0031", "1000000")]))
    await wait_until(lambda: hyperliquid.session_status().messages_applied >= 1)

    await hyperliquid.close_position("kPEPE", Decimal("3338"))
    await hyperliquid.close_position("KPEPE", Decimal("-2000"))
    sell, buy = gateway.submitted
    assert (sell.side, sell.size, sell.price, sell.reduce_only) == (Side.SELL, Decimal("3338"), Decimal("0.0030"), True)
    assert (buy.side, buy.size, buy.price, buy.reduce_only) == (Side.BUY, Decimal("2000"), Decimal("0.0031"), True)
    assert buy.venue_symbol == "kPEPE"


@pytest.mark.asyncio
async def test_cancel_validates_venue_order_ids(dydx, hyperliquid, gateway):
    await dydx.cancel_order("123:0:64:0")
    await hyperliquid.cancel_order("BTC:77")
    assert gateway.cancelled == [(VenueTag.DYDX, "123:0:64:0"), (VenueTag.HYPERLIQUID, "BTC:77")]
    with pytest.raises(NotFoundError):
        await dydx.cancel_order("123:0:64")
    with pytest.raises(NotFoundError):
        await hyperliquid.cancel_order("77")


class SlowGateway(DryRunGateway):
    async def submit(self, payload):
        await asyncio.sleep(5)
        return await super().submit(payload)


@pytest.mark.asyncio
async def test_gateway_timeout_is_transient(config, hl_connector):
    client = httpx.AsyncClient(transport=httpx.MockTransport(hl_handler))
    adapter = HyperliquidAdapter(
        replace(config, order_timeout_ms=50),
        gateway=SlowGateway(),
        client=client,
        connect=hl_connector,
        sleep=fast_sleep,
    )
    await adapter.load_metadata()
    req = TradeRequest(
        asset="BTC", side=Side.BUY, kind=OrderKind.LIMIT, usd_value=Decimal("100"), limit_price=Decimal("50000")
    )
    try:
        with pytest.raises(TransientError):
            await adapter.place_order(req)
    finally:
        await adapter.aclose()
        await client.aclose()


@pytest.mark.asyncio
async def test_aclose_stops_streaming(config):
    connector = FakeConnector()
    client = httpx.AsyncClient(transport=httpx.MockTransport(hl_handler))
    adapter = HyperliquidAdapter(config, client=client, connect=connector, sleep=fast_sleep)
    await adapter.load_metadata()
    await adapter.start_market_updates("BTC")
    sup = adapter._supervisor
    await wait_until(lambda: connector.calls == 1)
    await adapter.aclose()
    assert sup.state is SupervisorState.STOPPED
    assert connector.sockets[0].closed
    assert adapter.session_status() is None
    assert not client.is_closed  # caller-owned client stays open
    await client.aclose()
