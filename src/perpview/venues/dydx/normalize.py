"""dYdX indexer payloads -> canonical snapshot/delta, summary, metadata, positions and orders."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from perpview.errors import FeedSchemaError
from perpview.models.account import OpenOrder, Position
from perpview.models.market import AssetMeta, MarketSummary, VenueTag
from perpview.models.orderbook import LevelChange, OrderBookDelta, OrderBookSnapshot

QUOTE_SUFFIX = "-USD"


def ticker_for(symbol: str) -> str:
    return f"{symbol.upper()}{QUOTE_SUFFIX}"


def symbol_for(ticker: str) -> str:
    return ticker[: -len(QUOTE_SUFFIX)] if ticker.endswith(QUOTE_SUFFIX) else ticker


def _decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise FeedSchemaError(f"{field}: expected a decimal, got {value!r}")
    try:
        out = Decimal(str(value))
    except InvalidOperation as e:
        raise FeedSchemaError(f"{field}: expected a decimal, got {value!r}") from e
    if not out.is_finite():
        raise FeedSchemaError(f"{field}: expected a finite decimal, got {value!r}")
    return out


def _optional_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        out = Decimal(str(value))
    except InvalidOperation:
        return None
    return out if out.is_finite() else None


def _object_level(raw: Any, field: str) -> LevelChange:
    if not isinstance(raw, dict) or "price" not in raw or "size" not in raw:
        raise FeedSchemaError(f"{field}: expected {{price, size}} object, got {raw!r}")
    return _level(raw["price"], raw["size"], field)


def _pair_level(raw: Any, field: str) -> LevelChange:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise FeedSchemaError(f"{field}: expected [price, size] pair, got {raw!r}")
    return _level(raw[0], raw[1], field)


def _level(price: Any, size: Any, field: str) -> LevelChange:
    p = _decimal(price, f"{field}.price")
    s = _decimal(size, f"{field}.size")
    if p <= 0 or s < 0:
        raise FeedSchemaError(f"{field}: invalid level price={p} size={s}")
    return LevelChange(price=p, size=s, orders=1 if s > 0 else 0)


def _side(contents: dict[str, Any], key: str) -> list[Any]:
    raw = contents.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise FeedSchemaError(f"{key}: expected a list, got {type(raw).__name__}")
    return raw


def parse_book_snapshot(contents: Any, symbol: str) -> OrderBookSnapshot:
    """'subscribed' v4_orderbook contents: {"bids": [{"price", "size"}], "asks": [...]}."""
    if not isinstance(contents, dict):
        raise FeedSchemaError(f"orderbook snapshot contents must be an object, got {contents!r}")
    return OrderBookSnapshot(
        symbol=symbol,
        bids=[_object_level(lev, "bids") for lev in _side(contents, "bids")],
        asks=[_object_level(lev, "asks") for lev in _side(contents, "asks")],
    )


def parse_book_update(contents: Any, symbol: str) -> OrderBookDelta:
    """'channel_data' v4_orderbook contents: {"bids": [[price, size]], "asks": [...]}, either side optional."""
    if not isinstance(contents, dict):
        raise FeedSchemaError(f"orderbook update contents must be an object, got {contents!r}")
    return OrderBookDelta(
        symbol=symbol,
        bids=[_pair_level(lev, "bids") for lev in _side(contents, "bids")],
        asks=[_pair_level(lev, "asks") for lev in _side(contents, "asks")],
    )


def summary_fields(market: dict[str, Any]) -> dict[str, Decimal]:
    """Summary fields present in a perpetual-market object (REST or v4_markets)."""
    fields = {
        "mark_price": _optional_decimal(market.get("oraclePrice")),
        "volume_24h": _optional_decimal(market.get("volume24H")),
        "open_interest": _optional_decimal(market.get("openInterest")),
        "funding_rate": _optional_decimal(market.get("nextFundingRate")),
    }
    return {k: v for k, v in fields.items() if v is not None}


def summary_from_market(symbol: str, market: dict[str, Any], updated_ms: int | None = None) -> MarketSummary:
    return MarketSummary(symbol=symbol, updated_ms=updated_ms, **summary_fields(market))


def markets_update_for(message: dict[str, Any], ticker: str) -> dict[str, Any] | None:
    """Pull the entry for ticker out of a v4_markets message, merging trading and oracle updates."""
    contents = message.get("contents")
    if not isinstance(contents, dict):
        return None
    if message.get("type") == "subscribed":
        market = (contents.get("markets") or {}).get(ticker)
        return dict(market) if isinstance(market, dict) else None
    merged: dict[str, Any] = {}
    trading = (contents.get("trading") or {}).get(ticker)
    if isinstance(trading, dict):
        merged.update(trading)
    oracle = (contents.get("oraclePrices") or {}).get(ticker)
    if isinstance(oracle, dict) and "oraclePrice" in oracle:
        merged["oraclePrice"] = oracle["oraclePrice"]
    return merged or None


def _decimals_of(step: Decimal) -> int:
    exponent = step.normalize().as_tuple().exponent
    return max(0, -exponent) if isinstance(exponent, int) else 0


def asset_meta_from_market(market: dict[str, Any]) -> AssetMeta:
    ticker = str(market.get("ticker") or "")
    step = _optional_decimal(market.get("stepSize"))
    tick = _optional_decimal(market.get("tickSize"))
    imf = _optional_decimal(market.get("initialMarginFraction"))
    max_leverage = (Decimal(1) / imf).quantize(Decimal("0.01")) if imf and imf > 0 else None
    return AssetMeta(
        symbol=symbol_for(ticker),
        size_decimals=_decimals_of(step) if step and step > 0 else 0,
        max_leverage=max_leverage,
        tick_size=tick if tick and tick > 0 else None,
        step_size=step if step and step > 0 else None,
        active=str(market.get("status") or "ACTIVE").upper() == "ACTIVE",
    )


def position_from_wire(raw: dict[str, Any]) -> Position:
    size = _decimal(raw.get("size"), "size")
    if str(raw.get("side") or "").upper() == "SHORT" and size > 0:
        size = -size
    return Position(
        venue=VenueTag.DYDX,
        symbol=symbol_for(str(raw.get("market") or "")),
        size=size,
        entry_price=_optional_decimal(raw.get("entryPrice")),
        unrealized_pnl=_optional_decimal(raw.get("unrealizedPnl")),
    )


def order_id_for(raw: dict[str, Any]) -> str:
    """Composite id: clientId:clobPairId:orderFlags:subaccountNumber."""
    parts = [raw.get("clientId"), raw.get("clobPairId"), raw.get("orderFlags"), raw.get("subaccountNumber")]
    if any(p is None or p == "" for p in parts):
        raise FeedSchemaError(f"order missing id fields: {raw!r}")
    return ":".join(str(p) for p in parts)


def open_order_from_wire(raw: dict[str, Any]) -> OpenOrder:
    return OpenOrder(
        venue=VenueTag.DYDX,
        symbol=symbol_for(str(raw.get("ticker") or "")),
        side=str(raw.get("side") or "").lower(),
        size=_decimal(raw.get("size"), "size"),
        price=_decimal(raw.get("price"), "price"),
        status=str(raw.get("status") or "open").lower(),
        order_id=order_id_for(raw),
    )
