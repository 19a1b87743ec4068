"""Hyperliquid info payloads -> AssetMeta, MarketSummary, Position, OpenOrder."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from perpview.errors import FeedSchemaError
from perpview.models.account import OpenOrder, Position
from perpview.models.market import AssetMeta, MarketSummary, VenueTag

_SIDES = {"B": "buy", "A": "sell"}


def _decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        out = Decimal(str(value))
    except InvalidOperation:
        return None
    return out if out.is_finite() else None


def asset_meta_from_universe(entry: dict[str, Any]) -> AssetMeta:
    max_leverage = _decimal(entry.get("maxLeverage"))
    return AssetMeta(
        symbol=str(entry["name"]),
        size_decimals=int(entry.get("szDecimals") or 0),
        max_leverage=max_leverage if max_leverage and max_leverage > 0 else None,
        active=not entry.get("isDelisted", False),
    )


def summary_from_ctx(symbol: str, ctx: dict[str, Any], updated_ms: int | None = None) -> MarketSummary:
    return MarketSummary(
        symbol=symbol,
        mark_price=_decimal(ctx.get("markPx")),
        volume_24h=_decimal(ctx.get("dayNtlVlm")),
        open_interest=_decimal(ctx.get("openInterest")),
        funding_rate=_decimal(ctx.get("funding")),
        updated_ms=updated_ms,
    )


def position_from_wire(entry: dict[str, Any]) -> Position:
    """One clearinghouseState assetPositions item ({"position": {...}, "type": ...})."""
    p = entry.get("position") or {}
    leverage = p.get("leverage") or {}
    return Position(
        venue=VenueTag.HYPERLIQUID,
        symbol=str(p.get("coin") or ""),
        size=_decimal(p.get("szi")) or Decimal(0),
        entry_price=_decimal(p.get("entryPx")),
        liquidation_price=_decimal(p.get("liquidationPx")),
        unrealized_pnl=_decimal(p.get("unrealizedPnl")),
        margin_used=_decimal(p.get("marginUsed")),
        leverage=_decimal(leverage.get("value")) if isinstance(leverage, dict) else None,
        return_on_equity=_decimal(p.get("returnOnEquity")),
    )


def open_order_from_wire(raw: dict[str, Any]) -> OpenOrder:
    coin = str(raw.get("coin") or "")
    side = _SIDES.get(str(raw.get("side")))
    if side is None:
        raise FeedSchemaError(f"unexpected order side {raw.get('side')!r}")
    return OpenOrder(
        venue=VenueTag.HYPERLIQUID,
        symbol=coin,
        side=side,
        size=_decimal(raw.get("sz")) or Decimal(0),
        price=_decimal(raw.get("limitPx")) or Decimal(0),
        order_id=f"{coin}:{raw.get('oid')}",
    )
