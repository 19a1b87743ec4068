"""Canonical schema (Pydantic) - OrderBook, MarketSummary, trading and account types."""

from perpview.models.account import OpenOrder, Position
from perpview.models.market import AssetMeta, LeverageInfo, MarketSummary, VenueTag
from perpview.models.orderbook import (
    Level,
    LevelChange,
    OrderBook,
    OrderBookDelta,
    OrderBookSnapshot,
)
from perpview.models.trade import (
    OrderKind,
    OrderPayload,
    Side,
    TimeInForce,
    TradeRequest,
    VenueReceipt,
)

__all__ = [
    "AssetMeta",
    "Level",
    "LevelChange",
    "LeverageInfo",
    "MarketSummary",
    "OpenOrder",
    "OrderBook",
    "OrderBookDelta",
    "OrderBookSnapshot",
    "OrderKind",
    "OrderPayload",
    "Position",
    "Side",
    "TimeInForce",
    "TradeRequest",
    "VenueReceipt",
    "VenueTag",
]
