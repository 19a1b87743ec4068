"""TradeRequest (user intent), OrderPayload (normalized order) and VenueReceipt."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from perpview.models.market import VenueTag


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> Side:
        return Side.SELL if self is Side.BUY else Side.BUY


class OrderKind(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class TimeInForce(str, Enum):
    IOC = "ioc"
    GTC = "gtc"


class TradeRequest(BaseModel):
    """What the operator typed: a USD notional, not asset units. Single use."""

    model_config = ConfigDict(frozen=True)

    asset: str
    side: Side
    kind: OrderKind = OrderKind.MARKET
    usd_value: Decimal = Field(..., gt=0)
    limit_price: Decimal | None = Field(None, gt=0)
    leverage: int = Field(1, ge=1)
    cross_margin: bool | None = None
    reduce_only: bool = False

    @model_validator(mode="after")
    def _limit_needs_price(self) -> TradeRequest:
        if self.kind is OrderKind.LIMIT and self.limit_price is None:
            raise ValueError("limit orders require limit_price")
        return self


class OrderPayload(BaseModel):
    """Venue-ready order: sized in asset units, rounded, priced."""

    model_config = ConfigDict(frozen=True)

    venue: VenueTag
    symbol: str
    venue_symbol: str
    side: Side
    kind: OrderKind
    size: Decimal = Field(..., gt=0)
    price: Decimal = Field(..., gt=0)
    time_in_force: TimeInForce
    reduce_only: bool = False
    leverage: int = 1
    cross_margin: bool | None = None
    client_order_id: int = Field(..., ge=0, lt=2**32)

    @property
    def notional(self) -> Decimal:
        return self.size * self.price


class VenueReceipt(BaseModel):
    """Opaque acknowledgement returned by the order gateway."""

    venue: VenueTag
    order_id: str
    client_order_id: int | None = None
    status: str = "submitted"
    raw: dict[str, Any] = Field(default_factory=dict)
