"""Open positions and resting orders read back from a venue."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field

from perpview.models.market import VenueTag


class Position(BaseModel):
    venue: VenueTag
    symbol: str
    size: Decimal  # signed: > 0 long, < 0 short
    entry_price: Decimal | None = None
    liquidation_price: Decimal | None = None
    unrealized_pnl: Decimal | None = None
    margin_used: Decimal | None = None
    leverage: Decimal | None = None
    return_on_equity: Decimal | None = None

    @property
    def notional(self) -> Decimal | None:
        if self.entry_price is None:
            return None
        return abs(self.size) * self.entry_price


class OpenOrder(BaseModel):
    venue: VenueTag
    symbol: str
    side: str = Field(..., pattern="^(buy|sell)$")
    size: Decimal
    price: Decimal
    status: str = "open"
    order_id: str  # opaque; pass back to cancel_order

    @property
    def usd_value(self) -> Decimal:
        return self.size * self.price
