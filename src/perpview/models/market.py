"""Venue tags, market summaries, leverage and per-asset venue metadata."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class VenueTag(str, Enum):
    """Venues known to the aggregator."""

    DYDX = "dydx"
    HYPERLIQUID = "hyperliquid"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {VenueTag.DYDX: "dYdX", VenueTag.HYPERLIQUID: "Hyperliquid"}


class MarketSummary(BaseModel):
    """Per-symbol market stats. Fields a venue does not publish stay None, never zero."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    mark_price: Decimal | None = None
    volume_24h: Decimal | None = None  # USD notional
    open_interest: Decimal | None = None  # asset units
    funding_rate: Decimal | None = None  # per-interval fraction, not percent
    updated_ms: int | None = None


class LeverageInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    venue: VenueTag
    symbol: str
    max_leverage: Decimal = Field(..., gt=0)
    source: str = Field("metadata", pattern="^(metadata|policy)$")


class AssetMeta(BaseModel):
    """Tradable asset as described by venue metadata."""

    model_config = ConfigDict(frozen=True)

    symbol: str  # bare asset code, e.g. "BTC"
    size_decimals: int = Field(..., ge=0)
    max_leverage: Decimal | None = None
    tick_size: Decimal | None = None
    step_size: Decimal | None = None
    active: bool = True
