"""Order request normalizer - USD notional to venue-ready size and price."""

from __future__ import annotations

import random
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

import structlog

from perpview.errors import NotReadyError, RejectedError, RejectReason
from perpview.models.market import AssetMeta, VenueTag
from perpview.models.orderbook import OrderBook
from perpview.models.trade import (
    OrderKind,
    OrderPayload,
    Side,
    TimeInForce,
    TradeRequest,
)

log = structlog.get_logger(__name__)

USD_QUANTUM = Decimal("0.01")
DEFAULT_MIN_NOTIONAL = Decimal("10")


def round_size(raw: Decimal, size_decimals: int, step_size: Decimal | None = None) -> Decimal:
    """Round half away from zero to size_decimals, snapping to step_size when the step is coarser."""
    quantum = Decimal(1).scaleb(-size_decimals)
    if step_size is not None and step_size > quantum:
        steps = (raw / step_size).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        raw = steps * step_size
    return raw.quantize(quantum, rounding=ROUND_HALF_UP)


def round_price(price: Decimal, tick_size: Decimal | None) -> Decimal:
    if tick_size is None or tick_size <= 0:
        return price
    ticks = (price / tick_size).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return (ticks * tick_size).quantize(tick_size)


def _random_client_id() -> int:
    return random.getrandbits(32)


def touch_price(asset: str, side: Side, book: OrderBook | None) -> Decimal:
    """Best ask for a buy, best bid for a sell. Needs a two-sided book."""
    if book is None or book.best_bid is None or book.best_ask is None:
        raise NotReadyError(f"no two-sided book for {asset}")
    level = book.best_ask if side is Side.BUY else book.best_bid
    return level.price


class OrderNormalizer:
    """Turns a TradeRequest into an OrderPayload. Never touches the network."""

    def __init__(
        self,
        min_notional: Decimal = DEFAULT_MIN_NOTIONAL,
        id_source: Callable[[], int] | None = None,
    ) -> None:
        self.min_notional = Decimal(min_notional)
        self._next_id = id_source or _random_client_id

    def reference_price(self, request: TradeRequest, book: OrderBook | None) -> Decimal:
        """Limit price as given; for market orders, the touch on the side we would take."""
        if request.kind is OrderKind.LIMIT:
            if request.limit_price is None:
                raise RejectedError(RejectReason.INVALID_PRICE, f"limit order for {request.asset} has no price")
            return request.limit_price
        return touch_price(request.asset, request.side, book)

    def normalize(
        self,
        request: TradeRequest,
        *,
        venue: VenueTag,
        venue_symbol: str,
        meta: AssetMeta,
        book: OrderBook | None,
        native_market: bool = False,
    ) -> OrderPayload:
        if not meta.active:
            raise RejectedError(RejectReason.VENUE, f"{venue_symbol} is not tradable")
        if request.usd_value < self.min_notional:
            raise RejectedError(
                RejectReason.BELOW_MINIMUM,
                f"order value ${request.usd_value} is below the ${self.min_notional} minimum",
            )

        price = self.reference_price(request, book)
        if request.kind is OrderKind.LIMIT:
            price = round_price(price, meta.tick_size)
        if price <= 0:
            raise RejectedError(RejectReason.INVALID_PRICE, f"price {price} rounds to zero")

        size = round_size(request.usd_value / price, meta.size_decimals, meta.step_size)
        if size <= 0:
            raise RejectedError(
                RejectReason.TOO_SMALL,
                f"${request.usd_value} at {price} rounds to zero {request.asset}",
            )
        notional = (size * price).quantize(USD_QUANTUM, rounding=ROUND_HALF_UP)
        if notional < self.min_notional:
            raise RejectedError(
                RejectReason.BELOW_MINIMUM,
                f"rounded order value ${notional} is below the ${self.min_notional} minimum",
            )

        if request.kind is OrderKind.MARKET:
            # Limit-only venues: IOC at the touch, never a sweep price.
            kind = OrderKind.MARKET if native_market else OrderKind.LIMIT
            tif = TimeInForce.IOC
        else:
            kind = OrderKind.LIMIT
            tif = TimeInForce.GTC

        payload = OrderPayload(
            venue=venue,
            symbol=request.asset,
            venue_symbol=venue_symbol,
            side=request.side,
            kind=kind,
            size=size,
            price=price,
            time_in_force=tif,
            reduce_only=request.reduce_only,
            leverage=request.leverage,
            cross_margin=request.cross_margin,
            client_order_id=self._next_id(),
        )
        log.debug(
            "order_normalized",
            venue=venue.value,
            symbol=venue_symbol,
            side=request.side.value,
            usd_value=str(request.usd_value),
            size=str(size),
            price=str(price),
            tif=tif.value,
        )
        return payload

    def normalize_close(
        self,
        symbol: str,
        signed_size: Decimal,
        *,
        venue: VenueTag,
        venue_symbol: str,
        meta: AssetMeta,
        book: OrderBook | None,
        native_market: bool = False,
    ) -> OrderPayload:
        """Reduce-only IOC for exactly abs(signed_size) on the opposite side.

        Sized in asset units, so the USD floor does not apply: a position under
        the minimum notional must still be closable.
        """
        if not meta.active:
            raise RejectedError(RejectReason.VENUE, f"{venue_symbol} is not tradable")
        size = round_size(abs(signed_size), meta.size_decimals, meta.step_size)
        if size <= 0:
            raise RejectedError(RejectReason.TOO_SMALL, f"no {symbol} position to close")
        side = Side.SELL if signed_size > 0 else Side.BUY
        price = touch_price(symbol, side, book)

        payload = OrderPayload(
            venue=venue,
            symbol=symbol,
            venue_symbol=venue_symbol,
            side=side,
            kind=OrderKind.MARKET if native_market else OrderKind.LIMIT,
            size=size,
            price=price,
            time_in_force=TimeInForce.IOC,
            reduce_only=True,
            client_order_id=self._next_id(),
        )
        log.debug(
            "close_normalized",
            venue=venue.value,
            symbol=venue_symbol,
            side=side.value,
            size=str(size),
            price=str(price),
        )
        return payload
