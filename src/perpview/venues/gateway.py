"""Order gateway - the signing/submission collaborator adapters hand normalized orders to."""

from __future__ import annotations

from typing import Protocol

import structlog

from perpview.models.market import VenueTag
from perpview.models.trade import OrderPayload, VenueReceipt

log = structlog.get_logger(__name__)


class OrderGateway(Protocol):
    """Signs and submits orders for one or more venues.

    Implementations raise RejectedError / InsufficientFundsError when the venue
    refuses an order and TransientError on network failures.
    """

    supports_leverage: bool

    async def submit(self, payload: OrderPayload) -> VenueReceipt: ...

    async def cancel(self, venue: VenueTag, order_id: str) -> None: ...

    async def update_leverage(
        self, venue: VenueTag, venue_symbol: str, leverage: int, cross_margin: bool | None
    ) -> None: ...


class DryRunGateway:
    """Records what would have been sent. Nothing leaves the process."""

    supports_leverage = True

    def __init__(self) -> None:
        self.submitted: list[OrderPayload] = []
        self.cancelled: list[tuple[VenueTag, str]] = []
        self.leverage_updates: list[tuple[VenueTag, str, int, bool | None]] = []

    async def submit(self, payload: OrderPayload) -> VenueReceipt:
        self.submitted.append(payload)
        log.info(
            "dry_run_order",
            venue=payload.venue.value,
            symbol=payload.venue_symbol,
            side=payload.side.value,
            size=str(payload.size),
            price=str(payload.price),
            tif=payload.time_in_force.value,
            reduce_only=payload.reduce_only,
        )
        return VenueReceipt(
            venue=payload.venue,
            order_id=f"dry-{payload.client_order_id}",
            client_order_id=payload.client_order_id,
            status="dry_run",
            raw=payload.model_dump(mode="json"),
        )

    async def cancel(self, venue: VenueTag, order_id: str) -> None:
        self.cancelled.append((venue, order_id))
        log.info("dry_run_cancel", venue=venue.value, order_id=order_id)

    async def update_leverage(
        self, venue: VenueTag, venue_symbol: str, leverage: int, cross_margin: bool | None
    ) -> None:
        self.leverage_updates.append((venue, venue_symbol, leverage, cross_margin))
        log.info("dry_run_leverage", venue=venue.value, symbol=venue_symbol, leverage=leverage)
