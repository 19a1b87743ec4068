"""Venue adapter contract and the session state every adapter shares."""

from __future__ import annotations

import asyncio
import threading
import time
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Awaitable, Callable, TypeVar

import httpx
import structlog

from perpview.config.settings import AggregatorConfig
from perpview.errors import (
    ConfigError,
    NotFoundError,
    NotReadyError,
    RejectedError,
    RejectReason,
    TransientError,
)
from perpview.models.account import OpenOrder, Position
from perpview.models.market import AssetMeta, LeverageInfo, MarketSummary, VenueTag
from perpview.models.orderbook import OrderBook
from perpview.models.trade import OrderPayload, TradeRequest, VenueReceipt
from perpview.trading.normalizer import OrderNormalizer
from perpview.venues.gateway import DryRunGateway, OrderGateway
from perpview.venues.supervisor import Feed, SessionStatus, SubscriptionSupervisor

log = structlog.get_logger(__name__)

T = TypeVar("T")


class VenueAdapter(ABC):
    """Uniform capability set over one venue.

    The adapter owns the live book for its active symbol. Feeds (run by the
    supervisor) publish into it through _publish_book / _clear_book; readers get
    immutable snapshots. _lock only guards swaps of those cells and of the
    supervisor handle, so it is never held across an await.
    """

    venue: VenueTag
    native_market_orders = False
    policy_max_leverage: Decimal

    def __init__(
        self,
        config: AggregatorConfig,
        *,
        gateway: OrderGateway | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.gateway: OrderGateway = gateway or DryRunGateway()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.timeout_sec)
        self._sleep = sleep
        self.normalizer = OrderNormalizer(Decimal(config.min_notional_usd))

        self._lock = threading.Lock()
        self._feed_lock = asyncio.Lock()
        self._supervisor: SubscriptionSupervisor | None = None
        self._active_symbol: str | None = None
        self._book: OrderBook | None = None
        self._stream_summary: MarketSummary | None = None
        self._last_good_summary: dict[str, MarketSummary] = {}
        self._assets: dict[str, AssetMeta] = {}
        self._assets_by_key: dict[str, str] = {}

    # --- venue specifics -------------------------------------------------

    @abstractmethod
    def venue_symbol(self, symbol: str) -> str:
        """Map a bare asset code to the venue's market identifier."""

    @abstractmethod
    async def load_metadata(self) -> list[AssetMeta]:
        """Fetch the asset universe and cache it (see _set_assets)."""

    @abstractmethod
    def _make_feed(self, symbol: str) -> Feed:
        """Build the transport the supervisor drives for symbol."""

    @abstractmethod
    async def _fetch_summary(self, symbol: str) -> MarketSummary: ...

    @abstractmethod
    async def get_positions(self, address: str) -> list[Position]: ...

    @abstractmethod
    async def get_open_orders(self, address: str) -> list[OpenOrder]: ...

    def _validate_order_id(self, order_id: str) -> None:
        if not order_id:
            raise NotFoundError("empty order id")

    # --- market data -----------------------------------------------------

    @property
    def is_testnet(self) -> bool:
        return self.config.testnet

    @property
    def active_symbol(self) -> str | None:
        return self._active_symbol

    async def start_market_updates(self, symbol: str) -> None:
        """Make symbol the streamed market. Same symbol again is a no-op.

        A different symbol swaps the supervisor handle, clears the book, then
        cancels and awaits the previous supervisor before the new one starts.
        """
        symbol = self.resolve_symbol(symbol)
        if self._assets and symbol not in self._assets:
            raise ConfigError(f"{self.venue.display_name} does not list {symbol}")

        async with self._feed_lock:
            with self._lock:
                previous = self._supervisor
                if (
                    previous is not None
                    and self._active_symbol == symbol
                    and previous.started
                    and not previous.done
                ):
                    return
                supervisor = SubscriptionSupervisor(
                    self._make_feed(symbol),
                    base_delay_sec=self.config.reconnect_base_delay_sec,
                    max_delay_sec=self.config.reconnect_max_delay_sec,
                    sleep=self._sleep,
                )
                self._supervisor = supervisor
                self._active_symbol = symbol
                self._book = None
                self._stream_summary = None
            try:
                if previous is not None:
                    await previous.cancel()
            finally:
                # The installed supervisor must run even if this call is cancelled
                supervisor.start()
        log.info(
            "market_updates_started",
            venue=self.venue.value,
            symbol=symbol,
            previous=previous.symbol if previous is not None else None,
        )

    def get_orderbook(self, symbol: str) -> OrderBook:
        symbol = self.resolve_symbol(symbol)
        with self._lock:
            book = self._book
        if book is None or book.symbol != symbol:
            raise NotReadyError(f"no {self.venue.display_name} book for {symbol} yet")
        return book

    async def get_market_summary(self, symbol: str) -> MarketSummary:
        """Summary for symbol within the REST timeout. Successes are kept as last-good."""
        symbol = self.resolve_symbol(symbol)
        try:
            summary = await asyncio.wait_for(self._summary(symbol), timeout=self.config.timeout_sec)
        except asyncio.TimeoutError as e:
            raise TransientError(f"{self.venue.display_name} summary for {symbol} timed out") from e
        with self._lock:
            self._last_good_summary[symbol] = summary
        return summary

    def last_good_summary(self, symbol: str) -> MarketSummary | None:
        with self._lock:
            return self._last_good_summary.get(self.resolve_symbol(symbol))

    async def _summary(self, symbol: str) -> MarketSummary:
        with self._lock:
            streamed = self._stream_summary
        if streamed is not None and streamed.symbol == symbol and streamed.updated_ms is not None:
            age_sec = (time.time() * 1000 - streamed.updated_ms) / 1000.0
            if age_sec <= self.config.summary_max_age_sec:
                return streamed
        return await self._fetch_summary(symbol)

    def get_leverage_info(self, symbol: str) -> LeverageInfo:
        symbol = self.resolve_symbol(symbol)
        meta = self._assets.get(symbol)
        if meta is not None and meta.max_leverage:
            return LeverageInfo(
                venue=self.venue, symbol=symbol, max_leverage=meta.max_leverage, source="metadata"
            )
        return LeverageInfo(
            venue=self.venue, symbol=symbol, max_leverage=self.policy_max_leverage, source="policy"
        )

    def get_available_assets(self) -> list[str]:
        return sorted(s for s, meta in self._assets.items() if meta.active)

    def asset_meta(self, symbol: str) -> AssetMeta:
        symbol = self.resolve_symbol(symbol)
        meta = self._assets.get(symbol)
        if meta is None:
            raise NotFoundError(f"{self.venue.display_name} does not list {symbol}")
        return meta

    def session_status(self) -> SessionStatus | None:
        with self._lock:
            supervisor = self._supervisor
        return supervisor.status() if supervisor is not None else None

    # --- orders ----------------------------------------------------------

    async def place_order(self, request: TradeRequest) -> VenueReceipt:
        symbol = self.resolve_symbol(request.asset)
        meta = self.asset_meta(symbol)
        with self._lock:
            book = self._book if self._book is not None and self._book.symbol == symbol else None
        payload = self.normalizer.normalize(
            request,
            venue=self.venue,
            venue_symbol=self.venue_symbol(symbol),
            meta=meta,
            book=book,
            native_market=self.native_market_orders,
        )
        max_leverage = self.get_leverage_info(symbol).max_leverage
        if request.leverage > max_leverage:
            raise RejectedError(
                RejectReason.MARGIN,
                f"leverage {request.leverage}x exceeds {self.venue.display_name} max {max_leverage}x",
            )

        if request.leverage > 1 and self.gateway.supports_leverage:
            await self._order_call(
                self.gateway.update_leverage(
                    self.venue, payload.venue_symbol, request.leverage, request.cross_margin
                ),
                "update_leverage",
            )
        return await self._submit(payload)

    async def cancel_order(self, order_id: str) -> None:
        self._validate_order_id(order_id)
        await self._order_call(self.gateway.cancel(self.venue, order_id), "cancel")
        log.info("order_cancelled", venue=self.venue.value, order_id=order_id)

    async def close_position(self, symbol: str, signed_size: Decimal) -> VenueReceipt:
        """Reduce-only market order for exactly abs(signed_size) on the opposite side."""
        symbol = self.resolve_symbol(symbol)
        if signed_size == 0:
            raise RejectedError(RejectReason.TOO_SMALL, f"no {symbol} position to close")
        meta = self.asset_meta(symbol)
        with self._lock:
            book = self._book if self._book is not None and self._book.symbol == symbol else None
        payload = self.normalizer.normalize_close(
            symbol,
            signed_size,
            venue=self.venue,
            venue_symbol=self.venue_symbol(symbol),
            meta=meta,
            book=book,
            native_market=self.native_market_orders,
        )
        return await self._submit(payload)

    async def _submit(self, payload: OrderPayload) -> VenueReceipt:
        receipt = await self._order_call(self.gateway.submit(payload), "submit")
        log.info(
            "order_placed",
            venue=self.venue.value,
            symbol=payload.venue_symbol,
            side=payload.side.value,
            size=str(payload.size),
            price=str(payload.price),
            reduce_only=payload.reduce_only,
            order_id=receipt.order_id,
            status=receipt.status,
        )
        return receipt

    async def _order_call(self, call: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.config.order_timeout_sec)
        except asyncio.TimeoutError as e:
            raise TransientError(
                f"{self.venue.display_name} {what} timed out after {self.config.order_timeout_sec}s"
            ) from e

    # --- lifecycle -------------------------------------------------------

    async def aclose(self) -> None:
        """Cancel the supervisor and release HTTP resources."""
        async with self._feed_lock:
            with self._lock:
                supervisor = self._supervisor
                self._supervisor = None
                self._active_symbol = None
                self._book = None
                self._stream_summary = None
            if supervisor is not None:
                await supervisor.cancel()
        if self._owns_client:
            await self.client.aclose()

    # --- shared helpers --------------------------------------------------

    def _set_assets(self, assets: list[AssetMeta]) -> None:
        self._assets = {a.symbol: a for a in assets}
        self._assets_by_key = {a.symbol.upper(): a.symbol for a in assets}
        log.info(
            "metadata_loaded",
            venue=self.venue.value,
            assets=len(assets),
            active=sum(1 for a in assets if a.active),
        )

    def resolve_symbol(self, symbol: str) -> str:
        """Canonical asset code: exact metadata spelling when known, else upper case."""
        symbol = (symbol or "").strip()
        if not symbol:
            raise ConfigError("symbol must not be empty")
        if symbol in self._assets:
            return symbol
        return self._assets_by_key.get(symbol.upper(), symbol.upper())

    def _publish_book(self, book: OrderBook) -> bool:
        """Install book if it belongs to the active symbol."""
        with self._lock:
            if book.symbol != self._active_symbol:
                return False
            self._book = book
        return True

    def _clear_book(self, symbol: str) -> None:
        with self._lock:
            if symbol == self._active_symbol:
                self._book = None

    def _merge_stream_summary(self, summary: MarketSummary) -> None:
        """Overwrite the streamed summary fields that summary carries."""
        with self._lock:
            if summary.symbol != self._active_symbol:
                return
            current = self._stream_summary
            if current is None or current.symbol != summary.symbol:
                self._stream_summary = summary
                return
            fields: dict[str, Any] = summary.model_dump(exclude_none=True, exclude={"symbol"})
            self._stream_summary = current.model_copy(update=fields)
