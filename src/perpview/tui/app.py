"""Textual TUI dashboard - both venues side by side, supervisor health, symbol switch."""

from __future__ import annotations

from typing import Any

from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.reactive import reactive
from textual.widgets import DataTable, Footer, Header, Input, Static

from perpview.aggregator import Aggregator, VenueView
from perpview.config.settings import Settings
from perpview.errors import PerpViewError
from perpview.metrics.live import mid_gap_bps, spread_bps
from perpview.models.market import VenueTag
from perpview.models.orderbook import OrderBook

BOOK_DEPTH = 10


def _num(value: Any, places: int) -> str:
    return f"{value:,.{places}f}" if value is not None else "-"


class HealthPanel(Static):
    """Supervisor state per venue and the cross-venue mid gap."""

    status = reactive("Starting...")

    def render(self) -> str:
        return self.status


class SummaryTable(DataTable):
    COLUMNS = ("Venue", "Mark", "24h Volume", "Open Interest", "Funding", "Max Lev", "Spread bps")

    def on_mount(self) -> None:
        self.add_columns(*self.COLUMNS)

    def show(self, views: list[VenueView]) -> None:
        self.clear()
        for v in views:
            s = v.summary
            name = v.venue.display_name + (" (cached)" if v.summary_stale else "")
            self.add_row(
                name,
                _num(s.mark_price, 2) if s else v.error or "no data",
                _num(s.volume_24h, 0) if s else "-",
                _num(s.open_interest, 2) if s else "-",
                _num(s.funding_rate * 100, 4) + "%" if s and s.funding_rate is not None else "-",
                f"{v.leverage.max_leverage}x" if v.leverage else "-",
                _num(spread_bps(v.book), 2),
            )


class BookTable(DataTable):
    """Top levels of one venue's book: asks above, bids below."""

    def __init__(self, venue: VenueTag, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.venue = venue

    def on_mount(self) -> None:
        self.add_columns(self.venue.display_name, "Price", "Size")

    def show(self, book: OrderBook) -> None:
        self.clear()
        bids, asks = book.top(BOOK_DEPTH)
        if book.is_empty:
            self.add_row("waiting", "-", "-")
            return
        for lev in reversed(asks):
            self.add_row("ask", _num(lev.price, 2), _num(lev.size, 4))
        for lev in bids:
            self.add_row("bid", _num(lev.price, 2), _num(lev.size, 4))


class PerpViewTUI(App[None]):
    """perpview TUI - live books and health for both venues."""

    TITLE = "perpview"
    BINDINGS = [("q", "quit", "Quit")]
    CSS = "BookTable { width: 1fr; }"

    def __init__(self, settings: Settings, symbol: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._settings = settings
        self._symbol = symbol.upper()
        self._aggregator: Aggregator | None = None
        self._refreshing = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield HealthPanel(id="health")
        yield SummaryTable(id="summary")
        with Horizontal():
            yield BookTable(VenueTag.DYDX, id="book-dydx")
            yield BookTable(VenueTag.HYPERLIQUID, id="book-hyperliquid")
        yield Input(placeholder="Asset (e.g. ETH), Enter to switch", id="symbol")
        yield Footer()

    async def on_mount(self) -> None:
        self.sub_title = self._symbol
        try:
            self._aggregator = await Aggregator.create(settings=self._settings)
        except PerpViewError as e:
            self.exit(message=f"Could not load venue metadata: {e}")
            return
        await self._switch(self._aggregator, self._symbol)
        self.set_interval(1.0, self._refresh)

    async def _switch(self, aggregator: Aggregator, symbol: str) -> None:
        failures = await aggregator.start_all_market_updates(symbol)
        self._symbol = symbol
        self.sub_title = symbol
        if failures:
            self.query_one(HealthPanel).status = "  ".join(
                f"{tag.display_name}: {err}" for tag, err in failures.items()
            )

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        symbol = event.value.strip().upper()
        event.input.value = ""
        if symbol and symbol != self._symbol and self._aggregator is not None:
            await self._switch(self._aggregator, symbol)

    async def _refresh(self) -> None:
        if self._aggregator is None or self._refreshing:
            return
        self._refreshing = True
        try:
            views = await self._aggregator.compare(self._symbol)
        finally:
            self._refreshing = False
        self.query_one(SummaryTable).show(views)
        for v in views:
            self.query_one(f"#book-{v.venue.value}", BookTable).show(v.book)
        self.query_one(HealthPanel).status = self._health_line(views)

    @staticmethod
    def _health_line(views: list[VenueView]) -> str:
        parts = []
        for v in views:
            st = v.status
            if st is None:
                parts.append(f"[bold]{v.venue.display_name}[/] idle")
                continue
            extra = f"attempt {st.connect_attempts}" if st.connect_attempts else f"{st.messages_applied} msgs"
            parts.append(f"[bold]{v.venue.display_name}[/] {st.state.value} ({extra})")
        if len(views) == 2:
            gap = mid_gap_bps(views[0].book, views[1].book)
            parts.append(f"mid gap {_num(gap, 2)} bps")
        return "  |  ".join(parts)

    async def on_unmount(self) -> None:
        if self._aggregator is not None:
            await self._aggregator.aclose()


def run_tui(settings: Settings, symbol: str) -> None:
    """Entry point: build the app and block until the user quits."""
    PerpViewTUI(settings, symbol).run()
