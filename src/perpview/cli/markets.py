"""Markets subcommand: assets, summary, book, leverage."""

from __future__ import annotations

import asyncio

import typer

from perpview.cli.common import fail, fmt, open_aggregator, wait_for_book
from perpview.errors import PerpViewError
from perpview.metrics.live import imbalance, mid_price, spread_bps
from perpview.models.market import VenueTag

app = typer.Typer(help="Market metadata, summaries and live books")


@app.command("assets")
def assets(
    ctx: typer.Context,
    venue: VenueTag | None = typer.Option(None, "--venue", "-v", help="Only this venue"),
) -> None:
    """List tradable assets per venue."""

    async def _run() -> None:
        async with open_aggregator(ctx) as agg:
            for tag, adapter in agg.venues.items():
                if venue is not None and tag is not venue:
                    continue
                symbols = adapter.get_available_assets()
                typer.echo(f"{tag.display_name} ({len(symbols)}): {' '.join(symbols)}")

    try:
        asyncio.run(_run())
    except PerpViewError as e:
        fail(e)


@app.command("summary")
def summary(ctx: typer.Context, symbol: str = typer.Argument(..., help="Asset code, e.g. BTC")) -> None:
    """Mark price, 24h volume, open interest and funding on every venue."""

    async def _run() -> None:
        async with open_aggregator(ctx) as agg:
            for tag in agg.venues:
                try:
                    s = await agg.get_exchange_summary(tag, symbol)
                except PerpViewError as e:
                    typer.echo(f"{tag.display_name:<12} no data ({e})")
                    continue
                typer.echo(
                    f"{tag.display_name:<12} mark {fmt(s.mark_price, 2)}  vol24h {fmt(s.volume_24h, 0)}  "
                    f"OI {fmt(s.open_interest, 2)}  funding {fmt(s.funding_rate, 6)}"
                )

    try:
        asyncio.run(_run())
    except PerpViewError as e:
        fail(e)


@app.command("book")
def book(
    ctx: typer.Context,
    symbol: str = typer.Argument(..., help="Asset code, e.g. BTC"),
    venue: VenueTag = typer.Option(VenueTag.DYDX, "--venue", "-v"),
    depth: int = typer.Option(10, "--depth", "-d", help="Levels per side to print"),
    wait: float = typer.Option(10.0, "--wait", help="Seconds to wait for the first snapshot"),
) -> None:
    """Stream the book until the first snapshot arrives and print the top levels."""

    async def _run() -> None:
        async with open_aggregator(ctx) as agg:
            ob = await wait_for_book(agg, venue, symbol, wait)
            bids, asks = ob.top(depth)
            typer.echo(f"{venue.display_name} {ob.symbol} @ {ob.timestamp_ms}")
            for lev in reversed(asks):
                typer.echo(f"  ask {fmt(lev.price, 2):>14}  {fmt(lev.size):>12}")
            typer.echo(
                f"  --- mid {fmt(mid_price(ob), 2)}  spread {fmt(spread_bps(ob), 2)} bps"
                f"  imbalance {fmt(imbalance(ob), 3)}"
            )
            for lev in bids:
                typer.echo(f"  bid {fmt(lev.price, 2):>14}  {fmt(lev.size):>12}")

    try:
        asyncio.run(_run())
    except PerpViewError as e:
        fail(e)


@app.command("leverage")
def leverage(ctx: typer.Context, symbol: str = typer.Argument(..., help="Asset code, e.g. BTC")) -> None:
    """Max leverage per venue and where the number comes from."""

    async def _run() -> None:
        async with open_aggregator(ctx) as agg:
            for tag in agg.venues:
                info = agg.get_leverage_info(tag, symbol)
                typer.echo(f"{tag.display_name:<12} {info.max_leverage}x ({info.source})")

    try:
        asyncio.run(_run())
    except PerpViewError as e:
        fail(e)
