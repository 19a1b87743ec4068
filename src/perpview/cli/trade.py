"""Trade subcommand: place, close, cancel. Orders go through the dry-run gateway."""

from __future__ import annotations

import asyncio
from decimal import Decimal, InvalidOperation

import typer

from perpview.cli.common import fail, fmt, open_aggregator, wait_for_book
from perpview.errors import PerpViewError
from perpview.models.market import VenueTag
from perpview.models.trade import OrderKind, Side, TradeRequest, VenueReceipt

app = typer.Typer(help="Place, close and cancel orders (dry run)")


def _print_receipt(receipt: VenueReceipt) -> None:
    raw = receipt.raw
    typer.echo(f"{receipt.venue.display_name} order {receipt.order_id} [{receipt.status}]")
    if raw:
        typer.echo(
            f"  {raw.get('side')} {raw.get('size')} {raw.get('venue_symbol')} @ {raw.get('price')}"
            f"  {raw.get('time_in_force')}  reduce_only={raw.get('reduce_only')}"
        )


@app.command("place")
def place(
    ctx: typer.Context,
    venue: VenueTag = typer.Argument(..., help="dydx or hyperliquid"),
    symbol: str = typer.Argument(..., help="Asset code, e.g. BTC"),
    side: Side = typer.Argument(...),
    usd_value: str = typer.Argument(..., help="Order notional in USD"),
    limit: str | None = typer.Option(None, "--limit", help="Limit price (omit for market)"),
    leverage: int = typer.Option(1, "--leverage", "-l", min=1),
    cross: bool | None = typer.Option(None, "--cross/--isolated", help="Margin mode for the leverage update"),
    reduce_only: bool = typer.Option(False, "--reduce-only"),
    wait: float = typer.Option(10.0, "--wait", help="Seconds to wait for a live book"),
) -> None:
    """Size a USD order against the live book and submit it."""
    try:
        request = TradeRequest(
            asset=symbol,
            side=side,
            kind=OrderKind.LIMIT if limit is not None else OrderKind.MARKET,
            usd_value=Decimal(usd_value),
            limit_price=Decimal(limit) if limit is not None else None,
            leverage=leverage,
            cross_margin=cross,
            reduce_only=reduce_only,
        )
    except (ValueError, InvalidOperation) as e:
        typer.echo(f"Invalid order: {e}", err=True)
        raise typer.Exit(2)

    async def _run() -> None:
        async with open_aggregator(ctx) as agg:
            if request.kind is OrderKind.MARKET:
                ob = await wait_for_book(agg, venue, symbol, wait)
                bid = ob.best_bid.price if ob.best_bid else None
                ask = ob.best_ask.price if ob.best_ask else None
                typer.echo(f"Top of book: bid {fmt(bid, 2)} / ask {fmt(ask, 2)}")
            _print_receipt(await agg.place_trade(venue, request))

    try:
        asyncio.run(_run())
    except PerpViewError as e:
        fail(e)


@app.command("close")
def close(
    ctx: typer.Context,
    venue: VenueTag = typer.Argument(...),
    symbol: str = typer.Argument(...),
    size: str = typer.Argument(..., help="Signed position size (negative for shorts)"),
    wait: float = typer.Option(10.0, "--wait"),
) -> None:
    """Close a position with a reduce-only market order."""
    try:
        signed_size = Decimal(size)
    except InvalidOperation:
        typer.echo(f"Invalid size: {size}", err=True)
        raise typer.Exit(2)

    async def _run() -> None:
        async with open_aggregator(ctx) as agg:
            await wait_for_book(agg, venue, symbol, wait)
            _print_receipt(await agg.close_position(venue, symbol, signed_size))

    try:
        asyncio.run(_run())
    except PerpViewError as e:
        fail(e)


@app.command("cancel")
def cancel(
    ctx: typer.Context,
    venue: VenueTag = typer.Argument(...),
    order_id: str = typer.Argument(..., help="Order id as shown by 'perpview account orders'"),
) -> None:
    """Cancel a resting order."""

    async def _run() -> None:
        async with open_aggregator(ctx) as agg:
            await agg.cancel_order(venue, order_id)
            typer.echo(f"Cancel sent for {order_id} on {venue.display_name}.")

    try:
        asyncio.run(_run())
    except PerpViewError as e:
        fail(e)
