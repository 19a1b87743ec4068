"""Account subcommand: positions and open orders by public address."""

from __future__ import annotations

import asyncio

import typer

from perpview.cli.common import fail, fmt, open_aggregator
from perpview.errors import PerpViewError
from perpview.models.market import VenueTag

app = typer.Typer(help="Open positions and resting orders")


def _addresses(dydx_address: str | None, hl_address: str | None) -> dict[VenueTag, str]:
    out = {}
    if dydx_address:
        out[VenueTag.DYDX] = dydx_address
    if hl_address:
        out[VenueTag.HYPERLIQUID] = hl_address
    if not out:
        typer.echo("Pass --dydx-address and/or --hl-address.", err=True)
        raise typer.Exit(2)
    return out


@app.command("positions")
def positions(
    ctx: typer.Context,
    dydx_address: str | None = typer.Option(None, "--dydx-address", help="dydx1... address"),
    hl_address: str | None = typer.Option(None, "--hl-address", help="0x... address"),
) -> None:
    """Open positions."""
    addresses = _addresses(dydx_address, hl_address)

    async def _run() -> None:
        async with open_aggregator(ctx) as agg:
            for tag, address in addresses.items():
                rows = await agg.get_positions(tag, address)
                typer.echo(f"{tag.display_name}: {len(rows)} open")
                for p in rows:
                    typer.echo(
                        f"  {p.symbol:<8} {fmt(p.size):>12}  entry {fmt(p.entry_price, 2)}"
                        f"  liq {fmt(p.liquidation_price, 2)}  uPnL {fmt(p.unrealized_pnl, 2)}"
                    )

    try:
        asyncio.run(_run())
    except PerpViewError as e:
        fail(e)


@app.command("orders")
def orders(
    ctx: typer.Context,
    dydx_address: str | None = typer.Option(None, "--dydx-address"),
    hl_address: str | None = typer.Option(None, "--hl-address"),
) -> None:
    """Resting orders, with the id 'trade cancel' expects."""
    addresses = _addresses(dydx_address, hl_address)

    async def _run() -> None:
        async with open_aggregator(ctx) as agg:
            for tag, address in addresses.items():
                rows = await agg.get_open_orders(tag, address)
                typer.echo(f"{tag.display_name}: {len(rows)} open")
                for o in rows:
                    typer.echo(
                        f"  {o.order_id:<28} {o.symbol:<8} {o.side:<4} {fmt(o.size):>12}"
                        f" @ {fmt(o.price, 2)}  (${fmt(o.usd_value, 2)})"
                    )

    try:
        asyncio.run(_run())
    except PerpViewError as e:
        fail(e)
