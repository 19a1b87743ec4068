"""Shared CLI plumbing - aggregator lifecycle, book waiting, error reporting."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, NoReturn

import typer

from perpview.aggregator import Aggregator
from perpview.errors import NotReadyError, PerpViewError, RejectedError
from perpview.models.market import VenueTag
from perpview.models.orderbook import OrderBook
from perpview.venues.gateway import DryRunGateway


@asynccontextmanager
async def open_aggregator(ctx: typer.Context) -> AsyncIterator[Aggregator]:
    settings = ctx.obj["settings"]
    gateway = ctx.obj.setdefault("gateway", DryRunGateway())
    clients = ctx.obj.get("clients")
    async with await Aggregator.create(settings=settings, gateway=gateway, clients=clients) as agg:
        yield agg


async def wait_for_book(agg: Aggregator, tag: VenueTag, symbol: str, timeout: float) -> OrderBook:
    """Start the venue stream for symbol and poll until a book is published."""
    await agg.adapter(tag).start_market_updates(symbol)
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        try:
            return agg.get_exchange_orderbook(tag, symbol)
        except NotReadyError:
            if asyncio.get_running_loop().time() >= deadline:
                raise
            await asyncio.sleep(0.2)


def fail(e: PerpViewError) -> NoReturn:
    if isinstance(e, RejectedError):
        typer.echo(f"Rejected ({e.reason.value}): {e}", err=True)
    else:
        typer.echo(f"Error ({type(e).__name__}): {e}", err=True)
    raise typer.Exit(1)


def fmt(value: Decimal | None, places: int = 4) -> str:
    if value is None:
        return "-"
    return f"{value:,.{places}f}"
