"""Derived display metrics over a canonical OrderBook - spread, mid, imbalance, depth."""

from __future__ import annotations

from decimal import Decimal

from perpview.models.orderbook import OrderBook


def mid_price(book: OrderBook) -> Decimal | None:
    if book.best_bid is None or book.best_ask is None:
        return None
    return (book.best_bid.price + book.best_ask.price) / 2


def spread_absolute(book: OrderBook) -> Decimal | None:
    """Absolute spread (best_ask - best_bid)."""
    if book.best_bid is None or book.best_ask is None:
        return None
    return book.best_ask.price - book.best_bid.price


def spread_bps(book: OrderBook) -> Decimal | None:
    """Spread in basis points of mid."""
    mid = mid_price(book)
    sp = spread_absolute(book)
    if mid is not None and sp is not None and mid > 0:
        return sp / mid * 10000
    return None


def imbalance(book: OrderBook, levels: int = 5) -> Decimal | None:
    """(bid_volume - ask_volume) / (bid_volume + ask_volume) over the top N levels. [-1, 1]."""
    bids, asks = book.top(levels)
    bid_vol = sum((lev.size for lev in bids), Decimal(0))
    ask_vol = sum((lev.size for lev in asks), Decimal(0))
    total = bid_vol + ask_vol
    if total == 0:
        return None
    return (bid_vol - ask_vol) / total


def depth_usd(book: OrderBook, levels: int = 5) -> tuple[Decimal, Decimal]:
    """Notional resting in the top N levels, (bids, asks)."""
    bids, asks = book.top(levels)
    return (
        sum((lev.price * lev.size for lev in bids), Decimal(0)),
        sum((lev.price * lev.size for lev in asks), Decimal(0)),
    )


def mid_gap_bps(a: OrderBook, b: OrderBook) -> Decimal | None:
    """Difference between two venues' mids, in bps of the first."""
    mid_a, mid_b = mid_price(a), mid_price(b)
    if mid_a is None or mid_b is None or mid_a == 0:
        return None
    return (mid_b - mid_a) / mid_a * 10000
