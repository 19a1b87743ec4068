"""Incremental L2 book reconstruction."""

from perpview.orderbook.engine import OrderBookEngine

__all__ = ["OrderBookEngine"]
