"""dYdX v4: indexer REST + websocket orderbook diff feed."""

from perpview.venues.dydx.adapter import DydxAdapter
from perpview.venues.dydx.feed import DydxFeed
from perpview.venues.dydx.indexer import IndexerClient

__all__ = ["DydxAdapter", "DydxFeed", "IndexerClient"]
