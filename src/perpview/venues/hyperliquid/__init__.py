"""Hyperliquid: /info REST + typed l2Book websocket stream."""

from perpview.venues.hyperliquid.adapter import HyperliquidAdapter
from perpview.venues.hyperliquid.feed import HyperliquidFeed
from perpview.venues.hyperliquid.info import InfoClient
from perpview.venues.hyperliquid.stream import HyperliquidStream, L2BookMessage

__all__ = ["HyperliquidAdapter", "HyperliquidFeed", "HyperliquidStream", "InfoClient", "L2BookMessage"]
