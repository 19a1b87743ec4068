"""perpview - dYdX v4 and Hyperliquid perpetual markets behind one adapter contract."""

__version__ = "0.1.0"
