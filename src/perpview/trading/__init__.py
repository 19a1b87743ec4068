"""Order normalization (USD notional to venue size/price)."""

from perpview.trading.normalizer import USD_QUANTUM, OrderNormalizer, round_price, round_size

__all__ = ["USD_QUANTUM", "OrderNormalizer", "round_price", "round_size"]
