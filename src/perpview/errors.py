"""Error kinds shared by adapters, the supervisor, the normalizer and the aggregator."""

from __future__ import annotations

from enum import Enum


class PerpViewError(Exception):
    """Base class for all perpview errors."""


class NotReadyError(PerpViewError):
    """Data not received yet (no snapshot, empty book side). Retry shortly."""


class NotFoundError(PerpViewError):
    """Symbol or resource unknown to the venue."""


class TransientError(PerpViewError):
    """Network blip, timeout, rate limit or 5xx. Safe to retry."""


class ConfigError(PerpViewError):
    """Misconfiguration; fatal to the affected adapter."""


class RejectReason(str, Enum):
    TOO_SMALL = "too_small"
    BELOW_MINIMUM = "below_minimum"
    INVALID_PRICE = "invalid_price"
    MARGIN = "margin"
    VENUE = "venue"


class RejectedError(PerpViewError):
    """The order was refused (locally or by the venue). Never retried."""

    def __init__(self, reason: RejectReason, message: str = "") -> None:
        self.reason = reason
        super().__init__(message or reason.value)


class InsufficientFundsError(RejectedError):
    """Rejected for lack of collateral."""

    def __init__(self, message: str = "insufficient funds") -> None:
        super().__init__(RejectReason.MARGIN, message)


class FeedSchemaError(PerpViewError):
    """A websocket message did not match the schema the feed parser accepts."""


class CrossedBookError(PerpViewError):
    """Best bid >= best ask after applying an update."""
