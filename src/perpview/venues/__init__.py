"""Venue adapters, the subscription supervisor and the order gateway contract."""

from perpview.venues.base import VenueAdapter
from perpview.venues.gateway import DryRunGateway, OrderGateway
from perpview.venues.supervisor import SessionStatus, SubscriptionSupervisor, SupervisorState

__all__ = [
    "DryRunGateway",
    "OrderGateway",
    "SessionStatus",
    "SubscriptionSupervisor",
    "SupervisorState",
    "VenueAdapter",
]
