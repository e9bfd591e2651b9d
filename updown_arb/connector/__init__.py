"""Venue connectors: Polymarket REST client and simulation venue."""

from .auth import AuthManager
from .rest_client import PolymarketRestClient
from .simulated import SimulatedVenue
from .venue import OrderHandle, OrderSide, OrderStatus, Venue

__all__ = [
    "AuthManager",
    "PolymarketRestClient",
    "SimulatedVenue",
    "OrderHandle",
    "OrderSide",
    "OrderStatus",
    "Venue",
]
