"""Quotes module: market types, snapshot cache and pollers."""

from .cache import MarketSnapshot, SnapshotCache
from .models import AskPair, Market, Quote, Side, Token
from .poller import QuotePoller

__all__ = [
    "AskPair",
    "Market",
    "MarketSnapshot",
    "Quote",
    "QuotePoller",
    "Side",
    "SnapshotCache",
    "Token",
]
