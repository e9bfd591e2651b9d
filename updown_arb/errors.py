"""
Exception taxonomy for the cross-market arbitrage bot.
Venue errors come from the exchange adapters; the rest describe
how a detection or execution cycle failed.
"""

from typing import Optional


class ArbBotError(Exception):
    """Base class for all bot errors."""


# === Venue errors ===

class VenueError(ArbBotError):
    """The venue rejected or failed a request."""


class VenueTimeout(VenueError):
    """A venue request did not complete in time."""


class RateLimited(VenueError):
    """The venue answered 429."""


class MarketNotFound(VenueError):
    """No active market matches the request."""


# === Cycle errors ===

class QuoteUnavailable(ArbBotError):
    """A snapshot is missing a side or is older than the staleness bound."""


class SubmissionFailed(ArbBotError):
    """An order leg errored or timed out before acknowledgment."""

    def __init__(self, leg: str, reason: str):
        super().__init__(f"{leg} submission failed: {reason}")
        self.leg = leg
        self.reason = reason


class FillTimeout(ArbBotError):
    """Acknowledged orders did not resolve within the fill wait."""


class NakedLegExposure(ArbBotError):
    """Exactly one leg of a pair filled."""

    def __init__(self, trade_id: str, token_id: str, size: str, flatten_error: Optional[str] = None):
        super().__init__(f"Naked exposure on trade {trade_id}: {size} of {token_id}")
        self.trade_id = trade_id
        self.token_id = token_id
        self.size = size
        self.flatten_error = flatten_error
