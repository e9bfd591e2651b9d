"""
Market, token and quote types for the two tracked Up/Down markets.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional


class Side(Enum):
    """Outcome side of a binary Up/Down market."""
    UP = "up"
    DOWN = "down"

    @classmethod
    def from_outcome(cls, outcome: str) -> Optional["Side"]:
        """Map an outcome label ("Up", "Down", "1", "0") to a side."""
        label = outcome.strip().upper()
        if "UP" in label or label == "1":
            return cls.UP
        if "DOWN" in label or label == "0":
            return cls.DOWN
        return None


@dataclass(frozen=True)
class Token:
    """Outcome token. Carries no price state."""
    token_id: str
    condition_id: str
    side: Side


@dataclass(frozen=True)
class Market:
    """
    A resolved Up/Down market.

    Immutable: a new 15-minute period produces a new Market rather than
    mutating this one.
    """
    condition_id: str
    label: str  # e.g. "SOL-15m"
    up: Token
    down: Token
    asset: str = ""
    slug: str = ""
    window_minutes: int = 15
    period_start: int = 0  # epoch seconds

    def token(self, side: Side) -> Token:
        return self.up if side is Side.UP else self.down

    @property
    def period_end(self) -> int:
        return self.period_start + self.window_minutes * 60

    @classmethod
    def build(
        cls,
        condition_id: str,
        label: str,
        up_token_id: str,
        down_token_id: str,
        **kwargs,
    ) -> "Market":
        """Build a market and its two tokens."""
        return cls(
            condition_id=condition_id,
            label=label,
            up=Token(up_token_id, condition_id, Side.UP),
            down=Token(down_token_id, condition_id, Side.DOWN),
            **kwargs,
        )


@dataclass(frozen=True)
class AskPair:
    """Best asks for both tokens of one market, as returned by a quote source."""
    up_ask: Decimal
    down_ask: Decimal


@dataclass(frozen=True)
class Quote:
    """Best ask for one token at a point in time."""
    token: Token
    ask: Decimal
    sequence: int
    observed_at: float = field(default_factory=time.time)

    def age_seconds(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.observed_at
