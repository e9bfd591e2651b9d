"""
Latest-quote cache for the tracked markets.
Each write swaps in a whole new immutable snapshot, so readers never
see a half-updated Up/Down pair and never wait on a writer.
"""

import time
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from .models import Market, Quote, Side


@dataclass(frozen=True)
class MarketSnapshot:
    """Up/Down quotes for one market. Replaced, never mutated."""
    market: Market
    up: Optional[Quote] = None
    down: Optional[Quote] = None
    version: int = 0

    @property
    def is_ready(self) -> bool:
        return self.up is not None and self.down is not None

    def quote(self, side: Side) -> Optional[Quote]:
        return self.up if side is Side.UP else self.down

    def is_fresh(self, staleness_seconds: float, now: Optional[float] = None) -> bool:
        """Both quotes present and no older than the staleness bound."""
        if not self.is_ready:
            return False
        now = now if now is not None else time.time()
        return (
            self.up.age_seconds(now) <= staleness_seconds
            and self.down.age_seconds(now) <= staleness_seconds
        )


def _newer(current: Optional[Quote], candidate: Optional[Quote]) -> bool:
    if candidate is None:
        return False
    return current is None or candidate.sequence > current.sequence


class SnapshotCache:
    """
    Holds the latest snapshot per market.

    Each market has a single writer (its poller); the evaluator is the
    reader. Assigning a dict entry is atomic, so no lock is needed.
    """

    def __init__(self, markets: Iterable[Market] = ()):
        self._snapshots: dict[str, MarketSnapshot] = {}
        self.track(markets)

    def track(self, markets: Iterable[Market]) -> None:
        """Replace the tracked market set, dropping quotes of old markets."""
        self._snapshots = {m.condition_id: MarketSnapshot(market=m) for m in markets}

    def update(self, market_id: str, quote: Quote) -> bool:
        """
        Store a quote for one token if its sequence is newer.
        Returns True when the snapshot was replaced.
        """
        if quote.token.side is Side.UP:
            return self.update_pair(market_id, quote, None)
        return self.update_pair(market_id, None, quote)

    def update_pair(
        self,
        market_id: str,
        up: Optional[Quote],
        down: Optional[Quote],
    ) -> bool:
        """Store both sides in a single swap, each guarded by its sequence."""
        current = self._snapshots.get(market_id)
        if current is None:
            return False

        changes = {}
        if _newer(current.up, up):
            changes["up"] = up
        if _newer(current.down, down):
            changes["down"] = down
        if not changes:
            return False

        self._snapshots[market_id] = replace(current, version=current.version + 1, **changes)
        return True

    def read(self, market_id: str) -> Optional[MarketSnapshot]:
        """Latest snapshot, or None when the market is unknown or not ready."""
        snapshot = self._snapshots.get(market_id)
        if snapshot is None or not snapshot.is_ready:
            return None
        return snapshot

    def peek(self, market_id: str) -> Optional[MarketSnapshot]:
        """Latest snapshot even if a side is still missing."""
        return self._snapshots.get(market_id)
