"""
Cross-market arbitrage detector.
Finds Up/Down token pairs across two markets whose combined ask is below 1.00.
"""

import time
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Callable, Optional

from ..errors import QuoteUnavailable
from ..quotes.cache import MarketSnapshot, SnapshotCache
from ..quotes.models import Market, Quote, Side


ONE = Decimal("1")
SIZE_QUANTUM = Decimal("0.01")

# Fixed evaluation order: (A Up + B Down) before (A Down + B Up)
COMBINATIONS = ((Side.UP, Side.DOWN), (Side.DOWN, Side.UP))


@dataclass(frozen=True)
class Opportunity:
    """
    Cross-market opportunity signal.

    Buying leg_a and leg_b costs combined_cost. Each leg settles at 1.00 or
    0.00, and the strategy bets that at least one of them wins.
    """
    leg_a: Quote
    leg_b: Quote
    combined_cost: Decimal
    profit: Decimal  # 1.00 - combined_cost, per unit
    detected_at: float
    snapshot_versions: tuple[int, int]

    @property
    def key(self) -> tuple:
        """Identity of the quotes this opportunity was computed from."""
        return (
            self.leg_a.token.condition_id,
            self.snapshot_versions[0],
            self.leg_b.token.condition_id,
            self.snapshot_versions[1],
            self.leg_a.token.side.value,
        )

    def units(self, max_position_size: Decimal) -> Decimal:
        """Pairs affordable with max_position_size, rounded down to 0.01."""
        return (max_position_size / self.combined_cost).quantize(SIZE_QUANTUM, rounding=ROUND_DOWN)

    def describe(self) -> str:
        a, b = self.leg_a.token, self.leg_b.token
        return f"{a.condition_id[:10]}:{a.side.value}+{b.condition_id[:10]}:{b.side.value}"


def check_combination(
    quote_a: Quote,
    quote_b: Quote,
    min_profit_threshold: Decimal,
    min_leg_price: Optional[Decimal] = None,
) -> Optional[Decimal]:
    """
    Combined cost of a pair if it qualifies, None otherwise.

    Qualifies when cost < 1.00 and 1.00 - cost >= min_profit_threshold.
    """
    if min_leg_price is not None and quote_a.ask < min_leg_price and quote_b.ask < min_leg_price:
        return None

    combined = quote_a.ask + quote_b.ask
    if combined >= ONE:
        return None
    if ONE - combined < min_profit_threshold:
        return None
    return combined


def best_opportunity(
    snapshot_a: MarketSnapshot,
    snapshot_b: MarketSnapshot,
    min_profit_threshold: Decimal,
    min_leg_price: Optional[Decimal] = None,
    now: Optional[float] = None,
) -> Optional[Opportunity]:
    """
    Best qualifying cross-combination of two ready snapshots.
    Strictly higher profit wins; ties keep the earlier combination.
    """
    best: Optional[Opportunity] = None

    for side_a, side_b in COMBINATIONS:
        quote_a = snapshot_a.quote(side_a)
        quote_b = snapshot_b.quote(side_b)
        if quote_a is None or quote_b is None:
            continue

        combined = check_combination(quote_a, quote_b, min_profit_threshold, min_leg_price)
        if combined is None:
            continue

        profit = ONE - combined
        if best is None or profit > best.profit:
            best = Opportunity(
                leg_a=quote_a,
                leg_b=quote_b,
                combined_cost=combined,
                profit=profit,
                detected_at=now if now is not None else time.time(),
                snapshot_versions=(snapshot_a.version, snapshot_b.version),
            )

    return best


class CrossMarketDetector:
    """
    Evaluates the two tracked markets on every cache update.

    Same-market pairs are never considered: both sides of one market
    cannot both resolve true.
    """

    def __init__(
        self,
        cache: SnapshotCache,
        market_a: Market,
        market_b: Market,
        min_profit_threshold: Decimal,
        staleness_seconds: float,
        min_leg_price: Optional[Decimal] = None,
        clock: Callable[[], float] = time.time,
    ):
        if market_a.condition_id == market_b.condition_id:
            raise ValueError("Cross-market detection needs two distinct markets")
        self.cache = cache
        self.market_a = market_a
        self.market_b = market_b
        self.min_profit_threshold = min_profit_threshold
        self.staleness_seconds = staleness_seconds
        self.min_leg_price = min_leg_price
        self.clock = clock

        self.last_skip_reason: Optional[str] = None

    def _fresh_snapshot(self, market: Market, now: float) -> MarketSnapshot:
        snapshot = self.cache.read(market.condition_id)
        if snapshot is None:
            raise QuoteUnavailable(f"{market.label} not ready")
        if not snapshot.is_fresh(self.staleness_seconds, now):
            raise QuoteUnavailable(f"{market.label} quotes stale")
        return snapshot

    def evaluate(self) -> Optional[Opportunity]:
        """
        Best opportunity from the current snapshots.
        Returns None when nothing qualifies or a snapshot is missing/stale;
        last_skip_reason then says which.
        """
        now = self.clock()
        try:
            snapshot_a = self._fresh_snapshot(self.market_a, now)
            snapshot_b = self._fresh_snapshot(self.market_b, now)
        except QuoteUnavailable as e:
            self.last_skip_reason = str(e)
            return None

        self.last_skip_reason = None
        opportunity = best_opportunity(
            snapshot_a,
            snapshot_b,
            self.min_profit_threshold,
            self.min_leg_price,
            now,
        )
        return opportunity
