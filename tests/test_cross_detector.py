"""Tests for cross-market opportunity detection."""

from decimal import Decimal

import pytest

from updown_arb.quotes import Market, Quote, Side, SnapshotCache
from updown_arb.signals import CrossMarketDetector, best_opportunity, check_combination

NOW = 1_000.0


def _make_markets():
    sol = Market.build("sol-cid", "SOL-15m", "sol-up", "sol-down", asset="sol")
    btc = Market.build("btc-cid", "BTC-15m", "btc-up", "btc-down", asset="btc")
    return sol, btc


def _fill(cache, market, up, down, seq=1, observed_at=NOW):
    cache.update_pair(
        market.condition_id,
        Quote(market.up, Decimal(up), seq, observed_at),
        Quote(market.down, Decimal(down), seq, observed_at),
    )


def _detector(threshold="0.01", staleness=2.0, min_leg_price=None):
    sol, btc = _make_markets()
    cache = SnapshotCache([sol, btc])
    detector = CrossMarketDetector(
        cache,
        sol,
        btc,
        min_profit_threshold=Decimal(threshold),
        staleness_seconds=staleness,
        min_leg_price=Decimal(min_leg_price) if min_leg_price else None,
        clock=lambda: NOW,
    )
    return detector, cache, sol, btc


class TestCheckCombination:
    def test_qualifies_below_one(self):
        sol, btc = _make_markets()
        a = Quote(sol.up, Decimal("0.47"), 1)
        b = Quote(btc.down, Decimal("0.40"), 1)
        assert check_combination(a, b, Decimal("0.01")) == Decimal("0.87")

    def test_exactly_one_never_qualifies(self):
        sol, btc = _make_markets()
        a = Quote(sol.up, Decimal("0.50"), 1)
        b = Quote(btc.down, Decimal("0.50"), 1)
        assert check_combination(a, b, Decimal("0")) is None

    def test_below_threshold(self):
        sol, btc = _make_markets()
        a = Quote(sol.up, Decimal("0.50"), 1)
        b = Quote(btc.down, Decimal("0.495"), 1)
        assert check_combination(a, b, Decimal("0.01")) is None

    def test_profit_equal_to_threshold_qualifies(self):
        sol, btc = _make_markets()
        a = Quote(sol.up, Decimal("0.50"), 1)
        b = Quote(btc.down, Decimal("0.49"), 1)
        assert check_combination(a, b, Decimal("0.01")) == Decimal("0.99")

    def test_min_leg_price_skips_cheap_pairs(self):
        sol, btc = _make_markets()
        a = Quote(sol.up, Decimal("0.47"), 1)
        b = Quote(btc.down, Decimal("0.40"), 1)
        assert check_combination(a, b, Decimal("0.01"), Decimal("0.6")) is None


class TestDetector:
    def test_sol_up_btc_down_scenario(self):
        """SOL Up 0.47 + BTC Down 0.40 -> cost 0.87, profit 0.13."""
        detector, cache, sol, btc = _detector()
        _fill(cache, sol, up="0.47", down="0.60")
        _fill(cache, btc, up="0.65", down="0.40")

        opp = detector.evaluate()

        assert opp is not None
        assert opp.leg_a.token == sol.up
        assert opp.leg_b.token == btc.down
        assert opp.combined_cost == Decimal("0.87")
        assert opp.profit == Decimal("0.13")

    def test_only_down_up_qualifies(self):
        detector, cache, sol, btc = _detector()
        _fill(cache, sol, up="0.55", down="0.44")
        _fill(cache, btc, up="0.50", down="0.46")

        opp = detector.evaluate()

        assert opp is not None
        assert opp.leg_a.token == sol.down
        assert opp.leg_b.token == btc.up
        assert opp.combined_cost == Decimal("0.94")
        assert opp.profit == Decimal("0.06")

    def test_higher_profit_combination_wins(self):
        detector, cache, sol, btc = _detector()
        _fill(cache, sol, up="0.45", down="0.30")
        _fill(cache, btc, up="0.40", down="0.50")

        opp = detector.evaluate()

        # Up+Down = 0.95, Down+Up = 0.70
        assert opp.leg_a.token.side is Side.DOWN
        assert opp.combined_cost == Decimal("0.70")

    def test_tie_keeps_first_combination(self):
        detector, cache, sol, btc = _detector()
        _fill(cache, sol, up="0.40", down="0.45")
        _fill(cache, btc, up="0.45", down="0.50")

        opp = detector.evaluate()

        assert opp.combined_cost == Decimal("0.90")
        assert opp.leg_a.token == sol.up
        assert opp.leg_b.token == btc.down

    def test_no_opportunity_at_or_above_one(self):
        detector, cache, sol, btc = _detector(threshold="0")
        _fill(cache, sol, up="0.50", down="0.50")
        _fill(cache, btc, up="0.50", down="0.50")

        assert detector.evaluate() is None
        assert detector.last_skip_reason is None

    def test_missing_snapshot_is_skipped(self):
        detector, cache, sol, btc = _detector()
        _fill(cache, sol, up="0.30", down="0.30")

        assert detector.evaluate() is None
        assert "BTC-15m" in detector.last_skip_reason

    def test_stale_quotes_are_skipped(self):
        detector, cache, sol, btc = _detector(staleness=2.0)
        _fill(cache, sol, up="0.30", down="0.30", observed_at=NOW - 5)
        _fill(cache, btc, up="0.30", down="0.30")

        assert detector.evaluate() is None
        assert "stale" in detector.last_skip_reason

    def test_key_tracks_snapshot_versions(self):
        detector, cache, sol, btc = _detector()
        _fill(cache, sol, up="0.47", down="0.60")
        _fill(cache, btc, up="0.65", down="0.40")
        first = detector.evaluate()

        _fill(cache, sol, up="0.47", down="0.60", seq=2)
        second = detector.evaluate()

        assert first.key != second.key
        assert second.snapshot_versions == (first.snapshot_versions[0] + 1, first.snapshot_versions[1])

    def test_same_market_rejected(self):
        sol, _ = _make_markets()
        with pytest.raises(ValueError):
            CrossMarketDetector(SnapshotCache([sol]), sol, sol, Decimal("0.01"), 2.0)


class TestSizing:
    def test_units_round_down(self):
        detector, cache, sol, btc = _detector()
        _fill(cache, sol, up="0.47", down="0.60")
        _fill(cache, btc, up="0.65", down="0.40")
        opp = detector.evaluate()

        # 100 / 0.87 = 114.942...
        assert opp.units(Decimal("100")) == Decimal("114.94")
        assert opp.profit == Decimal("0.13")

    def test_best_opportunity_with_snapshots(self):
        _, cache, sol, btc = _detector()
        _fill(cache, sol, up="0.47", down="0.60")
        _fill(cache, btc, up="0.65", down="0.40")

        opp = best_opportunity(cache.read("sol-cid"), cache.read("btc-cid"), Decimal("0.01"), now=NOW)

        assert opp.detected_at == NOW
        assert opp.combined_cost == Decimal("0.87")
