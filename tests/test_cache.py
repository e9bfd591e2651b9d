"""Tests for the snapshot cache and market types."""

from decimal import Decimal

import pytest

from updown_arb.quotes import Market, MarketSnapshot, Quote, Side, SnapshotCache


def _make_market(cid="sol-cid", label="SOL-15m"):
    return Market.build(cid, label, f"{cid}-up", f"{cid}-down", period_start=900)


def _quote(market, side, ask, seq, observed_at=100.0):
    return Quote(market.token(side), Decimal(ask), seq, observed_at)


class TestMarket:
    def test_build_creates_tokens_for_both_sides(self):
        market = _make_market()
        assert market.up.side is Side.UP
        assert market.down.side is Side.DOWN
        assert market.up.condition_id == "sol-cid"
        assert market.token(Side.DOWN).token_id == "sol-cid-down"

    def test_period_end(self):
        market = _make_market()
        assert market.period_end == 900 + 15 * 60

    def test_side_from_outcome(self):
        assert Side.from_outcome("Up") is Side.UP
        assert Side.from_outcome("down") is Side.DOWN
        assert Side.from_outcome("Maybe") is None


class TestSnapshotCache:
    def test_read_unknown_market_returns_none(self):
        cache = SnapshotCache([_make_market()])
        assert cache.read("other") is None

    def test_read_not_ready_until_both_sides(self):
        market = _make_market()
        cache = SnapshotCache([market])

        assert cache.update("sol-cid", _quote(market, Side.UP, "0.47", 1))
        assert cache.read("sol-cid") is None
        assert cache.peek("sol-cid").up.ask == Decimal("0.47")

        assert cache.update("sol-cid", _quote(market, Side.DOWN, "0.55", 1))
        snapshot = cache.read("sol-cid")
        assert snapshot is not None
        assert snapshot.is_ready
        assert snapshot.version == 2

    def test_update_pair_is_single_replacement(self):
        market = _make_market()
        cache = SnapshotCache([market])

        cache.update_pair("sol-cid", _quote(market, Side.UP, "0.47", 1), _quote(market, Side.DOWN, "0.55", 1))
        snapshot = cache.read("sol-cid")
        assert snapshot.version == 1
        assert snapshot.up.ask == Decimal("0.47")
        assert snapshot.down.ask == Decimal("0.55")

    def test_older_sequence_is_ignored(self):
        market = _make_market()
        cache = SnapshotCache([market])
        cache.update_pair("sol-cid", _quote(market, Side.UP, "0.47", 5), _quote(market, Side.DOWN, "0.55", 5))

        assert not cache.update("sol-cid", _quote(market, Side.UP, "0.30", 4))
        assert not cache.update("sol-cid", _quote(market, Side.UP, "0.30", 5))
        assert cache.read("sol-cid").up.ask == Decimal("0.47")

    def test_readers_keep_their_snapshot(self):
        market = _make_market()
        cache = SnapshotCache([market])
        cache.update_pair("sol-cid", _quote(market, Side.UP, "0.47", 1), _quote(market, Side.DOWN, "0.55", 1))

        held = cache.read("sol-cid")
        cache.update_pair("sol-cid", _quote(market, Side.UP, "0.40", 2), _quote(market, Side.DOWN, "0.61", 2))

        assert held.up.ask == Decimal("0.47")
        assert cache.read("sol-cid").up.ask == Decimal("0.40")
        assert cache.read("sol-cid").version == held.version + 1

    def test_snapshot_is_frozen(self):
        market = _make_market()
        snapshot = MarketSnapshot(market=market)
        with pytest.raises(Exception):
            snapshot.version = 3

    def test_update_unknown_market_is_rejected(self):
        market = _make_market()
        cache = SnapshotCache([market])
        assert not cache.update("other", _quote(market, Side.UP, "0.5", 1))

    def test_track_replaces_markets(self):
        sol = _make_market()
        btc = _make_market("btc-cid", "BTC-15m")
        cache = SnapshotCache([sol])
        cache.update_pair("sol-cid", _quote(sol, Side.UP, "0.47", 1), _quote(sol, Side.DOWN, "0.55", 1))

        cache.track([btc])

        assert cache.read("sol-cid") is None
        assert cache.peek("btc-cid").version == 0


class TestFreshness:
    def test_fresh_within_bound(self):
        market = _make_market()
        snapshot = MarketSnapshot(
            market=market,
            up=_quote(market, Side.UP, "0.47", 1, observed_at=100.0),
            down=_quote(market, Side.DOWN, "0.55", 1, observed_at=101.0),
        )
        assert snapshot.is_fresh(2.0, now=102.0)
        assert not snapshot.is_fresh(1.5, now=102.0)

    def test_missing_side_is_never_fresh(self):
        market = _make_market()
        snapshot = MarketSnapshot(market=market, up=_quote(market, Side.UP, "0.47", 1))
        assert not snapshot.is_fresh(10.0, now=100.0)
