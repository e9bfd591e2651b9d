"""Tests for the append-only trade ledger and settlement."""

from decimal import Decimal

import pytest

from updown_arb.exec import LegRecord, LegStatus, TradeRecord, TradeState, Transition
from updown_arb.positions import PositionLedger, Settlement
from updown_arb.quotes import Side


def _leg(token_id, condition_id, outcome, price, status=LegStatus.FILLED, size="10"):
    return LegRecord(
        leg_id=f"{token_id}-leg",
        token_id=token_id,
        condition_id=condition_id,
        outcome=outcome,
        price=Decimal(price),
        size=Decimal(size),
        status=status,
        order_id=f"{token_id}-order",
    )


def _record(trade_id="t1", state=TradeState.FILLED, leg_a_status=LegStatus.FILLED,
            leg_b_status=LegStatus.FILLED, key=None, **kwargs):
    return TradeRecord(
        trade_id=trade_id,
        opportunity_key=key or ("sol-cid", 1, "btc-cid", 1, "up"),
        snapshot_versions=(1, 1),
        leg_a=_leg("sol-up", "sol-cid", Side.UP, "0.47", status=leg_a_status),
        leg_b=_leg("btc-down", "btc-cid", Side.DOWN, "0.40", status=leg_b_status),
        state=state,
        units=Decimal("10"),
        combined_cost=Decimal("0.87"),
        created_at=1.0,
        resolved_at=2.0,
        **kwargs,
    )


class TestAppend:
    def test_summary_tracks_filled_trade(self):
        ledger = PositionLedger()
        ledger.append(_record())

        summary = ledger.summary()
        assert summary.trade_count == 1
        assert summary.filled_count == 1
        assert summary.total_committed == Decimal("8.70")
        assert summary.total_expected_profit == Decimal("1.30")

    def test_partial_fill_counts_committed_only(self):
        ledger = PositionLedger()
        ledger.append(_record(state=TradeState.PARTIALLY_FILLED, leg_b_status=LegStatus.CANCELLED))

        summary = ledger.summary()
        assert summary.partial_count == 1
        assert summary.total_committed == Decimal("4.70")
        assert summary.total_expected_profit == 0

    def test_duplicate_trade_id_rejected(self):
        ledger = PositionLedger()
        ledger.append(_record())
        with pytest.raises(ValueError):
            ledger.append(_record())

    def test_has_acted_on(self):
        ledger = PositionLedger()
        key = ("sol-cid", 3, "btc-cid", 4, "down")
        assert not ledger.has_acted_on(key)
        ledger.append(_record(key=key))
        assert ledger.has_acted_on(key)

    def test_summary_is_a_copy(self):
        ledger = PositionLedger()
        summary = ledger.summary()
        ledger.append(_record())
        assert summary.trade_count == 0
        assert ledger.summary().to_dict()["total_committed"] == "8.70"

    def test_transitions_filter_by_trade(self):
        ledger = PositionLedger()
        ledger.record_transition(Transition("t1", TradeState.IDLE, TradeState.SUBMITTING, 1.0))
        ledger.record_transition(Transition("t2", TradeState.IDLE, TradeState.SUBMITTING, 1.5))

        assert len(ledger.transitions()) == 2
        assert [t.trade_id for t in ledger.transitions("t2")] == ["t2"]


class TestSettlement:
    def test_complete_pair_one_winner(self):
        record = _record()
        settlement = Settlement.compute(record, {"sol-cid": Side.UP, "btc-cid": Side.UP}, settled_at=5.0)

        assert settlement.payout == Decimal("10")
        assert settlement.realized_pnl == Decimal("1.30")

    def test_complete_pair_both_winners(self):
        settlement = Settlement.compute(_record(), {"sol-cid": Side.UP, "btc-cid": Side.DOWN})
        assert settlement.payout == Decimal("20")

    def test_complete_pair_no_winner(self):
        settlement = Settlement.compute(_record(), {"sol-cid": Side.DOWN, "btc-cid": Side.UP})
        assert settlement.payout == 0
        assert settlement.realized_pnl == Decimal("-8.70")

    def test_unresolved_market_raises(self):
        with pytest.raises(ValueError):
            Settlement.compute(_record(), {"sol-cid": Side.UP})

    def test_settlement_leaves_trade_untouched(self):
        ledger = PositionLedger()
        record = _record()
        ledger.append(record)
        assert ledger.unsettled() == [record]

        ledger.record_settlement(Settlement.compute(record, {"sol-cid": Side.UP, "btc-cid": Side.UP}))

        assert ledger.get("t1") is record
        assert ledger.unsettled() == []
        assert ledger.summary().settled_count == 1
        assert ledger.summary().total_realized_pnl == Decimal("1.30")
        with pytest.raises(ValueError):
            ledger.record_settlement(Settlement.compute(record, {"sol-cid": Side.UP, "btc-cid": Side.UP}))

    def test_rejected_trade_has_nothing_to_settle(self):
        ledger = PositionLedger()
        ledger.append(_record(
            state=TradeState.REJECTED,
            leg_a_status=LegStatus.CANCELLED,
            leg_b_status=LegStatus.FAILED,
        ))

        assert ledger.unsettled() == []
        assert ledger.net_position() == {}
