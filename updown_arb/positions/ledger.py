"""
Append-only ledger of resolved cross-market trades.
Tracks committed capital, expected and realized P&L, and naked-leg incidents.
"""

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..exec.trade import TradeRecord, TradeState, Transition
from ..quotes.models import Side


@dataclass(frozen=True)
class Settlement:
    """
    Payout of a trade once both markets resolved.

    Each filled leg pays 1.00 per unit if its side won. A complete pair
    therefore pays 0, 1 or 2 per unit.
    """
    trade_id: str
    payout: Decimal
    realized_pnl: Decimal
    winners: tuple[tuple[str, str], ...]  # (condition_id, winning side)
    settled_at: float
    redeem_order_ids: tuple[str, ...] = ()
    redeem_errors: tuple[str, ...] = ()

    @classmethod
    def compute(
        cls,
        record: TradeRecord,
        winners: dict[str, Side],
        settled_at: Optional[float] = None,
    ) -> "Settlement":
        payout = Decimal("0")
        for leg in record.legs:
            if not leg.filled:
                continue
            winner = winners.get(leg.condition_id)
            if winner is None:
                raise ValueError(f"Market {leg.condition_id} has not resolved")
            if winner is leg.outcome:
                payout += leg.size

        return cls(
            trade_id=record.trade_id,
            payout=payout,
            realized_pnl=payout - record.committed_capital,
            winners=tuple(sorted((cid, side.value) for cid, side in winners.items())),
            settled_at=settled_at if settled_at is not None else time.time(),
        )


@dataclass
class LedgerSummary:
    """Running aggregate over the ledger."""
    trade_count: int = 0
    filled_count: int = 0
    partial_count: int = 0
    rejected_count: int = 0
    cancelled_count: int = 0
    settled_count: int = 0
    total_committed: Decimal = Decimal("0")
    total_expected_profit: Decimal = Decimal("0")
    total_realized_pnl: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return {
            "trade_count": self.trade_count,
            "filled_count": self.filled_count,
            "partial_count": self.partial_count,
            "rejected_count": self.rejected_count,
            "cancelled_count": self.cancelled_count,
            "settled_count": self.settled_count,
            "total_committed": str(self.total_committed),
            "total_expected_profit": str(self.total_expected_profit),
            "total_realized_pnl": str(self.total_realized_pnl),
        }


_STATE_COUNTERS = {
    TradeState.FILLED: "filled_count",
    TradeState.PARTIALLY_FILLED: "partial_count",
    TradeState.REJECTED: "rejected_count",
    TradeState.CANCELLED: "cancelled_count",
}


class PositionLedger:
    """
    Append-only record of trades.

    Responsibilities:
    - Keep every state transition and every resolved trade
    - Maintain running aggregates for reporting
    - Answer whether an opportunity was already acted on
    - Record settlements without touching trade records
    """

    def __init__(self):
        self._trades: list[TradeRecord] = []
        self._by_id: dict[str, TradeRecord] = {}
        self._transitions: list[Transition] = []
        self._settlements: dict[str, Settlement] = {}
        self._acted_on: set[tuple] = set()
        self._summary = LedgerSummary()

    # === Writes (execution coordinator and settlement only) ===

    def record_transition(self, transition: Transition) -> None:
        self._transitions.append(transition)

    def append(self, record: TradeRecord) -> None:
        """Append a resolved trade."""
        if not record.state.is_terminal:
            raise ValueError(f"Trade {record.trade_id} is not resolved")
        if record.trade_id in self._by_id:
            raise ValueError(f"Trade {record.trade_id} already recorded")

        self._trades.append(record)
        self._by_id[record.trade_id] = record
        self._acted_on.add(record.opportunity_key)

        summary = self._summary
        summary.trade_count += 1
        counter = _STATE_COUNTERS[record.state]
        setattr(summary, counter, getattr(summary, counter) + 1)
        summary.total_committed += record.committed_capital
        summary.total_expected_profit += record.expected_profit

    def record_settlement(self, settlement: Settlement) -> None:
        if settlement.trade_id not in self._by_id:
            raise ValueError(f"Unknown trade {settlement.trade_id}")
        if settlement.trade_id in self._settlements:
            raise ValueError(f"Trade {settlement.trade_id} already settled")

        self._settlements[settlement.trade_id] = settlement
        self._summary.settled_count += 1
        self._summary.total_realized_pnl += settlement.realized_pnl

    # === Read-only queries ===

    def has_acted_on(self, opportunity_key: tuple) -> bool:
        return opportunity_key in self._acted_on

    def get(self, trade_id: str) -> Optional[TradeRecord]:
        return self._by_id.get(trade_id)

    def trades(self) -> list[TradeRecord]:
        return list(self._trades)

    def transitions(self, trade_id: Optional[str] = None) -> list[Transition]:
        if trade_id is None:
            return list(self._transitions)
        return [t for t in self._transitions if t.trade_id == trade_id]

    def settlement(self, trade_id: str) -> Optional[Settlement]:
        return self._settlements.get(trade_id)

    def unsettled(self) -> list[TradeRecord]:
        """Trades still holding tokens that await market resolution."""
        return [
            r for r in self._trades
            if r.net_position
            and r.flatten_order_id is None
            and r.trade_id not in self._settlements
        ]

    def net_position(self) -> dict[str, Decimal]:
        """Token id -> units held across unsettled trades."""
        totals: dict[str, Decimal] = {}
        for record in self.unsettled():
            for token_id, size in record.net_position.items():
                totals[token_id] = totals.get(token_id, Decimal("0")) + size
        return totals

    def summary(self) -> LedgerSummary:
        """Copy of the running aggregate."""
        s = self._summary
        return LedgerSummary(**{name: getattr(s, name) for name in s.__dataclass_fields__})

    def __len__(self) -> int:
        return len(self._trades)
