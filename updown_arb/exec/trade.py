"""
Trade state for paired cross-market execution.

An ActiveTrade is mutable and owned by the coordinator while in flight.
Resolving it produces a frozen TradeRecord, which is what the ledger keeps.
"""

import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from ..connector.venue import OrderHandle, OrderSide
from ..quotes.models import Side, Token
from ..signals.cross_detector import Opportunity


class TradeState(Enum):
    """Execution state of a paired trade."""
    IDLE = "idle"
    SUBMITTING = "submitting"
    AWAITING_FILLS = "awaiting_fills"
    FILLED = "filled"
    PARTIALLY_FILLED = "partially_filled"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    TradeState.FILLED,
    TradeState.PARTIALLY_FILLED,
    TradeState.REJECTED,
    TradeState.CANCELLED,
})

ALLOWED_TRANSITIONS = {
    TradeState.IDLE: {TradeState.SUBMITTING},
    TradeState.SUBMITTING: {TradeState.AWAITING_FILLS} | TERMINAL_STATES,
    TradeState.AWAITING_FILLS: set(TERMINAL_STATES),
}


class LegStatus(Enum):
    """Status of a single leg."""
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    FILLED = "filled"
    PARTIAL = "partial"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def has_fill(self) -> bool:
        return self in (LegStatus.FILLED, LegStatus.PARTIAL)


@dataclass
class LegOrder:
    """Single leg of a paired trade."""
    leg_id: str
    token: Token
    price: Decimal
    size: Decimal
    side: OrderSide = OrderSide.BUY
    handle: Optional[OrderHandle] = None
    status: LegStatus = LegStatus.PENDING
    error: Optional[str] = None
    submitted_at: Optional[float] = None
    filled_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        """Acknowledged and not yet filled or killed."""
        return self.handle is not None and self.status in (LegStatus.ACKNOWLEDGED, LegStatus.PARTIAL)

    def freeze(self) -> "LegRecord":
        return LegRecord(
            leg_id=self.leg_id,
            token_id=self.token.token_id,
            condition_id=self.token.condition_id,
            outcome=self.token.side,
            price=self.price,
            size=self.size,
            status=self.status,
            order_id=self.handle.order_id if self.handle else None,
            error=self.error,
        )


@dataclass(frozen=True)
class LegRecord:
    """Immutable leg of a resolved trade."""
    leg_id: str
    token_id: str
    condition_id: str
    outcome: Side
    price: Decimal
    size: Decimal
    status: LegStatus
    order_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def filled(self) -> bool:
        return self.status.has_fill

    @property
    def notional(self) -> Decimal:
        """Capital committed by this leg (full size for partial fills)."""
        return self.price * self.size if self.filled else Decimal("0")


@dataclass(frozen=True)
class Transition:
    """One state change of a trade."""
    trade_id: str
    from_state: TradeState
    to_state: TradeState
    at: float


@dataclass(frozen=True)
class TradeRecord:
    """Resolved trade. Never mutated."""
    trade_id: str
    opportunity_key: tuple
    snapshot_versions: tuple[int, int]
    leg_a: LegRecord
    leg_b: LegRecord
    state: TradeState
    units: Decimal
    combined_cost: Decimal
    created_at: float
    resolved_at: float
    error: Optional[str] = None
    flatten_order_id: Optional[str] = None
    flatten_error: Optional[str] = None

    @property
    def legs(self) -> tuple[LegRecord, LegRecord]:
        return (self.leg_a, self.leg_b)

    @property
    def committed_capital(self) -> Decimal:
        return self.leg_a.notional + self.leg_b.notional

    @property
    def expected_profit(self) -> Decimal:
        """Locked-in spread for a complete pair, zero otherwise."""
        if self.state is not TradeState.FILLED:
            return Decimal("0")
        return (Decimal("1") - self.combined_cost) * self.units

    @property
    def naked_leg(self) -> Optional[LegRecord]:
        """The filled leg of an unhedged pair."""
        if self.state is not TradeState.PARTIALLY_FILLED:
            return None
        filled = [leg for leg in self.legs if leg.filled]
        return filled[0] if len(filled) == 1 else None

    @property
    def net_position(self) -> dict[str, Decimal]:
        """Token id -> units held from this trade."""
        return {leg.token_id: leg.size for leg in self.legs if leg.filled}

    @property
    def duration_seconds(self) -> float:
        return self.resolved_at - self.created_at


class ActiveTrade:
    """
    In-flight paired trade.

    Only the coordinator holds one; state changes go through transition()
    and end with a single resolve().
    """

    def __init__(self, opportunity: Opportunity, units: Decimal, created_at: Optional[float] = None):
        self.trade_id = str(uuid.uuid4())
        self.opportunity = opportunity
        self.units = units
        self.created_at = created_at if created_at is not None else time.time()
        self.state = TradeState.IDLE
        self.error: Optional[str] = None
        self.flatten_order_id: Optional[str] = None
        self.flatten_error: Optional[str] = None
        self._record: Optional[TradeRecord] = None

        self.leg_a = LegOrder(
            leg_id=f"{self.trade_id}-a",
            token=opportunity.leg_a.token,
            price=opportunity.leg_a.ask,
            size=units,
        )
        self.leg_b = LegOrder(
            leg_id=f"{self.trade_id}-b",
            token=opportunity.leg_b.token,
            price=opportunity.leg_b.ask,
            size=units,
        )

    @property
    def legs(self) -> tuple[LegOrder, LegOrder]:
        return (self.leg_a, self.leg_b)

    @property
    def is_resolved(self) -> bool:
        return self._record is not None

    @property
    def filled_legs(self) -> list[LegOrder]:
        return [leg for leg in self.legs if leg.status.has_fill]

    def transition(self, to_state: TradeState, at: Optional[float] = None) -> Transition:
        if self.is_resolved:
            raise RuntimeError(f"Trade {self.trade_id} already resolved as {self.state.value}")
        if to_state not in ALLOWED_TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Illegal transition {self.state.value} -> {to_state.value}")
        change = Transition(self.trade_id, self.state, to_state, at if at is not None else time.time())
        self.state = to_state
        return change

    def terminal_state(self, nothing_filled: TradeState = TradeState.REJECTED) -> TradeState:
        """Terminal state implied by the current leg fills."""
        filled = self.filled_legs
        if len(filled) == 2 and all(leg.status is LegStatus.FILLED for leg in filled):
            return TradeState.FILLED
        if filled:
            return TradeState.PARTIALLY_FILLED
        return nothing_filled

    def resolve(self, resolved_at: Optional[float] = None) -> TradeRecord:
        """Freeze into a TradeRecord. Allowed once, from a terminal state."""
        if self.is_resolved:
            raise RuntimeError(f"Trade {self.trade_id} already resolved")
        if not self.state.is_terminal:
            raise RuntimeError(f"Trade {self.trade_id} is still {self.state.value}")

        self._record = TradeRecord(
            trade_id=self.trade_id,
            opportunity_key=self.opportunity.key,
            snapshot_versions=self.opportunity.snapshot_versions,
            leg_a=self.leg_a.freeze(),
            leg_b=self.leg_b.freeze(),
            state=self.state,
            units=self.units,
            combined_cost=self.opportunity.combined_cost,
            created_at=self.created_at,
            resolved_at=resolved_at if resolved_at is not None else time.time(),
            error=self.error,
            flatten_order_id=self.flatten_order_id,
            flatten_error=self.flatten_error,
        )
        return self._record


class TradeSlot:
    """Holds at most one in-flight trade."""

    def __init__(self):
        self._trade: Optional[ActiveTrade] = None

    @property
    def current(self) -> Optional[ActiveTrade]:
        return self._trade

    @property
    def is_empty(self) -> bool:
        return self._trade is None

    def acquire(self, trade: ActiveTrade) -> None:
        if self._trade is not None:
            raise RuntimeError(f"Trade {self._trade.trade_id} already in flight")
        if trade.is_resolved or trade.state is not TradeState.IDLE:
            raise RuntimeError(f"Trade {trade.trade_id} cannot be reused")
        self._trade = trade

    def release(self, trade: ActiveTrade) -> None:
        if self._trade is not trade:
            raise RuntimeError(f"Trade {trade.trade_id} does not hold the slot")
        if not trade.is_resolved:
            raise RuntimeError(f"Trade {trade.trade_id} released before resolution")
        self._trade = None
