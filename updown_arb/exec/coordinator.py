"""
Paired-order execution coordinator for cross-market arbitrage.
Drives one trade at a time through submission, fill confirmation,
and terminal bookkeeping, and never leaves a naked leg unreported.
"""

import asyncio
import time
from typing import Callable, Optional, TYPE_CHECKING

from ..config import TradingConfig, TradingMode
from ..connector.venue import OrderSide, OrderStatus
from ..errors import FillTimeout, NakedLegExposure, SubmissionFailed, VenueError
from .trade import ActiveTrade, LegOrder, LegStatus, TradeRecord, TradeSlot, TradeState

if TYPE_CHECKING:
    from ..connector.venue import Venue
    from ..monitor import Logger, MetricsCollector
    from ..positions import PositionLedger
    from ..signals import Opportunity


class ExecutionCoordinator:
    """
    Executes cross-market opportunities as paired BUY orders.

    Key principles:
    1. At most one trade in flight; opportunities arriving meanwhile are dropped
    2. Both legs are submitted together and sized equally
    3. Every trade ends in a terminal state within the trade timeout
    4. A single filled leg is surfaced as naked exposure, never retried
    """

    def __init__(
        self,
        venue: "Venue",
        ledger: "PositionLedger",
        config: TradingConfig,
        mode: TradingMode = TradingMode.SIMULATION,
        logger: Optional["Logger"] = None,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.venue = venue
        self.ledger = ledger
        self.config = config
        self.mode = mode
        self.logger = logger
        self.metrics = metrics
        self.clock = clock

        self._slot = TradeSlot()
        self._task: Optional[asyncio.Task] = None
        self._abort = asyncio.Event()
        self._closing = False
        self._naked_callbacks: list[Callable[[NakedLegExposure], None]] = []

    # === Query surface ===

    @property
    def state(self) -> TradeState:
        trade = self._slot.current
        return trade.state if trade is not None else TradeState.IDLE

    def status(self) -> dict:
        trade = self._slot.current
        return {
            "mode": self.mode.value,
            "state": self.state.value,
            "trade_id": trade.trade_id if trade else None,
            "closing": self._closing,
        }

    def on_naked_exposure(self, callback: Callable[[NakedLegExposure], None]) -> None:
        """Register an alert callback for naked leg exposure."""
        self._naked_callbacks.append(callback)

    # === Entry points ===

    def try_submit(self, opportunity: "Opportunity") -> Optional[asyncio.Task]:
        """
        Start executing an opportunity in the background.
        Returns None when it was dropped (busy, duplicate, too small, closing).
        """
        trade = self._open(opportunity)
        if trade is None:
            return None
        self._task = asyncio.create_task(self._run(trade), name=f"trade-{trade.trade_id}")
        return self._task

    async def execute(self, opportunity: "Opportunity") -> Optional[TradeRecord]:
        """Execute an opportunity and wait for its terminal record."""
        task = self.try_submit(opportunity)
        if task is None:
            return None
        return await asyncio.shield(task)

    async def wait_idle(self) -> None:
        """Wait for the in-flight trade, if any, to resolve."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def shutdown(self) -> Optional[TradeRecord]:
        """
        Stop accepting opportunities and settle the in-flight trade:
        open orders are cancelled and the trade reaches a terminal state.
        """
        self._closing = True
        task = self._task
        if task is None or task.done():
            return None
        self._abort.set()
        return await task

    # === Internals ===

    def _drop(self, reason: str, opportunity: "Opportunity", duplicate: bool = False) -> None:
        if self.metrics:
            self.metrics.record_signal_dropped(duplicate=duplicate)
        if self.logger:
            self.logger.opportunity_dropped(
                reason,
                opportunity=opportunity.describe(),
                in_flight=self._slot.current.trade_id if self._slot.current else None,
            )

    def _open(self, opportunity: "Opportunity") -> Optional[ActiveTrade]:
        # No awaits in here: the busy check and the slot acquisition are atomic
        if self._closing:
            self._drop("shutting_down", opportunity)
            return None
        if not self._slot.is_empty:
            self._drop("trade_in_flight", opportunity)
            return None
        if self.ledger.has_acted_on(opportunity.key):
            self._drop("already_traded", opportunity, duplicate=True)
            return None

        units = opportunity.units(self.config.max_position_size)
        if units <= 0:
            self._drop("size_below_minimum", opportunity)
            return None

        trade = ActiveTrade(opportunity, units, created_at=self.clock())
        self._slot.acquire(trade)
        self._abort.clear()
        self._transition(trade, TradeState.SUBMITTING)

        if self.metrics:
            self.metrics.record_trade_attempt()
        return trade

    def _transition(self, trade: ActiveTrade, to_state: TradeState) -> None:
        change = trade.transition(to_state, self.clock())
        self.ledger.record_transition(change)
        if self.logger:
            self.logger.trade_transition(trade.trade_id, change.from_state.value, to_state.value)

    async def _run(self, trade: ActiveTrade) -> TradeRecord:
        try:
            final_state = await asyncio.wait_for(
                self._drive(trade), timeout=self.config.trade_timeout_seconds
            )
        except asyncio.TimeoutError:
            trade.error = trade.error or str(FillTimeout(
                f"Trade unresolved after {self.config.trade_timeout_seconds}s in {trade.state.value}"
            ))
            if self.logger:
                self.logger.warning("trade_timeout", trade_id=trade.trade_id, state=trade.state.value)
            await self._cancel_open_legs(trade)
            final_state = trade.terminal_state(TradeState.REJECTED)
        except asyncio.CancelledError:
            trade.error = trade.error or "Execution cancelled"
            await self._cancel_open_legs(trade)
            await self._finalize(trade, trade.terminal_state(TradeState.CANCELLED))
            raise
        except Exception as e:
            trade.error = f"Execution error: {e}"
            if self.logger:
                self.logger.error("execution_error", trade_id=trade.trade_id, error=str(e))
            await self._cancel_open_legs(trade)
            final_state = trade.terminal_state(TradeState.REJECTED)

        return await self._finalize(trade, final_state)

    async def _drive(self, trade: ActiveTrade) -> TradeState:
        """Submit both legs, then wait for fills. Returns the terminal state."""
        acks = await asyncio.gather(
            self._submit_leg(trade.leg_a),
            self._submit_leg(trade.leg_b),
        )

        if not all(acks):
            failures = [
                str(SubmissionFailed(leg.leg_id, leg.error or "unknown"))
                for leg in trade.legs if leg.status is LegStatus.FAILED
            ]
            trade.error = "; ".join(failures)
            if self.logger:
                self.logger.error("submission_failed", trade_id=trade.trade_id, error=trade.error)
            # Never leave an acknowledged single leg working
            await self._cancel_open_legs(trade)
            return trade.terminal_state(TradeState.REJECTED)

        if self._abort.is_set():
            await self._cancel_open_legs(trade)
            return trade.terminal_state(TradeState.CANCELLED)

        self._transition(trade, TradeState.AWAITING_FILLS)
        return await self._await_fills(trade)

    async def _submit_leg(self, leg: LegOrder) -> bool:
        """Submit one leg. Returns True on acknowledgment."""
        leg.submitted_at = self.clock()
        try:
            leg.handle = await asyncio.wait_for(
                self.venue.submit_order(leg.token.token_id, leg.price, leg.size, leg.side),
                timeout=self.config.submit_timeout_seconds,
            )
        except asyncio.TimeoutError:
            leg.status = LegStatus.FAILED
            leg.error = f"no acknowledgment within {self.config.submit_timeout_seconds}s"
            return False
        except VenueError as e:
            leg.status = LegStatus.FAILED
            leg.error = str(e) or type(e).__name__
            return False
        except Exception as e:
            # The sibling leg must still settle before the cancel pass
            leg.status = LegStatus.FAILED
            leg.error = f"unexpected {type(e).__name__}: {e}"
            if self.logger:
                self.logger.error("leg_submit_error", leg_id=leg.leg_id, error=leg.error)
            return False

        leg.status = LegStatus.ACKNOWLEDGED
        return True

    async def _await_fills(self, trade: ActiveTrade) -> TradeState:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.fill_timeout_seconds
        poll_interval = self.config.fill_poll_interval_ms / 1000.0

        while True:
            await asyncio.gather(*(self._refresh_leg(leg) for leg in trade.legs if leg.is_open))

            if all(leg.status is LegStatus.FILLED for leg in trade.legs):
                return TradeState.FILLED

            if any(leg.status is LegStatus.CANCELLED for leg in trade.legs):
                # The pair can no longer complete
                await self._cancel_open_legs(trade)
                return trade.terminal_state(TradeState.REJECTED)

            if self._abort.is_set():
                await self._cancel_open_legs(trade)
                return trade.terminal_state(TradeState.CANCELLED)

            remaining = deadline - loop.time()
            if remaining <= 0:
                trade.error = str(FillTimeout(
                    f"Legs unfilled after {self.config.fill_timeout_seconds}s"
                ))
                if self.logger:
                    self.logger.warning(
                        "fill_timeout",
                        trade_id=trade.trade_id,
                        leg_a=trade.leg_a.status.value,
                        leg_b=trade.leg_b.status.value,
                    )
                await self._cancel_open_legs(trade)
                return trade.terminal_state(TradeState.REJECTED)

            try:
                await asyncio.wait_for(self._abort.wait(), timeout=min(poll_interval, remaining))
            except asyncio.TimeoutError:
                pass

    async def _fetch_status(self, leg: LegOrder) -> Optional[OrderStatus]:
        try:
            return await asyncio.wait_for(
                self.venue.get_order_status(leg.handle),
                timeout=self.config.cancel_timeout_seconds,
            )
        except (asyncio.TimeoutError, VenueError) as e:
            if self.logger:
                self.logger.debug("order_status_failed", leg_id=leg.leg_id, error=str(e) or type(e).__name__)
            return None

    async def _refresh_leg(self, leg: LegOrder) -> None:
        status = await self._fetch_status(leg)
        if status is not None:
            self._apply_status(leg, status)

    def _apply_status(self, leg: LegOrder, status: OrderStatus) -> None:
        if status is OrderStatus.FILLED:
            leg.status = LegStatus.FILLED
            leg.filled_at = self.clock()
        elif status is OrderStatus.PARTIALLY_FILLED:
            leg.status = LegStatus.PARTIAL
        elif status in (OrderStatus.CANCELLED, OrderStatus.REJECTED):
            if leg.status is not LegStatus.PARTIAL:
                leg.status = LegStatus.CANCELLED

    async def _cancel_open_legs(self, trade: ActiveTrade) -> None:
        await asyncio.gather(*(self._cancel_leg(leg) for leg in trade.legs if leg.is_open))

    async def _cancel_leg(self, leg: LegOrder) -> None:
        """Cancel a working leg, then confirm its final status."""
        confirmed = False
        try:
            confirmed = await asyncio.wait_for(
                self.venue.cancel_order(leg.handle),
                timeout=self.config.cancel_timeout_seconds,
            )
        except (asyncio.TimeoutError, VenueError) as e:
            leg.error = f"cancel failed: {str(e) or type(e).__name__}"
            if self.logger:
                self.logger.warning("cancel_failed", leg_id=leg.leg_id, error=leg.error)

        # A fill can race the cancel
        status = await self._fetch_status(leg)
        if status is not None and status is not OrderStatus.PENDING:
            self._apply_status(leg, status)
        elif confirmed and leg.status is LegStatus.ACKNOWLEDGED:
            leg.status = LegStatus.CANCELLED
        elif leg.status is LegStatus.ACKNOWLEDGED:
            # Outcome unknown: the order may still be working on the venue
            leg.error = leg.error or "cancel not confirmed"
            if self.logger:
                self.logger.warning("cancel_unconfirmed", leg_id=leg.leg_id, order_id=leg.handle.order_id)

    async def _flatten(self, trade: ActiveTrade, leg: LegOrder) -> None:
        """One marketable SELL of the naked leg. Never retried."""
        try:
            handle = await asyncio.wait_for(
                self.venue.submit_order(
                    leg.token.token_id,
                    self.config.flatten_limit_price,
                    leg.size,
                    OrderSide.SELL,
                ),
                timeout=self.config.submit_timeout_seconds,
            )
            trade.flatten_order_id = handle.order_id
        except asyncio.TimeoutError:
            trade.flatten_error = "flatten order not acknowledged"
        except VenueError as e:
            trade.flatten_error = str(e) or type(e).__name__

    async def _finalize(self, trade: ActiveTrade, final_state: TradeState) -> TradeRecord:
        """Terminal bookkeeping, then release the slot."""
        self._transition(trade, final_state)

        naked = trade.filled_legs if final_state is TradeState.PARTIALLY_FILLED else []
        if len(naked) == 1 and self.config.flatten_naked_legs:
            await self._flatten(trade, naked[0])

        record = trade.resolve(self.clock())
        self.ledger.append(record)

        if self.metrics:
            self.metrics.record_trade_outcome(record.state.value, record.duration_seconds * 1000)
        if self.logger:
            self.logger.trade_resolved(
                trade_id=record.trade_id,
                state=record.state.value,
                committed=str(record.committed_capital),
                expected_profit=str(record.expected_profit),
                error=record.error if record.state is not TradeState.FILLED else None,
            )

        if record.state is TradeState.PARTIALLY_FILLED:
            self._emit_naked_exposure(record)

        self._slot.release(trade)
        return record

    def _emit_naked_exposure(self, record: TradeRecord) -> None:
        filled = [leg for leg in record.legs if leg.filled]
        event = NakedLegExposure(
            trade_id=record.trade_id,
            token_id=",".join(leg.token_id for leg in filled),
            size=",".join(str(leg.size) for leg in filled),
            flatten_error=record.flatten_error,
        )

        if self.metrics:
            self.metrics.record_naked_exposure()
        if self.logger:
            self.logger.naked_leg_exposure(
                trade_id=event.trade_id,
                token_id=event.token_id,
                size=event.size,
                flattened=record.flatten_order_id is not None,
                flatten_error=record.flatten_error,
            )

        for callback in self._naked_callbacks:
            try:
                callback(event)
            except Exception as e:
                if self.logger:
                    self.logger.error("naked_exposure_callback_failed", error=str(e))
