"""
Session counters for monitoring detection and execution.
"""

import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class SessionMetrics:
    """Metrics for a trading session."""
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    # Detection
    quotes_received: int = 0
    quote_errors: int = 0
    evaluations: int = 0
    stale_skips: int = 0
    signals_detected: int = 0
    signals_dropped_busy: int = 0
    signals_dropped_duplicate: int = 0

    # Execution
    trades_attempted: int = 0
    trades_filled: int = 0
    trades_partial: int = 0
    trades_rejected: int = 0
    trades_cancelled: int = 0
    naked_exposures: int = 0

    # Timing
    avg_execution_time_ms: float = 0


class MetricsCollector:
    """
    Collects and aggregates metrics for the arbitrage bot.
    """

    def __init__(self):
        self._session = SessionMetrics()
        self._execution_times: list[float] = []

    def record_quote(self) -> None:
        self._session.quotes_received += 1

    def record_quote_error(self) -> None:
        self._session.quote_errors += 1

    def record_evaluation(self, stale: bool = False) -> None:
        self._session.evaluations += 1
        if stale:
            self._session.stale_skips += 1

    def record_signal(self) -> None:
        self._session.signals_detected += 1

    def record_signal_dropped(self, duplicate: bool = False) -> None:
        if duplicate:
            self._session.signals_dropped_duplicate += 1
        else:
            self._session.signals_dropped_busy += 1

    def record_trade_attempt(self) -> None:
        self._session.trades_attempted += 1

    def record_trade_outcome(self, state: str, execution_time_ms: float) -> None:
        """Record a resolved trade by terminal state value."""
        counters = {
            "filled": "trades_filled",
            "partially_filled": "trades_partial",
            "rejected": "trades_rejected",
            "cancelled": "trades_cancelled",
        }
        attr = counters.get(state)
        if attr:
            setattr(self._session, attr, getattr(self._session, attr) + 1)

        self._execution_times.append(execution_time_ms)
        self._session.avg_execution_time_ms = (
            sum(self._execution_times) / len(self._execution_times)
        )

    def record_naked_exposure(self) -> None:
        self._session.naked_exposures += 1

    @property
    def session(self) -> SessionMetrics:
        return self._session

    def get_session_metrics(self) -> dict:
        """Get current session metrics as dict."""
        s = self._session
        return {
            "uptime_seconds": time.time() - s.start_time,
            "quotes_received": s.quotes_received,
            "quote_errors": s.quote_errors,
            "evaluations": s.evaluations,
            "stale_skips": s.stale_skips,
            "signals_detected": s.signals_detected,
            "signals_dropped_busy": s.signals_dropped_busy,
            "signals_dropped_duplicate": s.signals_dropped_duplicate,
            "trades_attempted": s.trades_attempted,
            "trades_filled": s.trades_filled,
            "trades_partial": s.trades_partial,
            "trades_rejected": s.trades_rejected,
            "trades_cancelled": s.trades_cancelled,
            "fill_rate": (
                s.trades_filled / s.trades_attempted
                if s.trades_attempted > 0 else 0
            ),
            "naked_exposures": s.naked_exposures,
            "avg_execution_time_ms": s.avg_execution_time_ms,
        }

    def reset_session(self) -> None:
        self._session = SessionMetrics()
        self._execution_times = []
