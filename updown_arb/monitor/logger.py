"""
Structured JSON logging for the arbitrage bot.
All logs are JSON for easy parsing and analysis.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class LogLevel(Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "event": record.msg,
            "logger": record.name,
        }

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class Logger:
    """
    Structured JSON logger for the arbitrage bot.

    All log entries are JSON objects with:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level
    - event: Event name/type
    - Additional context fields
    """

    def __init__(
        self,
        name: str = "updown_arb",
        level: str = "INFO",
        log_file: Optional[str] = None,
    ):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers = []
        self.logger.propagate = False

        formatter = JSONFormatter()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def _log(self, level: int, event: str, **kwargs: Any) -> None:
        """Internal log method."""
        if not self.logger.isEnabledFor(level):
            return
        record = self.logger.makeRecord(
            self.logger.name,
            level,
            "",
            0,
            event,
            (),
            None,
        )
        record.extra_fields = kwargs
        self.logger.handle(record)

    def debug(self, event: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, event, **kwargs)

    def critical(self, event: str, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, event, **kwargs)

    # === Convenience methods for common events ===

    def market_tracked(self, label: str, condition_id: str, slug: str) -> None:
        self.info("market_tracked", label=label, condition_id=condition_id, slug=slug)

    def quote_fetch_failed(self, label: str, error_type: str, error: str) -> None:
        """Transient quote failures only delay detection by one cycle."""
        self.warning("quote_fetch_failed", market=label, error_type=error_type, error=error)

    def opportunity_detected(
        self,
        leg_a: str,
        leg_b: str,
        ask_a: str,
        ask_b: str,
        combined_cost: str,
        profit: str,
    ) -> None:
        self.info(
            "opportunity_detected",
            leg_a=leg_a,
            leg_b=leg_b,
            ask_a=ask_a,
            ask_b=ask_b,
            combined_cost=combined_cost,
            profit=profit,
        )

    def opportunity_dropped(self, reason: str, **kwargs: Any) -> None:
        self.debug("opportunity_dropped", reason=reason, **kwargs)

    def trade_transition(self, trade_id: str, from_state: str, to_state: str) -> None:
        self.debug("trade_transition", trade_id=trade_id, from_state=from_state, to_state=to_state)

    def trade_resolved(
        self,
        trade_id: str,
        state: str,
        committed: str,
        expected_profit: str,
        error: Optional[str] = None,
    ) -> None:
        fields = dict(
            trade_id=trade_id,
            state=state,
            committed=committed,
            expected_profit=expected_profit,
        )
        if error:
            fields["error"] = error
            self.error("trade_resolved", **fields)
        else:
            self.info("trade_resolved", **fields)

    def naked_leg_exposure(
        self,
        trade_id: str,
        token_id: str,
        size: str,
        flattened: bool,
        flatten_error: Optional[str] = None,
    ) -> None:
        self.critical(
            "naked_leg_exposure",
            trade_id=trade_id,
            token_id=token_id,
            size=size,
            flattened=flattened,
            flatten_error=flatten_error,
        )

    def trade_settled(
        self, trade_id: str, payout: str, realized_pnl: str, redeem_orders: Optional[list] = None
    ) -> None:
        self.info(
            "trade_settled",
            trade_id=trade_id,
            payout=payout,
            realized_pnl=realized_pnl,
            redeem_orders=redeem_orders or [],
        )

    def startup(self, config: dict) -> None:
        self.info("bot_startup", config=config)

    def shutdown(self, reason: str = "normal") -> None:
        self.info("bot_shutdown", reason=reason)
