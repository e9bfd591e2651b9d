"""Execution module for paired cross-market orders."""

from .coordinator import ExecutionCoordinator
from .trade import (
    ActiveTrade,
    LegRecord,
    LegStatus,
    TradeRecord,
    TradeSlot,
    TradeState,
    Transition,
)

__all__ = [
    "ExecutionCoordinator",
    "ActiveTrade",
    "LegRecord",
    "LegStatus",
    "TradeRecord",
    "TradeSlot",
    "TradeState",
    "Transition",
]
