"""Positions module: append-only trade ledger."""

from .ledger import LedgerSummary, PositionLedger, Settlement

__all__ = ["PositionLedger", "LedgerSummary", "Settlement"]
