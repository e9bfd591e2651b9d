"""Signals module for cross-market arbitrage detection."""

from .cross_detector import CrossMarketDetector, Opportunity, best_opportunity, check_combination

__all__ = [
    "CrossMarketDetector",
    "Opportunity",
    "best_opportunity",
    "check_combination",
]
