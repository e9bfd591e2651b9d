"""
Polymarket Up/Down Cross-Market Arbitrage Bot

Buys Up in one market and Down in another (e.g. SOL and BTC 15-minute
markets) when the two asks together cost less than 1.00 minus a profit
threshold, and records every paired trade through to settlement.
"""

__version__ = "1.0.0"
