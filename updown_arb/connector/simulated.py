"""
Simulation venue: real quotes and market data, local instant fills.
"""

import itertools
from decimal import Decimal
from typing import Optional

from ..quotes.models import AskPair, Market, Side
from .venue import OrderHandle, OrderSide, OrderStatus, Venue


class SimulatedVenue:
    """
    Wraps a live venue for quotes, discovery and resolution, and fills
    every order locally at its limit price. No order ever leaves the process.
    """

    def __init__(self, quote_source: Venue):
        self.source = quote_source
        self._ids = itertools.count(1)
        self._orders: dict[str, OrderStatus] = {}

    async def find_market(self, asset: str, window_minutes: int, now: Optional[float] = None) -> Market:
        return await self.source.find_market(asset, window_minutes, now)

    async def get_asks(self, market: Market) -> AskPair:
        return await self.source.get_asks(market)

    async def get_winner(self, market: Market) -> Optional[Side]:
        return await self.source.get_winner(market)

    async def submit_order(
        self,
        token_id: str,
        price: Decimal,
        size: Decimal,
        side: OrderSide = OrderSide.BUY,
    ) -> OrderHandle:
        order_id = f"sim-{next(self._ids)}"
        self._orders[order_id] = OrderStatus.FILLED
        return OrderHandle(order_id=order_id, token_id=token_id, side=side, price=price, size=size)

    async def get_order_status(self, handle: OrderHandle) -> OrderStatus:
        return self._orders.get(handle.order_id, OrderStatus.REJECTED)

    async def cancel_order(self, handle: OrderHandle) -> bool:
        # Simulated orders fill on submission, nothing is left to cancel
        return False

    async def close(self) -> None:
        await self.source.close()
