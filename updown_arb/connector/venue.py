"""
Venue interface consumed by the pollers and the execution coordinator.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Protocol

from ..quotes.models import AskPair, Market, Side


class OrderSide(Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderStatus(Enum):
    """Venue-reported order status."""
    PENDING = "pending"
    FILLED = "filled"
    PARTIALLY_FILLED = "partially_filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"

    @property
    def has_fill(self) -> bool:
        return self in (OrderStatus.FILLED, OrderStatus.PARTIALLY_FILLED)


@dataclass(frozen=True)
class OrderHandle:
    """Acknowledged order."""
    order_id: str
    token_id: str
    side: OrderSide
    price: Decimal
    size: Decimal
    submitted_at: float = field(default_factory=time.time)


class Venue(Protocol):
    """Quote source, order gateway and market catalog."""

    async def find_market(self, asset: str, window_minutes: int, now: Optional[float] = None) -> Market:
        ...

    async def get_asks(self, market: Market) -> AskPair:
        ...

    async def submit_order(
        self,
        token_id: str,
        price: Decimal,
        size: Decimal,
        side: OrderSide = OrderSide.BUY,
    ) -> OrderHandle:
        ...

    async def get_order_status(self, handle: OrderHandle) -> OrderStatus:
        ...

    async def cancel_order(self, handle: OrderHandle) -> bool:
        ...

    async def get_winner(self, market: Market) -> Optional[Side]:
        ...

    async def close(self) -> None:
        ...
