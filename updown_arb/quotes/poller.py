"""
Per-market quote poller.
Refreshes one market's Up/Down asks into the snapshot cache and
nudges the evaluator after every successful refresh.
"""

import asyncio
import itertools
import time
from typing import Callable, Optional, TYPE_CHECKING

from ..errors import VenueError
from .cache import SnapshotCache
from .models import Market, Quote

if TYPE_CHECKING:
    from ..connector.venue import Venue
    from ..monitor import Logger, MetricsCollector


class QuotePoller:
    """
    Polls best asks for one market on a fixed interval.

    A failed fetch only delays detection by one cycle: it is logged,
    counted, and the cache keeps its previous snapshot.
    """

    def __init__(
        self,
        venue: "Venue",
        cache: SnapshotCache,
        market: Market,
        trigger: asyncio.Queue,
        interval_seconds: float,
        timeout_seconds: float,
        logger: Optional["Logger"] = None,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.venue = venue
        self.cache = cache
        self.market = market
        self.trigger = trigger
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.logger = logger
        self.metrics = metrics
        self.clock = clock

        self._sequence = itertools.count(1)
        self._running = False

    async def poll_once(self) -> bool:
        """Fetch and store one pair of quotes. Returns True on success."""
        try:
            asks = await asyncio.wait_for(
                self.venue.get_asks(self.market),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._fetch_failed("timeout", f"no quote within {self.timeout_seconds}s")
            return False
        except VenueError as e:
            self._fetch_failed(type(e).__name__, str(e))
            return False

        observed_at = self.clock()
        seq = next(self._sequence)
        up = Quote(self.market.up, asks.up_ask, seq, observed_at)
        down = Quote(self.market.down, asks.down_ask, seq, observed_at)

        if not self.cache.update_pair(self.market.condition_id, up, down):
            return False

        if self.metrics:
            self.metrics.record_quote()
        try:
            self.trigger.put_nowait(self.market.condition_id)
        except asyncio.QueueFull:
            pass  # an evaluation is already pending
        return True

    def _fetch_failed(self, error_type: str, error: str) -> None:
        if self.metrics:
            self.metrics.record_quote_error()
        if self.logger:
            self.logger.quote_fetch_failed(self.market.label, error_type, error)

    async def run(self) -> None:
        """Poll until stopped or cancelled."""
        self._running = True
        while self._running:
            try:
                await self.poll_once()
            except Exception as e:
                # Malformed responses and the like cost one cycle, not the poller
                if self.metrics:
                    self.metrics.record_quote_error()
                if self.logger:
                    self.logger.error("poller_error", market=self.market.label, error=str(e))
            await asyncio.sleep(self.interval_seconds)

    def stop(self) -> None:
        self._running = False
