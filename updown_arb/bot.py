"""
Main arbitrage bot orchestration.
Wires pollers, detector, coordinator and ledger for cross-market trading.
"""

import asyncio
import dataclasses
import signal
import time
from decimal import Decimal
from typing import Callable, Optional

from .config import Config, MarketConfig, load_config_from_env
from .connector import AuthManager, OrderSide, PolymarketRestClient, SimulatedVenue, Venue
from .connector.rest_client import period_start
from .errors import VenueError
from .exec import ExecutionCoordinator, TradeRecord
from .monitor import Logger, MetricsCollector
from .positions import PositionLedger, Settlement
from .quotes import Market, QuotePoller, SnapshotCache, Side
from .signals import CrossMarketDetector, Opportunity

ROLLOVER_RETRY_SECONDS = 5.0
SETTLEMENT_CHECK_SECONDS = 30.0
REDEEM_PRICE = Decimal("1")  # A winning token is worth 1.00 once its market resolves


class ArbitrageBot:
    """
    Cross-market Up/Down arbitrage bot for Polymarket.

    Strategy:
    1. Poll best asks of two markets (e.g. SOL and BTC 15-minute Up/Down)
    2. Evaluate A-Up + B-Down and A-Down + B-Up on every refresh
    3. Buy both legs when the pair costs less than 1.00 minus the threshold
    4. Record every trade, then settle it once both markets resolve
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        venue: Optional[Venue] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or load_config_from_env()

        errors = self.config.validate()
        if errors:
            raise ValueError(f"Configuration errors: {errors}")

        self.clock = clock
        self.logger = Logger(
            name="updown_arb",
            level=self.config.log_level,
            log_file=self.config.log_file,
        )
        self.metrics = MetricsCollector()

        self.auth: Optional[AuthManager] = None
        self.venue = venue or self._build_venue()

        self.cache = SnapshotCache()
        self.ledger = PositionLedger()
        self.coordinator = ExecutionCoordinator(
            venue=self.venue,
            ledger=self.ledger,
            config=self.config.trading,
            mode=self.config.mode,
            logger=self.logger,
            metrics=self.metrics,
            clock=clock,
        )

        self.markets: list[Market] = []
        self.detector: Optional[CrossMarketDetector] = None
        self._known_markets: dict[str, Market] = {}
        self._pollers: list[QuotePoller] = []
        self._poller_tasks: list[asyncio.Task] = []
        self._tasks: list[asyncio.Task] = []
        self._trigger: asyncio.Queue = asyncio.Queue(maxsize=1)

        self._running = False
        self._shutdown_event = asyncio.Event()

    def _build_venue(self) -> Venue:
        connection = self.config.connection
        if self.config.private_key:
            self.auth = AuthManager(
                private_key=self.config.private_key,
                api_key=self.config.api_key,
                api_secret=self.config.api_secret,
                api_passphrase=self.config.api_passphrase,
                chain_id=connection.chain_id,
            )

        rest_client = PolymarketRestClient(
            auth_manager=self.auth,
            base_url=connection.clob_rest_url,
            gamma_url=connection.gamma_api_url,
            timeout_seconds=connection.rest_timeout_seconds,
            max_retries=connection.max_retries,
            retry_backoff_base=connection.retry_backoff_base,
            funder=self.config.funder_address or None,
        )
        if self.config.is_simulation:
            return SimulatedVenue(rest_client)
        return rest_client

    # === Lifecycle ===

    async def start(self) -> None:
        """Start the bot and run until stopped."""
        self._running = True
        trading = self.config.trading

        self.logger.startup({
            "mode": self.config.mode.value,
            "markets": [m.asset for m in self.config.markets],
            "min_profit_threshold": str(trading.min_profit_threshold),
            "max_position_size": str(trading.max_position_size),
            "check_interval_ms": trading.check_interval_ms,
        })

        try:
            if not self.config.is_simulation and self.auth and not self.auth.has_l2_credentials():
                self.logger.info("deriving_api_credentials")
                await self.venue.derive_api_key()

            markets = await self._discover_markets()
            self._install_markets(markets)

            self._tasks = [
                asyncio.create_task(self._evaluation_loop(), name="evaluator"),
                asyncio.create_task(self._rollover_loop(), name="rollover"),
                asyncio.create_task(self._settlement_loop(), name="settlement"),
            ]
            await self._shutdown_event.wait()

        except asyncio.CancelledError:
            self.logger.info("bot_cancelled")
        except Exception as e:
            self.logger.error("bot_error", error=str(e))
            raise
        finally:
            await self._cleanup()

    def request_stop(self) -> None:
        """Ask the bot to stop. Safe to call from a signal handler."""
        self.logger.info("bot_stopping")
        self._running = False
        self._shutdown_event.set()

    async def stop(self) -> None:
        """Stop the bot gracefully."""
        self.request_stop()

    async def _cleanup(self) -> None:
        """Stop pollers and loops, settle the in-flight trade, close the venue."""
        self._running = False
        await self._stop_pollers()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        record = await self.coordinator.shutdown()
        if record is not None:
            self.logger.info("inflight_trade_settled", trade_id=record.trade_id, state=record.state.value)

        await self.venue.close()
        self.logger.shutdown()

    # === Markets ===

    def _pinned_market(self, market_config: MarketConfig, now: float) -> Market:
        window = market_config.window_minutes
        return Market.build(
            condition_id=market_config.condition_id,
            label=f"{market_config.asset.upper()}-{window}m",
            up_token_id=market_config.up_token_id,
            down_token_id=market_config.down_token_id,
            asset=market_config.asset,
            window_minutes=window,
            period_start=period_start(now, window),
        )

    async def _discover_markets(self) -> list[Market]:
        """Resolve the configured assets to their current markets."""
        now = self.clock()
        markets = []
        for market_config in self.config.markets:
            if market_config.is_pinned:
                market = self._pinned_market(market_config, now)
            else:
                market = await asyncio.wait_for(
                    self.venue.find_market(market_config.asset, market_config.window_minutes, now),
                    timeout=self.config.connection.rest_timeout_seconds,
                )
            markets.append(market)
        return markets

    def _install_markets(self, markets: list[Market]) -> None:
        """Track a new market pair and (re)start its pollers."""
        market_a, market_b = markets
        trading = self.config.trading

        self.markets = list(markets)
        for market in markets:
            self._known_markets[market.condition_id] = market
            self.logger.market_tracked(market.label, market.condition_id, market.slug)

        self.cache.track(markets)
        self.detector = CrossMarketDetector(
            cache=self.cache,
            market_a=market_a,
            market_b=market_b,
            min_profit_threshold=trading.min_profit_threshold,
            staleness_seconds=trading.staleness_seconds,
            min_leg_price=trading.min_leg_price,
            clock=self.clock,
        )

        # Triggers from the previous pair are meaningless now
        while not self._trigger.empty():
            self._trigger.get_nowait()

        self._pollers = [
            QuotePoller(
                venue=self.venue,
                cache=self.cache,
                market=market,
                trigger=self._trigger,
                interval_seconds=trading.check_interval_seconds,
                timeout_seconds=trading.quote_timeout_seconds,
                logger=self.logger,
                metrics=self.metrics,
                clock=self.clock,
            )
            for market in markets
        ]
        self._poller_tasks = [
            asyncio.create_task(p.run(), name=f"poller-{p.market.label}") for p in self._pollers
        ]

    async def _stop_pollers(self) -> None:
        for poller in self._pollers:
            poller.stop()
        for task in self._poller_tasks:
            task.cancel()
        await asyncio.gather(*self._poller_tasks, return_exceptions=True)
        self._pollers = []
        self._poller_tasks = []

    # === Loops ===

    def evaluate(self) -> Optional[Opportunity]:
        """Run one evaluation and hand any opportunity to the coordinator."""
        detector = self.detector
        if detector is None:
            return None

        opportunity = detector.evaluate()
        self.metrics.record_evaluation(stale=detector.last_skip_reason is not None)
        if detector.last_skip_reason:
            self.logger.debug("evaluation_skipped", reason=detector.last_skip_reason)
        if opportunity is None:
            return None

        self.metrics.record_signal()
        self.logger.opportunity_detected(
            leg_a=f"{opportunity.leg_a.token.condition_id}:{opportunity.leg_a.token.side.value}",
            leg_b=f"{opportunity.leg_b.token.condition_id}:{opportunity.leg_b.token.side.value}",
            ask_a=str(opportunity.leg_a.ask),
            ask_b=str(opportunity.leg_b.ask),
            combined_cost=str(opportunity.combined_cost),
            profit=str(opportunity.profit),
        )
        self.coordinator.try_submit(opportunity)
        return opportunity

    async def _evaluation_loop(self) -> None:
        """Evaluate on every cache refresh."""
        while self._running:
            try:
                await self._trigger.get()
                self.evaluate()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error("evaluation_loop_error", error=str(e))

    async def _rollover_loop(self) -> None:
        """Switch to the next period's markets when the window rolls over."""
        if all(m.is_pinned for m in self.config.markets):
            return

        while self._running:
            try:
                boundary = min(m.period_end for m in self.markets)
                await asyncio.sleep(max(0.0, boundary - self.clock()) + ROLLOVER_RETRY_SECONDS)

                markets = await self._discover_markets()
                current = [m.condition_id for m in self.markets]
                if [m.condition_id for m in markets] == current:
                    continue

                await self.roll_over(markets)

            except asyncio.CancelledError:
                break
            except (VenueError, asyncio.TimeoutError) as e:
                self.logger.warning("rollover_discovery_failed", error=str(e) or type(e).__name__)
            except Exception as e:
                self.logger.error("rollover_loop_error", error=str(e))
                await asyncio.sleep(ROLLOVER_RETRY_SECONDS)

    async def roll_over(self, markets: list[Market]) -> None:
        """
        Retire the current pair and install the next one.
        Quotes and evaluation stop first so no new trade can start on the
        expiring pair, then any in-flight trade is allowed to resolve.
        """
        await self._stop_pollers()
        self.detector = None
        while not self._trigger.empty():
            self._trigger.get_nowait()

        await self.coordinator.wait_idle()
        self._install_markets(markets)
        self.logger.info("markets_rolled_over", markets=[m.label for m in markets])

    async def _settlement_loop(self) -> None:
        """Periodically settle trades whose markets have resolved."""
        while self._running:
            try:
                await asyncio.sleep(SETTLEMENT_CHECK_SECONDS)
                await self.settle_pending()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error("settlement_loop_error", error=str(e))

    async def settle_pending(self) -> list[Settlement]:
        """Settle every unsettled trade whose markets have a winner."""
        settled = []
        now = self.clock()

        for record in self.ledger.unsettled():
            condition_ids = {leg.condition_id for leg in record.legs if leg.filled}
            markets = [self._known_markets.get(cid) for cid in condition_ids]
            if any(m is None or m.period_end > now for m in markets):
                continue

            winners: dict[str, Side] = {}
            for market in markets:
                try:
                    winner = await asyncio.wait_for(
                        self.venue.get_winner(market),
                        timeout=self.config.connection.rest_timeout_seconds,
                    )
                except (VenueError, asyncio.TimeoutError) as e:
                    self.logger.debug("winner_lookup_failed", market=market.label, error=str(e))
                    break
                if winner is None:
                    break
                winners[market.condition_id] = winner
            else:
                settlement = Settlement.compute(record, winners, settled_at=now)
                if not self.config.is_simulation and self.config.trading.redeem_on_settlement:
                    settlement = await self._redeem(record, winners, settlement)
                self.ledger.record_settlement(settlement)
                self.logger.trade_settled(
                    trade_id=record.trade_id,
                    payout=str(settlement.payout),
                    realized_pnl=str(settlement.realized_pnl),
                    redeem_orders=list(settlement.redeem_order_ids),
                )
                settled.append(settlement)

        return settled

    async def _redeem(
        self, record: TradeRecord, winners: dict[str, Side], settlement: Settlement
    ) -> Settlement:
        """Sell each winning leg at 1.00. One attempt per leg, failures are only recorded."""
        order_ids = []
        errors = []
        for leg in record.legs:
            if not leg.filled or winners[leg.condition_id] is not leg.outcome:
                continue
            try:
                handle = await asyncio.wait_for(
                    self.venue.submit_order(leg.token_id, REDEEM_PRICE, leg.size, OrderSide.SELL),
                    timeout=self.config.trading.submit_timeout_seconds,
                )
            except (VenueError, asyncio.TimeoutError) as e:
                error = f"{leg.token_id}: {str(e) or type(e).__name__}"
                errors.append(error)
                self.logger.warning("redeem_failed", trade_id=record.trade_id, error=error)
                continue
            order_ids.append(handle.order_id)

        return dataclasses.replace(
            settlement,
            redeem_order_ids=tuple(order_ids),
            redeem_errors=tuple(errors),
        )

    def get_status(self) -> dict:
        """Get current bot status."""
        coordinator = self.coordinator.status()
        return {
            "running": self._running,
            "mode": coordinator["mode"],
            "state": coordinator["state"],
            "trade_id": coordinator["trade_id"],
            "markets": [m.label for m in self.markets],
            "ledger": self.ledger.summary().to_dict(),
            "metrics": self.metrics.get_session_metrics(),
        }


async def run_bot(config: Optional[Config] = None) -> None:
    """Run the arbitrage bot with signal handling."""
    bot = ArbitrageBot(config)

    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, bot.request_stop)

    try:
        await bot.start()
    except KeyboardInterrupt:
        await bot.stop()
