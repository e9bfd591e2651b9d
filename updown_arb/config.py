"""
Configuration management for the Up/Down cross-market arbitrage bot.
All secrets via environment variables. All tunable parameters externalized.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional


class TradingMode(Enum):
    SIMULATION = "simulation"
    PRODUCTION = "production"


@dataclass
class MarketConfig:
    """One tracked market: an asset's Up/Down market for a time window."""
    asset: str
    window_minutes: int = 15
    # Optional fixed market instead of slug discovery
    condition_id: Optional[str] = None
    up_token_id: Optional[str] = None
    down_token_id: Optional[str] = None

    @property
    def is_pinned(self) -> bool:
        return bool(self.condition_id and self.up_token_id and self.down_token_id)


@dataclass
class TradingConfig:
    """Detection thresholds, sizing and execution timeouts."""
    min_profit_threshold: Decimal = Decimal("0.01")  # Minimum 1.00 - combined cost
    max_position_size: Decimal = Decimal("100")  # Max USDC committed per trade
    check_interval_ms: int = 1000  # Poll interval per market
    staleness_ms: Optional[int] = None  # Defaults to 2x check interval
    min_leg_price: Optional[Decimal] = None  # Skip when both asks are below this

    quote_timeout_seconds: float = 5.0
    submit_timeout_seconds: float = 5.0
    cancel_timeout_seconds: float = 5.0
    fill_timeout_seconds: float = 10.0  # Wait for both legs to fill
    fill_poll_interval_ms: int = 500
    trade_timeout_seconds: float = 30.0  # Hard bound on any non-terminal trade

    flatten_naked_legs: bool = False
    flatten_limit_price: Decimal = Decimal("0.01")
    redeem_on_settlement: bool = True  # Sell winning legs at 1.00 once settled (production only)

    @property
    def staleness_seconds(self) -> float:
        staleness_ms = self.staleness_ms if self.staleness_ms is not None else 2 * self.check_interval_ms
        return staleness_ms / 1000.0

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_ms / 1000.0


@dataclass
class ConnectionConfig:
    """API connection configuration."""
    clob_rest_url: str = "https://clob.polymarket.com"
    gamma_api_url: str = "https://gamma-api.polymarket.com"
    chain_id: int = 137  # Polygon mainnet
    rest_timeout_seconds: int = 10
    max_retries: int = 3
    retry_backoff_base: float = 1.5


@dataclass
class Config:
    """Main configuration container."""
    mode: TradingMode = field(
        default_factory=lambda: TradingMode(os.environ.get("TRADING_MODE", "simulation").lower())
    )

    # Secrets from environment
    private_key: str = field(default_factory=lambda: os.environ.get("POLYMARKET_PRIVATE_KEY", ""))
    funder_address: str = field(default_factory=lambda: os.environ.get("POLYMARKET_FUNDER_ADDRESS", ""))
    api_key: Optional[str] = field(default_factory=lambda: os.environ.get("POLYMARKET_API_KEY"))
    api_secret: Optional[str] = field(default_factory=lambda: os.environ.get("POLYMARKET_API_SECRET"))
    api_passphrase: Optional[str] = field(default_factory=lambda: os.environ.get("POLYMARKET_API_PASSPHRASE"))

    # Sub-configs
    trading: TradingConfig = field(default_factory=TradingConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)

    # Exactly two markets: A then B
    markets: list[MarketConfig] = field(
        default_factory=lambda: [MarketConfig("sol"), MarketConfig("btc")]
    )

    # Logging
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: os.environ.get("LOG_FILE") or None)

    @property
    def is_simulation(self) -> bool:
        return self.mode is TradingMode.SIMULATION

    def validate(self) -> list[str]:
        """Validate configuration. Returns list of errors."""
        errors = []

        if self.mode is TradingMode.PRODUCTION and not self.private_key:
            errors.append("POLYMARKET_PRIVATE_KEY is required in production mode")
        if len(self.markets) != 2:
            errors.append("Exactly two markets must be configured")
        elif self.markets[0].asset.lower() == self.markets[1].asset.lower():
            errors.append("The two markets must track different assets")
        for market in self.markets:
            if market.window_minutes < 1:
                errors.append(f"window_minutes must be >= 1 for {market.asset}")

        trading = self.trading
        if trading.min_profit_threshold < 0:
            errors.append("min_profit_threshold cannot be negative")
        if trading.max_position_size <= 0:
            errors.append("max_position_size must be positive")
        if trading.check_interval_ms < 1:
            errors.append("check_interval_ms must be >= 1")
        if trading.staleness_ms is not None and trading.staleness_ms < 1:
            errors.append("staleness_ms must be >= 1")
        if trading.fill_timeout_seconds <= 0 or trading.trade_timeout_seconds <= 0:
            errors.append("fill and trade timeouts must be positive")
        if not (Decimal("0") < trading.flatten_limit_price < Decimal("1")):
            errors.append("flatten_limit_price must be between 0 and 1")

        return errors


def _decimal_env(name: str) -> Optional[Decimal]:
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}")


def load_config_from_env() -> Config:
    """Load configuration from environment variables."""
    config = Config()

    # Format: MARKET_ASSETS=sol,btc
    window = int(os.environ.get("MARKET_WINDOW_MINUTES", "15"))
    assets = [a.strip().lower() for a in os.environ.get("MARKET_ASSETS", "sol,btc").split(",") if a.strip()]
    config.markets = []
    for asset in assets:
        prefix = asset.upper()
        config.markets.append(MarketConfig(
            asset=asset,
            window_minutes=window,
            condition_id=os.environ.get(f"{prefix}_CONDITION_ID") or None,
            up_token_id=os.environ.get(f"{prefix}_UP_TOKEN_ID") or None,
            down_token_id=os.environ.get(f"{prefix}_DOWN_TOKEN_ID") or None,
        ))

    trading = config.trading
    for env_name, attr in (
        ("MIN_PROFIT_THRESHOLD", "min_profit_threshold"),
        ("MAX_POSITION_SIZE", "max_position_size"),
        ("MIN_LEG_PRICE", "min_leg_price"),
        ("FLATTEN_LIMIT_PRICE", "flatten_limit_price"),
    ):
        value = _decimal_env(env_name)
        if value is not None:
            setattr(trading, attr, value)

    if os.environ.get("CHECK_INTERVAL_MS"):
        trading.check_interval_ms = int(os.environ["CHECK_INTERVAL_MS"])
    if os.environ.get("STALENESS_MS"):
        trading.staleness_ms = int(os.environ["STALENESS_MS"])
    if os.environ.get("FILL_POLL_INTERVAL_MS"):
        trading.fill_poll_interval_ms = int(os.environ["FILL_POLL_INTERVAL_MS"])
    for env_name, attr in (
        ("QUOTE_TIMEOUT_SECONDS", "quote_timeout_seconds"),
        ("SUBMIT_TIMEOUT_SECONDS", "submit_timeout_seconds"),
        ("CANCEL_TIMEOUT_SECONDS", "cancel_timeout_seconds"),
        ("FILL_TIMEOUT_SECONDS", "fill_timeout_seconds"),
        ("TRADE_TIMEOUT_SECONDS", "trade_timeout_seconds"),
    ):
        if os.environ.get(env_name):
            setattr(trading, attr, float(os.environ[env_name]))
    if os.environ.get("FLATTEN_NAKED_LEGS"):
        trading.flatten_naked_legs = os.environ["FLATTEN_NAKED_LEGS"].lower() in ("1", "true", "yes")
    if os.environ.get("REDEEM_ON_SETTLEMENT"):
        trading.redeem_on_settlement = os.environ["REDEEM_ON_SETTLEMENT"].lower() in ("1", "true", "yes")

    connection = config.connection
    if os.environ.get("CLOB_REST_URL"):
        connection.clob_rest_url = os.environ["CLOB_REST_URL"]
    if os.environ.get("GAMMA_API_URL"):
        connection.gamma_api_url = os.environ["GAMMA_API_URL"]
    if os.environ.get("REST_TIMEOUT_SECONDS"):
        connection.rest_timeout_seconds = int(os.environ["REST_TIMEOUT_SECONDS"])

    return config
