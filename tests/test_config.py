"""Tests for configuration loading and validation."""

from decimal import Decimal

import pytest

from updown_arb.config import Config, MarketConfig, TradingConfig, TradingMode, load_config_from_env

ENV_VARS = [
    "TRADING_MODE", "MARKET_ASSETS", "MARKET_WINDOW_MINUTES", "MIN_PROFIT_THRESHOLD",
    "MAX_POSITION_SIZE", "CHECK_INTERVAL_MS", "STALENESS_MS", "MIN_LEG_PRICE",
    "FILL_TIMEOUT_SECONDS", "FLATTEN_NAKED_LEGS", "REDEEM_ON_SETTLEMENT", "POLYMARKET_PRIVATE_KEY",
    "SOL_CONDITION_ID", "SOL_UP_TOKEN_ID", "SOL_DOWN_TOKEN_ID",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_default_config_is_valid_simulation(self):
        config = load_config_from_env()

        assert config.mode is TradingMode.SIMULATION
        assert config.is_simulation
        assert [m.asset for m in config.markets] == ["sol", "btc"]
        assert config.trading.min_profit_threshold == Decimal("0.01")
        assert config.trading.max_position_size == Decimal("100")
        assert config.trading.check_interval_ms == 1000
        assert config.validate() == []

    def test_staleness_defaults_to_two_intervals(self):
        trading = TradingConfig(check_interval_ms=250)
        assert trading.staleness_seconds == 0.5
        trading.staleness_ms = 900
        assert trading.staleness_seconds == 0.9


class TestEnvironment:
    def test_values_from_env(self, monkeypatch):
        monkeypatch.setenv("MARKET_ASSETS", "eth, xrp")
        monkeypatch.setenv("MIN_PROFIT_THRESHOLD", "0.02")
        monkeypatch.setenv("MAX_POSITION_SIZE", "25.5")
        monkeypatch.setenv("CHECK_INTERVAL_MS", "250")
        monkeypatch.setenv("MIN_LEG_PRICE", "0.6")
        monkeypatch.setenv("FILL_TIMEOUT_SECONDS", "3")
        monkeypatch.setenv("FLATTEN_NAKED_LEGS", "true")

        config = load_config_from_env()

        assert [m.asset for m in config.markets] == ["eth", "xrp"]
        assert config.trading.min_profit_threshold == Decimal("0.02")
        assert config.trading.max_position_size == Decimal("25.5")
        assert config.trading.check_interval_ms == 250
        assert config.trading.min_leg_price == Decimal("0.6")
        assert config.trading.fill_timeout_seconds == 3.0
        assert config.trading.flatten_naked_legs is True

    def test_redeem_on_settlement_can_be_disabled(self, monkeypatch):
        assert load_config_from_env().trading.redeem_on_settlement is True

        monkeypatch.setenv("REDEEM_ON_SETTLEMENT", "false")

        assert load_config_from_env().trading.redeem_on_settlement is False

    def test_pinned_market_from_env(self, monkeypatch):
        monkeypatch.setenv("SOL_CONDITION_ID", "0xabc")
        monkeypatch.setenv("SOL_UP_TOKEN_ID", "111")
        monkeypatch.setenv("SOL_DOWN_TOKEN_ID", "222")

        config = load_config_from_env()

        assert config.markets[0].is_pinned
        assert not config.markets[1].is_pinned

    def test_bad_decimal_raises(self, monkeypatch):
        monkeypatch.setenv("MIN_PROFIT_THRESHOLD", "lots")
        with pytest.raises(ValueError):
            load_config_from_env()

    def test_unknown_mode_raises(self, monkeypatch):
        monkeypatch.setenv("TRADING_MODE", "paper")
        with pytest.raises(ValueError):
            load_config_from_env()


class TestValidation:
    def test_production_requires_private_key(self):
        config = Config(mode=TradingMode.PRODUCTION, private_key="")
        assert any("POLYMARKET_PRIVATE_KEY" in e for e in config.validate())

    def test_exactly_two_distinct_markets(self):
        config = Config(markets=[MarketConfig("sol")])
        assert config.validate()

        config = Config(markets=[MarketConfig("sol"), MarketConfig("SOL")])
        assert config.validate()

    def test_interval_must_be_positive(self):
        config = Config(trading=TradingConfig(check_interval_ms=0))
        assert "check_interval_ms must be >= 1" in config.validate()

    def test_thresholds(self):
        config = Config(trading=TradingConfig(
            min_profit_threshold=Decimal("-0.01"),
            max_position_size=Decimal("0"),
            flatten_limit_price=Decimal("1"),
        ))
        errors = config.validate()
        assert len(errors) == 3
