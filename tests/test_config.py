"""Tests for configuration management."""

import os
import tempfile
import textwrap
from datetime import timedelta

import pytest
from pydantic import ValidationError

from dexbot.config.settings import AppSettings, load_settings
from dexbot.core.types import StrategyProfile


def _write_yaml(content: str) -> str:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write(textwrap.dedent(content))
        return f.name


def test_app_settings_defaults() -> None:
    """Test that AppSettings has correct defaults."""
    settings = AppSettings(env="dev")

    assert settings.env == "dev"
    assert settings.dexscreener_base == "https://api.dexscreener.com/latest/dex"
    assert settings.request_spacing_ms == 1000
    assert settings.cache_ttl_seconds == 300
    assert settings.detail_cache_ttl_seconds == 1800
    assert settings.trending_chains == ["solana", "ethereum", "bsc"]
    assert settings.trending_chain == "solana"
    assert settings.trending_min_volume_usd == 1_000_000.0
    assert settings.trending_min_market_cap_usd == 150_000.0
    assert settings.max_positions == 5
    assert settings.max_investment_usd == 1000.0
    assert settings.strategy_profile is StrategyProfile.BALANCED
    assert settings.prioritize_watchlisted is True
    assert settings.clip_to_headroom is True
    assert settings.decision_engine is None
    assert settings.database_url == "sqlite+aiosqlite:///./bot.sqlite"
    assert settings.db_path == "./bot.sqlite"


def test_app_settings_validation() -> None:
    """Test that AppSettings validates fields."""
    with pytest.raises(ValidationError):
        AppSettings()

    with pytest.raises(ValidationError):
        AppSettings(env="invalid")

    with pytest.raises(ValidationError):
        AppSettings(env="dev", max_positions=0)

    with pytest.raises(ValidationError):
        AppSettings(env="dev", max_investment_usd=0)

    with pytest.raises(ValidationError):
        AppSettings(env="dev", strategy_profile="reckless")


def test_to_bot_config() -> None:
    """Test building the orchestrator configuration."""
    settings = AppSettings(
        env="paper",
        poll_interval_seconds=15,
        watchlist_poll_interval_seconds=5,
        max_positions=3,
        max_investment_usd=2500.0,
        strategy_profile="aggressive",
        prioritize_watchlisted=False,
    )

    config = settings.to_bot_config()

    assert config.poll_interval == timedelta(seconds=15)
    assert config.watchlist_poll_interval == timedelta(seconds=5)
    assert config.max_positions == 3
    assert config.max_investment == 2500.0
    assert config.strategy_profile is StrategyProfile.AGGRESSIVE
    assert config.prioritize_watchlisted is False


def test_trending_filters() -> None:
    """Test building the general scan floor filter."""
    settings = AppSettings(
        env="dev",
        trending_chain=None,
        trending_min_volume_usd=5000.0,
        trending_min_market_cap_usd=1000.0,
    )

    filters = settings.trending_filters()

    assert filters.chain_id is None
    assert filters.min_volume == 5000.0
    assert filters.min_market_cap == 1000.0


def test_load_settings_paper_profile() -> None:
    """Test loading paper profile configuration."""
    yaml_path = _write_yaml("""
        max_positions: 3
        max_investment_usd: 750.0
        strategy_profile: conservative
        poll_interval_seconds: 120
        database_url: "sqlite+aiosqlite:///./paper_bot.sqlite"
        decision_engine: "strategies.engine:DecisionEngine"
        """)

    try:
        settings = load_settings("paper", yaml_path)

        assert settings.env == "paper"
        assert settings.max_positions == 3
        assert settings.max_investment_usd == 750.0
        assert settings.strategy_profile is StrategyProfile.CONSERVATIVE
        assert settings.poll_interval_seconds == 120
        assert settings.db_path == "./paper_bot.sqlite"
        assert settings.decision_engine == "strategies.engine:DecisionEngine"
    finally:
        os.unlink(yaml_path)


def test_load_settings_empty_file() -> None:
    """Test that an empty YAML file yields defaults."""
    yaml_path = _write_yaml("")

    try:
        settings = load_settings("dev", yaml_path)
        assert settings.env == "dev"
        assert settings.max_positions == 5
    finally:
        os.unlink(yaml_path)


def test_load_settings_invalid_profile() -> None:
    """Test that load_settings rejects invalid profiles."""
    yaml_path = _write_yaml("max_positions: 3\n")

    try:
        with pytest.raises(ValueError, match="Invalid profile: invalid"):
            load_settings("invalid", yaml_path)
    finally:
        os.unlink(yaml_path)


def test_load_settings_file_not_found() -> None:
    """Test that load_settings handles missing files."""
    with pytest.raises(FileNotFoundError, match="Configuration file not found"):
        load_settings("dev", "nonexistent.yaml")


def test_load_settings_invalid_yaml() -> None:
    """Test that load_settings handles invalid YAML."""
    yaml_path = _write_yaml("invalid: yaml: content: [\n")

    try:
        with pytest.raises(ValueError, match="Invalid YAML configuration"):
            load_settings("dev", yaml_path)
    finally:
        os.unlink(yaml_path)


def test_load_settings_validation_error() -> None:
    """Test that load_settings handles validation errors."""
    yaml_path = _write_yaml('max_investment_usd: "invalid_float"\n')

    try:
        with pytest.raises(ValidationError):
            load_settings("dev", yaml_path)
    finally:
        os.unlink(yaml_path)


def test_settings_environment_overrides(monkeypatch) -> None:
    """Test that environment variables override defaults."""
    monkeypatch.setenv("MAX_POSITIONS", "7")
    monkeypatch.setenv("STRATEGY_PROFILE", "aggressive")

    settings = AppSettings(env="dev")

    assert settings.max_positions == 7
    assert settings.strategy_profile is StrategyProfile.AGGRESSIVE
