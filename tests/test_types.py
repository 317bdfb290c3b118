"""Tests for core data types."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from dexbot.core.errors import AnalysisFailure, InvalidQuery, NotFound, ProviderError
from dexbot.core.types import (
    BotConfig,
    BotStatus,
    Position,
    PositionStatus,
    SearchFilters,
    StrategyProfile,
    TokenSnapshot,
    TradeDecision,
)


def make_snapshot(**overrides) -> TokenSnapshot:
    data = {
        "symbol": "BONK",
        "name": "Bonk",
        "price_usd": 0.0006,
        "price_change_24h": 15.7,
        "volume_24h": 1_200_000.0,
        "market_cap": 500_000.0,
        "liquidity_usd": 150_000.0,
        "age_hours": 24.0,
        "pair_address": "0xabcdef1234567890",
        "chain_id": "solana",
        "dex_id": "raydium",
    }
    data.update(overrides)
    return TokenSnapshot(**data)


def test_bot_config_defaults() -> None:
    """Test BotConfig defaults and immutability."""
    config = BotConfig()

    assert config.poll_interval == timedelta(seconds=60)
    assert config.watchlist_poll_interval == timedelta(seconds=30)
    assert config.max_positions == 5
    assert config.max_investment == 1000.0
    assert config.strategy_profile is StrategyProfile.BALANCED
    assert config.prioritize_watchlisted is True

    with pytest.raises(ValidationError):
        config.max_positions = 10


def test_bot_config_validation() -> None:
    """Test BotConfig rejects out-of-range values and unknown fields."""
    with pytest.raises(ValidationError):
        BotConfig(max_positions=0)

    with pytest.raises(ValidationError):
        BotConfig(max_investment=0)

    with pytest.raises(ValidationError):
        BotConfig(poll_interval=timedelta(0))

    with pytest.raises(ValidationError):
        BotConfig(strategy_profile="yolo")

    with pytest.raises(ValidationError):
        BotConfig(max_leverage=10)


def test_bot_config_interval_from_seconds() -> None:
    """Test durations accept plain seconds."""
    config = BotConfig(poll_interval=15, watchlist_poll_interval=2.5)

    assert config.poll_interval == timedelta(seconds=15)
    assert config.watchlist_poll_interval == timedelta(seconds=2.5)


def test_bot_status_defaults() -> None:
    """Test BotStatus starts stopped and empty."""
    status = BotStatus()

    assert status.running is False
    assert status.last_poll_timestamp is None
    assert status.open_position_count == 0
    assert status.total_value == 0.0
    assert status.last_error is None


def test_token_snapshot_is_immutable() -> None:
    """Test TokenSnapshot is frozen."""
    snapshot = make_snapshot()

    assert snapshot.symbol == "BONK"
    assert snapshot.token_address is None
    assert snapshot.ts.tzinfo is not None

    with pytest.raises(ValidationError):
        snapshot.price_usd = 1.0


def test_search_filters_matches() -> None:
    """Test every filter bound."""
    snapshot = make_snapshot()

    assert SearchFilters().matches(snapshot)
    assert SearchFilters(chain_id="solana", min_volume=1_000_000).matches(snapshot)
    assert not SearchFilters(chain_id="ethereum").matches(snapshot)
    assert not SearchFilters(min_volume=2_000_000).matches(snapshot)
    assert not SearchFilters(max_volume=1_000_000).matches(snapshot)
    assert not SearchFilters(min_age_hours=48).matches(snapshot)
    assert not SearchFilters(max_age_hours=12).matches(snapshot)
    assert not SearchFilters(min_market_cap=600_000).matches(snapshot)
    assert not SearchFilters(max_market_cap=400_000).matches(snapshot)
    assert not SearchFilters(min_liquidity=200_000).matches(snapshot)


def test_position_notional_value() -> None:
    """Test notional value uses the current price."""
    position = Position(
        id="pos_1",
        strategy=StrategyProfile.BALANCED,
        pool_address="pool",
        base_symbol="SOL",
        quote_symbol="USDC",
        base_amount=10.0,
        quote_amount=200.0,
        entry_price=20.0,
        current_price=25.0,
        opened_at=datetime.now(UTC),
    )

    assert position.status is PositionStatus.ACTIVE
    assert position.notional_value == 250.0


def test_trade_decision_validation() -> None:
    """Test TradeDecision bounds."""
    decision = TradeDecision(accept=True, confidence=0.8)

    assert decision.suggested_size is None
    assert decision.rationale == ""

    with pytest.raises(ValidationError):
        TradeDecision(accept=True, confidence=1.5)

    with pytest.raises(ValidationError):
        TradeDecision(accept=True, confidence=-0.1)

    with pytest.raises(ValidationError):
        TradeDecision(accept=True, confidence=0.5, suggested_size=0)


def test_error_taxonomy() -> None:
    """Test error types carry their context."""
    error = ProviderError(503, "Service Unavailable")
    assert error.status_code == 503
    assert "503" in str(error)

    not_found = NotFound("pairs/solana/abc")
    assert isinstance(not_found, ProviderError)
    assert not_found.status_code == 404

    assert issubclass(InvalidQuery, ValueError)

    failure = AnalysisFailure("PEPE", "boom")
    assert failure.symbol == "PEPE"
    assert "PEPE" in str(failure)
