"""Tests for the rule-based decision engine."""

import pytest

from dexbot.core.interfaces import DecisionEngine
from dexbot.core.types import MarketFeatures, StrategyProfile, TokenIdentity
from dexbot.strategies.rules import PROFILE_RULES, EntryRules, RuleBasedEngine

TOKEN = TokenIdentity(symbol="BONK", name="Bonk", address="bonk-pair")


def make_features(**overrides) -> MarketFeatures:
    data = {
        "price": 0.0006,
        "volume_24h": 500_000.0,
        "market_cap": 800_000.0,
        "price_change_24h": 12.0,
        "liquidity": 120_000.0,
        "age_hours": 48.0,
    }
    data.update(overrides)
    return MarketFeatures(**data)


def test_engine_satisfies_protocol() -> None:
    """Test the engine can be plugged into the orchestrator."""
    assert isinstance(RuleBasedEngine(), DecisionEngine)


@pytest.mark.asyncio
async def test_passing_token_accepted() -> None:
    """Test a token meeting every threshold is accepted with full confidence."""
    decision = await RuleBasedEngine().evaluate(TOKEN, make_features())

    assert decision.accept is True
    assert decision.confidence == 1.0
    assert decision.suggested_size is None
    assert "balanced" in decision.rationale


@pytest.mark.asyncio
async def test_low_liquidity_rejected() -> None:
    """Test a failed rule lowers confidence and rejects."""
    decision = await RuleBasedEngine().evaluate(TOKEN, make_features(liquidity=1_000.0))

    assert decision.accept is False
    assert decision.confidence == pytest.approx(0.6)
    assert "Liquidity too low" in decision.rationale


@pytest.mark.asyncio
async def test_every_rule_failing() -> None:
    """Test confidence never drops below zero."""
    features = make_features(
        volume_24h=10.0, liquidity=10.0, market_cap=10.0, age_hours=0.1
    )

    decision = await RuleBasedEngine().evaluate(TOKEN, features)

    assert decision.accept is False
    assert decision.confidence == pytest.approx(0.0)
    assert decision.rationale.count(";") == 3


@pytest.mark.asyncio
async def test_profiles_differ() -> None:
    """Test a mid-cap token passes aggressive rules but not conservative ones."""
    features = make_features(market_cap=3_000_000.0, volume_24h=20_000.0, liquidity=15_000.0)

    aggressive = await RuleBasedEngine(StrategyProfile.AGGRESSIVE).evaluate(TOKEN, features)
    conservative = await RuleBasedEngine("conservative").evaluate(TOKEN, features)

    assert aggressive.accept is True
    assert conservative.accept is False


@pytest.mark.asyncio
async def test_explicit_rules_override_profile() -> None:
    """Test custom thresholds replace the profile defaults."""
    engine = RuleBasedEngine(rules=EntryRules(1.0, 1.0, 1e12, 1.0, min_age_hours=0.0))

    decision = await engine.evaluate(TOKEN, make_features(market_cap=50_000_000.0))

    assert decision.accept is True
    assert engine.rules is not PROFILE_RULES[StrategyProfile.BALANCED]
