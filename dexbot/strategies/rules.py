"""Rule-based reference decision engine."""

from typing import NamedTuple

import structlog

from ..core.types import MarketFeatures, StrategyProfile, TokenIdentity, TradeDecision

logger = structlog.get_logger(__name__)


class EntryRules(NamedTuple):
    min_volume_usd: float
    min_market_cap_usd: float
    max_market_cap_usd: float
    min_liquidity_usd: float
    min_age_hours: float = 0.5


PROFILE_RULES = {
    StrategyProfile.AGGRESSIVE: EntryRules(10_000.0, 50_000.0, 5_000_000.0, 10_000.0),
    StrategyProfile.BALANCED: EntryRules(50_000.0, 100_000.0, 2_000_000.0, 25_000.0),
    StrategyProfile.CONSERVATIVE: EntryRules(100_000.0, 200_000.0, 1_000_000.0, 50_000.0),
}


class RuleBasedEngine:
    """Decision engine that accepts tokens passing fixed entry thresholds.

    Every failed rule lowers the confidence; a token is accepted only when it
    passes all of them. Sizing is left to the orchestrator.
    """

    def __init__(
        self,
        profile: StrategyProfile = StrategyProfile.BALANCED,
        rules: EntryRules | None = None,
    ) -> None:
        """Initialize rule-based engine.

        Args:
            profile: Strategy profile selecting the default thresholds
            rules: Explicit thresholds, overriding the profile
        """
        self.profile = StrategyProfile(profile)
        self.rules = rules or PROFILE_RULES[self.profile]

    async def evaluate(
        self, token: TokenIdentity, features: MarketFeatures
    ) -> TradeDecision:
        """Score a token against the entry thresholds."""
        rules = self.rules
        reasons = []
        score = 1.0

        if features.volume_24h < rules.min_volume_usd:
            reasons.append(
                f"Volume too low: ${features.volume_24h:.2f} < ${rules.min_volume_usd:.2f}"
            )
            score -= 0.3

        if features.liquidity < rules.min_liquidity_usd:
            reasons.append(
                f"Liquidity too low: ${features.liquidity:.2f} < ${rules.min_liquidity_usd:.2f}"
            )
            score -= 0.4

        if not rules.min_market_cap_usd <= features.market_cap <= rules.max_market_cap_usd:
            reasons.append(
                f"Market cap out of range: ${features.market_cap:.2f} not in "
                f"${rules.min_market_cap_usd:.2f}-${rules.max_market_cap_usd:.2f}"
            )
            score -= 0.2

        if features.age_hours < rules.min_age_hours:
            reasons.append(
                f"Token too new: {features.age_hours:.2f}h < {rules.min_age_hours:.2f}h"
            )
            score -= 0.1

        accepted = not reasons
        if accepted:
            reasons.append(f"Passed {self.profile.value} entry criteria")

        logger.debug(
            "Rule evaluation",
            symbol=token.symbol,
            profile=self.profile.value,
            accepted=accepted,
            score=score,
            reasons=reasons,
        )

        return TradeDecision(
            accept=accepted, confidence=max(score, 0.0), rationale="; ".join(reasons)
        )
