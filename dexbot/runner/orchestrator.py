"""Bot orchestrator: opportunity scan, watchlist scan and position opening."""

import asyncio
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import ValidationError

from ..core.errors import AnalysisFailure
from ..core.interfaces import (
    DecisionEngine,
    MarketDataSource,
    PositionStore,
    WatchlistStore,
)
from ..core.types import (
    BotConfig,
    BotStatus,
    MarketFeatures,
    Position,
    PositionStatus,
    SearchFilters,
    TokenIdentity,
    TokenSnapshot,
    TradeDecision,
)
from .scheduler import PeriodicTask

logger = structlog.get_logger(__name__)

# Decision policy
CONFIDENCE_THRESHOLD = 0.7
WATCHLIST_CONFIDENCE_BOOST = 1.2
WATCHLIST_BOOST_NOTE = " (watchlisted token - priority boost)"

# Floor applied to the general opportunity scan
TRENDING_CHAIN = "solana"
TRENDING_MIN_VOLUME_USD = 1_000_000.0
TRENDING_MIN_MARKET_CAP_USD = 150_000.0

QUOTE_TOKEN_SYMBOL = "USDC"


def default_trending_filters() -> SearchFilters:
    """Floor filter used by the general cycle."""
    return SearchFilters(
        chain_id=TRENDING_CHAIN,
        min_volume=TRENDING_MIN_VOLUME_USD,
        min_market_cap=TRENDING_MIN_MARKET_CAP_USD,
    )


def apply_watchlist_boost(decision: TradeDecision) -> TradeDecision:
    """Boost the confidence of an accepted decision for a watchlisted token.

    The boost is multiplicative, capped at 1.0, and recorded in the rationale.
    """
    if not decision.accept:
        return decision

    return decision.model_copy(
        update={
            "confidence": min(decision.confidence * WATCHLIST_CONFIDENCE_BOOST, 1.0),
            "rationale": decision.rationale + WATCHLIST_BOOST_NOTE,
        }
    )


def should_open(decision: TradeDecision) -> bool:
    """Whether a decision clears the entry threshold."""
    return decision.accept and decision.confidence > CONFIDENCE_THRESHOLD


def total_value(positions: list[Position]) -> float:
    """Sum of base amount times current price over active positions."""
    return sum(
        p.notional_value for p in positions if p.status is PositionStatus.ACTIVE
    )


class BotOrchestrator:
    """Scheduler driving market data, decisions and position creation.

    Two cycles run independently: the general scan over trending tokens and the
    watchlist scan. Both are started and stopped together.
    """

    def __init__(
        self,
        market_data: MarketDataSource,
        decision_engine: DecisionEngine,
        positions: PositionStore,
        watchlists: WatchlistStore,
        config: BotConfig,
        trending_filters: SearchFilters | None = None,
        clip_to_headroom: bool = True,
    ) -> None:
        """Initialize orchestrator.

        Args:
            market_data: Market data client
            decision_engine: Strategy decision engine
            positions: Position store
            watchlists: Watchlist store
            config: Initial bot configuration
            trending_filters: Floor filter for the general scan
            clip_to_headroom: Clip new positions to the capital left under
                max_investment instead of to max_investment alone
        """
        self.market_data = market_data
        self.decision_engine = decision_engine
        self.positions = positions
        self.watchlists = watchlists
        self.config = config
        self.trending_filters = trending_filters or default_trending_filters()
        self.clip_to_headroom = clip_to_headroom

        self._status = BotStatus()
        self._open_lock = asyncio.Lock()

        self._general_task = PeriodicTask(
            "general-cycle",
            self.run_general_cycle,
            lambda: self.config.poll_interval.total_seconds(),
        )
        self._watchlist_task = PeriodicTask(
            "watchlist-cycle",
            self.run_watchlist_cycle,
            lambda: self.config.watchlist_poll_interval.total_seconds(),
        )

        logger.info(
            "Bot orchestrator initialized",
            strategy_profile=config.strategy_profile.value,
            max_positions=config.max_positions,
            max_investment=config.max_investment,
            clip_to_headroom=clip_to_headroom,
        )

    @property
    def is_running(self) -> bool:
        """Whether the bot is running."""
        return self._status.running

    async def start(self) -> None:
        """Start both cycles. Calling it while running is a no-op."""
        if self._status.running:
            logger.info("Bot is already running")
            return

        logger.info("Starting bot")
        self._status.running = True
        self._general_task.start()
        self._watchlist_task.start()

    async def stop(self) -> None:
        """Stop both cycles, letting an in-flight cycle finish."""
        if not self._status.running:
            logger.info("Bot is not running")
            return

        logger.info("Stopping bot")
        self._status.running = False
        await self._general_task.stop()
        await self._watchlist_task.stop()
        logger.info("Bot stopped")

    def get_status(self) -> BotStatus:
        """Return a copy of the current status."""
        return self._status.model_copy()

    def update_config(
        self, changes: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> BotConfig:
        """Merge changes into the configuration.

        The new configuration is validated as a whole and takes effect on the
        next cycle; a cycle in progress keeps the configuration it started with.

        Raises:
            ValidationError: If the merged configuration is invalid
        """
        merged = {**self.config.model_dump(), **dict(changes or {}), **kwargs}
        self.config = BotConfig.model_validate(merged)

        logger.info("Configuration updated", config=self.config.model_dump(mode="json"))
        return self.config

    async def run_general_cycle(self) -> None:
        """Scan trending tokens for opportunities."""
        config = self.config
        self._status.last_poll_timestamp = datetime.now(UTC)
        logger.info("Polling for market opportunities")

        try:
            trending = await self.market_data.trending(self.trending_filters)

            active = await self.positions.list_active()
            held = {p.base_symbol for p in active}
            open_count = len(active)

            for snapshot in trending:
                if open_count >= config.max_positions:
                    logger.info(
                        "Position cap reached, skipping analysis",
                        open_positions=open_count,
                        max_positions=config.max_positions,
                    )
                    break
                if snapshot.symbol in held:
                    continue

                position = await self.analyze_token(snapshot, config=config)
                if position is not None:
                    held.add(position.base_symbol)
                    open_count += 1

            await self._refresh_status()

        except Exception as e:
            logger.error("Error in polling cycle", error=str(e))
            self._status.last_error = str(e) or type(e).__name__

    async def run_watchlist_cycle(self) -> None:
        """Scan watchlisted tokens with priority treatment."""
        config = self.config
        if not config.prioritize_watchlisted:
            logger.debug("Watchlist priority disabled, skipping cycle")
            return

        logger.info("Polling watchlisted tokens")

        try:
            watchlists = await self.watchlists.list_all()

            active = await self.positions.list_active()
            held = {p.base_symbol for p in active}
            open_count = len(active)
            seen: set[str] = set()

            for watchlist in watchlists:
                tokens = await self.watchlists.list_tokens(watchlist.id)

                for token in tokens:
                    symbol = token.token_symbol
                    if symbol in held or symbol in seen:
                        continue
                    seen.add(symbol)

                    if open_count >= config.max_positions:
                        logger.info(
                            "Position cap reached, skipping watchlisted token",
                            token_symbol=symbol,
                        )
                        continue

                    snapshot = await self.market_data.token_by_symbol(
                        symbol, chain_id=token.chain_id
                    )
                    if snapshot is None:
                        continue

                    position = await self.analyze_token(
                        snapshot, is_watchlisted=True, config=config
                    )
                    if position is not None:
                        held.add(position.base_symbol)
                        open_count += 1

            await self._refresh_status()

        except Exception as e:
            logger.error("Error polling watchlisted tokens", error=str(e))
            self._status.last_error = str(e) or type(e).__name__

    async def _refresh_status(self) -> None:
        active = await self.positions.list_active()
        self._status.open_position_count = len(active)
        self._status.total_value = total_value(active)

    async def _evaluate(self, snapshot: TokenSnapshot) -> TradeDecision:
        """Run the decision engine, normalizing every failure to AnalysisFailure."""
        try:
            token = TokenIdentity(
                symbol=snapshot.symbol,
                name=snapshot.name,
                address=snapshot.pair_address,
            )
            features = MarketFeatures(
                price=snapshot.price_usd,
                volume_24h=snapshot.volume_24h,
                market_cap=snapshot.market_cap,
                price_change_24h=snapshot.price_change_24h,
                liquidity=snapshot.liquidity_usd,
                age_hours=snapshot.age_hours,
            )
            result = await self.decision_engine.evaluate(token, features)
        except Exception as e:
            raise AnalysisFailure(snapshot.symbol, str(e)) from e

        if isinstance(result, TradeDecision):
            return result

        try:
            return TradeDecision.model_validate(result)
        except ValidationError as e:
            raise AnalysisFailure(snapshot.symbol, "malformed decision") from e

    async def analyze_token(
        self,
        snapshot: TokenSnapshot,
        is_watchlisted: bool = False,
        config: BotConfig | None = None,
    ) -> Position | None:
        """Score a token and open a position when the decision clears the bar.

        Failures are logged and treated as no trade.

        Args:
            snapshot: Token snapshot to analyze
            is_watchlisted: Apply the watchlist confidence boost
            config: Configuration of the calling cycle

        Returns:
            The opened position, or None
        """
        config = config or self.config
        logger.info(
            "Analyzing token", symbol=snapshot.symbol, watchlisted=is_watchlisted
        )

        try:
            decision = await self._evaluate(snapshot)
            if is_watchlisted:
                decision = apply_watchlist_boost(decision)

            if not should_open(decision):
                logger.debug(
                    "Decision below entry threshold",
                    symbol=snapshot.symbol,
                    accept=decision.accept,
                    confidence=decision.confidence,
                )
                return None

            return await self.open_position(snapshot, decision, config=config)

        except AnalysisFailure as e:
            logger.error("Token analysis failed", symbol=e.symbol, error=e.message)
        except Exception as e:
            logger.error("Error analyzing token", symbol=snapshot.symbol, error=str(e))
        return None

    async def open_position(
        self,
        snapshot: TokenSnapshot,
        decision: TradeDecision,
        config: BotConfig | None = None,
    ) -> Position | None:
        """Size, build and persist a new position.

        Opens are serialized and checked against the active positions read
        under the lock, so the position cap and the capital cap hold across
        both cycles.

        Returns:
            The persisted position, or None if a cap prevents it
        """
        config = config or self.config

        if snapshot.price_usd <= 0:
            logger.warning("Invalid price, not opening", symbol=snapshot.symbol)
            return None

        async with self._open_lock:
            active = await self.positions.list_active()

            if len(active) >= config.max_positions:
                logger.info(
                    "Position cap reached, not opening",
                    symbol=snapshot.symbol,
                    max_positions=config.max_positions,
                )
                return None

            if any(p.base_symbol == snapshot.symbol for p in active):
                logger.info("Position already held", symbol=snapshot.symbol)
                return None

            size = min(decision.suggested_size or config.max_investment, config.max_investment)
            if self.clip_to_headroom:
                headroom = config.max_investment - total_value(active)
                if headroom <= 0:
                    logger.info(
                        "Capital cap reached, not opening",
                        symbol=snapshot.symbol,
                        max_investment=config.max_investment,
                    )
                    return None
                size = min(size, headroom)

            position = Position(
                id=f"pos_{uuid.uuid4().hex}",
                strategy=config.strategy_profile,
                pool_address=snapshot.pair_address,
                base_symbol=snapshot.symbol,
                quote_symbol=QUOTE_TOKEN_SYMBOL,
                base_amount=size / snapshot.price_usd,
                quote_amount=size,
                entry_price=snapshot.price_usd,
                current_price=snapshot.price_usd,
                opened_at=datetime.now(UTC),
                status=PositionStatus.ACTIVE,
                pnl=0.0,
                apy=0.0,
            )
            position = await self.positions.create(position)

        logger.info(
            "Position opened",
            symbol=snapshot.symbol,
            position_id=position.id,
            size=size,
            confidence=decision.confidence,
            rationale=decision.rationale,
        )
        return position
