"""Core data types for the trading bot."""

from datetime import UTC, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class StrategyProfile(str, Enum):
    """Risk profile a position is opened under."""

    AGGRESSIVE = "aggressive"
    BALANCED = "balanced"
    CONSERVATIVE = "conservative"


class PositionStatus(str, Enum):
    """Lifecycle status of a position."""

    ACTIVE = "active"
    PENDING = "pending"
    CLOSED = "closed"


class TrendingMode(str, Enum):
    """Optional ordering applied to trending results."""

    GAINERS = "gainers"
    LOSERS = "losers"
    NEW = "new"


class BotConfig(BaseModel):
    """Orchestrator configuration, read once at the start of every cycle."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    poll_interval: timedelta = Field(
        default=timedelta(seconds=60),
        gt=timedelta(0),
        description="General cycle interval",
    )
    watchlist_poll_interval: timedelta = Field(
        default=timedelta(seconds=30),
        gt=timedelta(0),
        description="Watchlist cycle interval",
    )
    max_positions: int = Field(default=5, ge=1, description="Max concurrent positions")
    max_investment: float = Field(
        default=1000.0, gt=0, description="Total capital cap across positions (USD)"
    )
    strategy_profile: StrategyProfile = Field(
        default=StrategyProfile.BALANCED, description="Strategy profile"
    )
    prioritize_watchlisted: bool = Field(
        default=True, description="Run the watchlist cycle"
    )


class BotStatus(BaseModel):
    """Snapshot of the orchestrator state exposed to callers."""

    running: bool = False
    last_poll_timestamp: datetime | None = None
    open_position_count: int = 0
    total_value: float = 0.0
    last_error: str | None = None


class TokenSnapshot(BaseModel):
    """Point-in-time market read for one token pair."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(description="Base token symbol")
    name: str = Field(description="Base token display name")
    price_usd: float = Field(description="Price in USD")
    price_change_24h: float = 0.0
    price_change_6h: float = 0.0
    price_change_1h: float = 0.0
    volume_24h: float = 0.0
    volume_1h: float = 0.0
    volume_5m: float = 0.0
    market_cap: float = 0.0
    liquidity_usd: float = 0.0
    age_hours: float = Field(default=0.0, description="Hours since pair creation")
    holders: int = 0
    transactions_24h: int = 0
    pair_address: str = Field(description="Pair (pool) address")
    chain_id: str = Field(default="solana", description="Chain identifier")
    dex_id: str = Field(default="unknown", description="Venue identifier")
    token_address: str | None = Field(default=None, description="Base token address")
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SearchFilters(BaseModel):
    """Client-side filters applied to provider results."""

    chain_id: str | None = None
    min_volume: float | None = None
    max_volume: float | None = None
    min_age_hours: float | None = None
    max_age_hours: float | None = None
    min_market_cap: float | None = None
    max_market_cap: float | None = None
    min_liquidity: float | None = None
    trending: TrendingMode | None = None

    def matches(self, snap: TokenSnapshot) -> bool:
        """Return True if the snapshot passes every configured bound."""
        if self.chain_id and snap.chain_id != self.chain_id:
            return False
        if self.min_volume is not None and snap.volume_24h < self.min_volume:
            return False
        if self.max_volume is not None and snap.volume_24h > self.max_volume:
            return False
        if self.min_age_hours is not None and snap.age_hours < self.min_age_hours:
            return False
        if self.max_age_hours is not None and snap.age_hours > self.max_age_hours:
            return False
        if self.min_market_cap is not None and snap.market_cap < self.min_market_cap:
            return False
        if self.max_market_cap is not None and snap.market_cap > self.max_market_cap:
            return False
        if self.min_liquidity is not None and snap.liquidity_usd < self.min_liquidity:
            return False
        return True


class SearchResult(BaseModel):
    """Result of a token search."""

    model_config = ConfigDict(frozen=True)

    tokens: tuple[TokenSnapshot, ...] = ()
    total_count: int = 0
    has_more: bool = False


class Watchlist(BaseModel):
    """User-curated named list of tokens."""

    id: int
    name: str
    created_at: datetime
    updated_at: datetime


class WatchlistToken(BaseModel):
    """Token entry belonging to a watchlist."""

    id: int
    watchlist_id: int
    token_symbol: str
    token_name: str
    pair_address: str
    chain_id: str = "solana"
    added_at: datetime


class Position(BaseModel):
    """Trading position opened by the orchestrator."""

    id: str
    strategy: StrategyProfile
    pool_address: str
    base_symbol: str
    quote_symbol: str
    base_amount: float
    quote_amount: float
    entry_price: float
    current_price: float
    opened_at: datetime
    status: PositionStatus = PositionStatus.ACTIVE
    pnl: float = 0.0
    apy: float = 0.0

    @property
    def notional_value(self) -> float:
        """Current value of the base leg in USD."""
        return self.base_amount * self.current_price


class TokenIdentity(BaseModel):
    """Token identity handed to the decision engine."""

    symbol: str
    name: str
    address: str


class MarketFeatures(BaseModel):
    """Market feature bundle handed to the decision engine."""

    price: float
    volume_24h: float
    market_cap: float
    price_change_24h: float
    liquidity: float
    age_hours: float


class TradeDecision(BaseModel):
    """Recommendation returned by the decision engine."""

    accept: bool = Field(description="Whether to enter a position")
    confidence: float = Field(ge=0.0, le=1.0, description="Confidence (0-1)")
    suggested_size: float | None = Field(
        default=None, gt=0, description="Suggested position size in USD"
    )
    rationale: str = Field(default="", description="Free-text reasoning")
