"""Core interfaces for the trading bot."""

from typing import Protocol, runtime_checkable

from .types import (
    MarketFeatures,
    Position,
    SearchFilters,
    TokenIdentity,
    TokenSnapshot,
    TradeDecision,
    Watchlist,
    WatchlistToken,
)


class MarketDataSource(Protocol):
    """Market data source protocol."""

    async def trending(
        self, filters: SearchFilters | None = None
    ) -> list[TokenSnapshot]:
        """Return trending token snapshots matching the filters."""
        ...

    async def token_by_symbol(
        self, symbol: str, chain_id: str | None = None
    ) -> TokenSnapshot | None:
        """Look up the most liquid pair for a symbol."""
        ...


@runtime_checkable
class DecisionEngine(Protocol):
    """Strategy decision protocol."""

    async def evaluate(
        self, token: TokenIdentity, features: MarketFeatures
    ) -> TradeDecision:
        """Score a token and return a trade recommendation."""
        ...


class PositionStore(Protocol):
    """Position persistence protocol."""

    async def list_active(self) -> list[Position]:
        """Load all active positions."""
        ...

    async def create(self, position: Position) -> Position:
        """Persist a new position."""
        ...


class WatchlistStore(Protocol):
    """Watchlist persistence protocol."""

    async def list_all(self) -> list[Watchlist]:
        """Load all watchlists."""
        ...

    async def list_tokens(self, watchlist_id: int) -> list[WatchlistToken]:
        """Load the tokens of one watchlist."""
        ...
