"""SQLite persistence shared by the position and watchlist stores."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import aiosqlite
import structlog

logger = structlog.get_logger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS positions (
        id TEXT PRIMARY KEY,
        strategy TEXT NOT NULL,
        pool_address TEXT NOT NULL,
        base_symbol TEXT NOT NULL,
        quote_symbol TEXT NOT NULL,
        base_amount REAL NOT NULL,
        quote_amount REAL NOT NULL,
        entry_price REAL NOT NULL,
        current_price REAL NOT NULL,
        opened_ts REAL NOT NULL,
        status TEXT NOT NULL CHECK(status IN ('active', 'pending', 'closed')),
        pnl REAL NOT NULL DEFAULT 0,
        apy REAL NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS watchlists (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        created_ts REAL NOT NULL,
        updated_ts REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS watchlist_tokens (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        watchlist_id INTEGER NOT NULL,
        token_symbol TEXT NOT NULL,
        token_name TEXT NOT NULL,
        pair_address TEXT NOT NULL,
        chain_id TEXT NOT NULL DEFAULT 'solana',
        added_ts REAL NOT NULL,
        UNIQUE (watchlist_id, token_symbol),
        FOREIGN KEY (watchlist_id) REFERENCES watchlists(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_positions_status ON positions(status)",
    "CREATE INDEX IF NOT EXISTS idx_positions_strategy ON positions(strategy)",
    "CREATE INDEX IF NOT EXISTS idx_positions_opened_ts ON positions(opened_ts)",
    """
    CREATE INDEX IF NOT EXISTS idx_watchlist_tokens_symbol
    ON watchlist_tokens(token_symbol)
    """,
)


def to_ts(value: datetime) -> float:
    """Convert a datetime to an epoch timestamp."""
    return value.timestamp()


def from_ts(value: float) -> datetime:
    """Convert an epoch timestamp to an aware UTC datetime."""
    return datetime.fromtimestamp(value, tz=UTC)


class SQLiteStorage:
    """SQLite-based storage base class.

    A connection is opened per call, so every write is committed before the
    call returns and is visible to the next read.
    """

    def __init__(self, db_path: str = "bot.sqlite") -> None:
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        logger.info("SQLite storage initialized", db_path=db_path, store=type(self).__name__)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection with foreign keys and row access by name."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            yield db

    async def initialize(self) -> None:
        """Initialize database tables."""
        async with self._connect() as db:
            for statement in SCHEMA:
                await db.execute(statement)
            await db.commit()

        logger.info("Database tables initialized", db_path=self.db_path)

    async def close(self) -> None:
        """Close storage (cleanup if needed)."""
        logger.info("Storage closed", db_path=self.db_path)

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
