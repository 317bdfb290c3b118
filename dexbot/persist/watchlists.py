"""SQLite watchlist store."""

from datetime import UTC, datetime
from typing import Any

import aiosqlite
import structlog

from ..core.interfaces import WatchlistStore
from ..core.types import Watchlist, WatchlistToken
from .storage import SQLiteStorage, from_ts

logger = structlog.get_logger(__name__)

_TOKEN_COLUMNS = (
    "id, watchlist_id, token_symbol, token_name, pair_address, chain_id, added_ts"
)


def _row_to_watchlist(row: aiosqlite.Row) -> Watchlist:
    return Watchlist(
        id=row["id"],
        name=row["name"],
        created_at=from_ts(row["created_ts"]),
        updated_at=from_ts(row["updated_ts"]),
    )


def _row_to_token(row: aiosqlite.Row) -> WatchlistToken:
    return WatchlistToken(
        id=row["id"],
        watchlist_id=row["watchlist_id"],
        token_symbol=row["token_symbol"],
        token_name=row["token_name"],
        pair_address=row["pair_address"],
        chain_id=row["chain_id"],
        added_at=from_ts(row["added_ts"]),
    )


class SQLiteWatchlistStore(SQLiteStorage, WatchlistStore):
    """Named watchlists and their tokens.

    A token may sit in several watchlists; it stays watchlisted until it has
    been removed from all of them.
    """

    async def create(self, name: str) -> Watchlist:
        """Create a new watchlist."""
        now = datetime.now(UTC).timestamp()

        async with self._connect() as db:
            cursor = await db.execute(
                "INSERT INTO watchlists (name, created_ts, updated_ts) VALUES (?, ?, ?)",
                (name, now, now),
            )
            watchlist_id = cursor.lastrowid
            await db.commit()

        logger.info("Watchlist created", watchlist_id=watchlist_id, name=name)
        return Watchlist(
            id=watchlist_id, name=name, created_at=from_ts(now), updated_at=from_ts(now)
        )

    async def _fetch_watchlists(
        self, query: str, params: tuple[Any, ...] = ()
    ) -> list[Watchlist]:
        async with self._connect() as db:
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()

        return [_row_to_watchlist(row) for row in rows]

    async def _fetch_tokens(
        self, where: str = "", params: tuple[Any, ...] = ()
    ) -> list[WatchlistToken]:
        async with self._connect() as db:
            async with db.execute(
                f"SELECT {_TOKEN_COLUMNS} FROM watchlist_tokens {where} "
                "ORDER BY added_ts DESC, id DESC",
                params,
            ) as cursor:
                rows = await cursor.fetchall()

        return [_row_to_token(row) for row in rows]

    async def list_all(self) -> list[Watchlist]:
        """Load all watchlists, newest first."""
        return await self._fetch_watchlists(
            "SELECT id, name, created_ts, updated_ts FROM watchlists "
            "ORDER BY created_ts DESC, id DESC"
        )

    async def get(self, watchlist_id: int) -> Watchlist | None:
        """Load a watchlist by id."""
        watchlists = await self._fetch_watchlists(
            "SELECT id, name, created_ts, updated_ts FROM watchlists WHERE id = ?",
            (watchlist_id,),
        )
        return watchlists[0] if watchlists else None

    async def rename(self, watchlist_id: int, name: str) -> bool:
        """Rename a watchlist. Returns False if it does not exist."""
        now = datetime.now(UTC).timestamp()

        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE watchlists SET name = ?, updated_ts = ? WHERE id = ?",
                (name, now, watchlist_id),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def delete(self, watchlist_id: int) -> bool:
        """Delete a watchlist and all of its tokens."""
        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM watchlists WHERE id = ?", (watchlist_id,)
            )
            await db.commit()
            deleted = cursor.rowcount > 0

        logger.info("Watchlist deleted", watchlist_id=watchlist_id, deleted=deleted)
        return deleted

    async def add_token(
        self,
        watchlist_id: int,
        token_symbol: str,
        token_name: str,
        pair_address: str,
        chain_id: str = "solana",
    ) -> WatchlistToken:
        """Add a token to a watchlist.

        Adding a symbol the watchlist already holds returns the existing entry.

        Raises:
            aiosqlite.IntegrityError: If the watchlist does not exist
        """
        now = datetime.now(UTC).timestamp()

        async with self._connect() as db:
            await db.execute(
                """
                INSERT INTO watchlist_tokens
                    (watchlist_id, token_symbol, token_name, pair_address, chain_id, added_ts)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(watchlist_id, token_symbol) DO NOTHING
            """,
                (watchlist_id, token_symbol, token_name, pair_address, chain_id, now),
            )
            await db.execute(
                "UPDATE watchlists SET updated_ts = ? WHERE id = ?", (now, watchlist_id)
            )
            await db.commit()

        tokens = await self._fetch_tokens(
            "WHERE watchlist_id = ? AND token_symbol = ?", (watchlist_id, token_symbol)
        )

        logger.info(
            "Token added to watchlist", watchlist_id=watchlist_id, token_symbol=token_symbol
        )
        return tokens[0]

    async def remove_token(self, watchlist_id: int, token_symbol: str) -> bool:
        """Remove a token from one watchlist."""
        now = datetime.now(UTC).timestamp()

        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM watchlist_tokens WHERE watchlist_id = ? AND token_symbol = ?",
                (watchlist_id, token_symbol),
            )
            removed = cursor.rowcount > 0
            if removed:
                await db.execute(
                    "UPDATE watchlists SET updated_ts = ? WHERE id = ?",
                    (now, watchlist_id),
                )
            await db.commit()

        logger.info(
            "Token removed from watchlist",
            watchlist_id=watchlist_id,
            token_symbol=token_symbol,
            removed=removed,
        )
        return removed

    async def list_tokens(self, watchlist_id: int) -> list[WatchlistToken]:
        """Load the tokens of one watchlist, most recently added first."""
        return await self._fetch_tokens("WHERE watchlist_id = ?", (watchlist_id,))

    async def list_all_tokens(self) -> list[WatchlistToken]:
        """Load every watchlist entry across all watchlists."""
        return await self._fetch_tokens()

    async def is_token_watchlisted(self, token_symbol: str) -> bool:
        """Check whether any watchlist holds the symbol."""
        async with self._connect() as db:
            async with db.execute(
                "SELECT COUNT(*) FROM watchlist_tokens WHERE token_symbol = ?",
                (token_symbol,),
            ) as cursor:
                row = await cursor.fetchone()

        return row[0] > 0

    async def watchlists_for_token(self, token_symbol: str) -> list[Watchlist]:
        """Load the watchlists that hold the symbol."""
        return await self._fetch_watchlists(
            """
            SELECT DISTINCT w.id, w.name, w.created_ts, w.updated_ts
            FROM watchlists w
            JOIN watchlist_tokens wt ON w.id = wt.watchlist_id
            WHERE wt.token_symbol = ?
            ORDER BY w.created_ts DESC, w.id DESC
        """,
            (token_symbol,),
        )

    async def list_with_token_counts(self) -> list[tuple[Watchlist, int]]:
        """Load all watchlists with the number of tokens each holds."""
        async with self._connect() as db:
            async with db.execute("""
                SELECT w.id, w.name, w.created_ts, w.updated_ts,
                       COUNT(wt.id) AS token_count
                FROM watchlists w
                LEFT JOIN watchlist_tokens wt ON w.id = wt.watchlist_id
                GROUP BY w.id
                ORDER BY w.created_ts DESC, w.id DESC
            """) as cursor:
                rows = await cursor.fetchall()

        return [(_row_to_watchlist(row), row["token_count"]) for row in rows]
