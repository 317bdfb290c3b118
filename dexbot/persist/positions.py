"""SQLite position store."""

from datetime import datetime
from typing import Any

import aiosqlite
import structlog

from ..core.interfaces import PositionStore
from ..core.types import Position, PositionStatus, StrategyProfile
from .storage import SQLiteStorage, from_ts, to_ts

logger = structlog.get_logger(__name__)

_COLUMNS = (
    "id, strategy, pool_address, base_symbol, quote_symbol, base_amount, "
    "quote_amount, entry_price, current_price, opened_ts, status, pnl, apy"
)


def _row_to_position(row: aiosqlite.Row) -> Position:
    return Position(
        id=row["id"],
        strategy=StrategyProfile(row["strategy"]),
        pool_address=row["pool_address"],
        base_symbol=row["base_symbol"],
        quote_symbol=row["quote_symbol"],
        base_amount=row["base_amount"],
        quote_amount=row["quote_amount"],
        entry_price=row["entry_price"],
        current_price=row["current_price"],
        opened_at=from_ts(row["opened_ts"]),
        status=PositionStatus(row["status"]),
        pnl=row["pnl"],
        apy=row["apy"],
    )


class SQLitePositionStore(SQLiteStorage, PositionStore):
    """Positions are append-only: they are closed, never deleted."""

    async def create(self, position: Position) -> Position:
        """Insert a new position.

        Args:
            position: Position to persist

        Returns:
            The persisted position
        """
        async with self._connect() as db:
            await db.execute(
                f"""
                INSERT INTO positions ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    position.id,
                    position.strategy.value,
                    position.pool_address,
                    position.base_symbol,
                    position.quote_symbol,
                    position.base_amount,
                    position.quote_amount,
                    position.entry_price,
                    position.current_price,
                    to_ts(position.opened_at),
                    position.status.value,
                    position.pnl,
                    position.apy,
                ),
            )
            await db.commit()

        logger.debug(
            "Position created",
            position_id=position.id,
            base_symbol=position.base_symbol,
            quote_amount=position.quote_amount,
        )
        return position

    async def _fetch(self, where: str = "", params: tuple[Any, ...] = ()) -> list[Position]:
        async with self._connect() as db:
            async with db.execute(
                f"SELECT {_COLUMNS} FROM positions {where} ORDER BY opened_ts DESC",
                params,
            ) as cursor:
                rows = await cursor.fetchall()

        return [_row_to_position(row) for row in rows]

    async def get(self, position_id: str) -> Position | None:
        """Load a position by id."""
        positions = await self._fetch("WHERE id = ?", (position_id,))
        return positions[0] if positions else None

    async def list_active(self) -> list[Position]:
        """Load all active positions, newest first."""
        positions = await self._fetch("WHERE status = ?", (PositionStatus.ACTIVE.value,))
        logger.debug("Loaded active positions", count=len(positions))
        return positions

    async def list_by_strategy(self, strategy: StrategyProfile) -> list[Position]:
        """Load positions opened under a strategy profile."""
        return await self._fetch("WHERE strategy = ?", (StrategyProfile(strategy).value,))

    async def list_by_time_range(self, start: datetime, end: datetime) -> list[Position]:
        """Load positions opened between start and end (inclusive)."""
        return await self._fetch(
            "WHERE opened_ts BETWEEN ? AND ?", (to_ts(start), to_ts(end))
        )

    async def update_price(self, position_id: str, price: float) -> Position | None:
        """Refresh the current price and running P&L of a position.

        Args:
            position_id: Position id
            price: Latest price of the base token

        Returns:
            Updated position, or None if it does not exist
        """
        async with self._connect() as db:
            cursor = await db.execute(
                """
                UPDATE positions
                SET current_price = ?, pnl = (? - entry_price) * base_amount
                WHERE id = ?
            """,
                (price, price, position_id),
            )
            await db.commit()
            updated = cursor.rowcount > 0

        if not updated:
            logger.warning("Position not found for price update", position_id=position_id)
            return None

        return await self.get(position_id)

    async def close_position(
        self, position_id: str, exit_price: float | None = None
    ) -> Position | None:
        """Transition a position to closed, fixing its final P&L.

        Args:
            position_id: Position id
            exit_price: Exit price (defaults to the last known price)

        Returns:
            Closed position, or None if it does not exist
        """
        position = await self.get(position_id)
        if position is None:
            logger.warning("Position not found for close", position_id=position_id)
            return None

        price = position.current_price if exit_price is None else exit_price
        pnl = (price - position.entry_price) * position.base_amount

        async with self._connect() as db:
            await db.execute(
                """
                UPDATE positions
                SET status = ?, current_price = ?, pnl = ?
                WHERE id = ?
            """,
                (PositionStatus.CLOSED.value, price, pnl, position_id),
            )
            await db.commit()

        logger.info(
            "Position closed", position_id=position_id, exit_price=price, pnl=pnl
        )
        return position.model_copy(
            update={"status": PositionStatus.CLOSED, "current_price": price, "pnl": pnl}
        )

    async def total_realized_pnl(self) -> float:
        """Sum of P&L over closed positions."""
        async with self._connect() as db:
            async with db.execute(
                "SELECT SUM(pnl) FROM positions WHERE status = ?",
                (PositionStatus.CLOSED.value,),
            ) as cursor:
                row = await cursor.fetchone()

        return row[0] or 0.0

    async def average_apy(self) -> float:
        """Average APY over active positions."""
        async with self._connect() as db:
            async with db.execute(
                "SELECT AVG(apy) FROM positions WHERE status = ?",
                (PositionStatus.ACTIVE.value,),
            ) as cursor:
                row = await cursor.fetchone()

        return row[0] or 0.0
