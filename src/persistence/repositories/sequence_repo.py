"""Visitor sequence allocator backed by a SQLite counter row."""

import asyncio
from typing import Optional

import aiosqlite
import structlog

from src.core.config import settings
from src.core.exceptions import AllocationError
from src.persistence.database import connect, immediate_transaction

log = structlog.get_logger(__name__)


class SqliteSequenceAllocator:
    """Issues strictly increasing positive integers.

    Every value comes from one UPDATE ... RETURNING statement executed under
    the database write lock, so concurrent callers need no coordination of
    their own. Waiting for the lock is bounded by the connection busy
    timeout; the allocation timeout starts once the lock is held, and an
    increment that exceeds it is rolled back.
    """

    def __init__(
        self,
        db_path: str,
        sequence_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.db_path = db_path
        self.sequence_name = sequence_name or settings.allocator_sequence_name
        self.timeout = timeout if timeout is not None else settings.allocator_timeout

    async def _bump(self, db: aiosqlite.Connection) -> list:
        cursor = await db.execute(
            "UPDATE sequences SET value = value + 1 WHERE name = ? RETURNING value",
            (self.sequence_name,),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return rows

    async def _increment(self) -> int:
        async with connect(self.db_path) as db:
            # Waiting for the write lock is bounded by database_busy_timeout;
            # the allocation timeout only covers the increment itself.
            async with immediate_transaction(db):
                rows = await asyncio.wait_for(self._bump(db), timeout=self.timeout)
        if not rows:
            raise AllocationError(f"Sequence {self.sequence_name} is not initialized")
        return int(rows[0]["value"])

    async def next(self) -> int:
        """Allocate the next visitor number.

        Raises:
            AllocationError: Store unreachable, sequence missing or timeout exceeded
        """
        try:
            value = await self._increment()
        except asyncio.TimeoutError as e:
            log.warning(
                "sequence_allocation_timeout",
                sequence=self.sequence_name,
                timeout_seconds=self.timeout,
            )
            raise AllocationError(
                f"Visitor number allocation timed out after {self.timeout}s"
            ) from e
        except aiosqlite.Error as e:
            log.warning(
                "sequence_allocation_failed",
                sequence=self.sequence_name,
                error=str(e),
            )
            raise AllocationError(f"Visitor number allocation failed: {e}") from e

        log.debug("sequence_value_allocated", sequence=self.sequence_name, value=value)
        return value

    async def current(self) -> int:
        """Last issued value (0 before the first allocation)."""
        async with connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT value FROM sequences WHERE name = ?", (self.sequence_name,)
            )
            row = await cursor.fetchone()
        if not row:
            raise AllocationError(f"Sequence {self.sequence_name} is not initialized")
        return int(row["value"])
