"""Tests for the SQLite visitor sequence allocator."""

import asyncio
from unittest.mock import patch

import aiosqlite
import pytest

from src.core.exceptions import AllocationError
from src.persistence.database import connect
from src.persistence.repositories.sequence_repo import SqliteSequenceAllocator


class TestSqliteSequenceAllocator:
    """Tests for next() and current()."""

    async def test_first_value_is_one(self, allocator):
        assert await allocator.next() == 1

    async def test_values_strictly_increase(self, allocator):
        values = [await allocator.next() for _ in range(5)]

        assert values == [1, 2, 3, 4, 5]
        assert await allocator.current() == 5

    async def test_concurrent_allocations_are_unique(self, allocator):
        values = await asyncio.gather(*(allocator.next() for _ in range(25)))

        assert len(set(values)) == 25
        assert all(v >= 1 for v in values)
        assert await allocator.current() == max(values)

    async def test_independent_allocators_share_the_counter(self, test_db, allocator):
        other = SqliteSequenceAllocator(str(test_db))

        values = await asyncio.gather(
            *[allocator.next() for _ in range(10)], *[other.next() for _ in range(10)]
        )

        assert len(set(values)) == 20

    async def test_missing_sequence_row(self, test_db):
        allocator = SqliteSequenceAllocator(str(test_db), sequence_name="nope")

        with pytest.raises(AllocationError):
            await allocator.next()

    async def test_timeout_becomes_allocation_error(self, test_db):
        allocator = SqliteSequenceAllocator(str(test_db), timeout=0.01)

        async def slow_bump(db):
            await asyncio.sleep(1)
            return []

        with patch.object(allocator, "_bump", slow_bump):
            with pytest.raises(AllocationError, match="timed out"):
                await allocator.next()

        assert await allocator.current() == 0

    async def test_lock_wait_does_not_count_against_timeout(self, test_db):
        allocator = SqliteSequenceAllocator(str(test_db), timeout=0.05)

        async with connect(str(test_db)) as holder:
            await holder.execute("BEGIN IMMEDIATE")
            pending = asyncio.create_task(allocator.next())
            await asyncio.sleep(0.3)
            assert not pending.done()
            await holder.execute("COMMIT")

        assert await pending == 1

    async def test_database_error_becomes_allocation_error(self, test_db):
        allocator = SqliteSequenceAllocator(str(test_db))

        async def broken_increment():
            raise aiosqlite.OperationalError("database is locked")

        with patch.object(allocator, "_increment", broken_increment):
            with pytest.raises(AllocationError, match="locked"):
                await allocator.next()

    async def test_unreachable_database(self, tmp_path):
        allocator = SqliteSequenceAllocator(str(tmp_path / "missing" / "db.sqlite"))

        with pytest.raises(AllocationError):
            await allocator.next()
