"""Tests for database module."""

import pytest
import tempfile
from pathlib import Path

import aiosqlite

from src.persistence.database import (
    check_database_health,
    connect,
    immediate_transaction,
    init_database,
)


@pytest.mark.asyncio
async def test_init_database_creates_file():
    """Database initialization creates the database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "nested" / "test.db"

        assert not db_path.exists()

        await init_database(db_path)

        assert db_path.exists()


@pytest.mark.asyncio
async def test_init_database_creates_tables(test_db):
    """Database initialization creates all required tables."""
    async with aiosqlite.connect(test_db) as db:
        cursor = await db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        )
        tables = [row[0] for row in await cursor.fetchall()]

    assert "sequences" in tables
    assert "users" in tables
    assert "experiment_sessions" in tables
    assert "experiment_responses" in tables


@pytest.mark.asyncio
async def test_init_database_seeds_sequence(test_db):
    async with connect(test_db) as db:
        cursor = await db.execute(
            "SELECT value FROM sequences WHERE name = 'visitor_counter'"
        )
        row = await cursor.fetchone()

    assert row["value"] == 0


@pytest.mark.asyncio
async def test_reinit_keeps_counter(test_db):
    """Re-running init on an existing database leaves the counter intact."""
    async with connect(test_db) as db:
        await db.execute("UPDATE sequences SET value = 41 WHERE name = 'visitor_counter'")

    await init_database(test_db)

    async with connect(test_db) as db:
        cursor = await db.execute(
            "SELECT value FROM sequences WHERE name = 'visitor_counter'"
        )
        row = await cursor.fetchone()

    assert row["value"] == 41


@pytest.mark.asyncio
async def test_immediate_transaction_rolls_back_on_error(test_db):
    with pytest.raises(RuntimeError):
        async with connect(test_db) as db:
            async with immediate_transaction(db):
                await db.execute(
                    "UPDATE sequences SET value = 99 WHERE name = 'visitor_counter'"
                )
                raise RuntimeError("abort")

    async with connect(test_db) as db:
        cursor = await db.execute(
            "SELECT value FROM sequences WHERE name = 'visitor_counter'"
        )
        row = await cursor.fetchone()

    assert row["value"] == 0


@pytest.mark.asyncio
async def test_check_database_health(test_db):
    """Health check returns status information."""
    health = await check_database_health()

    assert health["status"] == "healthy"
    assert health["integrity"] == "ok"
    assert health["session_count"] == 0
    assert health["last_visitor_number"] == 0


@pytest.mark.asyncio
async def test_foreign_keys_enforced(test_db):
    """Responses cannot reference a missing session."""
    async with connect(test_db) as db:
        with pytest.raises(aiosqlite.IntegrityError):
            await db.execute(
                "INSERT INTO experiment_responses (id, session_id, level_id, "
                "question_id, response_type, response_data, created_at) "
                "VALUES ('r1', 'nonexistent', 'l1', 'q1', 'text', '\"x\"', '2024-01-01')"
            )


@pytest.mark.asyncio
async def test_visitor_numbers_unique_per_user(test_db):
    async with connect(test_db) as db:
        await db.execute(
            "INSERT INTO users (id, visitor_number, created_at, updated_at) "
            "VALUES ('u1', 7, 'now', 'now')"
        )
        with pytest.raises(aiosqlite.IntegrityError):
            await db.execute(
                "INSERT INTO users (id, visitor_number, created_at, updated_at) "
                "VALUES ('u2', 7, 'now', 'now')"
            )
