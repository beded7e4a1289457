"""
SQLite database connection management.

Provides async database initialization, a connection factory and an
explicit write-transaction helper. Uses aiosqlite for async SQLite access.

Schema is defined in schema.sql (consolidated, no migrations).

Connections run in autocommit mode (isolation_level=None): single
statements commit on their own, multi-statement read-modify-write goes
through immediate_transaction(), which takes SQLite's write lock up front
so two writers can never interleave on the same rows.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite
import structlog

from src.core.config import settings

log = structlog.get_logger(__name__)

SCHEMA_FILE = Path(__file__).parent / "schema.sql"


async def init_database(
    db_path: Path | None = None, sequence_name: Optional[str] = None
) -> None:
    """
    Initialize database from consolidated schema.

    Args:
        db_path: Optional path to database file. Uses settings.database_path if not provided.
        sequence_name: Visitor sequence to seed. Uses settings.allocator_sequence_name if not provided.

    Creates the database file if it doesn't exist, applies the schema and
    seeds the visitor sequence row. Existing databases and counters are
    left intact.
    """
    db_path = Path(db_path or settings.database_path)
    sequence_name = sequence_name or settings.allocator_sequence_name

    db_path.parent.mkdir(parents=True, exist_ok=True)

    log.info("initializing_database", path=str(db_path))

    if not SCHEMA_FILE.exists():
        log.error("schema_file_not_found", path=str(SCHEMA_FILE))
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_FILE}")

    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA foreign_keys = ON")

        # WAL lets readers proceed while a writer holds the lock
        await db.execute("PRAGMA journal_mode = WAL")

        await db.executescript(SCHEMA_FILE.read_text())

        await db.execute(
            "INSERT OR IGNORE INTO sequences (name, value) VALUES (?, 0)",
            (sequence_name,),
        )
        await db.commit()

    log.info("database_initialized", path=str(db_path), sequence=sequence_name)


@asynccontextmanager
async def connect(db_path: str | Path) -> AsyncIterator[aiosqlite.Connection]:
    """Open an autocommit connection with row access by column name."""
    async with aiosqlite.connect(
        db_path,
        timeout=settings.database_busy_timeout,
        isolation_level=None,
    ) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON")
        yield db


@asynccontextmanager
async def immediate_transaction(
    db: aiosqlite.Connection,
) -> AsyncIterator[aiosqlite.Connection]:
    """
    Run a block inside BEGIN IMMEDIATE ... COMMIT.

    Any exception (including cancellation) rolls the transaction back and
    propagates.
    """
    await db.execute("BEGIN IMMEDIATE")
    try:
        yield db
    except BaseException:
        await db.execute("ROLLBACK")
        raise
    else:
        await db.execute("COMMIT")


async def check_database_health() -> dict:
    """
    Check database health for health endpoint.

    Returns:
        Dict with health status and basic metrics.
    """
    try:
        async with connect(settings.database_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM experiment_sessions")
            row = await cursor.fetchone()
            session_count = row[0] if row else 0

            cursor = await db.execute(
                "SELECT value FROM sequences WHERE name = ?",
                (settings.allocator_sequence_name,),
            )
            row = await cursor.fetchone()
            last_visitor_number = row[0] if row else None

            cursor = await db.execute("PRAGMA integrity_check")
            integrity = await cursor.fetchone()

            return {
                "status": "healthy",
                "session_count": session_count,
                "last_visitor_number": last_visitor_number,
                "integrity": integrity[0] if integrity else "unknown",
                "path": str(settings.database_path),
            }
    except Exception as e:
        log.error("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}
