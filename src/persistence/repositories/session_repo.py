"""Session repository for database operations."""

import json
from datetime import datetime, timezone
from typing import Callable, List, Optional

import aiosqlite
import structlog

from src.core.exceptions import SessionNotFoundError
from src.domain.models.session import Session, SessionPhase
from src.persistence.database import connect, immediate_transaction

log = structlog.get_logger(__name__)

SessionMutation = Callable[[Session], Session]


class SessionRepository:
    """Repository for session rows.

    Sessions are never deleted. Every change after creation goes through
    update_atomically so concurrent phase, level and session_data updates
    to one session cannot overwrite each other.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def create(self, session: Session) -> Session:
        """Insert a new session row and return it as stored."""
        async with connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO experiment_sessions (id, user_id, experiment_id, "
                "current_level, branching_path, phase, is_completed, session_data, "
                "visitor_number, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    session.id,
                    session.user_id,
                    session.experiment_id,
                    session.current_level,
                    session.branching_path,
                    session.phase.value,
                    int(session.is_completed),
                    json.dumps(session.session_data),
                    session.visitor_number,
                    session.created_at.isoformat(),
                    session.updated_at.isoformat(),
                ),
            )
            row = await self._fetch_row(db, session.id)
            if not row:
                raise ValueError(f"Session {session.id} not found after creation")
            return self._row_to_session(row)

    async def get(self, session_id: str) -> Optional[Session]:
        """Get a session by ID."""
        async with connect(self.db_path) as db:
            row = await self._fetch_row(db, session_id)
            return self._row_to_session(row) if row else None

    async def list_all(self, limit: Optional[int] = None) -> List[Session]:
        """List sessions, newest first."""
        query = "SELECT * FROM experiment_sessions ORDER BY created_at DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        async with connect(self.db_path) as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_session(row) for row in rows]

    async def update_atomically(
        self, session_id: str, mutate: SessionMutation
    ) -> Session:
        """Read, mutate and write one session under the database write lock.

        Args:
            session_id: Session to update
            mutate: Pure function returning the updated session. Raising
                from it aborts the update and leaves the row unchanged.

        Returns:
            The session as written

        Raises:
            SessionNotFoundError: No such session
        """
        async with connect(self.db_path) as db:
            async with immediate_transaction(db):
                row = await self._fetch_row(db, session_id)
                if not row:
                    raise SessionNotFoundError(f"Session {session_id} not found")

                updated = mutate(self._row_to_session(row))
                updated = updated.model_copy(
                    update={"updated_at": datetime.now(timezone.utc)}
                )

                await db.execute(
                    "UPDATE experiment_sessions SET "
                    "current_level = ?, branching_path = ?, phase = ?, "
                    "is_completed = ?, session_data = ?, visitor_number = ?, "
                    "updated_at = ? WHERE id = ?",
                    (
                        updated.current_level,
                        updated.branching_path,
                        updated.phase.value,
                        int(updated.is_completed),
                        json.dumps(updated.session_data),
                        updated.visitor_number,
                        updated.updated_at.isoformat(),
                        session_id,
                    ),
                )
        return updated

    async def _fetch_row(
        self, db: aiosqlite.Connection, session_id: str
    ) -> Optional[aiosqlite.Row]:
        cursor = await db.execute(
            "SELECT * FROM experiment_sessions WHERE id = ?", (session_id,)
        )
        return await cursor.fetchone()

    def _row_to_session(self, row: aiosqlite.Row) -> Session:
        return Session(
            id=row["id"],
            user_id=row["user_id"],
            experiment_id=row["experiment_id"],
            current_level=row["current_level"],
            branching_path=row["branching_path"],
            phase=SessionPhase(row["phase"]),
            is_completed=bool(row["is_completed"]),
            session_data=json.loads(row["session_data"]) if row["session_data"] else {},
            visitor_number=row["visitor_number"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
