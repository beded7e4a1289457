"""User repository for database operations."""

import uuid
from datetime import datetime, timezone
from typing import Optional

import aiosqlite
import structlog

from src.core.exceptions import UserNotFoundError
from src.domain.models.user import User
from src.persistence.database import connect

log = structlog.get_logger(__name__)


class UserRepository:
    """Repository for participant identities."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def create(self, user: User) -> User:
        """Insert a user row and return it as stored."""
        async with connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO users (id, email, first_name, last_name, is_anonymous, "
                "visitor_number, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    user.id,
                    user.email,
                    user.first_name,
                    user.last_name,
                    int(user.is_anonymous),
                    user.visitor_number,
                    user.created_at.isoformat(),
                    user.updated_at.isoformat(),
                ),
            )
            return await self._fetch(db, user.id)

    async def create_anonymous(self) -> User:
        """Materialize a new anonymous identity."""
        return await self.create(
            User(
                id=str(uuid.uuid4()),
                first_name="Anonymous",
                last_name="User",
                is_anonymous=True,
            )
        )

    async def get(self, user_id: str) -> Optional[User]:
        async with connect(self.db_path) as db:
            cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
            return self._row_to_user(row) if row else None

    async def assign_visitor_number(self, user_id: str, visitor_number: int) -> int:
        """Set the user's visitor number unless one is already assigned.

        The write only applies while visitor_number is NULL, so a user can
        hold at most one number even when two first sessions race.

        Returns:
            The number the user holds after the call (the existing one if
            another caller assigned first)

        Raises:
            UserNotFoundError: No such user
        """
        now = datetime.now(timezone.utc).isoformat()
        async with connect(self.db_path) as db:
            cursor = await db.execute(
                "UPDATE users SET visitor_number = ?, updated_at = ? "
                "WHERE id = ? AND visitor_number IS NULL",
                (visitor_number, now, user_id),
            )
            assigned = cursor.rowcount > 0
            user = await self._fetch(db, user_id)

        if not assigned:
            log.info(
                "visitor_number_already_assigned",
                user_id=user_id,
                existing=user.visitor_number,
                discarded=visitor_number,
            )
        return user.visitor_number

    async def _fetch(self, db: aiosqlite.Connection, user_id: str) -> User:
        cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
        if not row:
            raise UserNotFoundError(f"User {user_id} not found")
        return self._row_to_user(row)

    def _row_to_user(self, row: aiosqlite.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            is_anonymous=bool(row["is_anonymous"]),
            visitor_number=row["visitor_number"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
