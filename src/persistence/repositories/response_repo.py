"""Response repository for database operations."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiosqlite
import structlog

from src.core.exceptions import ResponseNotFoundError, SessionNotFoundError
from src.domain.models.response import Response, ResponseType, ScanResult
from src.persistence.database import connect

log = structlog.get_logger(__name__)


class ResponseRepository:
    """Append-only store of recorded answers.

    Rows are never deleted. After insert only the storage columns
    (file_url, file_id, metadata, upload_error) and the scan columns change,
    and nothing changes once the scan has settled.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def create(self, response: Response) -> Response:
        """Insert a response, snapshotting the session's visitor number.

        The number is copied from the session row by the INSERT itself, so
        it reflects the session at the instant of insertion. Any
        visitor_number on the passed model is ignored.

        Raises:
            SessionNotFoundError: Owning session does not exist
        """
        async with connect(self.db_path) as db:
            cursor = await db.execute(
                """INSERT INTO experiment_responses (
                    id, session_id, user_id, level_id, question_id,
                    response_type, response_data, file_url, file_id, metadata,
                    upload_error, is_scanned, scan_result, visitor_number, created_at
                )
                SELECT ?, s.id, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, s.visitor_number, ?
                FROM experiment_sessions s WHERE s.id = ?""",
                (
                    response.id,
                    response.user_id,
                    response.level_id,
                    response.question_id,
                    response.response_type.value,
                    json.dumps(response.response_data),
                    response.file_url,
                    response.file_id,
                    json.dumps(response.metadata),
                    response.upload_error,
                    int(response.is_scanned),
                    response.scan_result.value if response.scan_result else None,
                    response.created_at.isoformat(),
                    response.session_id,
                ),
            )
            if cursor.rowcount == 0:
                raise SessionNotFoundError(f"Session {response.session_id} not found")

            return await self._fetch(db, response.id)

    async def get(self, response_id: str) -> Optional[Response]:
        async with connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT * FROM experiment_responses WHERE id = ?", (response_id,)
            )
            row = await cursor.fetchone()
            return self._row_to_response(row) if row else None

    async def list_for_session(
        self, session_id: str, level_id: Optional[str] = None
    ) -> List[Response]:
        """Responses of one session in submission order, optionally for one level."""
        query = "SELECT * FROM experiment_responses WHERE session_id = ?"
        params: tuple = (session_id,)
        if level_id is not None:
            query += " AND level_id = ?"
            params += (level_id,)
        query += " ORDER BY created_at ASC, rowid ASC"

        async with connect(self.db_path) as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_response(row) for row in rows]

    async def list_all(self, limit: Optional[int] = None) -> List[Response]:
        """All responses, newest first."""
        query = "SELECT * FROM experiment_responses ORDER BY created_at DESC, rowid DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        async with connect(self.db_path) as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_response(row) for row in rows]

    async def mark_stored(
        self,
        response_id: str,
        file_url: str,
        file_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Response:
        """Attach the storage reference confirmed by the file collaborator."""
        return await self._update_unsettled(
            response_id,
            "file_url = ?, file_id = ?, metadata = ?, upload_error = NULL",
            (file_url, file_id, json.dumps(metadata or {})),
        )

    async def mark_upload_failed(self, response_id: str, error: str) -> Response:
        """Flag the upload as failed; the answer itself stays recorded."""
        return await self._update_unsettled(
            response_id, "upload_error = ?", (error,)
        )

    async def record_scan_result(
        self, response_id: str, result: ScanResult
    ) -> Response:
        """Record a virus scan verdict. clean/infected settle the row."""
        return await self._update_unsettled(
            response_id,
            "scan_result = ?, is_scanned = ?",
            (result.value, int(result != ScanResult.PENDING)),
        )

    async def _update_unsettled(
        self, response_id: str, assignments: str, params: tuple
    ) -> Response:
        async with connect(self.db_path) as db:
            cursor = await db.execute(
                f"UPDATE experiment_responses SET {assignments} "
                "WHERE id = ? AND is_scanned = 0",
                params + (response_id,),
            )
            updated = cursor.rowcount > 0
            response = await self._fetch(db, response_id)

        if not updated:
            log.warning(
                "response_already_settled",
                response_id=response_id,
                scan_result=response.scan_result,
            )
        return response

    async def _fetch(self, db: aiosqlite.Connection, response_id: str) -> Response:
        cursor = await db.execute(
            "SELECT * FROM experiment_responses WHERE id = ?", (response_id,)
        )
        row = await cursor.fetchone()
        if not row:
            raise ResponseNotFoundError(f"Response {response_id} not found")
        return self._row_to_response(row)

    def _row_to_response(self, row: aiosqlite.Row) -> Response:
        return Response(
            id=row["id"],
            session_id=row["session_id"],
            user_id=row["user_id"],
            level_id=row["level_id"],
            question_id=row["question_id"],
            response_type=ResponseType(row["response_type"]),
            response_data=json.loads(row["response_data"]),
            file_url=row["file_url"],
            file_id=row["file_id"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            upload_error=row["upload_error"],
            is_scanned=bool(row["is_scanned"]),
            scan_result=ScanResult(row["scan_result"]) if row["scan_result"] else None,
            visitor_number=row["visitor_number"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
