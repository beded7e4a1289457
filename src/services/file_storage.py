"""
Local disk implementation of the FileStorage collaborator.

Media answers are written under upload_dir/<session_id>/ and served by the
API at /uploads. Hosted providers plug in behind the same FileStorage
protocol.
"""

import asyncio
import mimetypes
import re
import uuid
from pathlib import Path
from typing import Optional

import structlog

from src.core.config import settings
from src.core.exceptions import StorageError
from src.services.protocols import StoredFile

log = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def safe_token(value: str, fallback: str = "file") -> str:
    """Reduce a client-supplied id to a single safe path component."""
    token = _UNSAFE_CHARS.sub("_", value).strip("_")[:64]
    return token or fallback


class LocalFileStorage:
    """Stores uploaded media on the local filesystem."""

    def __init__(self, upload_dir: Optional[Path] = None, url_prefix: str = "/uploads"):
        self.upload_dir = Path(upload_dir or settings.upload_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def store(
        self, data: bytes, content_type: str, session_id: str, question_id: str
    ) -> StoredFile:
        """Write one file and return its URL and storage id.

        Raises:
            StorageError: Filesystem write failed, or the target path falls
                outside upload_dir
        """
        extension = mimetypes.guess_extension(content_type) or ".bin"
        file_id = (
            f"{safe_token(session_id, 'session')}/"
            f"{safe_token(question_id)}_{uuid.uuid4().hex}{extension}"
        )
        path = self.upload_dir / file_id
        if self.upload_dir.resolve() not in path.resolve().parents:
            raise StorageError(f"Refusing to write {file_id} outside the upload directory")

        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            log.error(
                "local_file_store_failed",
                session_id=session_id,
                question_id=question_id,
                error=str(e),
            )
            raise StorageError(f"Could not store file: {e}") from e

        log.info(
            "local_file_stored",
            session_id=session_id,
            file_id=file_id,
            size_bytes=len(data),
            content_type=content_type,
        )
        return StoredFile(url=f"{self.url_prefix}/{file_id}", id=file_id)
