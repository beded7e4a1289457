"""
Service protocol definitions (interfaces).

Defines the seams of the session lifecycle using typing.Protocol so the
SQLite repositories and the external collaborators can be swapped for
in-memory fakes without a real database.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol, TypedDict

from src.domain.models.experiment import Experiment
from src.domain.models.response import Response, ScanResult
from src.domain.models.session import Session
from src.domain.models.user import User


class StoredFile(TypedDict):
    """Reference returned by a file storage collaborator."""

    url: str
    id: str


class SequenceAllocator(Protocol):
    """Database-native atomic counter."""

    async def next(self) -> int:
        """
        Return the next value.

        Values never repeat and increase across the counter's lifetime.
        Gaps are allowed.

        Raises:
            AllocationError: Store unreachable or timed out
        """
        ...


class UserStore(Protocol):
    async def get(self, user_id: str) -> Optional[User]: ...

    async def create_anonymous(self) -> User: ...

    async def assign_visitor_number(self, user_id: str, visitor_number: int) -> int:
        """
        Assign the number unless the user already holds one.

        Returns:
            The number the user holds afterwards
        """
        ...


class SessionStore(Protocol):
    async def create(self, session: Session) -> Session: ...

    async def get(self, session_id: str) -> Optional[Session]: ...

    async def list_all(self, limit: Optional[int] = None) -> List[Session]: ...

    async def update_atomically(
        self, session_id: str, mutate: Callable[[Session], Session]
    ) -> Session:
        """
        Apply mutate to the stored session as one transaction.

        Raises:
            SessionNotFoundError: No such session
        """
        ...


class ResponseStore(Protocol):
    async def create(self, response: Response) -> Response:
        """
        Insert a response with the session's current visitor number.

        Raises:
            SessionNotFoundError: Owning session does not exist
        """
        ...

    async def get(self, response_id: str) -> Optional[Response]: ...

    async def list_for_session(
        self, session_id: str, level_id: Optional[str] = None
    ) -> List[Response]: ...

    async def list_all(self, limit: Optional[int] = None) -> List[Response]: ...

    async def mark_stored(
        self,
        response_id: str,
        file_url: str,
        file_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Response: ...

    async def mark_upload_failed(self, response_id: str, error: str) -> Response: ...

    async def record_scan_result(
        self, response_id: str, result: ScanResult
    ) -> Response: ...


class ExperimentCatalog(Protocol):
    """Read-only experiment content."""

    async def get(self, experiment_id: str) -> Experiment:
        """
        Raises:
            ExperimentNotFoundError: Unknown experiment
        """
        ...

    async def get_active(self) -> Experiment: ...


class FileStorage(Protocol):
    """External media storage (Firebase, Drive, local disk, ...)."""

    async def store(
        self, data: bytes, content_type: str, session_id: str, question_id: str
    ) -> StoredFile:
        """
        Durably store one file.

        Raises:
            StorageError: Upload failed
        """
        ...


class CustomerProfile(Protocol):
    """External customer profile sink (Klaviyo, Shopify, ...)."""

    async def upsert(self, email: str, name: Optional[str], session_id: str) -> None:
        """
        Create or update the participant's profile.

        Raises:
            ProfileSyncError: Profile could not be written
        """
        ...
