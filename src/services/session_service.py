"""
Session lifecycle orchestration.

Main entry point for everything that changes a participation session:
creating it (with its visitor number), advancing its phase, recording
answers, completing levels and finishing the session.

Visitor numbering is a secondary feature. When the allocator fails the
session is still created, without a number, and the event is logged as
degraded mode rather than surfaced to the participant.

Answers are recorded before any file upload is attempted, so a slow or
failing storage collaborator can delay a file reference but never lose
the answer itself.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import structlog

from src.core.config import settings
from src.core.exceptions import (
    AllocationError,
    InvalidTransitionError,
    LevelNotFoundError,
    ProfileSyncError,
    ResponseNotFoundError,
    SessionNotFoundError,
    StorageError,
    UploadRejectedError,
    UserNotFoundError,
    ValidationError,
)
from src.domain.models.experiment import Experiment, ExperimentLevel
from src.domain.models.response import (
    Response,
    ResponseType,
    ResponseValue,
    ScanResult,
    UploadStatus,
)
from src.domain.models.session import Session, SessionPhase, can_transition
from src.domain.models.user import User
from src.services.branching import evaluate
from src.services.protocols import (
    CustomerProfile,
    ExperimentCatalog,
    FileStorage,
    ResponseStore,
    SequenceAllocator,
    SessionStore,
    UserStore,
)

log = structlog.get_logger(__name__)

CONTACT_LEVEL_ID = "contact"


@dataclass
class FilePayload:
    """Raw media attached to an answer."""

    data: bytes
    content_type: str


@dataclass
class ContactResult:
    """Outcome of a contact submission.

    The session is always updated; profile sync failure is reported here
    instead of failing the submission.
    """

    session: Session
    profile_synced: bool
    profile_error: Optional[str] = None


class SessionLifecycleService:
    """Orchestrates session creation, phase changes, answers and completion.

    All collaborators are injected so the SQLite repositories can be
    replaced by in-memory fakes.
    """

    def __init__(
        self,
        allocator: SequenceAllocator,
        users: UserStore,
        sessions: SessionStore,
        responses: ResponseStore,
        experiments: ExperimentCatalog,
        file_storage: Optional[FileStorage] = None,
        customer_profile: Optional[CustomerProfile] = None,
        branching_fallback: Optional[str] = None,
        storage_timeout: Optional[float] = None,
        allowed_media_types: Optional[Iterable[str]] = None,
        max_upload_bytes: Optional[int] = None,
    ):
        """
        Initialize the lifecycle service.

        Args:
            allocator: Visitor number sequence
            users: User store
            sessions: Session store
            responses: Response store
            experiments: Read-only experiment content
            file_storage: Media storage collaborator (uploads stay pending if None)
            customer_profile: Profile sink for contact submissions (skipped if None)
            branching_fallback: Path used when no branching rule matches
            storage_timeout: Seconds to wait for one file store call
            allowed_media_types: MIME types accepted for media answers
            max_upload_bytes: Largest accepted file
        """
        self.allocator = allocator
        self.users = users
        self.sessions = sessions
        self.responses = responses
        self.experiments = experiments
        self.file_storage = file_storage
        self.customer_profile = customer_profile
        self.branching_fallback = branching_fallback or settings.branching_fallback_path
        self.storage_timeout = (
            storage_timeout if storage_timeout is not None else settings.storage_timeout
        )
        self.allowed_media_types = frozenset(
            allowed_media_types
            if allowed_media_types is not None
            else settings.allowed_media_types
        )
        self.max_upload_bytes = max_upload_bytes or settings.max_upload_bytes

    # ==================================================================
    # Session creation
    # ==================================================================

    async def create_session(
        self,
        experiment_id: str,
        user_id: Optional[str] = None,
        session_data: Optional[Dict[str, Any]] = None,
    ) -> Session:
        """
        Create a session, assigning the user's visitor number if needed.

        Args:
            experiment_id: Experiment to start
            user_id: Existing user; a new anonymous user is created if None
            session_data: Initial opaque UI state

        Returns:
            The stored session. visitor_number is None in degraded mode.

        Raises:
            ExperimentNotFoundError: Unknown experiment
            UserNotFoundError: user_id given but unknown
        """
        experiment = await self.experiments.get(experiment_id)
        user = await self._resolve_user(user_id)
        visitor_number = await self._ensure_visitor_number(user)

        session = Session(
            id=str(uuid.uuid4()),
            user_id=user.id,
            experiment_id=experiment.id,
            visitor_number=visitor_number,
            session_data=dict(session_data or {}),
        )
        created = await self.sessions.create(session)

        log.info(
            "session_created",
            session_id=created.id,
            user_id=user.id,
            experiment_id=experiment.id,
            visitor_number=visitor_number,
        )
        return created

    async def _resolve_user(self, user_id: Optional[str]) -> User:
        if user_id is None:
            user = await self.users.create_anonymous()
            log.debug("anonymous_user_created", user_id=user.id)
            return user

        user = await self.users.get(user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    async def _ensure_visitor_number(self, user: User) -> Optional[int]:
        """Return the user's number, allocating it on first use.

        None means the allocator failed and the session runs unnumbered.
        """
        if user.visitor_number is not None:
            log.debug(
                "visitor_number_reused",
                user_id=user.id,
                visitor_number=user.visitor_number,
            )
            return user.visitor_number

        try:
            allocated = await self.allocator.next()
        except AllocationError as e:
            log.warning(
                "visitor_number_degraded",
                user_id=user.id,
                reason=e.message,
            )
            return None

        # A concurrent first session may have numbered this user already;
        # the store keeps the earlier number and ours becomes a gap.
        visitor_number = await self.users.assign_visitor_number(user.id, allocated)
        log.info(
            "visitor_number_assigned",
            user_id=user.id,
            visitor_number=visitor_number,
        )
        return visitor_number

    # ==================================================================
    # Queries
    # ==================================================================

    async def get_session(self, session_id: str) -> Session:
        """
        Raises:
            SessionNotFoundError: No such session
        """
        session = await self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    async def list_sessions(self, limit: Optional[int] = None) -> List[Session]:
        return await self.sessions.list_all(limit=limit)

    async def list_responses(self, session_id: str) -> List[Response]:
        await self.get_session(session_id)
        return await self.responses.list_for_session(session_id)

    async def list_all_responses(self, limit: Optional[int] = None) -> List[Response]:
        """Every recorded answer across sessions, newest first."""
        return await self.responses.list_all(limit=limit)

    async def get_response(self, response_id: str) -> Response:
        response = await self.responses.get(response_id)
        if response is None:
            raise ResponseNotFoundError(f"Response {response_id} not found")
        return response

    # ==================================================================
    # Phase transitions
    # ==================================================================

    async def advance_phase(
        self,
        session_id: str,
        target: SessionPhase | str,
        current_level: Optional[int] = None,
        branching_path: Optional[str] = None,
    ) -> Session:
        """
        Move a session to another phase.

        Level and path updates, when given, are written in the same
        transaction as the phase change. Requesting the phase the session
        is already in (outside the terminal phases) is accepted as a no-op
        so retried requests succeed.

        Raises:
            SessionNotFoundError: No such session
            InvalidTransitionError: Transition not permitted; session unchanged
            ValidationError: Unknown phase or level below 1
        """
        try:
            target = SessionPhase(target)
        except ValueError as e:
            raise ValidationError(f"Unknown session phase: {target}") from e
        if current_level is not None and current_level < 1:
            raise ValidationError("current_level must be >= 1")

        previous: Dict[str, SessionPhase] = {}

        def mutate(session: Session) -> Session:
            previous["phase"] = session.phase
            if session.phase.is_terminal:
                raise InvalidTransitionError(
                    f"Session {session.id} is {session.phase.value}; "
                    f"cannot move to {target.value}",
                    current=session.phase.value,
                    target=target.value,
                )
            if session.phase != target and not can_transition(session.phase, target):
                raise InvalidTransitionError(
                    f"Cannot move session {session.id} from "
                    f"{session.phase.value} to {target.value}",
                    current=session.phase.value,
                    target=target.value,
                )

            updates: Dict[str, Any] = {"phase": target}
            if target == SessionPhase.COMPLETE:
                updates["is_completed"] = True
            if current_level is not None:
                updates["current_level"] = current_level
            if branching_path is not None:
                updates["branching_path"] = branching_path
            return session.model_copy(update=updates)

        try:
            updated = await self.sessions.update_atomically(session_id, mutate)
        except InvalidTransitionError as e:
            log.warning(
                "phase_transition_rejected",
                session_id=session_id,
                current=e.current,
                target=e.target,
            )
            raise

        log.info(
            "phase_advanced",
            session_id=session_id,
            from_phase=previous["phase"].value,
            to_phase=updated.phase.value,
            current_level=updated.current_level,
        )
        return updated

    async def exit_session(self, session_id: str) -> Session:
        """Mark the session as abandoned by the visitor."""
        return await self.advance_phase(session_id, SessionPhase.EXITED)

    async def merge_session_data(
        self, session_id: str, updates: Dict[str, Any]
    ) -> Session:
        """Merge keys into the session's opaque UI state, atomically."""

        def mutate(session: Session) -> Session:
            return session.model_copy(
                update={"session_data": {**session.session_data, **updates}}
            )

        updated = await self.sessions.update_atomically(session_id, mutate)
        log.debug(
            "session_data_merged", session_id=session_id, keys=sorted(updates)
        )
        return updated

    # ==================================================================
    # Responses
    # ==================================================================

    async def record_response(
        self,
        session_id: str,
        question_id: str,
        response_type: ResponseType | str,
        payload: Any = None,
        file: Optional[FilePayload] = None,
        level_id: Optional[str] = None,
    ) -> Response:
        """
        Record one answer, then hand any attached file to storage.

        The response row is written first and carries the session's
        visitor number as of that moment. The file is stored afterwards;
        the row is updated with its reference once storage confirms.

        Args:
            session_id: Owning session
            question_id: Question answered
            response_type: text, audio, photo, video, email or name
            payload: Literal answer (text) or client-side file descriptor
            file: Media bytes for audio/photo/video answers
            level_id: Level answered; defaults to the session's current level

        Returns:
            The recorded response (upload pending/complete for media)

        Raises:
            SessionNotFoundError: No such session
            ValidationError: Unknown type, or a file on a non-media answer
            UploadRejectedError: File type, size or emptiness refused; the
                answer stays recorded with upload status failed
            StorageError: File upload failed; the answer stays recorded
                with upload status failed and err.response_id set
        """
        try:
            response_type = ResponseType(response_type)
        except ValueError as e:
            raise ValidationError(f"Unknown response type: {response_type}") from e
        if file is not None and not response_type.is_media:
            raise ValidationError(
                f"{response_type.value} responses cannot carry a file"
            )

        session = await self.get_session(session_id)
        if level_id is None:
            level_id = await self._current_level_id(session)

        response = Response(
            id=str(uuid.uuid4()),
            session_id=session.id,
            user_id=session.user_id,
            level_id=level_id,
            question_id=question_id,
            response_type=response_type,
            response_data=payload,
            scan_result=ScanResult.PENDING if file is not None else None,
        )
        recorded = await self.responses.create(response)

        log.info(
            "response_recorded",
            session_id=session_id,
            response_id=recorded.id,
            question_id=question_id,
            response_type=response_type.value,
            visitor_number=recorded.visitor_number,
        )

        if file is None:
            return recorded
        return await self._store_file(recorded, file)

    async def retry_upload(self, response_id: str, file: FilePayload) -> Response:
        """
        Re-attempt storage for a media answer whose upload is pending or failed.

        Raises:
            ResponseNotFoundError: No such response
            ValidationError: Response is not a media answer
            UploadRejectedError: File type, size or emptiness refused
            StorageError: Upload failed again
        """
        response = await self.get_response(response_id)
        if not response.response_type.is_media:
            raise ValidationError(
                f"Response {response_id} is {response.response_type.value}; "
                "it has no file to upload"
            )
        if response.upload_status == UploadStatus.COMPLETE:
            log.info("upload_already_complete", response_id=response_id)
            return response
        return await self._store_file(response, file)

    def _rejection_reason(self, file: FilePayload) -> Optional[str]:
        if file.content_type not in self.allowed_media_types:
            return f"File type {file.content_type} is not allowed"
        if len(file.data) > self.max_upload_bytes:
            return f"File exceeds the {self.max_upload_bytes} byte upload limit"
        if not file.data:
            return "Uploaded file is empty"
        return None

    async def _store_file(self, response: Response, file: FilePayload) -> Response:
        reason = self._rejection_reason(file)
        if reason is not None:
            await self.responses.mark_upload_failed(response.id, reason)
            log.warning(
                "upload_rejected",
                response_id=response.id,
                session_id=response.session_id,
                reason=reason,
            )
            raise UploadRejectedError(reason, response_id=response.id)

        if self.file_storage is None:
            log.warning(
                "file_storage_not_configured",
                response_id=response.id,
                session_id=response.session_id,
            )
            return response

        try:
            stored = await asyncio.wait_for(
                self.file_storage.store(
                    file.data, file.content_type, response.session_id, response.question_id
                ),
                timeout=self.storage_timeout,
            )
        except (StorageError, asyncio.TimeoutError) as e:
            message = (
                e.message
                if isinstance(e, StorageError)
                else f"Upload timed out after {self.storage_timeout}s"
            )
            await self.responses.mark_upload_failed(response.id, message)
            log.warning(
                "upload_failed",
                response_id=response.id,
                session_id=response.session_id,
                error=message,
            )
            raise StorageError(message, response_id=response.id) from e

        updated = await self.responses.mark_stored(
            response.id,
            stored["url"],
            stored["id"],
            metadata={
                "content_type": file.content_type,
                "size_bytes": len(file.data),
            },
        )
        log.info(
            "upload_complete",
            response_id=response.id,
            session_id=response.session_id,
            file_id=stored["id"],
        )
        return updated

    async def record_scan_result(
        self, response_id: str, result: ScanResult | str
    ) -> Response:
        """Record a virus scan verdict for a stored file."""
        try:
            result = ScanResult(result)
        except ValueError as e:
            raise ValidationError(f"Unknown scan result: {result}") from e
        await self.get_response(response_id)
        updated = await self.responses.record_scan_result(response_id, result)
        log.info("scan_result_recorded", response_id=response_id, result=result.value)
        return updated

    # ==================================================================
    # Level completion
    # ==================================================================

    async def complete_level(
        self,
        session_id: str,
        responses: Optional[Iterable[ResponseValue]] = None,
        expected_level: Optional[int] = None,
    ) -> Session:
        """
        Finish the session's current level and move to the next one.

        Branching rules of the level are evaluated against the given
        responses (or the level's recorded responses when omitted). The
        level counter advances by one and the chosen path is stored; past
        the experiment's last level the session becomes complete, otherwise
        it returns to the video phase of the next level.

        Args:
            session_id: Session to advance
            responses: Question/value pairs for the level
            expected_level: Level the caller believes it is completing

        Raises:
            SessionNotFoundError: No such session
            LevelNotFoundError: Experiment has no definition for the level
            InvalidTransitionError: Session is terminal, or the level was
                already completed by another request
        """
        session = await self.get_session(session_id)
        if session.phase.is_terminal:
            raise InvalidTransitionError(
                f"Session {session_id} is {session.phase.value}; no level to complete",
                current=session.phase.value,
                target="next_level",
            )

        level_number = session.current_level
        if expected_level is not None and expected_level != level_number:
            raise InvalidTransitionError(
                f"Session {session_id} is on level {level_number}, not {expected_level}",
                current=session.phase.value,
                target="next_level",
            )

        experiment = await self.experiments.get(session.experiment_id)
        level = self._get_level(experiment, level_number)

        if responses is None:
            recorded = await self.responses.list_for_session(session_id, level_id=level.id)
            responses = [r.to_value() for r in recorded]
        target_path = evaluate(
            level.branching_rules, list(responses), fallback=self.branching_fallback
        )

        def mutate(current: Session) -> Session:
            if current.phase.is_terminal or current.current_level != level_number:
                raise InvalidTransitionError(
                    f"Level {level_number} of session {current.id} was already completed",
                    current=current.phase.value,
                    target="next_level",
                )
            next_level = level_number + 1
            finished = next_level > experiment.total_levels
            return current.model_copy(
                update={
                    "current_level": next_level,
                    "branching_path": target_path,
                    "phase": SessionPhase.COMPLETE if finished else SessionPhase.VIDEO,
                    "is_completed": finished,
                }
            )

        updated = await self.sessions.update_atomically(session_id, mutate)

        log.info(
            "level_completed",
            session_id=session_id,
            completed_level=level_number,
            next_level=updated.current_level,
            branching_path=target_path,
            session_complete=updated.is_completed,
        )
        return updated

    def _get_level(self, experiment: Experiment, level_number: int) -> ExperimentLevel:
        level = experiment.get_level(level_number)
        if level is None:
            raise LevelNotFoundError(
                f"Experiment {experiment.id} has no level {level_number}"
            )
        return level

    async def _current_level_id(self, session: Session) -> str:
        experiment = await self.experiments.get(session.experiment_id)
        level = experiment.get_level(session.current_level)
        if level is not None:
            return level.id
        return f"{experiment.id}-level-{session.current_level}"

    # ==================================================================
    # Contact details
    # ==================================================================

    async def submit_contact(
        self, session_id: str, email: str, name: Optional[str] = None
    ) -> ContactResult:
        """
        Store the visitor's contact details and sync their customer profile.

        The details are saved on the session and recorded as email/name
        responses before the profile sink is called, so a sync failure
        loses nothing.

        Raises:
            SessionNotFoundError: No such session
        """
        session = await self.merge_session_data(
            session_id, {"userEmail": email, "userName": name}
        )
        await self.record_response(
            session_id, "contact_email", ResponseType.EMAIL, email, level_id=CONTACT_LEVEL_ID
        )
        if name:
            await self.record_response(
                session_id, "contact_name", ResponseType.NAME, name, level_id=CONTACT_LEVEL_ID
            )

        if self.customer_profile is None:
            log.info("customer_profile_sync_skipped", session_id=session_id)
            return ContactResult(
                session=session,
                profile_synced=False,
                profile_error="Customer profile sync is not configured",
            )

        try:
            await self.customer_profile.upsert(email, name, session_id)
        except ProfileSyncError as e:
            log.warning(
                "customer_profile_sync_failed", session_id=session_id, error=e.message
            )
            return ContactResult(session=session, profile_synced=False, profile_error=e.message)

        return ContactResult(session=session, profile_synced=True)
