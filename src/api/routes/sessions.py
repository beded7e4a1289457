"""
Session API routes.

Endpoints for the participation lifecycle: creating sessions, moving
between phases, recording answers and completing levels.
"""

import json
from typing import Optional

from fastapi import APIRouter, File, Form, Query, UploadFile, status
import structlog

from src.api.dependencies import ExperimentCatalogDep, SessionServiceDep
from src.api.schemas import (
    CompleteLevelRequest,
    ContactRequest,
    ContactResponse,
    PhaseUpdateRequest,
    ResponseCreate,
    ResponseDetail,
    ResponseListResponse,
    SessionCreate,
    SessionDataUpdate,
    SessionListResponse,
    SessionResponse,
)
from src.core.config import settings
from src.core.exceptions import ValidationError
from src.domain.models.response import ResponseType, ResponseValue
from src.services.session_service import FilePayload

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


async def read_upload(upload: UploadFile) -> FilePayload:
    """Read an uploaded file, at most one byte past the size limit.

    Type and size are checked by the service once the answer is recorded.
    """
    content_type = upload.content_type or "application/octet-stream"
    data = await upload.read(settings.max_upload_bytes + 1)
    return FilePayload(data=data, content_type=content_type)


# ============ SESSION CRUD ============


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    request: SessionCreate,
    service: SessionServiceDep,
    experiments: ExperimentCatalogDep,
):
    """Create a participation session.

    Uses the active experiment unless one is named. The visitor number is
    null when numbering is temporarily unavailable; the session is usable
    either way.
    """
    experiment_id = request.experiment_id
    if experiment_id is None:
        experiment_id = (await experiments.get_active()).id

    session = await service.create_session(
        experiment_id=experiment_id,
        user_id=request.user_id,
        session_data=request.session_data,
    )
    return SessionResponse.from_session(session)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    service: SessionServiceDep,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
):
    """List sessions, newest first."""
    sessions = await service.list_sessions(limit=limit)
    return SessionListResponse(
        sessions=[SessionResponse.from_session(s) for s in sessions],
        total=len(sessions),
    )


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, service: SessionServiceDep):
    """Get session details by ID. Returns 404 if the session does not exist."""
    return SessionResponse.from_session(await service.get_session(session_id))


# ============ LIFECYCLE ============


@router.post("/{session_id}/phase", response_model=SessionResponse)
async def advance_phase(
    session_id: str,
    request: PhaseUpdateRequest,
    service: SessionServiceDep,
):
    """Move the session to another phase.

    Returns 409 when the transition is not permitted; the session is left
    unchanged.
    """
    session = await service.advance_phase(
        session_id,
        request.phase,
        current_level=request.current_level,
        branching_path=request.branching_path,
    )
    return SessionResponse.from_session(session)


@router.post("/{session_id}/exit", response_model=SessionResponse)
async def exit_session(session_id: str, service: SessionServiceDep):
    """Record that the visitor left the experience."""
    return SessionResponse.from_session(await service.exit_session(session_id))


@router.patch("/{session_id}/data", response_model=SessionResponse)
async def update_session_data(
    session_id: str,
    request: SessionDataUpdate,
    service: SessionServiceDep,
):
    """Merge keys into the session's UI state."""
    session = await service.merge_session_data(session_id, request.data)
    return SessionResponse.from_session(session)


@router.post("/{session_id}/complete-level", response_model=SessionResponse)
async def complete_level(
    session_id: str,
    request: CompleteLevelRequest,
    service: SessionServiceDep,
):
    """Finish the current level and advance to the next one.

    Pass expected_level to make retried requests safe: a second completion
    of the same level returns 409 instead of skipping a level.
    """
    responses = None
    if request.responses is not None:
        responses = [
            ResponseValue(question_id=r.question_id, value=r.value)
            for r in request.responses
        ]

    session = await service.complete_level(
        session_id, responses=responses, expected_level=request.expected_level
    )
    return SessionResponse.from_session(session)


@router.post("/{session_id}/contact", response_model=ContactResponse)
async def submit_contact(
    session_id: str,
    request: ContactRequest,
    service: SessionServiceDep,
):
    """Store contact details and sync the customer profile.

    Profile sync failures are reported in the body, not as an error status.
    """
    result = await service.submit_contact(session_id, request.email, request.name)
    return ContactResponse(
        session=SessionResponse.from_session(result.session),
        profile_synced=result.profile_synced,
        profile_error=result.profile_error,
    )


# ============ RESPONSES ============


@router.get("/{session_id}/responses", response_model=ResponseListResponse)
async def list_responses(session_id: str, service: SessionServiceDep):
    """List the session's recorded answers in submission order."""
    responses = await service.list_responses(session_id)
    return ResponseListResponse(
        responses=[ResponseDetail.from_response(r) for r in responses],
        total=len(responses),
    )


@router.post(
    "/{session_id}/responses",
    response_model=ResponseDetail,
    status_code=status.HTTP_201_CREATED,
)
async def record_json_response(
    session_id: str,
    request: ResponseCreate,
    service: SessionServiceDep,
):
    """Record a text, email or name answer."""
    if request.response_type.is_media:
        raise ValidationError(
            f"{request.response_type.value} answers must be uploaded to "
            f"/sessions/{session_id}/responses/upload"
        )

    response = await service.record_response(
        session_id,
        request.question_id,
        request.response_type,
        request.response_data,
        level_id=request.level_id,
    )
    return ResponseDetail.from_response(response)


@router.post(
    "/{session_id}/responses/upload",
    response_model=ResponseDetail,
    status_code=status.HTTP_201_CREATED,
)
async def record_media_response(
    session_id: str,
    service: SessionServiceDep,
    question_id: str = Form(..., min_length=1),
    response_type: ResponseType = Form(...),
    level_id: Optional[str] = Form(default=None),
    response_data: Optional[str] = Form(
        default=None, description="JSON-encoded client metadata for the file"
    ),
    file: Optional[UploadFile] = File(default=None),
):
    """Record an audio, photo or video answer.

    The answer is recorded before the file is stored. If storage fails the
    call returns 502 with the recorded response_id so the upload can be
    retried through /responses/{response_id}/retry-upload. A refused
    file (type, size, empty) returns 400, also carrying the response_id.
    """
    if not response_type.is_media:
        raise ValidationError(f"{response_type.value} answers are sent as JSON")

    payload = None
    if response_data:
        try:
            payload = json.loads(response_data)
        except json.JSONDecodeError as e:
            raise ValidationError("response_data must be valid JSON") from e

    file_payload = await read_upload(file) if file is not None else None

    response = await service.record_response(
        session_id,
        question_id,
        response_type,
        payload,
        file=file_payload,
        level_id=level_id,
    )
    return ResponseDetail.from_response(response)
