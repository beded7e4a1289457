"""
API request/response schemas.

Pydantic models for API validation and serialization.
"""

from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional
from datetime import datetime

from src.domain.models.response import Response, ResponseType, ScanResult, UploadStatus
from src.domain.models.session import Session, SessionPhase

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ============ SESSION SCHEMAS ============


class SessionCreate(BaseModel):
    """Request to create a new session.

    experiment_id defaults to the active experiment.
    """

    experiment_id: Optional[str] = None
    user_id: Optional[str] = None
    session_data: Dict[str, Any] = Field(default_factory=dict)


class SessionResponse(BaseModel):
    """Session details response."""

    id: str
    user_id: Optional[str] = None
    experiment_id: str
    current_level: int
    branching_path: str
    phase: SessionPhase
    is_completed: bool
    visitor_number: Optional[int] = Field(
        default=None, description="Null when numbering ran in degraded mode"
    )
    session_data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(**session.model_dump())


class SessionListResponse(BaseModel):
    """List of sessions response."""

    sessions: List[SessionResponse]
    total: int


class PhaseUpdateRequest(BaseModel):
    """Request to move a session to another phase."""

    phase: SessionPhase
    current_level: Optional[int] = Field(default=None, ge=1)
    branching_path: Optional[str] = None


class SessionDataUpdate(BaseModel):
    """Keys merged into the session's UI state."""

    data: Dict[str, Any]


# ============ LEVEL SCHEMAS ============


class ResponseValueSchema(BaseModel):
    question_id: str
    value: str


class CompleteLevelRequest(BaseModel):
    """Request to finish the current level.

    When responses is omitted, the level's recorded responses are used.
    """

    responses: Optional[List[ResponseValueSchema]] = None
    expected_level: Optional[int] = Field(default=None, ge=1)


# ============ RESPONSE SCHEMAS ============


class ResponseCreate(BaseModel):
    """JSON body for non-media answers."""

    question_id: str = Field(..., min_length=1)
    response_type: ResponseType = ResponseType.TEXT
    response_data: Any = None
    level_id: Optional[str] = None


class ResponseDetail(BaseModel):
    """Recorded answer."""

    id: str
    session_id: str
    user_id: Optional[str] = None
    level_id: str
    question_id: str
    response_type: ResponseType
    response_data: Any = None
    file_url: Optional[str] = None
    file_id: Optional[str] = None
    upload_status: UploadStatus
    upload_error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_scanned: bool = False
    scan_result: Optional[ScanResult] = None
    visitor_number: Optional[int] = None
    created_at: datetime

    @classmethod
    def from_response(cls, response: Response) -> "ResponseDetail":
        return cls(**response.model_dump(), upload_status=response.upload_status)


class ResponseListResponse(BaseModel):
    responses: List[ResponseDetail]
    total: int


class ScanResultRequest(BaseModel):
    result: ScanResult


# ============ CONTACT SCHEMAS ============


class ContactRequest(BaseModel):
    """Contact details collected after the last level."""

    email: str = Field(..., max_length=320, pattern=EMAIL_PATTERN)
    name: Optional[str] = Field(default=None, max_length=200)


class ContactResponse(BaseModel):
    session: SessionResponse
    profile_synced: bool
    profile_error: Optional[str] = None


# ============ EXPERIMENT SCHEMAS ============


class BranchingRuleSchema(BaseModel):
    condition: str
    target_path: str
    next_level_id: Optional[str] = None


class QuestionSchema(BaseModel):
    id: str
    type: str
    title: str = ""
    text: str = ""
    required: bool = False
    options: List[str] = Field(default_factory=list)
    allowed_media_types: List[str] = Field(default_factory=list)


class LevelSchema(BaseModel):
    id: str
    level_number: int
    video_url: str
    background_video_url: Optional[str] = None
    completion_video_url: Optional[str] = None
    post_submission_video_url: Optional[str] = None
    video_thumbnail: Optional[str] = None
    questions: List[QuestionSchema] = Field(default_factory=list)
    branching_rules: List[BranchingRuleSchema] = Field(default_factory=list)


class ExperimentResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    total_levels: int
    is_active: bool
    levels: List[LevelSchema] = Field(default_factory=list)


class LevelListResponse(BaseModel):
    experiment_id: str
    levels: List[LevelSchema]
    total: int


# ============ ERROR SCHEMAS ============


class ErrorDetail(BaseModel):
    type: str
    message: str
    response_id: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response schema."""

    error: ErrorDetail
