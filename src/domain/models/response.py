"""Response domain models.

A response is one submitted answer. It is written once, immediately, and
only its file-storage and scan columns may change afterwards.

Upload states (media answers only):
    - pending: no file reference and no error yet (transient, valid)
    - failed: storage collaborator reported an error (retry possible)
    - complete: file_url is present
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ResponseType(str, Enum):
    """Kind of answer submitted by the participant."""

    TEXT = "text"
    AUDIO = "audio"
    PHOTO = "photo"
    VIDEO = "video"
    EMAIL = "email"
    NAME = "name"

    @property
    def is_media(self) -> bool:
        return self in (ResponseType.AUDIO, ResponseType.PHOTO, ResponseType.VIDEO)


class UploadStatus(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    PENDING = "pending"
    FAILED = "failed"
    COMPLETE = "complete"


class ScanResult(str, Enum):
    PENDING = "pending"
    CLEAN = "clean"
    INFECTED = "infected"


class ResponseValue(BaseModel):
    """Question/value pair consumed by the branching evaluator."""

    question_id: str
    value: str

    model_config = {"frozen": True}


class Response(BaseModel):
    """One recorded answer.

    visitor_number is a snapshot of the owning session's number taken at
    insert time. It is not a live join: a session that acquires a number
    later does not change responses recorded before that.
    """

    id: str
    session_id: str
    user_id: Optional[str] = None
    level_id: str
    question_id: str
    response_type: ResponseType
    response_data: Any = None
    file_url: Optional[str] = None
    file_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    upload_error: Optional[str] = None
    is_scanned: bool = False
    scan_result: Optional[ScanResult] = None
    visitor_number: Optional[int] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"from_attributes": True}

    @property
    def upload_status(self) -> UploadStatus:
        if self.file_url:
            return UploadStatus.COMPLETE
        if not self.response_type.is_media:
            return UploadStatus.NOT_APPLICABLE
        if self.upload_error:
            return UploadStatus.FAILED
        return UploadStatus.PENDING

    def answer_value(self) -> str:
        """Flatten response_data to the string compared by branching rules.

        Accepts a bare value or a {"value": ...} payload.
        """
        data = self.response_data
        if isinstance(data, dict) and "value" in data:
            data = data["value"]
        if data is None:
            return ""
        return data if isinstance(data, str) else str(data)

    def to_value(self) -> ResponseValue:
        return ResponseValue(question_id=self.question_id, value=self.answer_value())
