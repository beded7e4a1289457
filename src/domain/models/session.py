"""Session domain models for participation lifecycle management.

This module defines the durable record of one visitor's traversal of an
experiment and the phase state machine that governs it.

Core Models:
    - SessionPhase: Phase of the current level (video, questions, ...)
    - Session: Persisted session row, owned by SessionLifecycleService

Phase Lifecycle:
    created -> video -> questions -> post_submission -> complete

    - questions/post_submission -> video is the explicit replay action
    - any non-terminal phase -> exited (visitor left the experience)
    - complete and exited are terminal
    - completing a non-final level returns the session to video for the
      next level (performed by complete_level, not by advance_phase)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, Field


class SessionPhase(str, Enum):
    """Phase of a participation session."""

    CREATED = "created"
    VIDEO = "video"
    QUESTIONS = "questions"
    POST_SUBMISSION = "post_submission"
    COMPLETE = "complete"
    EXITED = "exited"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES: FrozenSet[SessionPhase] = frozenset(
    {SessionPhase.COMPLETE, SessionPhase.EXITED}
)

# Forward steps, replay and exit. Anything not listed is rejected.
ALLOWED_TRANSITIONS: Dict[SessionPhase, FrozenSet[SessionPhase]] = {
    SessionPhase.CREATED: frozenset({SessionPhase.VIDEO, SessionPhase.EXITED}),
    SessionPhase.VIDEO: frozenset({SessionPhase.QUESTIONS, SessionPhase.EXITED}),
    SessionPhase.QUESTIONS: frozenset(
        {SessionPhase.POST_SUBMISSION, SessionPhase.VIDEO, SessionPhase.EXITED}
    ),
    SessionPhase.POST_SUBMISSION: frozenset(
        {SessionPhase.COMPLETE, SessionPhase.VIDEO, SessionPhase.EXITED}
    ),
    SessionPhase.COMPLETE: frozenset(),
    SessionPhase.EXITED: frozenset(),
}


def can_transition(current: SessionPhase, target: SessionPhase) -> bool:
    """Return True if advance_phase may move a session from current to target."""
    return target in ALLOWED_TRANSITIONS[current]


class Session(BaseModel):
    """One visitor's traversal of an experiment.

    Created once at experiment start, mutated on every phase/level
    transition and never deleted.

    Attributes:
        - current_level: 1-indexed level; exceeds total_levels once complete
        - branching_path: Tag chosen by the branching evaluator
        - visitor_number: Null when numbering was degraded at creation
        - session_data: Opaque UI state (userEmail, userName, ...)
    """

    id: str
    user_id: Optional[str] = None
    experiment_id: str
    current_level: int = Field(default=1, ge=1)
    branching_path: str = "default"
    phase: SessionPhase = SessionPhase.CREATED
    is_completed: bool = False
    visitor_number: Optional[int] = Field(default=None, ge=1)
    session_data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"from_attributes": True}
