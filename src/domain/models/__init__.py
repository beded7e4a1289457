"""Domain models package."""

from .session import Session, SessionPhase, can_transition
from .user import User
from .response import Response, ResponseType, ResponseValue, ScanResult, UploadStatus
from .experiment import BranchingRule, Experiment, ExperimentLevel, Question

__all__ = [
    "Session",
    "SessionPhase",
    "can_transition",
    "User",
    "Response",
    "ResponseType",
    "ResponseValue",
    "ScanResult",
    "UploadStatus",
    "BranchingRule",
    "Experiment",
    "ExperimentLevel",
    "Question",
]
