"""
Custom exception hierarchy for the participation funnel.

All application exceptions inherit from ParticipationError.
"""

from typing import Optional


class ParticipationError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ParticipationError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# Visitor Numbering Errors
# =============================================================================


class AllocationError(ParticipationError):
    """Sequence allocator unreachable or timed out.

    Recovered locally by session creation (degraded mode: the session is
    created without a visitor number). Never surfaced to participants.
    """

    pass


# =============================================================================
# Session Errors
# =============================================================================


class InvalidTransitionError(ParticipationError):
    """Requested phase change is not permitted by the session state machine."""

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        target: Optional[str] = None,
    ):
        self.current = current
        self.target = target
        super().__init__(message)


# =============================================================================
# Collaborator Errors
# =============================================================================


class StorageError(ParticipationError):
    """File upload to the external storage collaborator failed.

    The response row stays recorded; response_id lets the caller offer a retry.
    """

    def __init__(self, message: str, response_id: Optional[str] = None):
        self.response_id = response_id
        super().__init__(message)


class ProfileSyncError(ParticipationError):
    """Customer profile upsert failed after all retries."""

    pass


class ValidationError(ParticipationError):
    """Input validation failed."""

    pass


class UploadRejectedError(ValidationError):
    """An attached file failed the type, size or emptiness checks.

    The answer itself is recorded with upload status failed.
    """

    def __init__(self, message: str, response_id: Optional[str] = None):
        self.response_id = response_id
        super().__init__(message)


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(ParticipationError):
    """Referenced entity does not exist."""

    pass


class SessionNotFoundError(NotFoundError):
    """Session does not exist."""

    pass


class UserNotFoundError(NotFoundError):
    """User does not exist."""

    pass


class ResponseNotFoundError(NotFoundError):
    """Response does not exist."""

    pass


class ExperimentNotFoundError(NotFoundError):
    """Experiment configuration does not exist."""

    pass


class LevelNotFoundError(NotFoundError):
    """Experiment has no level with the requested number."""

    pass
