"""Tests for exception hierarchy."""

import pytest


def test_exception_hierarchy():
    """All exceptions inherit from ParticipationError."""
    from src.core.exceptions import (
        ParticipationError,
        ConfigurationError,
        AllocationError,
        InvalidTransitionError,
        StorageError,
        ProfileSyncError,
        ValidationError,
        NotFoundError,
        SessionNotFoundError,
        UserNotFoundError,
        ResponseNotFoundError,
        ExperimentNotFoundError,
        LevelNotFoundError,
    )

    for exc_type in (
        ConfigurationError,
        AllocationError,
        InvalidTransitionError,
        StorageError,
        ProfileSyncError,
        ValidationError,
        NotFoundError,
    ):
        assert issubclass(exc_type, ParticipationError)

    for exc_type in (
        SessionNotFoundError,
        UserNotFoundError,
        ResponseNotFoundError,
        ExperimentNotFoundError,
        LevelNotFoundError,
    ):
        assert issubclass(exc_type, NotFoundError)


def test_exceptions_can_be_raised():
    """Exceptions can be raised and caught by their base class."""
    from src.core.exceptions import NotFoundError, SessionNotFoundError

    with pytest.raises(NotFoundError) as exc_info:
        raise SessionNotFoundError("Session test-123 not found")

    assert exc_info.value.message == "Session test-123 not found"


def test_storage_error_carries_response_id():
    from src.core.exceptions import StorageError

    err = StorageError("upload failed", response_id="r-1")

    assert err.response_id == "r-1"
    assert str(err) == "upload failed"


def test_upload_rejection_is_a_validation_error():
    from src.core.exceptions import UploadRejectedError, ValidationError

    err = UploadRejectedError("File type text/html is not allowed", response_id="r-2")

    assert isinstance(err, ValidationError)
    assert err.response_id == "r-2"


def test_invalid_transition_carries_phases():
    from src.core.exceptions import InvalidTransitionError

    err = InvalidTransitionError("nope", current="complete", target="video")

    assert err.current == "complete"
    assert err.target == "video"
