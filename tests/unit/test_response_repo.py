"""Tests for response repository."""

import uuid

import pytest

from src.core.exceptions import SessionNotFoundError
from src.domain.models.response import Response, ResponseType, ScanResult, UploadStatus
from tests.conftest import make_session


def make_response(session_id: str, **fields) -> Response:
    base = {
        "id": str(uuid.uuid4()),
        "session_id": session_id,
        "level_id": "exp-test-level-1",
        "question_id": "q1",
        "response_type": ResponseType.TEXT,
        "response_data": {"value": "hello"},
    }
    base.update(fields)
    return Response(**base)


class TestResponseRepository:
    async def test_create_snapshots_session_visitor_number(self, session_repo, response_repo):
        session = await session_repo.create(make_session(visitor_number=12))

        response = await response_repo.create(make_response(session.id, visitor_number=999))

        assert response.visitor_number == 12
        assert response.response_data == {"value": "hello"}

    async def test_snapshot_is_not_a_live_join(self, session_repo, response_repo):
        session = await session_repo.create(make_session())
        before = await response_repo.create(make_response(session.id))

        await session_repo.update_atomically(
            session.id, lambda s: s.model_copy(update={"visitor_number": 40})
        )
        after = await response_repo.create(make_response(session.id))

        assert (await response_repo.get(before.id)).visitor_number is None
        assert after.visitor_number == 40

    async def test_create_for_missing_session(self, response_repo):
        with pytest.raises(SessionNotFoundError):
            await response_repo.create(make_response("missing"))

    async def test_list_for_session_in_submission_order(self, session_repo, response_repo):
        session = await session_repo.create(make_session())
        ids = []
        for i, level in enumerate(["l1", "l1", "l2"]):
            r = await response_repo.create(
                make_response(session.id, level_id=level, question_id=f"q{i}")
            )
            ids.append(r.id)

        all_responses = await response_repo.list_for_session(session.id)
        level_one = await response_repo.list_for_session(session.id, level_id="l1")

        assert [r.id for r in all_responses] == ids
        assert [r.id for r in level_one] == ids[:2]

    async def test_mark_stored(self, session_repo, response_repo):
        session = await session_repo.create(make_session())
        response = await response_repo.create(
            make_response(session.id, response_type=ResponseType.PHOTO, response_data=None)
        )
        assert response.upload_status == UploadStatus.PENDING

        stored = await response_repo.mark_stored(
            response.id, "/uploads/a.png", "a.png", {"size_bytes": 3}
        )

        assert stored.upload_status == UploadStatus.COMPLETE
        assert stored.file_id == "a.png"
        assert stored.metadata == {"size_bytes": 3}

    async def test_mark_upload_failed_then_stored(self, session_repo, response_repo):
        session = await session_repo.create(make_session())
        response = await response_repo.create(
            make_response(session.id, response_type=ResponseType.AUDIO)
        )

        failed = await response_repo.mark_upload_failed(response.id, "timeout")
        assert failed.upload_status == UploadStatus.FAILED
        assert failed.upload_error == "timeout"

        stored = await response_repo.mark_stored(response.id, "/uploads/a.ogg", "a.ogg")
        assert stored.upload_status == UploadStatus.COMPLETE
        assert stored.upload_error is None

    async def test_settled_scan_freezes_row(self, session_repo, response_repo):
        session = await session_repo.create(make_session())
        response = await response_repo.create(
            make_response(session.id, response_type=ResponseType.VIDEO)
        )
        await response_repo.mark_stored(response.id, "/uploads/v.mp4", "v.mp4")

        clean = await response_repo.record_scan_result(response.id, ScanResult.CLEAN)
        assert clean.is_scanned
        assert clean.scan_result == ScanResult.CLEAN

        after = await response_repo.record_scan_result(response.id, ScanResult.INFECTED)
        assert after.scan_result == ScanResult.CLEAN

        unchanged = await response_repo.mark_stored(response.id, "/uploads/other.mp4", "other")
        assert unchanged.file_url == "/uploads/v.mp4"

    async def test_pending_scan_does_not_settle(self, session_repo, response_repo):
        session = await session_repo.create(make_session())
        response = await response_repo.create(
            make_response(session.id, response_type=ResponseType.VIDEO)
        )

        pending = await response_repo.record_scan_result(response.id, ScanResult.PENDING)

        assert not pending.is_scanned

    async def test_list_all_newest_first(self, session_repo, response_repo):
        session = await session_repo.create(make_session())
        first = await response_repo.create(make_response(session.id))
        second = await response_repo.create(make_response(session.id))

        responses = await response_repo.list_all()

        assert [r.id for r in responses][:2] == [second.id, first.id]
