"""
Response API routes.

Endpoints over recorded answers: the cross-session listing, and per-answer
inspection, upload retry and virus scan results.
"""

from typing import Optional

from fastapi import APIRouter, File, Query, UploadFile
import structlog

from src.api.dependencies import SessionServiceDep
from src.api.routes.sessions import read_upload
from src.api.schemas import ResponseDetail, ResponseListResponse, ScanResultRequest

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/responses", tags=["responses"])


@router.get("", response_model=ResponseListResponse)
async def list_responses(
    service: SessionServiceDep,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
):
    """List recorded answers across all sessions, newest first."""
    responses = await service.list_all_responses(limit=limit)
    return ResponseListResponse(
        responses=[ResponseDetail.from_response(r) for r in responses],
        total=len(responses),
    )


@router.get("/{response_id}", response_model=ResponseDetail)
async def get_response(response_id: str, service: SessionServiceDep):
    """Get a recorded answer, including its upload status."""
    return ResponseDetail.from_response(await service.get_response(response_id))


@router.post("/{response_id}/retry-upload", response_model=ResponseDetail)
async def retry_upload(
    response_id: str,
    service: SessionServiceDep,
    file: UploadFile = File(...),
):
    """Store the file for a media answer whose upload is pending or failed.

    Already-uploaded answers are returned unchanged.
    """
    file_payload = await read_upload(file)
    response = await service.retry_upload(response_id, file_payload)
    return ResponseDetail.from_response(response)


@router.post("/{response_id}/scan", response_model=ResponseDetail)
async def record_scan_result(
    response_id: str,
    request: ScanResultRequest,
    service: SessionServiceDep,
):
    """Record the virus scan verdict for an uploaded file."""
    response = await service.record_scan_result(response_id, request.result)
    return ResponseDetail.from_response(response)
