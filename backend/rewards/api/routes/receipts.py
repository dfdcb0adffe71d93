"""API routes for receipt submission."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from rewards.api.dependencies import get_pipeline, get_submitter_id
from rewards.core.config import settings
from rewards.core.observability import sentry_set_tags
from rewards.models.enums import RejectionReason
from rewards.models.schemas import SubmissionOutcome
from rewards.services.pipeline import ReceiptPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/receipts", tags=["receipts"])

REJECTION_STATUS = {
    RejectionReason.UNCLEAR: 422,
    RejectionReason.INVALID_FORMAT: 422,
    RejectionReason.DUPLICATE: status.HTTP_409_CONFLICT,
    RejectionReason.TRANSIENT_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    RejectionReason.DAILY_LIMIT_REACHED: status.HTTP_429_TOO_MANY_REQUESTS,
}

RETRY_AFTER_SECONDS = 5


def outcome_response(outcome: SubmissionOutcome) -> JSONResponse:
    """Render a pipeline outcome with the matching HTTP status."""
    body = outcome.model_dump(mode="json")
    if outcome.accepted:
        return JSONResponse(status_code=status.HTTP_200_OK, content=body)
    code = REJECTION_STATUS[outcome.reason]
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if outcome.reason == RejectionReason.TRANSIENT_UNAVAILABLE else None
    return JSONResponse(status_code=code, content=body, headers=headers)


@router.post("/submit", response_model=SubmissionOutcome)
async def submit_receipt(
    image: UploadFile = File(...),
    submitter_id: str = Depends(get_submitter_id),
    pipeline: ReceiptPipeline = Depends(get_pipeline),
) -> JSONResponse:
    """Verify a receipt photo and award points for it."""
    if not image.content_type or not image.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image files are allowed")

    contents = await image.read()
    if not contents:
        raise HTTPException(status_code=400, detail="Empty image upload")
    if len(contents) > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(status_code=400, detail="File too large. Maximum size is 10MB")

    sentry_set_tags({"route": "POST /receipts/submit"})
    logger.info("Receipt submitted submitter=%s filename=%s size=%d", submitter_id, image.filename, len(contents))
    outcome = await pipeline.submit_receipt(submitter_id, contents)
    return outcome_response(outcome)
