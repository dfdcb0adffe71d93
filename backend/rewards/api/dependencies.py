"""Common dependencies for FastAPI routes.

This module wires the pipeline services to the application's database
session factory and resolves the submitter identity. Authentication is
handled in front of this service; the caller's identity arrives in the
``X-User-Id`` header.
"""

from __future__ import annotations

from functools import lru_cache
from typing import AsyncGenerator, Optional

from fastapi import Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from rewards.core import database
from rewards.services.award_service import AwardRecorder
from rewards.services.consensus_service import ConsensusValidator
from rewards.services.extraction_service import ExtractionService
from rewards.services.ledger_service import DuplicateLedger
from rewards.services.pipeline import ReceiptPipeline


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Alias for `get_db` to be imported in routers."""
    async for session in database.get_db():
        yield session


async def get_submitter_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    submitter_id = (x_user_id or "").strip()
    if not submitter_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return submitter_id


@lru_cache(maxsize=1)
def _default_pipeline() -> ReceiptPipeline:
    factory = database.AsyncSessionLocal
    return ReceiptPipeline(
        consensus=ConsensusValidator(ExtractionService()),
        ledger=DuplicateLedger(factory),
        recorder=AwardRecorder(factory),
    )


def get_pipeline() -> ReceiptPipeline:
    """Return the process-wide pipeline; override in tests."""
    return _default_pipeline()
