"""Admin listing of accepted receipts."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rewards.api.dependencies import get_db_session
from rewards.models.schemas import LedgerEntryRead, LedgerPage
from rewards.services.ledger_service import list_entries

router = APIRouter(prefix="/ledger", tags=["ledger"])


@router.get("", response_model=LedgerPage)
async def list_ledger(
    limit: int = Query(25, ge=1, le=100),
    cursor: Optional[str] = Query(None),
    submitter_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db_session),
) -> LedgerPage:
    """Accepted receipts, newest first, paginated by opaque cursor."""
    after: Optional[int] = None
    if cursor:
        if not cursor.isdigit():
            raise HTTPException(status_code=400, detail="Invalid cursor")
        after = int(cursor)
    rows, next_id = await list_entries(db, limit=limit, cursor=after, submitter_id=submitter_id)
    return LedgerPage(
        entries=[LedgerEntryRead.model_validate(row) for row in rows],
        next_cursor=str(next_id) if next_id is not None else None,
    )
