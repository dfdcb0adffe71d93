"""API routes exposing a submitter's points balance and history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rewards.api.dependencies import get_db_session
from rewards.models.schemas import PointsBalanceRead, PointsHistoryResponse, PointsTransactionRead
from rewards.models.tables import PointsTransaction, User

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{submitter_id}/points", response_model=PointsBalanceRead)
async def get_points(submitter_id: str, db: AsyncSession = Depends(get_db_session)) -> PointsBalanceRead:
    """Current balance; unknown submitters simply have zero points."""
    user = await db.get(User, submitter_id)
    if user is None:
        return PointsBalanceRead(submitter_id=submitter_id)
    return PointsBalanceRead(submitter_id=submitter_id, points=user.points, lifetime_points=user.lifetime_points)


@router.get("/{submitter_id}/points/history", response_model=PointsHistoryResponse)
async def get_points_history(
    submitter_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db_session),
) -> PointsHistoryResponse:
    query = (
        select(PointsTransaction)
        .where(PointsTransaction.user_id == submitter_id)
        .order_by(PointsTransaction.id.desc())
        .limit(limit)
    )
    rows = (await db.execute(query)).scalars().all()
    return PointsHistoryResponse(
        submitter_id=submitter_id,
        transactions=[PointsTransactionRead.model_validate(row) for row in rows],
    )
