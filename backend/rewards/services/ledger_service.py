"""Read side of the accepted-receipt ledger.

A new receipt is a duplicate when any two of its three identifying
fields (order number, date, time) match a previously accepted receipt.
Requiring only a pair keeps detection working when one field of a
re-submission was read slightly differently.

Storage errors are raised as ``LedgerUnavailableError``; the pipeline
reports them as retryable instead of guessing either way.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rewards.core.exceptions import LedgerUnavailableError
from rewards.models.schemas import ValidatedReceipt
from rewards.models.tables import LedgerEntry

logger = logging.getLogger(__name__)


def duplicate_clause(receipt: ValidatedReceipt):
    """SQL condition matching any ledger entry sharing two fields with ``receipt``."""
    return or_(
        and_(LedgerEntry.order_number == receipt.order_number, LedgerEntry.order_date == receipt.order_date),
        and_(LedgerEntry.order_number == receipt.order_number, LedgerEntry.order_time == receipt.order_time),
        and_(LedgerEntry.order_date == receipt.order_date, LedgerEntry.order_time == receipt.order_time),
    )


class DuplicateLedger:
    """Queries over previously accepted receipts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def is_duplicate(self, receipt: ValidatedReceipt) -> bool:
        query = select(LedgerEntry.id).where(duplicate_clause(receipt)).limit(1)
        try:
            async with self.session_factory() as session:
                match = (await session.execute(query)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.warning("[ledger] duplicate check failed: %s", exc)
            raise LedgerUnavailableError("duplicate check unavailable") from exc
        if match is not None:
            logger.info(
                "[ledger] duplicate of entry=%s order_number=%s date=%s time=%s",
                match, receipt.order_number, receipt.order_date, receipt.order_time,
            )
        return match is not None

    async def count_accepted_since(self, submitter_id: str, since: dt.datetime) -> int:
        """Number of receipts accepted for ``submitter_id`` at or after ``since``."""
        query = select(func.count(LedgerEntry.id)).where(
            LedgerEntry.submitter_id == submitter_id,
            LedgerEntry.accepted_at >= since,
        )
        try:
            async with self.session_factory() as session:
                return int((await session.execute(query)).scalar() or 0)
        except SQLAlchemyError as exc:
            logger.warning("[ledger] daily count failed submitter=%s: %s", submitter_id, exc)
            raise LedgerUnavailableError("daily count unavailable") from exc


async def list_entries(
    session: AsyncSession,
    limit: int = 25,
    cursor: Optional[int] = None,
    submitter_id: Optional[str] = None,
) -> Tuple[List[LedgerEntry], Optional[int]]:
    """Return one page of ledger entries, newest first.

    ``cursor`` is the id of the last entry from the previous page; the
    second element of the result is the cursor for the next page, or
    ``None`` when this page is the last one.
    """
    query = select(LedgerEntry).order_by(LedgerEntry.id.desc()).limit(limit + 1)
    if cursor is not None:
        query = query.where(LedgerEntry.id < cursor)
    if submitter_id:
        query = query.where(LedgerEntry.submitter_id == submitter_id)
    rows = list((await session.execute(query)).scalars().all())
    next_cursor = rows[limit - 1].id if len(rows) > limit else None
    return rows[:limit], next_cursor
