"""Write side of the pipeline: record the receipt and credit points.

The ledger entry, the balance increment and the points history row are
applied in one database transaction. If anything fails (or the task is
cancelled) before commit, none of them is visible. This service does
not re-check for duplicates; the pipeline calls the duplicate ledger
immediately before it.
"""

from __future__ import annotations

import logging
from decimal import ROUND_FLOOR, Decimal
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rewards.core.config import settings
from rewards.core.exceptions import AwardError
from rewards.models.enums import PointsTransactionType
from rewards.models.schemas import AwardOutcome, ValidatedReceipt
from rewards.models.tables import LedgerEntry, PointsTransaction, User

logger = logging.getLogger(__name__)


def compute_points(order_total: Decimal, points_per_dollar: Optional[int] = None) -> int:
    """Points for a receipt: ``floor(order_total * points_per_dollar)``."""
    rate = settings.POINTS_PER_DOLLAR if points_per_dollar is None else points_per_dollar
    return int((order_total * rate).to_integral_value(rounding=ROUND_FLOOR))


class AwardRecorder:
    """Persists accepted receipts and credits the submitter exactly once."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], points_per_dollar: Optional[int] = None) -> None:
        self.session_factory = session_factory
        self.points_per_dollar = points_per_dollar

    async def _ensure_account(self, session: AsyncSession, submitter_id: str) -> None:
        user = await session.get(User, submitter_id)
        if user is None:
            session.add(User(id=submitter_id, points=0, lifetime_points=0))
            await session.flush()

    async def _credit(self, session: AsyncSession, submitter_id: str, points: int) -> Tuple[int, int]:
        """Atomically increment the balance; returns (previous, new)."""
        previous = (await session.execute(select(User.points).where(User.id == submitter_id))).scalar_one()
        await session.execute(
            update(User)
            .where(User.id == submitter_id)
            .values(points=User.points + points, lifetime_points=User.lifetime_points + points)
            .execution_options(synchronize_session=False)
        )
        new_balance = (await session.execute(select(User.points).where(User.id == submitter_id))).scalar_one()
        return int(previous), int(new_balance)

    async def record_and_award(self, submitter_id: str, receipt: ValidatedReceipt) -> AwardOutcome:
        points = compute_points(receipt.order_total, self.points_per_dollar)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await self._ensure_account(session, submitter_id)
                    entry = LedgerEntry(
                        submitter_id=submitter_id,
                        order_number=receipt.order_number,
                        order_date=receipt.order_date,
                        order_time=receipt.order_time,
                        order_total=receipt.order_total,
                        points_awarded=points,
                    )
                    session.add(entry)
                    await session.flush()
                    previous, new_balance = await self._credit(session, submitter_id, points)
                    session.add(
                        PointsTransaction(
                            user_id=submitter_id,
                            type=PointsTransactionType.RECEIPT_SCAN.value,
                            amount=points,
                            description=f"Receipt #{receipt.order_number} ({receipt.order_date})",
                            ledger_entry_id=entry.id,
                            details={
                                "receipt_total": str(receipt.order_total),
                                "previous_points": previous,
                                "new_points": new_balance,
                                "ledger_entry_id": entry.id,
                            },
                        )
                    )
                    entry_id = entry.id
        except SQLAlchemyError as exc:
            logger.error("[award] transaction rolled back submitter=%s: %s", submitter_id, exc)
            raise AwardError("award could not be recorded") from exc

        logger.info(
            "[award] submitter=%s order_number=%s points=%d balance=%d",
            submitter_id, receipt.order_number, points, new_balance,
        )
        return AwardOutcome(points_awarded=points, new_balance=new_balance, ledger_entry_id=entry_id)
