"""Pydantic schemas for pipeline values and API responses.

Pydantic models are used for validating and serialising data that
crosses a boundary: the vision model's JSON payload on the way in and
the API responses on the way out. This module defines both the domain
schemas (``ReceiptFields``, ``ValidatedReceipt``, ``AwardOutcome``,
``SubmissionOutcome``) and the read models returned by the API.

Domain schemas accept the camelCase keys used by the vision model
(``orderNumber``) as well as their snake_case attribute names.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import RejectionReason


# ---------------------------------------------------------------------------
# Domain schemas


class ReceiptFields(BaseModel):
    """Fields extracted from a receipt photo, not yet sanity checked."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    order_number: str = Field(alias="orderNumber")
    order_total: Decimal = Field(alias="orderTotal")
    order_date: str = Field(alias="orderDate", description="MM/DD as printed, no year")
    order_time: str = Field(alias="orderTime", description="HH:MM, 24-hour")

    @field_validator("order_number", mode="before")
    @classmethod
    def _coerce_order_number(cls, v):
        # Models occasionally emit the order number as a JSON number
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("order_total", mode="before")
    @classmethod
    def _clean_total(cls, v):
        if isinstance(v, str):
            return v.replace("$", "").replace(",", "").strip()
        if isinstance(v, float):
            # Go through str() so 23.45 stays 23.45 rather than its binary expansion
            return str(v)
        return v

    @field_validator("order_date", "order_time", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    def differing_fields(self, other: "ReceiptFields") -> tuple[str, ...]:
        """Return the names of fields whose values differ from ``other``."""
        return tuple(
            name for name in type(self).model_fields if getattr(self, name) != getattr(other, name)
        )


class ValidatedReceipt(ReceiptFields):
    """``ReceiptFields`` that passed every sanity check.

    ``receipt_date`` is the month/day reconstructed against the
    validation clock (current year, or the previous one when the
    current-year date would lie in the future).
    """

    receipt_date: dt.date

    @property
    def order_number_value(self) -> int:
        return int(self.order_number)


class AwardOutcome(BaseModel):
    """Result of crediting a receipt to the submitter's balance."""

    points_awarded: int
    new_balance: int
    ledger_entry_id: int


class SubmissionOutcome(BaseModel):
    """Caller-facing result of ``submit_receipt``."""

    accepted: bool
    points_awarded: Optional[int] = None
    new_balance: Optional[int] = None
    reason: Optional[RejectionReason] = None
    detail: Optional[str] = None
    message: Optional[str] = None
    retryable: bool = False

    @classmethod
    def success(cls, outcome: AwardOutcome) -> "SubmissionOutcome":
        return cls(
            accepted=True,
            points_awarded=outcome.points_awarded,
            new_balance=outcome.new_balance,
            message=f"You earned {outcome.points_awarded} points!",
        )

    @classmethod
    def rejected(cls, reason: RejectionReason, detail: str, message: str, retryable: bool = False) -> "SubmissionOutcome":
        return cls(accepted=False, reason=reason, detail=detail, message=message, retryable=retryable)


# ---------------------------------------------------------------------------
# API response schemas


class PointsBalanceRead(BaseModel):
    submitter_id: str
    points: int = 0
    lifetime_points: int = 0


class PointsTransactionRead(BaseModel):
    id: int
    type: str
    amount: int
    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="details")
    created_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class PointsHistoryResponse(BaseModel):
    submitter_id: str
    transactions: List[PointsTransactionRead]


class LedgerEntryRead(BaseModel):
    id: int
    submitter_id: str
    order_number: str
    order_date: str
    order_time: str
    order_total: Decimal
    points_awarded: int
    accepted_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerPage(BaseModel):
    entries: List[LedgerEntryRead]
    next_cursor: Optional[str] = None
