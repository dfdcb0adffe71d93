"""Deterministic sanity checks for extracted receipt fields.

The checker validates the shape and plausibility of each field without
talking to any external service, so it can be unit tested exhaustively.
Checks run in a fixed order and stop at the first failure, which keeps
the reported error kind deterministic for a given input:

1. ``ORDER_NUMBER_FORMAT`` – order number is 1 to 3 digits.
2. ``ORDER_NUMBER_RANGE`` – order number is between 1 and 200. The
   extraction prompt allows up to 400; this tighter bound is a second,
   independent line of defence and is kept on purpose.
3. ``DATE_FORMAT`` – date is ``MM/DD`` with a real month and day.
4. ``TIME_FORMAT`` – time is ``HH:MM``.
5. ``TIME_RANGE`` – hour 0–23, minute 0–59.
6. ``TOTAL_RANGE`` – total between 1.00 and 500.00 inclusive.
7. ``TOO_OLD`` – the month/day, placed in the current year (or the
   previous year when that would be in the future), is at most 30 days
   from ``now``.
"""

from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal
from typing import Callable, Tuple

from rewards.core.exceptions import ReceiptValidationError
from rewards.models.enums import ValidationErrorKind
from rewards.models.schemas import ReceiptFields, ValidatedReceipt

ORDER_NUMBER_MAX_DIGITS = 3
ORDER_NUMBER_MIN = 1
ORDER_NUMBER_MAX = 200
TOTAL_MIN = Decimal("1.00")
TOTAL_MAX = Decimal("500.00")
MAX_RECEIPT_AGE_DAYS = 30

_ORDER_NUMBER_RE = re.compile(r"^[0-9]{1,%d}$" % ORDER_NUMBER_MAX_DIGITS)
_DATE_RE = re.compile(r"^([0-9]{2})/([0-9]{2})$")
_TIME_RE = re.compile(r"^([0-9]{2}):([0-9]{2})$")


def _fail(kind: ValidationErrorKind, message: str) -> ReceiptValidationError:
    return ReceiptValidationError(kind, message)


def _check_order_number_format(fields: ReceiptFields, now: dt.datetime) -> None:
    if not _ORDER_NUMBER_RE.match(fields.order_number):
        raise _fail(ValidationErrorKind.ORDER_NUMBER_FORMAT, f"order number {fields.order_number!r} is not 1-3 digits")


def _check_order_number_range(fields: ReceiptFields, now: dt.datetime) -> None:
    value = int(fields.order_number)
    if not ORDER_NUMBER_MIN <= value <= ORDER_NUMBER_MAX:
        raise _fail(ValidationErrorKind.ORDER_NUMBER_RANGE, f"order number {value} outside {ORDER_NUMBER_MIN}-{ORDER_NUMBER_MAX}")


def _check_date_format(fields: ReceiptFields, now: dt.datetime) -> None:
    match = _DATE_RE.match(fields.order_date)
    if not match:
        raise _fail(ValidationErrorKind.DATE_FORMAT, f"date {fields.order_date!r} is not MM/DD")
    month, day = int(match.group(1)), int(match.group(2))
    if not (1 <= month <= 12 and 1 <= day <= 31):
        raise _fail(ValidationErrorKind.DATE_FORMAT, f"date {fields.order_date!r} is not a calendar day")


def _check_time_format(fields: ReceiptFields, now: dt.datetime) -> None:
    if not _TIME_RE.match(fields.order_time):
        raise _fail(ValidationErrorKind.TIME_FORMAT, f"time {fields.order_time!r} is not HH:MM")


def _check_time_range(fields: ReceiptFields, now: dt.datetime) -> None:
    hour, minute = (int(part) for part in fields.order_time.split(":"))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise _fail(ValidationErrorKind.TIME_RANGE, f"time {fields.order_time} out of range")


def _check_total_range(fields: ReceiptFields, now: dt.datetime) -> None:
    total = fields.order_total
    if not total.is_finite() or not TOTAL_MIN <= total <= TOTAL_MAX:
        raise _fail(ValidationErrorKind.TOTAL_RANGE, f"total {total} outside {TOTAL_MIN}-{TOTAL_MAX}")


def reconstruct_date(order_date: str, today: dt.date) -> dt.date:
    """Place a printed MM/DD in the most recent year that is not in the future.

    Raises ``ValueError`` when the month/day does not exist in that year
    (e.g. 02/30, or 02/29 outside a leap year).
    """
    month, day = (int(part) for part in order_date.split("/"))
    candidate = dt.date(today.year, month, day) if _exists(today.year, month, day) else None
    if candidate is None or candidate > today:
        candidate = dt.date(today.year - 1, month, day)
    return candidate


def _exists(year: int, month: int, day: int) -> bool:
    try:
        dt.date(year, month, day)
    except ValueError:
        return False
    return True


def _check_recency(fields: ReceiptFields, now: dt.datetime) -> dt.date:
    today = now.date()
    try:
        receipt_date = reconstruct_date(fields.order_date, today)
    except ValueError:
        raise _fail(ValidationErrorKind.DATE_FORMAT, f"date {fields.order_date} does not exist") from None
    age = abs((today - receipt_date).days)
    if age > MAX_RECEIPT_AGE_DAYS:
        raise _fail(ValidationErrorKind.TOO_OLD, f"receipt dated {receipt_date.isoformat()} is {age} days old")
    return receipt_date


CHECKS: Tuple[Callable[[ReceiptFields, dt.datetime], None], ...] = (
    _check_order_number_format,
    _check_order_number_range,
    _check_date_format,
    _check_time_format,
    _check_time_range,
    _check_total_range,
)


def validate(fields: ReceiptFields, now: dt.datetime) -> ValidatedReceipt:
    """Run every check in order and return the validated receipt.

    :param fields: Fields agreed by consensus.
    :param now: Reference time for the recency check.
    :raises ReceiptValidationError: on the first failing check.
    """
    for check in CHECKS:
        check(fields, now)
    receipt_date = _check_recency(fields, now)
    return ValidatedReceipt(**fields.model_dump(), receipt_date=receipt_date)
