"""Enumeration types used throughout the receipt rewards pipeline.

Enumerations constrain the values that flow between pipeline stages
and out to callers. The string values are part of the caller-facing
wire format, so renaming a member is a breaking change for clients.
"""

from enum import Enum


class ExtractionErrorKind(str, Enum):
    """Ways a single vision extraction call can fail."""

    NOT_THIS_VENDOR = "NOT_THIS_VENDOR"
    OBSTRUCTED = "OBSTRUCTED"
    ILLEGIBLE = "ILLEGIBLE"
    NO_VALID_ORDER_NUMBER = "NO_VALID_ORDER_NUMBER"
    MALFORMED = "MALFORMED"
    TIMEOUT = "TIMEOUT"
    SERVICE_ERROR = "SERVICE_ERROR"

    @property
    def is_transport(self) -> bool:
        """True for failures of the call itself rather than of the receipt."""
        return self in (ExtractionErrorKind.TIMEOUT, ExtractionErrorKind.SERVICE_ERROR)


class ValidationErrorKind(str, Enum):
    """Deterministic field checks, listed in evaluation order."""

    ORDER_NUMBER_FORMAT = "ORDER_NUMBER_FORMAT"
    ORDER_NUMBER_RANGE = "ORDER_NUMBER_RANGE"
    DATE_FORMAT = "DATE_FORMAT"
    TIME_FORMAT = "TIME_FORMAT"
    TIME_RANGE = "TIME_RANGE"
    TOTAL_RANGE = "TOTAL_RANGE"
    TOO_OLD = "TOO_OLD"


class RejectionReason(str, Enum):
    """Caller-facing rejection categories."""

    UNCLEAR = "UNCLEAR"
    INVALID_FORMAT = "INVALID_FORMAT"
    DUPLICATE = "DUPLICATE"
    TRANSIENT_UNAVAILABLE = "TRANSIENT_UNAVAILABLE"
    DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"


class PipelineStage(str, Enum):
    """States of a single submission run."""

    START = "start"
    CHECKING_QUOTA = "checking_quota"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    CHECKING_DUPLICATE = "checking_duplicate"
    AWARDING = "awarding"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PointsTransactionType(str, Enum):
    """Kinds of balance movements recorded in the points history."""

    RECEIPT_SCAN = "receipt_scan"
