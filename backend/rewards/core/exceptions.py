"""Typed failures raised at each pipeline stage boundary.

Every stage raises one of these instead of returning sentinel values.
``ReceiptPipeline`` is the only caller that catches them and turns
them into a caller-facing ``SubmissionOutcome``.
"""

from __future__ import annotations

from typing import Optional

from rewards.models.enums import ExtractionErrorKind, ValidationErrorKind


class RewardsError(Exception):
    """Base class for pipeline stage failures."""


class ExtractionError(RewardsError):
    """A single vision extraction call did not yield receipt fields."""

    def __init__(self, kind: ExtractionErrorKind, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or kind.value)


class ConsensusError(RewardsError):
    """The two extraction samples could not be turned into one result.

    Exactly one of ``mismatch`` / ``upstream`` describes the failure.
    """

    def __init__(self, *, upstream: Optional[ExtractionError] = None, mismatched_fields: tuple[str, ...] = ()) -> None:
        self.upstream = upstream
        self.mismatched_fields = mismatched_fields
        if upstream is not None:
            message = f"upstream extraction failed: {upstream.kind.value}"
        else:
            message = f"extractions disagree on {', '.join(mismatched_fields)}"
        super().__init__(message)

    @property
    def mismatch(self) -> bool:
        return self.upstream is None


class ReceiptValidationError(RewardsError):
    """Extracted fields failed a deterministic sanity check."""

    def __init__(self, kind: ValidationErrorKind, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or kind.value)


class LedgerUnavailableError(RewardsError):
    """The accepted-receipt ledger could not be queried."""


class AwardError(RewardsError):
    """The ledger write and balance increment were not applied."""
