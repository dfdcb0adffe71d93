"""Receipt submission pipeline.

``ReceiptPipeline.submit_receipt`` runs one submission through the
stages below, strictly in order, stopping at the first failure::

    [quota] -> consensus extraction -> sanity checks -> duplicate check -> award

Only the award stage writes anything durable, so a submission that is
rejected or cancelled earlier needs no clean-up. Each stage raises its
own typed exception; this module is the single place where those are
caught and mapped onto the caller-facing ``SubmissionOutcome``.

The quota stage is skipped unless ``DAILY_RECEIPT_LIMIT`` is positive.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Dict, Optional

from rewards.core.config import settings
from rewards.core.exceptions import (
    AwardError,
    ConsensusError,
    LedgerUnavailableError,
    ReceiptValidationError,
)
from rewards.core.observability import sentry_breadcrumb, sentry_metric_inc
from rewards.models.enums import (
    ExtractionErrorKind,
    PipelineStage,
    RejectionReason,
    ValidationErrorKind,
)
from rewards.models.schemas import SubmissionOutcome
from rewards.services import sanity_checker
from rewards.services.award_service import AwardRecorder
from rewards.services.consensus_service import ConsensusValidator
from rewards.services.ledger_service import DuplicateLedger
from rewards.utils.helpers import start_of_utc_day, utcnow

logger = logging.getLogger(__name__)

RETAKE = "Please retake the photo."

MISMATCH_DETAIL = "MISMATCH"
LEDGER_UNAVAILABLE_DETAIL = "LEDGER_UNAVAILABLE"
AWARD_FAILED_DETAIL = "AWARD_FAILED"

EXTRACTION_MESSAGES: Dict[ExtractionErrorKind, str] = {
    ExtractionErrorKind.NOT_THIS_VENDOR: f"This doesn't look like one of our receipts. {RETAKE}",
    ExtractionErrorKind.OBSTRUCTED: f"Part of the receipt is covered. {RETAKE}",
    ExtractionErrorKind.ILLEGIBLE: f"We couldn't read the receipt clearly. {RETAKE}",
    ExtractionErrorKind.NO_VALID_ORDER_NUMBER: f"We couldn't find a valid order number. {RETAKE}",
    ExtractionErrorKind.MALFORMED: f"We couldn't read the receipt clearly. {RETAKE}",
    ExtractionErrorKind.TIMEOUT: "Reading the receipt took too long. Please try again.",
    ExtractionErrorKind.SERVICE_ERROR: "Receipt reading is temporarily unavailable. Please try again.",
}

VALIDATION_MESSAGES: Dict[ValidationErrorKind, str] = {
    ValidationErrorKind.ORDER_NUMBER_FORMAT: f"The order number doesn't look right. {RETAKE}",
    ValidationErrorKind.ORDER_NUMBER_RANGE: f"The order number is not valid. {RETAKE}",
    ValidationErrorKind.DATE_FORMAT: f"The order date couldn't be read. {RETAKE}",
    ValidationErrorKind.TIME_FORMAT: f"The order time couldn't be read. {RETAKE}",
    ValidationErrorKind.TIME_RANGE: f"The order time is not valid. {RETAKE}",
    ValidationErrorKind.TOTAL_RANGE: "The order total is outside the range eligible for points.",
    ValidationErrorKind.TOO_OLD: "This receipt is more than 30 days old and can no longer earn points.",
}

MISMATCH_MESSAGE = f"The receipt is unclear. {RETAKE}"
DUPLICATE_MESSAGE = "This receipt has already been submitted."
TRANSIENT_MESSAGE = "Something went wrong on our side. Please try again in a moment."
DAILY_LIMIT_MESSAGE = "You've reached today's limit for receipt scans. Please try again tomorrow."


def consensus_outcome(exc: ConsensusError) -> SubmissionOutcome:
    if exc.upstream is None:
        return SubmissionOutcome.rejected(RejectionReason.UNCLEAR, MISMATCH_DETAIL, MISMATCH_MESSAGE)
    kind = exc.upstream.kind
    return SubmissionOutcome.rejected(
        RejectionReason.UNCLEAR,
        kind.value,
        EXTRACTION_MESSAGES[kind],
        retryable=kind.is_transport,
    )


def validation_outcome(exc: ReceiptValidationError) -> SubmissionOutcome:
    return SubmissionOutcome.rejected(RejectionReason.INVALID_FORMAT, exc.kind.value, VALIDATION_MESSAGES[exc.kind])


def transient_outcome(detail: str) -> SubmissionOutcome:
    return SubmissionOutcome.rejected(RejectionReason.TRANSIENT_UNAVAILABLE, detail, TRANSIENT_MESSAGE, retryable=True)


class ReceiptPipeline:
    """Orchestrates one receipt submission end to end."""

    def __init__(
        self,
        consensus: ConsensusValidator,
        ledger: DuplicateLedger,
        recorder: AwardRecorder,
        clock: Callable[[], dt.datetime] = utcnow,
        daily_limit: Optional[int] = None,
    ) -> None:
        self.consensus = consensus
        self.ledger = ledger
        self.recorder = recorder
        self.clock = clock
        self.daily_limit = settings.DAILY_RECEIPT_LIMIT if daily_limit is None else daily_limit

    def _enter(self, stage: PipelineStage, submitter_id: str) -> None:
        logger.info("[pipeline] submitter=%s stage=%s", submitter_id, stage.value)
        sentry_breadcrumb(category="receipts", message=f"pipeline.{stage.value}")

    def _finish(self, submitter_id: str, outcome: SubmissionOutcome) -> SubmissionOutcome:
        if outcome.accepted:
            logger.info("[pipeline] submitter=%s accepted points=%s", submitter_id, outcome.points_awarded)
            status = PipelineStage.ACCEPTED.value
        else:
            logger.info(
                "[pipeline] submitter=%s rejected reason=%s detail=%s",
                submitter_id, outcome.reason.value if outcome.reason else None, outcome.detail,
            )
            status = outcome.reason.value if outcome.reason else PipelineStage.REJECTED.value
        sentry_metric_inc("receipts.submission", tags={"outcome": status, "detail": outcome.detail or ""})
        return outcome

    async def submit_receipt(self, submitter_id: str, image_bytes: bytes) -> SubmissionOutcome:
        return self._finish(submitter_id, await self._run(submitter_id, image_bytes))

    async def _run(self, submitter_id: str, image_bytes: bytes) -> SubmissionOutcome:
        now = self.clock()
        self._enter(PipelineStage.START, submitter_id)

        if self.daily_limit > 0:
            self._enter(PipelineStage.CHECKING_QUOTA, submitter_id)
            try:
                accepted_today = await self.ledger.count_accepted_since(submitter_id, start_of_utc_day(now))
            except LedgerUnavailableError:
                return transient_outcome(LEDGER_UNAVAILABLE_DETAIL)
            if accepted_today >= self.daily_limit:
                return SubmissionOutcome.rejected(
                    RejectionReason.DAILY_LIMIT_REACHED, RejectionReason.DAILY_LIMIT_REACHED.value, DAILY_LIMIT_MESSAGE,
                )

        self._enter(PipelineStage.EXTRACTING, submitter_id)
        try:
            fields = await self.consensus.validate_by_consensus(image_bytes)
        except ConsensusError as exc:
            logger.info("[pipeline] consensus failed: %s", exc)
            return consensus_outcome(exc)

        self._enter(PipelineStage.VALIDATING, submitter_id)
        try:
            receipt = sanity_checker.validate(fields, now)
        except ReceiptValidationError as exc:
            logger.info("[pipeline] validation failed: %s", exc)
            return validation_outcome(exc)

        self._enter(PipelineStage.CHECKING_DUPLICATE, submitter_id)
        try:
            duplicate = await self.ledger.is_duplicate(receipt)
        except LedgerUnavailableError:
            return transient_outcome(LEDGER_UNAVAILABLE_DETAIL)
        if duplicate:
            return SubmissionOutcome.rejected(
                RejectionReason.DUPLICATE, RejectionReason.DUPLICATE.value, DUPLICATE_MESSAGE,
            )

        self._enter(PipelineStage.AWARDING, submitter_id)
        try:
            award = await self.recorder.record_and_award(submitter_id, receipt)
        except AwardError:
            return transient_outcome(AWARD_FAILED_DETAIL)
        return SubmissionOutcome.success(award)
