"""Two-sample consensus over receipt extraction.

A single generative extraction is not trustworthy enough to gate an
irreversible points award, so the validator asks the extractor twice,
concurrently, and only accepts a result both samples agree on field by
field. Disagreement is reported as a mismatch, which callers treat as
"the photo is unclear" rather than something worth retrying.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, List, Protocol

from rewards.core.exceptions import ConsensusError, ExtractionError
from rewards.models.schemas import ReceiptFields

logger = logging.getLogger(__name__)


class FieldExtractor(Protocol):
    async def extract(self, image_bytes: bytes) -> ReceiptFields: ...


def pick_upstream_error(errors: List[ExtractionError]) -> ExtractionError:
    """Choose which extraction failure to surface.

    A receipt-level refusal (vendor, obstruction, legibility, format) is
    more useful to the user than a timeout or service error, so it wins
    when both samples failed differently. Otherwise the first failure
    in sample order is returned.
    """
    semantic = [e for e in errors if not e.kind.is_transport]
    return (semantic or errors)[0]


def compare_samples(first: ReceiptFields, second: ReceiptFields) -> ReceiptFields:
    """Return the agreed fields or raise a mismatch ``ConsensusError``."""
    differing = first.differing_fields(second)
    if differing:
        raise ConsensusError(mismatched_fields=differing)
    return first


class ConsensusValidator:
    """Runs two independent extractions and requires exact agreement."""

    samples = 2

    def __init__(self, extractor: FieldExtractor) -> None:
        self.extractor = extractor

    async def validate_by_consensus(self, image_bytes: bytes) -> ReceiptFields:
        calls: List[Awaitable[ReceiptFields]] = [self.extractor.extract(image_bytes) for _ in range(self.samples)]
        results = await asyncio.gather(*calls, return_exceptions=True)

        errors: List[ExtractionError] = []
        samples: List[ReceiptFields] = []
        for result in results:
            if isinstance(result, ExtractionError):
                errors.append(result)
            elif isinstance(result, BaseException):
                # Anything other than a typed extraction failure is a bug; let it propagate
                raise result
            else:
                samples.append(result)

        if errors:
            chosen = pick_upstream_error(errors)
            logger.info("[consensus] upstream failure kinds=%s surfaced=%s", [e.kind.value for e in errors], chosen.kind.value)
            raise ConsensusError(upstream=chosen)

        agreed = compare_samples(samples[0], samples[1])
        logger.info("[consensus] samples agree order_number=%s", agreed.order_number)
        return agreed
