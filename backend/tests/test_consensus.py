from __future__ import annotations

import asyncio

import pytest

from conftest import ScriptedExtractor, extraction_error, make_fields
from rewards.core.exceptions import ConsensusError
from rewards.models.enums import ExtractionErrorKind
from rewards.services.consensus_service import ConsensusValidator, pick_upstream_error


@pytest.mark.asyncio
async def test_agreeing_samples_are_accepted():
    extractor = ScriptedExtractor(make_fields(), make_fields())
    fields = await ConsensusValidator(extractor).validate_by_consensus(b"img")
    assert fields == make_fields()
    assert extractor.calls == 2


@pytest.mark.asyncio
async def test_equal_totals_written_differently_agree():
    extractor = ScriptedExtractor(make_fields(orderTotal=23.45), make_fields(orderTotal="23.450"))
    fields = await ConsensusValidator(extractor).validate_by_consensus(b"img")
    assert fields.order_number == "042"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "override, field",
    [
        ({"orderNumber": "043"}, "order_number"),
        ({"orderTotal": "23.46"}, "order_total"),
        ({"orderDate": "06/16"}, "order_date"),
        ({"orderTime": "12:31"}, "order_time"),
    ],
)
async def test_any_field_difference_is_a_mismatch(override, field):
    extractor = ScriptedExtractor(make_fields(), make_fields(**override))
    with pytest.raises(ConsensusError) as exc_info:
        await ConsensusValidator(extractor).validate_by_consensus(b"img")
    assert exc_info.value.mismatch
    assert exc_info.value.mismatched_fields == (field,)


@pytest.mark.asyncio
async def test_single_failure_is_surfaced_as_upstream():
    extractor = ScriptedExtractor(make_fields(), extraction_error(ExtractionErrorKind.OBSTRUCTED))
    with pytest.raises(ConsensusError) as exc_info:
        await ConsensusValidator(extractor).validate_by_consensus(b"img")
    assert not exc_info.value.mismatch
    assert exc_info.value.upstream.kind is ExtractionErrorKind.OBSTRUCTED


@pytest.mark.asyncio
async def test_semantic_error_preferred_over_timeout():
    extractor = ScriptedExtractor(
        extraction_error(ExtractionErrorKind.TIMEOUT),
        extraction_error(ExtractionErrorKind.NOT_THIS_VENDOR),
    )
    with pytest.raises(ConsensusError) as exc_info:
        await ConsensusValidator(extractor).validate_by_consensus(b"img")
    assert exc_info.value.upstream.kind is ExtractionErrorKind.NOT_THIS_VENDOR


def test_first_error_wins_when_kinds_are_equally_ranked():
    errors = [extraction_error(ExtractionErrorKind.SERVICE_ERROR), extraction_error(ExtractionErrorKind.TIMEOUT)]
    assert pick_upstream_error(errors).kind is ExtractionErrorKind.SERVICE_ERROR
    errors = [extraction_error(ExtractionErrorKind.ILLEGIBLE), extraction_error(ExtractionErrorKind.OBSTRUCTED)]
    assert pick_upstream_error(errors).kind is ExtractionErrorKind.ILLEGIBLE


@pytest.mark.asyncio
async def test_unexpected_exceptions_propagate():
    extractor = ScriptedExtractor(make_fields(), ValueError("bug"))
    with pytest.raises(ValueError):
        await ConsensusValidator(extractor).validate_by_consensus(b"img")


@pytest.mark.asyncio
async def test_both_calls_run_concurrently():
    started = 0
    both_started = asyncio.Event()

    class BarrierExtractor:
        async def extract(self, image_bytes):
            nonlocal started
            started += 1
            if started == 2:
                both_started.set()
            # Would deadlock if the validator awaited the first call before starting the second
            await asyncio.wait_for(both_started.wait(), timeout=1.0)
            return make_fields()

    fields = await ConsensusValidator(BarrierExtractor()).validate_by_consensus(b"img")
    assert fields == make_fields()
