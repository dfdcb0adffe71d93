from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import NOW, ScriptedExtractor, extraction_error, make_fields
from rewards.core.exceptions import AwardError, LedgerUnavailableError
from rewards.models.enums import ExtractionErrorKind, RejectionReason
from rewards.models.tables import LedgerEntry, User
from rewards.services.award_service import AwardRecorder
from rewards.services.consensus_service import ConsensusValidator
from rewards.services.ledger_service import DuplicateLedger
from rewards.services.pipeline import ReceiptPipeline

UTC = dt.timezone.utc


def _pipeline(session_factory, extractor, daily_limit=0, ledger=None, recorder=None):
    return ReceiptPipeline(
        consensus=ConsensusValidator(extractor),
        ledger=ledger or DuplicateLedger(session_factory),
        recorder=recorder or AwardRecorder(session_factory, points_per_dollar=5),
        clock=lambda: NOW,
        daily_limit=daily_limit,
    )


def _agreeing(**overrides):
    return ScriptedExtractor(make_fields(**overrides), make_fields(**overrides))


async def _ledger_size(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(LedgerEntry.id)))).scalar()


@pytest.mark.asyncio
async def test_happy_path_awards_points(session_factory):
    outcome = await _pipeline(session_factory, _agreeing()).submit_receipt("u1", b"img")
    assert outcome.accepted is True
    assert outcome.points_awarded == 117
    assert outcome.new_balance == 117
    assert outcome.reason is None
    assert await _ledger_size(session_factory) == 1


@pytest.mark.asyncio
async def test_order_number_over_deterministic_cap(session_factory):
    outcome = await _pipeline(session_factory, _agreeing(orderNumber="250")).submit_receipt("u1", b"img")
    assert outcome.accepted is False
    assert outcome.reason is RejectionReason.INVALID_FORMAT
    assert outcome.detail == "ORDER_NUMBER_RANGE"
    assert outcome.retryable is False
    assert await _ledger_size(session_factory) == 0


@pytest.mark.asyncio
async def test_stale_receipt_is_rejected(session_factory):
    pipeline = _pipeline(session_factory, _agreeing(orderDate="01/01"))
    pipeline.clock = lambda: dt.datetime(2026, 3, 15, 12, 0, tzinfo=dt.timezone.utc)
    outcome = await pipeline.submit_receipt("u1", b"img")
    assert outcome.reason is RejectionReason.INVALID_FORMAT
    assert outcome.detail == "TOO_OLD"


@pytest.mark.asyncio
async def test_resubmission_with_different_time_is_duplicate(session_factory):
    first = await _pipeline(session_factory, _agreeing()).submit_receipt("u1", b"img")
    assert first.accepted

    second = await _pipeline(session_factory, _agreeing(orderTime="19:45")).submit_receipt("u2", b"img")
    assert second.accepted is False
    assert second.reason is RejectionReason.DUPLICATE
    assert second.points_awarded is None
    assert await _ledger_size(session_factory) == 1
    async with session_factory() as session:
        assert await session.get(User, "u2") is None


@pytest.mark.asyncio
async def test_non_duplicate_rejection_is_repeatable(session_factory):
    fields = {"orderTime": "7:30"}
    first = await _pipeline(session_factory, _agreeing(**fields)).submit_receipt("u1", b"img")
    second = await _pipeline(session_factory, _agreeing(**fields)).submit_receipt("u1", b"img")
    assert (first.reason, first.detail) == (second.reason, second.detail) == (RejectionReason.INVALID_FORMAT, "TIME_FORMAT")


@pytest.mark.asyncio
async def test_disagreeing_extractions_are_unclear(session_factory):
    extractor = ScriptedExtractor(make_fields(), make_fields(orderTotal="32.45"))
    outcome = await _pipeline(session_factory, extractor).submit_receipt("u1", b"img")
    assert outcome.reason is RejectionReason.UNCLEAR
    assert outcome.detail == "MISMATCH"
    assert outcome.retryable is False


@pytest.mark.asyncio
async def test_model_refusal_is_unclear_with_specific_detail(session_factory):
    extractor = ScriptedExtractor(make_fields(), extraction_error(ExtractionErrorKind.NOT_THIS_VENDOR))
    outcome = await _pipeline(session_factory, extractor).submit_receipt("u1", b"img")
    assert outcome.reason is RejectionReason.UNCLEAR
    assert outcome.detail == "NOT_THIS_VENDOR"
    assert "retake" in outcome.message


@pytest.mark.asyncio
async def test_timeout_is_unclear_but_retryable(session_factory):
    extractor = ScriptedExtractor(extraction_error(ExtractionErrorKind.TIMEOUT), make_fields())
    outcome = await _pipeline(session_factory, extractor).submit_receipt("u1", b"img")
    assert outcome.reason is RejectionReason.UNCLEAR
    assert outcome.detail == "TIMEOUT"
    assert outcome.retryable is True
    assert "try again" in outcome.message


class _BrokenLedger(DuplicateLedger):
    async def is_duplicate(self, receipt):
        raise LedgerUnavailableError("down")


class _BrokenRecorder(AwardRecorder):
    async def record_and_award(self, submitter_id, receipt):
        raise AwardError("down")


@pytest.mark.asyncio
async def test_ledger_outage_is_transient(session_factory):
    pipeline = _pipeline(session_factory, _agreeing(), ledger=_BrokenLedger(session_factory))
    outcome = await pipeline.submit_receipt("u1", b"img")
    assert outcome.reason is RejectionReason.TRANSIENT_UNAVAILABLE
    assert outcome.detail == "LEDGER_UNAVAILABLE"
    assert outcome.retryable is True
    assert await _ledger_size(session_factory) == 0


@pytest.mark.asyncio
async def test_award_failure_is_transient_and_resubmission_succeeds(session_factory):
    broken = _pipeline(session_factory, _agreeing(), recorder=_BrokenRecorder(session_factory))
    outcome = await broken.submit_receipt("u1", b"img")
    assert outcome.reason is RejectionReason.TRANSIENT_UNAVAILABLE
    assert outcome.detail == "AWARD_FAILED"

    retried = await _pipeline(session_factory, _agreeing()).submit_receipt("u1", b"img")
    assert retried.accepted is True
    assert retried.points_awarded == 117


@pytest.mark.asyncio
async def test_daily_limit_blocks_before_extraction(session_factory):
    async with session_factory() as session:
        session.add(User(id="u1"))
        for hour in (9, 11):
            session.add(
                LedgerEntry(
                    submitter_id="u1",
                    order_number=str(hour),
                    order_date="06/20",
                    order_time=f"{hour:02d}:00",
                    order_total=Decimal("10.00"),
                    points_awarded=50,
                    accepted_at=dt.datetime(2026, 6, 20, hour, 0, tzinfo=UTC),
                )
            )
        await session.commit()

    extractor = ScriptedExtractor()
    outcome = await _pipeline(session_factory, extractor, daily_limit=2).submit_receipt("u1", b"img")
    assert outcome.reason is RejectionReason.DAILY_LIMIT_REACHED
    assert outcome.retryable is False
    assert extractor.calls == 0

    # Another submitter is unaffected by u1's cap
    other = await _pipeline(session_factory, _agreeing(), daily_limit=2).submit_receipt("u2", b"img")
    assert other.accepted is True


@pytest.mark.asyncio
async def test_daily_limit_ignores_previous_days(session_factory):
    async with session_factory() as session:
        session.add(User(id="u1"))
        session.add(
            LedgerEntry(
                submitter_id="u1",
                order_number="9",
                order_date="06/19",
                order_time="09:00",
                order_total=Decimal("10.00"),
                points_awarded=50,
                accepted_at=dt.datetime(2026, 6, 19, 23, 0, tzinfo=UTC),
            )
        )
        await session.commit()

    outcome = await _pipeline(session_factory, _agreeing(), daily_limit=1).submit_receipt("u1", b"img")
    assert outcome.accepted is True
