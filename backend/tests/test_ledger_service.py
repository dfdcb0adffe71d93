from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from conftest import make_receipt
from rewards.core.database import build_engine, build_session_factory
from rewards.core.exceptions import LedgerUnavailableError
from rewards.models.tables import LedgerEntry, User
from rewards.services.award_service import AwardRecorder
from rewards.services.ledger_service import DuplicateLedger, list_entries
from rewards.utils.helpers import start_of_utc_day

UTC = dt.timezone.utc


async def _seed(session_factory, submitter_id="u1", **overrides):
    return await AwardRecorder(session_factory).record_and_award(submitter_id, make_receipt(**overrides))


@pytest.mark.asyncio
async def test_empty_ledger_has_no_duplicates(session_factory):
    assert await DuplicateLedger(session_factory).is_duplicate(make_receipt()) is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields, expected",
    [
        ({}, True),
        ({"order_time": "18:05"}, True),  # number + date
        ({"order_date": "06/14"}, True),  # number + time
        ({"order_number": "077"}, True),  # date + time
        ({"order_number": "077", "order_date": "06/14"}, False),  # only time matches
        ({"order_number": "077", "order_time": "18:05"}, False),  # only date matches
        ({"order_date": "06/14", "order_time": "18:05"}, False),  # only number matches
        ({"order_number": "077", "order_date": "06/14", "order_time": "18:05"}, False),
    ],
)
async def test_any_two_matching_fields_flag_a_duplicate(session_factory, fields, expected):
    await _seed(session_factory)
    ledger = DuplicateLedger(session_factory)
    assert await ledger.is_duplicate(make_receipt(**fields)) is expected


@pytest.mark.asyncio
async def test_duplicates_are_global_across_submitters(session_factory):
    await _seed(session_factory, submitter_id="someone-else")
    assert await DuplicateLedger(session_factory).is_duplicate(make_receipt(order_time="09:00")) is True


@pytest.mark.asyncio
async def test_storage_failure_raises_unavailable(tmp_path):
    # Parent directory does not exist, so SQLite cannot open the file
    engine = build_engine(f"sqlite:///{tmp_path / 'missing' / 'ledger.db'}")
    ledger = DuplicateLedger(build_session_factory(engine))
    try:
        with pytest.raises(LedgerUnavailableError):
            await ledger.is_duplicate(make_receipt())
        with pytest.raises(LedgerUnavailableError):
            await ledger.count_accepted_since("u1", dt.datetime(2026, 6, 20, tzinfo=UTC))
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_count_accepted_since(session_factory):
    async with session_factory() as session:
        session.add_all([User(id="u1"), User(id="u2")])
        for submitter, accepted_at in [
            ("u1", dt.datetime(2026, 6, 19, 23, 59, tzinfo=UTC)),
            ("u1", dt.datetime(2026, 6, 20, 0, 0, tzinfo=UTC)),
            ("u1", dt.datetime(2026, 6, 20, 14, 30, tzinfo=UTC)),
            ("u2", dt.datetime(2026, 6, 20, 9, 0, tzinfo=UTC)),
        ]:
            session.add(
                LedgerEntry(
                    submitter_id=submitter,
                    order_number="1",
                    order_date="06/20",
                    order_time="09:00",
                    order_total=Decimal("5.00"),
                    points_awarded=25,
                    accepted_at=accepted_at,
                )
            )
        await session.commit()

    ledger = DuplicateLedger(session_factory)
    assert await ledger.count_accepted_since("u1", dt.datetime(2026, 6, 20, tzinfo=UTC)) == 2
    assert await ledger.count_accepted_since("u2", dt.datetime(2026, 6, 20, tzinfo=UTC)) == 1
    assert await ledger.count_accepted_since("nobody", dt.datetime(2026, 6, 20, tzinfo=UTC)) == 0


@pytest.mark.asyncio
async def test_daily_count_uses_utc_day_for_local_clocks(session_factory):
    async with session_factory() as session:
        session.add(User(id="u1"))
        for accepted_at in (dt.datetime(2026, 6, 20, 23, 0, tzinfo=UTC), dt.datetime(2026, 6, 21, 1, 0, tzinfo=UTC)):
            session.add(
                LedgerEntry(
                    submitter_id="u1",
                    order_number="1",
                    order_date="06/20",
                    order_time="09:00",
                    order_total=Decimal("5.00"),
                    points_awarded=25,
                    accepted_at=accepted_at,
                )
            )
        await session.commit()

    # 22:30 in UTC-5 is already 03:30 on the 21st in UTC
    local_now = dt.datetime(2026, 6, 20, 22, 30, tzinfo=dt.timezone(dt.timedelta(hours=-5)))
    ledger = DuplicateLedger(session_factory)
    assert await ledger.count_accepted_since("u1", start_of_utc_day(local_now)) == 1


@pytest.mark.asyncio
async def test_list_entries_paginates_newest_first(session_factory):
    for number in ("1", "2", "3", "4", "5"):
        await _seed(session_factory, order_number=number, order_date=f"06/0{number}", order_time=f"1{number}:00")

    async with session_factory() as session:
        first, cursor = await list_entries(session, limit=2)
        assert [e.order_number for e in first] == ["5", "4"]
        second, cursor = await list_entries(session, limit=2, cursor=cursor)
        assert [e.order_number for e in second] == ["3", "2"]
        last, cursor = await list_entries(session, limit=2, cursor=cursor)
        assert [e.order_number for e in last] == ["1"]
        assert cursor is None
