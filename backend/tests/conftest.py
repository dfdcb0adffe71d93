from __future__ import annotations

import datetime as dt
import sys
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio

# Add backend folder to sys.path so `import rewards...` works in tests when running from the repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from rewards.core.database import build_engine, build_session_factory, init_db  # noqa: E402
from rewards.core.exceptions import ExtractionError  # noqa: E402
from rewards.models.enums import ExtractionErrorKind  # noqa: E402
from rewards.models.schemas import ReceiptFields, ValidatedReceipt  # noqa: E402

# Reference "now" used across scenarios: June 20th, same year as the receipts
NOW = dt.datetime(2026, 6, 20, 15, 0, tzinfo=dt.timezone.utc)


def make_fields(**overrides) -> ReceiptFields:
    data = {"orderNumber": "042", "orderTotal": "23.45", "orderDate": "06/15", "orderTime": "12:30"}
    data.update(overrides)
    return ReceiptFields.model_validate(data)


def make_receipt(**overrides) -> ValidatedReceipt:
    data = {
        "order_number": "042",
        "order_total": Decimal("23.45"),
        "order_date": "06/15",
        "order_time": "12:30",
        "receipt_date": dt.date(2026, 6, 15),
    }
    data.update(overrides)
    return ValidatedReceipt(**data)


class ScriptedExtractor:
    """Returns (or raises) pre-programmed results, one per call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def extract(self, image_bytes: bytes) -> ReceiptFields:
        self.calls += 1
        if not self.outcomes:
            raise AssertionError("extractor called more often than scripted")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def extraction_error(kind: ExtractionErrorKind) -> ExtractionError:
    return ExtractionError(kind)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "rewards-test.db"


@pytest_asyncio.fixture
async def session_factory(db_path):
    engine = build_engine(f"sqlite:///{db_path}")
    await init_db(engine)
    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()
