from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

from fx_anchor.config import Settings
from fx_anchor.db.base_backend import RateStore
from fx_anchor.db.sqlite_backend import SQLiteBackend
from fx_anchor.errors import PersistenceError
from fx_anchor.models import ExchangeRateRecord, ProviderResponse
from fx_anchor.utils.dates import FixedClock

TODAY = date(2025, 8, 15)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 8, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> Settings:
    return Settings(schedule_retry_delay=0.0)


@pytest.fixture
def store(tmp_path: Path, clock: FixedClock) -> SQLiteBackend:
    backend = SQLiteBackend(tmp_path / "rates.db", clock=clock)
    yield backend
    backend.close()


@pytest.fixture
def record() -> Callable[..., ExchangeRateRecord]:
    def _make(
        base: str,
        target: str,
        rate: float,
        rate_date: date = TODAY,
        source: str = "test",
    ) -> ExchangeRateRecord:
        return ExchangeRateRecord(base, target, rate, rate_date, source)

    return _make


@pytest.fixture
def inr_response() -> ProviderResponse:
    """A realistic INR-based provider body after normalisation."""

    return ProviderResponse(
        base_currency="INR",
        as_of_date=TODAY,
        rates={
            "INR": 1.0,
            "USD": 0.012,
            "EUR": 0.0099,
            "GBP": 0.0086,
            "AUD": 0.0185,
            "CAD": 0.0165,
            "THB": 0.39,
        },
        provider="stub",
    )


class FailingStore(RateStore):
    """Store whose every operation fails as if the database were down."""

    def __init__(self) -> None:
        self.calls = 0

    def _fail(self, *args: object, **kwargs: object):
        self.calls += 1
        raise PersistenceError("database is down")

    ensure_schema = _fail
    get_rate = _fail
    get_recent_rate = _fail
    upsert_many = _fail
    count_for_date = _fail
    count_all = _fail
    latest_date = _fail
    currencies_for_date = _fail
    latest_rates = _fail


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()
