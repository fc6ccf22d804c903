"""Rate store interface implemented by every persistence backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Sequence

from fx_anchor.models import ExchangeRateRecord, PersistenceResult


class RateStore(ABC):
    """Persistent table of rates keyed by ``(base, target, date)``.

    Implementations never perform network calls to rate providers and never
    invent fallback values; every driver failure surfaces as
    :class:`~fx_anchor.errors.PersistenceError`.
    """

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create required tables/collections and verify connectivity."""

    @abstractmethod
    def get_rate(self, base: str, target: str, rate_date: date) -> float | None:
        """Return the rate stored for exactly ``rate_date`` or ``None``."""

    @abstractmethod
    def get_recent_rate(self, base: str, target: str, within_days: int) -> float | None:
        """Return the latest rate dated no earlier than ``today - within_days``."""

    @abstractmethod
    def upsert_many(self, records: Sequence[ExchangeRateRecord]) -> PersistenceResult:
        """Insert new keys, overwrite changed ones and leave identical rows alone."""

    @abstractmethod
    def count_for_date(self, rate_date: date) -> int:
        """Return how many rows exist for ``rate_date``."""

    @abstractmethod
    def count_all(self) -> int:
        """Return the total number of stored rows."""

    @abstractmethod
    def latest_date(self) -> date | None:
        """Return the most recent ``rate_date`` present in the table."""

    @abstractmethod
    def currencies_for_date(self, rate_date: date, target: str) -> set[str]:
        """Return the base currencies quoted into ``target`` on ``rate_date``."""

    @abstractmethod
    def latest_rates(self, base: str) -> list[ExchangeRateRecord]:
        """Return the newest stored row per target currency for ``base``."""

    def close(self) -> None:  # pragma: no cover - optional cleanup hook
        """Backends may override to release connections/resources."""


def dedupe_batch(records: Sequence[ExchangeRateRecord]) -> list[ExchangeRateRecord]:
    """Collapse repeated keys inside one batch; the last occurrence wins."""

    by_key: dict[tuple[str, str, date], ExchangeRateRecord] = {}
    for record in records:
        by_key[record.key] = record
    return list(by_key.values())


__all__ = ["RateStore", "dedupe_batch"]
