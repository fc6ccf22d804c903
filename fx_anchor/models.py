"""Data models shared across the fx_anchor engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal


@dataclass(slots=True)
class ExchangeRateRecord:
    """One stored rate: 1 ``base_currency`` = ``rate`` ``target_currency`` on ``rate_date``."""

    base_currency: str
    target_currency: str
    rate: float
    rate_date: date
    source: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.base_currency = self.base_currency.upper()
        self.target_currency = self.target_currency.upper()
        if self.base_currency == self.target_currency:
            raise ValueError("Identity rates are implicit and must not be stored")
        if not self.rate > 0:
            raise ValueError(f"Rate must be strictly positive, got {self.rate!r}")

    @property
    def key(self) -> tuple[str, str, date]:
        return (self.base_currency, self.target_currency, self.rate_date)


@dataclass(slots=True)
class PersistenceResult:
    """Represents how many rows were inserted, updated or left alone in a batch."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def total(self) -> int:
        """Return the total number of affected rows."""

        return self.inserted + self.updated


@dataclass(slots=True)
class ProviderResponse:
    """Normalised body every provider adapter must produce."""

    base_currency: str
    as_of_date: date
    rates: dict[str, float]
    provider: str = "unknown"


@dataclass(slots=True, frozen=True)
class RateResolution:
    """A found rate tagged with the tier that produced it."""

    rate: float
    tier: str
    rate_date: date | None = None
    degraded: bool = False


@dataclass(slots=True)
class ConversionResult:
    """Derived, non-persisted outcome of a conversion."""

    original_amount: Decimal
    from_currency: str
    to_currency: str
    converted_amount: Decimal
    exchange_rate: float
    conversion_date: date
    tier: str = "identity"
    degraded: bool = False


@dataclass(slots=True)
class RateHealth:
    """Snapshot of how well the rate table covers today."""

    total_rates: int
    latest_update: date | None
    currencies_covered: list[str] = field(default_factory=list)
    missing_today: list[str] = field(default_factory=list)


__all__ = [
    "ConversionResult",
    "ExchangeRateRecord",
    "PersistenceResult",
    "ProviderResponse",
    "RateHealth",
    "RateResolution",
]
