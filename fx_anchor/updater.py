"""Turn one provider response into stored forward and inverse rows."""

from __future__ import annotations

from datetime import date

from fx_anchor.config import Settings
from fx_anchor.db.base_backend import RateStore
from fx_anchor.errors import PersistenceError, ProviderUnavailable
from fx_anchor.fetcher import RateFetcher
from fx_anchor.models import ExchangeRateRecord, ProviderResponse
from fx_anchor.utils.dates import Clock, SystemClock
from fx_anchor.utils.logger import get_logger
from fx_anchor.utils.single_flight import SingleFlight

LOGGER = get_logger(__name__)


class RateUpdater:
    """Refreshes today's rates; concurrent refreshes for one base share a single fetch."""

    def __init__(
        self,
        store: RateStore,
        fetcher: RateFetcher,
        settings: Settings | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.settings = settings or Settings()
        self.clock: Clock = clock or SystemClock()
        self._flight: SingleFlight[bool] = SingleFlight()

    def refresh(self, base_currency: str | None = None, force: bool = False) -> bool:
        """Fetch and persist today's rates; never raises for expected failures."""

        base = (base_currency or self.settings.anchor_currency).upper()
        return self._flight.do(base, lambda: self._refresh(base, force))

    def is_refreshing(self, base_currency: str | None = None) -> bool:
        return self._flight.in_flight((base_currency or self.settings.anchor_currency).upper())

    def _refresh(self, base: str, force: bool) -> bool:
        today = self.clock.today()
        if not force:
            try:
                existing = self.store.count_for_date(today)
            except PersistenceError as exc:
                LOGGER.warning("Unable to check existing rates for %s: %s", today, exc)
                return False
            if existing > 0:
                LOGGER.info(
                    "Exchange rates for %s already exist (%s rows). Skipping update.",
                    today,
                    existing,
                )
                return True

        LOGGER.info("%s exchange rates for %s", "Force updating" if force else "Updating", today)
        try:
            response = self.fetcher.fetch(base)
        except ProviderUnavailable as exc:
            LOGGER.warning("Exchange rate refresh failed: %s", exc)
            return False

        records = self.build_records(response, today, force=force)
        if not records:
            LOGGER.warning("No valid exchange rates to insert from %s", response.provider)
            return False
        try:
            result = self.store.upsert_many(records)
        except PersistenceError as exc:
            LOGGER.error("Failed to persist exchange rates: %s", exc)
            return False
        LOGGER.info(
            "Refreshed %s exchange rates for %s from %s (inserted %s, updated %s)",
            len(records),
            today,
            response.provider,
            result.inserted,
            result.updated,
        )
        return True

    def build_records(
        self, response: ProviderResponse, rate_date: date, *, force: bool = False
    ) -> list[ExchangeRateRecord]:
        """Forward rows for every quoted currency plus inverse rows for the majors."""

        base = response.base_currency.upper()
        source = f"{response.provider}:forced" if force else response.provider
        records: list[ExchangeRateRecord] = []
        for currency, rate in response.rates.items():
            if currency == base or not rate > 0:
                continue
            records.append(ExchangeRateRecord(base, currency, rate, rate_date, source))

        for currency in self.settings.major_currencies:
            rate = response.rates.get(currency)
            if currency == base or rate is None or not rate > 0:
                continue
            records.append(ExchangeRateRecord(currency, base, 1 / rate, rate_date, source))
        return records


__all__ = ["RateUpdater"]
