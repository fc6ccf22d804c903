"""Fetch the latest rates from the first provider that passes validation."""

from __future__ import annotations

import time
from typing import Callable, Sequence

from fx_anchor.config import Settings
from fx_anchor.errors import InsufficientCoverage, ProviderError, ProviderUnavailable
from fx_anchor.models import ProviderResponse
from fx_anchor.providers.base import RateProvider
from fx_anchor.utils.logger import get_logger

LOGGER = get_logger(__name__)


class RateFetcher:
    """Walks an ordered provider list and returns the first trustworthy response."""

    def __init__(
        self,
        providers: Sequence[RateProvider],
        settings: Settings | None = None,
        *,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.providers = list(providers)
        self.settings = settings or Settings()
        self._monotonic = monotonic

    def fetch(self, base_currency: str) -> ProviderResponse:
        base = base_currency.upper()
        failures: list[str] = []
        deadline = self._monotonic() + self.settings.fetch_budget
        LOGGER.info(
            "Fetching exchange rates with %s as base currency from %s sources",
            base,
            len(self.providers),
        )

        for provider in self.providers:
            remaining = deadline - self._monotonic()
            if remaining <= 0:
                LOGGER.warning(
                    "Fetch budget of %.1fs exhausted before %s",
                    self.settings.fetch_budget,
                    provider.name,
                )
                failures.append("fetch budget exhausted")
                break
            timeout = min(self.settings.provider_timeout, remaining)
            try:
                response = provider.fetch_latest(base, timeout=timeout)
                self.validate_coverage(response)
            except ProviderError as exc:
                LOGGER.warning("%s failed: %s", provider.name, exc)
                failures.append(str(exc))
                continue
            except Exception as exc:
                LOGGER.exception("%s returned an unusable response", provider.name)
                failures.append(f"{provider.name}: unexpected {type(exc).__name__}: {exc}")
                continue
            LOGGER.info(
                "Fetched %s rates from %s (as of %s)",
                len(response.rates),
                provider.name,
                response.as_of_date,
            )
            return response

        LOGGER.error("All exchange rate providers failed for %s", base)
        raise ProviderUnavailable(base, failures)

    def validate_coverage(self, response: ProviderResponse) -> None:
        """Reject responses lacking enough positive major-currency rates."""

        required = self.settings.min_major_coverage
        present = [
            code
            for code in self.settings.coverage_currencies
            if code != response.base_currency and response.rates.get(code, 0) > 0
        ]
        if len(present) < required:
            raise InsufficientCoverage(response.provider, present, required)


__all__ = ["RateFetcher"]
