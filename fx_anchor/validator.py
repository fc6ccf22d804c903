"""Plausibility checks for resolved rates on high-risk pairs."""

from __future__ import annotations

from fx_anchor.config import Settings
from fx_anchor.errors import SuspiciousRate
from fx_anchor.utils.logger import get_logger

LOGGER = get_logger(__name__)


class ConversionValidator:
    """Rejects rates below the configured floor for pairs with a known magnitude.

    The typical catch is an inverted rate, e.g. ``~0.012`` where ``1 USD``
    should be worth ``~83 INR``. Pairs outside the configured set always pass.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        self._minimums = {
            (base.upper(), target.upper()): float(minimum)
            for (base, target), minimum in self.settings.plausibility_minimums.items()
        }

    def is_high_risk(self, from_currency: str, to_currency: str) -> bool:
        return (from_currency.upper(), to_currency.upper()) in self._minimums

    def minimum_for(self, from_currency: str, to_currency: str) -> float | None:
        return self._minimums.get((from_currency.upper(), to_currency.upper()))

    def is_plausible(self, rate: float, from_currency: str, to_currency: str) -> bool:
        minimum = self.minimum_for(from_currency, to_currency)
        if minimum is None:
            return True
        return rate >= minimum

    def ensure_plausible(self, rate: float, from_currency: str, to_currency: str) -> None:
        if not self.is_plausible(rate, from_currency, to_currency):
            minimum = self.minimum_for(from_currency, to_currency)
            assert minimum is not None
            raise SuspiciousRate(from_currency.upper(), to_currency.upper(), rate, minimum)


__all__ = ["ConversionValidator"]
