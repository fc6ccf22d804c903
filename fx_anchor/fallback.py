"""Static emergency rate table used once every stored tier has failed."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Mapping

from fx_anchor.utils.dates import Clock, SystemClock
from fx_anchor.utils.logger import get_logger

LOGGER = get_logger(__name__)


class EmergencyRateTable:
    """Approximate ``1 unit = N anchor`` rates combined direct, inverse or cross.

    The values are point-in-time constants; ``as_of`` records when they were
    last checked and a warning is logged whenever they are consulted after
    ``max_age_days``.
    """

    def __init__(
        self,
        rates_to_anchor: Mapping[str, float],
        anchor_currency: str,
        *,
        as_of: date,
        max_age_days: int = 90,
        clock: Clock | None = None,
    ) -> None:
        self.anchor_currency = anchor_currency.upper()
        self.rates_to_anchor = {code.upper(): float(rate) for code, rate in rates_to_anchor.items()}
        self.as_of = as_of
        self.max_age_days = max_age_days
        self.clock: Clock = clock or SystemClock()

    @property
    def currencies(self) -> list[str]:
        return sorted(self.rates_to_anchor)

    def is_stale(self) -> bool:
        return self.clock.today() - self.as_of > timedelta(days=self.max_age_days)

    def rate(self, from_currency: str, to_currency: str) -> float | None:
        from_code = from_currency.upper()
        to_code = to_currency.upper()
        if from_code == to_code:
            return 1.0
        if self.is_stale():
            LOGGER.warning(
                "Emergency rates were last reviewed on %s (older than %s days); "
                "update the configured table",
                self.as_of,
                self.max_age_days,
            )
        anchor = self.anchor_currency
        if to_code == anchor:
            return self._to_anchor(from_code)
        if from_code == anchor:
            inverse = self._to_anchor(to_code)
            return 1 / inverse if inverse else None
        from_leg = self._to_anchor(from_code)
        to_leg = self._to_anchor(to_code)
        if from_leg and to_leg:
            return from_leg / to_leg
        return None

    def _to_anchor(self, code: str) -> float | None:
        value = self.rates_to_anchor.get(code)
        return value if value and value > 0 else None


__all__ = ["EmergencyRateTable"]
