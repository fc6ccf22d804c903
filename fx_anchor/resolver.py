"""Tiered exchange rate lookup.

Tiers are tried in order and the first one that finds a rate wins:

1. identity   - ``from == to``
2. direct     - stored ``from -> to`` on the requested date
3. inverse    - stored ``to -> from`` on the requested date, reciprocated
4. cross      - both legs through the anchor currency on the requested date
5. recent     - same lookups within the staleness window
6. refresh    - one non-forced refresh, then tiers 2-4 once more
7. emergency  - the static table, flagged as degraded

A store failure counts as a miss of the tier that hit it; ``resolve`` only
returns ``None`` once every tier is exhausted.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Sequence

from fx_anchor.config import Settings
from fx_anchor.db.base_backend import RateStore
from fx_anchor.errors import NoRateFound, PersistenceError
from fx_anchor.fallback import EmergencyRateTable
from fx_anchor.models import RateResolution
from fx_anchor.updater import RateUpdater
from fx_anchor.utils.dates import Clock, SystemClock
from fx_anchor.utils.logger import get_logger

LOGGER = get_logger(__name__)

Tier = Callable[[str, str, date], "RateResolution | None"]
Lookup = Callable[[str, str], "float | None"]


class RateResolver:
    """Answers ``rate(from, to, date)`` from the store, a refresh or the emergency table."""

    def __init__(
        self,
        store: RateStore | None,
        *,
        updater: RateUpdater | None = None,
        emergency: EmergencyRateTable | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.updater = updater
        self.settings = settings or Settings()
        self.clock: Clock = clock or SystemClock()
        self.emergency = emergency or EmergencyRateTable(
            self.settings.emergency_rates,
            self.settings.anchor_currency,
            as_of=self.settings.emergency_rates_as_of,
            max_age_days=self.settings.emergency_max_age_days,
            clock=self.clock,
        )
        self.tiers: list[tuple[str, Tier]] = [
            ("identity", self._identity),
            ("direct", self._direct),
            ("inverse", self._inverse),
            ("cross", self._cross),
            ("recent", self._recent),
            ("refresh", self._refresh_then_retry),
            ("emergency", self._emergency),
        ]

    @property
    def anchor(self) -> str:
        return self.settings.anchor_currency

    def resolve(
        self, from_currency: str, to_currency: str, rate_date: date | None = None
    ) -> float | None:
        resolution = self.resolve_detailed(from_currency, to_currency, rate_date)
        return resolution.rate if resolution is not None else None

    def resolve_detailed(
        self, from_currency: str, to_currency: str, rate_date: date | None = None
    ) -> RateResolution | None:
        return self._run_tiers(self.tiers, from_currency, to_currency, rate_date)

    def resolve_emergency(self, from_currency: str, to_currency: str) -> RateResolution | None:
        """Use only the emergency table (after a plausibility rejection)."""

        return self._run_tiers(
            [("emergency", self._emergency)], from_currency, to_currency, None
        )

    def require(
        self, from_currency: str, to_currency: str, rate_date: date | None = None
    ) -> float:
        """Like :meth:`resolve` but raise :class:`NoRateFound` on exhaustion."""

        rate = self.resolve(from_currency, to_currency, rate_date)
        if rate is None:
            raise NoRateFound(from_currency.upper(), to_currency.upper())
        return rate

    def _run_tiers(
        self,
        tiers: Sequence[tuple[str, Tier]],
        from_currency: str,
        to_currency: str,
        rate_date: date | None,
    ) -> RateResolution | None:
        from_code = from_currency.upper()
        to_code = to_currency.upper()
        target_date = rate_date or self.clock.today()
        for name, tier in tiers:
            try:
                resolution = tier(from_code, to_code, target_date)
            except PersistenceError as exc:
                LOGGER.warning(
                    "Tier %s unavailable for %s → %s: %s", name, from_code, to_code, exc
                )
                continue
            if resolution is not None:
                LOGGER.debug(
                    "Resolved 1 %s = %s %s via %s tier", from_code, resolution.rate, to_code, name
                )
                return resolution
            LOGGER.debug(
                "Tier %s found nothing for %s → %s on %s", name, from_code, to_code, target_date
            )
        LOGGER.warning("No exchange rate available for %s → %s", from_code, to_code)
        return None

    def _identity(self, from_code: str, to_code: str, rate_date: date) -> RateResolution | None:
        if from_code == to_code:
            return RateResolution(1.0, "identity", rate_date)
        return None

    def _direct(self, from_code: str, to_code: str, rate_date: date) -> RateResolution | None:
        if self.store is None:
            return None
        rate = self.store.get_rate(from_code, to_code, rate_date)
        return RateResolution(rate, "direct", rate_date) if _usable(rate) else None

    def _inverse(self, from_code: str, to_code: str, rate_date: date) -> RateResolution | None:
        if self.store is None:
            return None
        rate = _reciprocal(self.store.get_rate(to_code, from_code, rate_date))
        return RateResolution(rate, "inverse", rate_date) if rate is not None else None

    def _cross(self, from_code: str, to_code: str, rate_date: date) -> RateResolution | None:
        if self.store is None:
            return None
        store = self.store
        rate = self._cross_rate(
            from_code, to_code, lambda base, target: store.get_rate(base, target, rate_date)
        )
        return RateResolution(rate, "cross", rate_date) if rate is not None else None

    def _recent(self, from_code: str, to_code: str, rate_date: date) -> RateResolution | None:
        if self.store is None:
            return None
        store = self.store
        window = self.settings.staleness_window_days

        def lookup(base: str, target: str) -> float | None:
            return store.get_recent_rate(base, target, window)

        rate = self._pair_rate(from_code, to_code, lookup)
        if rate is None:
            rate = self._cross_rate(from_code, to_code, lookup)
        if rate is None:
            return None
        LOGGER.info("Using recent rate (within %s days) for %s → %s", window, from_code, to_code)
        return RateResolution(rate, "recent", None)

    def _refresh_then_retry(
        self, from_code: str, to_code: str, rate_date: date
    ) -> RateResolution | None:
        if self.updater is None or self.store is None:
            return None
        LOGGER.info("No stored rate for %s → %s; attempting a refresh", from_code, to_code)
        if not self.updater.refresh(self.anchor, force=False):
            return None
        for retry in (self._direct, self._inverse, self._cross):
            resolution = retry(from_code, to_code, rate_date)
            if resolution is not None:
                return RateResolution(resolution.rate, "refresh", rate_date)
        return None

    def _emergency(self, from_code: str, to_code: str, rate_date: date) -> RateResolution | None:
        rate = self.emergency.rate(from_code, to_code)
        if rate is None:
            return None
        LOGGER.warning(
            "Using emergency fallback rate for %s → %s: %s (degraded)", from_code, to_code, rate
        )
        return RateResolution(rate, "emergency", None, degraded=True)

    def _pair_rate(self, from_code: str, to_code: str, lookup: Lookup) -> float | None:
        rate = lookup(from_code, to_code)
        if _usable(rate):
            return rate
        return _reciprocal(lookup(to_code, from_code))

    def _cross_rate(self, from_code: str, to_code: str, lookup: Lookup) -> float | None:
        anchor = self.anchor
        if anchor in (from_code, to_code):
            return None
        from_leg = self._pair_rate(from_code, anchor, lookup)
        if from_leg is None:
            return None
        to_leg = self._pair_rate(anchor, to_code, lookup)
        if to_leg is None:
            return None
        return from_leg * to_leg


def _usable(rate: float | None) -> bool:
    return rate is not None and rate > 0


def _reciprocal(rate: float | None) -> float | None:
    if not _usable(rate):
        return None
    return 1 / rate  # type: ignore[operator]


__all__ = ["RateResolver"]
