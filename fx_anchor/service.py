"""Public conversion facade used by document total calculations."""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from fx_anchor.config import Settings
from fx_anchor.errors import SuspiciousRate
from fx_anchor.models import ConversionResult, RateResolution
from fx_anchor.resolver import RateResolver
from fx_anchor.utils.dates import Clock, SystemClock
from fx_anchor.utils.logger import get_logger
from fx_anchor.validator import ConversionValidator

LOGGER = get_logger(__name__)

CENT = Decimal("0.01")

Amount = Decimal | int | float | str


class ConversionService:
    """Resolves, validates and applies a rate to an amount."""

    def __init__(
        self,
        resolver: RateResolver,
        validator: ConversionValidator | None = None,
        *,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.resolver = resolver
        self.settings = settings or resolver.settings
        self.validator = validator or ConversionValidator(self.settings)
        self.clock: Clock = clock or resolver.clock or SystemClock()

    @property
    def anchor(self) -> str:
        return self.settings.anchor_currency

    def convert(
        self,
        amount: Amount,
        from_currency: str,
        to_currency: str,
        rate_date: date | None = None,
    ) -> ConversionResult | None:
        """Convert ``amount``; ``None`` when no trustworthy rate exists."""

        original = to_decimal(amount)
        from_code = from_currency.upper()
        to_code = to_currency.upper()

        resolution = self.resolver.resolve_detailed(from_code, to_code, rate_date)
        if resolution is None:
            return None
        resolution = self._validated(resolution, from_code, to_code)
        if resolution is None:
            return None

        return ConversionResult(
            original_amount=original,
            from_currency=from_code,
            to_currency=to_code,
            converted_amount=apply_rate(original, resolution.rate),
            exchange_rate=resolution.rate,
            conversion_date=rate_date or self.clock.today(),
            tier=resolution.tier,
            degraded=resolution.degraded,
        )

    def convert_to_anchor(
        self,
        amount: Amount,
        from_currency: str,
        rate_date: date | None = None,
    ) -> Decimal | None:
        """Convert into the anchor currency; anchor amounts pass through untouched."""

        if from_currency.upper() == self.anchor:
            return to_decimal(amount)
        result = self.convert(amount, from_currency, self.anchor, rate_date)
        if result is not None:
            return result.converted_amount

        LOGGER.warning(
            "Could not convert %s %s to %s, trying emergency fallback",
            amount,
            from_currency,
            self.anchor,
        )
        fallback = self.resolver.resolve_emergency(from_currency, self.anchor)
        if fallback is None or not self.validator.is_plausible(
            fallback.rate, from_currency, self.anchor
        ):
            return None
        return apply_rate(to_decimal(amount), fallback.rate)

    def _validated(
        self, resolution: RateResolution, from_code: str, to_code: str
    ) -> RateResolution | None:
        if not self.validator.is_high_risk(from_code, to_code):
            return resolution
        try:
            self.validator.ensure_plausible(resolution.rate, from_code, to_code)
            return resolution
        except SuspiciousRate as exc:
            LOGGER.warning("%s via %s tier; using emergency rates", exc, resolution.tier)

        fallback = self.resolver.resolve_emergency(from_code, to_code)
        if fallback is None or not self.validator.is_plausible(fallback.rate, from_code, to_code):
            LOGGER.error("No plausible rate available for %s → %s", from_code, to_code)
            return None
        return fallback


def to_decimal(amount: Amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, bool):
        raise ValueError("Amount must be numeric")
    try:
        return Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount {amount!r}") from exc


def apply_rate(amount: Decimal, rate: float) -> Decimal:
    """Multiply and round to the minor unit (2 places, half up)."""

    return (amount * Decimal(repr(rate))).quantize(CENT, rounding=ROUND_HALF_UP)


__all__ = ["ConversionService", "apply_rate", "to_decimal"]
