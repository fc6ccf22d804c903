"""Exception hierarchy for the fx_anchor engine."""

from __future__ import annotations


class FxAnchorError(Exception):
    """Base class for every error raised by fx_anchor."""


class ProviderError(FxAnchorError):
    """Raised when a single upstream provider cannot fulfil a request."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class InsufficientCoverage(ProviderError):
    """The provider answered but without enough major-currency rates."""

    def __init__(self, provider: str, found: list[str], required: int) -> None:
        found_text = ", ".join(found) if found else "none"
        super().__init__(
            provider,
            f"insufficient major currency rates (need {required}, got {found_text})",
        )
        self.found = found
        self.required = required


class ProviderUnavailable(FxAnchorError):
    """Every configured provider failed or the fetch budget ran out."""

    def __init__(self, base_currency: str, failures: list[str] | None = None) -> None:
        self.base_currency = base_currency
        self.failures = list(failures or [])
        detail = "; ".join(self.failures) if self.failures else "no providers configured"
        super().__init__(f"All exchange rate providers failed for {base_currency}: {detail}")


class PersistenceError(FxAnchorError):
    """The rate store rejected a read or a write."""


class NoRateFound(FxAnchorError):
    """Every resolver tier, including the emergency table, came up empty."""

    def __init__(self, from_currency: str, to_currency: str) -> None:
        super().__init__(f"No exchange rate available for {from_currency} → {to_currency}")
        self.from_currency = from_currency
        self.to_currency = to_currency


class SuspiciousRate(FxAnchorError):
    """A resolved rate fell below the plausibility floor for its pair."""

    def __init__(self, from_currency: str, to_currency: str, rate: float, minimum: float) -> None:
        super().__init__(
            f"Suspicious rate 1 {from_currency} = {rate} {to_currency} (expected >= {minimum})"
        )
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.rate = rate
        self.minimum = minimum


__all__ = [
    "FxAnchorError",
    "InsufficientCoverage",
    "NoRateFound",
    "PersistenceError",
    "ProviderError",
    "ProviderUnavailable",
    "SuspiciousRate",
]
