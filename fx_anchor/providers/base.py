"""Abstractions for pluggable exchange rate providers."""

from __future__ import annotations

from typing import Protocol

from fx_anchor.models import ProviderResponse


class RateProvider(Protocol):
    """Contract for fetching the latest rates quoted against a base currency.

    Implementations return a normalised :class:`ProviderResponse` or raise
    :class:`~fx_anchor.errors.ProviderError`; they must honour ``timeout``.
    """

    name: str

    def fetch_latest(self, base_currency: str, *, timeout: float) -> ProviderResponse:
        ...  # pragma: no cover - protocol definition


__all__ = ["RateProvider"]
