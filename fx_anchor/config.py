"""Runtime configuration for the fx_anchor engine."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from datetime import date, time
from typing import Mapping

from fx_anchor.utils.dates import parse_date, parse_time_of_day

ENV_PREFIX = "FX_ANCHOR_"

MAJOR_CURRENCIES: tuple[str, ...] = (
    "USD",
    "EUR",
    "GBP",
    "AUD",
    "CAD",
    "SGD",
    "AED",
    "SAR",
    "JPY",
    "CNY",
    "CHF",
    "NZD",
)
COVERAGE_CURRENCIES: tuple[str, ...] = ("USD", "EUR", "GBP", "AUD", "CAD")

# Approximate "1 unit = N INR" values; only used once every stored tier has failed.
EMERGENCY_RATES_TO_INR: dict[str, float] = {
    "USD": 83.15,
    "GBP": 116.05,
    "EUR": 101.147,
    "AUD": 55.30,
    "CAD": 61.20,
    "SGD": 62.10,
    "AED": 22.60,
    "SAR": 22.15,
    "JPY": 0.57,
    "CNY": 11.60,
    "CHF": 93.20,
    "NZD": 50.80,
}
EMERGENCY_RATES_AS_OF = date(2025, 8, 1)

PLAUSIBILITY_MINIMUMS: dict[tuple[str, str], float] = {
    ("USD", "INR"): 50.0,
    ("EUR", "INR"): 50.0,
    ("GBP", "INR"): 50.0,
}


@dataclass(frozen=True, slots=True)
class Settings:
    """Every tunable of the engine in one immutable object."""

    anchor_currency: str = "INR"
    major_currencies: tuple[str, ...] = MAJOR_CURRENCIES
    coverage_currencies: tuple[str, ...] = COVERAGE_CURRENCIES
    critical_currencies: tuple[str, ...] = ("USD", "EUR", "GBP")
    min_major_coverage: int = 3
    staleness_window_days: int = 7
    provider_timeout: float = 10.0
    fetch_budget: float = 45.0
    schedule_time: time = time(0, 1)
    schedule_max_attempts: int = 3
    schedule_retry_delay: float = 300.0
    plausibility_minimums: Mapping[tuple[str, str], float] = field(
        default_factory=lambda: dict(PLAUSIBILITY_MINIMUMS)
    )
    emergency_rates: Mapping[str, float] = field(
        default_factory=lambda: dict(EMERGENCY_RATES_TO_INR)
    )
    emergency_rates_as_of: date = EMERGENCY_RATES_AS_OF
    emergency_max_age_days: int = 90
    user_agent: str = "fx-anchor/0.1"

    def __post_init__(self) -> None:
        if not self.anchor_currency or len(self.anchor_currency) != 3:
            raise ValueError("anchor_currency must be a three letter ISO code")
        if self.min_major_coverage < 1:
            raise ValueError("min_major_coverage must be at least 1")
        if self.staleness_window_days < 0:
            raise ValueError("staleness_window_days must not be negative")
        if self.provider_timeout <= 0 or self.fetch_budget <= 0:
            raise ValueError("provider_timeout and fetch_budget must be positive")
        if self.schedule_max_attempts < 1:
            raise ValueError("schedule_max_attempts must be at least 1")
        if self.schedule_retry_delay < 0:
            raise ValueError("schedule_retry_delay must not be negative")
        if any(rate <= 0 for rate in self.emergency_rates.values()):
            raise ValueError("emergency rates must be strictly positive")

    def with_overrides(self, **changes: object) -> "Settings":
        """Return a copy with ``changes`` applied."""

        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``FX_ANCHOR_*`` environment variables."""

        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}

        def _get(name: str) -> str | None:
            value = env.get(f"{ENV_PREFIX}{name}")
            return value.strip() if value and value.strip() else None

        if (anchor := _get("ANCHOR_CURRENCY")) is not None:
            overrides["anchor_currency"] = anchor.upper()
        if (window := _get("STALENESS_DAYS")) is not None:
            overrides["staleness_window_days"] = _as_int("STALENESS_DAYS", window)
        if (coverage := _get("MIN_COVERAGE")) is not None:
            overrides["min_major_coverage"] = _as_int("MIN_COVERAGE", coverage)
        if (timeout := _get("PROVIDER_TIMEOUT")) is not None:
            overrides["provider_timeout"] = _as_float("PROVIDER_TIMEOUT", timeout)
        if (budget := _get("FETCH_BUDGET")) is not None:
            overrides["fetch_budget"] = _as_float("FETCH_BUDGET", budget)
        if (schedule := _get("SCHEDULE_TIME")) is not None:
            overrides["schedule_time"] = parse_time_of_day(schedule)
        if (attempts := _get("SCHEDULE_ATTEMPTS")) is not None:
            overrides["schedule_max_attempts"] = _as_int("SCHEDULE_ATTEMPTS", attempts)
        if (delay := _get("SCHEDULE_RETRY_DELAY")) is not None:
            overrides["schedule_retry_delay"] = _as_float("SCHEDULE_RETRY_DELAY", delay)
        if (emergency := _get("EMERGENCY_RATES")) is not None:
            overrides["emergency_rates"] = _parse_emergency_rates(emergency)
        if (as_of := _get("EMERGENCY_RATES_AS_OF")) is not None:
            overrides["emergency_rates_as_of"] = parse_date(as_of)
        return cls(**overrides)  # type: ignore[arg-type]


def _as_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}") from exc


def _as_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {value!r}") from exc


def _parse_emergency_rates(raw: str) -> dict[str, float]:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{ENV_PREFIX}EMERGENCY_RATES must be a JSON object") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"{ENV_PREFIX}EMERGENCY_RATES must be a JSON object")
    return {str(code).upper(): float(rate) for code, rate in payload.items()}


__all__ = [
    "COVERAGE_CURRENCIES",
    "EMERGENCY_RATES_AS_OF",
    "EMERGENCY_RATES_TO_INR",
    "MAJOR_CURRENCIES",
    "PLAUSIBILITY_MINIMUMS",
    "Settings",
]
