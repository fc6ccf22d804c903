"""requests-based adapters for public "latest rates" JSON APIs."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Mapping

import requests

from fx_anchor.errors import ProviderError
from fx_anchor.models import ProviderResponse
from fx_anchor.utils.dates import Clock, SystemClock
from fx_anchor.utils.logger import get_logger

LOGGER = get_logger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Cache-Control": "no-cache",
}


@dataclass
class HTTPRateProvider:
    """A provider reachable with one GET returning ``{base, date, rates}``-like JSON.

    ``url_template`` is formatted with ``base``; e.g.
    ``https://api.fxratesapi.com/latest?base={base}``.
    """

    name: str
    url_template: str
    session: requests.Session | None = None
    clock: Clock = field(default_factory=SystemClock)
    user_agent: str = "fx-anchor/0.1"

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()
        self.session.headers.update({**DEFAULT_HEADERS, "User-Agent": self.user_agent})

    def url_for(self, base_currency: str) -> str:
        return self.url_template.format(base=base_currency.upper())

    def fetch_latest(self, base_currency: str, *, timeout: float) -> ProviderResponse:
        base = base_currency.upper()
        url = self.url_for(base)
        assert self.session is not None
        try:
            response = self.session.get(url, timeout=timeout)
        except requests.Timeout as exc:
            raise ProviderError(self.name, f"timed out after {timeout:.1f}s") from exc
        except requests.RequestException as exc:
            raise ProviderError(self.name, f"request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            hint = " (API key required?)" if response.status_code in {401, 403} else ""
            raise ProviderError(self.name, f"HTTP {response.status_code}{hint}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "response body is not valid JSON") from exc
        return normalise_payload(self.name, base, payload, default_date=self.clock.today())


def normalise_payload(
    provider: str,
    requested_base: str,
    payload: Any,
    *,
    default_date: date,
) -> ProviderResponse:
    """Turn the heterogeneous provider bodies into a :class:`ProviderResponse`."""

    if not isinstance(payload, Mapping):
        raise ProviderError(provider, "response body is not a JSON object")
    if payload.get("success") is False or payload.get("result") == "error":
        detail = payload.get("error") or payload.get("error-type") or "unknown error"
        raise ProviderError(provider, f"provider reported failure: {detail}")

    raw_rates = payload.get("rates")
    if raw_rates is None:
        raw_rates = payload.get("data")
    if not isinstance(raw_rates, Mapping):
        raise ProviderError(provider, "invalid response format - no rates object")

    quoted_base = payload.get("base") or payload.get("base_code") or payload.get("base_currency")
    base = str(quoted_base or requested_base).upper()
    if base != requested_base:
        raise ProviderError(provider, f"quoted base {base} but {requested_base} was requested")

    rates: dict[str, float] = {}
    for code, value in raw_rates.items():
        parsed = _coerce_rate(value)
        if parsed is not None:
            rates[str(code).upper()] = parsed

    return ProviderResponse(
        base_currency=base,
        as_of_date=_extract_date(payload) or default_date,
        rates=rates,
        provider=provider,
    )


def _coerce_rate(value: Any) -> float | None:
    if isinstance(value, Mapping):
        value = value.get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    rate = float(value)
    if not math.isfinite(rate) or rate <= 0:
        return None
    return rate


def _extract_date(payload: Mapping[str, Any]) -> date | None:
    raw = payload.get("date")
    if isinstance(raw, str) and len(raw) >= 10:
        try:
            return date.fromisoformat(raw[:10])
        except ValueError:
            LOGGER.debug("Ignoring unparsable provider date %r", raw)
    for key in ("time_last_update_unix", "timestamp"):
        stamp = payload.get(key)
        if isinstance(stamp, (int, float)) and not isinstance(stamp, bool):
            try:
                return datetime.fromtimestamp(stamp, tz=timezone.utc).date()
            except (OverflowError, OSError, ValueError):
                LOGGER.debug("Ignoring out-of-range provider %s %r", key, stamp)
    return None


__all__ = ["HTTPRateProvider", "normalise_payload"]
