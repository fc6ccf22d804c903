"""Exchange rate providers and the default provider order."""

from __future__ import annotations

from typing import Final

import requests

from fx_anchor.providers.base import RateProvider
from fx_anchor.providers.http import HTTPRateProvider, normalise_payload
from fx_anchor.utils.dates import Clock, SystemClock

# Ordered by observed accuracy; the first provider passing validation wins.
DEFAULT_PROVIDER_URLS: Final[tuple[tuple[str, str], ...]] = (
    ("exchangerate-api", "https://api.exchangerate-api.com/v4/latest/{base}"),
    ("fxratesapi", "https://api.fxratesapi.com/latest?base={base}"),
    ("open-er-api", "https://open.er-api.com/v6/latest/{base}"),
    ("exchangerate-host", "https://api.exchangerate.host/latest?base={base}"),
)


def default_providers(
    *,
    session: requests.Session | None = None,
    clock: Clock | None = None,
    user_agent: str = "fx-anchor/0.1",
) -> list[RateProvider]:
    """Build the default provider chain sharing one HTTP session."""

    shared = session or requests.Session()
    resolved_clock = clock or SystemClock()
    return [
        HTTPRateProvider(
            name=name,
            url_template=template,
            session=shared,
            clock=resolved_clock,
            user_agent=user_agent,
        )
        for name, template in DEFAULT_PROVIDER_URLS
    ]


__all__ = [
    "DEFAULT_PROVIDER_URLS",
    "HTTPRateProvider",
    "RateProvider",
    "default_providers",
    "normalise_payload",
]
