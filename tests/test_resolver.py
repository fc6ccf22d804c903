"""Tiered resolution against a real SQLite store."""

from __future__ import annotations

import threading
import time
from datetime import date, timedelta

import pytest

from fx_anchor.errors import NoRateFound, ProviderError
from fx_anchor.fetcher import RateFetcher
from fx_anchor.models import ProviderResponse
from fx_anchor.resolver import RateResolver
from fx_anchor.updater import RateUpdater

TODAY = date(2025, 8, 15)


class _CountingProvider:
    name = "counting"

    def __init__(self, response: ProviderResponse | None, delay: float = 0.0) -> None:
        self.response = response
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def fetch_latest(self, base_currency: str, *, timeout: float) -> ProviderResponse:
        with self._lock:
            self.calls += 1
        time.sleep(self.delay)
        if self.response is None:
            raise ProviderError(self.name, "HTTP 503")
        return self.response


def _resolver(store, clock, provider=None, settings=None) -> RateResolver:
    updater = None
    if provider is not None:
        updater = RateUpdater(store, RateFetcher([provider], settings), settings, clock=clock)
    return RateResolver(store, updater=updater, settings=settings, clock=clock)


def test_identity_needs_no_store(clock) -> None:
    resolver = RateResolver(None, clock=clock)

    resolution = resolver.resolve_detailed("usd", "USD")

    assert resolution.rate == 1.0
    assert resolution.tier == "identity"


def test_scenario_a_direct_and_inverse_rows(store, clock, record) -> None:
    store.upsert_many([record("INR", "USD", 0.012), record("USD", "INR", 83.2)])
    resolver = _resolver(store, clock)

    usd_inr = resolver.resolve_detailed("USD", "INR")
    inr_usd = resolver.resolve_detailed("INR", "USD")

    assert (usd_inr.rate, usd_inr.tier) == (pytest.approx(83.2), "direct")
    assert (inr_usd.rate, inr_usd.tier) == (pytest.approx(0.012), "direct")
    assert usd_inr.rate_date == TODAY


def test_inverse_tier_reciprocates_stored_rate(store, clock, record) -> None:
    store.upsert_many([record("INR", "THB", 0.39)])
    resolver = _resolver(store, clock)

    resolution = resolver.resolve_detailed("THB", "INR")

    assert resolution.tier == "inverse"
    assert resolution.rate == pytest.approx(1 / 0.39)
    assert resolution.rate * resolver.resolve("INR", "THB") == pytest.approx(1.0)


def test_scenario_b_recent_rate_within_window(store, clock, record) -> None:
    store.upsert_many([record("USD", "INR", 83.1, TODAY - timedelta(days=3))])
    resolver = _resolver(store, clock)

    resolution = resolver.resolve_detailed("USD", "INR")

    assert resolution.tier == "recent"
    assert resolution.rate == pytest.approx(83.1)
    assert resolution.degraded is False


def test_recent_tier_uses_inverse_within_window(store, clock, record) -> None:
    store.upsert_many([record("INR", "USD", 0.012, TODAY - timedelta(days=2))])
    resolver = _resolver(store, clock)

    resolution = resolver.resolve_detailed("USD", "INR")

    assert resolution.tier == "recent"
    assert resolution.rate == pytest.approx(1 / 0.012)


def test_rows_outside_window_are_ignored(store, clock, record) -> None:
    store.upsert_many([record("THB", "INR", 2.5, TODAY - timedelta(days=8))])
    resolver = _resolver(store, clock)

    assert resolver.resolve("THB", "INR") is None
    with pytest.raises(NoRateFound):
        resolver.require("THB", "INR")


def test_scenario_c_cross_rate_through_anchor(store, clock, record) -> None:
    store.upsert_many([record("EUR", "INR", 101.0), record("GBP", "INR", 116.0)])
    resolver = _resolver(store, clock)

    eur_gbp = resolver.resolve_detailed("EUR", "GBP")
    gbp_eur = resolver.resolve("GBP", "EUR")

    assert eur_gbp.tier == "cross"
    assert eur_gbp.rate == pytest.approx(101.0 / 116.0)
    assert eur_gbp.rate * gbp_eur == pytest.approx(1.0)


def test_scenario_d_persistence_down_uses_emergency(failing_store, clock) -> None:
    provider = _CountingProvider(None)
    resolver = _resolver(failing_store, clock, provider)

    resolution = resolver.resolve_detailed("USD", "INR")

    assert resolution.tier == "emergency"
    assert resolution.rate == pytest.approx(83.15)
    assert resolution.degraded is True
    assert provider.calls == 0


def test_scenario_e_concurrent_misses_fetch_once(store, clock, inr_response) -> None:
    provider = _CountingProvider(inr_response, delay=0.2)
    resolver = _resolver(store, clock, provider)
    results: list[float | None] = []

    def resolve() -> None:
        results.append(resolver.resolve("USD", "INR"))

    threads = [threading.Thread(target=resolve) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert provider.calls == 1
    assert results == [pytest.approx(1 / 0.012)] * 2


def test_refresh_tier_retries_store_after_fetch(store, clock, inr_response) -> None:
    provider = _CountingProvider(inr_response)
    resolver = _resolver(store, clock, provider)

    resolution = resolver.resolve_detailed("EUR", "USD")

    assert resolution.tier == "refresh"
    assert resolution.rate == pytest.approx((1 / 0.0099) * 0.012)
    assert provider.calls == 1
    assert resolver.resolve_detailed("EUR", "USD").tier == "cross"


def test_failed_refresh_falls_back_to_emergency(store, clock) -> None:
    provider = _CountingProvider(None)
    resolver = _resolver(store, clock, provider)

    resolution = resolver.resolve_detailed("EUR", "GBP")

    assert provider.calls == 1
    assert resolution.tier == "emergency"
    assert resolution.rate == pytest.approx(101.147 / 116.05)


def test_staleness_bound_prefers_latest_row(store, clock, record) -> None:
    day1 = TODAY - timedelta(days=4)
    store.upsert_many([record("USD", "INR", 80.0, day1), record("USD", "INR", 82.0, TODAY)])
    resolver = _resolver(store, clock)

    assert resolver.resolve("USD", "INR") == pytest.approx(82.0)
    assert resolver.resolve("USD", "INR", day1) == pytest.approx(80.0)

    clock.advance(timedelta(days=1))
    assert resolver.resolve_detailed("USD", "INR").tier == "recent"
    assert resolver.resolve("USD", "INR") == pytest.approx(82.0)


def test_unknown_currency_exhausts_every_tier(store, clock) -> None:
    resolver = _resolver(store, clock)

    assert resolver.resolve("XYZ", "INR") is None
    assert resolver.resolve_emergency("XYZ", "INR") is None


def test_resolve_emergency_only_consults_static_table(store, clock, record) -> None:
    store.upsert_many([record("USD", "INR", 83.2)])
    resolver = _resolver(store, clock)

    resolution = resolver.resolve_emergency("usd", "inr")

    assert resolution.tier == "emergency"
    assert resolution.rate == pytest.approx(83.15)


def test_tiers_are_an_ordered_chain(clock) -> None:
    resolver = RateResolver(None, clock=clock)

    assert [name for name, _ in resolver.tiers] == [
        "identity",
        "direct",
        "inverse",
        "cross",
        "recent",
        "refresh",
        "emergency",
    ]



def test_malformed_provider_body_degrades_to_next_provider(store, clock, inr_response) -> None:
    class _OverflowingProvider:
        name = "overflowing"

        def fetch_latest(self, base_currency: str, *, timeout: float) -> ProviderResponse:
            raise OverflowError("timestamp out of range for platform time_t")

    good = _CountingProvider(inr_response)
    fetcher = RateFetcher([_OverflowingProvider(), good])
    updater = RateUpdater(store, fetcher, clock=clock)
    resolver = RateResolver(store, updater=updater, clock=clock)

    resolution = resolver.resolve_detailed("THB", "INR")

    assert good.calls == 1
    assert resolution.tier == "refresh"
    assert resolution.rate == pytest.approx(1 / 0.39)
