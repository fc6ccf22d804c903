from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from fx_anchor.config import Settings
from fx_anchor.errors import SuspiciousRate
from fx_anchor.resolver import RateResolver
from fx_anchor.service import ConversionService, apply_rate, to_decimal
from fx_anchor.validator import ConversionValidator

TODAY = date(2025, 8, 15)


@pytest.fixture
def service(store, clock) -> ConversionService:
    return ConversionService(RateResolver(store, clock=clock), clock=clock)


class TestConversionValidator:
    def test_high_risk_pairs_come_from_settings(self) -> None:
        validator = ConversionValidator()

        assert validator.is_high_risk("usd", "inr")
        assert not validator.is_high_risk("INR", "USD")
        assert validator.minimum_for("GBP", "INR") == 50.0
        assert validator.minimum_for("JPY", "INR") is None

    def test_inverted_rate_is_rejected(self) -> None:
        validator = ConversionValidator()

        assert not validator.is_plausible(0.012, "USD", "INR")
        with pytest.raises(SuspiciousRate) as excinfo:
            validator.ensure_plausible(0.012, "USD", "INR")
        assert excinfo.value.minimum == 50.0

    def test_other_pairs_always_pass(self) -> None:
        validator = ConversionValidator()

        assert validator.is_plausible(0.0001, "JPY", "EUR")
        validator.ensure_plausible(83.2, "USD", "INR")

    def test_custom_thresholds(self) -> None:
        settings = Settings(plausibility_minimums={("AED", "INR"): 15.0})
        validator = ConversionValidator(settings)

        assert validator.is_high_risk("AED", "INR")
        assert not validator.is_high_risk("USD", "INR")


def test_convert_rounds_half_up_to_cents(service, store, record) -> None:
    store.upsert_many([record("USD", "INR", 83.157)])

    result = service.convert("100", "usd", "inr")

    assert result.original_amount == Decimal("100")
    assert result.converted_amount == Decimal("8315.70")
    assert result.exchange_rate == pytest.approx(83.157)
    assert result.from_currency == "USD"
    assert result.to_currency == "INR"
    assert result.conversion_date == TODAY
    assert result.tier == "direct"
    assert result.degraded is False


def test_apply_rate_rounding() -> None:
    assert apply_rate(Decimal("1"), 2.345) == Decimal("2.35")
    assert apply_rate(Decimal("10.00"), 0.0125) == Decimal("0.13")
    assert apply_rate(Decimal("0.004"), 1.0) == Decimal("0.00")


def test_identity_conversion(service) -> None:
    result = service.convert(Decimal("12.345"), "EUR", "EUR")

    assert result.converted_amount == Decimal("12.35")
    assert result.tier == "identity"


def test_suspicious_rate_falls_back_to_emergency(service, store, record) -> None:
    # An inverted INR->USD value stored under the USD->INR key.
    store.upsert_many([record("USD", "INR", 0.012)])

    result = service.convert(100, "USD", "INR")

    assert result.exchange_rate == pytest.approx(83.15)
    assert result.converted_amount == Decimal("8315.00")
    assert result.tier == "emergency"
    assert result.degraded is True


def test_implausible_emergency_rate_yields_none(store, clock, record) -> None:
    settings = Settings(emergency_rates={"USD": 0.5})
    resolver = RateResolver(store, settings=settings, clock=clock)
    service = ConversionService(resolver, clock=clock)
    store.upsert_many([record("USD", "INR", 0.012)])

    assert service.convert(1, "USD", "INR") is None


def test_unknown_pair_returns_none(service) -> None:
    assert service.convert(1, "XYZ", "INR") is None


def test_historical_date_is_honoured(service, store, record) -> None:
    old = date(2024, 3, 1)
    store.upsert_many([record("EUR", "INR", 90.0, old), record("EUR", "INR", 101.0)])

    result = service.convert(2, "EUR", "INR", old)

    assert result.converted_amount == Decimal("180.00")
    assert result.conversion_date == old


def test_convert_to_anchor_passthrough_skips_resolution(failing_store, clock) -> None:
    service = ConversionService(RateResolver(failing_store, clock=clock), clock=clock)

    assert service.convert_to_anchor("250.50", "inr") == Decimal("250.50")
    assert failing_store.calls == 0


def test_convert_to_anchor_uses_stored_rate(service, store, record) -> None:
    store.upsert_many([record("GBP", "INR", 116.4)])

    assert service.convert_to_anchor(10, "GBP") == Decimal("1164.00")


def test_convert_to_anchor_when_store_is_down(failing_store, clock) -> None:
    service = ConversionService(RateResolver(failing_store, clock=clock), clock=clock)

    assert service.convert_to_anchor(2, "EUR") == Decimal("202.29")


def test_convert_to_anchor_returns_none_without_any_rate(service) -> None:
    assert service.convert_to_anchor(5, "XYZ") is None


@pytest.mark.parametrize("amount", [True, "twelve", None])
def test_invalid_amounts_are_rejected(amount) -> None:
    with pytest.raises(ValueError):
        to_decimal(amount)
