"""Display-currency cache: TTL, refetch and fallback behaviour."""

import httpx
import pytest

from inventra.errors import ValidationError
from inventra.services.currency_service import (
    FALLBACK_RATES,
    ExchangeRateCache,
    convert_from_base,
    display_amount,
    httpx_fetcher,
    parse_rates_payload,
)


class FakeClock:
    def __init__(self):
        self.now = 1_000.0

    def __call__(self):
        return self.now


class CountingFetcher:
    def __init__(self, rates=None, error=None):
        self.calls = 0
        self.rates = rates or {"EGP": 1.0, "USD": 0.02, "TRY": 0.7}
        self.error = error

    def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error
        return dict(self.rates)


def test_serves_cached_rates_within_ttl(app):
    clock = FakeClock()
    fetcher = CountingFetcher()
    cache = ExchangeRateCache(fetcher, ttl_seconds=3600, clock=clock)

    assert cache.rates()["USD"] == 0.02
    clock.now += 3599
    cache.rates()
    assert fetcher.calls == 1


def test_refetches_after_ttl(app):
    clock = FakeClock()
    fetcher = CountingFetcher()
    cache = ExchangeRateCache(fetcher, ttl_seconds=60, clock=clock)

    cache.rates()
    clock.now += 60
    cache.rates()
    assert fetcher.calls == 2


def test_falls_back_to_static_rates(app):
    fetcher = CountingFetcher(error=httpx.ConnectError("offline"))
    cache = ExchangeRateCache(fetcher, clock=FakeClock())
    assert cache.rates() == FALLBACK_RATES


def test_keeps_last_good_rates_on_failure(app):
    clock = FakeClock()
    fetcher = CountingFetcher()
    cache = ExchangeRateCache(fetcher, ttl_seconds=10, clock=clock)
    cache.rates()

    fetcher.error = httpx.ReadTimeout("slow")
    clock.now += 11
    assert cache.rates()["USD"] == 0.02


def test_convert_from_base_rounds_half_up():
    assert convert_from_base(10_000, 0.032) == 320
    assert convert_from_base(15, 0.1) == 2
    assert convert_from_base(10_000, 1.0) == 10_000


def test_display_amount_uses_app_cache(app):
    app.extensions["exchange_rates"] = ExchangeRateCache(CountingFetcher(), clock=FakeClock())
    try:
        result = display_amount(5_000, "usd")
        assert result == {"currency": "USD", "rate": 0.02, "base_amount_cents": 5_000, "amount_cents": 100}
        with pytest.raises(ValidationError):
            display_amount(5_000, "GBP")
    finally:
        app.extensions.pop("exchange_rates", None)


def test_parse_rates_payload_fills_missing_currencies():
    assert parse_rates_payload({"rates": {"USD": 0.05}}) == {"EGP": 1.0, "USD": 0.05, "TRY": 0.95}


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "an", "object"],
        {"rates": "EGP=1"},
        {"rates": {"USD": None}},
        {"rates": {"USD": "0.05"}},
        {"rates": {"TRY": 0}},
    ],
)
def test_malformed_response_falls_back(app, monkeypatch, payload):
    def _fake_get(url, timeout):
        return httpx.Response(200, json=payload, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx, "get", _fake_get)
    cache = ExchangeRateCache(httpx_fetcher("https://rates.test/latest/EGP"), clock=FakeClock())

    assert cache.rates() == FALLBACK_RATES
    assert not cache.is_fresh()
