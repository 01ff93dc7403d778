# Overview: Display-currency conversion backed by a time-bounded exchange-rate cache.

"""
Display currency.

Ledger amounts are always stored in the base currency (integer cents). Rates
here only convert for presentation; nothing converted is ever written back.
"""

from __future__ import annotations

import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

import httpx
from flask import current_app

from ..errors import ValidationError


SUPPORTED_CURRENCIES = ("EGP", "USD", "TRY")

# Approximate rates per 1 EGP, used until a fetch succeeds
FALLBACK_RATES = {"EGP": 1.0, "USD": 0.032, "TRY": 0.95}


def parse_rates_payload(payload) -> dict[str, float]:
    """
    Extract supported rates from an exchangerate-api style payload.

    Missing currencies take their fallback rate. A payload of the wrong shape
    or a rate that is not a positive number raises ValueError.
    """
    if not isinstance(payload, dict):
        raise ValueError("Exchange rate payload must be an object")
    rates = payload.get("rates")
    if rates is None:
        rates = {}
    if not isinstance(rates, dict):
        raise ValueError("Exchange rate payload has no rates object")

    parsed = {}
    for code in SUPPORTED_CURRENCIES:
        value = rates.get(code, FALLBACK_RATES[code])
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"Invalid exchange rate for {code}: {value!r}")
        parsed[code] = float(value)
    return parsed


def httpx_fetcher(url: str, *, timeout: float = 5.0) -> Callable[[], dict[str, float]]:
    """Build a fetcher that reads `rates` from an exchangerate-api style payload."""

    def _fetch() -> dict[str, float]:
        response = httpx.get(url, timeout=timeout)
        response.raise_for_status()
        return parse_rates_payload(response.json())

    return _fetch


class ExchangeRateCache:
    """
    Rates cached for ttl_seconds.

    The fetcher and clock are injected so tests can drive expiry without
    sleeping or touching the network. On fetch failure the last good rates
    (or FALLBACK_RATES) are served and a warning is logged.
    """

    def __init__(
        self,
        fetcher: Callable[[], dict[str, float]],
        *,
        ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetcher = fetcher
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._rates: dict[str, float] | None = None
        self._fetched_at: float | None = None

    def is_fresh(self) -> bool:
        if self._rates is None or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self._ttl_seconds

    def rates(self) -> dict[str, float]:
        if self.is_fresh():
            return dict(self._rates)

        try:
            fetched = self._fetcher()
        except (httpx.HTTPError, ValueError, KeyError):
            current_app.logger.warning("Exchange rate fetch failed; serving cached or fallback rates", exc_info=True)
            return dict(self._rates or FALLBACK_RATES)

        self._rates = dict(fetched)
        self._fetched_at = self._clock()
        return dict(self._rates)


def convert_from_base(amount_cents: int, rate: float) -> int:
    """Convert base-currency cents to display cents, rounding half-up."""
    converted = Decimal(amount_cents) * Decimal(str(rate))
    return int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_rate_cache() -> ExchangeRateCache:
    """Per-app cache, created lazily from EXCHANGE_RATE_URL / EXCHANGE_RATE_TTL_SECONDS."""
    cache = current_app.extensions.get("exchange_rates")
    if cache is None:
        cache = ExchangeRateCache(
            httpx_fetcher(current_app.config["EXCHANGE_RATE_URL"]),
            ttl_seconds=current_app.config["EXCHANGE_RATE_TTL_SECONDS"],
        )
        current_app.extensions["exchange_rates"] = cache
    return cache


def display_amount(amount_cents: int, currency: str) -> dict:
    currency = (currency or "").upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise ValidationError(f"Unsupported currency: {currency}")
    rate = get_rate_cache().rates()[currency]
    return {
        "currency": currency,
        "rate": rate,
        "base_amount_cents": amount_cents,
        "amount_cents": convert_from_base(amount_cents, rate),
    }
