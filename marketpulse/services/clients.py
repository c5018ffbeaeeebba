from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests

_OKX_API = "https://www.okx.com/api/v5"
_COINGECKO_API = "https://api.coingecko.com/api/v3"
_EXCHANGE_RATE_API = "https://api.exchangerate-api.com/v4"

OKX_MAX_CANDLES = 300


@dataclass
class OkxRestClient:
    base_url: str = _OKX_API
    timeout_seconds: float = 8.0

    def candles(
        self,
        inst_id: str,
        bar: str = "1D",
        *,
        after_ms: int | None = None,
        before_ms: int | None = None,
        limit: int | None = None,
    ) -> list[list[Any]]:
        """Candle rows ``[ts, o, h, l, c, vol, ...]``, newest first."""
        params: dict[str, Any] = {"instId": inst_id, "bar": bar}
        if after_ms is not None:
            params["after"] = int(after_ms)
        if before_ms is not None:
            params["before"] = int(before_ms)
        if limit is not None:
            params["limit"] = min(int(limit), OKX_MAX_CANDLES)

        response = requests.get(
            f"{self.base_url}/market/candles",
            params=params,
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        if str(payload.get("code", "0")) != "0":
            raise ValueError(f"OKX error {payload.get('code')}: {payload.get('msg')}")
        rows = payload.get("data")
        return rows if isinstance(rows, list) else []


@dataclass
class CoinGeckoRestClient:
    base_url: str = _COINGECKO_API
    timeout_seconds: float = 8.0

    def market_chart(self, coin_id: str, days: int, vs_currency: str = "usd") -> dict[str, Any]:
        response = requests.get(
            f"{self.base_url}/coins/{coin_id}/market_chart",
            params={"vs_currency": vs_currency, "days": int(days), "interval": "daily"},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        return payload if isinstance(payload, dict) else {}

    def simple_price(self, coin_id: str, vs_currency: str = "usd") -> dict[str, Any]:
        """Spot entry for ``coin_id``: price, market cap, 24h volume and 24h change."""
        response = requests.get(
            f"{self.base_url}/simple/price",
            params={
                "ids": coin_id,
                "vs_currencies": vs_currency,
                "include_market_cap": "true",
                "include_24hr_vol": "true",
                "include_24hr_change": "true",
            },
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        entry = payload.get(coin_id) if isinstance(payload, dict) else None
        if not isinstance(entry, dict) or entry.get(vs_currency) is None:
            raise ValueError(f"no {vs_currency} price for {coin_id} in CoinGecko payload")
        return entry


@dataclass
class ExchangeRateClient:
    base_url: str = _EXCHANGE_RATE_API
    timeout_seconds: float = 8.0

    def latest(self, base: str) -> dict[str, Any]:
        response = requests.get(
            f"{self.base_url}/latest/{base.upper()}",
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        return payload if isinstance(payload, dict) else {}

    def rate(self, base: str, quote: str) -> float:
        rates = self.latest(base).get("rates") or {}
        if quote.upper() not in rates:
            raise ValueError(f"no {base}/{quote} rate in exchange-rate payload")
        return float(rates[quote.upper()])
