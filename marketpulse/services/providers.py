"""History providers and the fallback chain that combines them.

Each provider fetches real daily records for one asset class and reports
failure through ``ProviderResult.error`` or by raising. The chain tries
providers in order and always finishes with the synthetic generator, so a
caller gets a record for every requested day whatever happens upstream.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Protocol, Sequence

from marketpulse.entities.market_record import DailyRecord
from marketpulse.instruments import FOREX, AssetType, base_symbol, coingecko_id_for
from marketpulse.services.clients import (
    OKX_MAX_CANDLES,
    CoinGeckoRestClient,
    ExchangeRateClient,
    OkxRestClient,
)
from marketpulse.services.synthetic import SyntheticSeriesGenerator

logger = logging.getLogger(__name__)


class UnsupportedSymbolError(ValueError):
    """The provider does not know how to fetch this instrument."""


@dataclass(frozen=True)
class ProviderResult:
    records: dict[str, DailyRecord] = field(default_factory=dict)
    error: str | None = None


class HistoryProvider(Protocol):
    name: str

    def fetch(self, instrument_id: str, start: date, end: date) -> ProviderResult: ...


def _utc_day(ts_ms: float) -> date:
    return datetime.fromtimestamp(float(ts_ms) / 1000, tz=timezone.utc).date()


def _end_of_day_ms(day: date) -> int:
    moment = datetime.combine(day + timedelta(days=1), datetime.min.time(), tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


class OkxCandleProvider:
    name = "okx"

    def __init__(self, client: OkxRestClient | None = None):
        self.client = client or OkxRestClient()

    def fetch(self, instrument_id: str, start: date, end: date) -> ProviderResult:
        symbol = base_symbol(instrument_id)
        if coingecko_id_for(symbol) is None:
            raise UnsupportedSymbolError(f"Cryptocurrency symbol {symbol} not supported")

        days = (end - start).days + 1
        rows = self.client.candles(
            f"{symbol}-USDT",
            "1D",
            after_ms=_end_of_day_ms(end),
            limit=min(days, OKX_MAX_CANDLES),
        )

        records: dict[str, DailyRecord] = {}
        for row in rows:
            if not isinstance(row, (list, tuple)) or len(row) < 6:
                continue
            day = _utc_day(row[0])
            if not start <= day <= end:
                continue
            o, h, l, c, vol = (float(value) for value in row[1:6])
            records[day.isoformat()] = DailyRecord(
                date=day.isoformat(),
                instrument_id=instrument_id,
                open=o,
                high=h,
                low=l,
                close=c,
                volume=vol,
                performance=(c - o) / o * 100 if o else 0.0,
                volatility=(h - l) / l * 100 if l else 0.0,
                liquidity=vol / 1_000_000,
                is_market_open=True,
                data_source=self.name,
            )
        return ProviderResult(records=records)


class CoinGeckoProvider:
    name = "coingecko"

    def __init__(self, client: CoinGeckoRestClient | None = None, today=None):
        self.client = client or CoinGeckoRestClient()
        self._today = today or (lambda: datetime.now(timezone.utc).date())

    def fetch(self, instrument_id: str, start: date, end: date) -> ProviderResult:
        coin_id = coingecko_id_for(instrument_id)
        if coin_id is None:
            raise UnsupportedSymbolError(f"Cryptocurrency symbol {base_symbol(instrument_id)} not supported")

        # market_chart counts back from now; one extra day seeds the first change
        lookback = max((self._today() - start).days + 2, 1)
        payload = self.client.market_chart(coin_id, lookback)
        prices: list[Any] = payload.get("prices") or []
        volumes: list[Any] = payload.get("total_volumes") or []

        records: dict[str, DailyRecord] = {}
        for index, point in enumerate(prices):
            ts, price = point[0], float(point[1])
            volume = float(volumes[index][1]) if index < len(volumes) else 0.0
            previous = float(prices[index - 1][1]) if index > 0 else 0.0
            change = (price - previous) / previous * 100 if previous else 0.0

            day = _utc_day(ts)
            if not start <= day <= end:
                continue
            volatility = abs(change)
            records[day.isoformat()] = DailyRecord(
                date=day.isoformat(),
                instrument_id=instrument_id,
                open=price * (1 - change / 100),
                high=price * (1 + volatility / 200),
                low=price * (1 - volatility / 200),
                close=price,
                volume=volume,
                performance=change,
                volatility=volatility,
                liquidity=volume / 10_000_000,
                is_market_open=True,
                data_source=self.name,
            )
        return ProviderResult(records=records)


class ExchangeRateProvider:
    """Live spot rate as the anchor of a synthetic forex series."""

    name = "exchange-rates-api"

    def __init__(
        self,
        client: ExchangeRateClient | None = None,
        generator: SyntheticSeriesGenerator | None = None,
    ):
        self.client = client or ExchangeRateClient()
        self.generator = generator or SyntheticSeriesGenerator()

    def fetch(self, instrument_id: str, start: date, end: date) -> ProviderResult:
        pair = FOREX.get(base_symbol(instrument_id))
        if pair is None:
            raise UnsupportedSymbolError(f"Forex symbol {instrument_id} not supported")

        rate = self.client.rate(pair["base"], pair["quote"])
        records = self.generator.generate(
            instrument_id,
            start,
            end,
            asset_type=AssetType.FOREX,
            base_price=rate,
            data_source=self.name,
        )
        return ProviderResult(records=records)


class SyntheticProvider:
    name = "synthetic"

    def __init__(self, generator: SyntheticSeriesGenerator | None = None):
        self.generator = generator or SyntheticSeriesGenerator()

    def fetch(
        self,
        instrument_id: str,
        start: date,
        end: date,
        *,
        error: str | None = None,
    ) -> ProviderResult:
        return ProviderResult(
            records=self.generator.generate(instrument_id, start, end, error=error),
            error=error,
        )


def resolve_history(
    providers: Sequence[HistoryProvider],
    fallback: SyntheticProvider,
    instrument_id: str,
    start: date,
    end: date,
) -> ProviderResult:
    """Run ``providers`` in order, then fill any missing days synthetically.

    A provider counts as sufficient once the best result so far covers at
    least half of the requested days.
    """
    expected = (end - start).days + 1
    required = max(1, math.ceil(expected / 2))
    best: dict[str, DailyRecord] = {}
    last_error: str | None = None

    for provider in providers:
        try:
            result = provider.fetch(instrument_id, start, end)
        except Exception as exc:
            last_error = f"{provider.name}: {exc}"
            logger.warning("provider %s failed for %s: %s", provider.name, instrument_id, exc)
            continue

        if result.error:
            last_error = f"{provider.name}: {result.error}"
            logger.warning("provider %s reported error for %s: %s", provider.name, instrument_id, result.error)
        if len(result.records) > len(best):
            best = result.records
        if len(best) >= required:
            break
        logger.info(
            "provider %s returned %d/%d days for %s",
            provider.name,
            len(result.records),
            expected,
            instrument_id,
        )

    if len(best) >= required:
        last_error = None
    elif providers:
        logger.warning(
            "no provider covered %s %s..%s, synthesizing (last error: %s)",
            instrument_id,
            start,
            end,
            last_error,
        )
    else:
        logger.debug("no real-data provider for %s, synthesizing", instrument_id)

    if len(best) == expected:
        return ProviderResult(records=dict(sorted(best.items())))

    filler = fallback.fetch(instrument_id, start, end, error=last_error).records
    merged = {**filler, **best}
    return ProviderResult(records=dict(sorted(merged.items())), error=last_error)


__all__ = [
    "CoinGeckoProvider",
    "ExchangeRateProvider",
    "HistoryProvider",
    "OkxCandleProvider",
    "ProviderResult",
    "SyntheticProvider",
    "UnsupportedSymbolError",
    "resolve_history",
]
