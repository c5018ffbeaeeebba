from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Sequence

from marketpulse.config.runtime import RuntimeSettings
from marketpulse.entities.market_record import DailyRecord, DetailedDayRecord, PeriodRecord, Quote, TechnicalSnapshot
from marketpulse.indicators import rsi, sma
from marketpulse.instruments import AssetType, Instrument, base_symbol, coingecko_id_for, detect_asset_type
from marketpulse.services.aggregation import aggregate_to_monthly, aggregate_to_weekly, month_start, week_start
from marketpulse.services.clients import CoinGeckoRestClient, ExchangeRateClient, OkxRestClient
from marketpulse.services.providers import (
    CoinGeckoProvider,
    ExchangeRateProvider,
    HistoryProvider,
    OkxCandleProvider,
    SyntheticProvider,
    resolve_history,
)
from marketpulse.services.synthetic import SyntheticSeriesGenerator, generate_intraday, is_market_open

logger = logging.getLogger(__name__)

AROUND_DAYS = 45
DAILY_CONTEXT_DAYS = 30


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def parse_day(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Unsupported date value: {value!r}")


def instrument_id_of(instrument: Any) -> str:
    if isinstance(instrument, Instrument):
        return instrument.id
    if isinstance(instrument, Mapping):
        instrument = instrument.get("id")
    value = str(instrument or "").strip()
    if not value:
        raise ValueError("instrument id is required")
    return value


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"date range start {self.start} is after end {self.end}")

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @classmethod
    def around(cls, day: date, today: date, days: int = AROUND_DAYS) -> "DateRange":
        end = min(day + timedelta(days=days), today)
        start = min(day - timedelta(days=days), end)
        return cls(start=start, end=end)


class HistoricalDataService:
    """Daily history per instrument with weekly and monthly rollups.

    Real data comes from the per-asset-class provider chain; any day the
    chain cannot cover is synthesized, so every request yields a complete
    series.
    """

    def __init__(
        self,
        settings: RuntimeSettings | None = None,
        *,
        okx_client: OkxRestClient | None = None,
        coingecko_client: CoinGeckoRestClient | None = None,
        exchange_rate_client: ExchangeRateClient | None = None,
        providers: Mapping[AssetType, Sequence[HistoryProvider]] | None = None,
        rng: random.Random | None = None,
        today: Callable[[], date] | None = None,
    ):
        self.settings = settings or RuntimeSettings.from_env()
        self.rng = rng or random.Random()
        self._today = today or _utc_today
        self.generator = SyntheticSeriesGenerator(self.rng)
        self.synthetic = SyntheticProvider(self.generator)

        timeout = self.settings.http_timeout_seconds
        self.coingecko = coingecko_client or CoinGeckoRestClient(
            base_url=self.settings.coingecko_base_url, timeout_seconds=timeout
        )
        if providers is None:
            okx = okx_client or OkxRestClient(base_url=self.settings.okx_base_url, timeout_seconds=timeout)
            fx = exchange_rate_client or ExchangeRateClient(
                base_url=self.settings.exchange_rate_base_url, timeout_seconds=timeout
            )
            providers = {
                AssetType.CRYPTO: (OkxCandleProvider(okx), CoinGeckoProvider(self.coingecko, today=self._today)),
                AssetType.FOREX: (ExchangeRateProvider(fx, self.generator),),
            }
        self.providers: dict[AssetType, tuple[HistoryProvider, ...]] = {
            kind: tuple(chain) for kind, chain in providers.items()
        }

    def today(self) -> date:
        return self._today()

    def toggle_data_source(self, use_real: bool) -> None:
        self.settings = replace(self.settings, use_real_data=bool(use_real))
        logger.info("data source switched to %s", "real providers" if use_real else "synthetic data")

    async def get_historical_data(
        self,
        instrument: Any,
        date_range: DateRange | date | str,
        *,
        use_real_data: bool | None = None,
    ) -> dict[str, DailyRecord]:
        instrument_id = instrument_id_of(instrument)
        if not isinstance(date_range, DateRange):
            date_range = DateRange.around(parse_day(date_range), today=self._today())
        use_real = self.settings.use_real_data if use_real_data is None else use_real_data
        asset_type = detect_asset_type(base_symbol(instrument_id))

        if use_real:
            chain = self.providers.get(asset_type, ())
            result = await asyncio.to_thread(
                resolve_history,
                chain,
                self.synthetic,
                instrument_id,
                date_range.start,
                date_range.end,
            )
            records = result.records
        else:
            records = self.generator.generate(instrument_id, date_range.start, date_range.end, asset_type=asset_type)

        logger.debug(
            "history %s %s..%s real=%s days=%d",
            instrument_id,
            date_range.start,
            date_range.end,
            use_real,
            len(records),
        )
        return backfill(records, asset_type)

    async def get_quote(self, instrument: Any, *, use_real_data: bool | None = None) -> Quote:
        """Current price snapshot; falls back to the latest synthetic close."""
        instrument_id = instrument_id_of(instrument)
        use_real = self.settings.use_real_data if use_real_data is None else use_real_data
        asset_type = detect_asset_type(base_symbol(instrument_id))
        today = self._today()
        error: str | None = None

        if use_real and asset_type is AssetType.CRYPTO:
            coin_id = coingecko_id_for(instrument_id)
            if coin_id is None:
                error = f"Cryptocurrency symbol {base_symbol(instrument_id)} not supported"
            else:
                try:
                    entry = await asyncio.to_thread(self.coingecko.simple_price, coin_id)
                    return Quote(
                        instrument_id=instrument_id,
                        as_of=today.isoformat(),
                        price=float(entry["usd"]),
                        change24h=float(entry.get("usd_24h_change") or 0.0),
                        volume24h=float(entry.get("usd_24h_vol") or 0.0),
                        market_cap=float(entry["usd_market_cap"]) if entry.get("usd_market_cap") else None,
                        data_source="coingecko",
                    )
                except Exception as exc:
                    error = f"coingecko: {exc}"
            logger.warning("quote for %s falls back to synthetic data: %s", instrument_id, error)

        latest = self.generator.generate(
            instrument_id, today, today, asset_type=asset_type, error=error
        )[today.isoformat()]
        return Quote(
            instrument_id=instrument_id,
            as_of=latest.date,
            price=latest.close,
            change24h=latest.performance or 0.0,
            volume24h=latest.volume,
            data_source=latest.data_source,
            error=error,
        )

    async def get_daily_data(self, day: Any, instrument: Any) -> DailyRecord | None:
        target = parse_day(day)
        if target > self._today():
            return None
        window = DateRange(target - timedelta(days=DAILY_CONTEXT_DAYS), target)
        records = await self.get_historical_data(instrument, window)
        return records.get(target.isoformat())

    async def get_detailed_day_data(self, day: Any, instrument: Any) -> DetailedDayRecord | None:
        record = await self.get_daily_data(day, instrument)
        if record is None:
            return None
        volatility = record.volatility or 0.0
        if not record.intraday:
            record = replace(
                record,
                intraday=generate_intraday(record.open, record.close, volatility, self.rng),
            )
        return DetailedDayRecord(
            day=record,
            volatility_breakdown={
                "morning": volatility * 0.8,
                "midday": volatility,
                "afternoon": volatility * 1.2,
            },
        )

    async def get_weekly_data(self, day: Any, instrument: Any) -> PeriodRecord | None:
        start = week_start(parse_day(day))
        return await self._period(aggregate_to_weekly, start, start + timedelta(days=6), instrument)

    async def get_monthly_data(self, day: Any, instrument: Any) -> PeriodRecord | None:
        start = month_start(parse_day(day))
        next_month = (start + timedelta(days=32)).replace(day=1)
        return await self._period(aggregate_to_monthly, start, next_month - timedelta(days=1), instrument)

    async def get_chart_series(self, start: Any, instrument: Any) -> list[DailyRecord]:
        first = parse_day(start)
        today = self._today()
        if first > today:
            return []
        records = await self.get_historical_data(instrument, DateRange(first, today))
        return [records[key] for key in sorted(records)]

    async def _period(self, aggregate, start: date, end: date, instrument: Any) -> PeriodRecord | None:
        today = self._today()
        if start > today:
            return None
        records = await self.get_historical_data(instrument, DateRange(start, min(end, today)))
        return aggregate(records).get(start.isoformat())


def backfill(records: Mapping[str, DailyRecord], asset_type: AssetType) -> dict[str, DailyRecord]:
    """Fill optional derived fields from the OHLCV values already present."""
    ordered = [records[key] for key in sorted(records)]
    filled: dict[str, DailyRecord] = {}
    for index, record in enumerate(ordered):
        changes: dict[str, Any] = {}
        if record.performance is None:
            changes["performance"] = (record.close - record.open) / record.open * 100 if record.open else 0.0
        if record.volatility is None:
            changes["volatility"] = (record.high - record.low) / record.low * 100 if record.low else 0.0
        if record.liquidity is None:
            changes["liquidity"] = record.volume / 1_000_000
        if record.is_market_open is None:
            changes["is_market_open"] = is_market_open(date.fromisoformat(record.date), asset_type)
        if record.technical_indicators is None:
            history = ordered[: index + 1]
            sma5, sma20 = sma(history, 5), sma(history, 20)
            rsi14 = rsi(history[-15:], 14)
            changes["technical_indicators"] = TechnicalSnapshot(
                sma5=sma5 if sma5 is not None else record.close,
                sma20=sma20 if sma20 is not None else record.close,
                rsi=rsi14 if rsi14 is not None else 50.0,
            )
        filled[record.date] = replace(record, **changes) if changes else record
    return filled
