"""Plausible OHLCV series for instruments without a usable upstream."""
from __future__ import annotations

import random
from datetime import date, timedelta
from typing import Iterator

from marketpulse.entities.market_record import DailyRecord, IntradayPoint
from marketpulse.instruments import AssetType, base_price_for, base_symbol, detect_asset_type

DAILY_VOLATILITY: dict[AssetType, float] = {
    AssetType.CRYPTO: 0.05,
    AssetType.STOCK: 0.02,
    AssetType.FOREX: 0.01,
    AssetType.COMMODITY: 0.03,
    AssetType.INDEX: 0.015,
}

# Monday and Friday
_BUSY_WEEKDAYS = (0, 4)
_BUSY_DAY_MULTIPLIER = 1.3
_WEEKEND_VOLUME_FACTOR = 0.3
_BASE_VOLUME = 1_000_000.0
INTRADAY_HOURS = 8


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def is_market_open(day: date, asset_type: AssetType) -> bool:
    return asset_type is AssetType.CRYPTO or day.weekday() < 5


def generate_intraday(
    open_price: float,
    close_price: float,
    volatility: float,
    rng: random.Random,
    hours: int = INTRADAY_HOURS,
) -> tuple[IntradayPoint, ...]:
    """Hourly path drifting linearly from open to close with volatility-scaled noise."""
    step = (close_price - open_price) / hours
    points = []
    for hour in range(hours):
        expected = open_price + step * hour
        noise = (rng.random() - 0.5) * 2 * expected * (volatility / 100) / hours
        points.append(
            IntradayPoint(
                hour=hour,
                price=max(expected + noise, expected * 0.5),
                volume=1_000 + rng.random() * 5_000,
            )
        )
    return tuple(points)


class SyntheticSeriesGenerator:
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def generate(
        self,
        instrument_id: str,
        start: date,
        end: date,
        *,
        asset_type: AssetType | None = None,
        base_price: float | None = None,
        data_source: str = "synthetic",
        error: str | None = None,
    ) -> dict[str, DailyRecord]:
        kind = asset_type or detect_asset_type(base_symbol(instrument_id))
        anchor = float(base_price) if base_price else base_price_for(instrument_id, kind)
        volatility = DAILY_VOLATILITY[kind]
        rng = self.rng

        records: dict[str, DailyRecord] = {}
        previous_close = anchor
        for day in iter_days(start, end):
            day_volatility = volatility * (
                _BUSY_DAY_MULTIPLIER if day.weekday() in _BUSY_WEEKDAYS else 1.0
            )

            open_price = previous_close * (1 + rng.gauss(0.0, day_volatility * 0.1))
            move = (rng.random() - 0.5) * 2 * day_volatility
            close_price = max(open_price * (1 + move), anchor * 0.1)
            band = abs(move) / 2 + rng.random() * day_volatility * 0.25
            high = max(open_price, close_price) * (1 + band)
            low = min(open_price, close_price) * (1 - band)

            volume = _BASE_VOLUME * (0.5 + rng.random()) * (1 + abs(move) / day_volatility)
            if kind is not AssetType.CRYPTO and day.weekday() >= 5:
                volume *= _WEEKEND_VOLUME_FACTOR

            range_pct = (high - low) / low * 100
            records[day.isoformat()] = DailyRecord(
                date=day.isoformat(),
                instrument_id=instrument_id,
                open=open_price,
                high=high,
                low=low,
                close=close_price,
                volume=volume,
                volatility=range_pct,
                performance=(close_price - open_price) / open_price * 100,
                liquidity=volume / 1_000_000,
                is_market_open=is_market_open(day, kind),
                data_source=data_source,
                intraday=generate_intraday(open_price, close_price, range_pct, rng),
                error=error,
            )
            previous_close = close_price

        return records
