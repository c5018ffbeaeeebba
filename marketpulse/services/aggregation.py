from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Mapping

from marketpulse.entities.market_record import DailyRecord, PeriodRecord


def week_start(day: date) -> date:
    """Sunday on or before ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def month_start(day: date) -> date:
    return day.replace(day=1)


def _ordered(daily: Mapping[str, DailyRecord] | Iterable[DailyRecord]) -> list[DailyRecord]:
    records = daily.values() if isinstance(daily, Mapping) else daily
    return sorted(records, key=lambda record: record.date)


def _rollup(period: str, key: str, days: list[DailyRecord]) -> PeriodRecord:
    first, last = days[0], days[-1]
    volume = sum(day.volume for day in days)
    volatilities = [day.volatility or 0.0 for day in days]
    open_price = first.open
    return PeriodRecord(
        period=period,
        period_start=key,
        instrument_id=first.instrument_id,
        open=open_price,
        high=max(day.high for day in days),
        low=min(day.low for day in days),
        close=last.close,
        volume=volume,
        volatility=sum(volatilities) / len(days),
        liquidity=sum(day.liquidity or 0.0 for day in days) / len(days),
        performance=(last.close - open_price) / open_price * 100 if open_price else 0.0,
        min_volatility=min(volatilities),
        max_volatility=max(volatilities),
        avg_volume=volume / len(days),
        trading_days=len(days),
        change=last.close - open_price,
        days=days,
    )


def _group(daily: Mapping[str, DailyRecord] | Iterable[DailyRecord], key_of) -> dict[str, list[DailyRecord]]:
    groups: dict[str, list[DailyRecord]] = {}
    for record in _ordered(daily):
        key = key_of(date.fromisoformat(record.date)).isoformat()
        groups.setdefault(key, []).append(record)
    return groups


def aggregate_to_weekly(daily: Mapping[str, DailyRecord] | Iterable[DailyRecord]) -> dict[str, PeriodRecord]:
    return {key: _rollup("week", key, days) for key, days in _group(daily, week_start).items()}


def aggregate_to_monthly(daily: Mapping[str, DailyRecord] | Iterable[DailyRecord]) -> dict[str, PeriodRecord]:
    months: dict[str, PeriodRecord] = {}
    for key, days in _group(daily, month_start).items():
        month = _rollup("month", key, days)
        month.weeks = aggregate_to_weekly(days)
        months[key] = month
    return months
