from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class IntradayPoint:
    hour: int
    price: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return {"hour": self.hour, "price": self.price, "volume": self.volume}


@dataclass(frozen=True)
class TechnicalSnapshot:
    sma5: float | None
    sma20: float | None
    rsi: float | None

    def to_dict(self) -> dict[str, Any]:
        return {"sma5": self.sma5, "sma20": self.sma20, "rsi": self.rsi}


@dataclass(frozen=True)
class DailyRecord:
    """Canonical OHLCV record for one instrument on one calendar day.

    ``date`` is the ISO day string and the unique key within a series.
    Optional derived fields may arrive as ``None`` from a provider; the
    historical service backfills them before handing records out.
    """

    date: str
    instrument_id: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    volatility: float | None = None
    performance: float | None = None
    liquidity: float | None = None
    is_market_open: bool | None = None
    data_source: str = "unknown"
    technical_indicators: TechnicalSnapshot | None = None
    intraday: tuple[IntradayPoint, ...] = ()
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "date": self.date,
            "instrument": {"id": self.instrument_id},
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "volatility": self.volatility,
            "performance": self.performance,
            "liquidity": self.liquidity,
            "isMarketOpen": self.is_market_open,
            "dataSource": self.data_source,
            "technicalIndicators": (
                self.technical_indicators.to_dict() if self.technical_indicators else None
            ),
            "intraday": [point.to_dict() for point in self.intraday],
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class PeriodRecord:
    """Weekly or monthly rollup of the daily records sharing a period key."""

    period: str  # "week" | "month"
    period_start: str
    instrument_id: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    volatility: float
    liquidity: float
    performance: float
    min_volatility: float = 0.0
    max_volatility: float = 0.0
    avg_volume: float = 0.0
    trading_days: int = 0
    change: float = 0.0
    days: list[DailyRecord] = field(default_factory=list)
    weeks: dict[str, "PeriodRecord"] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        key = "weekStart" if self.period == "week" else "monthStart"
        payload: dict[str, Any] = {
            key: self.period_start,
            "instrument": {"id": self.instrument_id},
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "volatility": self.volatility,
            "liquidity": self.liquidity,
            "performance": self.performance,
            "minVolatility": self.min_volatility,
            "maxVolatility": self.max_volatility,
            "avgVolume": self.avg_volume,
            "tradingDays": self.trading_days,
            "change": self.change,
            "days": [day.to_dict() for day in self.days],
        }
        if self.period == "month":
            payload["weeks"] = {k: w.to_dict() for k, w in self.weeks.items()}
        return payload


@dataclass(frozen=True)
class DetailedDayRecord:
    day: DailyRecord
    volatility_breakdown: dict[str, float]

    def to_dict(self) -> dict[str, Any]:
        payload = self.day.to_dict()
        payload["volatilityBreakdown"] = dict(self.volatility_breakdown)
        payload["volumeByHour"] = [
            {"hour": point.hour, "volume": point.volume} for point in self.day.intraday
        ]
        return payload


@dataclass(frozen=True)
class Quote:
    """Current price snapshot for one instrument."""

    instrument_id: str
    as_of: str
    price: float
    change24h: float
    volume24h: float
    market_cap: float | None = None
    data_source: str = "unknown"
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "instrument": {"id": self.instrument_id},
            "asOf": self.as_of,
            "currentPrice": self.price,
            "change24h": self.change24h,
            "volume24h": self.volume24h,
            "marketCap": self.market_cap,
            "dataSource": self.data_source,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload
