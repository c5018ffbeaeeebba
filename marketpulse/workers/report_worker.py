from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Annotated, Any

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from marketpulse.config.runtime import RuntimeSettings
from marketpulse.indicators import calculate_all_indicators, calculate_benchmark_comparison
from marketpulse.instruments import detect_asset_type, get_all_instruments
from marketpulse.services.history import DateRange, HistoricalDataService, parse_day
from marketpulse.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 90

app = FastAPI(title="MarketPulse Report Worker")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SETTINGS = RuntimeSettings.from_env()
_SERVICE: HistoricalDataService | None = None


def get_history_service() -> HistoricalDataService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = HistoricalDataService(SETTINGS)
    return _SERVICE


HistoryService = Annotated[HistoricalDataService, Depends(get_history_service)]


class DataSourceBody(BaseModel):
    use_real_data: bool


def _day_or_400(value: str | None, default: date) -> date:
    if value is None:
        return default
    try:
        return parse_day(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _range_or_400(start: str | None, end: str | None, today: date) -> DateRange:
    last = _day_or_400(end, today)
    first = _day_or_400(start, last - timedelta(days=DEFAULT_WINDOW_DAYS - 1))
    try:
        return DateRange(first, last)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _not_found(kind: str, instrument_id: str, day: date) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"No {kind} data for {instrument_id} on {day.isoformat()}",
    )


@app.get("/healthz")
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/instruments")
def get_instruments(asset_type: Annotated[str | None, Query()] = None) -> list[dict[str, Any]]:
    instruments = get_all_instruments()
    if asset_type:
        instruments = [inst for inst in instruments if inst.asset_type.value == asset_type.lower()]
    return [inst.to_dict() for inst in instruments]


@app.get("/instruments/{symbol}/asset-type")
def get_asset_type(symbol: str) -> dict[str, str]:
    return {"symbol": symbol, "assetType": detect_asset_type(symbol).value}


@app.get("/history/{instrument_id}")
async def get_history(
    instrument_id: str,
    service: HistoryService,
    start: Annotated[str | None, Query()] = None,
    end: Annotated[str | None, Query()] = None,
    real: Annotated[bool | None, Query()] = None,
) -> dict[str, Any]:
    date_range = _range_or_400(start, end, service.today())
    records = await service.get_historical_data(instrument_id, date_range, use_real_data=real)
    return {
        "instrument": instrument_id,
        "start": date_range.start.isoformat(),
        "end": date_range.end.isoformat(),
        "records": [record.to_dict() for record in records.values()],
    }


@app.get("/quote/{instrument_id}")
async def get_quote(
    instrument_id: str,
    service: HistoryService,
    real: Annotated[bool | None, Query()] = None,
) -> dict[str, Any]:
    quote = await service.get_quote(instrument_id, use_real_data=real)
    return quote.to_dict()


@app.get("/daily/{instrument_id}")
async def get_daily(
    instrument_id: str,
    service: HistoryService,
    date: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    day = _day_or_400(date, service.today())
    record = await service.get_daily_data(day, instrument_id)
    if record is None:
        raise _not_found("daily", instrument_id, day)
    return record.to_dict()


@app.get("/daily/{instrument_id}/detailed")
async def get_daily_detailed(
    instrument_id: str,
    service: HistoryService,
    date: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    day = _day_or_400(date, service.today())
    detailed = await service.get_detailed_day_data(day, instrument_id)
    if detailed is None:
        raise _not_found("daily", instrument_id, day)
    return detailed.to_dict()


@app.get("/weekly/{instrument_id}")
async def get_weekly(
    instrument_id: str,
    service: HistoryService,
    date: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    day = _day_or_400(date, service.today())
    week = await service.get_weekly_data(day, instrument_id)
    if week is None:
        raise _not_found("weekly", instrument_id, day)
    return week.to_dict()


@app.get("/monthly/{instrument_id}")
async def get_monthly(
    instrument_id: str,
    service: HistoryService,
    date: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    day = _day_or_400(date, service.today())
    month = await service.get_monthly_data(day, instrument_id)
    if month is None:
        raise _not_found("monthly", instrument_id, day)
    return month.to_dict()


@app.get("/chart/{instrument_id}")
async def get_chart(
    instrument_id: str,
    service: HistoryService,
    start: Annotated[str | None, Query()] = None,
) -> list[dict[str, Any]]:
    today = service.today()
    first = _day_or_400(start, today - timedelta(days=DEFAULT_WINDOW_DAYS - 1))
    series = await service.get_chart_series(first, instrument_id)
    return [record.to_dict() for record in series]


@app.get("/indicators/{instrument_id}")
async def get_indicators(
    instrument_id: str,
    service: HistoryService,
    start: Annotated[str | None, Query()] = None,
    end: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    date_range = _range_or_400(start, end, service.today())
    records = await service.get_historical_data(instrument_id, date_range)
    return {
        "instrument": instrument_id,
        "indicators": calculate_all_indicators(list(records.values())),
    }


@app.get("/compare/{instrument_id}")
async def get_comparison(
    instrument_id: str,
    service: HistoryService,
    benchmark: Annotated[str, Query()] = "SPX",
    start: Annotated[str | None, Query()] = None,
    end: Annotated[str | None, Query()] = None,
) -> dict[str, Any]:
    date_range = _range_or_400(start, end, service.today())
    asset = list((await service.get_historical_data(instrument_id, date_range)).values())
    reference = list((await service.get_historical_data(benchmark, date_range)).values())

    comparison = calculate_benchmark_comparison(
        _period_summary(asset),
        _period_summary(reference),
        asset,
        reference,
    )
    return {
        "instrument": instrument_id,
        "benchmark": benchmark,
        "comparison": comparison.to_dict() if comparison else None,
    }


def _period_summary(records: list[Any]) -> dict[str, float] | None:
    if not records:
        return None
    first, last = records[0], records[-1]
    performance = (last.close - first.open) / first.open * 100 if first.open else 0.0
    volatility = sum(record.volatility or 0.0 for record in records) / len(records)
    return {"performance": performance, "volatility": volatility}


@app.post("/data-source")
def set_data_source(body: DataSourceBody, service: HistoryService) -> dict[str, bool]:
    service.toggle_data_source(body.use_real_data)
    return {"use_real_data": service.settings.use_real_data}


def main() -> None:
    setup_logging(SETTINGS.log_level)
    logger.info("marketpulse report worker bootstrap")
    uvicorn.run(app, host=SETTINGS.report_host, port=SETTINGS.report_port)


if __name__ == "__main__":
    main()
