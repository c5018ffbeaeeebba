from marketpulse.entities.live import OrderbookLevel, OrderbookRecord, TickerRecord
from marketpulse.entities.market_record import (
    DailyRecord,
    DetailedDayRecord,
    IntradayPoint,
    PeriodRecord,
    Quote,
    TechnicalSnapshot,
)

__all__ = [
    "DailyRecord",
    "DetailedDayRecord",
    "IntradayPoint",
    "PeriodRecord",
    "Quote",
    "TechnicalSnapshot",
    "TickerRecord",
    "OrderbookLevel",
    "OrderbookRecord",
]
