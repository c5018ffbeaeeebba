from __future__ import annotations

from enum import StrEnum
from typing import Any, Callable, Union

from marketpulse.entities.live import OrderbookRecord, TickerRecord


class Exchange(StrEnum):
    BINANCE = "binance"
    COINBASE = "coinbase"
    OKX = "okx"
    DEMO = "demo"

    @classmethod
    def parse(cls, value: Any) -> "Exchange":
        key = str(value or "").strip().lower()
        try:
            exchange = cls(key)
        except ValueError:
            exchange = None
        if exchange is None or exchange is cls.DEMO:
            allowed = ", ".join(e.value for e in LIVE_EXCHANGES)
            raise ValueError(f"Unknown exchange '{key}'. Allowed exchanges: {allowed}")
        return exchange


LIVE_EXCHANGES: tuple[Exchange, ...] = (Exchange.BINANCE, Exchange.COINBASE, Exchange.OKX)


class Channel(StrEnum):
    TICKER = "ticker"
    ORDERBOOK = "orderbook"


LiveRecord = Union[TickerRecord, OrderbookRecord]
RecordCallback = Callable[[LiveRecord], Any]

ORDERBOOK_DEPTH = 10


def subscription_key(exchange: Exchange, channel: Channel, symbol: str) -> str:
    return f"{exchange.value}_{channel.value}_{symbol}"
