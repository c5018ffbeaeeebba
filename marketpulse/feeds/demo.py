"""Synthetic live records used while a key has no working transport."""
from __future__ import annotations

import random

from marketpulse.entities.live import OrderbookLevel, OrderbookRecord, TickerRecord
from marketpulse.feeds.contracts import ORDERBOOK_DEPTH, Channel, Exchange, LiveRecord
from marketpulse.feeds.normalizers import now_ms

_LEVEL_SPREAD = 0.01


def demo_ticker(symbol: str, base_price: float, rng: random.Random | None = None) -> TickerRecord:
    rng = rng or random.Random()
    change = (rng.random() - 0.5) * 10
    price = base_price * (1 + change / 100)
    return TickerRecord(
        exchange=Exchange.DEMO.value,
        symbol=symbol,
        price=price,
        change24h=change,
        volume24h=rng.random() * 1_000_000,
        high24h=price * 1.05,
        low24h=price * 0.95,
        timestamp=now_ms(),
    )


def demo_orderbook(symbol: str, base_price: float, rng: random.Random | None = None) -> OrderbookRecord:
    rng = rng or random.Random()
    bids = tuple(
        OrderbookLevel(price=base_price * (1 - (i + 1) * _LEVEL_SPREAD), quantity=rng.random() * 5 + 1)
        for i in range(ORDERBOOK_DEPTH)
    )
    asks = tuple(
        OrderbookLevel(price=base_price * (1 + (i + 1) * _LEVEL_SPREAD), quantity=rng.random() * 5 + 1)
        for i in range(ORDERBOOK_DEPTH)
    )
    return OrderbookRecord(
        exchange=Exchange.DEMO.value,
        symbol=symbol,
        timestamp=now_ms(),
        bids=bids,
        asks=asks,
    )


def demo_record(
    channel: Channel,
    symbol: str,
    base_price: float,
    rng: random.Random | None = None,
) -> LiveRecord:
    if channel is Channel.ORDERBOOK:
        return demo_orderbook(symbol, base_price, rng)
    return demo_ticker(symbol, base_price, rng)
