"""Per-exchange adapters from raw push messages to canonical live records.

Handlers return ``None`` for messages that do not carry the expected shape
(acks, heartbeats, other channels) and for malformed payloads. Nothing here
raises on bad input.
"""
from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Any, Callable

from marketpulse.entities.live import OrderbookLevel, OrderbookRecord, TickerRecord
from marketpulse.feeds.contracts import ORDERBOOK_DEPTH, Channel, Exchange, LiveRecord

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def decode_message(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        return None
    try:
        payload = json.loads(raw)
    except ValueError:
        logger.debug("dropping non-JSON message: %.120s", raw)
        return None
    return payload if isinstance(payload, dict) else None


def _levels(rows: Any, *, descending: bool) -> tuple[OrderbookLevel, ...]:
    levels = [
        OrderbookLevel(price=float(row[0]), quantity=float(row[1]))
        for row in rows
        if isinstance(row, (list, tuple)) and len(row) >= 2
    ]
    levels.sort(key=lambda lvl: lvl.price, reverse=descending)
    return tuple(levels[:ORDERBOOK_DEPTH])


def _pct_change(price: float, reference: float) -> float:
    return (price - reference) / reference * 100 if reference else 0.0


def _iso_to_ms(value: Any) -> int:
    if not value:
        return now_ms()
    return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp() * 1000)


# ── Binance ──


def _binance_ticker(msg: dict[str, Any], fallback_symbol: str | None) -> TickerRecord | None:
    if not msg.get("c") or not msg.get("s"):
        return None
    return TickerRecord(
        exchange=Exchange.BINANCE.value,
        symbol=str(msg["s"]),
        price=float(msg["c"]),
        change24h=float(msg.get("P") or 0.0),
        volume24h=float(msg.get("v") or 0.0),
        high24h=float(msg.get("h") or 0.0),
        low24h=float(msg.get("l") or 0.0),
        timestamp=int(msg.get("E") or now_ms()),
    )


def _binance_orderbook(msg: dict[str, Any], fallback_symbol: str | None) -> OrderbookRecord | None:
    if "bids" not in msg or "asks" not in msg:
        return None
    return OrderbookRecord(
        exchange=Exchange.BINANCE.value,
        symbol=str(msg.get("s") or fallback_symbol or ""),
        timestamp=now_ms(),
        bids=_levels(msg["bids"], descending=True),
        asks=_levels(msg["asks"], descending=False),
    )


# ── Coinbase ──


def _coinbase_ticker(msg: dict[str, Any], fallback_symbol: str | None) -> TickerRecord | None:
    if msg.get("type") != "ticker" or msg.get("price") is None:
        return None
    price = float(msg["price"])
    return TickerRecord(
        exchange=Exchange.COINBASE.value,
        symbol=str(msg.get("product_id") or fallback_symbol or ""),
        price=price,
        change24h=_pct_change(price, float(msg.get("open_24h") or 0.0)),
        volume24h=float(msg.get("volume_24h") or 0.0),
        high24h=float(msg.get("high_24h") or 0.0),
        low24h=float(msg.get("low_24h") or 0.0),
        timestamp=_iso_to_ms(msg.get("time")),
    )


def _coinbase_orderbook(msg: dict[str, Any], fallback_symbol: str | None) -> OrderbookRecord | None:
    if msg.get("type") != "snapshot" or "bids" not in msg or "asks" not in msg:
        return None
    return OrderbookRecord(
        exchange=Exchange.COINBASE.value,
        symbol=str(msg.get("product_id") or fallback_symbol or ""),
        timestamp=now_ms(),
        bids=_levels(msg["bids"], descending=True),
        asks=_levels(msg["asks"], descending=False),
    )


# ── OKX ──


def _okx_first(msg: dict[str, Any]) -> dict[str, Any] | None:
    data = msg.get("data")
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    return data[0]


def _okx_ticker(msg: dict[str, Any], fallback_symbol: str | None) -> TickerRecord | None:
    row = _okx_first(msg)
    if row is None or row.get("last") is None:
        return None
    price = float(row["last"])
    return TickerRecord(
        exchange=Exchange.OKX.value,
        symbol=str(row.get("instId") or fallback_symbol or ""),
        price=price,
        # sodUtc8 is the UTC+8 day open
        change24h=_pct_change(price, float(row.get("sodUtc8") or 0.0)),
        volume24h=float(row.get("vol24h") or 0.0),
        high24h=float(row.get("high24h") or 0.0),
        low24h=float(row.get("low24h") or 0.0),
        timestamp=int(row.get("ts") or now_ms()),
    )


def _okx_orderbook(msg: dict[str, Any], fallback_symbol: str | None) -> OrderbookRecord | None:
    row = _okx_first(msg)
    if row is None or "bids" not in row or "asks" not in row:
        return None
    arg = msg.get("arg") if isinstance(msg.get("arg"), dict) else {}
    return OrderbookRecord(
        exchange=Exchange.OKX.value,
        symbol=str(row.get("instId") or arg.get("instId") or fallback_symbol or ""),
        timestamp=int(row.get("ts") or now_ms()),
        bids=_levels(row["bids"], descending=True),
        asks=_levels(row["asks"], descending=False),
    )


Normalizer = Callable[[dict[str, Any], "str | None"], "LiveRecord | None"]

_HANDLERS: dict[Channel, dict[Exchange, Normalizer]] = {
    Channel.TICKER: {
        Exchange.BINANCE: _binance_ticker,
        Exchange.COINBASE: _coinbase_ticker,
        Exchange.OKX: _okx_ticker,
    },
    Channel.ORDERBOOK: {
        Exchange.BINANCE: _binance_orderbook,
        Exchange.COINBASE: _coinbase_orderbook,
        Exchange.OKX: _okx_orderbook,
    },
}


def normalize(
    message: Any,
    exchange: Exchange,
    channel: Channel,
    *,
    fallback_symbol: str | None = None,
) -> LiveRecord | None:
    payload = decode_message(message)
    if payload is None:
        return None

    handler = _HANDLERS[channel].get(exchange)
    if handler is None:
        return None

    try:
        return handler(payload, fallback_symbol)
    except (TypeError, ValueError, KeyError, IndexError, OverflowError) as exc:
        logger.debug("dropping malformed %s %s message: %s", exchange.value, channel.value, exc)
        return None


def normalize_ticker(message: Any, exchange: Exchange, **kwargs: Any) -> TickerRecord | None:
    return normalize(message, exchange, Channel.TICKER, **kwargs)


def normalize_orderbook(message: Any, exchange: Exchange, **kwargs: Any) -> OrderbookRecord | None:
    return normalize(message, exchange, Channel.ORDERBOOK, **kwargs)
