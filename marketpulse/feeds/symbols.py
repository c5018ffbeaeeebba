"""Exchange-specific symbol formats, endpoints and subscribe handshakes."""
from __future__ import annotations

from typing import Any

from marketpulse.feeds.contracts import Channel, Exchange

BINANCE_WS_BASE = "wss://stream.binance.com:9443/ws"
COINBASE_WS_URL = "wss://ws-feed.pro.coinbase.com"
OKX_WS_URL = "wss://ws.okx.com:8443/ws/v5/public"


def format_symbol(symbol: str, exchange: Exchange) -> str:
    raw = str(symbol or "").strip()
    if exchange is Exchange.BINANCE:
        return raw.replace("-", "").upper()
    if exchange is Exchange.COINBASE:
        if "-" in raw:
            return raw.upper().replace("USDT", "USD")
        return f"{raw[:-4]}-USD".upper()
    if exchange is Exchange.OKX:
        if "-" not in raw:
            return f"{raw[:-4]}-{raw[-4:]}".upper()
        return raw.upper()
    return raw.upper()


def websocket_url(symbol: str, exchange: Exchange, channel: Channel) -> str:
    if exchange is Exchange.COINBASE:
        return COINBASE_WS_URL
    if exchange is Exchange.OKX:
        return OKX_WS_URL

    stream = format_symbol(symbol, Exchange.BINANCE).lower()
    if channel is Channel.TICKER:
        return f"{BINANCE_WS_BASE}/{stream}@ticker"
    return f"{BINANCE_WS_BASE}/{stream}@depth20@100ms"


def subscription_message(symbol: str, exchange: Exchange, channel: Channel) -> dict[str, Any] | None:
    """Handshake to send after open; Binance routes by URL and needs none."""
    wire_symbol = format_symbol(symbol, exchange)

    if exchange is Exchange.COINBASE:
        channels = ["level2", "ticker"] if channel is Channel.ORDERBOOK else ["ticker"]
        return {"type": "subscribe", "product_ids": [wire_symbol], "channels": channels}

    if exchange is Exchange.OKX:
        okx_channel = "books5" if channel is Channel.ORDERBOOK else "tickers"
        return {"op": "subscribe", "args": [{"channel": okx_channel, "instId": wire_symbol}]}

    return None
