from marketpulse.feeds.contracts import LIVE_EXCHANGES, Channel, Exchange, subscription_key
from marketpulse.feeds.normalizers import (
    decode_message,
    normalize,
    normalize_orderbook,
    normalize_ticker,
)
from marketpulse.feeds.streaming import StreamingSubscriptionManager, SubscriptionState
from marketpulse.feeds.symbols import format_symbol, subscription_message, websocket_url
from marketpulse.feeds.transport import DemoTransport, LiveTransport, websocket_connector

__all__ = [
    "Channel",
    "DemoTransport",
    "Exchange",
    "LIVE_EXCHANGES",
    "LiveTransport",
    "StreamingSubscriptionManager",
    "SubscriptionState",
    "decode_message",
    "format_symbol",
    "normalize",
    "normalize_orderbook",
    "normalize_ticker",
    "subscription_key",
    "subscription_message",
    "websocket_connector",
    "websocket_url",
]
