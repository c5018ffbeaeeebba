from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TickerRecord:
    exchange: str
    symbol: str
    price: float
    change24h: float
    volume24h: float
    high24h: float
    low24h: float
    timestamp: int  # epoch milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "exchange": self.exchange,
            "symbol": self.symbol,
            "price": self.price,
            "change24h": self.change24h,
            "volume24h": self.volume24h,
            "high24h": self.high24h,
            "low24h": self.low24h,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class OrderbookLevel:
    price: float
    quantity: float


@dataclass(frozen=True)
class OrderbookRecord:
    """Top-of-book snapshot; bids descending, asks ascending."""

    exchange: str
    symbol: str
    timestamp: int  # epoch milliseconds
    bids: tuple[OrderbookLevel, ...]
    asks: tuple[OrderbookLevel, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "exchange": self.exchange,
            "symbol": self.symbol,
            "timestamp": self.timestamp,
            "bids": [{"price": lvl.price, "quantity": lvl.quantity} for lvl in self.bids],
            "asks": [{"price": lvl.price, "quantity": lvl.quantity} for lvl in self.asks],
        }
