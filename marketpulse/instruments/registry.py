"""Static catalog of supported instruments across five asset classes."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class AssetType(StrEnum):
    CRYPTO = "crypto"
    STOCK = "stock"
    FOREX = "forex"
    COMMODITY = "commodity"
    INDEX = "index"


@dataclass(frozen=True)
class Instrument:
    id: str
    name: str
    symbol: str
    asset_type: AssetType
    category: str
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "symbol": self.symbol,
            "assetType": self.asset_type.value,
            "category": self.category,
        }


CRYPTO: dict[str, dict[str, Any]] = {
    "BTC": {"id": "bitcoin", "name": "Bitcoin", "base_price": 45_000.0},
    "ETH": {"id": "ethereum", "name": "Ethereum", "base_price": 2_500.0},
    "SOL": {"id": "solana", "name": "Solana", "base_price": 100.0},
    "ADA": {"id": "cardano", "name": "Cardano", "base_price": 0.5},
    "DOT": {"id": "polkadot", "name": "Polkadot", "base_price": 7.0},
    "XRP": {"id": "ripple", "name": "Ripple", "base_price": 0.6},
    "MATIC": {"id": "matic-network", "name": "Polygon", "base_price": 0.8},
    "AVAX": {"id": "avalanche-2", "name": "Avalanche", "base_price": 35.0},
    "LINK": {"id": "chainlink", "name": "Chainlink", "base_price": 15.0},
    "UNI": {"id": "uniswap", "name": "Uniswap", "base_price": 6.0},
}

STOCKS: dict[str, dict[str, Any]] = {
    "AAPL": {"name": "Apple Inc.", "base_price": 175.0},
    "GOOGL": {"name": "Alphabet Inc.", "base_price": 125.0},
    "MSFT": {"name": "Microsoft Corp.", "base_price": 350.0},
    "AMZN": {"name": "Amazon.com Inc.", "base_price": 95.0},
    "TSLA": {"name": "Tesla Inc.", "base_price": 250.0},
    "META": {"name": "Meta Platforms Inc.", "base_price": 280.0},
    "NVDA": {"name": "NVIDIA Corp.", "base_price": 400.0},
    "NFLX": {"name": "Netflix Inc.", "base_price": 380.0},
    "AMD": {"name": "Advanced Micro Devices", "base_price": 110.0},
    "INTC": {"name": "Intel Corp.", "base_price": 50.0},
}

FOREX: dict[str, dict[str, Any]] = {
    "EURUSD": {"name": "Euro/US Dollar", "base": "EUR", "quote": "USD", "base_price": 1.08},
    "GBPUSD": {"name": "British Pound/US Dollar", "base": "GBP", "quote": "USD", "base_price": 1.25},
    "USDJPY": {"name": "US Dollar/Japanese Yen", "base": "USD", "quote": "JPY", "base_price": 150.0},
    "AUDUSD": {"name": "Australian Dollar/US Dollar", "base": "AUD", "quote": "USD", "base_price": 0.67},
    "USDCAD": {"name": "US Dollar/Canadian Dollar", "base": "USD", "quote": "CAD", "base_price": 1.35},
    "USDCHF": {"name": "US Dollar/Swiss Franc", "base": "USD", "quote": "CHF", "base_price": 0.92},
    "EURGBP": {"name": "Euro/British Pound", "base": "EUR", "quote": "GBP", "base_price": 0.86},
    "EURJPY": {"name": "Euro/Japanese Yen", "base": "EUR", "quote": "JPY", "base_price": 162.0},
}

COMMODITIES: dict[str, dict[str, Any]] = {
    "GOLD": {"name": "Gold", "unit": "oz", "base_price": 2_000.0},
    "SILVER": {"name": "Silver", "unit": "oz", "base_price": 24.0},
    "OIL": {"name": "Crude Oil WTI", "unit": "barrel", "base_price": 75.0},
    "BRENT": {"name": "Brent Oil", "unit": "barrel", "base_price": 80.0},
    "NATGAS": {"name": "Natural Gas", "unit": "MMBtu", "base_price": 3.5},
    "COPPER": {"name": "Copper", "unit": "lb", "base_price": 3.8},
    "WHEAT": {"name": "Wheat", "unit": "bushel", "base_price": 6.5},
    "CORN": {"name": "Corn", "unit": "bushel", "base_price": 4.2},
}

INDICES: dict[str, dict[str, Any]] = {
    "SPX": {"name": "S&P 500 Index", "base_price": 4_500.0},
    "NDX": {"name": "NASDAQ 100 Index", "base_price": 15_000.0},
    "DJI": {"name": "Dow Jones Industrial Average", "base_price": 35_000.0},
    "VIX": {"name": "Volatility Index", "base_price": 20.0},
    "RUT": {"name": "Russell 2000 Index", "base_price": 1_800.0},
}

# Lookup priority matters: a symbol listed in two tables resolves to the first.
_TABLES: tuple[tuple[AssetType, str, dict[str, dict[str, Any]]], ...] = (
    (AssetType.CRYPTO, "Cryptocurrency", CRYPTO),
    (AssetType.STOCK, "Stock", STOCKS),
    (AssetType.FOREX, "Forex", FOREX),
    (AssetType.COMMODITY, "Commodity", COMMODITIES),
    (AssetType.INDEX, "Index", INDICES),
)

_DEFAULT_BASE_PRICE: dict[AssetType, float] = {
    AssetType.CRYPTO: 45_000.0,
    AssetType.STOCK: 100.0,
    AssetType.FOREX: 1.0,
    AssetType.COMMODITY: 100.0,
    AssetType.INDEX: 1_000.0,
}

_QUOTE_SUFFIXES = ("USDT", "USDC", "USD")


def detect_asset_type(symbol: Any) -> AssetType:
    """Resolve the asset class of ``symbol``; unknown or invalid input is crypto."""
    if not isinstance(symbol, str) or not symbol.strip():
        logger.warning("detect_asset_type got invalid symbol %r, defaulting to crypto", symbol)
        return AssetType.CRYPTO

    key = symbol.strip().upper()
    for asset_type, _category, table in _TABLES:
        if key in table:
            return asset_type
    return AssetType.CRYPTO


def get_all_instruments() -> list[Instrument]:
    instruments: list[Instrument] = []
    for asset_type, category, table in _TABLES:
        for symbol, data in table.items():
            name = data["name"]
            if asset_type in (AssetType.CRYPTO, AssetType.STOCK):
                name = f"{name} ({symbol})"
            instruments.append(
                Instrument(
                    id=symbol,
                    name=name,
                    symbol=symbol,
                    asset_type=asset_type,
                    category=category,
                    metadata={k: v for k, v in data.items() if k not in {"name", "base_price"}},
                )
            )
    return instruments


_INSTRUMENTS_BY_ID: dict[str, Instrument] = {inst.id: inst for inst in get_all_instruments()}


def get_instrument(instrument_id: str) -> Instrument | None:
    if not isinstance(instrument_id, str):
        return None
    return _INSTRUMENTS_BY_ID.get(instrument_id.strip().upper())


def base_symbol(instrument_id: Any) -> str:
    """Strip pair decoration: ``BTC-USDT``, ``BTCUSDT`` and ``btc`` all give ``BTC``."""
    raw = str(instrument_id or "").strip().upper()
    if not raw:
        return ""
    head = raw.split("-")[0].split("/")[0]
    if head in _INSTRUMENTS_BY_ID:
        return head
    for suffix in _QUOTE_SUFFIXES:
        if head.endswith(suffix) and len(head) > len(suffix):
            return head[: -len(suffix)]
    return head


def coingecko_id_for(symbol: str) -> str | None:
    row = CRYPTO.get(base_symbol(symbol))
    return row["id"] if row else None


def base_price_for(symbol: str, asset_type: AssetType | None = None) -> float:
    key = base_symbol(symbol)
    kind = asset_type or detect_asset_type(key)
    for table_type, _category, table in _TABLES:
        if table_type == kind and key in table:
            return float(table[key]["base_price"])
    return _DEFAULT_BASE_PRICE[kind]
