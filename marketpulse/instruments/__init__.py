from marketpulse.instruments.registry import (
    COMMODITIES,
    CRYPTO,
    FOREX,
    INDICES,
    STOCKS,
    AssetType,
    Instrument,
    base_price_for,
    base_symbol,
    coingecko_id_for,
    detect_asset_type,
    get_all_instruments,
    get_instrument,
)

__all__ = [
    "AssetType",
    "Instrument",
    "CRYPTO",
    "STOCKS",
    "FOREX",
    "COMMODITIES",
    "INDICES",
    "detect_asset_type",
    "get_all_instruments",
    "get_instrument",
    "base_symbol",
    "base_price_for",
    "coingecko_id_for",
]
