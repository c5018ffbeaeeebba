from marketpulse.services.aggregation import aggregate_to_monthly, aggregate_to_weekly
from marketpulse.services.history import DateRange, HistoricalDataService
from marketpulse.services.providers import ProviderResult, UnsupportedSymbolError
from marketpulse.services.synthetic import SyntheticSeriesGenerator

__all__ = [
    "DateRange",
    "HistoricalDataService",
    "ProviderResult",
    "SyntheticSeriesGenerator",
    "UnsupportedSymbolError",
    "aggregate_to_monthly",
    "aggregate_to_weekly",
]
