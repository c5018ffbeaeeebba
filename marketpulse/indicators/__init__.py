from marketpulse.indicators.comparison import (
    BenchmarkComparison,
    calculate_benchmark_comparison,
)
from marketpulse.indicators.technical import (
    atr,
    bollinger_bands,
    calculate_all_indicators,
    cci,
    ema,
    ichimoku,
    macd,
    mfi,
    multiple_moving_averages,
    parabolic_sar,
    rsi,
    sma,
    stochastic,
    vix_like,
    volatility_metrics,
    williams_r,
)

__all__ = [
    "sma",
    "ema",
    "rsi",
    "bollinger_bands",
    "macd",
    "stochastic",
    "cci",
    "williams_r",
    "mfi",
    "atr",
    "parabolic_sar",
    "ichimoku",
    "vix_like",
    "volatility_metrics",
    "multiple_moving_averages",
    "calculate_all_indicators",
    "BenchmarkComparison",
    "calculate_benchmark_comparison",
]
