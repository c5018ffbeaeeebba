"""Asset-versus-benchmark comparison metrics."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Sequence

from marketpulse.indicators.points import field_value
from marketpulse.indicators.technical import simple_returns

DEFAULT_BETA = 1.0
DEFAULT_CORRELATION = 0.75


@dataclass(frozen=True)
class BenchmarkComparison:
    alpha: float
    beta: float
    correlation: float
    sharpe_ratio: float
    information_ratio: float
    outperformance: bool
    tracking_error: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def beta_of(asset_returns: Sequence[float], benchmark_returns: Sequence[float]) -> float:
    n = len(asset_returns)
    if n == 0 or n != len(benchmark_returns):
        return DEFAULT_BETA

    asset_mean = sum(asset_returns) / n
    bench_mean = sum(benchmark_returns) / n
    covariance = sum(
        (a - asset_mean) * (b - bench_mean) for a, b in zip(asset_returns, benchmark_returns)
    ) / n
    variance = sum((b - bench_mean) ** 2 for b in benchmark_returns) / n
    return covariance / variance if variance != 0 else DEFAULT_BETA


def correlation_of(asset_returns: Sequence[float], benchmark_returns: Sequence[float]) -> float:
    n = len(asset_returns)
    if n < 2 or n != len(benchmark_returns):
        return DEFAULT_CORRELATION

    asset_mean = sum(asset_returns) / n
    bench_mean = sum(benchmark_returns) / n
    cov = sum((a - asset_mean) * (b - bench_mean) for a, b in zip(asset_returns, benchmark_returns))
    asset_ss = sum((a - asset_mean) ** 2 for a in asset_returns)
    bench_ss = sum((b - bench_mean) ** 2 for b in benchmark_returns)
    denom = math.sqrt(asset_ss * bench_ss)
    return cov / denom if denom > 0 else DEFAULT_CORRELATION


def calculate_benchmark_comparison(
    asset: Any,
    benchmark: Any,
    historical_asset: Sequence[Any] = (),
    historical_benchmark: Sequence[Any] = (),
) -> BenchmarkComparison | None:
    if asset is None or benchmark is None:
        return None

    asset_return = field_value(asset, "performance") or 0.0
    benchmark_return = field_value(benchmark, "performance") or 0.0
    alpha = asset_return - benchmark_return

    beta = DEFAULT_BETA
    correlation = DEFAULT_CORRELATION
    if len(historical_asset) > 1 and len(historical_benchmark) > 1:
        asset_returns = simple_returns(historical_asset)
        benchmark_returns = simple_returns(historical_benchmark)
        if asset_returns and len(asset_returns) == len(benchmark_returns):
            beta = beta_of(asset_returns, benchmark_returns)
            correlation = correlation_of(asset_returns, benchmark_returns)

    asset_volatility = field_value(asset, "volatility") or 1.0
    tracking_error = abs(asset_return - benchmark_return)

    return BenchmarkComparison(
        alpha=alpha,
        beta=beta,
        correlation=correlation,
        sharpe_ratio=asset_return / asset_volatility,
        information_ratio=alpha / tracking_error if tracking_error > 0 else 0.0,
        outperformance=asset_return > benchmark_return,
        tracking_error=tracking_error,
    )
