"""Technical indicators over ordered price series.

Every function returns ``None`` when the series is shorter than the window it
needs. Percent-style outputs are whole numbers (``2.5`` means 2.5%).

The EMA seed, the single-value stochastic %D and the one-step parabolic SAR
intentionally reproduce the dashboard's historical outputs rather than the
textbook definitions.
"""
from __future__ import annotations

import math
from typing import Any, Sequence

from marketpulse.indicators.points import (
    close_of,
    closes,
    field_value,
    high_of,
    low_of,
    typical_price,
)

TRADING_DAYS_PER_YEAR = 252
NEUTRAL_VIX = 25.0
DEFAULT_MFI_VOLUME = 1_000_000.0


def _has(data: Sequence[Any] | None, size: int) -> bool:
    return bool(data) and len(data) >= size


def _population_stddev(values: Sequence[float]) -> float:
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


# ── Moving averages ──


def sma(data: Sequence[Any], period: int) -> float | None:
    if period <= 0 or not _has(data, period):
        return None
    window = closes(data[-period:])
    return sum(window) / period


def ema(data: Sequence[Any], period: int) -> float | None:
    """SMA-seeded EMA.

    The seed covers the first ``period`` points of whatever window the caller
    passes, so callers must keep the window start fixed to get stable values.
    """
    if period <= 0 or not _has(data, period):
        return None

    multiplier = 2 / (period + 1)
    value = sma(data[:period], period)
    for point in data[period:]:
        value = (close_of(point) - value) * multiplier + value
    return value


def multiple_moving_averages(
    data: Sequence[Any],
    periods: Sequence[int] = (5, 10, 20, 50, 200),
) -> dict[str, float | None]:
    result: dict[str, float | None] = {}
    for period in periods:
        result[f"ma{period}"] = sma(data, period)
        result[f"ema{period}"] = ema(data, period)
    return result


# ── Oscillators ──


def rsi(data: Sequence[Any], period: int = 14) -> float | None:
    """RSI from the average gain/loss over the first ``period`` deltas."""
    if period <= 0 or not _has(data, period + 1):
        return None

    prices = closes(data)
    deltas = [prices[i] - prices[i - 1] for i in range(1, len(prices))]

    avg_gain = 0.0
    avg_loss = 0.0
    for change in deltas[:period]:
        if change > 0:
            avg_gain += change
        else:
            avg_loss -= change
    avg_gain /= period
    avg_loss /= period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def stochastic(data: Sequence[Any], k_period: int = 14, d_period: int = 3) -> dict[str, Any] | None:
    if k_period <= 0 or not _has(data, k_period):
        return None

    window = data[-k_period:]
    current = close_of(window[-1])
    highest = max(high_of(p) for p in window)
    lowest = min(low_of(p) for p in window)
    if highest == lowest:
        return None

    k = (current - lowest) / (highest - lowest) * 100
    # Only the latest %K is known here, so %D collapses to it.
    k_history = [k]
    recent = k_history[-d_period:]
    d = sum(recent) / min(len(k_history), d_period)

    if k > 80:
        signal = "overbought"
    elif k < 20:
        signal = "oversold"
    else:
        signal = "neutral"
    return {"k": k, "d": d, "signal": signal}


def cci(data: Sequence[Any], period: int = 20) -> float | None:
    if period <= 0 or not _has(data, period):
        return None

    tps = [typical_price(p) for p in data[-period:]]
    sma_tp = sum(tps) / len(tps)
    mean_deviation = sum(abs(tp - sma_tp) for tp in tps) / len(tps)
    if mean_deviation == 0:
        return 0.0
    return (tps[-1] - sma_tp) / (0.015 * mean_deviation)


def williams_r(data: Sequence[Any], period: int = 14) -> float | None:
    if period <= 0 or not _has(data, period):
        return None

    window = data[-period:]
    current = close_of(window[-1])
    highest = max(high_of(p) for p in window)
    lowest = min(low_of(p) for p in window)
    if highest == lowest:
        return None
    return (highest - current) / (highest - lowest) * -100


def mfi(data: Sequence[Any], period: int = 14) -> float | None:
    if period <= 0 or not _has(data, period + 1):
        return None

    flows: list[tuple[float, bool]] = []
    for previous, current in zip(data, data[1:]):
        current_tp = typical_price(current)
        volume = field_value(current, "volume") or DEFAULT_MFI_VOLUME
        flows.append((current_tp * volume, current_tp > typical_price(previous)))

    recent = flows[-period:]
    positive = sum(flow for flow, up in recent if up)
    negative = sum(flow for flow, up in recent if not up)
    if negative == 0:
        return 100.0
    return 100 - (100 / (1 + positive / negative))


# ── Trend ──


def macd(
    data: Sequence[Any],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> dict[str, Any] | None:
    if not _has(data, slow_period + signal_period):
        return None

    prices = closes(data)
    macd_line: list[float] = []
    for end in range(slow_period, len(prices) + 1):
        fast = ema(prices[:end], fast_period)
        slow = ema(prices[:end], slow_period)
        if fast and slow:
            macd_line.append(fast - slow)
    if not macd_line:
        return None

    signal_line: list[float] = []
    for end in range(signal_period, len(macd_line) + 1):
        value = ema(macd_line[:end], signal_period)
        if value:
            signal_line.append(value)

    offset = len(macd_line) - len(signal_line)
    histogram = [macd_line[offset + i] - signal_line[i] for i in range(len(signal_line))]

    return {
        "macd": macd_line[-1],
        "signal": signal_line[-1] if signal_line else 0.0,
        "histogram": histogram[-1] if histogram else 0.0,
        "macd_series": macd_line,
        "signal_series": signal_line,
        "histogram_series": histogram,
    }


def parabolic_sar(
    data: Sequence[Any],
    acceleration: float = 0.02,
    maximum: float = 0.2,
) -> dict[str, Any] | None:
    """Single-step SAR estimate from the last two bars."""
    if not _has(data, 2):
        return None

    current, previous = data[-1], data[-2]
    bullish = high_of(current) > high_of(previous)
    accel = min(acceleration * 2, maximum)
    if bullish:
        sar = min(low_of(current), low_of(previous)) * (1 - accel)
    else:
        sar = max(high_of(current), high_of(previous)) * (1 + accel)
    return {
        "sar": sar,
        "trend": "bullish" if bullish else "bearish",
        "acceleration": accel,
    }


def ichimoku(data: Sequence[Any]) -> dict[str, float] | None:
    if not _has(data, 52):
        return None

    def midpoint(period: int) -> float:
        window = data[-period:]
        return (max(high_of(p) for p in window) + min(low_of(p) for p in window)) / 2

    tenkan = midpoint(9)
    kijun = midpoint(26)
    span_a = (tenkan + kijun) / 2
    span_b = midpoint(52)
    return {
        "tenkan_sen": tenkan,
        "kijun_sen": kijun,
        "senkou_span_a": span_a,
        "senkou_span_b": span_b,
        "chikou_span": close_of(data[-1]),
        "cloud_top": max(span_a, span_b),
        "cloud_bottom": min(span_a, span_b),
    }


# ── Volatility ──


def bollinger_bands(data: Sequence[Any], period: int = 20, k: float = 2) -> dict[str, float] | None:
    middle = sma(data, period)
    if middle is None:
        return None

    window = closes(data[-period:])
    deviation = math.sqrt(sum((p - middle) ** 2 for p in window) / period)
    return {
        "upper": middle + deviation * k,
        "middle": middle,
        "lower": middle - deviation * k,
    }


def atr(data: Sequence[Any], period: int = 14) -> float | None:
    if period <= 0 or not _has(data, period + 1):
        return None

    true_ranges = []
    for previous, current in zip(data, data[1:]):
        high, low, prev_close = high_of(current), low_of(current), close_of(previous)
        true_ranges.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))

    recent = true_ranges[-period:]
    return sum(recent) / len(recent)


def simple_returns(data: Sequence[Any]) -> list[float]:
    prices = closes(data)
    return [
        (prices[i] - prices[i - 1]) / prices[i - 1]
        for i in range(1, len(prices))
        if prices[i - 1] > 0
    ]


def vix_like(data: Sequence[Any], period: int = 30) -> float:
    """Annualized volatility proxy; 25 when fewer than two usable points exist."""
    if not data:
        return NEUTRAL_VIX

    recent = data[-min(period, len(data)):]

    if field_value(recent[0], "volatility") is not None:
        mean_vol = sum(field_value(p, "volatility") or 0.0 for p in recent) / len(recent)
        return math.sqrt(TRADING_DAYS_PER_YEAR) * mean_vol

    prices = closes(recent)
    log_returns = [
        math.log(prices[i] / prices[i - 1])
        for i in range(1, len(prices))
        if prices[i - 1] > 0 and prices[i] > 0
    ]
    if not log_returns:
        return NEUTRAL_VIX
    return _population_stddev(log_returns) * math.sqrt(TRADING_DAYS_PER_YEAR) * 100


def volatility_metrics(data: Sequence[Any], period: int = 20) -> dict[str, Any] | None:
    if not _has(data, 2):
        return None

    returns = simple_returns(data[-period:])
    if not returns:
        return None

    stddev = _population_stddev(returns)
    annualized = stddev * math.sqrt(TRADING_DAYS_PER_YEAR) * 100
    return {
        "historical_volatility": stddev * 100,
        "annualized_volatility": annualized,
        "vix_like": annualized,
        "returns": returns,
    }


def calculate_all_indicators(data: Sequence[Any]) -> dict[str, Any]:
    """Compute every indicator once over ``data`` for dashboard panels."""
    if not data:
        return {}

    data = list(data)
    return {
        "sma5": sma(data, 5),
        "sma10": sma(data, 10),
        "sma20": sma(data, 20),
        "sma50": sma(data, 50),
        "sma200": sma(data, 200),
        "ema12": ema(data, 12),
        "ema26": ema(data, 26),
        "rsi": rsi(data, 14),
        "stochastic": stochastic(data),
        "cci": cci(data),
        "williams_r": williams_r(data),
        "mfi": mfi(data),
        "macd": macd(data),
        "parabolic_sar": parabolic_sar(data),
        "ichimoku": ichimoku(data),
        "bollinger_bands": bollinger_bands(data),
        "atr": atr(data),
        "vix_like": vix_like(data),
        "volatility_metrics": volatility_metrics(data),
    }
