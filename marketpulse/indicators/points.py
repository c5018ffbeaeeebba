"""Field access for heterogeneous price points.

A point may be a mapping, an object with attributes (e.g. ``DailyRecord``)
or a bare number. Missing or zero fields fall through to the next candidate,
so ``close`` falls back to ``price`` and ``high``/``low`` fall back to the
close price.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def field_value(point: Any, name: str) -> float | None:
    if isinstance(point, Mapping):
        raw = point.get(name)
    else:
        raw = getattr(point, name, None)
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _first_nonzero(*values: float | None) -> float:
    for value in values:
        if value:
            return value
    return 0.0


def close_of(point: Any) -> float:
    if isinstance(point, (int, float)) and not isinstance(point, bool):
        return float(point)
    return _first_nonzero(field_value(point, "close"), field_value(point, "price"))


def high_of(point: Any) -> float:
    if isinstance(point, (int, float)) and not isinstance(point, bool):
        return float(point)
    return _first_nonzero(field_value(point, "high"), close_of(point))


def low_of(point: Any) -> float:
    if isinstance(point, (int, float)) and not isinstance(point, bool):
        return float(point)
    return _first_nonzero(field_value(point, "low"), close_of(point))


def typical_price(point: Any) -> float:
    return (high_of(point) + low_of(point) + close_of(point)) / 3


def closes(data: Any) -> list[float]:
    return [close_of(point) for point in data]
