"""Series statistics for feature building.

Inputs may contain None (missing rows in the collector tables). Each
helper drops None before computing and returns None instead of raising
when there is not enough data.
"""

from typing import Iterable, Sequence

import numpy as np


def _clean(values: Iterable[float | None]) -> np.ndarray:
    return np.array([float(v) for v in values if v is not None], dtype=np.float64)


def mean(values: Iterable[float | None]) -> float | None:
    """Arithmetic mean ignoring None. None for an empty input."""
    arr = _clean(values)
    if arr.size == 0:
        return None
    return float(np.mean(arr))


def stddev(values: Iterable[float | None]) -> float | None:
    """Sample standard deviation (n - 1). None for fewer than 2 values."""
    arr = _clean(values)
    if arr.size <= 1:
        return None
    return float(np.std(arr, ddof=1))


def zscore(value: float | None, mu: float | None, sigma: float | None) -> float | None:
    if value is None or mu is None or not sigma:
        return None
    return (value - mu) / sigma


def ema(values: Sequence[float | None], period: int) -> float | None:
    """Latest EMA value of an ascending series, seeded with its first value."""
    arr = _clean(values)
    if arr.size == 0:
        return None

    k = 2.0 / (period + 1)
    result = arr[0]
    for value in arr[1:]:
        result = value * k + result * (1 - k)
    return float(result)


def percent_change(current: float | None, previous: float | None) -> float | None:
    if current is None or previous is None or previous == 0.0:
        return None
    return (current - previous) / previous * 100


def percent_change_from_index(values: Sequence[float | None], offset: int) -> float | None:
    """Percent change between the newest value and the one `offset` rows older.

    `values` is newest-first, one row per bar.
    """
    if len(values) <= offset:
        return None
    return percent_change(values[0], values[offset])


def range_pct(values: Sequence[float | None]) -> float | None:
    """High-low range of a newest-first window as percent of the newest value."""
    if not values or values[0] is None or values[0] == 0.0:
        return None
    arr = _clean(values)
    if arr.size < 2:
        return None
    return float((np.max(arr) - np.min(arr)) / values[0] * 100)
