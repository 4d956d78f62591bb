"""Series statistics (pure math, no I/O)."""

from core.indicators.indicators import (
    ema,
    mean,
    percent_change,
    percent_change_from_index,
    range_pct,
    stddev,
    zscore,
)

__all__ = [
    "ema",
    "mean",
    "percent_change",
    "percent_change_from_index",
    "range_pct",
    "stddev",
    "zscore",
]
