from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
import pandas as pd

from exposiguard.data.reading import CHANNELS


def _held_segments(
    readings: Sequence[Any],
    start: int,
    end: int,
    selector: Callable[[Any], float],
) -> tuple[np.ndarray, np.ndarray]:
    # Stable sort keeps insertion order for equal timestamps.
    ordered = sorted(readings, key=lambda r: r.timestamp)
    times = np.array([r.timestamp for r in ordered], dtype=np.int64)
    values = np.array([float(selector(r)) for r in ordered], dtype=float)

    before = times <= start
    initial = values[before][-1] if before.any() else 0.0

    inside = (times >= start) & (times < end)
    edges = np.concatenate(([start], times[inside], [end])).astype(float)
    held = np.concatenate(([initial], values[inside]))
    durations = np.maximum(np.diff(edges), 0.0)
    return held, durations


def time_weighted_average(
    readings: Sequence[Any],
    start: int,
    end: int,
    selector: Callable[[Any], float],
    max_gap: int | None = None,
) -> float:
    """Zero-order-hold average of selector over [start, end).

    The value at start is the last reading at or before start (0 if none).
    Each held value lasts until the next reading inside the window, or until
    end. With max_gap, no single held value counts for longer than max_gap.
    """
    if max_gap is not None and max_gap < 0:
        raise ValueError("max_gap must be non-negative")
    if len(readings) == 0 or end <= start:
        return 0.0

    held, durations = _held_segments(readings, start, end, selector)
    if max_gap is not None:
        durations = np.minimum(durations, float(max_gap))
    area = float(np.sum(held * durations))
    return area / float(end - start)


def time_weighted_total(
    readings: Sequence[Any],
    start: int,
    end: int,
    max_gap: int | None = None,
) -> float:
    return time_weighted_average(readings, start, end, lambda r: r.total, max_gap)


def channel_averages(
    readings: Sequence[Any],
    start: int,
    end: int,
    max_gap: int | None = None,
) -> dict[str, float]:
    return {
        name: time_weighted_average(readings, start, end, lambda r, n=name: getattr(r, n), max_gap)
        for name in CHANNELS
    }


def summarize_periods(
    readings: Sequence[Any],
    start: int,
    end: int,
    period_ms: int,
    max_gap: int | None = None,
) -> pd.DataFrame:
    if period_ms <= 0:
        raise ValueError("Period must be positive")

    columns = ["start", "end", *CHANNELS, "total", "samples"]
    if end <= start:
        return pd.DataFrame(columns=columns)

    timestamps = np.array([r.timestamp for r in readings], dtype=np.int64)
    rows = []
    for period_start in range(start, end, period_ms):
        period_end = min(period_start + period_ms, end)
        averages = channel_averages(readings, period_start, period_end, max_gap)
        samples = int(np.count_nonzero((timestamps >= period_start) & (timestamps < period_end)))
        rows.append(
            {
                "start": period_start,
                "end": period_end,
                **averages,
                "total": sum(averages.values()),
                "samples": samples,
            }
        )

    return pd.DataFrame(rows, columns=columns)
