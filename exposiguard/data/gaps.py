from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace

import pandas as pd

from exposiguard.data.reading import BACKFILL_SOURCE, Reading


logger = logging.getLogger(__name__)

BUCKET_MS = 5 * 60 * 1000


def bucket_floor(timestamp: int, bucket_ms: int = BUCKET_MS) -> int:
    if bucket_ms <= 0:
        raise ValueError("Bucket size must be positive")
    return timestamp - (timestamp % bucket_ms)


def bucket_boundaries(after: int, before: int, bucket_ms: int = BUCKET_MS) -> list[int]:
    """Grid points strictly inside (after, before), aligned to absolute multiples of bucket_ms."""
    first = bucket_floor(after, bucket_ms) + bucket_ms
    return list(range(first, before, bucket_ms))


def needs_backfill(previous: Reading, current: Reading, bucket_ms: int = BUCKET_MS) -> bool:
    return current.timestamp - previous.timestamp > bucket_ms


def backfill_gap(
    previous: Reading,
    current: Reading,
    bucket_ms: int = BUCKET_MS,
    occupied: Iterable[int] = (),
) -> list[Reading]:
    """Carry the previous real reading forward onto every empty grid point before current.

    All channels freeze together: each synthetic reading is a copy of previous
    with a new timestamp and the backfill source tag.
    """
    if previous.is_backfill:
        raise ValueError("Backfill must be anchored on a real reading")
    if not needs_backfill(previous, current, bucket_ms):
        return []

    taken = set(occupied)
    synthetic = [
        replace(previous, timestamp=t, source=BACKFILL_SOURCE)
        for t in bucket_boundaries(previous.timestamp, current.timestamp, bucket_ms)
        if t not in taken
    ]
    if synthetic:
        logger.debug(
            "Backfilling %d buckets between %d and %d",
            len(synthetic),
            previous.timestamp,
            current.timestamp,
        )
    return synthetic


def detect_gaps(timestamps: Sequence[int], factor: float) -> list[tuple[int, int]]:
    if len(timestamps) == 0:
        return []
    times = pd.Series(sorted(timestamps), dtype="int64")
    deltas = times.diff().dropna()
    if deltas.empty:
        return []
    median = deltas.median()
    if pd.isna(median) or median <= 0:
        return []

    threshold = median * factor
    gaps: list[tuple[int, int]] = []
    for idx, delta in deltas.items():
        if delta > threshold:
            gaps.append((int(times.loc[idx - 1]), int(times.loc[idx])))
    return gaps
