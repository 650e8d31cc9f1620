from __future__ import annotations

import bisect
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import pandas as pd

from exposiguard.analysis.averaging import channel_averages, summarize_periods, time_weighted_total
from exposiguard.core.config import StoreConfig
from exposiguard.data.gaps import backfill_gap, detect_gaps
from exposiguard.data.reading import CHANNELS, Reading, ReadingKind


logger = logging.getLogger(__name__)

Listener = Callable[[list[Reading]], None]


@dataclass(frozen=True)
class ChannelAverages:
    wifi_level: float
    sar_level: float
    bluetooth_level: float

    @property
    def total(self) -> float:
        return self.wifi_level + self.sar_level + self.bluetooth_level


class ExposureSeriesStore:
    """Append-only, time-ordered exposure readings with gap backfill and windowed averages.

    Writers and readers share one lock. Queries work on a snapshot taken under
    the lock, so they never see a half-applied ingestion.
    """

    def __init__(self, config: StoreConfig | None = None):
        self.config = config or StoreConfig()
        self._lock = threading.RLock()
        self._readings: list[Reading] = []
        self._keys: list[int] = []
        self._listeners: list[Listener] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._readings)

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def ingest(self, reading: Reading) -> list[Reading]:
        return self.ingest_batch([reading])

    def ingest_batch(self, readings: Iterable[Reading]) -> list[Reading]:
        """Store readings (plus any backfill they trigger) and return everything stored."""
        incoming = list(readings)
        accepted = [r for r in incoming if not self._is_skippable(r)]
        if len(accepted) < len(incoming):
            logger.debug("Skipped %d zero readings", len(incoming) - len(accepted))
        if not accepted:
            return []

        stored: list[Reading] = []
        with self._lock:
            for reading in sorted(accepted, key=lambda r: r.timestamp):
                if self.config.backfill_enabled and not reading.is_backfill:
                    synthetic = self._backfill_before(reading)
                    if synthetic:
                        logger.info("Backfill: adding %d synthetic readings", len(synthetic))
                    for item in synthetic:
                        self._insert(item)
                    stored.extend(synthetic)
                self._insert(reading)
                stored.append(reading)
            self._enforce_limit()
            listeners = list(self._listeners)

        logger.debug("Stored %d readings (%d submitted)", len(stored), len(incoming))
        self._notify(listeners, stored)
        return stored

    def _is_skippable(self, reading: Reading) -> bool:
        return self.config.skip_zero_readings and reading.total == 0.0

    def _insert(self, reading: Reading) -> None:
        # bisect_right keeps insertion order among equal timestamps.
        pos = bisect.bisect_right(self._keys, reading.timestamp)
        self._keys.insert(pos, reading.timestamp)
        self._readings.insert(pos, reading)

    def _previous_real(self, timestamp: int) -> Reading | None:
        pos = bisect.bisect_right(self._keys, timestamp)
        for reading in reversed(self._readings[:pos]):
            if not reading.is_backfill:
                return reading
        return None

    def _backfill_before(self, reading: Reading) -> list[Reading]:
        previous = self._previous_real(reading.timestamp)
        if previous is None:
            return []
        lo = bisect.bisect_right(self._keys, previous.timestamp)
        hi = bisect.bisect_left(self._keys, reading.timestamp)
        occupied = self._keys[lo:hi]
        return backfill_gap(previous, reading, self.config.bucket_ms, occupied)

    def _enforce_limit(self) -> None:
        """Drop readings over max_readings, oldest backfill first, then oldest real."""
        excess = len(self._readings) - self.config.max_readings
        if excess <= 0:
            return
        synthetic = [i for i, r in enumerate(self._readings) if r.is_backfill][:excess]
        drop = set(synthetic)
        for idx in range(len(self._readings)):
            if len(drop) >= excess:
                break
            drop.add(idx)
        self._readings = [r for i, r in enumerate(self._readings) if i not in drop]
        self._keys = [r.timestamp for r in self._readings]
        logger.info(
            "Dropped %d readings (%d backfill) over limit %d",
            excess,
            len(synthetic),
            self.config.max_readings,
        )

    def _notify(self, listeners: list[Listener], stored: list[Reading]) -> None:
        for listener in listeners:
            try:
                listener(stored)
            except Exception:
                logger.exception("Data-changed listener failed")

    def readings(self) -> list[Reading]:
        with self._lock:
            return list(self._readings)

    def readings_in_range(self, start: int, end: int) -> list[Reading]:
        with self._lock:
            lo = bisect.bisect_left(self._keys, start)
            hi = bisect.bisect_right(self._keys, end)
            return self._readings[lo:hi]

    def readings_by_kind(self, kind: ReadingKind) -> list[Reading]:
        with self._lock:
            return [r for r in self._readings if r.kind == kind]

    def recent(self, hours: float, now: int) -> list[Reading]:
        cutoff = now - int(hours * 60 * 60 * 1000)
        with self._lock:
            return self._readings[bisect.bisect_left(self._keys, cutoff):]

    def _window_snapshot(self, end: int) -> list[Reading]:
        # Readings before start still matter: the last one supplies the initial held value.
        with self._lock:
            return self._readings[: bisect.bisect_left(self._keys, end)]

    def _effective_gap(self, max_gap: int | None) -> int | None:
        return max_gap if max_gap is not None else self.config.max_gap_ms

    def query_window(self, start: int, end: int, max_gap: int | None = None) -> ChannelAverages:
        snapshot = self._window_snapshot(end)
        averages = channel_averages(snapshot, start, end, self._effective_gap(max_gap))
        return ChannelAverages(**averages)

    def query_total(self, start: int, end: int, max_gap: int | None = None) -> float:
        snapshot = self._window_snapshot(end)
        return time_weighted_total(snapshot, start, end, self._effective_gap(max_gap))

    def summarize_periods(
        self, start: int, end: int, period_ms: int, max_gap: int | None = None
    ) -> pd.DataFrame:
        snapshot = self._window_snapshot(end)
        return summarize_periods(snapshot, start, end, period_ms, self._effective_gap(max_gap))

    def stats(self) -> dict[str, float]:
        snapshot = self.readings()
        if not snapshot:
            return {
                "total_readings": 0,
                "average_exposure": 0.0,
                "max_exposure": 0.0,
                "min_exposure": 0.0,
                "time_span": 0,
            }
        totals = [r.total for r in snapshot]
        return {
            "total_readings": len(snapshot),
            "average_exposure": sum(totals) / len(totals),
            "max_exposure": max(totals),
            "min_exposure": min(totals),
            "time_span": snapshot[-1].timestamp - snapshot[0].timestamp,
        }

    def gaps(self, factor: float | None = None) -> list[tuple[int, int]]:
        with self._lock:
            keys = list(self._keys)
        return detect_gaps(keys, factor if factor is not None else self.config.gap_factor)

    def to_frame(self) -> pd.DataFrame:
        snapshot = self.readings()
        df = pd.DataFrame(
            {
                "timestamp": pd.to_datetime([r.timestamp for r in snapshot], unit="ms", utc=True),
                **{name: [getattr(r, name) for r in snapshot] for name in CHANNELS},
                "kind": [r.kind.value for r in snapshot],
                "source": [r.source for r in snapshot],
            }
        )
        df["total"] = df[list(CHANNELS)].sum(axis=1)
        return df.set_index("timestamp")

    def clear_older_than(self, cutoff: int) -> int:
        with self._lock:
            pos = bisect.bisect_left(self._keys, cutoff)
            del self._readings[:pos]
            del self._keys[:pos]
        if pos:
            logger.info("Cleared %d readings older than %d", pos, cutoff)
        return pos

    def deduplicate(self) -> int:
        """Keep one reading per timestamp, preferring the first real one over backfill."""
        with self._lock:
            kept: list[Reading] = []
            for reading in self._readings:
                if kept and kept[-1].timestamp == reading.timestamp:
                    if kept[-1].is_backfill and not reading.is_backfill:
                        kept[-1] = reading
                    continue
                kept.append(reading)
            removed = len(self._readings) - len(kept)
            self._readings = kept
            self._keys = [r.timestamp for r in kept]
        if removed:
            logger.info("Removed %d duplicate-timestamp readings", removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._readings.clear()
            self._keys.clear()
        logger.info("All readings cleared")
