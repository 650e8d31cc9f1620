from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from functools import lru_cache
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import yaml


MEASURES_DIR = Path(__file__).resolve().parents[1] / "resources" / "measures"
DEFAULT_PACK_NAME = "lte"


class Quality(IntEnum):
    NONE = 0
    POOR = 1
    MODERATE = 2
    GOOD = 3
    GREAT = 4


@dataclass(frozen=True)
class Threshold:
    upper: float
    quality: Quality
    inclusive: bool = True

    def matches(self, value: float) -> bool:
        return value <= self.upper if self.inclusive else value < self.upper


@dataclass(frozen=True)
class SignalMeasure:
    name: str
    unit: str | None
    min_value: float
    max_value: float
    thresholds: tuple[Threshold, ...]
    above: Quality = Quality.GREAT

    def __post_init__(self) -> None:
        uppers = [row.upper for row in self.thresholds]
        if any(b <= a for a, b in zip(uppers, uppers[1:])):
            raise ValueError(f"Thresholds for {self.name} must be strictly increasing")
        if self.min_value > self.max_value:
            raise ValueError(f"Invalid range for {self.name}: {self.min_value} > {self.max_value}")


@dataclass
class SignalInfo:
    name: str
    unit: str | None
    values: list[float]
    current_value: float | None
    quality: Quality
    min_value: float
    max_value: float


def _parse_quality(name: str) -> Quality:
    try:
        return Quality[str(name).upper()]
    except KeyError as exc:
        raise ValueError(f"Unknown quality level: {name}") from exc


def _parse_measure(data: dict[str, Any]) -> SignalMeasure:
    rows = tuple(
        Threshold(
            upper=float(row["upper"]),
            quality=_parse_quality(row["quality"]),
            inclusive=bool(row.get("inclusive", True)),
        )
        for row in data["thresholds"]
    )
    return SignalMeasure(
        name=data["name"],
        unit=data.get("unit"),
        min_value=float(data["min_value"]),
        max_value=float(data["max_value"]),
        thresholds=rows,
        above=_parse_quality(data.get("above", "GREAT")),
    )


def load_measure_pack(path: Path) -> dict[str, SignalMeasure]:
    data = yaml.safe_load(path.read_text())
    measures = [_parse_measure(entry) for entry in data["measures"]]
    return {m.name.upper(): m for m in measures}


def pack_path(name: str) -> Path:
    return MEASURES_DIR / f"{name}.yaml"


@lru_cache(maxsize=None)
def _default_measures() -> dict[str, SignalMeasure]:
    return load_measure_pack(pack_path(DEFAULT_PACK_NAME))


def get_measure(name: str, measures: dict[str, SignalMeasure] | None = None) -> SignalMeasure:
    table = measures if measures is not None else _default_measures()
    try:
        return table[name.upper()]
    except KeyError as exc:
        raise ValueError(f"Unknown signal measure: {name}") from exc


def _is_absent(value: float | None) -> bool:
    return value is None or math.isnan(float(value))


def classify(measure: SignalMeasure, value: float | None) -> Quality:
    if _is_absent(value):
        return Quality.NONE
    value = float(value)
    for row in measure.thresholds:
        if row.matches(value):
            return row.quality
    return measure.above


def classify_series(measure: SignalMeasure, series: pd.Series) -> pd.Series:
    values = series.to_numpy(dtype=float)
    conditions = [np.isnan(values)]
    choices = [int(Quality.NONE)]
    for row in measure.thresholds:
        conditions.append(values <= row.upper if row.inclusive else values < row.upper)
        choices.append(int(row.quality))
    codes = np.select(conditions, choices, default=int(measure.above))
    return pd.Series([Quality(int(c)) for c in codes], index=series.index, name=series.name, dtype=object)


def signal_info(measure: SignalMeasure, values: list[float]) -> SignalInfo:
    current = values[-1] if values else None
    return SignalInfo(
        name=measure.name,
        unit=measure.unit,
        values=list(values),
        current_value=current,
        quality=classify(measure, current),
        min_value=measure.min_value,
        max_value=measure.max_value,
    )


def quality_durations(measure: SignalMeasure, series: pd.Series) -> dict[Quality, float]:
    """Seconds spent at each quality level, holding each sample until the next one."""
    if not isinstance(series.index, pd.DatetimeIndex):
        raise ValueError("Quality durations require DatetimeIndex")

    durations = {q: 0.0 for q in Quality}
    if series.empty:
        return durations

    series = series.sort_index()
    held = series.index.to_series().diff().shift(-1).dt.total_seconds().fillna(0)
    qualities = classify_series(measure, series)
    for quality, seconds in zip(qualities, held):
        durations[quality] += float(seconds)
    return durations
