from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


BACKFILL_SOURCE = "Backfill"

CHANNELS = ("wifi_level", "sar_level", "bluetooth_level")


class ReadingKind(str, Enum):
    WIFI = "WIFI"
    SAR = "SAR"
    NOISE = "NOISE"
    HEALTH = "HEALTH"


@dataclass(frozen=True)
class Reading:
    timestamp: int
    wifi_level: float
    sar_level: float
    bluetooth_level: float = 0.0
    kind: ReadingKind = ReadingKind.WIFI
    source: str = ""

    def __post_init__(self) -> None:
        for name in CHANNELS:
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"Channel {name} must be a finite non-negative number, got {value!r}")

    @property
    def total(self) -> float:
        return self.wifi_level + self.sar_level + self.bluetooth_level

    @property
    def is_backfill(self) -> bool:
        return self.source == BACKFILL_SOURCE

    def channel(self, name: str) -> float:
        if name not in CHANNELS:
            raise ValueError(f"Unknown channel: {name}")
        return getattr(self, name)
