from __future__ import annotations

from dataclasses import dataclass


@dataclass
class StoreConfig:
    bucket_ms: int = 300_000
    backfill_enabled: bool = True
    skip_zero_readings: bool = True
    max_readings: int = 5000
    max_gap_ms: int | None = None
    gap_factor: float = 2.0


@dataclass
class AmbientSettings:
    fm_strong: int = 0
    fm_weak: int = 0
    am_strong: int = 0
    tv_open: int = 0
    tv_antenna_enabled: bool = False
    tv_antenna_channels: int = 0
    environment: str = "suburban"
    profile: str = "average"
