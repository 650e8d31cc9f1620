from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from exposiguard.core.config import AmbientSettings


# Nominal transmitter powers (kW).
ERP_FM_STRONG_KW = 10.0
ERP_FM_WEAK_KW = 3.0
ERP_TV_CHANNEL_KW = 25.0
EIRP_AM_STRONG_KW = 10.0

ERP_TO_EIRP = 1.64
SAR_HARD_CAP = 0.10  # W/kg
INDEX_MAX = 100

INDEX_WEIGHTS = {
    "fm_strong": 2,
    "fm_weak": 1,
    "am_strong": 1,
    "tv_open": 3,
    "tv_antenna": 2,
}


class Environment(Enum):
    URBAN = ("urban", 1.5, 3000.0, 5000.0)
    SUBURBAN = ("suburban", 1.0, 5000.0, 8000.0)
    RURAL = ("rural", 0.5, 10000.0, 15000.0)

    def __init__(self, label: str, index_factor: float, fm_tv_distance_m: float, am_distance_m: float):
        self.label = label
        self.index_factor = index_factor
        self.fm_tv_distance_m = fm_tv_distance_m
        self.am_distance_m = am_distance_m

    @classmethod
    def parse(cls, text: str | None) -> Environment:
        for env in cls:
            if text is not None and text.strip().lower() == env.label:
                return env
        return cls.SUBURBAN


class Profile(Enum):
    CONSERVATIVE = ("conservative", 0.05)
    AVERAGE = ("average", 0.10)
    MAXIMAL = ("maximal", 0.20)

    def __init__(self, label: str, alpha: float):
        self.label = label
        self.alpha = alpha

    @classmethod
    def parse(cls, text: str | None) -> Profile:
        for profile in cls:
            if text is not None and text.strip().lower() == profile.label:
                return profile
        return cls.AVERAGE


@dataclass(frozen=True)
class SourceCounts:
    fm_strong: int = 0
    fm_weak: int = 0
    am_strong: int = 0
    tv_open: int = 0
    tv_antenna: int = 0


@dataclass(frozen=True)
class AmbientEstimate:
    index: int
    s_total_w_per_m2: float
    sar_like_w_per_kg: float
    s_fm_w_per_m2: float = 0.0
    s_tv_w_per_m2: float = 0.0
    s_am_w_per_m2: float = 0.0
    sar_broadcast_w_per_kg: float = 0.0


def power_density(eirp_w: float, distance_m: float) -> float:
    """Free-space incident power density (W/m^2) at distance_m from an isotropic source."""
    return eirp_w / (4.0 * math.pi * distance_m * distance_m)


def composite_index(counts: SourceCounts, environment: Environment) -> int:
    base = sum(getattr(counts, name) * weight for name, weight in INDEX_WEIGHTS.items())
    score = int(base * environment.index_factor)
    return min(max(score, 0), INDEX_MAX)


def sar_like(density: float, profile: Profile) -> float:
    return min(profile.alpha * density, SAR_HARD_CAP)


def estimate(
    counts: SourceCounts,
    environment: Environment | None = None,
    profile: Profile | None = None,
) -> AmbientEstimate:
    environment = environment or Environment.SUBURBAN
    profile = profile or Profile.AVERAGE

    r_fm_tv = environment.fm_tv_distance_m
    r_am = environment.am_distance_m

    eirp_fm_strong = ERP_FM_STRONG_KW * 1000.0 * ERP_TO_EIRP
    eirp_fm_weak = ERP_FM_WEAK_KW * 1000.0 * ERP_TO_EIRP
    eirp_tv = ERP_TV_CHANNEL_KW * 1000.0 * ERP_TO_EIRP
    eirp_am = EIRP_AM_STRONG_KW * 1000.0

    s_fm = counts.fm_strong * power_density(eirp_fm_strong, r_fm_tv) + counts.fm_weak * power_density(
        eirp_fm_weak, r_fm_tv
    )
    s_tv = (counts.tv_open + counts.tv_antenna) * power_density(eirp_tv, r_fm_tv)
    s_am = counts.am_strong * power_density(eirp_am, r_am)
    s_total = s_fm + s_tv + s_am

    return AmbientEstimate(
        index=composite_index(counts, environment),
        s_total_w_per_m2=s_total,
        sar_like_w_per_kg=sar_like(s_total, profile),
        s_fm_w_per_m2=s_fm,
        s_tv_w_per_m2=s_tv,
        s_am_w_per_m2=s_am,
        sar_broadcast_w_per_kg=sar_like(s_fm + s_tv + s_am, profile),
    )


def estimate_from_settings(settings: AmbientSettings) -> AmbientEstimate:
    counts = SourceCounts(
        fm_strong=settings.fm_strong,
        fm_weak=settings.fm_weak,
        am_strong=settings.am_strong,
        tv_open=settings.tv_open,
        tv_antenna=settings.tv_antenna_channels if settings.tv_antenna_enabled else 0,
    )
    return estimate(counts, Environment.parse(settings.environment), Profile.parse(settings.profile))
