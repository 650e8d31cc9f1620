import itertools
import math

import numpy as np
import pytest

from exposiguard.analysis.ambient import (
    SAR_HARD_CAP,
    AmbientEstimate,
    Environment,
    Profile,
    SourceCounts,
    composite_index,
    estimate,
    estimate_from_settings,
    power_density,
)
from exposiguard.core.config import AmbientSettings


def test_composite_index_weights_and_environment_factor():
    counts = SourceCounts(fm_strong=2, fm_weak=1, am_strong=1, tv_open=1, tv_antenna=1)
    # 2*2 + 1 + 1 + 3 + 2 = 11
    assert composite_index(counts, Environment.SUBURBAN) == 11
    assert composite_index(counts, Environment.URBAN) == 16
    assert composite_index(counts, Environment.RURAL) == 5


def test_composite_index_clamped():
    counts = SourceCounts(tv_open=100)
    assert composite_index(counts, Environment.URBAN) == 100


def test_power_density_inverse_square():
    assert np.isclose(power_density(4 * math.pi, 1.0), 1.0)
    assert np.isclose(power_density(1000.0, 20.0), power_density(1000.0, 10.0) / 4)


def test_urban_fm_density_matches_free_space_law():
    result = estimate(SourceCounts(fm_strong=1), Environment.URBAN, Profile.AVERAGE)
    expected = 10.0 * 1000.0 * 1.64 / (4 * math.pi * 3000.0**2)
    assert np.isclose(result.s_fm_w_per_m2, expected)
    assert np.isclose(result.s_total_w_per_m2, expected)
    assert result.s_tv_w_per_m2 == 0.0
    assert result.s_am_w_per_m2 == 0.0
    assert np.isclose(result.sar_like_w_per_kg, 0.10 * expected)


def test_am_uses_eirp_directly_and_am_distance():
    result = estimate(SourceCounts(am_strong=2), Environment.RURAL, Profile.CONSERVATIVE)
    expected = 2 * 10_000.0 / (4 * math.pi * 15_000.0**2)
    assert np.isclose(result.s_am_w_per_m2, expected)
    assert np.isclose(result.sar_like_w_per_kg, 0.05 * expected)


def test_tv_counts_open_and_antenna_channels():
    result = estimate(SourceCounts(tv_open=2, tv_antenna=3))
    per_channel = 25_000.0 * 1.64 / (4 * math.pi * 5000.0**2)
    assert np.isclose(result.s_tv_w_per_m2, 5 * per_channel)


def test_totals_add_up():
    result = estimate(SourceCounts(fm_strong=1, fm_weak=2, am_strong=1, tv_open=1), Environment.URBAN)
    assert np.isclose(
        result.s_total_w_per_m2,
        result.s_fm_w_per_m2 + result.s_tv_w_per_m2 + result.s_am_w_per_m2,
    )
    assert np.isclose(result.sar_broadcast_w_per_kg, result.sar_like_w_per_kg)


def test_sar_and_index_bounds_over_input_grid():
    grid = [0, 1, 5, 40, 500]
    for fm_s, tv_o, am_s in itertools.product(grid, grid, grid):
        counts = SourceCounts(fm_strong=fm_s, fm_weak=fm_s, am_strong=am_s, tv_open=tv_o, tv_antenna=tv_o)
        for env, profile in itertools.product(Environment, Profile):
            result = estimate(counts, env, profile)
            assert 0 <= result.index <= 100
            assert result.sar_like_w_per_kg <= SAR_HARD_CAP
            assert result.sar_broadcast_w_per_kg <= SAR_HARD_CAP


def test_huge_density_hits_hard_cap():
    result = estimate(SourceCounts(tv_open=10_000), Environment.URBAN, Profile.MAXIMAL)
    assert result.sar_like_w_per_kg == SAR_HARD_CAP


def test_missing_environment_and_profile_use_defaults():
    counts = SourceCounts(fm_strong=3, tv_open=2)
    assert estimate(counts) == estimate(counts, Environment.SUBURBAN, Profile.AVERAGE)


@pytest.mark.parametrize(
    "text,expected",
    [("Urban", Environment.URBAN), (" rural ", Environment.RURAL), ("moon", Environment.SUBURBAN), (None, Environment.SUBURBAN)],
)
def test_environment_parse(text, expected):
    assert Environment.parse(text) is expected


def test_profile_parse_falls_back_to_average():
    assert Profile.parse("MAXIMAL") is Profile.MAXIMAL
    assert Profile.parse("aggressive") is Profile.AVERAGE


def test_estimate_from_settings_respects_antenna_flag():
    settings = AmbientSettings(tv_open=1, tv_antenna_enabled=False, tv_antenna_channels=4, environment="urban")
    without = estimate_from_settings(settings)
    settings.tv_antenna_enabled = True
    with_antenna = estimate_from_settings(settings)
    assert without.index == int(3 * 1.5)
    assert with_antenna.index == int((3 + 4 * 2) * 1.5)
    assert np.isclose(with_antenna.s_tv_w_per_m2, 5 * without.s_tv_w_per_m2)
    assert isinstance(with_antenna, AmbientEstimate)
