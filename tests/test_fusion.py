import numpy as np
import pytest

from api.services.fusion import WeightingPolicy, merge, merge_pixel, weight
from api.services.radiance import sample_to_radiance, to_radiance
from conftest import solid, textured
from api.services.exposure import Exposure


def test_weight_endpoints_and_peak():
    assert weight(0.0) == 0.0
    assert weight(1.0) == 0.0
    assert weight(0.5) == 1.0


def test_weight_outside_unit_interval_is_zero():
    assert weight(-0.2) == 0.0
    assert weight(1.3) == 0.0


def test_weight_symmetric_and_non_negative():
    v = np.linspace(0.0, 1.0, 101)
    w = weight(v)
    assert np.all(w >= 0.0)
    np.testing.assert_allclose(w, weight(1.0 - v), atol=1e-12)


def test_radiance_is_exact_ratio():
    assert sample_to_radiance((0, 51, 255)) == (0.0, 0.2, 1.0)
    rad = to_radiance(solid(2, 2, 32768, dtype=np.uint16))
    assert rad.shape == (2, 2, 3)
    np.testing.assert_allclose(rad, 32768 / 65535)


def test_gray_radiance_fills_three_channels():
    rad = to_radiance(solid(3, 2, 51, gray=True))
    assert rad.shape == (2, 3, 3)
    np.testing.assert_allclose(rad, 0.2)


@pytest.mark.parametrize("policy", list(WeightingPolicy))
def test_identical_exposures_merge_to_themselves(policy):
    exposure = Exposure(np.clip(textured(32), 1, 254))
    rad = to_radiance(exposure)
    fused = merge([rad, rad, rad], policy)
    np.testing.assert_allclose(fused, rad, atol=1e-12)


def test_all_clipped_pixels_fall_back_to_zero():
    black = to_radiance(solid(2, 2, 0))
    white = to_radiance(solid(2, 2, 255))
    fused = merge([black, white, white])
    assert np.all(fused == 0.0)
    assert merge_pixel([0.0, 1.0, 1.0]) == 0.0


def test_merge_matches_scalar_rule():
    values = [50 / 255, 128 / 255, 200 / 255]
    grids = [to_radiance(solid(2, 2, v)) for v in (50, 128, 200)]
    fused = merge(grids)
    np.testing.assert_allclose(fused, merge_pixel(values))
    expected = sum(v * weight(v) for v in values) / sum(weight(v) for v in values)
    assert merge_pixel(values) == pytest.approx(expected)


def test_average_policy_keeps_hue_of_saturated_channel():
    # a pure-red pixel: channel G/B are 0 in every frame
    dark = np.zeros((1, 1, 3), dtype=np.uint8)
    dark[..., 0] = 100
    bright = np.zeros((1, 1, 3), dtype=np.uint8)
    bright[..., 0] = 220
    grids = [to_radiance(Exposure(dark)), to_radiance(Exposure(bright))]

    averaged = merge(grids, WeightingPolicy.AVERAGE)
    per_channel = merge(grids, WeightingPolicy.PER_CHANNEL)

    assert averaged[0, 0, 0] > 0.0
    assert averaged[0, 0, 1] == 0.0
    # per-channel weighting uses each channel's own value
    np.testing.assert_allclose(per_channel[0, 0, 0], merge_pixel([100 / 255, 220 / 255]))
