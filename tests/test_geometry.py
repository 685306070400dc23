import numpy as np
import pytest

from cm_distortion.distortion_geometry import (
    CENTERING_ADJUST,
    CM,
    StripeRegion,
    build_truth_positions,
    calculate_centers,
    default_regions,
    stripe_spacing,
    stripes_before,
)
from cm_distortion.exceptions import ConfigurationError


@pytest.mark.parametrize("n_copies", [1, 2, 18])
def test_truth_set_size(n_copies):
    regions = default_regions()
    truth = build_truth_positions(regions, n_copies=n_copies)
    assert len(truth) == sum(r.n_stripes for r in regions) * n_copies


def test_default_layout_size():
    regions = default_regions()
    assert len(regions) == 32
    assert len(build_truth_positions(regions)) == sum(r.n_stripes for r in regions) * 18


def test_copies_are_exact_rotations(default_truth):
    n_copies = 18
    n_base = len(default_truth) // n_copies
    step = 2.0 * np.pi / n_copies
    cos_s, sin_s = np.cos(step), np.sin(step)
    for k in range(n_copies - 1):
        cur = slice(k * n_base, (k + 1) * n_base)
        nxt = slice((k + 1) * n_base, (k + 2) * n_base)
        x, y = default_truth.x[cur], default_truth.y[cur]
        np.testing.assert_allclose(default_truth.x[nxt], x * cos_s - y * sin_s, atol=1e-9)
        np.testing.assert_allclose(default_truth.y[nxt], x * sin_s + y * cos_s, atol=1e-9)


def test_ordering_copy_then_region_then_stripe():
    regions = [StripeRegion(300.0, 96, 0, 2), StripeRegion(310.0, 96, 1, 4)]
    truth = build_truth_positions(regions, n_copies=2)
    assert list(truth.copy_index) == [0] * 5 + [1] * 5
    assert list(truth.region_index) == [0, 0, 1, 1, 1] * 2
    assert list(truth.stripe_index) == [0, 1, 1, 2, 3] * 2


def test_parity_offsets():
    region = StripeRegion(400.0, 128, 0, 3)
    s = stripe_spacing(400.0, 128)
    even_x, even_y = calculate_centers(region, parity=0)
    odd_x, odd_y = calculate_centers(region, parity=1)
    i = np.arange(3)
    np.testing.assert_allclose(np.arctan2(even_y, even_x), i * s + s / 2 - CENTERING_ADJUST)
    np.testing.assert_allclose(np.arctan2(odd_y, odd_x), (i + 1) * s - CENTERING_ADJUST)
    np.testing.assert_allclose(np.hypot(even_x, even_y), 400.0 / CM)


def test_spacing_formula():
    expected = 2.0 * (8 * 0.6 / 227.0 + 3 * (np.pi / 6.0) / 96)
    assert stripe_spacing(227.0, 96) == pytest.approx(expected)


def test_stripes_before_is_prefix_sum():
    regions = [
        StripeRegion(300.0, 96, 0, 3),
        StripeRegion(310.0, 96, 2, 2),
        StripeRegion(320.0, 96, 1, 3),
        StripeRegion(330.0, 96, 0, 1),
    ]
    assert list(stripes_before(regions)) == [0, 3, 3, 5]
    assert list(stripes_before([])) == []


def test_empty_range_contributes_nothing():
    regions = [StripeRegion(300.0, 96, 2, 2), StripeRegion(310.0, 96, 0, 2)]
    truth = build_truth_positions(regions, n_copies=3)
    assert len(truth) == 6
    assert set(truth.region_index) == {1}


def test_truth_positions_are_read_only(two_stripe_region):
    truth = build_truth_positions(two_stripe_region, n_copies=1)
    with pytest.raises(ValueError):
        truth.x[0] = 0.0
    pos = truth[0]
    assert pos.radius == pytest.approx(40.0)
    assert pos.longitudinal == 0.0
    assert pos.x == pytest.approx(truth.x[0])


@pytest.mark.parametrize(
    "region",
    [
        StripeRegion(300.0, 4, 0, 5),
        StripeRegion(300.0, 96, -1, 2),
        StripeRegion(300.0, 96, 3, 2),
        StripeRegion(0.0, 96, 0, 2),
        StripeRegion(300.0, 0, 0, 0),
    ],
)
def test_bad_regions_rejected(region):
    with pytest.raises(ConfigurationError):
        build_truth_positions([region])


def test_non_positive_copies_rejected(two_stripe_region):
    with pytest.raises(ConfigurationError):
        build_truth_positions(two_stripe_region, n_copies=0)
