import numpy as np
import pytest
from astropy.table import Table

from cm_distortion.distortion_geometry import build_truth_positions
from cm_distortion.distortion_matching import (
    MatchedPair,
    ObservedCluster,
    cluster_table,
    find_matches,
    match_clusters,
)
from cm_distortion.exceptions import ConfigurationError, MissingInputError


def test_first_candidate_in_input_order_wins():
    # Both clusters are inside the box; the farther one comes first
    pairs = find_matches(
        truth_radius=[40.0],
        truth_angle=[0.5],
        obs_radius=[40.4, 40.01, 40.0],
        obs_angle=[0.5, 0.5, 0.5],
        rad_cut=0.5,
        phi_cut=0.01,
    )
    assert pairs == [(0, 0)]


def test_observation_shared_by_adjacent_truth_points():
    # One cluster equidistant to two truth points: the lower index is paired
    # first and the cluster stays available to the next truth point
    pairs = find_matches(
        truth_radius=[40.0, 40.0],
        truth_angle=[0.0, 0.01],
        obs_radius=[40.0],
        obs_angle=[0.005],
        rad_cut=0.5,
        phi_cut=0.01,
    )
    assert pairs == [(0, 0), (1, 0)]
    assert pairs[0][0] < pairs[1][0]


@pytest.mark.parametrize(
    "obs_radius, expected",
    [(40.5, []), (39.5, []), (40.25, [(0, 0)]), (39.75, [(0, 0)])],
)
def test_radius_tolerance_is_exclusive(obs_radius, expected):
    pairs = find_matches([40.0], [0.5], [obs_radius], [0.5], rad_cut=0.5, phi_cut=0.25)
    assert pairs == expected


@pytest.mark.parametrize(
    "obs_angle, expected",
    [(0.75, []), (0.25, []), (0.625, [(0, 0)]), (0.375, [(0, 0)])],
)
def test_angle_tolerance_is_exclusive(obs_angle, expected):
    pairs = find_matches([40.0], [0.5], [40.0], [obs_angle], rad_cut=0.5, phi_cut=0.25)
    assert pairs == expected


def test_outside_on_one_axis_only_is_unmatched():
    assert find_matches([40.0], [0.5], [40.0], [0.52], rad_cut=0.5, phi_cut=0.01) == []
    assert find_matches([40.0], [0.5], [41.0], [0.5], rad_cut=0.5, phi_cut=0.01) == []


def test_angles_are_not_wrapped():
    near_pi = np.pi - 0.001
    pairs = find_matches([40.0], [near_pi], [40.0], [-near_pi], rad_cut=0.5, phi_cut=0.01)
    assert pairs == []


def test_nearest_policy_is_opt_in():
    kwargs = dict(
        truth_radius=[40.0],
        truth_angle=[0.5],
        obs_radius=[40.4, 40.01],
        obs_angle=[0.5, 0.5],
        rad_cut=0.5,
        phi_cut=0.01,
    )
    assert find_matches(**kwargs) == [(0, 0)]
    assert find_matches(policy="nearest", **kwargs) == [(0, 1)]


def test_empty_inputs():
    assert find_matches([], [], [40.0], [0.0], 0.5, 0.01) == []
    assert find_matches([40.0], [0.0], [], [], 0.5, 0.01) == []


@pytest.mark.parametrize("kwargs", [{"rad_cut": 0.0}, {"phi_cut": -1.0}, {"policy": "closest"}])
def test_bad_match_settings(kwargs):
    args = dict(rad_cut=0.5, phi_cut=0.01, policy="first")
    args.update(kwargs)
    with pytest.raises(ConfigurationError):
        find_matches([40.0], [0.0], [40.0], [0.0], **args)


def test_end_to_end_single_pair(two_stripe_region):
    truth = build_truth_positions(two_stripe_region, n_copies=1)
    assert len(truth) == 2
    r0, phi0 = truth.radius[0] + 0.1, truth.angle[0]
    clusters = [ObservedCluster(r0 * np.cos(phi0), r0 * np.sin(phi0), 1.0, 1)]

    pairs = match_clusters(truth, clusters, rad_cut=1.0, phi_cut=0.01)

    assert pairs == [MatchedPair(truth_index=0, observed_index=0, n_clusters=1)]


def test_matching_is_repeatable(default_truth, make_clusters):
    clusters = make_clusters(default_truth, dr=0.1)
    first = match_clusters(default_truth, clusters, 0.5, 0.01)
    second = match_clusters(default_truth, clusters, 0.5, 0.01)
    assert first == second
    assert len(first) == len(default_truth)
    assert [p.truth_index for p in first] == list(range(len(default_truth)))


def test_cluster_count_carried(two_stripe_region):
    truth = build_truth_positions(two_stripe_region, n_copies=1)
    tab = Table(
        {
            "x": [truth.x[1]],
            "y": [truth.y[1]],
            "z": [-3.0],
            "n_clusters": np.array([2], dtype=np.uint32),
        }
    )
    pairs = match_clusters(truth, tab, rad_cut=0.5, phi_cut=0.01)
    assert pairs == [MatchedPair(1, 0, 2)]


def test_cluster_table_validation():
    with pytest.raises(MissingInputError):
        cluster_table(None)
    with pytest.raises(MissingInputError):
        cluster_table(Table({"x": [1.0], "y": [2.0]}))
    tab = cluster_table([ObservedCluster(1.0, 2.0, 3.0, 4)])
    assert list(tab.colnames) == ["x", "y", "z", "n_clusters"]
    assert len(cluster_table([])) == 0
