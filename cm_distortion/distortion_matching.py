"""
Truth-to-Cluster Matching
Pairs each truth stripe center with at most one reconstructed cluster.

The default policy takes, for each truth position in truth-index order, the
FIRST cluster (in input order) inside the radius/angle box, not the closest
one. A cluster may serve several truth positions.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

import numpy as np
from astropy.table import Table
from scipy.spatial import cKDTree

from .exceptions import ConfigurationError, MissingInputError

logger = logging.getLogger(__name__)

CLUSTER_COLUMNS = ("x", "y", "z", "n_clusters")
MATCH_POLICIES = ("first", "nearest")

# Widens the tree query so scaled round-off never drops a candidate; the
# strict test on unscaled differences decides.
_QUERY_MARGIN = 1e-9


@dataclass(frozen=True)
class ObservedCluster:
    x: float
    y: float
    z: float
    n_clusters: int = 1

    @property
    def radius(self) -> float:
        return float(np.hypot(self.x, self.y))

    @property
    def angle(self) -> float:
        return float(np.arctan2(self.y, self.x))


@dataclass(frozen=True)
class MatchedPair:
    truth_index: int
    observed_index: int
    n_clusters: int


def cluster_table(clusters: Union[Table, Sequence[ObservedCluster]]) -> Table:
    """Normalises the per-pass cluster input into a Table."""
    if clusters is None:
        raise MissingInputError("No cluster collection supplied for this pass.")
    if isinstance(clusters, Table):
        missing = [c for c in CLUSTER_COLUMNS if c not in clusters.colnames]
        if missing:
            raise MissingInputError(f"Cluster table is missing columns: {missing}")
        return clusters
    rows = list(clusters)
    tab = Table(
        [
            np.array([c.x for c in rows], dtype=float),
            np.array([c.y for c in rows], dtype=float),
            np.array([c.z for c in rows], dtype=float),
            np.array([c.n_clusters for c in rows], dtype=np.uint32),
        ],
        names=CLUSTER_COLUMNS,
    )
    return tab


def to_polar(x, y) -> Tuple[np.ndarray, np.ndarray]:
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    return np.hypot(x, y), np.arctan2(y, x)


def find_matches(
    truth_radius: np.ndarray,
    truth_angle: np.ndarray,
    obs_radius: np.ndarray,
    obs_angle: np.ndarray,
    rad_cut: float,
    phi_cut: float,
    policy: str = "first",
) -> List[Tuple[int, int]]:
    """
    Returns ``(truth_index, observed_index)`` pairs in truth-index order.

    A cluster is a candidate for a truth position when
    ``|dr| < rad_cut`` and ``|dphi| < phi_cut`` (both strict). Angles are
    compared as given, without wrapping.
    """
    if rad_cut <= 0 or phi_cut <= 0:
        raise ConfigurationError(
            f"Match tolerances must be positive (rad_cut={rad_cut}, phi_cut={phi_cut})"
        )
    if policy not in MATCH_POLICIES:
        raise ConfigurationError(
            f"Unknown match policy '{policy}', expected one of {MATCH_POLICIES}"
        )

    truth_radius = np.asarray(truth_radius, dtype=float)
    truth_angle = np.asarray(truth_angle, dtype=float)
    obs_radius = np.asarray(obs_radius, dtype=float)
    obs_angle = np.asarray(obs_angle, dtype=float)
    if len(truth_radius) == 0 or len(obs_radius) == 0:
        return []

    # Box tolerance becomes a unit Chebyshev ball in scaled coordinates
    obs_scaled = np.column_stack([obs_radius / rad_cut, obs_angle / phi_cut])
    truth_scaled = np.column_stack([truth_radius / rad_cut, truth_angle / phi_cut])
    tree = cKDTree(obs_scaled)
    candidates = tree.query_ball_point(
        truth_scaled, r=1.0 + _QUERY_MARGIN, p=np.inf
    )

    pairs = []
    for i, cand in enumerate(candidates):
        if not cand:
            continue
        cand = np.sort(np.asarray(cand, dtype=int))
        dr = np.abs(obs_radius[cand] - truth_radius[i])
        dphi = np.abs(obs_angle[cand] - truth_angle[i])
        inside = (dr < rad_cut) & (dphi < phi_cut)
        if not np.any(inside):
            continue
        if policy == "first":
            j = cand[np.argmax(inside)]
        else:
            dist = np.hypot(dr[inside] / rad_cut, dphi[inside] / phi_cut)
            j = cand[inside][np.argmin(dist)]
        pairs.append((i, int(j)))
    return pairs


def match_clusters(
    truth,
    clusters: Union[Table, Sequence[ObservedCluster]],
    rad_cut: float,
    phi_cut: float,
    policy: str = "first",
) -> List[MatchedPair]:
    """Matches a TruthSet against one pass of clusters."""
    tab = cluster_table(clusters)
    obs_radius, obs_angle = to_polar(tab["x"], tab["y"])
    pairs = find_matches(
        truth.radius, truth.angle, obs_radius, obs_angle, rad_cut, phi_cut, policy
    )
    n_clusters = np.asarray(tab["n_clusters"], dtype=np.int64)
    matched = [MatchedPair(i, j, int(n_clusters[j])) for i, j in pairs]
    logger.debug(
        "Matched %d of %d truth positions to %d clusters",
        len(matched),
        len(truth),
        len(tab),
    )
    return matched
