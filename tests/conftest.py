import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from cm_distortion.distortion_geometry import StripeRegion, build_truth_positions, default_regions
from cm_distortion.distortion_matching import ObservedCluster


@pytest.fixture
def two_stripe_region():
    return [StripeRegion(radius=400.0, n_pads=128, keep_from=0, keep_until=2)]


@pytest.fixture
def default_truth():
    return build_truth_positions(default_regions())


@pytest.fixture
def make_clusters():
    def clusters_at_truth(truth, dr=0.05, z=10.0, n_clusters=1):
        """One cluster per truth position, pushed outward by dr."""
        r = np.asarray(truth.radius) + dr
        phi = np.asarray(truth.angle)
        return [
            ObservedCluster(float(ri * np.cos(p)), float(ri * np.sin(p)), z, n_clusters)
            for ri, p in zip(r, phi)
        ]

    return clusters_at_truth
