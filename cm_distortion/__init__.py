"""
Central Membrane Distortion Package
-----------------------------------
Matches reconstructed central-membrane clusters to the known stripe pattern
and accumulates the residuals into (phi, r) distortion grids.

Modules:
    distortion_geometry: Truth stripe pattern.
    distortion_matching: Truth-to-cluster matching.
    distortion_grid: Accumulation grids.
    distortion_pipeline: Per-pass controller.
    run_matching: Batch processing script.
    distortion_combine: Master grid generator.
"""

from .distortion_config import MatcherConfig, load_config
from .distortion_geometry import (
    StripeRegion,
    TruthPosition,
    build_truth_positions,
    default_regions,
)
from .distortion_grid import AccumulationGrid, GridGeometry
from .distortion_matching import MatchedPair, ObservedCluster, match_clusters
from .distortion_pipeline import CentralMembraneMatcher, PassResult
from .distortion_records import DistortionRecord, TableRecordSink
from .exceptions import ConfigurationError, MissingInputError

__version__ = "1.0.0"
