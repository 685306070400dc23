"""
Central Membrane Matcher
------------------------
Orchestrates one run of central-membrane distortion matching:
1. Builds the static truth pattern once.
2. Per pass, optionally corrects the cluster positions, matches them to the
   truth pattern and emits one DistortionRecord per matched pair.
3. Folds the residuals into a per-pass grid and a run-to-date grid.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

import numpy as np

from .distortion_config import MatcherConfig
from .distortion_correction import CorrectionProvider
from .distortion_geometry import StripeRegion, build_truth_positions, default_regions
from .distortion_grid import AccumulationGrid, GridGeometry
from .distortion_matching import MatchedPair, cluster_table, match_clusters, to_polar
from .distortion_records import DiagnosticSink, DistortionRecord, RecordSink

logger = logging.getLogger(__name__)


@dataclass
class PassResult:
    pairs: List[MatchedPair]
    records: List[DistortionRecord]
    n_observed: int
    n_folded: int


class CentralMembraneMatcher:
    def __init__(
        self,
        config: Optional[MatcherConfig] = None,
        regions: Optional[Sequence[StripeRegion]] = None,
        correction: Optional[CorrectionProvider] = None,
        record_sink: Optional[RecordSink] = None,
        diagnostics: Optional[DiagnosticSink] = None,
    ):
        self.config = config if config is not None else MatcherConfig()
        self.regions = list(regions) if regions is not None else default_regions()
        self.correction = correction
        self.record_sink = record_sink
        self.diagnostics = diagnostics

        self.truth = build_truth_positions(self.regions, n_copies=self.config.n_petals)
        geometry = self.config.grid_geometry()
        self.pass_grid = AccumulationGrid(geometry)
        self.run_grid = AccumulationGrid(geometry)

        self.n_passes = 0
        self.n_matched = 0

        if self.diagnostics is not None:
            self.diagnostics.truth(self.truth)

    @property
    def grid_geometry(self) -> GridGeometry:
        return self.run_grid.geometry

    def set_grid_dimensions(self, phi_bins: int, r_bins: int) -> None:
        """Rebuilds both grids with new bin counts, dropping their content."""
        new_config = replace(self.config, phi_bins=phi_bins, r_bins=r_bins)
        new_geom = new_config.grid_geometry()
        if self.run_grid.n_entries > 0:
            logger.warning(
                "Grid dimensions changed after %d passes; "
                "discarding %d accumulated entries",
                self.n_passes,
                self.run_grid.n_entries,
            )
        self.config = new_config
        self.pass_grid.build(new_geom)
        self.run_grid.build(new_geom)
        logger.info(
            "Grid rebuilt: %d phi bins (+2 guard) x %d r bins", phi_bins, r_bins
        )

    def process_pass(self, clusters) -> PassResult:
        """
        Matches one pass of clusters and folds the residuals.

        Raises MissingInputError before touching any state when the cluster
        collection is absent or incomplete.
        """
        tab = cluster_table(clusters)

        x = np.asarray(tab["x"], dtype=float)
        y = np.asarray(tab["y"], dtype=float)
        z = np.asarray(tab["z"], dtype=float)
        if self.correction is not None and len(tab) > 0:
            x, y, z = self.correction.correct(x, y, z)
            tab = tab.copy()
            tab["x"], tab["y"], tab["z"] = x, y, z

        pairs = match_clusters(
            self.truth,
            tab,
            self.config.rad_cut,
            self.config.phi_cut,
            policy=self.config.match_policy,
        )

        obs_r, obs_phi = to_polar(x, y)
        truth = self.truth
        records = []
        for pair in pairs:
            i, j = pair.truth_index, pair.observed_index
            record = DistortionRecord(
                truth_phi=float(truth.angle[i]),
                truth_r=float(truth.radius[i]),
                truth_z=float(truth.z[i]),
                obs_phi=float(obs_phi[j]),
                obs_r=float(obs_r[j]),
                obs_z=float(z[j]),
                n_clusters=pair.n_clusters,
            )
            records.append(record)
            if self.record_sink is not None:
                self.record_sink.add(i, record)

        self.pass_grid.reset()
        n_folded = self.pass_grid.fold_records(records)
        self.run_grid.merge(self.pass_grid)

        if self.diagnostics is not None:
            self.diagnostics.observed(x, y)
            self.diagnostics.matched(records)

        self.n_passes += 1
        self.n_matched += len(pairs)
        logger.info(
            "Pass %d: %d clusters, %d matched, %d folded",
            self.n_passes,
            len(tab),
            len(pairs),
            n_folded,
        )
        return PassResult(pairs, records, len(tab), n_folded)

    def end_run(self) -> AccumulationGrid:
        if self.diagnostics is not None:
            self.diagnostics.finalize()
        logger.info(
            "Run finished: %d passes, %d matches, %d grid entries",
            self.n_passes,
            self.n_matched,
            self.run_grid.n_entries,
        )
        return self.run_grid
