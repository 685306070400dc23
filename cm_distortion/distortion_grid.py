"""
Distortion Accumulation Grid
----------------------------
Binned running sums of (phi, r, z) residuals on an (angle, radius) grid,
one grid per side of the central membrane.

The angle axis carries one guard bin beyond each nominal edge so that
downstream interpolation never reads out of range. Folds only add, so the
grid content does not depend on the order in which pairs are folded.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np

from .distortion_records import DistortionRecord, records_to_arrays
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SIDES = ("negz", "posz")
QUANTITIES = ("phi", "r", "z")


def _wrap_from(phi: np.ndarray, start: float) -> np.ndarray:
    wrapped = start + np.mod(phi - start, 2.0 * np.pi)
    # np.mod of a tiny negative offset rounds up to exactly 2pi
    return np.where(wrapped >= start + 2.0 * np.pi, start, wrapped)


@dataclass(frozen=True)
class GridGeometry:
    phi_bins: int
    r_bins: int
    phi_min: float = 0.0
    phi_max: float = 2.0 * np.pi
    r_min: float = 20.0
    r_max: float = 78.0

    def __post_init__(self):
        if self.phi_bins <= 0 or self.r_bins <= 0:
            raise ConfigurationError(
                f"Bin counts must be positive (phi_bins={self.phi_bins}, "
                f"r_bins={self.r_bins})"
            )
        if not self.phi_min < self.phi_max:
            raise ConfigurationError(
                f"phi_min ({self.phi_min}) must be below phi_max ({self.phi_max})"
            )
        if not self.r_min < self.r_max:
            raise ConfigurationError(
                f"r_min ({self.r_min}) must be below r_max ({self.r_max})"
            )

    @property
    def phi_bin_width(self) -> float:
        return (self.phi_max - self.phi_min) / self.phi_bins

    @property
    def r_bin_width(self) -> float:
        return (self.r_max - self.r_min) / self.r_bins

    @property
    def extended_phi_min(self) -> float:
        return self.phi_min - self.phi_bin_width

    @property
    def extended_phi_max(self) -> float:
        return self.phi_max + self.phi_bin_width

    @property
    def n_phi(self) -> int:
        """Angle cells including the two guard bins."""
        return self.phi_bins + 2

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.n_phi, self.r_bins)

    @property
    def phi_edges(self) -> np.ndarray:
        return np.linspace(self.extended_phi_min, self.extended_phi_max, self.n_phi + 1)

    @property
    def r_edges(self) -> np.ndarray:
        return np.linspace(self.r_min, self.r_max, self.r_bins + 1)

    @property
    def phi_centers(self) -> np.ndarray:
        edges = self.phi_edges
        return 0.5 * (edges[:-1] + edges[1:])

    @property
    def r_centers(self) -> np.ndarray:
        edges = self.r_edges
        return 0.5 * (edges[:-1] + edges[1:])

    @property
    def is_periodic(self) -> bool:
        return np.isclose(self.phi_max - self.phi_min, 2.0 * np.pi)

    def wrap_phi(self, phi) -> np.ndarray:
        """
        Maps angles onto the grid's angle axis.

        A full-circle grid wraps into [phi_min, phi_min + 2pi). A partial
        grid keeps angles already inside the guard-extended range and wraps
        the rest into [extended_phi_min, extended_phi_min + 2pi).
        """
        phi = np.asarray(phi, dtype=float)
        if self.is_periodic:
            return _wrap_from(phi, self.phi_min)
        ext_min, ext_max = self.extended_phi_min, self.extended_phi_max
        inside = (phi >= ext_min) & (phi < ext_max)
        return np.where(inside, phi, _wrap_from(phi, ext_min))

    def locate(self, phi, r) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Cell indices of (phi, r) points on the guard-extended grid.

        Returns ``(iphi, ir, valid)``; invalid points fall outside the grid.
        """
        phi = self.wrap_phi(phi)
        r = np.asarray(r, dtype=float)
        iphi = np.floor((phi - self.extended_phi_min) / self.phi_bin_width).astype(int)
        ir = np.floor((r - self.r_min) / self.r_bin_width).astype(int)
        valid = (iphi >= 0) & (iphi < self.n_phi) & (ir >= 0) & (ir < self.r_bins)
        return iphi, ir, valid


class AccumulationGrid:
    """
    Running residual sums and entry counts for both membrane sides.

    Arrays have shape ``(2, n_phi, r_bins)``; side 0 is ``negz``.
    """

    def __init__(self, geometry: GridGeometry):
        self.build(geometry)

    def build(self, geometry: GridGeometry) -> None:
        """(Re)allocates the grid; any accumulated content is discarded."""
        self.geometry = geometry
        shape = (len(SIDES),) + geometry.shape
        self.sum_phi = np.zeros(shape)
        self.sum_r = np.zeros(shape)
        self.sum_z = np.zeros(shape)
        self.entries = np.zeros(shape, dtype=np.int64)

    def reset(self) -> None:
        self.build(self.geometry)

    @property
    def n_entries(self) -> int:
        return int(self.entries.sum())

    @staticmethod
    def side_index(obs_z) -> np.ndarray:
        return (np.asarray(obs_z, dtype=float) >= 0).astype(int)

    def fold(self, truth_phi, truth_r, obs_z, dphi, dr, dz) -> int:
        """
        Adds residuals into the cells of their truth positions.

        Returns the number of entries folded; truth points outside the
        radius range are skipped.
        """
        truth_phi = np.atleast_1d(np.asarray(truth_phi, dtype=float))
        truth_r = np.atleast_1d(np.asarray(truth_r, dtype=float))
        side = self.side_index(np.atleast_1d(obs_z))
        iphi, ir, valid = self.geometry.locate(truth_phi, truth_r)

        n_skipped = int(np.count_nonzero(~valid))
        if n_skipped:
            logger.debug("Skipped %d residuals outside the grid", n_skipped)

        idx = (side[valid], iphi[valid], ir[valid])
        np.add.at(self.sum_phi, idx, np.atleast_1d(dphi)[valid])
        np.add.at(self.sum_r, idx, np.atleast_1d(dr)[valid])
        np.add.at(self.sum_z, idx, np.atleast_1d(dz)[valid])
        np.add.at(self.entries, idx, 1)
        return int(np.count_nonzero(valid))

    def fold_records(self, records: Sequence[DistortionRecord]) -> int:
        if not records:
            return 0
        cols = records_to_arrays(records)
        dphi, dr, dz = np.array([r.residuals() for r in records]).T
        return self.fold(
            cols["truth_phi"], cols["truth_r"], cols["obs_z"], dphi, dr, dz
        )

    def merge(self, other: "AccumulationGrid") -> None:
        if other.geometry != self.geometry:
            raise ConfigurationError(
                f"Cannot merge grids of different geometry: "
                f"{other.geometry} vs {self.geometry}"
            )
        self.sum_phi += other.sum_phi
        self.sum_r += other.sum_r
        self.sum_z += other.sum_z
        self.entries += other.entries

    def copy(self) -> "AccumulationGrid":
        new = AccumulationGrid(self.geometry)
        new.merge(self)
        return new

    def mean_maps(self) -> Dict[str, Dict[str, np.ndarray]]:
        """Average residual per cell, NaN where a cell has no entries."""
        maps = {}
        for s, side in enumerate(SIDES):
            n = self.entries[s].astype(float)
            maps[side] = {}
            for q, sums in zip(QUANTITIES, (self.sum_phi, self.sum_r, self.sum_z)):
                mean = np.full(n.shape, np.nan)
                np.divide(sums[s], n, out=mean, where=n > 0)
                maps[side][q] = mean
        return maps
