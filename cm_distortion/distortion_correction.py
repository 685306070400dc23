"""
Grid-based position correction.

Turns an accumulated grid into a correction: the mean residual of each cell
is interpolated at a cluster's (phi, r) and subtracted from its position.
"""

from typing import Protocol, Tuple

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from .distortion_grid import QUANTITIES, SIDES, AccumulationGrid


class CorrectionProvider(Protocol):
    def correct(self, x, y, z) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        ...


def fill_guard_bins(mean_map: np.ndarray, periodic: bool) -> np.ndarray:
    """
    Guard rows on a full circle are copied from the opposite edge. On a
    partial grid, empty guard cells take the adjacent edge value and
    guard cells with their own entries are kept. Remaining empty cells
    become zero residual.
    """
    filled = np.array(mean_map, dtype=float)
    if periodic:
        filled[0] = filled[-2]
        filled[-1] = filled[1]
    else:
        for guard, edge in ((0, 1), (-1, -2)):
            empty = np.isnan(filled[guard])
            filled[guard, empty] = filled[edge, empty]
    return np.nan_to_num(filled, nan=0.0)


class GridDistortionCorrection:
    def __init__(self, grid: AccumulationGrid):
        geom = grid.geometry
        self.geometry = geom
        maps = grid.mean_maps()
        points = (geom.phi_centers, geom.r_centers)
        self._interp = {}
        for side in SIDES:
            for q in QUANTITIES:
                values = fill_guard_bins(maps[side][q], geom.is_periodic)
                self._interp[side, q] = RegularGridInterpolator(
                    points, values, method="linear", bounds_error=False, fill_value=None
                )

    def residuals(self, phi, r, z) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Interpolated (dphi, dr, dz) at the given positions."""
        geom = self.geometry
        phi = geom.wrap_phi(np.atleast_1d(phi))
        r_centers = geom.r_centers
        r = np.atleast_1d(np.asarray(r, dtype=float))
        r = np.clip(r, r_centers[0], r_centers[-1])
        z = np.atleast_1d(np.asarray(z, dtype=float))
        pts = np.column_stack([phi, r])
        side = AccumulationGrid.side_index(z)

        out = {q: np.zeros(len(phi)) for q in QUANTITIES}
        for s, name in enumerate(SIDES):
            sel = side == s
            if not np.any(sel):
                continue
            for q in QUANTITIES:
                out[q][sel] = self._interp[name, q](pts[sel])
        return out["phi"], out["r"], out["z"]

    def correct(self, x, y, z) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        x = np.atleast_1d(np.asarray(x, dtype=float))
        y = np.atleast_1d(np.asarray(y, dtype=float))
        z = np.atleast_1d(np.asarray(z, dtype=float))
        r = np.hypot(x, y)
        phi = np.arctan2(y, x)
        dphi, dr, dz = self.residuals(phi, r, z)
        r_corr = r - dr
        phi_corr = phi - dphi
        return r_corr * np.cos(phi_corr), r_corr * np.sin(phi_corr), z - dz
