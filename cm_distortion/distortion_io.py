"""
Grid and catalog I/O.

Accumulation grids are stored as FITS: geometry in the primary header, one
image extension per side and quantity (``SUM_PHI_NEGZ``, ..., ``ENTRIES_POSZ``).
"""

import datetime
import logging
import os

import numpy as np
from astropy.io import fits
from astropy.table import Table

from .distortion_grid import SIDES, AccumulationGrid, GridGeometry
from .distortion_matching import CLUSTER_COLUMNS
from .exceptions import MissingInputError

logger = logging.getLogger(__name__)

_GRID_ARRAYS = ("sum_phi", "sum_r", "sum_z", "entries")


def _ext_name(array_name, side):
    return f"{array_name}_{side}".upper()


def write_grid_fits(
    grid: AccumulationGrid, filename: str, overwrite: bool = True
) -> None:
    geom = grid.geometry
    header = fits.Header()
    header["PHIBINS"] = (geom.phi_bins, "nominal angle bins (2 guard bins extra)")
    header["RBINS"] = (geom.r_bins, "radius bins")
    header["PHIMIN"] = (geom.phi_min, "nominal angle min [rad]")
    header["PHIMAX"] = (geom.phi_max, "nominal angle max [rad]")
    header["RMIN"] = (geom.r_min, "radius min [cm]")
    header["RMAX"] = (geom.r_max, "radius max [cm]")
    header["NENTRIES"] = (grid.n_entries, "total folded entries")
    header["DATE"] = datetime.datetime.now(datetime.timezone.utc).isoformat()

    hdus = [fits.PrimaryHDU(header=header)]
    for name in _GRID_ARRAYS:
        data = getattr(grid, name)
        for s, side in enumerate(SIDES):
            hdus.append(fits.ImageHDU(data=data[s], name=_ext_name(name, side)))
    fits.HDUList(hdus).writeto(filename, overwrite=overwrite)
    logger.info("Grid saved to: %s", filename)


def read_grid_fits(filename: str) -> AccumulationGrid:
    if not os.path.exists(filename):
        raise MissingInputError(f"Grid file not found: {filename}")
    with fits.open(filename) as hdul:
        h = hdul[0].header
        geom = GridGeometry(
            phi_bins=int(h["PHIBINS"]),
            r_bins=int(h["RBINS"]),
            phi_min=float(h["PHIMIN"]),
            phi_max=float(h["PHIMAX"]),
            r_min=float(h["RMIN"]),
            r_max=float(h["RMAX"]),
        )
        grid = AccumulationGrid(geom)
        for name in _GRID_ARRAYS:
            arr = getattr(grid, name)
            for s, side in enumerate(SIDES):
                arr[s] = hdul[_ext_name(name, side)].data
    return grid


def read_cluster_catalog(filename: str) -> Table:
    """Reads one pass of clusters; columns x, y, z, n_clusters are required."""
    if not os.path.exists(filename):
        raise MissingInputError(f"Cluster catalog not found: {filename}")
    tab = Table.read(filename)
    missing = [c for c in CLUSTER_COLUMNS if c not in tab.colnames]
    if missing:
        raise MissingInputError(
            f"{os.path.basename(filename)} is missing columns: {missing}"
        )
    tab.meta["source_file"] = filename
    return tab


def write_records(table: Table, filename: str, overwrite: bool = True) -> None:
    table.write(filename, overwrite=overwrite)
    logger.info("Wrote %d records to %s", len(table), filename)


def grid_arrays_equal(a: AccumulationGrid, b: AccumulationGrid) -> bool:
    return a.geometry == b.geometry and all(
        np.array_equal(getattr(a, n), getattr(b, n)) for n in _GRID_ARRAYS
    )
