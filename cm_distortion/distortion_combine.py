"""
Distortion Grid Combination
Usage:
    python -m cm_distortion.distortion_combine [--input_dir DIR] [--output FILE]

Description:
    1. Scans for *_grid.fits files written by run_matching.
    2. Checks that all grids share one geometry.
    3. Sums residuals and entries into a master grid (folds are additive, so
       this equals a single run over all passes).
    4. Writes the master grid and its residual maps.
"""

import argparse
import glob
import os
from typing import Sequence

from .distortion_grid import AccumulationGrid
from .distortion_io import read_grid_fits, write_grid_fits
from .distortion_plotting import plot_grid_maps

FILE_PATTERN = "*_grid.fits"


def combine_grids(grids: Sequence[AccumulationGrid]) -> AccumulationGrid:
    if not grids:
        raise ValueError("No grids to combine.")
    master = AccumulationGrid(grids[0].geometry)
    for grid in grids:
        master.merge(grid)
    return master


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Combine accumulated distortion grids."
    )
    parser.add_argument(
        "--input_dir",
        default="./cm_distortion_output/results",
        help="Dir with grid files",
    )
    parser.add_argument("--output", default=None, help="Master grid file")
    args = parser.parse_args(argv)

    files = sorted(glob.glob(os.path.join(args.input_dir, FILE_PATTERN)))
    files = [f for f in files if "MASTER" not in os.path.basename(f)]
    if not files:
        print(f"No grid files found in {args.input_dir}")
        return 1

    print(f"Reading {len(files)} grid files...")
    master = combine_grids([read_grid_fits(f) for f in files])

    output = args.output or os.path.join(args.input_dir, "MASTER_grid.fits")
    write_grid_fits(master, output)
    plot_grid_maps(master, os.path.dirname(os.path.abspath(output)), "MASTER")
    print(f"Master grid: {master.n_entries} entries -> {output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
