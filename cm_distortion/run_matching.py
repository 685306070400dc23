"""
Central Membrane Matching Script
================================
Runs the matcher over a list of cluster catalogs, one pass per file.

Usage:
    python -m cm_distortion.run_matching clusters/*.ecsv [--config config.yml]

Outputs (under the working directory):
    results/<stem>_records.ecsv   matched pairs of each pass
    results/<label>_grid.fits     run-to-date accumulation grid
    plots/                        residual diagnostics and grid maps
"""

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from .distortion_config import MatcherConfig, load_config
from .distortion_correction import GridDistortionCorrection
from .distortion_io import (
    read_cluster_catalog,
    read_grid_fits,
    write_grid_fits,
    write_records,
)
from .distortion_pipeline import CentralMembraneMatcher
from .distortion_plotting import MatchDiagnostics, plot_grid_maps
from .distortion_records import TableRecordSink
from .exceptions import MissingInputError
from .logging_config import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "..", "config.yml")
)
DEFAULT_WORKING_DIR = "./cm_distortion_output"


def build_matcher(config: MatcherConfig, correction_file=None, label="cm_matcher"):
    correction = None
    if correction_file:
        correction = GridDistortionCorrection(read_grid_fits(correction_file))
        print(f"Using correction grid: {correction_file}")

    sink = TableRecordSink()
    diagnostics = MatchDiagnostics(config.plot_dir, label=label)
    matcher = CentralMembraneMatcher(
        config, correction=correction, record_sink=sink, diagnostics=diagnostics
    )
    return matcher, sink


def process_single_file(matcher, sink, cluster_file, res_dir):
    """Runs one pass; returns False when the pass was aborted."""
    print(f"\nProcessing: {cluster_file}")
    try:
        clusters = read_cluster_catalog(cluster_file)
        result = matcher.process_pass(clusters)
    except MissingInputError as e:
        logger.error("Pass aborted for %s: %s", cluster_file, e)
        return False

    out_file = os.path.join(res_dir, f"{Path(cluster_file).stem}_records.ecsv")
    write_records(sink.to_table(), out_file)
    sink.clear()
    print(
        f"  Matched {len(result.pairs)} of {len(matcher.truth)} truth positions "
        f"({result.n_observed} clusters, {result.n_folded} folded)"
    )
    return True


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Match central-membrane clusters and accumulate distortion grids."
    )
    parser.add_argument(
        "cluster_files", nargs="+", help="Cluster catalogs, one per pass"
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="YAML configuration")
    parser.add_argument(
        "--output-dir", default=None, help="Working directory for outputs"
    )
    parser.add_argument(
        "--correction",
        default=None,
        help="Grid FITS file used to pre-correct clusters",
    )
    parser.add_argument("--label", default="cm_matcher", help="Prefix for output files")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    if os.path.exists(args.config):
        config = load_config(args.config, working_dir=args.output_dir)
    else:
        print(f"Warning: config file {args.config} not found. Using defaults.")
        config = MatcherConfig(working_dir=args.output_dir or DEFAULT_WORKING_DIR)
    if config.working_dir is None:
        config = replace(config, working_dir=DEFAULT_WORKING_DIR)

    matcher, sink = build_matcher(config, args.correction, args.label)

    print(f"\n{'=' * 60}\nMATCHING {len(args.cluster_files)} passes\n{'=' * 60}")
    n_failed = 0
    for f in sorted(args.cluster_files):
        if not process_single_file(matcher, sink, f, config.res_dir):
            n_failed += 1

    grid = matcher.end_run()
    write_grid_fits(grid, os.path.join(config.res_dir, f"{args.label}_grid.fits"))
    plot_grid_maps(grid, config.plot_dir, args.label)

    print(
        f"\nDone: {matcher.n_passes} passes, {matcher.n_matched} matches, "
        f"{n_failed} failed."
    )
    return 1 if n_failed else 0


if __name__ == "__main__":
    sys.exit(main())
