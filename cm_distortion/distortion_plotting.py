"""
Central Membrane Diagnostic Plots
Residual histograms collected over a run and maps of accumulated grids.
"""

import logging
import os

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.gridspec import GridSpec

from .distortion_grid import QUANTITIES, SIDES
from .distortion_records import records_to_arrays

logger = logging.getLogger(__name__)

# Radial zones (cm) for the dr breakdown
INNER_ZONE_MAX = 40.0
MIDDLE_ZONE_MAX = 58.0


class MatchDiagnostics:
    """Collects per-pair residuals during a run and plots them at the end."""

    def __init__(self, output_dir, label="cm_matcher"):
        self.output_dir = output_dir
        self.label = label
        self.truth_xy = (np.zeros(0), np.zeros(0))
        self._reco_x, self._reco_y = [], []
        self._cols = {k: [] for k in ("dr", "dphi", "r", "n_clusters")}

    def truth(self, truth_set):
        self.truth_xy = (np.asarray(truth_set.x), np.asarray(truth_set.y))

    def observed(self, x, y):
        self._reco_x.append(np.asarray(x, dtype=float))
        self._reco_y.append(np.asarray(y, dtype=float))

    def matched(self, records):
        cols = records_to_arrays(records)
        res = np.array([r.residuals() for r in records]).reshape(-1, 3)
        self._cols["dphi"].append(res[:, 0])
        self._cols["dr"].append(res[:, 1])
        self._cols["r"].append(cols["truth_r"])
        self._cols["n_clusters"].append(cols["n_clusters"])

    def column(self, name):
        parts = self._cols[name]
        return np.concatenate(parts) if parts else np.zeros(0)

    def finalize(self):
        os.makedirs(self.output_dir, exist_ok=True)
        self.plot_positions()
        self.plot_residuals()
        self.plot_radial_zones()

    def plot_positions(self):
        reco_x = np.concatenate(self._reco_x) if self._reco_x else np.zeros(0)
        reco_y = np.concatenate(self._reco_y) if self._reco_y else np.zeros(0)
        fig, ax = plt.subplots(figsize=(10, 10))
        ax.scatter(
            reco_x, reco_y, s=2, alpha=0.3, c="k", edgecolors="none", label="reco"
        )
        ax.scatter(*self.truth_xy, s=4, c="r", marker="+", label="truth")
        ax.set_xlim(-100, 100)
        ax.set_ylim(-80, 80)
        ax.set_aspect("equal")
        ax.set_xlabel("x (cm)", fontsize=12)
        ax.set_ylabel("y (cm)", fontsize=12)
        ax.legend(loc="upper right")
        out_file = os.path.join(self.output_dir, f"{self.label}_xy.png")
        plt.savefig(out_file, dpi=150, bbox_inches="tight")
        plt.close(fig)

    def plot_residuals(self):
        dr, dphi, r = self.column("dr"), self.column("dphi"), self.column("r")
        nclus = self.column("n_clusters")

        fig = plt.figure(figsize=(14, 10))
        gs = GridSpec(2, 3, wspace=0.3, hspace=0.3)
        ax = fig.add_subplot(gs[0, 0])
        ax.hist2d(dr, dphi, bins=100, range=[[-0.5, 0.5], [-0.001, 0.001]], cmin=1)
        ax.set(xlabel="dr (cm)", ylabel="dphi (rad)", title="dr vs dphi")

        ax = fig.add_subplot(gs[0, 1])
        ax.hist2d(r, dr, bins=100, range=[[0.0, 80.0], [-0.5, 0.5]], cmin=1)
        ax.set(xlabel="r (cm)", ylabel="dr (cm)", title="dr vs r")

        ax = fig.add_subplot(gs[0, 2])
        ax.hist2d(r, dphi, bins=100, range=[[0.0, 80.0], [-0.001, 0.001]], cmin=1)
        ax.set(xlabel="r (cm)", ylabel="dphi (rad)", title="dphi vs r")

        ax = fig.add_subplot(gs[1, 0])
        ax.hist(r * dphi, bins=200, range=(-0.05, 0.05), color="gray", alpha=0.7)
        ax.set(xlabel="r * dphi (cm)", title="r * dphi")

        ax = fig.add_subplot(gs[1, 1])
        ax.hist(nclus, bins=100, range=(0.0, 3.0), color="gray", alpha=0.7)
        ax.set(xlabel="clusters per CM cluster", title="n clusters")

        ax = fig.add_subplot(gs[1, 2])
        ax.axis("off")
        stats = f"N matched: {len(dr)}"
        if len(dr) > 0:
            stats += f"\nmean dr: {np.mean(dr):.4f} cm"
            stats += f"\nmean dphi: {np.mean(dphi):.2e} rad"
        ax.text(0.05, 0.9, stats, transform=ax.transAxes, va="top", fontsize=12)

        out_file = os.path.join(self.output_dir, f"{self.label}_residuals.pdf")
        plt.savefig(out_file, bbox_inches="tight")
        plt.close(fig)
        logger.info("Saved residual plots: %s", out_file)

    def plot_radial_zones(self):
        """dr split into inner/middle/outer zones and single/multiple clusters."""
        dr, r, nclus = self.column("dr"), self.column("r"), self.column("n_clusters")
        zones = [
            ("inner", r < INNER_ZONE_MAX),
            ("mid", (r >= INNER_ZONE_MAX) & (r < MIDDLE_ZONE_MAX)),
            ("outer", r >= MIDDLE_ZONE_MAX),
        ]
        single = nclus == 1
        fig, axes = plt.subplots(2, 3, figsize=(15, 8), sharex=True)
        for col, (zone, in_zone) in enumerate(zones):
            kinds = [("single", single), ("double", ~single)]
            for row, (kind, sel) in enumerate(kinds):
                ax = axes[row, col]
                ax.hist(
                    dr[in_zone & sel], bins=200, range=(-0.2, 0.2), color="steelblue"
                )
                ax.set_title(f"{zone} dr {kind}")
        for ax in axes[1]:
            ax.set_xlabel("dr (cm)")
        fig.tight_layout()
        out_file = os.path.join(self.output_dir, f"{self.label}_dr_zones.pdf")
        plt.savefig(out_file, bbox_inches="tight")
        plt.close(fig)


def plot_grid_maps(grid, output_dir, label):
    """Mean residual and entry maps of an accumulation grid, both sides."""
    geom = grid.geometry
    maps = grid.mean_maps()
    phi_edges, r_edges = geom.phi_edges, geom.r_edges

    fig, axes = plt.subplots(len(SIDES), len(QUANTITIES) + 1, figsize=(20, 9))
    for s, side in enumerate(SIDES):
        panels = [(f"mean d{q} ({side})", maps[side][q]) for q in QUANTITIES]
        panels.append((f"entries ({side})", grid.entries[s].astype(float)))
        for c, (title, values) in enumerate(panels):
            ax = axes[s, c]
            mesh = ax.pcolormesh(
                phi_edges, r_edges, values.T, cmap="viridis", shading="flat"
            )
            ax.axvline(geom.phi_min, color="w", lw=1, ls=":")
            ax.axvline(geom.phi_max, color="w", lw=1, ls=":")
            ax.set_title(title)
            ax.set_xlabel("phi (rad)")
            ax.set_ylabel("r (cm)")
            fig.colorbar(mesh, ax=ax, pad=0.02, shrink=0.76)

    fig.tight_layout()
    out_file = os.path.join(output_dir, f"{label}_grid_maps.png")
    plt.savefig(out_file, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info("Saved grid maps: %s", out_file)
    return out_file
