"""
Matcher Configuration
Default values for matching tolerances, grid dimensions and geometry, and
loading of overrides from ``config.yml``.
"""

import os
from dataclasses import dataclass, fields
from typing import Optional

import numpy as np
import yaml

from .distortion_grid import GridGeometry
from .distortion_matching import MATCH_POLICIES
from .exceptions import ConfigurationError

CONFIG_SECTIONS = ("matching", "grid", "geometry", "paths")


@dataclass
class MatcherConfig:
    """Configuration parameters for the central-membrane matcher."""

    rad_cut: float = 0.5  # cm
    phi_cut: float = 0.01  # rad
    match_policy: str = "first"
    phi_bins: int = 36
    r_bins: int = 16
    phi_min: float = 0.0
    phi_max: float = 2.0 * np.pi
    r_min: float = 20.0  # cm
    r_max: float = 78.0  # cm
    n_petals: int = 18
    working_dir: Optional[str] = None

    def __post_init__(self):
        if self.rad_cut <= 0 or self.phi_cut <= 0:
            raise ConfigurationError(
                f"Match tolerances must be positive (rad_cut={self.rad_cut}, "
                f"phi_cut={self.phi_cut})"
            )
        if self.match_policy not in MATCH_POLICIES:
            raise ConfigurationError(
                f"Unknown match policy '{self.match_policy}', "
                f"expected one of {MATCH_POLICIES}"
            )
        if self.n_petals <= 0:
            raise ConfigurationError(
                f"n_petals must be positive (got {self.n_petals})"
            )
        # Raises on bad bins / bounds
        self.grid_geometry()

        if self.working_dir is not None:
            self.plot_dir = os.path.join(self.working_dir, "plots")
            self.res_dir = os.path.join(self.working_dir, "results")
            os.makedirs(self.plot_dir, exist_ok=True)
            os.makedirs(self.res_dir, exist_ok=True)

    def grid_geometry(self) -> GridGeometry:
        return GridGeometry(
            phi_bins=self.phi_bins,
            r_bins=self.r_bins,
            phi_min=self.phi_min,
            phi_max=self.phi_max,
            r_min=self.r_min,
            r_max=self.r_max,
        )


def load_config(path: str, **overrides) -> MatcherConfig:
    """
    Builds a MatcherConfig from a YAML file.

    Sections ``matching``, ``grid``, ``geometry`` and ``paths`` are flattened
    into the dataclass fields; keyword overrides win over file values.
    """
    with open(path, "r") as f:
        cfg = yaml.safe_load(f) or {}

    known = {f.name for f in fields(MatcherConfig)}
    values = {}
    for section, content in cfg.items():
        if section not in CONFIG_SECTIONS:
            raise ConfigurationError(f"Unknown config section '{section}' in {path}")
        for key, value in (content or {}).items():
            if key not in known:
                raise ConfigurationError(
                    f"Unknown config key '{section}.{key}' in {path}"
                )
            values[key] = value

    values.update({k: v for k, v in overrides.items() if v is not None})
    return MatcherConfig(**values)
