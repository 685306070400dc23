"""
Central Membrane Pad Geometry
-----------------------------
Computes the reference ("truth") stripe centers of the central-membrane
pattern. Each radial ring carries a contiguous range of good stripes; the
centers of one petal are replicated around the full circle.

Lengths: pad radii in mm, generated positions in cm.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Sequence, Tuple

import numpy as np

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

MM = 1.0
CM = 10.0

PHI_MODULE = np.pi / 6.0  # angle span of a module
PAD_RESOLUTION_MULT = 3  # multiples of intrinsic pad resolution
DIFFUSION_WIDTH_MULT = 8  # multiples of diffusion width
DIFFUSION_WIDTH = 0.6 * MM
CENTERING_ADJUST = 0.015  # centers the pattern in a petal
N_PETALS = 18

# Default pad layout: four radial groups of eight rings
N_PADS_R1 = 6 * 16
N_PADS_R2 = 8 * 16
N_PADS_R3 = 12 * 16

R1_E_RADII = (227.0902789, 238.4100043, 249.7297296, 261.049455,
              272.3691804, 283.6889058, 295.0086312, 306.3283566)
R1_RADII = (317.648082, 328.9678074, 340.2875328, 351.6072582,
            362.9269836, 374.246709, 385.5664344, 396.8861597)
R2_RADII = (421.705532, 442.119258, 462.532984, 482.9467101,
            503.36044, 523.7741701, 544.1879001, 564.6016302)
R3_RADII = (594.6048611, 616.545956, 638.4870509, 660.4281458,
            682.3692407, 704.3103356, 726.2514305, 748.1925254)

KEEP_FROM = (1, 0, 1, 0, 1, 0, 1, 0)
KEEP_UNTIL_R1_E = (4, 4, 5, 4, 5, 5, 5, 5)
KEEP_UNTIL_R1 = (5, 5, 6, 5, 6, 5, 6, 5)
KEEP_UNTIL_R2 = (7, 7, 8, 7, 8, 8, 8, 8)
KEEP_UNTIL_R3 = (11, 10, 11, 11, 11, 11, 12, 11)


@dataclass(frozen=True)
class StripeRegion:
    """One radial ring of stripes: radius (mm), pad count, good range."""

    radius: float
    n_pads: int
    keep_from: int
    keep_until: int

    @property
    def n_stripes(self) -> int:
        return max(self.keep_until - self.keep_from, 0)


@dataclass(frozen=True)
class TruthPosition:
    radius: float
    angle: float
    longitudinal: float = 0.0

    @property
    def x(self) -> float:
        return self.radius * np.cos(self.angle)

    @property
    def y(self) -> float:
        return self.radius * np.sin(self.angle)


class TruthSet:
    """
    Read-only truth positions in global truth-index order.

    Arrays are indexed by truth index; ``copy_index``, ``region_index`` and
    ``stripe_index`` record where each position came from.
    """

    def __init__(self, x, y, copy_index, region_index, stripe_index):
        self.x = np.asarray(x, dtype=float)
        self.y = np.asarray(y, dtype=float)
        self.z = np.zeros_like(self.x)
        self.radius = np.hypot(self.x, self.y)
        self.angle = np.arctan2(self.y, self.x)
        self.copy_index = np.asarray(copy_index, dtype=int)
        self.region_index = np.asarray(region_index, dtype=int)
        self.stripe_index = np.asarray(stripe_index, dtype=int)
        for arr in (
            self.x,
            self.y,
            self.z,
            self.radius,
            self.angle,
            self.copy_index,
            self.region_index,
            self.stripe_index,
        ):
            arr.setflags(write=False)

    def __len__(self) -> int:
        return len(self.x)

    def __getitem__(self, index: int) -> TruthPosition:
        return TruthPosition(
            float(self.radius[index]), float(self.angle[index]), float(self.z[index])
        )

    def __iter__(self) -> Iterator[TruthPosition]:
        for i in range(len(self)):
            yield self[i]


def validate_regions(regions: Sequence[StripeRegion]) -> None:
    for j, region in enumerate(regions):
        if region.radius <= 0:
            raise ConfigurationError(
                f"Region {j}: radius must be positive (got {region.radius})"
            )
        if region.n_pads <= 0:
            raise ConfigurationError(
                f"Region {j}: pad count must be positive (got {region.n_pads})"
            )
        if region.keep_from > region.keep_until:
            raise ConfigurationError(
                f"Region {j}: stripe range [{region.keep_from}, "
                f"{region.keep_until}) is inverted"
            )
        if region.keep_from < 0 or region.keep_until > region.n_pads:
            raise ConfigurationError(
                f"Region {j}: stripe range [{region.keep_from}, "
                f"{region.keep_until}) outside pad count {region.n_pads}"
            )


def stripe_spacing(radius: float, n_pads: int) -> float:
    """Angular stripe pitch (rad) for a ring of the given radius (mm)."""
    diffusion_term = DIFFUSION_WIDTH_MULT * DIFFUSION_WIDTH / radius
    resolution_term = PAD_RESOLUTION_MULT * PHI_MODULE / n_pads
    return 2.0 * (diffusion_term + resolution_term)


def stripe_counts(regions: Sequence[StripeRegion]) -> np.ndarray:
    return np.array([r.n_stripes for r in regions], dtype=int)


def stripes_before(regions: Sequence[StripeRegion]) -> np.ndarray:
    """Number of good stripes in all preceding regions (exclusive prefix sum)."""
    counts = stripe_counts(regions)
    before = np.zeros_like(counts)
    if len(counts) > 1:
        before[1:] = np.cumsum(counts)[:-1]
    return before


def calculate_centers(
    region: StripeRegion, parity: int
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Stripe centers (cm) of one ring inside the first petal.

    Even rings count from the start of each stripe bin, odd rings from its
    end.
    """
    spacing = stripe_spacing(region.radius, region.n_pads)
    i = np.arange(region.keep_from, region.keep_until)
    if parity % 2 == 0:
        theta = i * spacing + spacing / 2.0 - CENTERING_ADJUST
    else:
        theta = (i + 1) * spacing - CENTERING_ADJUST
    cx = region.radius * np.cos(theta) / CM
    cy = region.radius * np.sin(theta) / CM
    return cx, cy


def build_truth_positions(
    regions: Sequence[StripeRegion], n_copies: int = N_PETALS
) -> TruthSet:
    """
    Builds the full truth set.

    Ordering: rotational copy (outer), then region, then stripe. Copy ``k``
    is the base pattern rotated by ``k * 2pi / n_copies``.
    """
    if n_copies <= 0:
        raise ConfigurationError(
            f"Number of rotational copies must be positive (got {n_copies})"
        )
    validate_regions(regions)

    counts = stripe_counts(regions)
    offsets = stripes_before(regions)
    n_base = int(counts.sum())

    base_x = np.empty(n_base)
    base_y = np.empty(n_base)
    base_region = np.empty(n_base, dtype=int)
    base_stripe = np.empty(n_base, dtype=int)
    for j, region in enumerate(regions):
        sl = slice(offsets[j], offsets[j] + counts[j])
        base_x[sl], base_y[sl] = calculate_centers(region, parity=j)
        base_region[sl] = j
        base_stripe[sl] = np.arange(region.keep_from, region.keep_until)

    rotation = 2.0 * np.pi / n_copies
    xs = np.empty(n_base * n_copies)
    ys = np.empty(n_base * n_copies)
    for k in range(n_copies):
        cos_k, sin_k = np.cos(k * rotation), np.sin(k * rotation)
        sl = slice(k * n_base, (k + 1) * n_base)
        xs[sl] = base_x * cos_k - base_y * sin_k
        ys[sl] = base_x * sin_k + base_y * cos_k

    truth = TruthSet(
        xs,
        ys,
        copy_index=np.repeat(np.arange(n_copies), n_base),
        region_index=np.tile(base_region, n_copies),
        stripe_index=np.tile(base_stripe, n_copies),
    )
    logger.info(
        "Built %d truth positions (%d regions, %d stripes per copy, %d copies)",
        len(truth),
        len(regions),
        n_base,
        n_copies,
    )
    return truth


def default_regions() -> List[StripeRegion]:
    """The 32-ring default layout, innermost group first."""
    groups = [
        (R1_E_RADII, N_PADS_R1, KEEP_UNTIL_R1_E),
        (R1_RADII, N_PADS_R1, KEEP_UNTIL_R1),
        (R2_RADII, N_PADS_R2, KEEP_UNTIL_R2),
        (R3_RADII, N_PADS_R3, KEEP_UNTIL_R3),
    ]
    regions = []
    for radii, n_pads, keep_until in groups:
        for radius, start, stop in zip(radii, KEEP_FROM, keep_until):
            regions.append(StripeRegion(radius * MM, n_pads, start, stop))
    return regions
