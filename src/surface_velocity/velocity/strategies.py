"""
Sampling Strategies

A strategy produces candidate locations and, for each one, either the pair of
patches to register (with the reference point the velocity is reported at) or
an explicit reason for skipping it. Registration and velocity computation are
shared by all strategies (see pipeline.process_location).

- GridStrategy: every occupied cell of the fixed cloud, patches are the cell
  contents of both clouds.
- AdaptiveStrategy: externally supplied locations, gated by point density,
  patches are the k nearest points of each cloud.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Hashable, List, Optional, Sequence

import numpy as np

from ..alignment.registration import to_matrix
from ..spatial.density import SampleSelector
from ..spatial.grid import GridCell, GridPartition
from ..spatial.index import locations_from_sequence
from .calculator import center_of_gravity
from .models import LocationStatus, PatchExtent, Sample


@dataclass(frozen=True)
class PatchPair:
    """Patches to register at one location and the point the velocity refers to."""
    fixed: np.ndarray
    moving: np.ndarray
    reference: np.ndarray


@dataclass(frozen=True)
class Extraction:
    """
    Result of patch extraction at one location.

    ``patches`` is set only when registration should be attempted.
    ``sample`` carries density metadata for the adaptive strategy.
    """
    key: Hashable
    status: Optional[LocationStatus] = None
    patches: Optional[PatchPair] = None
    sample: Optional[Sample] = None

    @property
    def should_register(self) -> bool:
        return self.patches is not None


class SamplingStrategy(ABC):
    """Candidate-location producer plus patch extractor."""

    name: str = "strategy"

    @abstractmethod
    def candidates(self) -> List[Hashable]:
        """Candidate location keys, in a deterministic order."""

    @abstractmethod
    def extract(self, candidate: Hashable) -> Extraction:
        """Patches for one candidate, or the reason it is skipped."""

    def sort_key(self, key: Hashable):
        return key


class GridStrategy(SamplingStrategy):
    """
    Exhaustive grid comparison of two partitions with the same cell size.

    Args:
        fixed: Partition of the fixed cloud
        moving: Partition of the moving cloud
        min_patch_points: Points required in both cells before registering
    """

    name = "grid"

    def __init__(self, fixed: GridPartition, moving: GridPartition, min_patch_points: int = 1000):
        if fixed.cell_size != moving.cell_size:
            raise ValueError(
                f"Partitions use different cell sizes: {fixed.cell_size} and {moving.cell_size}"
            )
        self.fixed = fixed
        self.moving = moving
        self.min_patch_points = int(min_patch_points)

    def candidates(self) -> List[GridCell]:
        return self.fixed.cells()

    def extract(self, candidate: GridCell) -> Extraction:
        if candidate not in self.moving:
            return Extraction(key=candidate, status=LocationStatus.NO_COUNTERPART)

        if (
            self.fixed.count(candidate) < self.min_patch_points
            or self.moving.count(candidate) < self.min_patch_points
        ):
            return Extraction(key=candidate, status=LocationStatus.INSUFFICIENT_POINTS)

        fixed = to_matrix(self.fixed.points(candidate))
        moving = to_matrix(self.moving.points(candidate))
        return Extraction(
            key=candidate,
            patches=PatchPair(fixed=fixed, moving=moving, reference=center_of_gravity(fixed)),
        )


class AdaptiveStrategy(SamplingStrategy):
    """
    Density-aware sampling at supplied locations.

    Args:
        selector: Density gate over the two spatial indices
        locations: (n, 2) x, y query locations
        k_neighbors: Patch size taken from each cloud around a location
    """

    name = "adaptive"

    def __init__(self, selector: SampleSelector, locations: Sequence, k_neighbors: int = 1000):
        if k_neighbors < 1:
            raise ValueError(f"k_neighbors must be at least 1, got {k_neighbors}")
        self.selector = selector
        self.locations = locations_from_sequence(locations)
        self.k_neighbors = int(k_neighbors)

    def candidates(self) -> List[tuple]:
        # Repeated locations are processed once
        return list(dict.fromkeys((float(x), float(y)) for x, y in self.locations))

    def sort_key(self, key: Hashable):
        x, y = key
        return (y, x)

    def extract(self, candidate: tuple) -> Extraction:
        estimate = self.selector.estimate(candidate)
        if estimate is None:
            return Extraction(key=candidate, status=LocationStatus.OUTSIDE_COVERAGE)

        if not self.selector.is_dense_enough(estimate):
            sample = Sample(
                x=estimate.x,
                y=estimate.y,
                fixed_density=estimate.fixed_density,
                moving_density=estimate.moving_density,
                status=LocationStatus.LOW_DENSITY,
            )
            return Extraction(key=candidate, status=LocationStatus.LOW_DENSITY, sample=sample)

        fixed = to_matrix(self.selector.fixed_index.nearest(candidate, self.k_neighbors))
        moving = to_matrix(self.selector.moving_index.nearest(candidate, self.k_neighbors))
        # Reported at the sampled location, at the mean height of the fixed patch
        reference = np.array([estimate.x, estimate.y, float(fixed[:, 2].mean())])
        sample = Sample(
            x=estimate.x,
            y=estimate.y,
            fixed_density=estimate.fixed_density,
            moving_density=estimate.moving_density,
        )
        return Extraction(
            key=candidate,
            patches=PatchPair(fixed=fixed, moving=moving, reference=reference),
            sample=sample,
        )


def patch_extent(patches: PatchPair) -> PatchExtent:
    return PatchExtent.of(patches.fixed, patches.moving)
