"""
Density Estimation and Sample Selection

For a candidate location the number of points within the step radius is
counted in both clouds. A location not covered by either cloud is dropped;
a covered location with too few points per unit area is kept as a
low-density sample without registration.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .index import SpatialIndex


@dataclass(frozen=True)
class DensityEstimate:
    """Point counts and densities around one location in both clouds."""
    x: float
    y: float
    fixed_count: int
    moving_count: int
    fixed_density: float
    moving_density: float


class SampleSelector:
    """
    Decides whether a location is covered and dense enough to register.

    Args:
        fixed_index: Index over the fixed cloud
        moving_index: Index over the moving cloud
        step: Query radius (the same value spaces the sampling grid)
        min_density: Minimum points per unit area required in both clouds
    """

    def __init__(
        self,
        fixed_index: SpatialIndex,
        moving_index: SpatialIndex,
        step: float,
        min_density: float,
    ):
        if step <= 0:
            raise ValueError(f"step must be positive, got {step}")
        self.fixed_index = fixed_index
        self.moving_index = moving_index
        self.step = float(step)
        self.min_density = float(min_density)
        self.radius_squared = self.step * self.step
        self.area = math.pi * self.radius_squared

    def density(self, count: int) -> float:
        return count / self.area

    def estimate(self, location: Tuple[float, float]) -> Optional[DensityEstimate]:
        """
        Count points around a location in both clouds.

        Returns:
            None if either cloud has no point within the radius, else the estimate
        """
        fixed_count = self.fixed_index.count_within_radius(location, self.radius_squared)
        moving_count = self.moving_index.count_within_radius(location, self.radius_squared)
        if fixed_count == 0 or moving_count == 0:
            return None
        return DensityEstimate(
            x=float(location[0]),
            y=float(location[1]),
            fixed_count=fixed_count,
            moving_count=moving_count,
            fixed_density=self.density(fixed_count),
            moving_density=self.density(moving_count),
        )

    def is_dense_enough(self, estimate: DensityEstimate) -> bool:
        return (
            estimate.fixed_density >= self.min_density
            and estimate.moving_density >= self.min_density
        )
