"""
Spatial Index

Horizontal (x, y) range and nearest-neighbour queries over one cloud, backed
by a scikit-learn KD-tree. Distances are measured in plan view so that
densities are points per unit map area.
"""

from __future__ import annotations

import time
from typing import Sequence, Tuple

import numpy as np
from sklearn.neighbors import KDTree

from ..utils.logging import setup_logger

logger = setup_logger(__name__)

Bounds = Tuple[float, float, float, float]


def _as_query(location) -> np.ndarray:
    location = np.asarray(location, dtype=np.float64).ravel()
    if location.size < 2:
        raise ValueError(f"location needs x and y, got {location}")
    return location[:2].reshape(1, 2)


class SpatialIndex:
    """
    Read-only query structure over the points of one cloud.

    ``count_within_radius`` takes the squared radius and
    ``points_within_radius`` the radius itself, so that
    ``count_within_radius(loc, r * r) == len(points_within_radius(loc, r))``.
    """

    def __init__(self, points: np.ndarray, leaf_size: int = 40):
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"points must be (N, 3), got {points.shape}")
        if len(points) == 0:
            raise ValueError("Cannot index an empty point cloud")

        self._points = points
        build_start = time.time()
        self._tree = KDTree(points[:, :2], leaf_size=leaf_size)
        logger.debug(
            "Built KD-Tree over %d points in %.4f s.",
            len(points),
            time.time() - build_start,
        )

    @classmethod
    def from_cloud(cls, cloud, leaf_size: int = 40) -> "SpatialIndex":
        return cls(cloud.points, leaf_size=leaf_size)

    def __len__(self) -> int:
        return len(self._points)

    def count_within_radius(self, location, radius_squared: float) -> int:
        """Number of points whose horizontal distance to location is <= sqrt(radius_squared)."""
        if radius_squared < 0:
            raise ValueError(f"radius_squared must be non-negative, got {radius_squared}")
        radius = float(np.sqrt(radius_squared))
        return int(self._tree.query_radius(_as_query(location), r=radius, count_only=True)[0])

    def points_within_radius(self, location, radius: float) -> np.ndarray:
        """(n, 3) points within a horizontal radius of location, in cloud order."""
        if radius < 0:
            raise ValueError(f"radius must be non-negative, got {radius}")
        indices = self._tree.query_radius(_as_query(location), r=float(radius))[0]
        return self._points[np.sort(indices)]

    def nearest(self, location, k: int) -> np.ndarray:
        """(min(k, n), 3) points closest to location, nearest first."""
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")
        k = min(int(k), len(self._points))
        _, indices = self._tree.query(_as_query(location), k=k)
        return self._points[indices[0]]


def overlap_bounds(first: Bounds, second: Bounds) -> Bounds:
    """Intersection of two (xmin, ymin, xmax, ymax) extents; raises if disjoint."""
    xmin = max(first[0], second[0])
    ymin = max(first[1], second[1])
    xmax = min(first[2], second[2])
    ymax = min(first[3], second[3])
    if xmin > xmax or ymin > ymax:
        raise ValueError(f"Extents do not overlap: {first} and {second}")
    return xmin, ymin, xmax, ymax


def sampling_locations(fixed_bounds: Bounds, moving_bounds: Bounds, step: float) -> np.ndarray:
    """
    Regular grid of query locations covering the overlap of two extents.

    Locations sit on multiples of ``step`` so that grids from different runs line up.

    Returns:
        (n, 2) array of x, y locations ordered by y then x
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")
    xmin, ymin, xmax, ymax = overlap_bounds(fixed_bounds, moving_bounds)
    xs = np.arange(np.ceil(xmin / step), np.floor(xmax / step) + 1) * step
    ys = np.arange(np.ceil(ymin / step), np.floor(ymax / step) + 1) * step
    if xs.size == 0 or ys.size == 0:
        return np.empty((0, 2))
    grid_x, grid_y = np.meshgrid(xs, ys)
    return np.column_stack([grid_x.ravel(), grid_y.ravel()])


def locations_from_sequence(locations: Sequence) -> np.ndarray:
    """Coerce externally supplied locations to an (n, 2) array."""
    locations = np.asarray(locations, dtype=np.float64)
    if locations.size == 0:
        return np.empty((0, 2))
    if locations.ndim != 2 or locations.shape[1] < 2:
        raise ValueError(f"locations must be (n, 2), got {locations.shape}")
    return locations[:, :2]
