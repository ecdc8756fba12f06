"""
Point Cloud Data Loader

This module decodes LAS/LAZ captures into in-memory point clouds. No
coordinate transformation is applied at this stage.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import laspy
import numpy as np

from ..exceptions import DecodeError
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

SUPPORTED_SUFFIXES = ('.las', '.laz')

# Per-point attributes carried alongside the coordinates when present
_ATTRIBUTE_NAMES = ('intensity', 'classification', 'return_number', 'gps_time')


@dataclass
class PointCloud:
    """
    Points of one capture.

    Attributes:
        points: (N, 3) float64 array of x, y, z. Flagged read-only after ingest.
        attributes: Optional per-point arrays (intensity, classification, ...)
        path: Source file, if loaded from disk
        timestamp: Capture time, if known
    """
    points: np.ndarray
    attributes: Dict[str, np.ndarray] = field(default_factory=dict)
    path: Optional[Path] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        points = np.ascontiguousarray(self.points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"points must be (N, 3), got {points.shape}")
        points.flags.writeable = False
        self.points = points

    def __len__(self) -> int:
        return len(self.points)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Horizontal extent as (xmin, ymin, xmax, ymax)."""
        if len(self.points) == 0:
            raise ValueError("Empty point cloud has no bounds")
        xmin, ymin = self.points[:, :2].min(axis=0)
        xmax, ymax = self.points[:, :2].max(axis=0)
        return float(xmin), float(ymin), float(xmax), float(ymax)


def create_classification_mask(
    classification: np.ndarray,
    ground_only: bool = False,
    classification_filter: Optional[List[int]] = None,
) -> np.ndarray:
    """Boolean mask of points to keep; an explicit filter takes precedence over ground_only."""
    if classification_filter is not None:
        return np.isin(classification, np.array(classification_filter))
    if ground_only:
        return classification == 2
    return np.ones(len(classification), dtype=bool)


class PointCloudLoader:
    """
    Loads captures from LAS/LAZ files using laspy.
    """

    def __init__(self, *, ground_only: bool = False, classification_filter: Optional[List[int]] = None):
        """
        Initialize the point cloud loader.

        Args:
            ground_only: If True, keep only ground points (class 2)
            classification_filter: List of classification codes to keep (overrides ground_only)
        """
        self.ground_only = ground_only
        self.classification_filter = classification_filter

    def load(self, file_path, timestamp: Optional[datetime] = None) -> PointCloud:
        """
        Load a capture file.

        Args:
            file_path: Path to the LAS/LAZ file
            timestamp: Capture time to attach to the cloud

        Returns:
            PointCloud with points in file order

        Raises:
            DecodeError: If the file is missing, has an unsupported suffix or
                cannot be decoded
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise DecodeError(file_path, "file not found")

        if file_path.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise DecodeError(file_path, f"unsupported file format {file_path.suffix!r}")

        logger.info(f"Loading point cloud data from {file_path}")

        try:
            las = laspy.read(file_path)
        except Exception as e:
            logger.error(f"Error loading point cloud data from {file_path}: {e}")
            raise DecodeError(file_path, str(e)) from e

        total_points = len(las.points)
        dimensions = set(las.point_format.dimension_names)

        wants_filter = self.ground_only or self.classification_filter is not None
        if wants_filter and 'classification' in dimensions:
            mask = create_classification_mask(
                np.asarray(las.classification), self.ground_only, self.classification_filter
            )
        else:
            if wants_filter:
                logger.warning("Classification not available; proceeding without classification filtering.")
            mask = np.ones(total_points, dtype=bool)

        points = np.column_stack([
            np.asarray(las.x, dtype=np.float64)[mask],
            np.asarray(las.y, dtype=np.float64)[mask],
            np.asarray(las.z, dtype=np.float64)[mask],
        ])

        attributes = {
            name: np.asarray(las[name])[mask]
            for name in _ATTRIBUTE_NAMES
            if name in dimensions
        }

        logger.info(f"Loaded {len(points)} of {total_points} points from {file_path.name}")

        return PointCloud(points=points, attributes=attributes, path=file_path, timestamp=timestamp)
