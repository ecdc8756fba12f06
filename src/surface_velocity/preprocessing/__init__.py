"""
Capture Preprocessing Module

This module prepares a pair of captures for comparison:
- Pairing a fixed capture with the moving capture that follows it in time
- Loading LAS/LAZ captures into in-memory point clouds
"""

from .loader import PointCloud, PointCloudLoader, create_classification_mask
from .pairing import Pairing, TemporalPairResolver, capture_time_from_path

__all__ = [
    "PointCloud",
    "PointCloudLoader",
    "create_classification_mask",
    "Pairing",
    "TemporalPairResolver",
    "capture_time_from_path",
]
