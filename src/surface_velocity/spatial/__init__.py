"""
Spatial Sampling Module

Tools for choosing where the two captures are compared:
- Uniform grid binning (exhaustive, every occupied cell)
- KD-tree spatial index with radius and k-nearest queries
- Density estimation and sample selection for adaptive sampling
"""

from .grid import GridCell, GridPartition, cell_of
from .index import SpatialIndex, sampling_locations, overlap_bounds, locations_from_sequence
from .density import DensityEstimate, SampleSelector

__all__ = [
    "GridCell",
    "GridPartition",
    "cell_of",
    "SpatialIndex",
    "sampling_locations",
    "overlap_bounds",
    "locations_from_sequence",
    "DensityEstimate",
    "SampleSelector",
]
