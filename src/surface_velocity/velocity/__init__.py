"""
Velocity Module

This module turns local registrations into surface velocities:
- Sampling strategies (grid cells, density-gated adaptive locations)
- Velocity calculation from a rigid transform and elapsed time
- Thread-safe aggregation of per-location results
- The end-to-end pipeline from a capture path to velocities or samples
"""

from .models import (
    LocationStatus,
    Velocity,
    PatchExtent,
    SampleRegistration,
    Sample,
    LocationResult,
)
from .calculator import compute_velocity, center_of_gravity
from .strategies import SamplingStrategy, GridStrategy, AdaptiveStrategy, Extraction, PatchPair
from .aggregator import ResultAggregator
from .pipeline import VelocityPipeline, process_location

__all__ = [
    "LocationStatus",
    "Velocity",
    "PatchExtent",
    "SampleRegistration",
    "Sample",
    "LocationResult",
    "compute_velocity",
    "center_of_gravity",
    "SamplingStrategy",
    "GridStrategy",
    "AdaptiveStrategy",
    "Extraction",
    "PatchPair",
    "ResultAggregator",
    "VelocityPipeline",
    "process_location",
]
