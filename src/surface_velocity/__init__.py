"""
Surface Velocity Package

A Python package for estimating surface velocities from two time-separated
LiDAR captures of a moving surface such as a glacier. Captures are paired by
the timestamps in their file names, compared patch by patch (exhaustive grid
cells or density-gated adaptive samples), and every patch pair is registered
with a rigid Coherent Point Drift or ICP engine implemented on numpy. The
translation of a reference point divided by the elapsed time gives its velocity.
"""

__version__ = "0.1.0"

from .exceptions import (
    SurfaceVelocityError,
    MalformedTimestamp,
    NoMovingCapture,
    DecodeError,
    RegistrationFailed,
)
from .preprocessing import *
from .spatial import *
from .alignment import *
from .velocity import *
from .utils import *

__all__ = [
    "SurfaceVelocityError",
    "MalformedTimestamp",
    "NoMovingCapture",
    "DecodeError",
    "RegistrationFailed",
    "preprocessing",
    "spatial",
    "alignment",
    "velocity",
    "utils",
]
