"""
Result records of the velocity workflow.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Hashable, Optional

import numpy as np

from ..alignment.transform import RegistrationOutcome


class LocationStatus(str, Enum):
    """What happened at one candidate location."""
    REGISTERED = "registered"
    OUTSIDE_COVERAGE = "outside_coverage"
    LOW_DENSITY = "low_density"
    INSUFFICIENT_POINTS = "insufficient_points"
    NO_COUNTERPART = "no_counterpart"
    NON_CONVERGED = "non_converged"
    REGISTRATION_FAILED = "registration_failed"


@dataclass(frozen=True)
class Velocity:
    """Displacement rate at a reference point, in spatial units per hour."""
    x: float
    y: float
    z: float
    vx: float
    vy: float
    vz: float

    @property
    def speed(self) -> float:
        return float(np.sqrt(self.vx ** 2 + self.vy ** 2 + self.vz ** 2))

    def to_dict(self) -> Dict[str, float]:
        return {
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "vx": self.vx,
            "vy": self.vy,
            "vz": self.vz,
        }


@dataclass(frozen=True)
class PatchExtent:
    """Horizontal extent covered by the union of the two patches."""
    xmin: float
    xmax: float
    ymin: float
    ymax: float

    @classmethod
    def of(cls, fixed: np.ndarray, moving: np.ndarray) -> "PatchExtent":
        both = np.vstack([fixed[:, :2], moving[:, :2]])
        xmin, ymin = both.min(axis=0)
        xmax, ymax = both.max(axis=0)
        return cls(float(xmin), float(xmax), float(ymin), float(ymax))


@dataclass(frozen=True)
class SampleRegistration:
    """The registration attempted for a sample, with the patch extent it used."""
    extent: PatchExtent
    outcome: RegistrationOutcome

    def to_dict(self) -> Dict[str, Any]:
        return {
            "xmin": self.extent.xmin,
            "xmax": self.extent.xmax,
            "ymin": self.extent.ymin,
            "ymax": self.extent.ymax,
            "rotation": self.outcome.rotation.tolist(),
            "translation": self.outcome.translation.tolist(),
            "converged": self.outcome.converged,
            "iterations": self.outcome.iterations,
        }


@dataclass(frozen=True)
class Sample:
    """
    A sampled location of the adaptive strategy.

    Densities are points per unit area inside the step radius. ``registration``
    is None when the location was skipped for low density or when the engine
    faulted; ``status`` tells the two apart.
    """
    x: float
    y: float
    fixed_density: float
    moving_density: float
    registration: Optional[SampleRegistration] = None
    status: LocationStatus = LocationStatus.LOW_DENSITY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "fixed_density": self.fixed_density,
            "moving_density": self.moving_density,
            "status": self.status.value,
            "registration": self.registration.to_dict() if self.registration else None,
        }


@dataclass(frozen=True)
class LocationResult:
    """Outcome of processing one candidate location."""
    key: Hashable
    status: LocationStatus
    velocity: Optional[Velocity] = None
    sample: Optional[Sample] = None
