"""
Velocity Calculation

Turns a converged rigid transform into a displacement rate at a reference
point: ``v = (R @ p + t - p) / elapsed_hours``.
"""

import numpy as np

from ..alignment.transform import RegistrationOutcome
from .models import Velocity


def center_of_gravity(points: np.ndarray) -> np.ndarray:
    """Mean x, y, z of a patch."""
    points = np.asarray(points, dtype=np.float64)
    if len(points) == 0:
        raise ValueError("Center of gravity of an empty patch is undefined")
    return points[:, :3].mean(axis=0)


def compute_velocity(
    outcome: RegistrationOutcome,
    reference: np.ndarray,
    elapsed_hours: float,
) -> Velocity:
    """
    Displacement rate of a reference point under a registration outcome.

    Args:
        outcome: Converged registration outcome (fixed -> moving)
        reference: Reference point (x, y, z) in the fixed capture
        elapsed_hours: Time between the captures, strictly positive

    Returns:
        Velocity located at the reference point, in spatial units per hour

    Raises:
        ValueError: If the outcome did not converge or elapsed_hours <= 0
    """
    if not outcome.converged:
        raise ValueError("Velocity requires a converged registration outcome")
    if not elapsed_hours > 0:
        raise ValueError(f"elapsed_hours must be positive, got {elapsed_hours}")

    reference = np.asarray(reference, dtype=np.float64).reshape(3)
    displaced = outcome.rotation @ reference + outcome.translation
    rate = (displaced - reference) / elapsed_hours

    return Velocity(
        x=float(reference[0]),
        y=float(reference[1]),
        z=float(reference[2]),
        vx=float(rate[0]),
        vy=float(rate[1]),
        vz=float(rate[2]),
    )
