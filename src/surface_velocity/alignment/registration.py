"""
Registration Adapter

Single entry point for local patch registration. The adapter pins the
registration policy used by both sampling strategies:
- both patches normalized with the same scale (each centred on its own centroid)
- rigid transform: rotation + translation, no scale, no reflections
- optional iteration cap
and hands back the engine's transform and convergence flag unmodified,
expressed in the original coordinates. There is no retry and no parameter search.
"""

from typing import Hashable, Optional, Tuple

import numpy as np

from ..exceptions import RegistrationFailed
from ..utils.config import RegistrationConfig
from ..utils.logging import setup_logger
from .cpd import RigidCPD
from .fine_registration import ICPRegistration
from .transform import RegistrationOutcome

logger = setup_logger(__name__)


def to_matrix(points) -> np.ndarray:
    """Plain contiguous (N, 3) float64 matrix of x, y, z."""
    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] < 3:
        raise ValueError(f"points must be (N, 3), got {points.shape}")
    return np.ascontiguousarray(points[:, :3])


def same_scale_normalization(
    fixed: np.ndarray, moving: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, float]:
    """
    Centroids of both patches and the shared scale.

    The scale is the larger of the two RMS distances to the centroid, so both
    normalized patches fit within unit RMS radius without distorting one relative
    to the other.
    """
    fixed_offset = fixed.mean(axis=0)
    moving_offset = moving.mean(axis=0)
    fixed_rms = np.sqrt(np.sum((fixed - fixed_offset) ** 2) / len(fixed))
    moving_rms = np.sqrt(np.sum((moving - moving_offset) ** 2) / len(moving))
    scale = float(max(fixed_rms, moving_rms))
    if scale <= 0 or not np.isfinite(scale):
        scale = 1.0
    return fixed_offset, moving_offset, scale


class RegistrationAdapter:
    """
    Registers a fixed patch onto a moving patch with a fixed policy.

    Example:
        adapter = RegistrationAdapter(RegistrationConfig(max_iterations=100))
        outcome = adapter.register(fixed_patch, moving_patch)
        if outcome.converged:
            displaced = outcome.apply(reference)
    """

    def __init__(self, config: Optional[RegistrationConfig] = None):
        # Copied so later edits to the caller's config do not leak into a running pipeline
        self.config = (config or RegistrationConfig()).model_copy(deep=True)

    def _engine(self):
        cfg = self.config
        if cfg.method == "cpd":
            return RigidCPD(
                max_iterations=cfg.max_iterations or RigidCPD.DEFAULT_MAX_ITERATIONS,
                tolerance=cfg.tolerance,
                outlier_weight=cfg.outlier_weight,
                allow_reflections=False,
            )
        if cfg.method == "icp":
            return ICPRegistration(
                max_iterations=cfg.max_iterations or ICPRegistration.DEFAULT_MAX_ITERATIONS,
                tolerance=cfg.tolerance,
                max_correspondence_distance=cfg.max_correspondence_distance,
                allow_reflections=False,
            )
        raise ValueError(f"Unknown registration method: {cfg.method}")

    def register(
        self,
        fixed: np.ndarray,
        moving: np.ndarray,
        location: Optional[Hashable] = None,
    ) -> RegistrationOutcome:
        """
        Estimate the rigid transform carrying the fixed patch onto the moving patch.

        Args:
            fixed: Fixed patch (N x 3)
            moving: Moving patch (M x 3)
            location: Optional location key used in error messages

        Returns:
            RegistrationOutcome in original coordinates

        Raises:
            RegistrationFailed: If the engine faults or produces a non-finite transform
        """
        fixed = to_matrix(fixed)
        moving = to_matrix(moving)
        if len(fixed) == 0 or len(moving) == 0:
            raise RegistrationFailed(
                f"empty patch (fixed={len(fixed)}, moving={len(moving)})", location
            )

        if self.config.normalize == "same_scale":
            fixed_offset, moving_offset, scale = same_scale_normalization(fixed, moving)
        else:
            fixed_offset = np.zeros(3)
            moving_offset = np.zeros(3)
            scale = 1.0

        engine = self._engine()
        try:
            normalized = engine.register(
                source=(fixed - fixed_offset) / scale,
                target=(moving - moving_offset) / scale,
            )
        except RegistrationFailed as e:
            if location is None:
                raise
            raise RegistrationFailed(e.detail, location) from e
        except MemoryError as e:
            raise RegistrationFailed(
                f"out of memory registering fixed={len(fixed)} / moving={len(moving)} points",
                location,
            ) from e
        except (np.linalg.LinAlgError, FloatingPointError, ValueError) as e:
            raise RegistrationFailed(
                f"{type(e).__name__}: {e} (fixed={len(fixed)}, moving={len(moving)})",
                location,
            ) from e

        # (m - mo) / s = R (f - fo) / s + t'  =>  m = R f + (mo + s t' - R fo)
        rotation = normalized.rotation
        translation = moving_offset + scale * normalized.translation - rotation @ fixed_offset
        if not (np.isfinite(rotation).all() and np.isfinite(translation).all()):
            raise RegistrationFailed("transform contains non-finite values", location)

        logger.debug(
            "Registered %d fixed / %d moving points: converged=%s after %d iterations",
            len(fixed),
            len(moving),
            normalized.converged,
            normalized.iterations,
        )

        return RegistrationOutcome(
            rotation=rotation,
            translation=translation,
            converged=normalized.converged,
            iterations=normalized.iterations,
        )
