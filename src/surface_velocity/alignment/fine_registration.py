"""
ICP Registration Implementation

This module implements the Iterative Closest Point (ICP) algorithm as an
alternative registration engine for local patches.
"""

from typing import Optional, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors

from ..exceptions import RegistrationFailed
from ..utils.logging import setup_logger
from .transform import RegistrationOutcome

logger = setup_logger(__name__)


class ICPRegistration:
    """
    Implementation of ICP algorithm for point cloud registration.

    The ICP algorithm iteratively:
    1. Finds closest point correspondences
    2. Estimates optimal transformation (rotation + translation)
    3. Applies transformation to source points
    4. Repeats until convergence
    """

    DEFAULT_MAX_ITERATIONS = 100

    def __init__(
        self,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        tolerance: float = 1e-6,
        max_correspondence_distance: float = 1.0,
        convergence_translation_epsilon: float = 1e-4,
        convergence_rotation_epsilon_deg: float = 0.1,
        allow_reflections: bool = False,
    ):
        """
        Initialize ICP parameters.

        Args:
            max_iterations: Maximum number of ICP iterations.
            tolerance: Convergence tolerance on change in mean squared error.
            max_correspondence_distance: Maximum distance for point correspondences.
            convergence_translation_epsilon: Minimum translation step below
                which the algorithm is considered converged.
            convergence_rotation_epsilon_deg: Minimum rotation step (degrees) below
                which the algorithm is considered converged.
            allow_reflections: Permit improper rotations (det = -1).
        """
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.max_correspondence_distance = max_correspondence_distance
        self.convergence_translation_epsilon = convergence_translation_epsilon
        # Store rotation epsilon in radians for internal use
        self.convergence_rotation_epsilon_rad = np.deg2rad(convergence_rotation_epsilon_deg)
        self.allow_reflections = allow_reflections

    def register(
        self,
        source: np.ndarray,
        target: np.ndarray,
        initial_transform: Optional[np.ndarray] = None,
    ) -> RegistrationOutcome:
        """
        Align source point cloud to target using ICP.

        Args:
            source: Source point cloud (N x 3).
            target: Target point cloud (M x 3).
            initial_transform: Initial transformation matrix (4 x 4) or None.

        Returns:
            RegistrationOutcome mapping source onto target.

        Raises:
            RegistrationFailed: If either point set is empty.
        """
        source = np.asarray(source, dtype=np.float64)
        target = np.asarray(target, dtype=np.float64)
        if len(source) == 0 or len(target) == 0:
            raise RegistrationFailed(
                f"empty patch (source={len(source)}, target={len(target)})"
            )

        transform = np.eye(4) if initial_transform is None else initial_transform.copy()
        current_source = self.apply_transformation(source, transform)
        previous_error = float("inf")

        # Build the nearest-neighbor search structure for the target point cloud ONCE.
        nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(target)

        converged = False
        n_iterations = 0

        for iteration in range(self.max_iterations):
            correspondences, distances = self.find_correspondences(
                source=current_source,
                target=target,
                nbrs=nbrs,
            )

            # Filter out correspondences that exceed the max distance
            valid_mask = distances < self.max_correspondence_distance
            if np.sum(valid_mask) < 3:  # Need at least 3 points to define a plane
                logger.debug("Not enough valid correspondences found. Stopping ICP.")
                break

            valid_source = current_source[valid_mask]
            valid_target = target[correspondences[valid_mask]]

            delta_transform = self.estimate_transformation(valid_source, valid_target)

            # Update transformation: new_transform = delta_transform * current_transform
            transform = delta_transform @ transform

            # Apply the cumulative transformation to the ORIGINAL source cloud
            current_source = self.apply_transformation(source, transform)

            current_error = float(np.mean(distances[valid_mask] ** 2))

            delta_t = delta_transform[:3, 3]
            delta_R = delta_transform[:3, :3]
            trans_step = float(np.linalg.norm(delta_t))
            # Clamp argument to arccos to valid range to avoid NaNs
            cos_theta = max(min((float(np.trace(delta_R)) - 1.0) * 0.5, 1.0), -1.0)
            rot_step = float(np.arccos(cos_theta))

            n_iterations = iteration + 1
            logger.debug(
                "Iteration %d: MSE=%.6f, |Δt|=%.6e, Δθ=%.6e rad",
                n_iterations,
                current_error,
                trans_step,
                rot_step,
            )

            if abs(previous_error - current_error) < self.tolerance:
                converged = True
                break

            if (
                trans_step < self.convergence_translation_epsilon
                and rot_step < self.convergence_rotation_epsilon_rad
            ):
                converged = True
                break

            previous_error = current_error
        else:
            logger.debug("ICP did not converge after %d iterations.", self.max_iterations)

        logger.debug(
            "ICP finished after %d iterations: converged=%s, RMSE=%.6f",
            n_iterations,
            converged,
            self.compute_registration_error(current_source, target, nbrs),
        )

        return RegistrationOutcome(
            rotation=transform[:3, :3].copy(),
            translation=transform[:3, 3].copy(),
            converged=converged,
            iterations=n_iterations,
        )

    def find_correspondences(
        self,
        source: np.ndarray,
        target: Optional[np.ndarray] = None,
        nbrs: Optional[NearestNeighbors] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Find closest point correspondences between source and target.

        Args:
            source: Source point cloud (N x 3).
            target: Target point cloud (M x 3). Only used if `nbrs` is None.
            nbrs: Optional pre-built NearestNeighbors instance for the target.

        Returns:
            Tuple of (correspondence_indices, distances).
        """
        if nbrs is None:
            if target is None:
                raise ValueError("Either 'target' or a pre-built 'nbrs' must be provided.")
            nbrs = NearestNeighbors(n_neighbors=1, algorithm="kd_tree").fit(target)

        distances, indices = nbrs.kneighbors(source)
        return indices.ravel(), distances.ravel()

    def estimate_transformation(
        self,
        source_points: np.ndarray,
        target_points: np.ndarray,
    ) -> np.ndarray:
        """
        Estimate optimal rigid transformation between corresponding point sets.

        Args:
            source_points: Source point cloud points (N x 3).
            target_points: Corresponding target point cloud points (N x 3).

        Returns:
            Transformation matrix (4 x 4).
        """
        source_centroid = np.mean(source_points, axis=0)
        target_centroid = np.mean(target_points, axis=0)

        source_centered = source_points - source_centroid
        target_centered = target_points - target_centroid

        # Cross-covariance matrix
        H = source_centered.T @ target_centered

        U, _, Vt = np.linalg.svd(H)
        R = Vt.T @ U.T

        # Ensure proper rotation (det(R) should be 1)
        if not self.allow_reflections and np.linalg.det(R) < 0:
            Vt[-1, :] *= -1
            R = Vt.T @ U.T

        t = target_centroid - R @ source_centroid

        transform = np.eye(4)
        transform[:3, :3] = R
        transform[:3, 3] = t
        return transform

    def apply_transformation(
        self,
        points: np.ndarray,
        transform: np.ndarray,
    ) -> np.ndarray:
        """
        Apply a transformation matrix to a set of points.

        Args:
            points: Point cloud (N x 3).
            transform: Transformation matrix (4 x 4).

        Returns:
            Transformed point cloud (N x 3).
        """
        if points.size == 0:
            return points
        return points @ transform[:3, :3].T + transform[:3, 3]

    def compute_registration_error(
        self,
        source: np.ndarray,
        target: np.ndarray,
        nbrs: Optional[NearestNeighbors] = None,
    ) -> float:
        """
        Compute the registration error (RMSE) between aligned source and target point clouds.

        Returns:
            Registration error as RMSE, infinite when nothing corresponds.
        """
        if source.size == 0 or target.size == 0:
            return float("inf")
        _, distances = self.find_correspondences(source, target, nbrs)

        valid_mask = distances < self.max_correspondence_distance
        if np.sum(valid_mask) == 0:
            logger.warning("No valid correspondences found for error computation.")
            return float("inf")

        return float(np.sqrt(np.mean(distances[valid_mask] ** 2)))
