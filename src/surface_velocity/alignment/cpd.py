"""
Rigid Coherent Point Drift (CPD) Registration

This module implements rigid CPD (Myronenko & Song, 2010) for aligning two
point patches. The source patch is treated as the centroids of a Gaussian
mixture and moved onto the target patch by alternating:
1. E-step: soft correspondence probabilities for every source/target pair
2. M-step: closed-form rotation (SVD), translation and variance update
until the relative change of the objective falls below the tolerance.

The E-step visits the target in blocks of rows and only keeps the sums the
M-step needs (P1, Pt1 and P @ X), so memory grows with M + N rather than M * N.

Unlike ICP, the soft correspondences with a large initial variance make the
first iterations behave like a centroid alignment, so CPD tolerates initial
offsets larger than the point spacing.
"""

from typing import Tuple

import numpy as np

from ..exceptions import RegistrationFailed
from ..utils.logging import setup_logger
from .transform import RegistrationOutcome

logger = setup_logger(__name__)

_EPS = np.finfo(float).eps


class RigidCPD:
    """
    Rigid CPD registration of a source patch onto a target patch.

    The returned transform maps source onto target: ``target ≈ source @ R.T + t``.
    """

    DEFAULT_MAX_ITERATIONS = 150
    # Upper bound on the size of one source x target-block posterior array
    MAX_BLOCK_ELEMENTS = 1 << 22

    def __init__(
        self,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        tolerance: float = 1e-5,
        outlier_weight: float = 0.0,
        allow_reflections: bool = False,
        min_sigma2: float = 1e-10,
    ):
        """
        Initialize CPD parameters.

        Args:
            max_iterations: Iteration cap; hitting it means "not converged".
            tolerance: Convergence threshold on the relative change of the objective.
            outlier_weight: Weight w of the uniform outlier component, 0 <= w < 1.
            allow_reflections: Permit improper rotations (det = -1).
            min_sigma2: Variance below which the fit is exact and iteration stops.
        """
        if not 0.0 <= outlier_weight < 1.0:
            raise ValueError(f"outlier_weight must be in [0, 1), got {outlier_weight}")
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.outlier_weight = outlier_weight
        self.allow_reflections = allow_reflections
        self.min_sigma2 = min_sigma2

    def register(self, source: np.ndarray, target: np.ndarray) -> RegistrationOutcome:
        """
        Register source onto target.

        Args:
            source: Source patch (M x D), moved by the transform.
            target: Target patch (N x D).

        Returns:
            RegistrationOutcome with rotation, translation and convergence flag.

        Raises:
            RegistrationFailed: On empty or non-finite input, or numerical breakdown.
        """
        source = np.asarray(source, dtype=np.float64)
        target = np.asarray(target, dtype=np.float64)
        if source.ndim != 2 or target.ndim != 2 or source.shape[1] != target.shape[1]:
            raise RegistrationFailed(
                f"patch shapes do not match: source {source.shape}, target {target.shape}"
            )
        if len(source) == 0 or len(target) == 0:
            raise RegistrationFailed(
                f"empty patch (source={len(source)}, target={len(target)})"
            )
        if not (np.isfinite(source).all() and np.isfinite(target).all()):
            raise RegistrationFailed("patch contains non-finite coordinates")

        # Work around a common origin to keep squared distances well conditioned
        origin = target.mean(axis=0)
        Y = source - origin
        X = target - origin
        D = Y.shape[1]

        R = np.eye(D)
        t = np.zeros(D)
        sigma2 = self._initial_sigma2(X, Y)

        if sigma2 <= 0:
            # Every point of both patches sits at the same location
            logger.debug("CPD: degenerate patches collapse to one point; identity transform.")
            return RegistrationOutcome(
                rotation=R, translation=np.zeros(D), converged=True, iterations=0
            )

        q = np.inf
        converged = False
        n_iterations = 0

        for iteration in range(self.max_iterations):
            TY = Y @ R.T + t
            P1, Pt1, PX = self._expectation(X, TY, sigma2)

            Np = float(P1.sum())
            if not np.isfinite(Np) or Np <= _EPS:
                raise RegistrationFailed(
                    f"correspondence weights vanished after {iteration} iterations"
                )

            mu_x = X.T @ Pt1 / Np
            mu_y = Y.T @ P1 / Np

            A = PX.T @ Y - Np * np.outer(mu_x, mu_y)
            U, _, Vt = np.linalg.svd(A)
            C = np.eye(D)
            if not self.allow_reflections:
                C[-1, -1] = np.linalg.det(U @ Vt)
            R = U @ C @ Vt
            t = mu_x - R @ mu_y

            tr_AR = float(np.sum(A * R))
            x_px = float(np.sum(Pt1 * np.sum((X - mu_x) ** 2, axis=1)))
            y_py = float(np.sum(P1 * np.sum((Y - mu_y) ** 2, axis=1)))

            q_prev = q
            q = (x_px - 2.0 * tr_AR + y_py) / (2.0 * sigma2) + D * Np / 2.0 * np.log(sigma2)
            sigma2 = (x_px - tr_AR) / (Np * D)
            n_iterations = iteration + 1

            logger.debug(
                "CPD iteration %d: objective=%.6e, sigma2=%.6e",
                n_iterations,
                q,
                sigma2,
            )

            if sigma2 <= self.min_sigma2:
                converged = True
                break

            if np.isfinite(q_prev):
                change = abs(q - q_prev) / max(abs(q), _EPS)
                if change < self.tolerance:
                    converged = True
                    break
        else:
            logger.debug("CPD did not converge after %d iterations.", self.max_iterations)

        translation = t + origin - R @ origin
        if not (np.isfinite(R).all() and np.isfinite(translation).all()):
            raise RegistrationFailed("transform contains non-finite values")

        return RegistrationOutcome(
            rotation=R,
            translation=translation,
            converged=converged,
            iterations=n_iterations,
        )

    @staticmethod
    def _initial_sigma2(X: np.ndarray, Y: np.ndarray) -> float:
        """Mean squared distance over all source/target pairs, per dimension."""
        N, D = X.shape
        M = Y.shape[0]
        total = (
            M * np.sum(X * X)
            + N * np.sum(Y * Y)
            - 2.0 * float(np.sum(X, axis=0) @ np.sum(Y, axis=0))
        )
        return float(max(total, 0.0) / (D * M * N))

    def _expectation(
        self, X: np.ndarray, TY: np.ndarray, sigma2: float
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Posterior sums over blocks of target rows.

        With P[m, n] the probability that target point n was generated by
        source m, returns ``P1 = P @ 1`` (M), ``Pt1 = P.T @ 1`` (N) and
        ``PX = P @ X`` (M x D).
        """
        M, D = TY.shape
        N = X.shape[0]

        w = self.outlier_weight
        c = (2.0 * np.pi * sigma2) ** (D / 2.0) * w / (1.0 - w) * M / N

        P1 = np.zeros(M)
        Pt1 = np.empty(N)
        PX = np.zeros((M, D))
        ty_sq = np.sum(TY * TY, axis=1)[:, None]
        block_rows = max(1, self.MAX_BLOCK_ELEMENTS // M)

        for start in range(0, N, block_rows):
            X_block = X[start:start + block_rows]

            P = TY @ X_block.T
            P *= -2.0
            P += ty_sq
            P += np.sum(X_block * X_block, axis=1)[None, :]
            np.maximum(P, 0.0, out=P)
            P *= -1.0 / (2.0 * sigma2)
            np.exp(P, out=P)

            denominator = P.sum(axis=0) + c
            denominator[denominator == 0] = _EPS
            P /= denominator

            P1 += P.sum(axis=1)
            Pt1[start:start + len(X_block)] = P.sum(axis=0)
            PX += P @ X_block

        return P1, Pt1, PX
