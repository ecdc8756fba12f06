"""
Tests for rigid Coherent Point Drift.

Synthetic patches with a known rigid motion; the recovered transform should
match it and the convergence flag should follow the iteration budget.
"""

from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_velocity.alignment.cpd import RigidCPD
from surface_velocity.exceptions import RegistrationFailed


def _make_patch(n: int = 400, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    # Anisotropic spread to avoid degenerate covariance
    return rng.normal(size=(n, 3)) * np.array([1.0, 0.6, 0.3])


def _rotation_z(deg: float) -> np.ndarray:
    th = np.deg2rad(deg)
    return np.array([
        [np.cos(th), -np.sin(th), 0.0],
        [np.sin(th), np.cos(th), 0.0],
        [0.0, 0.0, 1.0],
    ])


def test_cpd_recovers_translation():
    src = _make_patch(seed=1)
    t = np.array([0.3, -0.2, 0.1])

    outcome = RigidCPD(tolerance=1e-8).register(source=src, target=src + t)

    assert outcome.converged
    np.testing.assert_allclose(outcome.rotation, np.eye(3), atol=1e-4)
    np.testing.assert_allclose(outcome.translation, t, atol=1e-4)


def test_cpd_recovers_rotation_and_translation():
    src = _make_patch(seed=2)
    R = _rotation_z(10.0)
    t = np.array([0.2, 0.1, -0.05])

    outcome = RigidCPD(tolerance=1e-9, max_iterations=300).register(source=src, target=src @ R.T + t)

    assert outcome.converged
    np.testing.assert_allclose(outcome.rotation, R, atol=1e-3)
    np.testing.assert_allclose(outcome.translation, t, atol=1e-3)
    assert np.linalg.det(outcome.rotation) == pytest.approx(1.0)


def test_identical_patches_give_identity():
    src = _make_patch(seed=3)
    outcome = RigidCPD().register(source=src, target=src.copy())
    assert outcome.converged
    np.testing.assert_allclose(outcome.as_matrix(), np.eye(4), atol=1e-6)


def test_iteration_cap_reports_not_converged():
    src = _make_patch(seed=4)
    outcome = RigidCPD(max_iterations=1, tolerance=1e-12).register(
        source=src, target=src @ _rotation_z(20.0).T
    )
    assert not outcome.converged
    assert outcome.iterations == 1


def test_rotation_is_proper_without_reflections():
    # A mirrored target tempts the solver into a reflection
    src = _make_patch(seed=5)
    mirrored = src * np.array([1.0, 1.0, -1.0])
    outcome = RigidCPD(max_iterations=50).register(source=src, target=mirrored)
    assert np.linalg.det(outcome.rotation) == pytest.approx(1.0, abs=1e-6)


def test_outlier_weight_tolerates_noise_points():
    rng = np.random.default_rng(6)
    src = _make_patch(seed=6)
    t = np.array([0.1, 0.05, 0.0])
    target = np.vstack([src + t, rng.uniform(-3, 3, size=(20, 3))])

    outcome = RigidCPD(outlier_weight=0.1, tolerance=1e-8).register(source=src, target=target)

    np.testing.assert_allclose(outcome.translation, t, atol=0.05)


def test_degenerate_single_point_patches():
    outcome = RigidCPD().register(source=np.ones((3, 3)), target=np.ones((2, 3)))
    assert outcome.converged
    np.testing.assert_allclose(outcome.rotation, np.eye(3))


@pytest.mark.parametrize(
    "source, target",
    [
        (np.empty((0, 3)), np.zeros((5, 3))),
        (np.zeros((5, 3)), np.empty((0, 3))),
        (np.zeros((5, 3)), np.zeros((5, 2))),
        (np.array([[0.0, 0.0, np.nan]]), np.zeros((5, 3))),
    ],
)
def test_invalid_input_raises(source, target):
    with pytest.raises(RegistrationFailed):
        RigidCPD().register(source=source, target=target)


def test_invalid_outlier_weight():
    with pytest.raises(ValueError):
        RigidCPD(outlier_weight=1.0)


def test_blocked_expectation_matches_dense_posteriors():
    rng = np.random.default_rng(7)
    X = rng.normal(size=(57, 3))
    TY = rng.normal(size=(23, 3))
    sigma2 = 0.8
    cpd = RigidCPD(outlier_weight=0.2)
    # Force several uneven blocks of target rows
    cpd.MAX_BLOCK_ELEMENTS = 23 * 10

    P1, Pt1, PX = cpd._expectation(X, TY, sigma2)

    sq_dist = np.sum((TY[:, None, :] - X[None, :, :]) ** 2, axis=2)
    K = np.exp(-sq_dist / (2.0 * sigma2))
    c = (2.0 * np.pi * sigma2) ** 1.5 * 0.2 / 0.8 * 23 / 57
    P = K / (K.sum(axis=0) + c)
    np.testing.assert_allclose(P1, P.sum(axis=1), rtol=1e-10)
    np.testing.assert_allclose(Pt1, P.sum(axis=0), rtol=1e-10)
    np.testing.assert_allclose(PX, P @ X, rtol=1e-10)


def test_small_blocks_give_same_transform():
    src = _make_patch(seed=8)
    t = np.array([0.2, -0.1, 0.05])
    cpd = RigidCPD(tolerance=1e-8)
    blocked = RigidCPD(tolerance=1e-8)
    blocked.MAX_BLOCK_ELEMENTS = 400 * 7

    expected = cpd.register(source=src, target=src + t)
    outcome = blocked.register(source=src, target=src + t)

    np.testing.assert_allclose(outcome.as_matrix(), expected.as_matrix(), atol=1e-8)
