"""
Shared fixtures: synthetic surfaces and LAS files written with laspy.
"""

from pathlib import Path
import sys

import laspy
import numpy as np
import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))


def make_surface_points(n=4000, xmin=10.0, xmax=90.0, ymin=10.0, ymax=90.0, seed=0):
    """Random samples of a rough, non-planar surface."""
    rng = np.random.default_rng(seed)
    x = rng.uniform(xmin, xmax, n)
    y = rng.uniform(ymin, ymax, n)
    z = 50.0 + 3.0 * np.sin(0.2 * x) * np.cos(0.15 * y) + 0.02 * x + 0.5 * np.sin(0.45 * y)
    return np.column_stack([x, y, z])


def write_las(path: Path, points: np.ndarray, classification=None) -> Path:
    """Write points to an uncompressed LAS 1.4 file (point format 6)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    header = laspy.LasHeader(point_format=6, version="1.4")
    header.offsets = points.min(axis=0) if len(points) else np.zeros(3)
    header.scales = np.array([0.0001, 0.0001, 0.0001])
    las = laspy.LasData(header)
    las.x = points[:, 0]
    las.y = points[:, 1]
    las.z = points[:, 2]
    las.intensity = np.full(len(points), 100, dtype=np.uint16)
    if classification is not None:
        las.classification = np.asarray(classification, dtype=np.uint8)
    las.write(str(path))
    return path


@pytest.fixture
def surface_points():
    return make_surface_points()


@pytest.fixture
def capture_pair(tmp_path):
    """
    Two captures six hours apart; the moving one is the fixed one shifted +5 in x.
    """
    fixed = make_surface_points(n=1500, seed=7)
    moving = fixed + np.array([5.0, 0.0, 0.0])
    fixed_path = write_las(tmp_path / "160812_060000.las", fixed)
    moving_path = write_las(tmp_path / "160812_120000.las", moving)
    return fixed_path, moving_path


@pytest.fixture
def las_writer():
    return write_las
