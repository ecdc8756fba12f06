"""
Test suite for point cloud ingest
"""

from datetime import datetime
from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent.parent / "src"))
from surface_velocity.exceptions import DecodeError
from surface_velocity.preprocessing.loader import (
    PointCloud,
    PointCloudLoader,
    create_classification_mask,
)


class TestPointCloudLoader:
    """Test cases for the PointCloudLoader class."""

    def test_load_valid_file(self, tmp_path, surface_points, las_writer):
        path = las_writer(tmp_path / "160812_060000.las", surface_points)
        stamp = datetime(2016, 8, 12, 6)

        cloud = PointCloudLoader().load(path, timestamp=stamp)

        assert isinstance(cloud, PointCloud)
        assert len(cloud) == len(surface_points)
        assert cloud.points.dtype == np.float64
        np.testing.assert_allclose(cloud.points, surface_points, atol=1e-3)
        assert cloud.path == path
        assert cloud.timestamp == stamp
        assert "intensity" in cloud.attributes
        assert len(cloud.attributes["intensity"]) == len(surface_points)

    def test_points_are_read_only(self, tmp_path, surface_points, las_writer):
        path = las_writer(tmp_path / "cloud.las", surface_points)
        cloud = PointCloudLoader().load(path)
        with pytest.raises(ValueError):
            cloud.points[0, 0] = 1.0

    def test_bounds(self, tmp_path, las_writer):
        pts = np.array([[1.0, 2.0, 3.0], [4.0, -5.0, 6.0], [0.5, 7.0, 0.0]])
        cloud = PointCloudLoader().load(las_writer(tmp_path / "cloud.las", pts))
        np.testing.assert_allclose(cloud.bounds, (0.5, -5.0, 4.0, 7.0), atol=1e-3)

    def test_missing_file_raises_decode_error(self, tmp_path):
        missing = tmp_path / "160812_060000.laz"
        with pytest.raises(DecodeError) as excinfo:
            PointCloudLoader().load(missing)
        assert str(missing) in str(excinfo.value)
        assert isinstance(excinfo.value, IOError)

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "cloud.xyz"
        path.write_text("1 2 3\n")
        with pytest.raises(DecodeError):
            PointCloudLoader().load(path)

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "broken.las"
        path.write_bytes(b"not a las file at all")
        with pytest.raises(DecodeError) as excinfo:
            PointCloudLoader().load(path)
        assert "broken.las" in str(excinfo.value)
        assert excinfo.value.__cause__ is not None

    def test_ground_only_filter(self, tmp_path, surface_points, las_writer):
        classification = np.where(np.arange(len(surface_points)) % 2 == 0, 2, 1)
        path = las_writer(tmp_path / "cloud.las", surface_points, classification=classification)

        everything = PointCloudLoader().load(path)
        ground = PointCloudLoader(ground_only=True).load(path)

        assert len(everything) == len(surface_points)
        assert len(ground) == int(np.sum(classification == 2))
        assert np.all(ground.attributes["classification"] == 2)


def test_classification_mask_precedence():
    classes = np.array([1, 2, 3, 2, 9])
    np.testing.assert_array_equal(
        create_classification_mask(classes), [True, True, True, True, True]
    )
    np.testing.assert_array_equal(
        create_classification_mask(classes, ground_only=True), [False, True, False, True, False]
    )
    np.testing.assert_array_equal(
        create_classification_mask(classes, ground_only=True, classification_filter=[1, 9]),
        [True, False, False, False, True],
    )


def test_point_cloud_rejects_bad_shape():
    with pytest.raises(ValueError):
        PointCloud(points=np.zeros((4, 2)))
