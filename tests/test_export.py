"""
Tests for export utilities.

Tests CSV, JSON and LAZ export of velocities and samples.
"""

import json
from pathlib import Path
import sys

import laspy
import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_velocity.alignment.transform import RegistrationOutcome
from surface_velocity.utils.export import (
    export_velocities_to_laz,
    projection_vlrs,
    write_samples_json,
    write_velocities_csv,
)
from surface_velocity.velocity.models import (
    LocationStatus,
    PatchExtent,
    Sample,
    SampleRegistration,
    Velocity,
)


# ============================================================
# Test fixtures and helpers
# ============================================================


@pytest.fixture
def velocities():
    return [
        Velocity(100.0, 200.0, 50.0, 0.8, -0.1, -0.02),
        Velocity(150.0, 200.0, 48.5, 0.6, 0.0, -0.01),
    ]


@pytest.fixture
def samples():
    extent = PatchExtent(90.0, 110.0, 190.0, 210.0)
    return [
        Sample(100.0, 200.0, 2.5, 2.4, SampleRegistration(extent, RegistrationOutcome.identity()),
               status=LocationStatus.REGISTERED),
        Sample(125.0, 200.0, 0.2, 0.3),
    ]


# ============================================================
# CSV / JSON
# ============================================================


def test_velocities_csv(tmp_path, velocities):
    out = Path(write_velocities_csv(velocities, tmp_path / "out" / "velocities.csv"))

    lines = out.read_text().splitlines()
    assert lines[0] == "x,y,z,vx,vy,vz"
    assert len(lines) == 3
    data = np.loadtxt(out, delimiter=",", skiprows=1)
    np.testing.assert_allclose(data[0], [100.0, 200.0, 50.0, 0.8, -0.1, -0.02])


def test_empty_velocities_csv_has_header_only(tmp_path):
    out = Path(write_velocities_csv([], tmp_path / "empty.csv"))
    assert out.read_text().splitlines() == ["x,y,z,vx,vy,vz"]


def test_samples_json(tmp_path, samples):
    out = write_samples_json(samples, tmp_path / "samples.json")

    records = json.loads(Path(out).read_text())
    assert len(records) == 2
    assert records[0]["registration"]["xmin"] == 90.0
    assert records[0]["registration"]["converged"] is True
    assert records[0]["registration"]["translation"] == [0.0, 0.0, 0.0]
    assert records[1]["registration"] is None
    assert records[1]["status"] == "low_density"


# ============================================================
# LAZ
# ============================================================


def test_export_velocities_to_las(tmp_path, velocities):
    out = export_velocities_to_laz(velocities, tmp_path / "velocities.las")

    las = laspy.read(out)
    assert len(las.points) == 2
    np.testing.assert_allclose(las.x, [100.0, 150.0], atol=1e-3)
    np.testing.assert_allclose(las.vx, [0.8, 0.6])
    np.testing.assert_allclose(las.vz, [-0.02, -0.01])
    np.testing.assert_allclose(las.speed, [np.sqrt(0.64 + 0.01 + 0.0004), np.sqrt(0.36 + 0.0001)])


def test_projection_records_copied_from_source(tmp_path, velocities, surface_points):
    header = laspy.LasHeader(point_format=6, version="1.4")
    header.vlrs.append(laspy.VLR(
        user_id="LASF_Projection",
        record_id=2112,
        description="WKT Coordinate System",
        record_data=b'PROJCS["ETRS89 / UTM zone 33N",AUTHORITY["EPSG","25833"]]\x00',
    ))
    source = laspy.LasData(header)
    source.x = surface_points[:, 0]
    source.y = surface_points[:, 1]
    source.z = surface_points[:, 2]
    source_path = tmp_path / "source.las"
    source.write(str(source_path))

    assert len(projection_vlrs(source_path)) == 1

    out = export_velocities_to_laz(velocities, tmp_path / "v.las", source_laz_path=str(source_path))

    with laspy.open(out) as reader:
        wkt = [v for v in reader.header.vlrs if v.user_id == "LASF_Projection"]
    assert len(wkt) == 1
    assert b"25833" in wkt[0].record_data_bytes()
