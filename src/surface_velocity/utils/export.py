"""
Export utilities for surface velocity results.

Provides functions to export results to:
- CSV (one velocity per row: x, y, z, vx, vy, vz)
- JSON (adaptive samples with their optional registration block)
- Point cloud formats (LAZ/LAS) with velocity components as extra dimensions

These outputs are compatible with QGIS, CloudCompare and similar software.
"""

import json
from pathlib import Path
from typing import List, Optional, Sequence

import laspy
import numpy as np

from .logging import setup_logger

logger = setup_logger(__name__)

VELOCITY_COLUMNS = ("x", "y", "z", "vx", "vy", "vz")


def velocities_to_array(velocities: Sequence) -> np.ndarray:
    """(N, 6) array of x, y, z, vx, vy, vz."""
    if len(velocities) == 0:
        return np.empty((0, len(VELOCITY_COLUMNS)))
    return np.array(
        [[v.x, v.y, v.z, v.vx, v.vy, v.vz] for v in velocities], dtype=np.float64
    )


def write_velocities_csv(velocities: Sequence, output_path) -> str:
    """
    Write velocities as CSV with a header row.

    Returns:
        Path to created file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(
        output_path,
        velocities_to_array(velocities),
        delimiter=",",
        header=",".join(VELOCITY_COLUMNS),
        comments="",
        fmt="%.10g",
    )
    logger.info(f"Wrote {len(velocities):,} velocities to {output_path}")
    return str(output_path)


def write_samples_json(samples: Sequence, output_path) -> str:
    """Write adaptive samples as a JSON list."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump([s.to_dict() for s in samples], f, indent=2)
    logger.info(f"Wrote {len(samples):,} samples to {output_path}")
    return str(output_path)


def projection_vlrs(source_laz_path) -> List[laspy.VLR]:
    """
    CRS records (user id "LASF_Projection") of a LAS/LAZ file.

    Both WKT (record 2112) and GeoTIFF key records are returned unchanged.
    """
    with laspy.open(str(source_laz_path)) as reader:
        vlrs = [vlr for vlr in reader.header.vlrs if vlr.user_id == "LASF_Projection"]
    logger.debug(f"Found {len(vlrs)} projection VLRs in {source_laz_path}")
    return vlrs


def export_velocities_to_laz(
    velocities: Sequence,
    output_path,
    *,
    source_laz_path: Optional[str] = None,
) -> str:
    """
    Export velocities as points with velocity components as extra dimensions.

    Each velocity becomes one point at its reference location carrying the
    extra dimensions "vx", "vy", "vz" and "speed".

    Args:
        velocities: Velocity records
        output_path: Path for output file (extension determines format)
        source_laz_path: Optional capture whose CRS records are copied

    Returns:
        Path to created file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = velocities_to_array(velocities)

    # LAS 1.4 point format 6 supports extra bytes
    header = laspy.LasHeader(point_format=6, version="1.4")
    for name in ("vx", "vy", "vz", "speed"):
        header.add_extra_dim(laspy.ExtraBytesParams(name=name, type=np.float64))

    if len(data):
        header.offsets = data[:, :3].min(axis=0)
    header.scales = np.array([0.001, 0.001, 0.001])

    if source_laz_path:
        for vlr in projection_vlrs(source_laz_path):
            header.vlrs.append(vlr)

    las = laspy.LasData(header)
    las.x = data[:, 0]
    las.y = data[:, 1]
    las.z = data[:, 2]
    las.vx = data[:, 3]
    las.vy = data[:, 4]
    las.vz = data[:, 5]
    las.speed = np.linalg.norm(data[:, 3:6], axis=1)

    las.write(str(output_path))
    logger.info(f"Exported {len(data):,} velocities to {output_path}")

    return str(output_path)
