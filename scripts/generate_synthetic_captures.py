"""
Generate a synthetic pair of timestamped captures (LAZ) of a flowing surface.

- Creates a rough glacier-like surface with crevasse-scale relief and noise.
- The fixed capture samples the surface as is.
- The moving capture samples the same surface after it has been advected by a
  smooth flow field: fastest along the centre line (y = 0), slowing towards the
  margins, plus a small vertical drawdown.
- File names carry the capture time (yyMMdd_HHmmss), so the pair is picked up
  by the temporal pairing:
      data/synthetic/glacier/160812_060000.laz
      data/synthetic/glacier/160812_120000.laz

Requires: laspy with a LAZ backend (lazrs).
"""
from __future__ import annotations

import argparse
from datetime import datetime, timedelta
from pathlib import Path

import laspy
import numpy as np


def ensure_laz_writing_possible():
    # laspy requires either lazrs or laszip to write .laz
    if not laspy.LazBackend.detect_available():
        raise RuntimeError(
            "LAZ compression backend not found. Install one of: 'lazrs' (recommended) or 'laszip'.\n"
            "For example: pip install 'laspy[lazrs]'"
        )


def make_surface(nx=300, ny=200, spacing=1.0, seed=42):
    rng = np.random.default_rng(seed)
    x = np.arange(nx) * spacing
    y = (np.arange(ny) - ny / 2) * spacing
    X, Y = np.meshgrid(x, y)
    return X, Y, surface_height(X, Y) + 0.02 * rng.standard_normal(size=X.shape)


def surface_height(X, Y):
    # Sloping tongue with transverse ridges; the ridges give registration something to lock on to
    return (
        200.0
        - 0.05 * X
        + 0.002 * Y ** 2
        + 1.2 * np.sin(0.15 * X) * np.cos(0.07 * Y)
        + 0.6 * np.sin(0.31 * X + 0.2 * Y)
    )


def flow_displacement(X, Y, hours, peak_speed=0.8, half_width=100.0, drawdown=0.02):
    """Displacement (dx, dy, dz) after `hours` for a parabolic flow profile."""
    profile = np.clip(1.0 - (Y / half_width) ** 2, 0.0, None)
    dx = peak_speed * profile * hours
    dy = np.zeros_like(dx)
    dz = -drawdown * profile * hours
    return dx, dy, dz


def to_points(X, Y, Z, keep_ratio=0.5, seed=123):
    rng = np.random.default_rng(seed)
    H, W = Z.shape
    idx = rng.choice(H * W, size=int(keep_ratio * H * W), replace=False)
    xi = idx % W
    yi = idx // W
    return np.column_stack([X[yi, xi], Y[yi, xi], Z[yi, xi]])


def write_laz(path: Path, points: np.ndarray, gps_time: float):
    ensure_laz_writing_possible()
    path.parent.mkdir(parents=True, exist_ok=True)
    hdr = laspy.LasHeader(point_format=6, version="1.4")
    hdr.offsets = points.min(axis=0)
    hdr.scales = np.array([0.001, 0.001, 0.001])
    las = laspy.LasData(hdr)
    las.x = points[:, 0]
    las.y = points[:, 1]
    las.z = points[:, 2]
    las.intensity = np.full(points.shape[0], 100, dtype=np.uint16)
    las.gps_time = np.full(points.shape[0], gps_time)
    las.write(str(path))


def main():
    parser = argparse.ArgumentParser(description="Generate a synthetic capture pair")
    parser.add_argument(
        "--out-dir",
        type=str,
        default=str(Path(__file__).parent.parent / "data" / "synthetic" / "glacier"),
        help="Directory the two captures are written to",
    )
    parser.add_argument("--start", type=str, default="160812_060000", help="Fixed capture time (yyMMdd_HHmmss)")
    parser.add_argument("--hours", type=float, default=6.0, help="Time between the captures")
    parser.add_argument("--seed", type=int, default=1)
    args = parser.parse_args()

    out_dir = Path(args.out_dir)
    fixed_time = datetime.strptime(args.start, "%y%m%d_%H%M%S")
    moving_time = fixed_time + timedelta(hours=args.hours)

    X, Y, Z = make_surface(seed=args.seed)
    pts_fixed = to_points(X, Y, Z, seed=args.seed + 1)

    # Advect the sampling grid and evaluate the surface at the upstream position
    dx, dy, dz = flow_displacement(X, Y, args.hours)
    Z_moving = surface_height(X - dx, Y - dy) + dz
    pts_moving = to_points(X, Y, Z_moving, seed=args.seed + 2)

    fixed_path = out_dir / f"{fixed_time:%y%m%d_%H%M%S}.laz"
    moving_path = out_dir / f"{moving_time:%y%m%d_%H%M%S}.laz"
    write_laz(fixed_path, pts_fixed, gps_time=0.0)
    write_laz(moving_path, pts_moving, gps_time=args.hours * 3600.0)

    print(f"Wrote: {fixed_path}")
    print(f"Wrote: {moving_path}")


if __name__ == "__main__":
    main()
