"""
Uniform Grid Partitioning

Bins every point of a cloud into square cells keyed by integer (row, col),
with ``row = floor(y / cell_size)`` and ``col = floor(x / cell_size)``. The
partition stores point indices only; the cloud keeps ownership of the points.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Tuple

import numpy as np

from ..utils.logging import setup_logger

logger = setup_logger(__name__)

GridCell = Tuple[int, int]


def cell_of(x: float, y: float, cell_size: float) -> GridCell:
    """Cell key of a single horizontal position."""
    return int(np.floor(y / cell_size)), int(np.floor(x / cell_size))


class GridPartition:
    """
    Mapping from GridCell to the points of one cloud falling inside it.

    Example:
        partition = GridPartition.from_cloud(cloud, cell_size=100.0)
        for cell in partition.cells():
            patch = partition.points(cell)
    """

    def __init__(self, points: np.ndarray, cell_size: float):
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"points must be (N, 3), got {points.shape}")

        self.cell_size = float(cell_size)
        self._points = points
        self._cells: Dict[GridCell, np.ndarray] = self._bin(points, self.cell_size)

        logger.debug(
            "Partitioned %d points into %d cells of size %.3f",
            len(points),
            len(self._cells),
            self.cell_size,
        )

    @classmethod
    def from_cloud(cls, cloud, cell_size: float) -> "GridPartition":
        return cls(cloud.points, cell_size)

    @staticmethod
    def _bin(points: np.ndarray, cell_size: float) -> Dict[GridCell, np.ndarray]:
        if len(points) == 0:
            return {}
        rows = np.floor(points[:, 1] / cell_size).astype(np.int64)
        cols = np.floor(points[:, 0] / cell_size).astype(np.int64)

        # Stable sort keeps file order inside each cell
        order = np.lexsort((cols, rows))
        sorted_rows = rows[order]
        sorted_cols = cols[order]
        breaks = np.flatnonzero(
            (np.diff(sorted_rows) != 0) | (np.diff(sorted_cols) != 0)
        ) + 1
        starts = np.concatenate([[0], breaks])
        ends = np.concatenate([breaks, [len(order)]])

        return {
            (int(sorted_rows[s]), int(sorted_cols[s])): order[s:e]
            for s, e in zip(starts, ends)
        }

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, cell: GridCell) -> bool:
        return cell in self._cells

    def __iter__(self) -> Iterator[GridCell]:
        return iter(self._cells)

    def cells(self) -> List[GridCell]:
        """Occupied cells in (row, col) order."""
        return sorted(self._cells)

    def indices(self, cell: GridCell) -> np.ndarray:
        return self._cells[cell]

    def count(self, cell: GridCell) -> int:
        """Number of points in a cell (0 when the cell is empty)."""
        indices = self._cells.get(cell)
        return 0 if indices is None else len(indices)

    def points(self, cell: GridCell) -> np.ndarray:
        """(n, 3) points of one cell; raises KeyError for an empty cell."""
        return self._points[self._cells[cell]]

    def cell_center(self, cell: GridCell) -> Tuple[float, float]:
        row, col = cell
        return (col + 0.5) * self.cell_size, (row + 0.5) * self.cell_size
