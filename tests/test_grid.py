"""
Tests for uniform grid partitioning.
"""

from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_velocity.spatial.grid import GridPartition, cell_of


def test_cell_key_is_row_then_col():
    assert cell_of(150.0, 20.0, 100.0) == (0, 1)
    assert cell_of(20.0, 150.0, 100.0) == (1, 0)
    assert cell_of(-0.5, -100.0, 100.0) == (-1, -1)
    assert cell_of(100.0, 0.0, 100.0) == (0, 1)


def test_every_point_in_exactly_one_cell(surface_points):
    partition = GridPartition(surface_points, 25.0)

    all_indices = np.concatenate([partition.indices(c) for c in partition.cells()])
    assert len(all_indices) == len(surface_points)
    assert set(all_indices.tolist()) == set(range(len(surface_points)))

    for cell in partition.cells():
        pts = partition.points(cell)
        rows = np.floor(pts[:, 1] / 25.0).astype(int)
        cols = np.floor(pts[:, 0] / 25.0).astype(int)
        assert np.all(rows == cell[0])
        assert np.all(cols == cell[1])


def test_point_order_preserved_inside_cell():
    pts = np.array([
        [5.0, 5.0, 0.0],
        [150.0, 5.0, 1.0],
        [6.0, 6.0, 2.0],
        [7.0, 7.0, 3.0],
    ])
    partition = GridPartition(pts, 100.0)
    np.testing.assert_array_equal(partition.indices((0, 0)), [0, 2, 3])
    np.testing.assert_array_equal(partition.points((0, 0))[:, 2], [0.0, 2.0, 3.0])


def test_cells_sorted_and_counts():
    pts = np.array([
        [250.0, 10.0, 0.0],
        [10.0, 110.0, 0.0],
        [10.0, 10.0, 0.0],
        [15.0, 12.0, 0.0],
    ])
    partition = GridPartition(pts, 100.0)
    assert partition.cells() == [(0, 0), (0, 2), (1, 0)]
    assert len(partition) == 3
    assert partition.count((0, 0)) == 2
    assert partition.count((5, 5)) == 0
    assert (5, 5) not in partition
    assert partition.cell_center((1, 0)) == (50.0, 150.0)


def test_empty_cloud_has_no_cells():
    partition = GridPartition(np.empty((0, 3)), 10.0)
    assert partition.cells() == []


def test_invalid_cell_size():
    with pytest.raises(ValueError):
        GridPartition(np.zeros((1, 3)), 0.0)


def test_finer_cells_never_merge_occupied_cells(surface_points):
    counts = [len(GridPartition(surface_points, size)) for size in (100.0, 50.0, 10.0, 5.0, 1.0, 0.5, 0.25)]
    assert counts == sorted(counts)
    assert counts[0] < counts[-1]


@pytest.mark.parametrize("cell_size", [100.0, 10.0, 1.0, 0.1])
def test_same_position_shares_a_cell(surface_points, cell_size):
    duplicated = surface_points[:50] + np.array([0.0, 0.0, 7.0])
    pts = np.vstack([surface_points, duplicated])
    partition = GridPartition(pts, cell_size)

    owner = {}
    for cell in partition.cells():
        for i in partition.indices(cell):
            owner[int(i)] = cell
    n = len(surface_points)
    for i in range(50):
        assert owner[i] == owner[n + i]
