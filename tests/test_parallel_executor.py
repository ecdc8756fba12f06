"""
Unit tests for parallel location processing infrastructure.

Tests LocationParallelExecutor for correctness, ordering and error handling.
"""

import random
import threading
import time
from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_velocity.acceleration import LocationParallelExecutor, default_worker_count


def _scaling_worker(location, scale=1):
    """Worker that scales the location index after a random delay."""
    time.sleep(random.uniform(0.001, 0.01))
    return location * scale


def _error_worker(location):
    raise ValueError(f"Intentional error on location {location}")


class TestLocationParallelExecutor:
    """Test suite for LocationParallelExecutor."""

    def test_executor_initialization(self):
        """Test executor initializes with correct worker count."""
        assert LocationParallelExecutor().n_workers == default_worker_count()
        assert LocationParallelExecutor(n_workers=4).n_workers == 4
        # Minimum workers (should be at least 1)
        assert LocationParallelExecutor(n_workers=0).n_workers == 1

    def test_sequential_fallback_one_location(self):
        executor = LocationParallelExecutor(n_workers=4)
        results = executor.map_locations([3], _scaling_worker, {"scale": 2})
        assert results == [6]

    def test_sequential_fallback_one_worker(self):
        executor = LocationParallelExecutor(n_workers=1)
        seen = set()

        def worker(location):
            seen.add(threading.current_thread().name)
            return location

        assert executor.map_locations(list(range(5)), worker) == [0, 1, 2, 3, 4]
        assert seen == {threading.current_thread().name}

    def test_parallel_processing_order_preserved(self):
        executor = LocationParallelExecutor(n_workers=4)
        results = executor.map_locations(list(range(30)), _scaling_worker, {"scale": 3})
        assert results == [i * 3 for i in range(30)]

    def test_tuple_locations(self):
        executor = LocationParallelExecutor(n_workers=2)
        cells = [(r, c) for r in range(3) for c in range(3)]
        assert executor.map_locations(cells, lambda cell: cell[0] * 10 + cell[1]) == [
            r * 10 + c for r, c in cells
        ]

    def test_empty_location_list(self):
        assert LocationParallelExecutor(n_workers=4).map_locations([], _scaling_worker) == []

    @pytest.mark.parametrize("n_workers", [1, 2])
    def test_worker_error_handling(self, n_workers):
        executor = LocationParallelExecutor(n_workers=n_workers)
        with pytest.raises(RuntimeError, match="failed"):
            executor.map_locations(list(range(5)), _error_worker)

    def test_progress_callback(self):
        executor = LocationParallelExecutor(n_workers=2)
        progress_calls = []

        executor.map_locations(
            list(range(5)),
            _scaling_worker,
            progress_callback=lambda completed, total: progress_calls.append((completed, total)),
        )

        assert len(progress_calls) == 5
        assert progress_calls[-1] == (5, 5)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
