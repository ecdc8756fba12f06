"""
Thread-safe collection of per-location results.
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Callable, Dict, Hashable, List, Optional

from .models import LocationResult, LocationStatus, Sample, Velocity


class ResultAggregator:
    """
    Collects LocationResults from concurrent workers.

    Results are kept keyed by location, so the output order never depends on
    which worker finished first.
    """

    def __init__(self, sort_key: Optional[Callable[[Hashable], object]] = None):
        self._lock = threading.Lock()
        self._results: Dict[Hashable, LocationResult] = {}
        self._sort_key = sort_key or (lambda key: key)

    def add(self, result: LocationResult) -> None:
        with self._lock:
            if result.key in self._results:
                raise ValueError(f"Location {result.key} already has a result")
            self._results[result.key] = result

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def results(self) -> List[LocationResult]:
        """All results ordered by location."""
        with self._lock:
            keys = sorted(self._results, key=self._sort_key)
            return [self._results[k] for k in keys]

    def velocities(self) -> List[Velocity]:
        """Velocities of converged locations, sorted by (x, y)."""
        found = [r.velocity for r in self.results() if r.velocity is not None]
        return sorted(found, key=lambda v: (v.x, v.y))

    def samples(self) -> List[Sample]:
        """Samples of every covered location, sorted by (x, y)."""
        found = [r.sample for r in self.results() if r.sample is not None]
        return sorted(found, key=lambda s: (s.x, s.y))

    def summary(self) -> Dict[str, int]:
        counts = Counter(r.status for r in self.results())
        return {status.value: counts.get(status, 0) for status in LocationStatus}
