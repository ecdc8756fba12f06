"""
Parallel execution infrastructure for per-location processing.

Provides LocationParallelExecutor for distributing patch registrations across
a pool of worker threads. The heavy lifting happens inside numpy and
scikit-learn, which release the GIL, so threads share the read-only point
clouds and spatial indices without copying them into worker processes.
"""

from __future__ import annotations

import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..utils.logging import setup_logger

logger = setup_logger(__name__)


def default_worker_count() -> int:
    """cpu_count - 1, leaving one core for coordination. Minimum is 1."""
    return max(1, (os.cpu_count() or 1) - 1)


class LocationParallelExecutor:
    """
    Thread pool executor for location-based processing.

    Collects results in the same order as the input items, whatever order the
    workers finish in, and logs progress at intervals.

    Example:
        executor = LocationParallelExecutor(n_workers=4)
        results = executor.map_locations(
            items=strategy.candidates(),
            worker_fn=process_one,
        )
    """

    def __init__(self, n_workers: Optional[int] = None):
        """
        Args:
            n_workers: Number of worker threads. If None, uses cpu_count - 1.
                Minimum is 1.
        """
        if n_workers is None:
            n_workers = default_worker_count()
        else:
            n_workers = max(1, int(n_workers))

        self.n_workers = n_workers

        logger.debug(
            f"Initialized LocationParallelExecutor with {self.n_workers} workers "
            f"(total CPUs: {os.cpu_count()})"
        )

    def map_locations(
        self,
        items: Sequence[Any],
        worker_fn: Callable[..., Any],
        worker_kwargs: Optional[Dict[str, Any]] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> List[Any]:
        """
        Map a worker function over items.

        Args:
            items: Items to process (location keys)
            worker_fn: Called as worker_fn(item, **worker_kwargs)
            worker_kwargs: Fixed keyword arguments passed to each call
            progress_callback: Called as callback(completed, total) after each item

        Returns:
            List of results in the same order as items

        Raises:
            RuntimeError: If any item fails
        """
        items = list(items)
        worker_kwargs = worker_kwargs or {}
        n_items = len(items)

        if n_items == 0:
            logger.warning("No locations to process")
            return []

        logger.info(f"Processing {n_items} locations with {self.n_workers} workers")
        start_time = time.time()

        # No pool overhead for a single worker or a single item
        if self.n_workers == 1 or n_items == 1:
            results = []
            for i, item in enumerate(items):
                try:
                    results.append(worker_fn(item, **worker_kwargs))
                except Exception as e:
                    logger.error(f"Error processing location {item}: {e}", exc_info=True)
                    raise RuntimeError(f"Location processing failed: {e}") from e
                if progress_callback:
                    progress_callback(i + 1, n_items)
                self._log_progress(i + 1, n_items, start_time)
            return results

        results_by_index: Dict[int, Any] = {}
        errors = []
        with ThreadPoolExecutor(max_workers=self.n_workers, thread_name_prefix="location") as pool:
            futures = {
                pool.submit(worker_fn, item, **worker_kwargs): idx
                for idx, item in enumerate(items)
            }
            for completed, future in enumerate(as_completed(futures), start=1):
                idx = futures[future]
                try:
                    results_by_index[idx] = future.result()
                except Exception as e:
                    errors.append((idx, f"{type(e).__name__}: {e}"))
                    logger.error(f"Location {items[idx]} failed: {e}")
                if progress_callback:
                    progress_callback(completed, n_items)
                self._log_progress(completed, n_items, start_time)

        if errors:
            error_msg = f"{len(errors)} locations failed out of {n_items}"
            logger.error(error_msg)
            for idx, error in errors[:5]:
                logger.error(f"  Location {items[idx]}: {error}")
            if len(errors) > 5:
                logger.error(f"  ... and {len(errors) - 5} more errors")
            raise RuntimeError(error_msg)

        total_time = time.time() - start_time
        logger.info(
            f"Parallel processing complete: {n_items} locations in {total_time:.1f}s"
        )
        return [results_by_index[i] for i in range(n_items)]

    @staticmethod
    def _log_progress(completed: int, total: int, start_time: float) -> None:
        if completed % 100 != 0 and completed != total:
            return
        elapsed = max(time.time() - start_time, 1e-9)
        rate = completed / elapsed
        eta = (total - completed) / rate if rate > 0 else 0
        logger.info(
            f"Progress: {completed}/{total} locations "
            f"({100 * completed / total:.1f}%) - "
            f"Rate: {rate:.2f} locations/s - ETA: {eta:.1f}s"
        )
