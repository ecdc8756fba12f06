"""
Acceleration Module

Thread-based parallel processing of sampling locations.
"""

from .parallel_executor import LocationParallelExecutor, default_worker_count

__all__ = ["LocationParallelExecutor", "default_worker_count"]
