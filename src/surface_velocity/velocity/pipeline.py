"""
Velocity Pipeline

Wires the components together:

    fixed path -> TemporalPairResolver -> two PointCloudLoader.load calls (I/O pool)
        -> GridStrategy | AdaptiveStrategy
        -> RegistrationAdapter per location (worker pool)
        -> compute_velocity -> ResultAggregator

Every candidate location ends with exactly one LocationResult. Registration
faults and non-convergence are recorded against the location; errors while
pairing or decoding propagate to the caller.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Hashable, List, Optional, Sequence, Tuple

from ..acceleration.parallel_executor import LocationParallelExecutor
from ..alignment.registration import RegistrationAdapter, to_matrix
from ..alignment.transform import RegistrationOutcome
from ..exceptions import RegistrationFailed
from ..preprocessing.loader import PointCloud, PointCloudLoader
from ..preprocessing.pairing import Pairing, TemporalPairResolver
from ..spatial.density import SampleSelector
from ..spatial.grid import GridPartition
from ..spatial.index import SpatialIndex, sampling_locations
from ..utils.config import AppConfig
from ..utils.logging import setup_logger
from .aggregator import ResultAggregator
from .calculator import compute_velocity
from .models import LocationResult, LocationStatus, Sample, SampleRegistration, Velocity
from .strategies import AdaptiveStrategy, GridStrategy, SamplingStrategy, patch_extent

logger = setup_logger(__name__)


def _with_registration(sample: Optional[Sample], registration, status: LocationStatus) -> Optional[Sample]:
    if sample is None:
        return None
    return Sample(
        x=sample.x,
        y=sample.y,
        fixed_density=sample.fixed_density,
        moving_density=sample.moving_density,
        registration=registration,
        status=status,
    )


def process_location(
    strategy: SamplingStrategy,
    candidate: Hashable,
    adapter: RegistrationAdapter,
    elapsed_hours: float,
) -> LocationResult:
    """
    Extract, register and convert one candidate location.

    Returns:
        LocationResult whose status says what happened at the location
    """
    extraction = strategy.extract(candidate)
    if not extraction.should_register:
        return LocationResult(key=candidate, status=extraction.status, sample=extraction.sample)

    patches = extraction.patches
    logger.debug(
        f"Running {strategy.name} location {candidate} with "
        f"{len(patches.fixed)} fixed points and {len(patches.moving)} moving points"
    )

    try:
        outcome = adapter.register(patches.fixed, patches.moving, location=candidate)
    except RegistrationFailed as e:
        logger.warning(f"Registration failed at {candidate}: {e}")
        status = LocationStatus.REGISTRATION_FAILED
        return LocationResult(
            key=candidate,
            status=status,
            sample=_with_registration(extraction.sample, None, status),
        )

    registration = SampleRegistration(extent=patch_extent(patches), outcome=outcome)

    if not outcome.converged:
        logger.info(f"Registration at {candidate} did not converge after {outcome.iterations} iterations")
        status = LocationStatus.NON_CONVERGED
        return LocationResult(
            key=candidate,
            status=status,
            sample=_with_registration(extraction.sample, registration, status),
        )

    status = LocationStatus.REGISTERED
    return LocationResult(
        key=candidate,
        status=status,
        velocity=compute_velocity(outcome, patches.reference, elapsed_hours),
        sample=_with_registration(extraction.sample, registration, status),
    )


class VelocityPipeline:
    """
    End-to-end surface velocity estimation between two captures.

    Example:
        cfg = load_config()
        pipeline = VelocityPipeline(cfg)
        velocities = pipeline.velocities_from_path("data/160812_060000.laz")
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        loader: Optional[PointCloudLoader] = None,
        adapter: Optional[RegistrationAdapter] = None,
    ):
        self.config = config or AppConfig()
        self.resolver = TemporalPairResolver.from_config(self.config.pairing)
        self.loader = loader or PointCloudLoader(
            ground_only=self.config.preprocessing.ground_only,
            classification_filter=self.config.preprocessing.classification_filter,
        )
        self.adapter = adapter or RegistrationAdapter(self.config.registration)

    # -----------------------
    # Inputs
    # -----------------------

    def load_pair(self, pairing: Pairing) -> Tuple[PointCloud, PointCloud]:
        """Decode both captures of a pairing concurrently."""
        with ThreadPoolExecutor(
            max_workers=self.config.parallel.io_workers, thread_name_prefix="io"
        ) as pool:
            fixed_future = pool.submit(self.loader.load, pairing.fixed_path, pairing.fixed_time)
            moving_future = pool.submit(self.loader.load, pairing.moving_path, pairing.moving_time)
            return fixed_future.result(), moving_future.result()

    def _executor(self) -> LocationParallelExecutor:
        parallel = self.config.parallel
        return LocationParallelExecutor(n_workers=parallel.n_workers if parallel.enabled else 1)

    def _run(self, strategy: SamplingStrategy, elapsed_hours: float) -> ResultAggregator:
        aggregator = ResultAggregator(sort_key=strategy.sort_key)

        def work(candidate):
            result = process_location(strategy, candidate, self.adapter, elapsed_hours)
            aggregator.add(result)
            return result.status

        self._executor().map_locations(strategy.candidates(), work)
        logger.info(f"{strategy.name} sampling finished: {aggregator.summary()}")
        return aggregator

    # -----------------------
    # Strategies
    # -----------------------

    def run_grid(self, fixed: PointCloud, moving: PointCloud, elapsed_hours: float) -> ResultAggregator:
        """Exhaustive comparison of every occupied grid cell of the fixed capture."""
        grid = self.config.grid
        fixed_partition = GridPartition.from_cloud(fixed, grid.cell_size)
        moving_partition = GridPartition.from_cloud(moving, grid.cell_size)
        logger.info(
            f"Grid partition with cell size {grid.cell_size}: "
            f"{len(fixed_partition)} fixed cells, {len(moving_partition)} moving cells"
        )
        strategy = GridStrategy(fixed_partition, moving_partition, grid.min_patch_points)
        return self._run(strategy, elapsed_hours)

    def run_adaptive(
        self,
        fixed: PointCloud,
        moving: PointCloud,
        elapsed_hours: float,
        locations: Optional[Sequence] = None,
    ) -> ResultAggregator:
        """
        Density-gated sampling at the given locations.

        When locations is None a regular grid with the configured step is laid
        over the overlap of the two captures.
        """
        sampling = self.config.sampling
        fixed_index = SpatialIndex.from_cloud(fixed)
        moving_index = SpatialIndex.from_cloud(moving)
        if locations is None:
            locations = sampling_locations(fixed.bounds, moving.bounds, sampling.step)
        selector = SampleSelector(fixed_index, moving_index, sampling.step, sampling.min_density)
        strategy = AdaptiveStrategy(selector, locations, sampling.k_neighbors)
        logger.info(f"Adaptive sampling at {len(strategy.locations)} locations (step {sampling.step})")
        return self._run(strategy, elapsed_hours)

    # -----------------------
    # Entry points
    # -----------------------

    def _prepare(self, fixed_path) -> Tuple[Pairing, PointCloud, PointCloud]:
        pairing = self.resolver.resolve(fixed_path)
        fixed, moving = self.load_pair(pairing)
        logger.info(f"Loaded {len(fixed):,} fixed points and {len(moving):,} moving points")
        return pairing, fixed, moving

    def velocities_from_path(self, fixed_path) -> List[Velocity]:
        """Grid velocities between a capture and the capture that follows it."""
        pairing, fixed, moving = self._prepare(fixed_path)
        return self.run_grid(fixed, moving, pairing.elapsed_hours).velocities()

    def samples_from_path(self, fixed_path, locations: Optional[Sequence] = None) -> List[Sample]:
        """Adaptive samples between a capture and the capture that follows it."""
        pairing, fixed, moving = self._prepare(fixed_path)
        return self.run_adaptive(fixed, moving, pairing.elapsed_hours, locations).samples()

    def register_files(self, fixed_path, moving_path) -> RegistrationOutcome:
        """
        Register two whole captures with the configured registration policy.

        Raises:
            RegistrationFailed: If the engine faults or does not converge
        """
        fixed_path = Path(fixed_path)
        moving_path = Path(moving_path)
        with ThreadPoolExecutor(
            max_workers=self.config.parallel.io_workers, thread_name_prefix="io"
        ) as pool:
            fixed_future = pool.submit(self.loader.load, fixed_path)
            moving_future = pool.submit(self.loader.load, moving_path)
            fixed, moving = fixed_future.result(), moving_future.result()

        outcome = self.adapter.register(to_matrix(fixed.points), to_matrix(moving.points))
        if not outcome.converged:
            raise RegistrationFailed(
                f"{fixed_path.name} -> {moving_path.name} did not converge "
                f"after {outcome.iterations} iterations"
            )
        logger.info(
            f"Registered {fixed_path.name} onto {moving_path.name} in {outcome.iterations} iterations"
        )
        return outcome
