"""
Temporal Pairing of Captures

Scanner captures are named after their acquisition time, e.g.
``160812_120014.laz`` for 2016-08-12 12:00:14. Given a "fixed" capture this
module finds the "moving" capture acquired shortly afterwards in the same
directory:

scans/
├── 160812_060012.laz   <- fixed
├── 160812_120014.laz   <- moving (+6 h)
├── 160812_180011.laz
└── notes.txt
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..exceptions import MalformedTimestamp, NoMovingCapture
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

DEFAULT_TIMESTAMP_FORMAT = "%y%m%d_%H%M%S"
DEFAULT_TIMESTAMP_LENGTH = 13


@dataclass(frozen=True)
class Pairing:
    """A fixed capture and the moving capture compared against it."""
    fixed_path: Path
    moving_path: Path
    fixed_time: datetime
    moving_time: datetime

    def __post_init__(self):
        if self.elapsed <= timedelta(0):
            raise ValueError(
                f"Pairing requires a positive elapsed time, got {self.elapsed} "
                f"({self.fixed_path} -> {self.moving_path})"
            )

    @property
    def elapsed(self) -> timedelta:
        return self.moving_time - self.fixed_time

    @property
    def elapsed_hours(self) -> float:
        return self.elapsed.total_seconds() / 3600.0


def capture_time_from_path(
    path,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
    timestamp_length: int = DEFAULT_TIMESTAMP_LENGTH,
) -> datetime:
    """
    Parse the capture time encoded in the first characters of a file name.

    Raises:
        MalformedTimestamp: If the prefix is missing or does not match the format
    """
    path = Path(path)
    name = path.name
    if len(name) < timestamp_length:
        raise MalformedTimestamp(path, f"name shorter than {timestamp_length} characters")
    try:
        return datetime.strptime(name[:timestamp_length], timestamp_format)
    except ValueError as e:
        raise MalformedTimestamp(path, str(e)) from e


class TemporalPairResolver:
    """
    Resolves the moving capture for a fixed capture.

    A sibling qualifies when its timestamp lies strictly inside
    (fixed + min_hours, fixed + max_hours). When several qualify, the one
    closest in time wins, ties broken by file name.
    """

    def __init__(
        self,
        *,
        min_hours: float = 0.0,
        max_hours: float = 7.0,
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
        timestamp_length: int = DEFAULT_TIMESTAMP_LENGTH,
        capture_suffixes: Optional[Sequence[str]] = (".las", ".laz"),
    ):
        if min_hours < 0 or max_hours <= min_hours:
            raise ValueError(f"Invalid forward window ({min_hours}, {max_hours})")
        self.min_hours = min_hours
        self.max_hours = max_hours
        self.timestamp_format = timestamp_format
        self.timestamp_length = timestamp_length
        self.capture_suffixes = (
            tuple(s.lower() for s in capture_suffixes) if capture_suffixes else None
        )

    @classmethod
    def from_config(cls, config) -> "TemporalPairResolver":
        """Build a resolver from a PairingConfig section."""
        return cls(
            min_hours=config.min_hours,
            max_hours=config.max_hours,
            timestamp_format=config.timestamp_format,
            timestamp_length=config.timestamp_length,
            capture_suffixes=config.capture_suffixes,
        )

    def capture_time(self, path) -> datetime:
        return capture_time_from_path(path, self.timestamp_format, self.timestamp_length)

    def candidates(self, fixed_path) -> List[Tuple[timedelta, Path]]:
        """
        List siblings inside the forward window as (elapsed, path), best first.

        Siblings whose names do not carry a timestamp are ignored.
        """
        fixed_path = Path(fixed_path)
        fixed_time = self.capture_time(fixed_path)
        lower = timedelta(hours=self.min_hours)
        upper = timedelta(hours=self.max_hours)

        qualifying = []
        for sibling in fixed_path.parent.iterdir():
            if not sibling.is_file() or sibling.name == fixed_path.name:
                continue
            if self.capture_suffixes and sibling.suffix.lower() not in self.capture_suffixes:
                continue
            try:
                sibling_time = self.capture_time(sibling)
            except MalformedTimestamp:
                logger.debug(f"Skipping sibling without timestamp: {sibling.name}")
                continue
            elapsed = sibling_time - fixed_time
            if lower < elapsed < upper:
                qualifying.append((elapsed, sibling))

        qualifying.sort(key=lambda item: (item[0], item[1].name))
        return qualifying

    def resolve(self, fixed_path) -> Pairing:
        """
        Find the moving capture for a fixed capture.

        Raises:
            MalformedTimestamp: If the fixed file name carries no timestamp
            NoMovingCapture: If no sibling lies inside the forward window
        """
        fixed_path = Path(fixed_path)
        fixed_time = self.capture_time(fixed_path)
        qualifying = self.candidates(fixed_path)
        if not qualifying:
            raise NoMovingCapture(fixed_path, self.min_hours, self.max_hours)

        elapsed, moving_path = qualifying[0]
        if len(qualifying) > 1:
            logger.info(
                f"{len(qualifying)} captures qualify for {fixed_path.name}; "
                f"using the closest in time ({moving_path.name})"
            )
        logger.info(f"Paired {fixed_path.name} -> {moving_path.name} (elapsed {elapsed})")
        return Pairing(
            fixed_path=fixed_path,
            moving_path=moving_path,
            fixed_time=fixed_time,
            moving_time=fixed_time + elapsed,
        )
