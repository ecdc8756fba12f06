"""
Exception types raised by the surface velocity workflow.

Every error derives from SurfaceVelocityError and from the builtin that
best describes it, so callers can catch either.
"""

from pathlib import Path
from typing import Optional, Tuple, Union

PathLike = Union[str, Path]


class SurfaceVelocityError(Exception):
    """Base class for all surface velocity errors."""


class MalformedTimestamp(SurfaceVelocityError, ValueError):
    """The capture file name does not start with a parseable timestamp."""

    def __init__(self, path: PathLike, detail: Optional[str] = None):
        self.path = Path(path)
        message = f"Malformed capture timestamp in file name: {self.path}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class NoMovingCapture(SurfaceVelocityError, FileNotFoundError):
    """No sibling capture lies inside the forward time window."""

    def __init__(self, path: PathLike, min_hours: float, max_hours: float):
        self.path = Path(path)
        self.min_hours = min_hours
        self.max_hours = max_hours
        super().__init__(
            f"No moving capture for {self.path} within "
            f"({min_hours:g} h, {max_hours:g} h)"
        )


class DecodeError(SurfaceVelocityError, IOError):
    """A capture file could not be decoded into points."""

    def __init__(self, path: PathLike, detail: str):
        self.path = Path(path)
        super().__init__(f"Could not decode point cloud {self.path}: {detail}")


class RegistrationFailed(SurfaceVelocityError, RuntimeError):
    """The registration engine faulted on a pair of patches."""

    def __init__(self, detail: str, location: Optional[Tuple] = None):
        self.detail = detail
        self.location = location
        if location is not None:
            detail = f"{detail} at location {location}"
        super().__init__(f"Registration failed: {detail}")
