"""
Rigid transforms produced by registration, and their text serialization.
"""

from dataclasses import dataclass

import numpy as np

from ..utils.logging import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class RegistrationOutcome:
    """
    Result of one registration call.

    The transform maps the fixed patch onto the moving patch:
    ``moving ≈ fixed @ rotation.T + translation``.
    """
    rotation: np.ndarray
    translation: np.ndarray
    converged: bool
    iterations: int = 0

    def as_matrix(self) -> np.ndarray:
        """Homogeneous 4x4 form of the transform."""
        matrix = np.eye(4)
        matrix[:3, :3] = self.rotation
        matrix[:3, 3] = self.translation
        return matrix

    def apply(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)
        return points @ self.rotation.T + self.translation

    @classmethod
    def identity(cls, converged: bool = True) -> "RegistrationOutcome":
        return cls(rotation=np.eye(3), translation=np.zeros(3), converged=converged)


def save_transform_matrix(transform: np.ndarray, output_file: str) -> None:
    """Save a transformation matrix to a text file.

    Args:
        transform: 4x4 transformation matrix
        output_file: Path to output file
    """
    if transform.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4 matrix, got {transform.shape}")
    np.savetxt(output_file, transform, fmt='%.18e', header='4x4 transformation matrix')
    logger.info(f"Saved transformation matrix to {output_file}")


def load_transform_matrix(input_file: str) -> np.ndarray:
    """Load a transformation matrix from a text file.

    Args:
        input_file: Path to input file

    Returns:
        4x4 transformation matrix
    """
    transform = np.loadtxt(input_file)
    if transform.shape != (4, 4):
        raise ValueError(f"Expected 4x4 matrix, got shape {transform.shape}")
    logger.info(f"Loaded transformation matrix from {input_file}")
    return transform
