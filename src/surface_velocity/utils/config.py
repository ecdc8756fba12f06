"""
Configuration management for surface-velocity.

Provides a typed pydantic model and YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, List, Any, Dict

from pydantic import BaseModel, Field, ValidationError, model_validator
import yaml


# -----------------------
# Typed config structures
# -----------------------


class PathsConfig(BaseModel):
    output_dir: str = Field(default="output")


class PreprocessingConfig(BaseModel):
    # Glacier scans are usually unclassified, so keep every point by default
    ground_only: bool = Field(default=False)
    classification_filter: Optional[List[int]] = Field(default=None)


class PairingConfig(BaseModel):
    timestamp_format: str = Field(default="%y%m%d_%H%M%S")
    timestamp_length: int = Field(default=13, gt=0, description="Characters of the file name holding the timestamp")
    min_hours: float = Field(default=0.0, description="Exclusive lower bound of the forward window")
    max_hours: float = Field(default=7.0, description="Exclusive upper bound of the forward window")
    capture_suffixes: List[str] = Field(default_factory=lambda: [".las", ".laz"])

    @model_validator(mode="after")
    def _check_window(self) -> "PairingConfig":
        if self.min_hours < 0 or self.max_hours <= self.min_hours:
            raise ValueError(
                f"Invalid forward window: min_hours={self.min_hours}, max_hours={self.max_hours}"
            )
        return self


class GridConfig(BaseModel):
    cell_size: float = Field(default=100.0, gt=0, description="Grid cell edge length (spatial units)")
    min_patch_points: int = Field(default=1000, ge=1, description="Minimum points per cell in both clouds")


class SamplingConfig(BaseModel):
    step: float = Field(default=25.0, gt=0, description="Sampling grid spacing and density query radius")
    min_density: float = Field(default=1.0, ge=0, description="Minimum points per unit area in both clouds")
    k_neighbors: int = Field(default=1000, ge=3, description="Patch size for adaptive sampling")


class RegistrationConfig(BaseModel):
    method: Literal["cpd", "icp"] = Field(default="cpd")
    normalize: Literal["same_scale", "none"] = Field(default="same_scale")
    # Rigid only: no scale, no reflections
    transform: Literal["rigid"] = Field(default="rigid")
    max_iterations: Optional[int] = Field(default=None, ge=1, description="Override the engine's iteration cap")
    tolerance: float = Field(default=1e-5, gt=0)
    outlier_weight: float = Field(default=0.0, ge=0, lt=1, description="CPD uniform outlier weight")
    max_correspondence_distance: float = Field(
        default=1.0,
        gt=0,
        description="ICP correspondence cut-off (normalized units when normalize='same_scale')",
    )


class ParallelConfig(BaseModel):
    enabled: bool = Field(default=True, description="Register locations concurrently")
    n_workers: Optional[int] = Field(default=None, description="Registration threads (None = auto-detect: cpu_count - 1)")
    io_workers: int = Field(default=2, ge=1, description="Threads used to decode the two captures")


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class OutputConfig(BaseModel):
    velocities_csv: bool = Field(default=True)
    velocities_laz: bool = Field(default=False)
    samples_json: bool = Field(default=True)


class AppConfig(BaseModel):
    paths: PathsConfig = Field(default_factory=PathsConfig)
    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    pairing: PairingConfig = Field(default_factory=PairingConfig)
    grid: GridConfig = Field(default_factory=GridConfig)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/surface_velocity/utils/config.py
    """
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: return default AppConfig()

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when file missing; otherwise raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}") from e
