"""
Utility Functions Module

This module provides common utility functions used across the surface velocity project.
- Typed YAML configuration
- Logging
- Export utilities for CSV, JSON and LAZ
"""

from .logging import setup_logger, set_package_level
from .config import AppConfig, load_config
from .export import (
    write_velocities_csv,
    write_samples_json,
    export_velocities_to_laz,
    projection_vlrs,
)

__all__ = [
    "setup_logger",
    "set_package_level",
    "AppConfig",
    "load_config",
    "write_velocities_csv",
    "write_samples_json",
    "export_velocities_to_laz",
    "projection_vlrs",
]
