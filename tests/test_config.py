"""Tests for YAML configuration loading."""

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_velocity.utils.config import (
    AppConfig,
    PairingConfig,
    RegistrationConfig,
    load_config,
)

REPO_ROOT = Path(__file__).parent.parent


def test_default_config_file_matches_model_defaults():
    cfg = load_config(None)  # Load default.yaml

    assert cfg.pairing.timestamp_format == "%y%m%d_%H%M%S"
    assert cfg.pairing.timestamp_length == 13
    assert cfg.pairing.min_hours == 0.0
    assert cfg.pairing.max_hours == 7.0
    assert cfg.grid.cell_size == 100.0
    assert cfg.grid.min_patch_points == 1000
    assert cfg.registration.method == "cpd"
    assert cfg.registration.normalize == "same_scale"
    assert cfg.registration.transform == "rigid"
    assert cfg.registration.max_iterations is None
    assert cfg.parallel.io_workers == 2
    assert cfg == AppConfig()


def test_synthetic_profile():
    cfg = load_config(REPO_ROOT / "config" / "profiles" / "synthetic.yaml")

    assert cfg.grid.cell_size == 50.0
    assert cfg.sampling.step == 10.0
    assert cfg.registration.max_iterations == 200
    # Sections left out keep their defaults
    assert cfg.pairing.max_hours == 7.0


def test_partial_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text("grid:\n  cell_size: 25\n")
    cfg = load_config(path)
    assert cfg.grid.cell_size == 25.0
    assert cfg.grid.min_patch_points == 1000


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == AppConfig()


def test_missing_file(tmp_path):
    missing = tmp_path / "nope.yaml"
    assert load_config(missing) == AppConfig()
    with pytest.raises(FileNotFoundError):
        load_config(missing, allow_missing=False)


def test_invalid_values_name_the_file(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("registration:\n  method: ransac\n")
    with pytest.raises(ValueError, match="bad.yaml"):
        load_config(path)


def test_invalid_pairing_window(tmp_path):
    with pytest.raises(ValueError):
        PairingConfig(min_hours=3, max_hours=1)
    path = tmp_path / "window.yaml"
    path.write_text("pairing:\n  min_hours: 8\n")
    with pytest.raises(ValueError):
        load_config(path)


def test_registration_is_rigid_only():
    with pytest.raises(ValueError):
        RegistrationConfig(transform="affine")
    with pytest.raises(ValueError):
        RegistrationConfig(outlier_weight=1.0)
