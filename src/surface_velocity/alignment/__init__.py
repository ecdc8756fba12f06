"""
Local Registration Module

This module estimates rigid transforms between local patches of two captures.
Two engines are available, rigid Coherent Point Drift (default) and ICP, both
driven through RegistrationAdapter so that every location is registered with
the same policy.
"""

from .transform import RegistrationOutcome, save_transform_matrix, load_transform_matrix
from .cpd import RigidCPD
from .fine_registration import ICPRegistration
from .registration import RegistrationAdapter, same_scale_normalization, to_matrix

__all__ = [
    "RegistrationOutcome",
    "save_transform_matrix",
    "load_transform_matrix",
    "RigidCPD",
    "ICPRegistration",
    "RegistrationAdapter",
    "same_scale_normalization",
    "to_matrix",
]
