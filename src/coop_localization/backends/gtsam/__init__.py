"""
GTSAM backend for the localization graph.

This module provides GTSAM-specific implementations for factor graph optimization.
"""

from .backend import GtsamBackend
from .conversions import (
    get_gtsam_symbol_from_key,
    get_pose3_from_matrix,
    get_matrix_from_pose3,
    to_gtsam_tangent_order,
)
from .factors import get_factor_from_edge, get_noise_from_information
from .solvers import (
    solve_with_levenberg_marquardt,
    diagnose_optimization_problem,
    values_are_finite,
)

__all__ = [
    "GtsamBackend",
    "get_gtsam_symbol_from_key",
    "get_pose3_from_matrix",
    "get_matrix_from_pose3",
    "to_gtsam_tangent_order",
    "get_factor_from_edge",
    "get_noise_from_information",
    "solve_with_levenberg_marquardt",
    "diagnose_optimization_problem",
    "values_are_finite",
]
