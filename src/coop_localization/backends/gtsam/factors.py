"""
Factor creation utilities for GTSAM.

This module provides functions to create GTSAM factors from our internal
edge types.
"""
import logging
import numpy as np

from gtsam import (
    BetweenFactorPose3,
    PriorFactorPose3,
    RangeFactorPose3,
    noiseModel,
)

from typing import Optional, Union

from ...types.edges import (
    Edge,
    PosePriorEdge,
    RangeEdge,
    RelativePoseEdge,
    is_diagonal,
)
from .conversions import (
    get_gtsam_symbol_from_key,
    get_pose3_from_matrix,
    to_gtsam_tangent_order,
)

logger = logging.getLogger(__name__)

# Precision substituted for zero entries of a diagonal information matrix.
# The corresponding degree of freedom is left effectively unconstrained.
UNCONSTRAINED_PRECISION = 1e-12


def get_noise_from_information(information: np.ndarray):
    """
    Build a GTSAM noise model from a 6x6 translation-first information matrix.

    Diagonal matrices become Diagonal models (zeros on the diagonal are
    treated as unconstrained); anything else becomes a full Gaussian model.
    """
    info = to_gtsam_tangent_order(np.asarray(information, dtype=float))
    if is_diagonal(info):
        precisions = np.maximum(np.diagonal(info), UNCONSTRAINED_PRECISION)
        return noiseModel.Diagonal.Precisions(precisions)
    info = 0.5 * (info + info.T)
    return noiseModel.Gaussian.Information(np.array(info, dtype=np.float64, order="C"))


def robustify(base, huber_threshold: Optional[float]):
    """Wrap a base noise model with a Huber robust kernel (no-op if threshold is None)."""
    if huber_threshold is None:
        return base
    loss = noiseModel.mEstimator.Huber.Create(huber_threshold)
    return noiseModel.Robust.Create(loss, base)


def get_pinned_noise(variance: float):
    """Noise model used to pin fixed vertices."""
    return noiseModel.Diagonal.Variances(np.full(6, variance))


def _get_between_factor(edge: RelativePoseEdge, huber_threshold: Optional[float]) -> BetweenFactorPose3:
    i_sym = get_gtsam_symbol_from_key(edge.key1)
    j_sym = get_gtsam_symbol_from_key(edge.key2)
    noise = robustify(get_noise_from_information(edge.information), huber_threshold)
    rel_pose = get_pose3_from_matrix(edge.measurement)
    return BetweenFactorPose3(i_sym, j_sym, rel_pose, noise)  # type: ignore


def _get_range_factor(edge: RangeEdge, huber_threshold: Optional[float]) -> RangeFactorPose3:
    i_sym = get_gtsam_symbol_from_key(edge.key1)
    j_sym = get_gtsam_symbol_from_key(edge.key2)
    sigma = 1.0 / np.sqrt(edge.information)
    noise = robustify(noiseModel.Isotropic.Sigma(1, sigma), huber_threshold)
    return RangeFactorPose3(i_sym, j_sym, float(edge.distance), noise)  # type: ignore


def _get_prior_factor(edge: PosePriorEdge, offset: np.ndarray) -> PriorFactorPose3:
    sym = get_gtsam_symbol_from_key(edge.key)
    noise = get_noise_from_information(edge.information)
    target = get_pose3_from_matrix(offset @ edge.measurement)
    return PriorFactorPose3(sym, target, noise)  # type: ignore


def get_factor_from_edge(
    edge: Edge,
    huber_threshold: Optional[float] = None,
    offset: Optional[np.ndarray] = None,
) -> Union[BetweenFactorPose3, RangeFactorPose3, PriorFactorPose3]:
    """
    Create a GTSAM factor from any edge type.

    This is the main entry point for factor creation.

    Args:
        edge: The edge to convert.
        huber_threshold: Huber kernel threshold for measurement edges (None disables it).
        offset: Reference-frame offset for prior edges.

    Returns:
        The appropriate factor type for the edge.

    Raises:
        ValueError: If the edge type is not recognized.
    """
    if isinstance(edge, RelativePoseEdge):
        return _get_between_factor(edge, huber_threshold)
    elif isinstance(edge, RangeEdge):
        return _get_range_factor(edge, huber_threshold)
    elif isinstance(edge, PosePriorEdge):
        return _get_prior_factor(edge, np.eye(4) if offset is None else offset)
    else:
        raise ValueError(f"Unknown edge type: {type(edge)}")
