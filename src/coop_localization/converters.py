"""
Measurement to edge converters.

Each converter is a pure function of its endpoints, the measurement and the
elapsed time. Covariances are turned into information with
utils.information.resolve_information, so an invalid covariance is either
clamped or raises InvalidCovarianceError depending on the policy.
"""
import logging
import numpy as np
from numpy import ndarray
from typing import Sequence

from .errors import DegenerateTimingError
from .types.enums import CovariancePolicy
from .types.key import Key, KeyPair
from .types.edges import (
    InertialDeadReckoningEdge,
    PosePriorEdge,
    RangeEdge,
    RelativePoseEdge,
    TwistIntegratedEdge,
)
from .types.measurements import PoseMeasurement, TwistMeasurement
from .utils.information import (
    get_block_diagonal_covariance,
    resolve_information,
    resolve_scalar_information,
)
from .utils.transformations import (
    get_relative_quat,
    get_rotation_matrix_from_quat,
    get_rotation_matrix_from_rpy,
    get_transformation_matrix,
)

logger = logging.getLogger(__name__)


def pose_edge(
    anchor: Key,
    new: Key,
    pose: PoseMeasurement,
    policy: CovariancePolicy = CovariancePolicy.CLAMP,
    min_variance: float = 1e-9,
) -> RelativePoseEdge:
    """Relative pose edge with information equal to the inverse covariance."""
    information = resolve_information(pose.covariance, policy, min_variance)
    return RelativePoseEdge(
        key_pair=KeyPair(anchor, new),
        measurement=pose.transformation_matrix,
        information=information,
    )


def integrate_twist(linear: Sequence[float], angular: Sequence[float], dt: float) -> ndarray:
    """
    Relative pose reached by holding a body twist for dt.

    Translation is linear * dt, rotation is the fixed-axis roll/pitch/yaw of
    angular * dt.
    """
    rpy = np.asarray(angular, dtype=float) * dt
    rotation = get_rotation_matrix_from_rpy(*rpy)
    return get_transformation_matrix(rotation, np.asarray(linear, dtype=float) * dt)


def twist_edge(
    previous: Key,
    new: Key,
    twist: TwistMeasurement,
    dt: float,
    policy: CovariancePolicy = CovariancePolicy.CLAMP,
    min_variance: float = 1e-9,
) -> TwistIntegratedEdge:
    """
    Twist integrated over dt. The velocity covariance is scaled by dt^2.

    Raises:
        DegenerateTimingError: dt <= 0
        InvalidCovarianceError: the covariance is invalid and the policy is REJECT
    """
    if dt <= 0:
        raise DegenerateTimingError(dt, "twist integration")
    measurement = integrate_twist(twist.linear, twist.angular, dt)
    information = resolve_information(twist.covariance * dt * dt, policy, min_variance)
    return TwistIntegratedEdge(
        key_pair=KeyPair(previous, new),
        measurement=measurement,
        information=information,
        dt=dt,
    )


def motion_variance(robot_max_velocity: float, dt: float, min_variance: float = 1e-9) -> float:
    """
    Variance of the distance a robot can travel in dt, taking the maximum
    velocity as a 3-sigma bound. Never below min_variance.
    """
    return max((robot_max_velocity * dt / 3.0) ** 2, min_variance)


def range_edge(
    key1: Key,
    key2: Key,
    distance: float,
    variance: float,
    policy: CovariancePolicy = CovariancePolicy.CLAMP,
    min_variance: float = 1e-9,
) -> RangeEdge:
    """Range edge with information 1 / variance."""
    information = resolve_scalar_information(variance, policy, min_variance)
    return RangeEdge(key_pair=KeyPair(key1, key2), distance=float(distance), information=information)


def world_acceleration(
    orientation: Sequence[float], linear_acceleration: Sequence[float], gravity: float = 9.8
) -> ndarray:
    """Body-frame specific force rotated into the world frame, with gravity removed."""
    R = get_rotation_matrix_from_quat(np.asarray(orientation, dtype=float))
    return R @ np.asarray(linear_acceleration, dtype=float) - np.array([0.0, 0.0, gravity])


def finite_difference_velocity(position: ndarray, previous_position: ndarray, dt: float) -> ndarray:
    """Average velocity between two positions."""
    if dt <= 0:
        raise DegenerateTimingError(dt, "velocity estimate")
    return (np.asarray(position, dtype=float) - np.asarray(previous_position, dtype=float)) / dt


def dead_reckoning_transform(
    velocity: ndarray,
    acceleration: ndarray,
    dt: float,
    previous_orientation: Sequence[float],
    orientation: Sequence[float],
) -> ndarray:
    """
    Relative pose between two inertial samples.

    The world-frame displacement v*dt + a*dt^2/2 is expressed in the frame of
    the previous orientation; the rotation is q_prev^-1 * q.
    """
    displacement = np.asarray(velocity, dtype=float) * dt + 0.5 * np.asarray(acceleration, dtype=float) * dt**2
    R_prev = get_rotation_matrix_from_quat(np.asarray(previous_orientation, dtype=float))
    relative_quat = get_relative_quat(np.asarray(previous_orientation), np.asarray(orientation))
    return get_transformation_matrix(get_rotation_matrix_from_quat(relative_quat), R_prev.T @ displacement)


def dead_reckoning_covariance(
    translation: ndarray, orientation_covariance: ndarray, translation_variance_floor: float = 1e-4
) -> ndarray:
    """
    Covariance of a dead-reckoning step. The translation variance grows with
    the magnitude of each displacement component.
    """
    variances = np.maximum(np.abs(np.asarray(translation, dtype=float)), translation_variance_floor)
    return get_block_diagonal_covariance(np.diag(variances), orientation_covariance)


def inertial_edge(
    previous: Key,
    new: Key,
    transform: ndarray,
    covariance: ndarray,
    dt: float,
    policy: CovariancePolicy = CovariancePolicy.CLAMP,
    min_variance: float = 1e-9,
) -> InertialDeadReckoningEdge:
    """
    Raises:
        DegenerateTimingError: dt <= 0
        InvalidCovarianceError: the covariance is invalid and the policy is REJECT
    """
    if dt <= 0:
        raise DegenerateTimingError(dt, "inertial dead reckoning")
    information = resolve_information(covariance, policy, min_variance)
    return InertialDeadReckoningEdge(
        key_pair=KeyPair(previous, new),
        measurement=transform,
        information=information,
        dt=dt,
    )


def orientation_prior(
    key: Key, orientation: Sequence[float], prior_information: float = 1e8, parameter_id: int = 0
) -> PosePriorEdge:
    """
    Prior pinning the orientation of a vertex. The translation block has zero
    information, so the position is left free.

    Note: this is not a positional prior. The strong information sits on
    indices 3-5, the rotation block in translation-first order.
    """
    measurement = get_transformation_matrix(
        get_rotation_matrix_from_quat(np.asarray(orientation, dtype=float)), np.zeros(3)
    )
    information = np.diag([0.0, 0.0, 0.0, prior_information, prior_information, prior_information])
    return PosePriorEdge(key=key, measurement=measurement, information=information, parameter_id=parameter_id)
