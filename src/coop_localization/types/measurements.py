"""
Raw sensor measurement types consumed by the localization front-end.
"""
from attrs import define, field, validators
from typing import Tuple
import numpy as np
from numpy import ndarray

from ..utils.validation import (
    matrix_shape_validator,
    quaternion_validator,
    to_square_matrix,
    to_tuple,
    tuple_length_validator,
)
from ..utils.transformations import get_transformation_matrix_from_quat


def _identity_covariance(dim: int):
    return lambda: np.eye(dim)


@define
class Stamped:
    """
    Base class for timestamped measurements.
    """

    timestamp: float = field(
        converter=float,
        metadata={"description": "Measurement time in seconds"},
    )
    frame_id: str = field(
        validator=validators.instance_of(str),
        metadata={"description": "Reference frame the measurement is expressed in"},
    )


@define
class PoseMeasurement(Stamped):
    """
    A 6-DoF pose of the self robot relative to the frame `frame_id`.
    """

    position: Tuple[float, float, float] = field(
        converter=to_tuple,
        validator=tuple_length_validator(3),
        metadata={"description": "Translation (x, y, z)"},
    )
    orientation: Tuple[float, float, float, float] = field(
        converter=to_tuple,
        validator=quaternion_validator(),
        metadata={"description": "Rotation quaternion (x, y, z, w)"},
    )
    covariance: ndarray = field(
        factory=_identity_covariance(6),
        converter=to_square_matrix(6),
        validator=matrix_shape_validator(6, 6),
        metadata={"description": "6x6 covariance, order [x, y, z, roll, pitch, yaw]"},
    )
    seq: int = field(default=0, metadata={"description": "Sequence number"})

    def __repr__(self) -> str:
        return f"Pose(seq={self.seq}, frame={self.frame_id}, t={self.timestamp})"

    @property
    def transformation_matrix(self) -> ndarray:
        """Returns the 4x4 homogeneous transformation matrix."""
        return get_transformation_matrix_from_quat(
            np.array(self.orientation), np.array(self.position)
        )


@define
class TwistMeasurement(Stamped):
    """
    Body-frame linear and angular velocity of the self robot.
    """

    linear: Tuple[float, float, float] = field(
        converter=to_tuple,
        validator=tuple_length_validator(3),
        metadata={"description": "Linear velocity (vx, vy, vz)"},
    )
    angular: Tuple[float, float, float] = field(
        converter=to_tuple,
        validator=tuple_length_validator(3),
        metadata={"description": "Angular velocity (wx, wy, wz)"},
    )
    covariance: ndarray = field(
        factory=_identity_covariance(6),
        converter=to_square_matrix(6),
        validator=matrix_shape_validator(6, 6),
        metadata={"description": "6x6 velocity covariance"},
    )
    seq: int = field(default=0)

    def __repr__(self) -> str:
        return f"Twist(seq={self.seq}, t={self.timestamp})"


@define
class RangeMeasurement(Stamped):
    """
    Distance measured by a ranging exchange between a requester and a responder.
    """

    requester_id: int = field(
        validator=validators.instance_of(int),
        metadata={"description": "Robot that initiated the exchange"},
    )
    responder_id: int = field(
        validator=validators.instance_of(int),
        metadata={"description": "Robot that answered"},
    )
    distance: float = field(
        converter=float,
        validator=validators.ge(0.0),
        metadata={"description": "The range measurement value"},
    )
    distance_error: float = field(
        converter=float,
        validator=validators.ge(0.0),
        metadata={"description": "Standard deviation of the range measurement"},
    )
    seq: int = field(default=0)

    def __repr__(self) -> str:
        return (
            f"Range({self.requester_id}->{self.responder_id}, "
            f"distance={self.distance}, t={self.timestamp})"
        )

    @property
    def variance(self) -> float:
        """Returns the variance of the range measurement."""
        return self.distance_error**2


@define
class ImuMeasurement(Stamped):
    """
    An inertial sample: orientation estimate, angular velocity and body-frame
    linear acceleration (specific force, gravity included).
    """

    orientation: Tuple[float, float, float, float] = field(
        converter=to_tuple,
        validator=quaternion_validator(),
        metadata={"description": "Orientation quaternion (x, y, z, w)"},
    )
    angular_velocity: Tuple[float, float, float] = field(
        converter=to_tuple,
        validator=tuple_length_validator(3),
    )
    linear_acceleration: Tuple[float, float, float] = field(
        converter=to_tuple,
        validator=tuple_length_validator(3),
    )
    orientation_covariance: ndarray = field(
        factory=_identity_covariance(3),
        converter=to_square_matrix(3),
        validator=matrix_shape_validator(3, 3),
    )
    angular_velocity_covariance: ndarray = field(
        factory=_identity_covariance(3),
        converter=to_square_matrix(3),
        validator=matrix_shape_validator(3, 3),
    )
    linear_acceleration_covariance: ndarray = field(
        factory=_identity_covariance(3),
        converter=to_square_matrix(3),
        validator=matrix_shape_validator(3, 3),
    )
    seq: int = field(default=0)

    def __repr__(self) -> str:
        return f"Imu(seq={self.seq}, t={self.timestamp})"
