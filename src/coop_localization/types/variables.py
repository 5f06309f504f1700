"""
Optimized pose values handed to publishers.
"""
from attrs import define, field, validators
from typing import Optional, Tuple
from numpy import ndarray

from .key import Key
from ..utils.validation import tuple_length_validator, quaternion_validator
from ..utils.transformations import (
    get_quat_from_rotation_matrix,
    get_rotation_matrix_from_transformation_matrix,
    get_translation_from_transformation_matrix,
)


@define
class Pose3D:
    """
    3D pose with position (x, y, z) and orientation (quaternion).
    """

    key: Key = field(
        validator=validators.instance_of(Key),
        metadata={"description": "The key identifying the pose vertex"},
    )
    position: Tuple[float, float, float] = field(
        validator=tuple_length_validator(3),
        metadata={"description": "The position (x, y, z) of the pose"},
    )
    orientation: Tuple[float, float, float, float] = field(
        validator=quaternion_validator(),
        metadata={"description": "The orientation quaternion (x, y, z, w) of the pose"},
    )
    timestamp: Optional[float] = field(
        default=None,
        metadata={"description": "Time of the measurement that created the vertex"},
    )

    @classmethod
    def from_matrix(cls, key: Key, T: ndarray, timestamp: Optional[float] = None) -> "Pose3D":
        """Builds a Pose3D from a 4x4 homogeneous transformation matrix."""
        position = tuple(float(x) for x in get_translation_from_transformation_matrix(T))
        quat = get_quat_from_rotation_matrix(get_rotation_matrix_from_transformation_matrix(T))
        return cls(
            key=key,
            position=position,
            orientation=tuple(float(q) for q in quat),
            timestamp=timestamp,
        )
