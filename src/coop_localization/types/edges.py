"""
Edge types inserted into the pose graph.

Every measurement edge is robustified by the back-end with a Huber loss;
priors are not. 6x6 information matrices are in translation-first order
[x, y, z, roll, pitch, yaw].
"""
from abc import ABC
from attrs import define, field, validators
from typing import Union
import numpy as np
from numpy import ndarray

from .key import Key, KeyPair
from ..utils.validation import matrix_shape_validator, _check_transformation_matrix


def _transformation_validator(instance, attribute, value):
    _check_transformation_matrix(value, dim=3)


@define
class PairEdge(ABC):
    """
    Base class for edges between two vertices.
    """

    key_pair: KeyPair = field(
        validator=validators.instance_of(KeyPair),
        metadata={"description": "The keys of the two connected vertices"},
    )

    @property
    def key1(self) -> Key:
        """Returns the first key from the key pair."""
        return self.key_pair.key1

    @property
    def key2(self) -> Key:
        """Returns the second key from the key pair."""
        return self.key_pair.key2


@define
class RelativePoseEdge(PairEdge):
    """
    Direct 6-DoF relative pose measurement from key1 to key2.
    """

    measurement: ndarray = field(
        validator=[matrix_shape_validator(4, 4), _transformation_validator],
        metadata={"description": "4x4 transformation of key2 in the frame of key1"},
    )
    information: ndarray = field(
        validator=matrix_shape_validator(6, 6),
        metadata={"description": "6x6 information matrix"},
    )

    def __repr__(self) -> str:
        return f"RelativePose({self.key_pair})"


@define
class TwistIntegratedEdge(RelativePoseEdge):
    """
    Relative pose obtained by integrating a body twist over dt.
    """

    dt: float = field(validator=validators.gt(0.0))

    def __repr__(self) -> str:
        return f"TwistIntegrated({self.key_pair}, dt={self.dt})"


@define
class InertialDeadReckoningEdge(RelativePoseEdge):
    """
    Relative pose obtained by dead reckoning on inertial samples over dt.
    """

    dt: float = field(validator=validators.gt(0.0))

    def __repr__(self) -> str:
        return f"InertialDeadReckoning({self.key_pair}, dt={self.dt})"


@define
class RangeEdge(PairEdge):
    """
    Scalar distance between the positions of two vertices.
    """

    distance: float = field(
        validator=validators.ge(0.0),
        metadata={"description": "The measured distance"},
    )
    information: float = field(
        validator=validators.gt(0.0),
        metadata={"description": "Precision (inverse variance) of the distance"},
    )

    def __repr__(self) -> str:
        return f"Range({self.key_pair}, distance={self.distance})"

    @property
    def variance(self) -> float:
        return 1.0 / self.information


@define
class PosePriorEdge:
    """
    Unary prior on a vertex, expressed in the reference-frame offset registered
    under `parameter_id`. Zero entries on the information diagonal leave the
    corresponding degrees of freedom unconstrained.
    """

    key: Key = field(validator=validators.instance_of(Key))
    measurement: ndarray = field(validator=[matrix_shape_validator(4, 4), _transformation_validator])
    information: ndarray = field(validator=matrix_shape_validator(6, 6))
    parameter_id: int = field(default=0)

    def __repr__(self) -> str:
        return f"PosePrior({self.key}, parameter={self.parameter_id})"


# Type alias for any edge accepted by the back-end
Edge = Union[
    RelativePoseEdge,
    TwistIntegratedEdge,
    InertialDeadReckoningEdge,
    RangeEdge,
    PosePriorEdge,
]


def is_diagonal(mat: ndarray) -> bool:
    """True if all off-diagonal entries of `mat` are zero."""
    return bool(np.count_nonzero(mat - np.diag(np.diagonal(mat))) == 0)
