"""
Warm-up and velocity bookkeeping for inertial dead reckoning.
"""
import logging
import numpy as np
from numpy import ndarray

from attrs import define, field, validators
from typing import Optional, Tuple

from .backends.backend import GraphBackend
from .converters import finite_difference_velocity
from .types.key import Key
from .utils.validation import quaternion_validator, to_tuple

logger = logging.getLogger(__name__)


@define
class InertialTracker:
    """
    State carried between inertial samples of one requester.

    Velocity is estimated once `velocity_warmup_samples` samples have been
    seen; motion edges are emitted once more than `motion_warmup_samples`
    have been seen.
    """

    velocity_warmup_samples: int = field(default=2, validator=validators.ge(1))
    motion_warmup_samples: int = field(default=10, validator=validators.ge(0))
    sample_count: int = field(default=0)
    previous_vertex: Optional[Key] = field(default=None)
    previous_orientation: Tuple[float, float, float, float] = field(
        default=(0.0, 0.0, 0.0, 1.0),
        converter=to_tuple,
        validator=quaternion_validator(),
    )

    def record_sample(self) -> int:
        self.sample_count += 1
        return self.sample_count

    @property
    def has_velocity(self) -> bool:
        return self.sample_count >= self.velocity_warmup_samples

    @property
    def motion_ready(self) -> bool:
        return self.sample_count > self.motion_warmup_samples

    def estimate_velocity(self, backend: GraphBackend, last_vertex: Key, dt: float) -> ndarray:
        """
        Finite-difference velocity between the previous requester vertex and
        `last_vertex`. Zero during warm-up or when no time has passed.
        """
        if not self.has_velocity or self.previous_vertex is None or dt <= 0:
            return np.zeros(3)
        position = backend.read_pose(last_vertex)[:3, 3]
        previous_position = backend.read_pose(self.previous_vertex)[:3, 3]
        return finite_difference_velocity(position, previous_position, dt)

    def advance(self, last_vertex: Key, orientation) -> None:
        self.previous_vertex = last_vertex
        self.previous_orientation = orientation
