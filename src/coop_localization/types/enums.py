"""
Enumerations for sensor streams and covariance handling.
"""
from enum import Enum


class SensorType(Enum):
    """Sensor streams that create vertices in a robot's timeline."""
    POSE = 0
    RANGE = 1
    TWIST = 2


class CovariancePolicy(Enum):
    """What to do with a covariance that cannot be inverted."""
    CLAMP = 1
    REJECT = 2
