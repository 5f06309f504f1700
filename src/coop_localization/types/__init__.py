"""
Types package for localization data structures.
"""
from .key import Key, KeyPair
from .enums import SensorType, CovariancePolicy

__all__ = ["Key", "KeyPair", "SensorType", "CovariancePolicy"]

# Note: Other types (measurements, edges, variables) should be imported explicitly
# to avoid circular dependencies.
