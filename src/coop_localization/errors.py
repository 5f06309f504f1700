"""
Exception types raised by the localization front-end.

Everything except ConfigurationError and BackendInitializationError is
recoverable at the level of a single measurement event.
"""


class LocalizationError(Exception):
    """Base class for all localization front-end errors."""


class UnknownRobotError(LocalizationError):
    """A measurement references a robot id that was not provisioned at startup."""

    def __init__(self, robot_id: int):
        super().__init__(f"Unknown robot id: {robot_id}")
        self.robot_id = robot_id


class NoVertexYetError(LocalizationError):
    """A robot has no vertex history to anchor a new edge against."""


class InvalidCovarianceError(LocalizationError):
    """A supplied covariance is not finite, symmetric and positive definite."""


class DegenerateTimingError(LocalizationError):
    """Zero or negative elapsed time between a measurement and the previous one."""

    def __init__(self, dt: float, context: str = ""):
        msg = f"Degenerate elapsed time dt={dt}"
        if context:
            msg += f" ({context})"
        super().__init__(msg)
        self.dt = dt


class NonFiniteOptimizationResult(LocalizationError):
    """The back-end produced NaN or Inf values for a vertex."""


class ConfigurationError(LocalizationError):
    """Invalid startup configuration. Fatal."""


class BackendInitializationError(LocalizationError):
    """The graph optimization back-end could not be constructed. Fatal."""
