"""
Outbound pose publishing.

Publishers receive the current optimized pose of the self robot together with
its full path after every successful solve.
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from .types.variables import Pose3D

logger = logging.getLogger(__name__)


class PosePublisher(ABC):
    """
    Destination for optimized self-robot poses.
    """

    @abstractmethod
    def publish(self, pose: Pose3D, path: List[Pose3D]) -> None:
        """
        Args:
            pose: current optimized pose of the self robot
            path: every vertex of the self robot in arrival order
        """
        raise NotImplementedError(
            "[publish] This method should be implemented by subclasses."
        )


class CallbackPublisher(PosePublisher):
    """Forwards poses to a callable, e.g. a transport's publish function."""

    def __init__(self, callback: Callable[[Pose3D, List[Pose3D]], None]):
        self.callback = callback

    def publish(self, pose: Pose3D, path: List[Pose3D]) -> None:
        self.callback(pose, path)


class TrajectoryFileWriter(PosePublisher):
    """
    Appends every published pose to a text file named
    `<prefix>_<%Y_%b_%d_%H_%M_%S>.txt`, one line per pose:

        <timestamp> x y z qx qy qz qw
    """

    def __init__(self, prefix: str, max_iterations: int, now: Optional[time.struct_time] = None):
        stamp = time.strftime("_%Y_%b_%d_%H_%M_%S.txt", now if now is not None else time.localtime())
        self.filename = prefix + stamp
        with open(self.filename, "w") as f:
            f.write(f"# iteration_max:{max_iterations}\n")
        logger.info(f"Writing trajectory to {self.filename}")

    @staticmethod
    def format_pose(pose: Pose3D) -> str:
        timestamp = pose.timestamp if pose.timestamp is not None else 0.0
        values = list(pose.position) + list(pose.orientation)
        return "%.9f " % timestamp + " ".join(f"{v:g}" for v in values)

    def publish(self, pose: Pose3D, path: List[Pose3D]) -> None:
        with open(self.filename, "a") as f:
            f.write(self.format_pose(pose) + "\n")
