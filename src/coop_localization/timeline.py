"""
Vertex timeline management: which vertices a new measurement connects.
"""
import logging

from attrs import define, field
from typing import Tuple

from .errors import DegenerateTimingError
from .registry import RobotRegistry, VertexRecord
from .types.enums import SensorType
from .types.key import Key

logger = logging.getLogger(__name__)


@define
class StreamStep:
    """
    The previous vertex on a reference stream, the vertex just created, and
    the elapsed time between the two.
    """

    previous: VertexRecord
    new: Key
    dt: float = field(converter=float)

    @property
    def previous_key(self) -> Key:
        return self.previous.key


class VertexTimeline:
    """
    Creates vertices for incoming measurements and resolves the vertices the
    resulting edges should connect.
    """

    def __init__(self, registry: RobotRegistry):
        self.registry = registry

    def pose_endpoints(self, robot_id: int, timestamp: float, frame_id: str) -> Tuple[Key, Key]:
        """
        Resolves the endpoints of a relative-pose edge.

        The key vertex advances to the current last pose vertex when the
        frame id differs from the last recorded one, before the new vertex is
        created. Pose measurements sharing a frame id all anchor at the same
        key vertex.

        Returns:
            (anchor, new) keys
        """
        robot = self.registry.get(robot_id)
        last = self.registry.last_record(robot_id, SensorType.POSE)
        if frame_id != last.frame_id:
            logger.debug(
                f"Robot {robot_id}: frame changed {last.frame_id} -> {frame_id}, key vertex now {last.key}"
            )
            robot.key_vertex = last.key

        new = self.registry.new_vertex(robot_id, SensorType.POSE, timestamp, frame_id)
        return robot.key_vertex, new

    def elapsed(self, robot_id: int, timestamp: float, reference: SensorType = SensorType.POSE) -> Tuple[VertexRecord, float]:
        """The last record of the reference stream and the time elapsed since it."""
        previous = self.registry.last_record(robot_id, reference)
        return previous, timestamp - previous.timestamp

    def open_vertex(
        self,
        robot_id: int,
        sensor_type: SensorType,
        timestamp: float,
        frame_id: str,
        reference: SensorType = SensorType.POSE,
        require_elapsed: bool = False,
    ) -> StreamStep:
        """
        Creates a vertex on `sensor_type`, measured against the last vertex of
        the `reference` stream.

        Args:
            require_elapsed: raise instead of creating a vertex when no time has
                passed since the reference vertex

        Raises:
            DegenerateTimingError: dt <= 0 and require_elapsed is set
        """
        previous, dt = self.elapsed(robot_id, timestamp, reference)
        if require_elapsed and dt <= 0:
            raise DegenerateTimingError(dt, f"robot {robot_id} {sensor_type.name} after {reference.name}")
        new = self.registry.new_vertex(robot_id, sensor_type, timestamp, frame_id)
        return StreamStep(previous, new, dt)
