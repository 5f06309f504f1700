"""
Per-robot vertex bookkeeping.

The registry owns one Robot per configured robot id. It is the only place
where vertices are created, so every vertex in the back-end belongs to
exactly one robot's history.
"""
import logging
import numpy as np

from attrs import define, field, validators
from typing import Dict, List, Optional, Set, Tuple

from .backends.backend import GraphBackend
from .errors import NoVertexYetError, UnknownRobotError
from .types.enums import SensorType
from .types.key import Key

logger = logging.getLogger(__name__)

# Frame id of the provisioning vertex; any real frame id differs from it
PROVISIONING_FRAME_ID = "none"


@define
class VertexRecord:
    """
    A vertex together with the header of the measurement that created it.
    """

    timestamp: float = field(converter=float)
    frame_id: str = field(validator=validators.instance_of(str))
    key: Key = field(validator=validators.instance_of(Key))
    sensor_type: SensorType = field(validator=validators.instance_of(SensorType))


@define
class Robot:
    """
    Vertex history and role of a single robot.
    """

    robot_id: int = field(validator=validators.instance_of(int))
    is_static: bool = field(validator=validators.instance_of(bool))
    position: Optional[Tuple[float, float, float]] = field(
        default=None,
        metadata={"description": "Known position, only set for static robots"},
    )
    streams: Dict[SensorType, List[VertexRecord]] = field(
        factory=lambda: {sensor_type: [] for sensor_type in SensorType}
    )
    history: List[VertexRecord] = field(factory=list)
    key_vertex: Optional[Key] = field(default=None)

    def __repr__(self) -> str:
        role = "static" if self.is_static else "mobile"
        return f"Robot({self.robot_id}, {role}, vertices={len(self.history)})"

    @property
    def path_keys(self) -> List[Key]:
        """Every vertex of the robot in arrival order."""
        return [record.key for record in self.history]


class RobotRegistry:
    """
    Registry of all robots known at startup.
    """

    def __init__(self, backend: GraphBackend, start_time: float = 0.0):
        self.backend = backend
        self.start_time = float(start_time)
        self._robots: Dict[int, Robot] = {}
        self._fixed_keys: Set[Key] = set()

    @property
    def robot_ids(self) -> List[int]:
        return list(self._robots.keys())

    def get(self, robot_id: int) -> Robot:
        try:
            return self._robots[robot_id]
        except KeyError:
            raise UnknownRobotError(robot_id) from None

    def is_static(self, robot_id: int) -> bool:
        return self.get(robot_id).is_static

    def is_fixed(self, key: Key) -> bool:
        """True for provisioning vertices and every vertex of a static robot."""
        return key in self._fixed_keys

    def provision(self, robot_id: int, is_static: bool, initial_pose: Optional[np.ndarray] = None) -> Key:
        """
        Creates a robot and its first vertex, which is always fixed.

        Args:
            robot_id: the robot identifier
            is_static: whether the robot never moves
            initial_pose: 4x4 pose of the first vertex (identity if omitted)

        Returns:
            the key of the provisioning vertex
        """
        if robot_id in self._robots:
            raise ValueError(f"Robot {robot_id} already provisioned")

        pose = np.eye(4) if initial_pose is None else np.asarray(initial_pose, dtype=float)
        position = tuple(float(x) for x in pose[:3, 3]) if is_static else None
        robot = Robot(robot_id=robot_id, is_static=is_static, position=position)

        key = self.backend.add_vertex(pose, fixed=True)
        self._fixed_keys.add(key)
        record = VertexRecord(self.start_time, PROVISIONING_FRAME_ID, key, SensorType.POSE)
        robot.history.append(record)
        robot.key_vertex = key
        self._robots[robot_id] = robot

        role = "static" if is_static else "mobile"
        logger.info(f"Provisioned {role} robot {robot_id} at {tuple(pose[:3, 3])} with vertex {key}")
        return key

    def last_record(self, robot_id: int, sensor_type: SensorType = SensorType.POSE) -> VertexRecord:
        """
        The most recent vertex of a stream. A stream without entries of its own
        falls back to the provisioning vertex.

        Raises:
            UnknownRobotError: the robot was not provisioned
            NoVertexYetError: the robot has no vertex at all
        """
        robot = self.get(robot_id)
        stream = robot.streams[sensor_type]
        if stream:
            return stream[-1]
        if not robot.history:
            raise NoVertexYetError(f"Robot {robot_id} has no vertices")
        return robot.history[0]

    def last_vertex(self, robot_id: int, sensor_type: SensorType = SensorType.POSE) -> Key:
        return self.last_record(robot_id, sensor_type).key

    def vertex_count(self, robot_id: int, sensor_type: Optional[SensorType] = None) -> int:
        """Number of vertices in one stream, or in the whole history if no stream is given."""
        robot = self.get(robot_id)
        if sensor_type is None:
            return len(robot.history)
        return len(robot.streams[sensor_type])

    def last_estimate(self, robot_id: int) -> np.ndarray:
        """Current estimate of the robot's most recently created vertex."""
        robot = self.get(robot_id)
        if not robot.history:
            return np.eye(4)
        return self.backend.read_pose(robot.history[-1].key)

    def new_vertex(self, robot_id: int, sensor_type: SensorType, timestamp: float, frame_id: str) -> Key:
        """
        Appends a vertex to a robot's stream.

        The vertex is seeded with the robot's last known estimate. Vertices of
        static robots sit at the known position and are fixed.
        """
        robot = self.get(robot_id)
        if robot.is_static:
            seed = np.eye(4)
            seed[:3, 3] = robot.position
        else:
            seed = self.last_estimate(robot_id)

        key = self.backend.add_vertex(seed, fixed=robot.is_static)
        if robot.is_static:
            self._fixed_keys.add(key)
        record = VertexRecord(timestamp, frame_id, key, sensor_type)
        robot.streams[sensor_type].append(record)
        robot.history.append(record)
        logger.debug(f"Robot {robot_id}: new {sensor_type.name} vertex {key} at t={timestamp}")
        return key
