#!/usr/bin/env python3
"""
Transport-agnostic localization manager.

Turns incoming measurements into graph vertices and edges, re-solves the
whole graph after every accepted measurement and publishes the optimized
pose and path of the self robot.
"""
import logging
import threading
import numpy as np

from typing import Dict, Iterable, List, Optional, Tuple

from .backends.backend import GraphBackend
from .backends.gtsam import GtsamBackend
from .config import LocalizationConfig
from .converters import (
    dead_reckoning_covariance,
    dead_reckoning_transform,
    inertial_edge,
    motion_variance,
    orientation_prior,
    pose_edge,
    range_edge,
    twist_edge,
    world_acceleration,
)
from .errors import (
    DegenerateTimingError,
    InvalidCovarianceError,
    LocalizationError,
    NonFiniteOptimizationResult,
)
from .inertial import InertialTracker
from .publishers import PosePublisher, TrajectoryFileWriter
from .registry import PROVISIONING_FRAME_ID, RobotRegistry, VertexRecord
from .timeline import StreamStep, VertexTimeline
from .types.enums import CovariancePolicy, SensorType
from .types.key import Key
from .types.measurements import (
    ImuMeasurement,
    PoseMeasurement,
    RangeMeasurement,
    TwistMeasurement,
)
from .types.variables import Pose3D
from .utils.information import check_covariance, resolve_scalar_information
from .utils.transformations import get_rotation_matrix_from_quat

logger = logging.getLogger(__name__)

# Offset frame that inertial orientation priors are expressed in
WORLD_PARAMETER_ID = 0

# Direction along which coincident range endpoints are separated
SEPARATION_DIRECTION = np.ones(3) / np.sqrt(3.0)
MIN_SEPARATION = 1e-3


class LocalizationManager:
    """
    Fusion front-end for one self robot and a set of static robots.

    Every handler runs under a single re-entrant lock for the whole
    measurement -> edges -> optimize -> publish sequence, so handlers may be
    called from several transport threads.
    """

    def __init__(
        self,
        config: LocalizationConfig,
        publishers: Optional[Iterable[PosePublisher]] = None,
        backend: Optional[GraphBackend] = None,
    ):
        """
        Provisions every configured robot. The self robot starts at the
        identity, static robots at their configured positions.

        Args:
            config: startup configuration
            publishers: destinations for the optimized self pose and path
            backend: graph back-end (a GtsamBackend built from the config if omitted)

        Raises:
            BackendInitializationError: the back-end cannot be constructed
        """
        self.config = config
        self._lock = threading.RLock()

        if backend is None:
            backend = GtsamBackend(
                huber_threshold=config.huber_threshold,
                fixed_vertex_variance=config.gauge_prior_variance,
            )
        self.backend = backend
        self.backend.add_parameter(WORLD_PARAMETER_ID)

        self.registry = RobotRegistry(self.backend, start_time=config.start_time)
        self.timeline = VertexTimeline(self.registry)

        self.publishers: List[PosePublisher] = list(publishers) if publishers is not None else []
        if config.output_prefix is not None:
            self.publishers.append(TrajectoryFileWriter(config.output_prefix, config.max_iterations))

        self.self_id = config.self_id
        self.registry.provision(self.self_id, is_static=False)
        for robot_id in config.static_ids:
            pose = np.eye(4)
            pose[:3, 3] = config.static_positions[robot_id]
            self.registry.provision(robot_id, is_static=True, initial_pose=pose)

        # Last self-requested range and the requester vertex it created, for IMU pairing
        self._latest_self_range: Optional[Tuple[RangeMeasurement, StreamStep]] = None
        self._inertial_trackers: Dict[int, InertialTracker] = {}
        self.last_published: Optional[Pose3D] = None

    @property
    def policy(self) -> CovariancePolicy:
        return self.config.covariance_policy

    def _screen_covariance(self, covariance: np.ndarray) -> None:
        """Under REJECT, fail before any vertex is created."""
        if self.policy == CovariancePolicy.REJECT:
            check_covariance(np.asarray(covariance, dtype=float))

    def _screen_variance(self, variance: float) -> None:
        resolve_scalar_information(variance, self.policy, self.config.min_variance)

    def _inertial_tracker(self, robot_id: int) -> InertialTracker:
        if robot_id not in self._inertial_trackers:
            self._inertial_trackers[robot_id] = InertialTracker(
                velocity_warmup_samples=self.config.velocity_warmup_samples,
                motion_warmup_samples=self.config.motion_warmup_samples,
            )
        return self._inertial_trackers[robot_id]

    def _add_edges(self, edges) -> None:
        for edge in edges:
            self.backend.add_edge(edge)
            logger.debug(f"Added {edge}")

    def _separate_coincident(self, requester: Key, responder: Key, distance: float) -> None:
        """
        Moves the mobile endpoint of a range edge away from the other endpoint
        when their estimates coincide, so the range has a defined direction.
        """
        requester_pose = self.backend.read_pose(requester)
        responder_pose = self.backend.read_pose(responder)
        if np.linalg.norm(requester_pose[:3, 3] - responder_pose[:3, 3]) > 1e-9:
            return

        offset = max(distance, MIN_SEPARATION) * SEPARATION_DIRECTION
        if not self.registry.is_fixed(requester):
            requester_pose[:3, 3] = responder_pose[:3, 3] + offset
            self.backend.set_estimate(requester, requester_pose)
        elif not self.registry.is_fixed(responder):
            responder_pose[:3, 3] = requester_pose[:3, 3] + offset
            self.backend.set_estimate(responder, responder_pose)

    def add_pose_measurement(self, pose: PoseMeasurement) -> bool:
        """
        Adds a relative pose edge from the key vertex of the self robot to a
        new pose vertex.
        """
        with self._lock:
            try:
                self._screen_covariance(pose.covariance)
                anchor, new = self.timeline.pose_endpoints(self.self_id, pose.timestamp, pose.frame_id)
                edge = pose_edge(anchor, new, pose, self.policy, self.config.min_variance)
                self._add_edges([edge])
            except LocalizationError as e:
                logger.error(f"Dropping {pose}: {e}")
                return False

            logger.info(f"Added pose edge seq: {pose.seq} frame_id: {pose.frame_id}")
            self._solve_and_publish()
            return True

    def add_twist_measurement(self, twist: TwistMeasurement) -> bool:
        """
        Integrates a body twist over the time since the previous twist sample.
        No vertex is created when no time has elapsed.
        """
        with self._lock:
            try:
                self._screen_covariance(twist.covariance)
                step = self.timeline.open_vertex(
                    self.self_id,
                    SensorType.TWIST,
                    twist.timestamp,
                    twist.frame_id,
                    reference=SensorType.TWIST,
                    require_elapsed=True,
                )
                edge = twist_edge(step.previous_key, step.new, twist, step.dt, self.policy, self.config.min_variance)
                self._add_edges([edge])
            except DegenerateTimingError as e:
                logger.warning(f"Skipping {twist}: {e}")
                return False
            except LocalizationError as e:
                logger.error(f"Dropping {twist}: {e}")
                return False

            logger.info(f"Added twist edge seq: {twist.seq} dt: {step.dt:.3f}")
            self._solve_and_publish()
            return True

    def add_range_measurement(self, measurement: RangeMeasurement) -> bool:
        """
        Adds the range between requester and responder.

        If the requester's last pose frame matches the message frame (or the
        requester has no pose yet), a new requester vertex is created and tied
        to the last one by a motion-bounded trajectory edge. Otherwise the
        range connects the last requester vertex directly, with the motion
        variance added to the range variance. A mobile responder gets a
        trajectory edge of its own.
        """
        with self._lock:
            try:
                step = self._add_range(measurement)
            except LocalizationError as e:
                logger.error(f"Dropping {measurement}: {e}")
                return False

            if measurement.requester_id == self.self_id:
                self._latest_self_range = (measurement, step) if step is not None else None
            self._solve_and_publish()
            return True

    def _add_range(self, m: RangeMeasurement) -> Optional[StreamStep]:
        """
        Returns the step from the previous range vertex of the requester to the
        one just created, or None if the range used the last requester vertex.
        """
        requester_id, responder_id = m.requester_id, m.responder_id
        self.registry.get(requester_id)
        self.registry.get(responder_id)
        if requester_id == responder_id:
            raise LocalizationError(f"Range from robot {requester_id} to itself")
        self._screen_variance(m.variance)

        requester_last = self.registry.last_record(requester_id)
        responder_last = self.registry.last_record(responder_id)
        dt_requester = m.timestamp - requester_last.timestamp
        dt_responder = m.timestamp - responder_last.timestamp
        requester_variance = motion_variance(self.config.robot_max_velocity, dt_requester, self.config.min_variance)

        responder_new = self.registry.new_vertex(responder_id, SensorType.RANGE, m.timestamp, m.frame_id)

        edges = []
        step = None
        if requester_last.frame_id in (m.frame_id, PROVISIONING_FRAME_ID):
            previous_range, dt_range = self.timeline.elapsed(requester_id, m.timestamp, SensorType.RANGE)
            requester_new = self.registry.new_vertex(requester_id, SensorType.RANGE, m.timestamp, m.frame_id)
            step = StreamStep(previous_range, requester_new, dt_range)
            self._separate_coincident(requester_new, responder_new, m.distance)
            edges.append(range_edge(requester_new, responder_new, m.distance, m.variance, self.policy, self.config.min_variance))
            edges.append(range_edge(requester_last.key, requester_new, 0.0, requester_variance, self.policy, self.config.min_variance))
            logger.info(f"Added requester range and trajectory edges to robot {responder_id}")
        else:
            edges.append(
                range_edge(
                    requester_last.key,
                    responder_new,
                    m.distance,
                    m.variance + requester_variance,
                    self.policy,
                    self.config.min_variance,
                )
            )
            logger.info(f"Added direct requester range edge to robot {responder_id}")

        if not self.registry.is_static(responder_id):
            responder_variance = motion_variance(self.config.robot_max_velocity, dt_responder, self.config.min_variance)
            edges.append(range_edge(responder_last.key, responder_new, 0.0, responder_variance, self.policy, self.config.min_variance))
            logger.info(f"Added responder trajectory edge for robot {responder_id}")

        self._add_edges(edges)
        return step

    def add_imu_measurement(self, imu: ImuMeasurement, range_measurement: Optional[RangeMeasurement] = None) -> bool:
        """
        Adds an inertial sample paired with a range measurement.

        An explicitly passed range is inserted here. Without one, the sample
        pairs with the last range requested by the self robot, whose vertices
        and edges `add_range_measurement` already inserted. After the warm-up,
        a mobile requester also gets a dead-reckoning edge from its previous
        range vertex and an orientation prior at the IMU orientation.

        Args:
            imu: the inertial sample
            range_measurement: the range to pair with; the most recent unpaired
                range requested by the self robot if omitted
        """
        with self._lock:
            if range_measurement is None:
                cached, self._latest_self_range = self._latest_self_range, None
                if cached is None:
                    logger.warning(f"Dropping {imu}: no range measurement to pair with")
                    return False
                range_measurement, step = cached
            else:
                step = None

            try:
                if step is None:
                    self._add_inertial(imu, range_measurement)
                else:
                    self._add_dead_reckoning(imu, range_measurement.requester_id, step.previous, step.new, step.dt)
            except LocalizationError as e:
                logger.error(f"Dropping {imu}: {e}")
                return False

            logger.info(f"Added inertial sample paired with range seq: {range_measurement.seq}")
            self._solve_and_publish()
            return True

    def _add_inertial(self, imu: ImuMeasurement, m: RangeMeasurement) -> None:
        requester_id, responder_id = m.requester_id, m.responder_id
        self.registry.get(requester_id)
        self.registry.get(responder_id)
        if requester_id == responder_id:
            raise LocalizationError(f"Range from robot {requester_id} to itself")
        self._screen_variance(m.variance)

        previous, dt = self.timeline.elapsed(requester_id, m.timestamp, SensorType.RANGE)
        requester_new = self.registry.new_vertex(requester_id, SensorType.RANGE, m.timestamp, m.frame_id)
        responder_new = self.registry.new_vertex(responder_id, SensorType.RANGE, m.timestamp, m.frame_id)
        self._separate_coincident(requester_new, responder_new, m.distance)
        self._add_edges([range_edge(requester_new, responder_new, m.distance, m.variance, self.policy, self.config.min_variance)])

        self._add_dead_reckoning(imu, requester_id, previous, requester_new, dt)

    def _add_dead_reckoning(
        self, imu: ImuMeasurement, requester_id: int, previous: VertexRecord, requester_new: Key, dt: float
    ) -> None:
        """
        Inertial bookkeeping for the requester's range vertex `requester_new`,
        then the dead-reckoning edge from `previous` and the orientation prior
        once the warm-up is over.
        """
        tracker = self._inertial_tracker(requester_id)
        tracker.record_sample()
        velocity = tracker.estimate_velocity(self.backend, previous.key, dt)
        previous_orientation = tracker.previous_orientation
        tracker.advance(previous.key, imu.orientation)

        if self.registry.is_static(requester_id):
            return

        seed = self.backend.read_pose(requester_new)
        seed[:3, :3] = get_rotation_matrix_from_quat(np.array(imu.orientation))
        self.backend.set_estimate(requester_new, seed)

        if not tracker.motion_ready:
            logger.debug(f"Robot {requester_id}: inertial sample {tracker.sample_count}, no motion edge")
            return

        try:
            acceleration = world_acceleration(imu.orientation, imu.linear_acceleration, self.config.gravity)
            transform = dead_reckoning_transform(velocity, acceleration, dt, previous_orientation, imu.orientation)
            covariance = dead_reckoning_covariance(
                transform[:3, 3], imu.orientation_covariance, self.config.translation_variance_floor
            )
            edge = inertial_edge(
                previous.key, requester_new, transform, covariance, dt, self.policy, self.config.min_variance
            )
        except (DegenerateTimingError, InvalidCovarianceError) as e:
            logger.warning(f"Robot {requester_id}: skipping dead-reckoning edge: {e}")
            return

        prior = orientation_prior(requester_new, imu.orientation, self.config.prior_information, WORLD_PARAMETER_ID)
        self._add_edges([edge, prior])

    def solve(self) -> bool:
        """
        Re-optimizes the whole graph.

        Returns:
            True if the optimizer produced a finite result
        """
        with self._lock:
            if not self.backend.optimize(self.config.max_iterations):
                logger.error("Graph optimization failed, keeping the previous estimate")
                return False
            logger.debug(f"Graph optimized with error: {self.backend.error():.6f}")
            return True

    def current_path(self) -> List[Pose3D]:
        """
        Optimized path of the self robot.

        Raises:
            NonFiniteOptimizationResult: any vertex of the path is not finite
        """
        with self._lock:
            robot = self.registry.get(self.self_id)
            poses = self.backend.read_path(robot.path_keys)
            return [
                Pose3D.from_matrix(record.key, T, record.timestamp)
                for record, T in zip(robot.history, poses)
            ]

    def publish(self) -> bool:
        """
        Sends the current self pose and path to every publisher. Nothing is
        published if the estimate is not finite.
        """
        with self._lock:
            try:
                path = self.current_path()
            except NonFiniteOptimizationResult as e:
                logger.error(f"Not publishing: {e}")
                return False

            pose = path[-1]
            for publisher in self.publishers:
                publisher.publish(pose, path)
            self.last_published = pose
            return True

    def _solve_and_publish(self) -> None:
        if self.solve():
            self.publish()
