import unittest
import sys
import threading
from collections import Counter
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / 'src'))

from coop_localization.backends.gtsam import GtsamBackend
from coop_localization.config import LocalizationConfig
from coop_localization.errors import NonFiniteOptimizationResult
from coop_localization.manager import LocalizationManager
from coop_localization.publishers import CallbackPublisher
from coop_localization.types.enums import CovariancePolicy, SensorType
from coop_localization.types.measurements import (
    ImuMeasurement,
    PoseMeasurement,
    RangeMeasurement,
    TwistMeasurement,
)

SELF_ID = 5
STATIC_ID = 1


def make_config(**kwargs):
    return LocalizationConfig(
        robot_ids=[STATIC_ID, SELF_ID],
        static_positions={STATIC_ID: (0.0, 0.0, 0.0)},
        **kwargs,
    )


def make_range(timestamp, frame_id="map", requester=SELF_ID, responder=STATIC_ID, distance=3.0, error=0.1):
    return RangeMeasurement(
        timestamp=timestamp,
        frame_id=frame_id,
        requester_id=requester,
        responder_id=responder,
        distance=distance,
        distance_error=error,
    )


def make_pose(timestamp, frame_id="map", position=(1.0, 2.0, 0.0), covariance=None):
    return PoseMeasurement(
        timestamp=timestamp,
        frame_id=frame_id,
        position=position,
        orientation=(0.0, 0.0, 0.0, 1.0),
        covariance=np.eye(6) if covariance is None else covariance,
    )


def make_imu(timestamp):
    return ImuMeasurement(
        timestamp=timestamp,
        frame_id="imu",
        orientation=(0.0, 0.0, 0.0, 1.0),
        angular_velocity=(0.0, 0.0, 0.0),
        linear_acceleration=(0.0, 0.0, 9.8),
        orientation_covariance=0.01 * np.eye(3),
    )


class ManagerTestCase(unittest.TestCase):
    config_kwargs = {}

    def setUp(self):
        self.published = []
        publisher = CallbackPublisher(lambda pose, path: self.published.append((pose, path)))
        self.manager = LocalizationManager(make_config(**self.config_kwargs), publishers=[publisher])
        self.backend = self.manager.backend
        self.registry = self.manager.registry


class TestScenarios(ManagerTestCase):
    def test_startup(self):
        self.assertEqual(self.registry.vertex_count(SELF_ID), 1)
        self.assertEqual(self.registry.vertex_count(STATIC_ID), 1)
        self.assertEqual(self.backend.num_edges, 0)

    def test_single_pose_measurement(self):
        self.assertTrue(self.manager.add_pose_measurement(make_pose(1.0)))

        self.assertEqual(self.registry.vertex_count(SELF_ID), 2)
        self.assertEqual(self.backend.num_edges, 1)
        self.assertEqual(len(self.published), 1)
        pose, path = self.published[-1]
        np.testing.assert_allclose(pose.position, (1.0, 2.0, 0.0), atol=1e-3)
        np.testing.assert_allclose(pose.orientation, (0.0, 0.0, 0.0, 1.0), atol=1e-3)
        self.assertEqual(len(path), 2)
        self.assertEqual(pose.timestamp, 1.0)

    def test_single_range_to_static_robot(self):
        self.assertTrue(self.manager.add_range_measurement(make_range(30.0)))

        self.assertEqual(self.backend.num_edges, 2)
        pose, _ = self.published[-1]
        distance = np.linalg.norm(np.array(pose.position) - np.zeros(3))
        self.assertAlmostEqual(distance, 3.0, delta=0.1)


class TestRangeTopology(ManagerTestCase):
    def test_matching_frame_adds_two_edges(self):
        self.manager.add_pose_measurement(make_pose(1.0, frame_id="map"))
        edges_before = self.backend.num_edges
        self.assertTrue(self.manager.add_range_measurement(make_range(2.0, frame_id="map")))
        self.assertEqual(self.backend.num_edges - edges_before, 2)
        self.assertEqual(self.registry.vertex_count(SELF_ID, SensorType.RANGE), 1)

    def test_mismatched_frame_adds_one_direct_edge(self):
        self.manager.add_pose_measurement(make_pose(1.0, frame_id="odom"))
        edges_before = self.backend.num_edges
        self.assertTrue(self.manager.add_range_measurement(make_range(2.0, frame_id="map")))
        self.assertEqual(self.backend.num_edges - edges_before, 1)
        self.assertEqual(self.registry.vertex_count(SELF_ID, SensorType.RANGE), 0)
        self.assertEqual(self.registry.vertex_count(STATIC_ID, SensorType.RANGE), 1)

        direct = self.backend.edges[-1]
        self.assertEqual(direct.key1, self.registry.last_vertex(SELF_ID))
        # range variance inflated by the motion bound for dt = 1
        self.assertAlmostEqual(direct.variance, 0.01 + (1.0 / 3.0) ** 2)

    def test_mobile_responder_gets_trajectory_edge(self):
        self.assertTrue(
            self.manager.add_range_measurement(make_range(2.0, requester=STATIC_ID, responder=SELF_ID))
        )
        self.assertEqual(self.backend.num_edges, 3)

    def test_static_responder_gets_no_trajectory_edge(self):
        self.manager.add_range_measurement(make_range(2.0))
        responder_vertex = self.registry.last_vertex(STATIC_ID, SensorType.RANGE)
        trajectory_edges = [
            e for e in self.backend.edges if e.key2 == responder_vertex and e.distance == 0.0
        ]
        self.assertEqual(trajectory_edges, [])

    def test_unknown_robot_is_dropped(self):
        vertices_before = self.backend.num_vertices
        with self.assertLogs('coop_localization.manager', level='ERROR'):
            self.assertFalse(self.manager.add_range_measurement(make_range(2.0, responder=99)))
        self.assertEqual(self.backend.num_vertices, vertices_before)
        self.assertEqual(self.backend.num_edges, 0)

    def test_self_range_is_dropped(self):
        self.assertFalse(self.manager.add_range_measurement(make_range(2.0, responder=SELF_ID)))


class TestTwist(ManagerTestCase):
    def test_twist_moves_robot(self):
        twist = TwistMeasurement(timestamp=1.0, frame_id="base", linear=(1.0, 0.0, 0.0), angular=(0.0, 0.0, 0.0))
        self.assertTrue(self.manager.add_twist_measurement(twist))
        self.assertEqual(self.registry.vertex_count(SELF_ID, SensorType.TWIST), 1)
        pose, _ = self.published[-1]
        np.testing.assert_allclose(pose.position, (1.0, 0.0, 0.0), atol=1e-3)

    def test_degenerate_twist_creates_no_vertex(self):
        twist = TwistMeasurement(timestamp=1.0, frame_id="base", linear=(1.0, 0.0, 0.0), angular=(0.0, 0.0, 0.0))
        self.manager.add_twist_measurement(twist)
        edges_before = self.backend.num_edges
        with self.assertLogs('coop_localization.manager', level='WARNING'):
            self.assertFalse(self.manager.add_twist_measurement(twist))
        self.assertEqual(self.registry.vertex_count(SELF_ID, SensorType.TWIST), 1)
        self.assertEqual(self.backend.num_edges, edges_before)


class TestInertialWarmup(ManagerTestCase):
    def test_motion_edges_only_after_warmup(self):
        for n in range(1, 11):
            edges_before = self.backend.num_edges
            self.assertTrue(self.manager.add_imu_measurement(make_imu(float(n)), make_range(float(n))))
            self.assertEqual(self.backend.num_edges - edges_before, 1, f"sample {n}")

        edges_before = self.backend.num_edges
        self.assertTrue(self.manager.add_imu_measurement(make_imu(11.0), make_range(11.0)))
        self.assertEqual(self.backend.num_edges - edges_before, 3)
        self.assertEqual(self.manager._inertial_tracker(SELF_ID).sample_count, 11)

    def test_range_pairs_with_one_imu_sample(self):
        self.manager.add_range_measurement(make_range(1.0))
        self.assertTrue(self.manager.add_imu_measurement(make_imu(1.0)))
        with self.assertLogs('coop_localization.manager', level='WARNING'):
            self.assertFalse(self.manager.add_imu_measurement(make_imu(1.1)))

    def test_requester_vertex_seeded_with_imu_orientation(self):
        imu = make_imu(1.0)
        imu.orientation = (0.0, 0.0, float(np.sin(0.25)), float(np.cos(0.25)))
        self.manager.add_imu_measurement(imu, make_range(1.0))
        key = self.registry.last_vertex(SELF_ID, SensorType.RANGE)
        R = self.backend.read_pose(key)[:3, :3]
        np.testing.assert_allclose(R[:2, :2], [[np.cos(0.5), -np.sin(0.5)], [np.sin(0.5), np.cos(0.5)]], atol=1e-3)


class TestInertialCachedPairing(ManagerTestCase):
    def edge_kinds(self):
        return Counter(type(edge).__name__ for edge in self.backend.edges)

    def test_cached_range_emits_motion_edges_after_warmup(self):
        for n in range(1, 16):
            self.assertTrue(self.manager.add_range_measurement(make_range(float(n))))
            edges_before = self.backend.num_edges
            self.assertTrue(self.manager.add_imu_measurement(make_imu(float(n))))
            expected = 2 if n > 10 else 0
            self.assertEqual(self.backend.num_edges - edges_before, expected, f"sample {n}")

        kinds = self.edge_kinds()
        self.assertEqual(kinds['InertialDeadReckoningEdge'], 5)
        self.assertEqual(kinds['PosePriorEdge'], 5)
        measured = [edge for edge in self.backend.edges if type(edge).__name__ == 'RangeEdge' and edge.distance == 3.0]
        self.assertEqual(len(measured), 15)
        self.assertEqual(self.registry.vertex_count(SELF_ID, SensorType.RANGE), 15)

    def test_cached_range_motion_edge_spans_one_range_interval(self):
        for n in range(1, 12):
            self.manager.add_range_measurement(make_range(float(n)))
            self.manager.add_imu_measurement(make_imu(float(n)))

        motion = [edge for edge in self.backend.edges if type(edge).__name__ == 'InertialDeadReckoningEdge']
        self.assertEqual(len(motion), 1)
        self.assertAlmostEqual(motion[0].dt, 1.0)
        range_keys = self.registry.get(SELF_ID).streams[SensorType.RANGE]
        self.assertEqual(motion[0].key_pair.key1, range_keys[-2].key)
        self.assertEqual(motion[0].key_pair.key2, range_keys[-1].key)

    def test_direct_range_is_not_paired(self):
        self.manager.add_pose_measurement(make_pose(1.0, frame_id="odom"))
        self.manager.add_range_measurement(make_range(2.0, frame_id="map"))
        with self.assertLogs('coop_localization.manager', level='WARNING'):
            self.assertFalse(self.manager.add_imu_measurement(make_imu(2.0)))


class TestConcurrentHandlers(ManagerTestCase):
    def test_threads_serialize_to_serial_counts(self):
        threads_count, events_per_thread = 4, 5
        barrier = threading.Barrier(threads_count)
        results = []

        def feed(offset):
            barrier.wait()
            for n in range(events_per_thread):
                timestamp = 1.0 + offset + n * threads_count
                results.append(self.manager.add_pose_measurement(make_pose(timestamp)))
                results.append(self.manager.add_range_measurement(make_range(timestamp + 0.5)))

        threads = [threading.Thread(target=feed, args=(i,)) for i in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        events = threads_count * events_per_thread
        self.assertEqual(results, [True] * (2 * events))
        # each pose adds one vertex and edge, each range two of each
        self.assertEqual(self.backend.num_vertices, 2 + 3 * events)
        self.assertEqual(self.backend.num_edges, 3 * events)
        self.assertEqual(
            self.registry.vertex_count(SELF_ID) + self.registry.vertex_count(STATIC_ID), self.backend.num_vertices
        )
        keys = [record.key for robot_id in (SELF_ID, STATIC_ID) for record in self.registry.get(robot_id).history]
        self.assertEqual(len(set(keys)), len(keys))
        self.assertEqual(len(self.published), 2 * events)


class TestInertialDegenerateTiming(ManagerTestCase):
    config_kwargs = {"motion_warmup_samples": 0}

    def test_zero_dt_skips_motion_edge(self):
        edges_before = self.backend.num_edges
        self.assertTrue(self.manager.add_imu_measurement(make_imu(1.0), make_range(1.0)))
        self.assertEqual(self.backend.num_edges - edges_before, 3)

        edges_before = self.backend.num_edges
        with self.assertLogs('coop_localization.manager', level='WARNING'):
            self.assertTrue(self.manager.add_imu_measurement(make_imu(1.0), make_range(1.0)))
        self.assertEqual(self.backend.num_edges - edges_before, 1)
        self.assertEqual(self.manager._inertial_tracker(SELF_ID).sample_count, 2)


class TestCovariancePolicy(ManagerTestCase):
    config_kwargs = {"covariance_policy": CovariancePolicy.REJECT}

    def test_reject_drops_event_before_creating_vertex(self):
        with self.assertLogs('coop_localization.manager', level='ERROR'):
            self.assertFalse(self.manager.add_pose_measurement(make_pose(1.0, covariance=np.zeros((6, 6)))))
        self.assertEqual(self.registry.vertex_count(SELF_ID), 1)

    def test_reject_zero_range_error(self):
        self.assertFalse(self.manager.add_range_measurement(make_range(1.0, error=0.0)))
        self.assertEqual(self.registry.vertex_count(STATIC_ID), 1)


class TestClampPolicy(ManagerTestCase):
    def test_clamp_accepts_singular_covariance(self):
        with self.assertLogs('coop_localization.utils.information', level='WARNING'):
            self.assertTrue(self.manager.add_pose_measurement(make_pose(1.0, covariance=np.zeros((6, 6)))))
        self.assertEqual(self.backend.num_edges, 1)


class FailingReadBackend(GtsamBackend):
    fail = False

    def read_pose(self, key):
        if self.fail:
            raise NonFiniteOptimizationResult(f"Vertex {key} has a non-finite estimate")
        return super().read_pose(key)


class TestNonFiniteResult(unittest.TestCase):
    def test_publish_suppressed(self):
        published = []
        backend = FailingReadBackend()
        manager = LocalizationManager(
            make_config(), publishers=[CallbackPublisher(lambda pose, path: published.append(pose))], backend=backend
        )
        manager.add_pose_measurement(make_pose(1.0))
        last = manager.last_published
        self.assertEqual(len(published), 1)

        backend.fail = True
        self.assertFalse(manager.publish())
        self.assertEqual(len(published), 1)
        self.assertIs(manager.last_published, last)


if __name__ == '__main__':
    unittest.main()
