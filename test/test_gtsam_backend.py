import unittest
import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / 'src'))

from coop_localization.backends.gtsam import (
    GtsamBackend,
    get_noise_from_information,
    to_gtsam_tangent_order,
)
from coop_localization.errors import BackendInitializationError
from coop_localization.types.edges import PosePriorEdge, RangeEdge, RelativePoseEdge
from coop_localization.types.key import Key, KeyPair


def translation(x, y, z):
    T = np.eye(4)
    T[:3, 3] = [x, y, z]
    return T


class TestConversions(unittest.TestCase):
    def test_tangent_order(self):
        mat = np.diag([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        np.testing.assert_allclose(np.diagonal(to_gtsam_tangent_order(mat)), [4, 5, 6, 1, 2, 3])

    def test_diagonal_noise_is_permuted(self):
        info = np.diag([1.0, 4.0, 9.0, 16.0, 25.0, 36.0])
        noise = get_noise_from_information(info)
        np.testing.assert_allclose(noise.sigmas(), [1 / 4, 1 / 5, 1 / 6, 1.0, 1 / 2, 1 / 3])


class TestGtsamBackend(unittest.TestCase):
    def setUp(self):
        self.backend = GtsamBackend(huber_threshold=1.0)
        self.backend.add_parameter(0)

    def test_invalid_settings(self):
        with self.assertRaises(BackendInitializationError):
            GtsamBackend(huber_threshold=0.0)
        with self.assertRaises(BackendInitializationError):
            GtsamBackend(fixed_vertex_variance=-1.0)

    def test_duplicate_parameter(self):
        with self.assertRaises(ValueError):
            self.backend.add_parameter(0)

    def test_keys_are_sequential(self):
        k0 = self.backend.add_vertex(np.eye(4), fixed=True)
        k1 = self.backend.add_vertex(np.eye(4))
        self.assertEqual(k0, Key("X0"))
        self.assertEqual(k1, Key("X1"))
        self.assertEqual(self.backend.num_vertices, 2)

    def test_empty_graph_optimizes(self):
        self.assertTrue(self.backend.optimize(10))

    def test_between_edge(self):
        k0 = self.backend.add_vertex(np.eye(4), fixed=True)
        k1 = self.backend.add_vertex(np.eye(4))
        edge = RelativePoseEdge(KeyPair(k0, k1), translation(1.0, 2.0, 0.0), np.eye(6))
        self.backend.add_edge(edge)
        self.assertEqual(self.backend.num_edges, 1)
        self.assertTrue(self.backend.optimize(30))
        np.testing.assert_allclose(self.backend.read_pose(k1)[:3, 3], [1.0, 2.0, 0.0], atol=1e-3)
        np.testing.assert_allclose(self.backend.read_pose(k0), np.eye(4), atol=1e-6)

    def test_range_edge(self):
        k0 = self.backend.add_vertex(np.eye(4), fixed=True)
        k1 = self.backend.add_vertex(translation(1.0, 0.0, 0.0))
        self.backend.add_edge(RangeEdge(KeyPair(k0, k1), distance=2.0, information=100.0))
        self.assertTrue(self.backend.optimize(30))
        self.assertAlmostEqual(np.linalg.norm(self.backend.read_pose(k1)[:3, 3]), 2.0, places=3)

    def test_prior_in_offset_frame(self):
        self.backend.add_parameter(1, translation(1.0, 0.0, 0.0))
        k0 = self.backend.add_vertex(np.eye(4))
        prior = PosePriorEdge(key=k0, measurement=translation(0.0, 1.0, 0.0), information=np.eye(6), parameter_id=1)
        self.backend.add_edge(prior)
        self.assertTrue(self.backend.optimize(30))
        np.testing.assert_allclose(self.backend.read_pose(k0)[:3, 3], [1.0, 1.0, 0.0], atol=1e-3)

    def test_prior_with_unknown_parameter(self):
        k0 = self.backend.add_vertex(np.eye(4))
        prior = PosePriorEdge(key=k0, measurement=np.eye(4), information=np.eye(6), parameter_id=7)
        with self.assertRaises(ValueError):
            self.backend.add_edge(prior)
        self.assertEqual(self.backend.num_edges, 0)

    def test_failed_optimization_keeps_estimate(self):
        k0 = self.backend.add_vertex(np.eye(4), fixed=True)
        dangling = Key("X7")
        self.backend.add_edge(RelativePoseEdge(KeyPair(k0, dangling), translation(1.0, 0.0, 0.0), np.eye(6)))
        with self.assertLogs('coop_localization.backends.gtsam.backend', level='ERROR'):
            self.assertFalse(self.backend.optimize(30))
        np.testing.assert_allclose(self.backend.read_pose(k0), np.eye(4))

    def test_read_path_and_error(self):
        k0 = self.backend.add_vertex(np.eye(4), fixed=True)
        k1 = self.backend.add_vertex(translation(0.5, 0.0, 0.0))
        self.backend.add_edge(RelativePoseEdge(KeyPair(k0, k1), translation(1.0, 0.0, 0.0), np.eye(6)))
        self.assertGreater(self.backend.error(), 0.0)
        self.backend.optimize(30)
        path = self.backend.read_path([k0, k1])
        self.assertEqual(len(path), 2)
        self.assertLess(self.backend.error(), 1e-6)


if __name__ == '__main__':
    unittest.main()
