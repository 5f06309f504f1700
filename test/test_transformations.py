import unittest
import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / 'src'))

from coop_localization.utils.transformations import (
    get_quat_from_rotation_matrix,
    get_relative_quat,
    get_rotation_matrix_from_quat,
    get_rotation_matrix_from_rpy,
    get_transformation_matrix,
    get_transformation_matrix_from_quat,
    is_finite_transformation,
)


def yaw_quat(yaw):
    return np.array([0.0, 0.0, np.sin(yaw / 2), np.cos(yaw / 2)])


class TestTransformations(unittest.TestCase):
    def test_quat_to_matrix_yaw(self):
        R = get_rotation_matrix_from_quat(yaw_quat(np.pi / 2))
        np.testing.assert_allclose(R @ np.array([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-12)

    def test_matrix_to_quat_has_positive_w(self):
        R = get_rotation_matrix_from_quat(-yaw_quat(0.3))
        quat = get_quat_from_rotation_matrix(R)
        self.assertGreaterEqual(quat[3], 0.0)
        np.testing.assert_allclose(quat, yaw_quat(0.3), atol=1e-12)

    def test_rpy_is_fixed_axis(self):
        roll, pitch, yaw = 0.1, -0.2, 0.7
        Rx = np.array([[1, 0, 0], [0, np.cos(roll), -np.sin(roll)], [0, np.sin(roll), np.cos(roll)]])
        Ry = np.array([[np.cos(pitch), 0, np.sin(pitch)], [0, 1, 0], [-np.sin(pitch), 0, np.cos(pitch)]])
        Rz = np.array([[np.cos(yaw), -np.sin(yaw), 0], [np.sin(yaw), np.cos(yaw), 0], [0, 0, 1]])
        np.testing.assert_allclose(get_rotation_matrix_from_rpy(roll, pitch, yaw), Rz @ Ry @ Rx, atol=1e-12)

    def test_transformation_from_quat(self):
        T = get_transformation_matrix_from_quat(yaw_quat(1.1), np.array([1.0, -2.0, 0.5]))
        np.testing.assert_allclose(T[:3, 3], [1.0, -2.0, 0.5])
        np.testing.assert_allclose(T[3], [0.0, 0.0, 0.0, 1.0])
        np.testing.assert_allclose(T[:3, :3] @ T[:3, :3].T, np.eye(3), atol=1e-12)

    def test_relative_quat(self):
        q_from = yaw_quat(0.2)
        q_to = yaw_quat(0.5)
        np.testing.assert_allclose(get_relative_quat(q_from, q_to), yaw_quat(0.3), atol=1e-12)

    def test_is_finite(self):
        T = get_transformation_matrix(np.eye(3), np.zeros(3))
        self.assertTrue(is_finite_transformation(T))
        T[0, 3] = np.nan
        self.assertFalse(is_finite_transformation(T))


if __name__ == '__main__':
    unittest.main()
