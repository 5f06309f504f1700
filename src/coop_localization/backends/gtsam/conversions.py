"""
Conversion utilities between internal types and GTSAM types.

This module provides functions to convert between our custom types (Key,
4x4 transformations, translation-first information matrices) and GTSAM's
native types (symbol, Pose3, rotation-first tangent space).
"""
import numpy as np

from gtsam import Pose3, Rot3, symbol

from ...types.key import Key
from ...utils.validation import _check_transformation_matrix, _check_square

# Reorders [x, y, z, roll, pitch, yaw] into GTSAM's Pose3 tangent order [rx, ry, rz, x, y, z]
GTSAM_POSE3_TANGENT_ORDER = np.array([3, 4, 5, 0, 1, 2])


def get_gtsam_symbol_from_key(key: Key) -> int:
    """
    Convert a Key to a GTSAM symbol.

    Args:
        key: The Key to convert.

    Returns:
        The GTSAM symbol as an integer.
    """
    assert isinstance(key, Key), "Key must be of type Key"
    return symbol(key.char, key.index)


def get_pose3_from_matrix(pose_matrix: np.ndarray) -> Pose3:
    """
    Convert a 3D transformation matrix to a GTSAM Pose3.

    Args:
        pose_matrix: 4x4 homogeneous transformation matrix.

    Returns:
        GTSAM Pose3 object.
    """
    _check_transformation_matrix(pose_matrix, dim=3)
    rot_matrix = pose_matrix[:3, :3]
    tx, ty, tz = pose_matrix[:3, 3]
    return Pose3(Rot3(rot_matrix), np.array([tx, ty, tz]))  # type: ignore


def get_matrix_from_pose3(pose: Pose3) -> np.ndarray:
    """
    Convert a GTSAM Pose3 to a 4x4 homogeneous transformation matrix.
    """
    return np.asarray(pose.matrix(), dtype=float)


def to_gtsam_tangent_order(mat: np.ndarray) -> np.ndarray:
    """
    Permute a 6x6 translation-first matrix into GTSAM's rotation-first order.

    Args:
        mat: 6x6 information or covariance matrix, order [x, y, z, roll, pitch, yaw].

    Returns:
        The same matrix in order [roll, pitch, yaw, x, y, z].
    """
    _check_square(mat)
    assert mat.shape == (6, 6), f"Expected a 6x6 matrix, got {mat.shape}"
    perm = GTSAM_POSE3_TANGENT_ORDER
    return mat[np.ix_(perm, perm)]
