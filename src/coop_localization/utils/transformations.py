"""
Transformation matrix utilities for pose and rotation conversions.

Quaternions are in scalar-last (x, y, z, w) format throughout.
"""
import numpy as np
import scipy.spatial.transform
from .validation import _check_square, _check_rotation_matrix


def get_rotation_matrix_from_transformation_matrix(T: np.ndarray) -> np.ndarray:
    """Returns the rotation matrix from the transformation matrix.

    Args:
        T: the transformation matrix

    Returns:
        the rotation matrix
    """
    _check_square(T)
    dim = T.shape[0] - 1
    return T[:dim, :dim]


def get_translation_from_transformation_matrix(T: np.ndarray) -> np.ndarray:
    """Returns the translation from a transformation matrix.

    Args:
        T: the transformation matrix

    Returns:
        the translation vector
    """
    _check_square(T)
    dim = T.shape[0] - 1
    return T[:dim, dim]


def get_rotation_matrix_from_quat(quat: np.ndarray) -> np.ndarray:
    """Returns the rotation matrix from a quaternion in scalar-last (x, y, z, w) format.

    Args:
        quat: the quaternion as (x, y, z, w)

    Returns:
        3x3 rotation matrix
    """
    quat = np.asarray(quat, dtype=float)
    assert quat.shape == (4,)
    rot = scipy.spatial.transform.Rotation.from_quat(quat)
    assert isinstance(rot, scipy.spatial.transform.Rotation)

    rot_mat = rot.as_matrix()
    assert isinstance(rot_mat, np.ndarray)
    assert rot_mat.shape == (3, 3)

    _check_rotation_matrix(rot_mat, assert_test=True)
    return rot_mat


def get_quat_from_rotation_matrix(mat: np.ndarray) -> np.ndarray:
    """Returns the quaternion from a 3x3 rotation matrix in scalar-last (x, y, z, w) format.
    Ensures w is positive by convention, given R(-q) = R(q).

    Args:
        mat: the rotation matrix

    Returns:
        quaternion as (x, y, z, w)
    """
    _check_rotation_matrix(mat)
    rot = scipy.spatial.transform.Rotation.from_matrix(mat)
    quat = rot.as_quat()
    assert isinstance(quat, np.ndarray)

    # Ensure positive w by convention
    if quat[-1] < 0:
        quat = np.negative(quat)

    return quat


def get_rotation_matrix_from_rpy(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Returns the rotation matrix for fixed-axis roll, pitch, yaw angles.

    Equivalent to Rz(yaw) @ Ry(pitch) @ Rx(roll).
    """
    rot = scipy.spatial.transform.Rotation.from_euler("xyz", [roll, pitch, yaw])
    return rot.as_matrix()


def get_transformation_matrix(rotation: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """Returns the 4x4 homogeneous transformation matrix from a 3x3 rotation and a translation."""
    T = np.eye(4)
    T[:3, :3] = rotation
    T[:3, 3] = np.asarray(translation, dtype=float)
    return T


def get_transformation_matrix_from_quat(quat: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """Returns the 4x4 homogeneous transformation matrix from a quaternion and a translation."""
    return get_transformation_matrix(get_rotation_matrix_from_quat(quat), translation)


def get_relative_quat(quat_from: np.ndarray, quat_to: np.ndarray) -> np.ndarray:
    """Returns q_from^-1 * q_to, the rotation taking frame `from` to frame `to`."""
    rot_from = scipy.spatial.transform.Rotation.from_quat(quat_from)
    rot_to = scipy.spatial.transform.Rotation.from_quat(quat_to)
    quat = (rot_from.inv() * rot_to).as_quat()
    if quat[-1] < 0:
        quat = np.negative(quat)
    return quat


def is_finite_transformation(T: np.ndarray) -> bool:
    """True if every entry of the transformation is finite."""
    return bool(np.all(np.isfinite(T)))
