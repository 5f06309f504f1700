"""
Covariance to information matrix utilities.

All 6x6 matrices here use translation-first ordering [x, y, z, roll, pitch, yaw],
the layout of ROS covariance fields.
"""
import logging
import numpy as np
import numpy.linalg as la
from numpy import ndarray

from ..errors import InvalidCovarianceError
from ..types.enums import CovariancePolicy
from .validation import _check_square

logger = logging.getLogger(__name__)


def check_covariance(covar_mat: ndarray) -> None:
    """
    Checks that a covariance matrix can be inverted into an information matrix.

    Raises:
        InvalidCovarianceError: the matrix is not square, not finite, not
            symmetric or not positive definite
    """
    if covar_mat.ndim != 2 or covar_mat.shape[0] != covar_mat.shape[1]:
        raise InvalidCovarianceError(f"Covariance must be square, got shape {covar_mat.shape}")
    if not np.all(np.isfinite(covar_mat)):
        raise InvalidCovarianceError("Covariance contains non-finite values")
    if not np.allclose(covar_mat, covar_mat.T):
        raise InvalidCovarianceError("Covariance matrix must be symmetric")
    eigvals = la.eigvalsh(covar_mat)
    if not np.all(eigvals > 0):
        raise InvalidCovarianceError(
            f"Covariance matrix must be positive definite. Eigenvalues: {eigvals}"
        )


def clamp_covariance(covar_mat: ndarray, min_variance: float) -> ndarray:
    """
    Returns the nearest symmetric matrix whose eigenvalues are at least `min_variance`.

    Non-finite entries are replaced by zero before clamping, so the result is
    conservative (variance `min_variance`) along any direction that carried
    no usable information.
    """
    assert min_variance > 0, "min_variance must be positive"
    mat = np.nan_to_num(np.asarray(covar_mat, dtype=float), nan=0.0, posinf=0.0, neginf=0.0)
    _check_square(mat)
    mat = 0.5 * (mat + mat.T)
    eigvals, eigvecs = la.eigh(mat)
    eigvals = np.maximum(eigvals, min_variance)
    return eigvecs @ np.diag(eigvals) @ eigvecs.T


def get_information_from_covariance(covar_mat: ndarray) -> ndarray:
    """
    Inverts a valid covariance matrix.

    Raises:
        InvalidCovarianceError: the covariance cannot be inverted
    """
    covar_mat = np.asarray(covar_mat, dtype=float)
    check_covariance(covar_mat)
    info_mat = la.inv(covar_mat)
    # inv of a symmetric matrix is symmetric up to round-off
    return 0.5 * (info_mat + info_mat.T)


def resolve_information(
    covar_mat: ndarray,
    policy: CovariancePolicy = CovariancePolicy.CLAMP,
    min_variance: float = 1e-9,
) -> ndarray:
    """
    Computes the information matrix for a covariance, applying `policy` when
    the covariance is invalid.

    Args:
        covar_mat: the covariance matrix
        policy: CLAMP floors the eigenvalues at min_variance, REJECT re-raises
        min_variance: eigenvalue floor used when clamping

    Returns:
        the information matrix

    Raises:
        InvalidCovarianceError: the covariance is invalid and the policy is REJECT
    """
    try:
        return get_information_from_covariance(covar_mat)
    except InvalidCovarianceError as e:
        if policy == CovariancePolicy.REJECT:
            raise
        logger.warning(f"Clamping invalid covariance (min variance {min_variance}): {e}")
        return get_information_from_covariance(clamp_covariance(covar_mat, min_variance))


def resolve_scalar_information(
    variance: float,
    policy: CovariancePolicy = CovariancePolicy.CLAMP,
    min_variance: float = 1e-9,
) -> float:
    """
    Computes the precision (inverse variance) of a scalar measurement.

    Raises:
        InvalidCovarianceError: the variance is not positive and finite and the policy is REJECT
    """
    if np.isfinite(variance) and variance > 0:
        return 1.0 / variance
    if policy == CovariancePolicy.REJECT:
        raise InvalidCovarianceError(f"Variance must be positive and finite, got {variance}")
    logger.warning(f"Clamping invalid variance {variance} to {min_variance}")
    return 1.0 / min_variance


def get_block_diagonal_covariance(translation_covar: ndarray, rotation_covar: ndarray) -> ndarray:
    """Stacks 3x3 translation and rotation covariances into a 6x6 block-diagonal matrix."""
    covar = np.zeros((6, 6))
    covar[:3, :3] = translation_covar
    covar[3:, 3:] = rotation_covar
    return covar
