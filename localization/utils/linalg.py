"""
Small linear-algebra helpers shared by the filters.

Covariance matrices are symmetric positive definite by construction, so
linear systems involving them are solved through a Cholesky factorisation
rather than an explicit inverse. A failed factorisation is reported as a
SingularMatrixError instead of silently producing NaNs.
"""

import numpy as np
from numpy.typing import NDArray
from scipy import linalg

from localization.errors import SingularMatrixError


def skew(v: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Build the skew-symmetric cross-product matrix [v]×.

    Args:
        v: 3-vector.

    Returns:
        3x3 matrix such that skew(v) @ w == np.cross(v, w).

    Raises:
        ValueError: If v does not have 3 elements.
    """
    v = np.asarray(v, dtype=np.float64).reshape(-1)
    if v.shape != (3,):
        raise ValueError(f"Expected 3-element vector, got shape {v.shape}")
    return np.array(
        [
            [0.0, -v[2], v[1]],
            [v[2], 0.0, -v[0]],
            [-v[1], v[0], 0.0],
        ],
        dtype=np.float64,
    )


def symmetrize(P: NDArray[np.float64]) -> NDArray[np.float64]:
    """Return 0.5 * (P + P^T)."""
    return 0.5 * (P + P.T)


def is_symmetric(P: NDArray[np.float64], atol: float = 1e-12) -> bool:
    """Check whether a square matrix equals its transpose within atol."""
    P = np.asarray(P)
    return P.ndim == 2 and P.shape[0] == P.shape[1] and np.allclose(P, P.T, atol=atol)


def spd_solve(A: NDArray[np.float64], B: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Solve A X = B for symmetric positive definite A.

    Args:
        A: Symmetric positive definite matrix (n × n).
        B: Right-hand side (n,) or (n × m).

    Returns:
        Solution X with the shape of B.

    Raises:
        SingularMatrixError: If A cannot be Cholesky factorised.
    """
    try:
        factor = linalg.cho_factor(A)
    except linalg.LinAlgError as e:
        raise SingularMatrixError(
            f"Matrix of shape {np.shape(A)} is not positive definite: {e}"
        ) from e
    return linalg.cho_solve(factor, B)


def spd_inverse(A: NDArray[np.float64]) -> NDArray[np.float64]:
    """Invert a symmetric positive definite matrix through its Cholesky factor."""
    A = np.asarray(A, dtype=np.float64)
    return spd_solve(A, np.eye(A.shape[0]))


def joseph_update(
    P: NDArray[np.float64],
    K: NDArray[np.float64],
    H: NDArray[np.float64],
    R: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Joseph-form covariance update.

        P+ = (I - K H) P (I - K H)^T + K R K^T

    The result is symmetrized before it is returned.
    """
    I_KH = np.eye(P.shape[0]) - K @ H
    return symmetrize(I_KH @ P @ I_KH.T + K @ R @ K.T)
