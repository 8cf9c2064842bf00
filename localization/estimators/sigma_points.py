"""
Unscented-transform primitives on manifolds.

The functions work on any state object that provides ``dof``,
``boxplus(delta)`` and ``boxminus(other)`` (SingleState, AugmentedState,
SO3) and on plain numpy vectors, for which ⊞ and ⊟ are + and -.

Sigma points are the symmetric set

    X₀ = μ,   X₂ⱼ₋₁ = μ ⊞ Lⱼ,   X₂ⱼ = μ ⊞ (-Lⱼ)       j = 1..n

with L the lower Cholesky factor of the covariance. With this set the
sample covariance is recovered as ½ Σ (Xᵢ ⊟ μ)(Xᵢ ⊟ μ)ᵀ.

References:
    C. Hertzberg, R. Wagner, U. Frese, L. Schröder, "Integrating Generic
    Sensor Fusion Algorithms with Sound State Representations through
    Encapsulation of Manifolds", Information Fusion 14(1), 2013.
"""

import logging
from typing import Any, List, Optional, Sequence

import numpy as np

from localization.errors import CovarianceNotPositiveDefiniteError, MeanConvergenceError

logger = logging.getLogger(__name__)


def _is_manifold(x: Any) -> bool:
    return hasattr(x, "boxplus") and hasattr(x, "boxminus")


def boxplus(x: Any, delta: np.ndarray) -> Any:
    """x ⊞ delta for manifold states, x + delta for vectors."""
    if _is_manifold(x):
        return x.boxplus(delta)
    return np.asarray(x) + delta


def boxminus(x: Any, y: Any) -> np.ndarray:
    """x ⊟ y for manifold states, x - y for vectors."""
    if _is_manifold(x):
        return x.boxminus(y)
    return np.asarray(x) - np.asarray(y)


def _copy(x: Any) -> Any:
    return x.copy() if hasattr(x, "copy") else np.array(x, copy=True)


def cholesky_factor(cov: np.ndarray) -> np.ndarray:
    """
    Lower Cholesky factor of a covariance.

    Raises:
        CovarianceNotPositiveDefiniteError: If cov is not positive definite.
    """
    try:
        return np.linalg.cholesky(cov)
    except np.linalg.LinAlgError as e:
        eigvals = np.linalg.eigvalsh(0.5 * (cov + cov.T))
        logger.error(
            "Covariance is not positive definite, smallest eigenvalue %.3e",
            eigvals.min(),
        )
        raise CovarianceNotPositiveDefiniteError(
            f"Covariance of shape {cov.shape} is not positive definite "
            f"(smallest eigenvalue {eigvals.min():.3e})"
        ) from e


def generate_sigma_points(
    mean: Any,
    cov: np.ndarray,
    delta: Optional[np.ndarray] = None,
) -> List[Any]:
    """
    Generate the 2n+1 symmetric sigma points of (mean, cov).

    Args:
        mean: Manifold state or vector with n degrees of freedom.
        cov: n × n covariance, must be positive definite.
        delta: Optional offset applied to every point before the Cholesky
            columns, i.e. Xᵢ = mean ⊞ (delta ± Lⱼ).

    Returns:
        List of 2n+1 points, mean first, then + and - pairs per column.

    Raises:
        CovarianceNotPositiveDefiniteError: If cov is not positive definite.
        ValueError: If cov does not match the dimension of mean.
    """
    n = mean.dof if _is_manifold(mean) else np.asarray(mean).shape[0]
    cov = np.asarray(cov, dtype=np.float64)
    if cov.shape != (n, n):
        raise ValueError(f"Covariance must have shape ({n}, {n}), got {cov.shape}")

    L = cholesky_factor(cov)

    if delta is None:
        X = [_copy(mean)]
        delta = np.zeros(n)
    else:
        X = [boxplus(mean, delta)]
    for j in range(n):
        X.append(boxplus(mean, delta + L[:, j]))
        X.append(boxplus(mean, delta - L[:, j]))
    return X


def manifold_mean(
    points: Sequence[Any],
    tolerance: float = 1e-6,
    max_iterations: int = 10000,
) -> Any:
    """
    Iterative mean of manifold points.

    Starting from the first point, the reference is moved by the average
    displacement of the points until that displacement is below tolerance.

    Raises:
        MeanConvergenceError: If max_iterations is reached.
    """
    reference = _copy(points[0])
    n_points = len(points)
    i = 0
    while True:
        mean_delta = sum(boxminus(x, reference) for x in points) / n_points
        reference = boxplus(reference, mean_delta)
        step = float(np.linalg.norm(mean_delta))
        i += 1
        if step <= tolerance:
            break
        if i >= max_iterations:
            raise MeanConvergenceError(i, step)
    return reference


def vector_mean(points: Sequence[np.ndarray]) -> np.ndarray:
    """Arithmetic mean of vector points."""
    return np.mean(np.asarray(points, dtype=np.float64), axis=0)


def mean_of(points: Sequence[Any], tolerance: float = 1e-6, max_iterations: int = 10000) -> Any:
    """Manifold mean for states, arithmetic mean for vectors."""
    if _is_manifold(points[0]):
        return manifold_mean(points, tolerance, max_iterations)
    return vector_mean(points)


def sigma_covariance(mean: Any, points: Sequence[Any]) -> np.ndarray:
    """½ Σ (Xᵢ ⊟ mean)(Xᵢ ⊟ mean)ᵀ."""
    D = np.array([boxminus(x, mean) for x in points])
    return 0.5 * D.T @ D


def sigma_cross_covariance(
    mean_x: Any,
    mean_z: Any,
    X: Sequence[Any],
    Z: Sequence[Any],
) -> np.ndarray:
    """½ Σ (Xᵢ ⊟ mean_x)(Zᵢ ⊟ mean_z)ᵀ."""
    if len(X) != len(Z):
        raise ValueError(f"Point sets differ in size: {len(X)} vs {len(Z)}")
    DX = np.array([boxminus(x, mean_x) for x in X])
    DZ = np.array([boxminus(z, mean_z) for z in Z])
    return 0.5 * DX.T @ DZ
