"""Innovation gating for the localization filters.

A measurement is fused only if its squared Mahalanobis distance

    d² = νᵀ S⁻¹ ν

passes a significance test. The filters accept any callable with the
signature ``test(mahalanobis2, dof) -> bool``; this module provides:

- accept_mahalanobis_distance: fixed 5% significance, chi-square critical
  values tabulated for 1 to 9 degrees of freedom
- accept_any_mahalanobis_distance: no gating
- chi_square_significance_test: factory for an arbitrary confidence level,
  valid for any number of degrees of freedom (scipy quantiles)

A rejected measurement is not an error: the filters leave their state
unchanged and carry on.

References:
    Y. Bar-Shalom, X. R. Li, T. Kirubarajan, "Estimation with Applications
    to Tracking and Navigation", Wiley 2001, Section 5.4.
"""

import logging
from typing import Callable

import numpy as np
from scipy import stats

from localization.utils.linalg import spd_solve

logger = logging.getLogger(__name__)

SignificanceTest = Callable[[float, int], bool]

# Chi-square critical values at 5% significance, keyed by degrees of freedom
CHI2_CRITICAL_5PCT = {
    1: 3.84,
    2: 5.99,
    3: 7.81,
    4: 9.49,
    5: 11.07,
    6: 12.59,
    7: 14.07,
    8: 15.51,
    9: 16.92,
}


def mahalanobis_distance_squared(
    y: np.ndarray,
    S: np.ndarray
) -> float:
    """Compute squared Mahalanobis distance of an innovation.

    Args:
        y: Innovation vector (m,).
        S: Innovation covariance matrix (m × m), must be positive definite.

    Returns:
        Squared Mahalanobis distance d² (scalar).

    Raises:
        ValueError: If dimensions are incompatible or S is not positive
            definite (SingularMatrixError, a ValueError subclass).

    Example:
        >>> mahalanobis_distance_squared(np.array([3.0, 4.0]), np.eye(2))
        25.0
    """
    y = np.asarray(y, dtype=np.float64)
    S = np.asarray(S, dtype=np.float64)

    if y.ndim != 1:
        raise ValueError(f"Innovation y must be 1D, got shape {y.shape}")
    m = len(y)
    if S.shape != (m, m):
        raise ValueError(
            f"Innovation dimension {m} incompatible with S shape {S.shape}"
        )

    return float(y @ spd_solve(S, y))


def chi_square_threshold(dof: int, confidence: float = 0.95) -> float:
    """Chi-square critical value χ²(dof) at the given confidence level.

    Args:
        dof: Degrees of freedom (measurement dimension), >= 1.
        confidence: Upper quantile, e.g. 0.95 for 5% significance.

    Returns:
        Critical value.

    Raises:
        ValueError: If dof < 1 or confidence is not in (0, 1).

    Example:
        >>> round(chi_square_threshold(3, 0.95), 3)
        7.815
    """
    if dof < 1:
        raise ValueError(f"Degrees of freedom must be >= 1, got {dof}")
    if not (0 < confidence < 1):
        raise ValueError(f"Confidence level must be in (0, 1), got {confidence}")
    return float(stats.chi2.ppf(confidence, df=dof))


def accept_mahalanobis_distance(mahalanobis2: float, dof: int) -> bool:
    """Gate at 5% significance using the tabulated critical values.

    Accepts when mahalanobis2 is strictly below the critical value for dof.
    Degrees of freedom outside 1..9 are not tabulated: the condition is
    logged as an error and the measurement rejected.

    Example:
        >>> accept_mahalanobis_distance(7.80, 3)
        True
        >>> accept_mahalanobis_distance(7.82, 3)
        False
    """
    threshold = CHI2_CRITICAL_5PCT.get(int(dof))
    if threshold is None:
        logger.error(
            "No 5%% chi-square critical value for %d degrees of freedom, "
            "rejecting measurement", dof
        )
        return False

    accept = mahalanobis2 < threshold
    logger.debug(
        "Mahalanobis gate: d2=%.4f dof=%d threshold=%.2f accept=%s",
        mahalanobis2, dof, threshold, accept,
    )
    return bool(accept)


def accept_any_mahalanobis_distance(mahalanobis2: float, dof: int) -> bool:
    """Significance test that accepts every measurement."""
    return True


def chi_square_significance_test(confidence: float = 0.95) -> SignificanceTest:
    """Build a significance test for an arbitrary confidence level.

    Unlike accept_mahalanobis_distance the returned callable handles any
    number of degrees of freedom.

    Args:
        confidence: Upper quantile of the chi-square distribution.

    Returns:
        Callable test(mahalanobis2, dof) -> bool.
    """
    if not (0 < confidence < 1):
        raise ValueError(f"Confidence level must be in (0, 1), got {confidence}")

    def test(mahalanobis2: float, dof: int) -> bool:
        return bool(mahalanobis2 < chi_square_threshold(dof, confidence))

    return test
