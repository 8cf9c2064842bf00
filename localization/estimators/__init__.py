"""Error-state estimators.

- Sckf: 15-state error-state EKF with adaptive attitude noise
- Usckf: manifold unscented/EKF filter with three-epoch stochastic cloning
- sigma_points: unscented-transform primitives shared by the USCKF
"""

from localization.estimators.base import StateEstimator
from localization.estimators.sckf import Sckf
from localization.estimators.sigma_points import (
    cholesky_factor,
    generate_sigma_points,
    manifold_mean,
    mean_of,
    sigma_covariance,
    sigma_cross_covariance,
    vector_mean,
)
from localization.estimators.usckf import UpdateResult, Usckf

__all__ = [
    "StateEstimator",
    "Sckf",
    "Usckf",
    "UpdateResult",
    "cholesky_factor",
    "generate_sigma_points",
    "manifold_mean",
    "mean_of",
    "sigma_covariance",
    "sigma_cross_covariance",
    "vector_mean",
]
