"""Measurement gating and adaptive noise estimation.

- Chi-square significance tests for Mahalanobis gating
- Adaptive attitude measurement noise (external-acceleration rejection)
"""

from localization.fusion.adaptive import AdaptiveAttitudeCov
from localization.fusion.gating import (
    CHI2_CRITICAL_5PCT,
    SignificanceTest,
    accept_any_mahalanobis_distance,
    accept_mahalanobis_distance,
    chi_square_significance_test,
    chi_square_threshold,
    mahalanobis_distance_squared,
)

__all__ = [
    "AdaptiveAttitudeCov",
    "CHI2_CRITICAL_5PCT",
    "SignificanceTest",
    "accept_any_mahalanobis_distance",
    "accept_mahalanobis_distance",
    "chi_square_significance_test",
    "chi_square_threshold",
    "mahalanobis_distance_squared",
]
