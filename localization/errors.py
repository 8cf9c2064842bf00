"""Exception types raised by the localization filters.

Numerical failures inside a filter step are reported as exceptions derived
from FilterError so callers can catch a whole filter's failures in one
place. Argument and shape problems keep raising ValueError.
"""


class FilterError(RuntimeError):
    """Base class for numerical failures inside a filter step."""


class CovarianceNotPositiveDefiniteError(FilterError):
    """A covariance block could not be Cholesky factorised."""


class MeanConvergenceError(FilterError):
    """The iterative manifold mean did not converge."""

    def __init__(self, iterations: int, step_norm: float):
        super().__init__(
            f"Manifold mean did not converge after {iterations} iterations "
            f"(last step norm {step_norm:.3e})"
        )
        self.iterations = iterations
        self.step_norm = step_norm


class SingularMatrixError(FilterError, ValueError):
    """An innovation or prior covariance could not be inverted."""


class FilterConsistencyError(FilterError):
    """Sigma points failed to reproduce the mean or covariance they encode."""
