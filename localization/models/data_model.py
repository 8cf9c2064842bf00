"""
Gaussian data model: a measurement vector with its covariance.

Two independent estimates of the same quantity are combined in
information form:

    P = (P1⁻¹ + P2⁻¹)⁻¹
    x = P (P1⁻¹ x1 + P2⁻¹ x2)

which is what ``a + b`` does.
"""

import logging
from dataclasses import dataclass

import numpy as np

from localization.utils.linalg import spd_inverse, spd_solve

logger = logging.getLogger(__name__)


@dataclass
class DataModel:
    """
    Measurement vector with covariance.

    Attributes:
        data: Data vector (n,).
        cov: Covariance (n × n), symmetric positive definite.

    Example:
        >>> a = DataModel(np.array([1.0, 2.0]), np.eye(2))
        >>> b = DataModel(np.array([3.0, 4.0]), np.eye(2))
        >>> fused = a + b
        >>> fused.data
        array([2., 3.])
        >>> np.diag(fused.cov)
        array([0.5, 0.5])
    """

    data: np.ndarray
    cov: np.ndarray

    def __post_init__(self) -> None:
        self.data = np.asarray(self.data, dtype=np.float64).reshape(-1)
        self.cov = np.asarray(self.cov, dtype=np.float64)
        n = self.data.shape[0]
        if self.cov.shape != (n, n):
            raise ValueError(
                f"Covariance shape {self.cov.shape} must match data dimension ({n}, {n})"
            )

    @classmethod
    def zeros(cls, dim: int = 1) -> "DataModel":
        """Zero data with identity covariance."""
        return cls(np.zeros(dim), np.eye(dim))

    @property
    def dim(self) -> int:
        return self.data.shape[0]

    def fuse(self, other: "DataModel") -> "DataModel":
        """
        Information-form fusion with another model of the same size.

        Models of different sizes cannot be fused; in that case other is
        returned unchanged and a warning is logged.

        Raises:
            SingularMatrixError: If a covariance is not positive definite.
        """
        if other.dim != self.dim or self.dim == 0:
            logger.warning(
                "Cannot fuse data models of size %d and %d, keeping the second",
                self.dim, other.dim,
            )
            return DataModel(other.data.copy(), other.cov.copy())

        info_self = spd_inverse(self.cov)
        info_other = spd_inverse(other.cov)
        info = info_self + info_other
        P = spd_inverse(info)
        x = spd_solve(info, info_self @ self.data + info_other @ other.data)
        return DataModel(x, 0.5 * (P + P.T))

    def __add__(self, other: "DataModel") -> "DataModel":
        if not isinstance(other, DataModel):
            return NotImplemented
        return self.fuse(other)

    def copy(self) -> "DataModel":
        return DataModel(self.data.copy(), self.cov.copy())
