"""
Base class for the recursive error-state estimators.

This module defines the interface shared by the SCKF and the USCKF.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np


class StateEstimator(ABC):
    """Abstract base class for recursive state estimators."""

    def __init__(self, state_dim: int):
        """
        Initialize state estimator.

        Args:
            state_dim: Dimension of the (error) state vector.
        """
        self.state_dim = state_dim
        self.state: Optional[np.ndarray] = None
        self.covariance: Optional[np.ndarray] = None

    @abstractmethod
    def predict(self, *args, **kwargs) -> None:
        """Perform prediction step (time update)."""

    @abstractmethod
    def update(self, *args, **kwargs):
        """Perform measurement update (correction step)."""

    def get_state(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Get current state estimate and covariance.

        Returns:
            Tuple of (state_vector, covariance_matrix).
        """
        if self.state is None or self.covariance is None:
            raise RuntimeError("Estimator not initialized.")
        return self.state.copy(), self.covariance.copy()
