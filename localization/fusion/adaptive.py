"""Adaptive attitude measurement noise for external-acceleration rejection.

An accelerometer-based attitude measurement assumes the sensor only feels
gravity. When the platform accelerates, the residual of that measurement
grows beyond what the filter predicts. The estimator below compares the
observed residual covariance, averaged over a short window, with the
predicted innovation covariance along the principal directions of the
former. Any excess larger than a threshold is turned into an extra
measurement noise term Qstar that de-weights the attitude measurement
until the platform has been quiet for a while.

Key features:
- Circular window of the last m1 residual outer products
- Eigen-decomposition based detection with threshold gamma
- Latched inflation held for m2 quiet updates before release

References:
    Y. S. Suh, "Orientation Estimation Using a Quaternion-Based Indirect
    Kalman Filter With Adaptive Estimation of External Acceleration",
    IEEE Trans. Instrumentation and Measurement, 59(12), 2010.
"""

import logging
from typing import Optional

import numpy as np

from localization.config import AdaptiveConfig

logger = logging.getLogger(__name__)

NUMAXIS = 3


class AdaptiveAttitudeCov:
    """Windowed estimator of the external-acceleration covariance Qstar.

    The instance owns all state carried between calls: the residual window,
    its write index, the quiet counter and the currently held inflation.

    Usage:
        >>> adaptive = AdaptiveAttitudeCov(m1=10, m2=5, gamma=0.1, r2count=100)
        >>> # In the filter update:
        >>> Qstar = adaptive.matrix(xa, Pa, z1a, H1a, Ra)
        >>> R_att = Ra + Rat + Qstar

    Args:
        m1: Residual window length.
        m2: Quiet updates needed before the inflation is released.
        gamma: Detection threshold on max(λ - μ).
        r2count: Initial quiet counter.
    """

    def __init__(
        self,
        m1: int = 10,
        m2: int = 5,
        gamma: float = 0.1,
        r2count: int = 100,
    ):
        # validation lives in AdaptiveConfig
        config = AdaptiveConfig(m1=m1, m2=m2, gamma=gamma, r2count=r2count)
        self.m1 = config.m1
        self.m2 = config.m2
        self.gamma = config.gamma
        self.initial_r2count = config.r2count
        self.reset()

    @classmethod
    def from_config(cls, config: AdaptiveConfig) -> "AdaptiveAttitudeCov":
        return cls(config.m1, config.m2, config.gamma, config.r2count)

    def reset(self) -> None:
        """Clear the window and counters back to their initial values."""
        self.r_hist = np.zeros((self.m1, NUMAXIS, NUMAXIS))
        self.r1count = 0
        self.r2count = self.initial_r2count
        self.qstar = np.zeros((NUMAXIS, NUMAXIS))
        self.total_updates = 0
        self.total_detections = 0
        self.last_excess: Optional[np.ndarray] = None

    @property
    def is_inflating(self) -> bool:
        return bool(np.any(self.qstar != 0.0))

    def matrix(
        self,
        x: np.ndarray,
        P: np.ndarray,
        z: np.ndarray,
        H: np.ndarray,
        R: np.ndarray,
    ) -> np.ndarray:
        """Update the window with one residual and return Qstar.

        Args:
            x: Error-state block observed by the measurement (n,).
            P: Covariance of that block (n × n).
            z: Attitude measurement residual (3,).
            H: Measurement matrix (3 × n).
            R: Nominal measurement noise covariance (3 × 3).

        Returns:
            Copy of the 3x3 external-acceleration covariance to add to R.
        """
        x = np.asarray(x, dtype=np.float64)
        z = np.asarray(z, dtype=np.float64)
        if z.shape != (NUMAXIS,):
            raise ValueError(f"Residual z must have shape (3,), got {z.shape}")
        if H.shape != (NUMAXIS, x.shape[0]) or P.shape != (x.shape[0], x.shape[0]):
            raise ValueError(
                f"Incompatible shapes: x {x.shape}, P {P.shape}, H {H.shape}"
            )

        self.total_updates += 1

        r = z - H @ x
        self.r_hist[self.r1count] = np.outer(r, r)
        self.r1count = (self.r1count + 1) % self.m1

        Uk = self.r_hist.mean(axis=0)
        predicted = H @ P @ H.T + R

        u, lam, _ = np.linalg.svd(Uk)
        mu = np.einsum("ij,jk,ki->i", u.T, predicted, u)
        excess = lam - mu
        self.last_excess = excess

        if np.max(excess) > self.gamma:
            self.r2count = 0
            self.total_detections += 1
            weights = np.maximum(excess, 0.0)
            self.qstar = (u * weights) @ u.T
            logger.debug(
                "External acceleration detected: max excess %.4f > gamma %.4f",
                np.max(excess), self.gamma,
            )
        else:
            self.r2count += 1
            if self.r2count >= self.m2:
                self.qstar = np.zeros((NUMAXIS, NUMAXIS))

        return self.qstar.copy()

    def get_stats(self) -> dict:
        """Diagnostic counters for logging."""
        return {
            'total_updates': self.total_updates,
            'total_detections': self.total_detections,
            'quiet_count': self.r2count,
            'window_index': self.r1count,
            'inflating': self.is_inflating,
            'qstar_trace': float(np.trace(self.qstar)),
        }
