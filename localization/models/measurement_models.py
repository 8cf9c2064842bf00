"""
Proprioceptive measurement models.

Two measurements are fused by the error-state filters:

- Velocity error from the kinematic chain (contact/slip odometry). The
  kinematics module is a black box that provides a projection Hme, the
  slip-vector noise Rme and the slip error vector.
- Gravity-based attitude observation from the accelerometer: with the
  platform not accelerating, the bias-corrected specific force equals
  gravity rotated into the body frame.

Stacked together these give the 6-dimensional proprioceptive measurement
used by both the SCKF and the USCKF.
"""

import numpy as np
from typing import Tuple

from localization.coords.rotations import quat_to_dcm
from localization.manifolds import blocks as B
from localization.manifolds.states import SingleState
from localization.utils.linalg import skew

PROPRIOCEPTIVE_SIZE = 6


def gravity_vector(gravity: float) -> np.ndarray:
    """Navigation-frame gravity reference [0, 0, g]."""
    return np.array([0.0, 0.0, gravity])


def velocity_error_measurement(
    Hme: np.ndarray,
    Rme: np.ndarray,
    slip_error: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Velocity-error measurement from the kinematic slip model.

    Args:
        Hme: Projection from slip space to body velocity (3 × m).
        Rme: Slip-vector noise covariance (m × m).
        slip_error: Slip error vector (m,).

    Returns:
        Tuple (z, R) with z = Hme·slip_error (3,) and R = Hme Rme Hmeᵀ (3x3).

    Raises:
        ValueError: If shapes are inconsistent.
    """
    Hme = np.asarray(Hme, dtype=np.float64)
    Rme = np.asarray(Rme, dtype=np.float64)
    slip_error = np.asarray(slip_error, dtype=np.float64).reshape(-1)
    m = slip_error.shape[0]
    if Hme.shape != (3, m):
        raise ValueError(f"Hme must have shape (3, {m}), got {Hme.shape}")
    if Rme.shape != (m, m):
        raise ValueError(f"Rme must have shape ({m}, {m}), got {Rme.shape}")
    return Hme @ slip_error, Hme @ Rme @ Hme.T


def gravity_attitude_measurement(
    q: np.ndarray,
    acc: np.ndarray,
    abias: np.ndarray,
    gravity: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Accelerometer attitude residual and its 3x9 measurement matrix.

    The matrix acts on the attitude sub-system [δθ, δbg, δba]:

        z1a = acc - ba - Cq g̃
        H1a = [2 [Cq g̃]×, 0, I]

    Args:
        q: Attitude quaternion (body -> navigation).
        acc: Accelerometer sample (m/s²).
        abias: Current accelerometer bias estimate.
        gravity: Gravity magnitude.

    Returns:
        Tuple (z1a, H1a).
    """
    g_body = quat_to_dcm(q) @ gravity_vector(gravity)
    z1a = np.asarray(acc, dtype=np.float64) - np.asarray(abias) - g_body
    H1a = np.zeros((3, 9))
    H1a[:, 0:3] = 2.0 * skew(g_body)
    H1a[:, 6:9] = np.eye(3)
    return z1a, H1a


def proprioceptive_measurement_matrix(
    orient: np.ndarray,
    gravity: float,
    dof: int = SingleState.DOF,
) -> np.ndarray:
    """
    Measurement matrix of the 6-D proprioceptive measurement.

        H[0:3, δv] = I
        H[3:6, δθ] = 2 [q⁻¹ g̃]×
        H[3:6, last three columns] = I   (accelerometer bias)

    Args:
        orient: Attitude quaternion (body -> navigation).
        gravity: Gravity magnitude.
        dof: Number of state columns.

    Returns:
        6 × dof matrix.
    """
    if dof < SingleState.DOF:
        raise ValueError(f"dof must be >= {SingleState.DOF}, got {dof}")
    g_body = quat_to_dcm(orient) @ gravity_vector(gravity)

    blocks = B.SINGLE_STATE_BLOCKS
    H = np.zeros((PROPRIOCEPTIVE_SIZE, dof))
    H[0:3, blocks.slice(B.VELOCITY)] = np.eye(3)
    H[3:6, blocks.slice(B.ORIENTATION)] = 2.0 * skew(g_body)
    H[3:6, dof - 3:dof] = np.eye(3)
    return H


def proprioceptive_measurement_model(state: SingleState, H: np.ndarray) -> np.ndarray:
    """Predicted measurement H · x with x in error-quaternion coordinates."""
    return H @ state.to_vector(error_quaternion=True)


def proprioceptive_measurement_noise_cov(acc_rw: np.ndarray, dt: float) -> np.ndarray:
    """
    Noise covariance of the 6-D proprioceptive measurement.

    Only the gravity part is populated: Rat = diag(3 (acc_rw / √dt)²). The
    velocity part is left at zero and is expected to be added from the
    kinematic model (see velocity_error_measurement).

    Args:
        acc_rw: Per-axis accelerometer random walk (m/s/√s), shape (3,).
        dt: Sampling interval (s).
    """
    if dt <= 0:
        raise ValueError(f"dt must be positive, got {dt}")
    acc_rw = np.asarray(acc_rw, dtype=np.float64).reshape(3)
    cov = np.zeros((PROPRIOCEPTIVE_SIZE, PROPRIOCEPTIVE_SIZE))
    cov[3:6, 3:6] = np.diag(3.0 * (acc_rw / np.sqrt(dt)) ** 2)
    return cov


class ProprioceptiveMeasurement:
    """
    Proprioceptive measurement model bound to a fixed linearisation point.

    Measurement: z = H x, with H from proprioceptive_measurement_matrix
    evaluated at the current attitude. Suitable both as a Jacobian for the
    EKF updates and as the function h of the unscented updates.

    Example:
        >>> model = ProprioceptiveMeasurement(q, gravity=9.81)
        >>> usckf.single_update(z, model.h, R)
        >>> usckf.ekf_single_update(z, model.H(), R)
    """

    def __init__(self, orient: np.ndarray, gravity: float, dof: int = SingleState.DOF):
        self._H = proprioceptive_measurement_matrix(orient, gravity, dof)

    def h(self, state: SingleState) -> np.ndarray:
        return proprioceptive_measurement_model(state, self._H)

    def H(self) -> np.ndarray:
        return self._H.copy()
