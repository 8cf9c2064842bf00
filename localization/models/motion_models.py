"""
Inertial error-state motion models.

Error-state layout (15 components, see localization.manifolds.blocks):
    [δp(3), δv(3), δθ(3), δbg(3), δba(3)]

The attitude error δθ is the vector part of the error quaternion, so the
gyro-bias coupling carries a factor -0.5.

Provides:
- ErrorStateModel: continuous Jacobian F, its second-order discretisation
  and the discretised process noise used by the SCKF and by the
  linearised USCKF prediction
- inertial_error_process_model / inertial_process_noise_cov: nonlinear
  manifold process model and noise used by the unscented USCKF prediction
- quaternion_integration: fourth-order quaternion propagation with the
  previous-step rate matrix
"""

import numpy as np
from typing import Optional

from localization.coords.rotations import omega_matrix, quat_normalize, quat_to_dcm
from localization.manifolds import blocks as B
from localization.manifolds.states import SingleState
from localization.utils.linalg import skew, symmetrize

X_STATE_SIZE = B.SINGLE_STATE_BLOCKS.dof
A_STATE_SIZE = 9  # attitude, gyro bias and accelerometer bias

_POS = B.SINGLE_STATE_BLOCKS.slice(B.POSITION)
_VEL = B.SINGLE_STATE_BLOCKS.slice(B.VELOCITY)
_ATT = B.SINGLE_STATE_BLOCKS.slice(B.ORIENTATION)
_GBIAS = B.SINGLE_STATE_BLOCKS.slice(B.GYRO_BIAS)
_ABIAS = B.SINGLE_STATE_BLOCKS.slice(B.ACC_BIAS)
_ATT_SUBSYSTEM = slice(_ATT.start, X_STATE_SIZE)


class ErrorStateModel:
    """
    Linearised 15-state inertial error model.

    All methods are static: the model has no state of its own, the caller
    passes the current attitude and bias-corrected IMU samples.

    Example:
        >>> F = ErrorStateModel.F(q, angvelo, linacc)
        >>> Phi = ErrorStateModel.transition(F, dt)
        >>> Qd = ErrorStateModel.Qd(F, Qc, dt)
        >>> P = Phi @ P @ Phi.T + Qd
    """

    @staticmethod
    def attitude_matrix(angvelo: np.ndarray) -> np.ndarray:
        """9x9 attitude sub-system [δθ, δbg, δba].

            A = [[-[ω]×, -0.5 I, 0],
                 [   0,      0,  0],
                 [   0,      0,  0]]
        """
        A = np.zeros((A_STATE_SIZE, A_STATE_SIZE))
        A[0:3, 0:3] = -skew(angvelo)
        A[0:3, 3:6] = -0.5 * np.eye(3)
        return A

    @staticmethod
    def F(q: np.ndarray, angvelo: np.ndarray, linacc: np.ndarray) -> np.ndarray:
        """
        Continuous-time error-state Jacobian.

        Args:
            q: Attitude quaternion (body -> navigation).
            angvelo: Bias-corrected angular velocity (rad/s).
            linacc: Bias- and gravity-corrected body acceleration (m/s²).

        Returns:
            15x15 Jacobian F.
        """
        Cq = quat_to_dcm(q)
        F = np.zeros((X_STATE_SIZE, X_STATE_SIZE))
        F[_POS, _VEL] = np.eye(3)
        F[_VEL, _ATT] = -Cq.T @ skew(linacc)
        F[_VEL, _ABIAS] = -Cq.T
        F[_ATT_SUBSYSTEM, _ATT_SUBSYSTEM] = ErrorStateModel.attitude_matrix(angvelo)
        return F

    @staticmethod
    def transition(F: np.ndarray, dt: float) -> np.ndarray:
        """Second-order discretisation Φ = I + F dt + F² dt² / 2."""
        return np.eye(F.shape[0]) + F * dt + F @ F * dt**2 / 2.0

    @staticmethod
    def Qc(
        q: np.ndarray,
        Ra: np.ndarray,
        Rg: np.ndarray,
        Qbg: np.ndarray,
        Qba: np.ndarray,
        dt: float,
    ) -> np.ndarray:
        """
        Block-diagonal process noise before discretisation.

        The velocity block is the accelerometer noise expressed in the
        navigation frame, Cqᵀ Ra Cq.
        """
        Cq = quat_to_dcm(q)
        Q = np.zeros((X_STATE_SIZE, X_STATE_SIZE))
        Q[_POS, _POS] = Ra * dt
        Q[_VEL, _VEL] = Cq.T @ Ra @ Cq
        Q[_ATT, _ATT] = 0.25 * Rg
        Q[_GBIAS, _GBIAS] = Qbg
        Q[_ABIAS, _ABIAS] = Qba
        return Q

    @staticmethod
    def Qd(F: np.ndarray, Q: np.ndarray, dt: float) -> np.ndarray:
        """Discretised process noise Q dt + ½ dt² (F Q + Q Fᵀ), symmetrized."""
        return symmetrize(Q * dt + 0.5 * dt**2 * (F @ Q + Q @ F.T))


def quaternion_integration(
    q: np.ndarray,
    angvelo: np.ndarray,
    old_omega: np.ndarray,
    dt: float,
) -> tuple:
    """
    Fourth-order quaternion integration with a previous-step correction.

        q⁺ = (I + ¾ Ω dt - ¼ Ω_old dt - ⅙ |ω|² dt² I
              - 1/24 Ω Ω_old dt² - 1/48 |ω|² Ω dt³) q

    Args:
        q: Current attitude quaternion.
        angvelo: Bias-corrected angular velocity (rad/s).
        old_omega: Ω matrix of the previous step (4x4, zeros at start).
        dt: Time step (s).

    Returns:
        Tuple (q_next, omega) with the renormalized quaternion and the Ω
        matrix to pass as old_omega on the next call.

    References:
        N. Trawny, S. Roumeliotis, "Indirect Kalman Filter for 3D Attitude
        Estimation", TR 2005-002, Eq. (122).
    """
    omega = omega_matrix(angvelo)
    w2 = float(np.dot(angvelo, angvelo))
    I4 = np.eye(4)

    M = (
        I4
        + 0.75 * omega * dt
        - 0.25 * old_omega * dt
        - (1.0 / 6.0) * w2 * dt**2 * I4
        - (1.0 / 24.0) * omega @ old_omega * dt**2
        - (1.0 / 48.0) * w2 * omega * dt**3
    )
    return quat_normalize(M @ q), omega


def inertial_error_process_model(
    error: SingleState,
    acc: np.ndarray,
    angvelo: np.ndarray,
    dt: float,
) -> SingleState:
    """
    Propagate a manifold error state over dt.

        δp⁺ = δp + (I dt + ½ I dt²) δv
        δv⁺ = δv + δq · (a dt)
        δq⁺ = δq ⊞ ω dt

    Biases are constant over the step.

    Args:
        error: Error state at the start of the step.
        acc: Acceleration without perturbation (m/s²).
        angvelo: Angular velocity without perturbation (rad/s).
        dt: Time step (s).

    Returns:
        New SingleState.
    """
    dFki = np.eye(3) * dt + 0.5 * np.eye(3) * dt**2
    return SingleState(
        pos=error.pos + dFki @ error.vel,
        vel=error.vel + error.orient.rotate(np.asarray(acc) * dt),
        orient=error.orient.boxplus(np.asarray(angvelo) * dt),
        gbias=error.gbias,
        abias=error.abias,
    )


def inertial_process_noise_cov(dt: float, sigma: float = 0.1) -> np.ndarray:
    """Diagonal process noise with variance sigma·dt on every block."""
    if dt <= 0:
        raise ValueError(f"dt must be positive, got {dt}")
    cov = np.zeros((X_STATE_SIZE, X_STATE_SIZE))
    for name in B.SINGLE_STATE_BLOCKS.names:
        B.set_diagonal(cov, B.SINGLE_STATE_BLOCKS, name, sigma * dt)
    return cov


def error_state_transition(
    q: np.ndarray,
    angvelo: np.ndarray,
    linacc: np.ndarray,
    dt: float,
    F: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Discrete 15x15 error-state transition for a linearised prediction.

    If F is not supplied it is built with ErrorStateModel.F.
    """
    if F is None:
        F = ErrorStateModel.F(q, angvelo, linacc)
    return ErrorStateModel.transition(F, dt)
