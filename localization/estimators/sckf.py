"""
Stochastic Cloning Indirect Kalman Filter (SCKF).

A 15-state error-state (indirect) EKF for IMU + proprioceptive odometry:

    x = [δp(3), δv(3), δθ(3), δbg(3), δba(3)]

The nominal attitude is a unit quaternion kept outside the error state
and corrected multiplicatively; gyro and accelerometer biases are kept as
running estimates and corrected additively. The velocity error is observed
through the kinematic slip model and the attitude through the accelerometer
gravity reading, whose noise is inflated adaptively while the platform is
accelerating (see localization.fusion.adaptive).

Typical cycle:

    >>> kf = Sckf(config)
    >>> kf.set_attitude(q0)
    >>> kf.set_omega(gyro0)
    >>> for gyro, acc, ... in stream:
    ...     kf.predict(gyro, acc, dt)
    ...     kf.update(Hme, Rme, slip_error, acc, mag, dt)
    ...     kf.reset_state_vector()

reset_state_vector() must be called by the user after each update; it is
not automatic.

References:
    J. Hidalgo-Carrió, S. Joyeux, F. Kirchner, "Generic Framework for
    Proprioceptive Localization of Planetary Rovers", ASTRA 2013.
    Y. S. Suh, IEEE Trans. Instrumentation and Measurement, 59(12), 2010.
"""

import logging
from typing import Optional

import numpy as np

from localization.config import SckfConfig
from localization.coords.rotations import (
    euler_to_quat,
    omega_matrix,
    quat_multiply,
    quat_normalize,
    quat_to_dcm,
    quat_to_euler,
)
from localization.estimators.base import StateEstimator
from localization.fusion.adaptive import AdaptiveAttitudeCov
from localization.models.measurement_models import (
    gravity_attitude_measurement,
    gravity_vector,
    velocity_error_measurement,
)
from localization.models.motion_models import (
    X_STATE_SIZE,
    ErrorStateModel,
    quaternion_integration,
)
from localization.utils.linalg import joseph_update, spd_solve

logger = logging.getLogger(__name__)

NUMAXIS = 3
MEASUREMENT_SIZE = 2 * NUMAXIS

# index ranges inside the error state
VEL = slice(3, 6)
ATT = slice(6, 9)
GBIAS = slice(9, 12)
ABIAS = slice(12, 15)
ATT_SUBSYSTEM = slice(6, 15)


class Sckf(StateEstimator):
    """
    Error-state Kalman filter with adaptive attitude measurement noise.

    Args:
        config: Filter configuration (initial covariance, noise matrices,
            reference fields and adaptive-estimator parameters).

    Attributes:
        x: Error state (15,).
        P: Error covariance (15 × 15).
        q: Attitude quaternion [w, x, y, z], body -> navigation. NaN until
            set_attitude() is called.
        bghat, bahat: Gyro and accelerometer bias estimates.
        gtilde, mtilde: Navigation-frame gravity and magnetic references.
    """

    def __init__(self, config: SckfConfig):
        super().__init__(X_STATE_SIZE)
        self.config = config
        noise = config.noise

        self.Rg = noise.Rg.copy()
        self.Qbg = noise.Qbg.copy()
        self.Qba = noise.Qba.copy()
        self.Ra = noise.Ra.copy()
        self.Rat = noise.Rat.copy()
        self.Rm = noise.Rm.copy()

        self.gtilde = gravity_vector(config.gravity)
        self.mtilde = np.array(
            [np.cos(config.dip_angle), 0.0, -np.sin(config.dip_angle)]
        )

        self.x = np.zeros(X_STATE_SIZE)
        self.P = config.P0.copy()
        self.q = np.full(4, np.nan)
        self.bghat = np.zeros(NUMAXIS)
        self.bahat = np.zeros(NUMAXIS)
        self.old_omega = np.zeros((4, 4))

        self.K = np.zeros((X_STATE_SIZE, MEASUREMENT_SIZE))
        self.innovation = np.zeros(MEASUREMENT_SIZE)
        self.Qstar = np.zeros((NUMAXIS, NUMAXIS))

        self.adaptive = AdaptiveAttitudeCov.from_config(config.adaptive)

        # StateEstimator views
        self.state = self.x
        self.covariance = self.P

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict(self, u: np.ndarray, v: np.ndarray, dt: float) -> None:
        """
        Propagate error state, covariance and attitude over dt.

        Args:
            u: Gyroscope sample (rad/s), shape (3,).
            v: Accelerometer sample (m/s²), shape (3,).
            dt: Time step (s), > 0.

        Raises:
            ValueError: If dt <= 0 or the samples are not 3-vectors.
        """
        if dt <= 0:
            raise ValueError(f"dt must be positive, got {dt}")
        u = self._vec3("u", u)
        v = self._vec3("v", v)
        if np.any(np.isnan(self.q)):
            logger.warning("predict() called before set_attitude(), attitude is NaN")

        angvelo = u - self.bghat
        g_body = quat_to_dcm(self.q) @ self.gtilde
        linacc = v - self.bahat - g_body

        F = ErrorStateModel.F(self.q, angvelo, linacc)
        dF = ErrorStateModel.transition(F, dt)

        self.x = dF @ self.x

        Qk = ErrorStateModel.Qc(self.q, self.Ra, self.Rg, self.Qbg, self.Qba, dt)
        Qd = ErrorStateModel.Qd(F, Qk, dt)
        self.P = dF @ self.P @ dF.T + Qd

        self.q, self.old_omega = quaternion_integration(
            self.q, angvelo, self.old_omega, dt
        )
        self._sync_views()

    # ------------------------------------------------------------------
    # Correction
    # ------------------------------------------------------------------

    def update(
        self,
        Hme: np.ndarray,
        Rme: np.ndarray,
        slip_error: np.ndarray,
        acc: np.ndarray,
        mag: Optional[np.ndarray],
        dt: float,
        magnetometer_enabled: bool = False,
    ) -> None:
        """
        Fuse kinematic velocity error and accelerometer attitude observation.

        The attitude measurement noise is Ra + Rat + Qstar, with Qstar the
        external-acceleration covariance estimated by the adaptive window.
        After the Kalman correction the quaternion is corrected with the
        roll and pitch of the attitude error only: the heading is not
        observable from gravity and is kept at its pre-update value.
        Bias estimates are incremented with the bias errors.

        Args:
            Hme: Slip-to-velocity projection (3 × m).
            Rme: Slip noise covariance (m × m).
            slip_error: Slip error vector (m,).
            acc: Accelerometer sample (m/s²).
            mag: Magnetometer sample. Accepted for interface compatibility,
                not fused.
            dt: Time since the last update (s). Not used by the model.
            magnetometer_enabled: Accepted for interface compatibility.

        Raises:
            SingularMatrixError: If the innovation covariance is not
                positive definite.
        """
        acc = self._vec3("acc", acc)
        if mag is not None:
            self._vec3("mag", mag)
        if magnetometer_enabled:
            logger.debug("Magnetometer fusion is not available, ignoring mag sample")

        xa = self.x[ATT_SUBSYSTEM]
        Pa = self.P[ATT_SUBSYSTEM, ATT_SUBSYSTEM]
        Cq = quat_to_dcm(self.q)

        z1a, H1a = gravity_attitude_measurement(
            self.q, acc, self.bahat, self.get_gravity()
        )
        self.Qstar = self.adaptive.matrix(xa, Pa, z1a, H1a, self.Ra)

        z_vel, R_vel = velocity_error_measurement(Hme, Rme, slip_error)

        z = np.concatenate((z_vel, z1a))
        H = np.zeros((MEASUREMENT_SIZE, X_STATE_SIZE))
        H[0:3, VEL] = Cq
        H[3:6, ATT_SUBSYSTEM] = H1a

        R = np.zeros((MEASUREMENT_SIZE, MEASUREMENT_SIZE))
        R[0:3, 0:3] = R_vel
        R[3:6, 3:6] = self.Ra + self.Rat + self.Qstar

        S = H @ self.P @ H.T + R
        self.K = spd_solve(S, H @ self.P).T
        self.innovation = z - H @ self.x

        self.x = self.x + self.K @ self.innovation
        self.P = joseph_update(self.P, self.K, H, R)

        self._correct_attitude(self.x[ATT])

        self.bghat = self.bghat + self.x[GBIAS]
        self.bahat = self.bahat + self.x[ABIAS]
        self._sync_views()

        logger.debug(
            "SCKF update: |innovation|=%.4g, external acc %s",
            np.linalg.norm(self.innovation),
            "detected" if self.adaptive.is_inflating else "not detected",
        )

    def _correct_attitude(self, att_error: np.ndarray) -> None:
        yaw = quat_to_euler(self.q)[2]

        qe = quat_normalize(np.concatenate(([1.0], att_error)))
        roll_e, pitch_e, _ = quat_to_euler(qe)
        qe_roll = np.array([np.cos(roll_e / 2.0), np.sin(roll_e / 2.0), 0.0, 0.0])
        qe_pitch = np.array([np.cos(pitch_e / 2.0), 0.0, np.sin(pitch_e / 2.0), 0.0])
        qe = quat_multiply(qe_roll, qe_pitch)

        q = quat_normalize(quat_multiply(self.q, qe))
        roll, pitch, _ = quat_to_euler(q)
        self.q = quat_normalize(euler_to_quat(roll, pitch, yaw))

    def reset_state_vector(self) -> None:
        """Zero the attitude, gyro-bias and accelerometer-bias errors."""
        self.x[ATT_SUBSYSTEM] = 0.0
        self._sync_views()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_state_x(self) -> np.ndarray:
        return self.x.copy()

    def get_covariance_x(self) -> np.ndarray:
        return self.P.copy()

    def get_covariance_attitude(self) -> np.ndarray:
        """9x9 covariance of [δθ, δbg, δba]."""
        return self.P[ATT_SUBSYSTEM, ATT_SUBSYSTEM].copy()

    def get_kalman_gain(self) -> np.ndarray:
        """Last 15x6 Kalman gain."""
        return self.K.copy()

    def get_attitude_kalman_gain(self) -> np.ndarray:
        """Gain from the gravity measurement to [δθ, δbg, δba] (9x3)."""
        return self.K[ATT_SUBSYSTEM, NUMAXIS:MEASUREMENT_SIZE].copy()

    def get_innovation(self) -> np.ndarray:
        return self.innovation.copy()

    def get_attitude(self) -> np.ndarray:
        return self.q.copy()

    def get_euler(self) -> np.ndarray:
        """Attitude as ZYX Euler angles [roll, pitch, yaw] (rad)."""
        return quat_to_euler(self.q)

    def get_gravity(self) -> float:
        return float(np.linalg.norm(self.gtilde))

    def get_magnetic_reference(self) -> np.ndarray:
        return self.mtilde.copy()

    def get_external_acceleration_cov(self) -> np.ndarray:
        """Qstar used by the last update."""
        return self.Qstar.copy()

    def get_bias(self) -> tuple:
        """Tuple (gyro_bias, acc_bias)."""
        return self.bghat.copy(), self.bahat.copy()

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set_attitude(self, q: np.ndarray) -> None:
        self.q = quat_normalize(q)

    def set_gravity(self, g: float) -> None:
        if g <= 0:
            raise ValueError(f"gravity must be positive, got {g}")
        self.gtilde = gravity_vector(g)

    def set_omega(self, u: np.ndarray) -> None:
        """Initialise the previous-step Ω with a gyro sample."""
        self.old_omega = omega_matrix(self._vec3("u", u))

    def set_state_x(self, x0: np.ndarray) -> None:
        x0 = np.asarray(x0, dtype=np.float64).reshape(-1)
        if x0.shape != (X_STATE_SIZE,):
            raise ValueError(f"x0 must have shape ({X_STATE_SIZE},), got {x0.shape}")
        self.x = x0.copy()
        self._sync_views()

    def set_heading(self, yaw: float) -> None:
        """Overwrite the yaw, keeping roll and pitch."""
        roll, pitch, _ = quat_to_euler(self.q)
        self.q = euler_to_quat(roll, pitch, yaw)

    # ------------------------------------------------------------------

    def _sync_views(self) -> None:
        self.state = self.x
        self.covariance = self.P

    @staticmethod
    def _vec3(name: str, v: np.ndarray) -> np.ndarray:
        v = np.asarray(v, dtype=np.float64).reshape(-1)
        if v.shape != (NUMAXIS,):
            raise ValueError(f"{name} must be a 3-vector, got shape {v.shape}")
        return v
