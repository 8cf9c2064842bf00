"""
Unscented Stochastic Cloning Kalman Filter (USCKF) on manifolds.

The filter estimates the error of an AugmentedState, i.e. three cloned
epochs of a navigation state (statek, statek_l, statek_i) and optional
feature blocks, with a joint covariance. Only the active epoch statek_i is
propagated; the clones keep their values and are correlated with the active
epoch through the cross-covariance blocks, which are propagated with the
(statistically linearised) transition of each prediction.

Prediction:
    predict       unscented, nonlinear process model on the manifold
    ekf_predict   linearised, caller-supplied transition matrix

Correction:
    update             unscented, full augmented state
    ekf_update         linearised, full augmented state, Joseph form
    single_update      unscented, active epoch, injected into the nominal state
    ekf_single_update  linearised, active epoch, Joseph form, injected

Every correction can be gated with a significance test on the squared
Mahalanobis distance of the innovation; a rejected measurement leaves state
and covariance unchanged. Corrections return an UpdateResult.

Epoch management:
    cloning               statek_i -> statek_l -> statek, covariance replicated
    mu_error_single_reset zero the active-epoch error after injection

Numerical failures raise exceptions from localization.errors instead of
aborting: CovarianceNotPositiveDefiniteError when a sampled covariance has
no Cholesky factor, MeanConvergenceError when the manifold mean does not
converge and SingularMatrixError when an innovation covariance cannot be
factorised.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Union

import numpy as np

from localization.config import UsckfConfig
from localization.errors import FilterConsistencyError
from localization.estimators.base import StateEstimator
from localization.estimators.sigma_points import (
    generate_sigma_points,
    manifold_mean,
    sigma_covariance,
    sigma_cross_covariance,
    vector_mean,
)
from localization.fusion.gating import (
    SignificanceTest,
    accept_any_mahalanobis_distance,
    accept_mahalanobis_distance,
)
from localization.manifolds import blocks as B
from localization.manifolds.so3 import SO3
from localization.manifolds.states import AugmentedState, SingleState
from localization.utils.linalg import joseph_update, spd_solve, symmetrize

logger = logging.getLogger(__name__)

NoiseSpec = Union[np.ndarray, Callable[[], np.ndarray]]


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of a USCKF correction.

    Attributes:
        accepted: Whether the significance test accepted the measurement.
        innovation: Innovation vector z - ẑ.
        mahalanobis2: Squared Mahalanobis distance of the innovation.
    """

    accepted: bool
    innovation: np.ndarray
    mahalanobis2: float


def _resolve_noise(Q: NoiseSpec) -> np.ndarray:
    return np.asarray(Q() if callable(Q) else Q, dtype=np.float64)


class Usckf(StateEstimator):
    """
    Manifold unscented filter with three-epoch stochastic cloning.

    Args:
        state: Initial nominal augmented state.
        error: Initial error augmented state (usually identity/zeros).
        P0: Initial covariance of the error state (dof × dof).
        config: Numerical settings of the manifold mean.

    Raises:
        ValueError: If the dimensions of state, error and P0 disagree or P0
            is not symmetric.
    """

    def __init__(
        self,
        state: AugmentedState,
        error: AugmentedState,
        P0: np.ndarray,
        config: UsckfConfig = UsckfConfig(),
    ):
        if state.dof != error.dof:
            raise ValueError(
                f"State and error dimensions differ: {state.dof} vs {error.dof}"
            )
        P0 = np.asarray(P0, dtype=np.float64)
        if P0.shape != (error.dof, error.dof):
            raise ValueError(
                f"P0 must have shape ({error.dof}, {error.dof}), got {P0.shape}"
            )
        if not np.allclose(P0, P0.T):
            raise ValueError("P0 must be symmetric")

        super().__init__(error.dof)
        self.config = config
        self.mu_state = state.copy()
        self.mu_error = error.copy()
        self.Pk = P0.copy()
        self._sync()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def blocks(self) -> B.BlockMap:
        return self.mu_error.blocks

    @property
    def pk_augmented_state(self) -> np.ndarray:
        return self.Pk.copy()

    def pk_single_state(self) -> np.ndarray:
        """Covariance block of the active epoch."""
        return B.subblock(self.Pk, self.blocks, B.STATEK_I)

    def set_statek_i(self, state: SingleState) -> None:
        """Overwrite the nominal active-epoch state."""
        self.mu_state.statek_i = state.copy()
        self._sync()

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict(
        self,
        f: Callable[[SingleState], SingleState],
        Q: NoiseSpec,
    ) -> None:
        """
        Unscented prediction of the active epoch.

        Args:
            f: Process model mapping an error SingleState to the next one.
            Q: Process noise covariance (15 × 15) or a callable returning it.

        Raises:
            CovarianceNotPositiveDefiniteError: If the active-epoch
                covariance has no Cholesky factor.
            MeanConvergenceError: If the manifold mean does not converge.
        """
        blocks = self.blocks
        prior = self.mu_error.statek_i.copy()
        Pk_prior = B.subblock(self.Pk, blocks, B.STATEK_I)

        X = generate_sigma_points(prior, Pk_prior)
        X_next = [f(x) for x in X]

        posterior = manifold_mean(
            X_next, self.config.mean_tolerance, self.config.mean_max_iterations
        )
        self.mu_error.statek_i = posterior

        # statistical linearisation of f, used for the cross terms only
        Pxy = sigma_cross_covariance(prior, posterior, X, X_next)
        Fk = spd_solve(Pk_prior, Pxy).T

        Pk = sigma_covariance(posterior, X_next) + _resolve_noise(Q)
        B.set_subblock(self.Pk, blocks, B.STATEK_I, B.STATEK_I, Pk)

        self._propagate_cross_covariance(Fk)
        self._sync()

        logger.debug("USCKF predict: active-epoch trace %.6g", np.trace(Pk))

    def ekf_predict(self, F: np.ndarray, Q: NoiseSpec) -> None:
        """
        Linearised prediction of the active epoch.

        The error of statek_i, in error-quaternion coordinates, is multiplied
        by F and the covariance propagated as F P Fᵀ + Q.

        Args:
            F: Discrete transition matrix (15 × 15).
            Q: Process noise covariance or a callable returning it.
        """
        blocks = self.blocks
        n = SingleState.DOF
        F = np.asarray(F, dtype=np.float64)
        if F.shape != (n, n):
            raise ValueError(f"F must have shape ({n}, {n}), got {F.shape}")

        x = self.mu_error.statek_i.to_vector(error_quaternion=True)
        self.mu_error.statek_i = SingleState.from_vector(F @ x, error_quaternion=True)

        Pk = B.subblock(self.Pk, blocks, B.STATEK_I)
        Pk = F @ Pk @ F.T + _resolve_noise(Q)
        B.set_subblock(self.Pk, blocks, B.STATEK_I, B.STATEK_I, Pk)

        self._propagate_cross_covariance(F)
        self._sync()

    def _propagate_cross_covariance(self, F: np.ndarray) -> None:
        blocks = self.blocks
        for block in blocks:
            if block.name == B.STATEK_I or block.size == 0:
                continue
            P_bi = B.subblock(self.Pk, blocks, block.name, B.STATEK_I)
            B.set_subblock(self.Pk, blocks, block.name, B.STATEK_I, P_bi @ F.T)
            P_ib = B.subblock(self.Pk, blocks, B.STATEK_I, block.name)
            B.set_subblock(self.Pk, blocks, B.STATEK_I, block.name, F @ P_ib)

    # ------------------------------------------------------------------
    # Correction
    # ------------------------------------------------------------------

    def update(
        self,
        z: np.ndarray,
        h: Callable[[AugmentedState], np.ndarray],
        R: NoiseSpec,
        significance_test: SignificanceTest = accept_any_mahalanobis_distance,
    ) -> UpdateResult:
        """
        Unscented update of the full augmented error state.

        Args:
            z: Measurement vector (m,).
            h: Measurement model evaluated on an AugmentedState.
            R: Measurement noise (m × m) or a callable returning it.
            significance_test: Gate test(mahalanobis2, dof).

        Returns:
            UpdateResult.
        """
        z = np.atleast_1d(np.asarray(z, dtype=np.float64))
        X = generate_sigma_points(self.mu_error, self.Pk)
        Z = [np.atleast_1d(np.asarray(h(x), dtype=np.float64)) for x in X]

        mean_z = vector_mean(Z)
        S = sigma_covariance(mean_z, Z) + _resolve_noise(R)
        Pxz = sigma_cross_covariance(self.mu_error, mean_z, X, Z)

        result = self._gate(z - mean_z, S, significance_test)
        if result.accepted:
            K = spd_solve(S, Pxz.T).T
            self.Pk = symmetrize(self.Pk - K @ S @ K.T)
            self.mu_error = self.mu_error.boxplus(K @ result.innovation)
            self._sync()
        return result

    def ekf_update(
        self,
        z: np.ndarray,
        H: np.ndarray,
        R: NoiseSpec,
        significance_test: SignificanceTest = accept_mahalanobis_distance,
    ) -> UpdateResult:
        """
        Linearised update of the full augmented error state.

        The innovation is taken against the nominal state, z - H x̂, with x̂
        in error-quaternion coordinates; the correction K ν is accumulated
        into the error state.

        Args:
            z: Measurement vector (m,).
            H: Measurement matrix (m × dof).
            R: Measurement noise (m × m) or a callable returning it.
            significance_test: Gate test(mahalanobis2, dof).

        Returns:
            UpdateResult; the innovation of a rejected measurement can be
            used by the caller (e.g. as an accumulated slip).
        """
        z = np.atleast_1d(np.asarray(z, dtype=np.float64))
        H = np.asarray(H, dtype=np.float64)
        R = _resolve_noise(R)

        x_error = self.mu_error.to_vector(error_quaternion=True)
        x_hat = self.mu_state.to_vector(error_quaternion=True)

        S = H @ self.Pk @ H.T + R
        result = self._gate(z - H @ x_hat, S, significance_test)
        if result.accepted:
            K = spd_solve(S, H @ self.Pk).T
            self.mu_error.set_vector(x_error + K @ result.innovation, error_quaternion=True)
            self.Pk = joseph_update(self.Pk, K, H, R)
            self._sync()
        return result

    def single_update(
        self,
        z: np.ndarray,
        h: Callable[[SingleState], np.ndarray],
        R: NoiseSpec,
        significance_test: SignificanceTest = accept_any_mahalanobis_distance,
    ) -> UpdateResult:
        """
        Unscented update of the active epoch with injection.

        On acceptance the active-epoch error is corrected, stored, and
        injected into the nominal statek_i: vector components add, the
        orientation is composed on the right and renormalized. Call
        mu_error_single_reset() afterwards.
        """
        z = np.atleast_1d(np.asarray(z, dtype=np.float64))
        blocks = self.blocks
        error = self.mu_error.statek_i.copy()
        Pk = B.subblock(self.Pk, blocks, B.STATEK_I)

        X = generate_sigma_points(error, Pk)
        Z = [np.atleast_1d(np.asarray(h(x), dtype=np.float64)) for x in X]

        mean_z = vector_mean(Z)
        S = sigma_covariance(mean_z, Z) + _resolve_noise(R)
        Pxz = sigma_cross_covariance(error, mean_z, X, Z)

        result = self._gate(z - mean_z, S, significance_test)
        if not result.accepted:
            return result

        K = spd_solve(S, Pxz.T).T
        Pk = symmetrize(Pk - K @ S @ K.T)
        error = error.boxplus(K @ result.innovation)

        self.mu_error.statek_i = error
        B.set_subblock(self.Pk, blocks, B.STATEK_I, B.STATEK_I, Pk)

        nominal = self.mu_state.statek_i
        self.mu_state.statek_i = SingleState(
            pos=nominal.pos + error.pos,
            vel=nominal.vel + error.vel,
            orient=nominal.orient * error.orient,
            gbias=nominal.gbias + error.gbias,
            abias=nominal.abias + error.abias,
        )
        self._sync()
        return result

    def ekf_single_update(
        self,
        z: np.ndarray,
        H: np.ndarray,
        R: NoiseSpec,
        significance_test: SignificanceTest = accept_mahalanobis_distance,
    ) -> UpdateResult:
        """
        Linearised update of the active epoch with injection.

        The orientation correction is the quaternion [1, δq] normalized,
        with δq the corrected error-quaternion vector part. Call
        mu_error_single_reset() afterwards.
        """
        z = np.atleast_1d(np.asarray(z, dtype=np.float64))
        H = np.asarray(H, dtype=np.float64)
        R = _resolve_noise(R)
        blocks = self.blocks
        att = SingleState.blocks.slice(B.ORIENTATION)

        x = self.mu_error.statek_i.to_vector(error_quaternion=True)
        Pk = B.subblock(self.Pk, blocks, B.STATEK_I)

        S = H @ Pk @ H.T + R
        result = self._gate(z - H @ x, S, significance_test)
        if not result.accepted:
            return result

        K = spd_solve(S, H @ Pk).T
        x = x + K @ result.innovation
        Pk = joseph_update(Pk, K, H, R)
        B.set_subblock(self.Pk, blocks, B.STATEK_I, B.STATEK_I, Pk)
        self.mu_error.statek_i = SingleState.from_vector(x, error_quaternion=True)

        s = SingleState.blocks
        qe = SO3(np.concatenate(([1.0], x[att])))
        nominal = self.mu_state.statek_i
        self.mu_state.statek_i = SingleState(
            pos=nominal.pos + x[s.slice(B.POSITION)],
            vel=nominal.vel + x[s.slice(B.VELOCITY)],
            orient=nominal.orient * qe,
            gbias=nominal.gbias + x[s.slice(B.GYRO_BIAS)],
            abias=nominal.abias + x[s.slice(B.ACC_BIAS)],
        )
        self._sync()
        return result

    def _gate(
        self,
        innovation: np.ndarray,
        S: np.ndarray,
        significance_test: SignificanceTest,
    ) -> UpdateResult:
        mahalanobis2 = float(innovation @ spd_solve(S, innovation))
        accepted = bool(significance_test(mahalanobis2, innovation.shape[0]))
        if not accepted:
            logger.debug(
                "Measurement rejected: d2=%.4f dof=%d", mahalanobis2, innovation.shape[0]
            )
        return UpdateResult(accepted, innovation, mahalanobis2)

    # ------------------------------------------------------------------
    # Epoch management
    # ------------------------------------------------------------------

    def cloning(self) -> None:
        """
        Shift the epochs: statek_i -> statek_l -> statek.

        Nominal and error states are deep-copied and the active-epoch
        covariance is replicated into all nine epoch blocks, so the clones
        start fully correlated with the active epoch.
        """
        self.mu_state.statek_l = self.mu_state.statek_i.copy()
        self.mu_state.statek = self.mu_state.statek_l.copy()

        self.mu_error.statek_l = self.mu_error.statek_i.copy()
        self.mu_error.statek = self.mu_error.statek_l.copy()

        blocks = self.blocks
        Pk = B.subblock(self.Pk, blocks, B.STATEK_I)
        for row in B.EPOCHS:
            for col in B.EPOCHS:
                B.set_subblock(self.Pk, blocks, row, col, Pk)
        self._sync()

    def mu_error_single_reset(self) -> None:
        """Zero the active-epoch error (identity orientation)."""
        self.mu_error.statek_i.set_zero()
        self._sync()

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def check_sigma_points(self, tolerance: float = 1e-6) -> None:
        """
        Verify that the sigma points of (mu_error, Pk) reproduce both.

        Raises:
            FilterConsistencyError: If the recovered mean or covariance
                differs by more than tolerance.
        """
        X = generate_sigma_points(self.mu_error, self.Pk)
        mean = manifold_mean(X, self.config.mean_tolerance, self.config.mean_max_iterations)
        P_test = sigma_covariance(mean, X)

        cov_err = float(np.max(np.abs(P_test - self.Pk)))
        if cov_err > tolerance:
            raise FilterConsistencyError(
                f"Sigma points reproduce the covariance with error {cov_err:.3e}"
            )
        mean_err = float(np.linalg.norm(mean.boxminus(self.mu_error)))
        if mean_err > tolerance:
            raise FilterConsistencyError(
                f"Sigma points reproduce the mean with error {mean_err:.3e}"
            )

    def _sync(self) -> None:
        self.state = self.mu_error.to_vector()
        self.covariance = self.Pk
