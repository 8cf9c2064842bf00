"""Unit tests for the USCKF manifold filter with stochastic cloning.

Test cases include:
- Cloning: bit-identical epoch copies and replicated covariance blocks
- Prediction: unscented and linearised, cross-covariance propagation
- Correction: unscented and linearised, full and active-epoch, gating
- Numerical failures reported as exceptions
"""

import unittest

import numpy as np

from localization.config import UsckfConfig
from localization.coords.rotations import IDENTITY_QUAT
from localization.errors import (
    CovarianceNotPositiveDefiniteError,
    FilterConsistencyError,
    MeanConvergenceError,
)
from localization.estimators.usckf import UpdateResult, Usckf
from localization.fusion.gating import accept_mahalanobis_distance
from localization.manifolds import AugmentedState, SingleState, SO3
from localization.manifolds import blocks as B
from localization.models.measurement_models import ProprioceptiveMeasurement
from localization.models.motion_models import (
    error_state_transition,
    inertial_error_process_model,
    inertial_process_noise_cov,
)

G = 9.81
DT = 0.01


def make_filter(P0_scale: float = 1e-2, features=(0, 0, 0), config=UsckfConfig()) -> Usckf:
    nominal = SingleState(pos=[1.0, 2.0, 3.0], orient=SO3.exp(np.array([0.0, 0.0, 0.4])))
    state = AugmentedState(
        nominal, nominal, nominal,
        np.zeros(features[0]), np.zeros(features[1]), np.zeros(features[2]),
    )
    error = AugmentedState(
        features_k=np.zeros(features[0]),
        features_k_l=np.zeros(features[1]),
        features_k_i=np.zeros(features[2]),
    )
    return Usckf(state, error, np.eye(state.dof) * P0_scale, config)


def identity_model(x: SingleState) -> SingleState:
    return x.copy()


def position_of_active_epoch(x: AugmentedState) -> np.ndarray:
    return x.statek_i.pos


def position(x: SingleState) -> np.ndarray:
    return x.pos


def position_matrix(dof: int, offset: int = 0) -> np.ndarray:
    H = np.zeros((3, dof))
    H[:, offset:offset + 3] = np.eye(3)
    return H


class TestUsckfConstruction(unittest.TestCase):
    """Test constructor validation and accessors."""

    def test_dimensions(self) -> None:
        """Test the augmented dimension and covariance shape."""
        kf = make_filter(features=(2, 0, 1))
        self.assertEqual(kf.state_dim, 48)
        self.assertEqual(kf.pk_augmented_state.shape, (48, 48))
        self.assertEqual(kf.pk_single_state().shape, (15, 15))

    def test_wrong_covariance_shape(self) -> None:
        """Test that P0 must match the error dimension."""
        with self.assertRaises(ValueError):
            Usckf(AugmentedState(), AugmentedState(), np.eye(30))

    def test_asymmetric_covariance(self) -> None:
        """Test that P0 must be symmetric."""
        P0 = np.eye(45)
        P0[0, 1] = 0.5
        with self.assertRaises(ValueError):
            Usckf(AugmentedState(), AugmentedState(), P0)

    def test_state_and_error_mismatch(self) -> None:
        """Test that nominal and error states must share the layout."""
        with self.assertRaises(ValueError):
            Usckf(AugmentedState(features_k=np.zeros(1)), AugmentedState(), np.eye(46))

    def test_accessors_return_copies(self) -> None:
        """Test that covariance accessors do not alias the filter."""
        kf = make_filter()
        kf.pk_augmented_state[:] = 0.0
        kf.pk_single_state()[:] = 0.0
        self.assertEqual(kf.Pk[0, 0], 1e-2)

    def test_set_statek_i(self) -> None:
        """Test overwriting the nominal active epoch."""
        kf = make_filter()
        s = SingleState(vel=[1.0, 0.0, 0.0])
        kf.set_statek_i(s)
        self.assertEqual(kf.mu_state.statek_i, s)
        s.vel[0] = 5.0
        self.assertEqual(kf.mu_state.statek_i.vel[0], 1.0)


class TestUsckfCloning(unittest.TestCase):
    """Test the epoch shift."""

    def test_cloning_copies_active_epoch(self) -> None:
        """Test bit-identical epochs and nine identical covariance blocks."""
        kf = make_filter(features=(2, 0, 0))
        kf.predict(
            lambda x: inertial_error_process_model(x, np.array([0.1, 0.0, 0.0]), np.array([0.0, 0.0, 0.2]), DT),
            inertial_process_noise_cov(DT),
        )
        kf.mu_state.statek_i.pos = np.array([4.0, 5.0, 6.0])
        kf.cloning()

        self.assertEqual(kf.mu_state.statek, kf.mu_state.statek_i)
        self.assertEqual(kf.mu_state.statek_l, kf.mu_state.statek_i)
        self.assertEqual(kf.mu_error.statek, kf.mu_error.statek_i)
        self.assertEqual(kf.mu_error.statek_l, kf.mu_error.statek_i)
        self.assertIsNot(kf.mu_state.statek, kf.mu_state.statek_i)

        blocks = kf.blocks
        Pii = B.subblock(kf.Pk, blocks, B.STATEK_I)
        for row in B.EPOCHS:
            for col in B.EPOCHS:
                np.testing.assert_array_equal(B.subblock(kf.Pk, blocks, row, col), Pii)

    def test_cloning_keeps_features(self) -> None:
        """Test that feature blocks are not touched."""
        kf = make_filter(features=(2, 0, 0))
        P_feat = B.subblock(kf.Pk, kf.blocks, B.FEATURES_K)
        kf.cloning()
        np.testing.assert_array_equal(B.subblock(kf.Pk, kf.blocks, B.FEATURES_K), P_feat)

    def test_single_reset(self) -> None:
        """Test that the active-epoch error is zeroed."""
        kf = make_filter()
        kf.mu_error.statek_i.pos = np.ones(3)
        kf.mu_error.statek.pos = np.ones(3)
        kf.mu_error_single_reset()
        self.assertEqual(kf.mu_error.statek_i, SingleState())
        np.testing.assert_array_equal(kf.mu_error.statek.pos, np.ones(3))


class TestUsckfPrediction(unittest.TestCase):
    """Test the unscented and linearised predictions."""

    def test_identity_model_keeps_covariance(self) -> None:
        """Test that an identity process with zero noise preserves P."""
        kf = make_filter()
        P_before = kf.pk_augmented_state
        kf.predict(identity_model, np.zeros((15, 15)))
        np.testing.assert_allclose(kf.Pk, P_before, atol=1e-12)
        np.testing.assert_allclose(kf.mu_error.statek_i.to_vector(), np.zeros(15), atol=1e-12)

    def test_noise_callable(self) -> None:
        """Test that Q may be given as a zero-argument callable."""
        kf = make_filter()
        kf.predict(identity_model, lambda: np.eye(15) * 1e-3)
        np.testing.assert_allclose(np.diag(kf.pk_single_state()), np.full(15, 1.1e-2), atol=1e-12)

    def test_process_model_moves_mean(self) -> None:
        """Test that a velocity error propagates into position."""
        kf = make_filter()
        kf.mu_error.statek_i.vel = np.array([1.0, 0.0, 0.0])
        kf.predict(
            lambda x: inertial_error_process_model(x, np.zeros(3), np.zeros(3), 0.1),
            inertial_process_noise_cov(0.1),
        )
        np.testing.assert_allclose(kf.mu_error.statek_i.pos, [0.105, 0.0, 0.0], atol=1e-9)
        P = kf.pk_augmented_state
        np.testing.assert_allclose(P, P.T, atol=1e-15)

    def test_ekf_predict_cross_covariance(self) -> None:
        """Test P_ii = F P Fᵀ + Q and the cross blocks F P and P Fᵀ."""
        kf = make_filter(features=(2, 0, 0))
        blocks = kf.blocks
        cross = np.eye(15) * 1e-3
        B.set_subblock(kf.Pk, blocks, B.STATEK, B.STATEK_I, cross)
        B.set_subblock(kf.Pk, blocks, B.STATEK_I, B.STATEK, cross)
        feat = np.full((2, 15), 1e-4)
        B.set_subblock(kf.Pk, blocks, B.FEATURES_K, B.STATEK_I, feat)
        B.set_subblock(kf.Pk, blocks, B.STATEK_I, B.FEATURES_K, feat.T)

        F = 2.0 * np.eye(15)
        kf.ekf_predict(F, np.eye(15) * 1e-3)

        np.testing.assert_allclose(B.subblock(kf.Pk, blocks, B.STATEK_I), np.eye(15) * 4.1e-2)
        np.testing.assert_allclose(B.subblock(kf.Pk, blocks, B.STATEK, B.STATEK_I), 2.0 * cross)
        np.testing.assert_allclose(B.subblock(kf.Pk, blocks, B.STATEK_I, B.STATEK), 2.0 * cross)
        np.testing.assert_allclose(B.subblock(kf.Pk, blocks, B.FEATURES_K, B.STATEK_I), 2.0 * feat)
        np.testing.assert_allclose(B.subblock(kf.Pk, blocks, B.STATEK_L, B.STATEK_I), np.zeros((15, 15)))
        np.testing.assert_array_equal(kf.Pk, kf.Pk.T)

    def test_ekf_predict_error_state(self) -> None:
        """Test that the error state is multiplied by F."""
        kf = make_filter()
        kf.mu_error.statek_i.vel = np.array([0.0, 1.0, 0.0])
        F = error_state_transition(IDENTITY_QUAT, np.zeros(3), np.zeros(3), 0.1)
        kf.ekf_predict(F, np.zeros((15, 15)))
        np.testing.assert_allclose(kf.mu_error.statek_i.pos, [0.0, 0.1, 0.0], atol=1e-12)

    def test_ekf_predict_wrong_shape(self) -> None:
        """Test that F must be 15 x 15."""
        with self.assertRaises(ValueError):
            make_filter().ekf_predict(np.eye(45), np.zeros((45, 45)))

    def test_not_positive_definite(self) -> None:
        """Test that a non positive definite active block raises."""
        kf = make_filter()
        kf.Pk[40, 40] = -1.0
        with self.assertRaises(CovarianceNotPositiveDefiniteError):
            kf.predict(identity_model, np.zeros((15, 15)))

    def test_mean_does_not_converge(self) -> None:
        """Test MeanConvergenceError with a one-iteration cap."""
        def square_position(x: SingleState) -> SingleState:
            out = x.copy()
            out.pos = x.pos ** 2
            return out

        kf = make_filter(config=UsckfConfig(mean_max_iterations=1))
        with self.assertRaises(MeanConvergenceError):
            kf.predict(square_position, np.zeros((15, 15)))


class TestUsckfUpdate(unittest.TestCase):
    """Test the four correction paths."""

    def test_unscented_update(self) -> None:
        """Test the unscented update on the full augmented state."""
        kf = make_filter()
        R = np.eye(3) * 1e-2
        result = kf.update(np.array([0.1, 0.0, 0.0]), position_of_active_epoch, R)

        self.assertIsInstance(result, UpdateResult)
        self.assertTrue(result.accepted)
        np.testing.assert_allclose(result.innovation, [0.1, 0.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(kf.mu_error.statek_i.pos, [0.05, 0.0, 0.0], atol=1e-9)
        np.testing.assert_allclose(kf.Pk[30, 30], 5e-3, atol=1e-12)
        np.testing.assert_allclose(kf.Pk[0, 0], 1e-2, atol=1e-12)
        np.testing.assert_array_equal(kf.Pk, kf.Pk.T)

    def test_unscented_update_gated(self) -> None:
        """Test that a gated unscented update can reject."""
        kf = make_filter()
        error_before = kf.mu_error.copy()
        P_before = kf.pk_augmented_state
        result = kf.update(
            np.array([10.0, 0.0, 0.0]), position_of_active_epoch, np.eye(3) * 1e-2,
            accept_mahalanobis_distance,
        )
        self.assertFalse(result.accepted)
        self.assertEqual(kf.mu_error, error_before)
        np.testing.assert_array_equal(kf.Pk, P_before)

    def test_ekf_update(self) -> None:
        """Test the linearised update against the nominal state."""
        kf = make_filter()
        H = position_matrix(45, 30)
        result = kf.ekf_update(np.array([1.1, 2.0, 3.0]), H, np.eye(3) * 1e-2)

        self.assertTrue(result.accepted)
        np.testing.assert_allclose(result.innovation, [0.1, 0.0, 0.0], atol=1e-12)
        self.assertAlmostEqual(result.mahalanobis2, 0.5, places=9)
        np.testing.assert_allclose(kf.mu_error.statek_i.pos, [0.05, 0.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(kf.Pk[30, 30], 5e-3, atol=1e-12)
        np.testing.assert_array_equal(kf.Pk, kf.Pk.T)

    def test_ekf_update_rejected(self) -> None:
        """Test that an outlier leaves state and covariance unchanged."""
        kf = make_filter()
        error_before = kf.mu_error.copy()
        P_before = kf.pk_augmented_state
        result = kf.ekf_update(np.array([1000.0, 2.0, 3.0]), position_matrix(45, 30), np.eye(3) * 1e-2)

        self.assertFalse(result.accepted)
        self.assertGreater(result.mahalanobis2, 7.81)
        self.assertEqual(kf.mu_error, error_before)
        np.testing.assert_array_equal(kf.Pk, P_before)

    def test_single_update_injects(self) -> None:
        """Test the unscented active-epoch update and its injection."""
        kf = make_filter()
        orient_before = kf.mu_state.statek_i.orient.copy()
        result = kf.single_update(np.array([0.1, 0.0, 0.0]), position, np.eye(3) * 1e-2)

        self.assertTrue(result.accepted)
        np.testing.assert_allclose(kf.mu_error.statek_i.pos, [0.05, 0.0, 0.0], atol=1e-9)
        np.testing.assert_allclose(kf.mu_state.statek_i.pos, [1.05, 2.0, 3.0], atol=1e-9)
        np.testing.assert_allclose(kf.mu_state.statek_i.orient.quat, orient_before.quat, atol=1e-12)
        np.testing.assert_allclose(kf.pk_single_state()[0, 0], 5e-3, atol=1e-12)
        np.testing.assert_array_equal(kf.Pk, kf.Pk.T)
        # clones are untouched
        np.testing.assert_array_equal(kf.mu_state.statek.pos, [1.0, 2.0, 3.0])

        kf.mu_error_single_reset()
        self.assertEqual(kf.mu_error.statek_i, SingleState())

    def test_ekf_single_update_injects(self) -> None:
        """Test the linearised active-epoch update and its injection."""
        kf = make_filter()
        H = position_matrix(15)
        result = kf.ekf_single_update(np.array([0.1, 0.0, 0.0]), H, np.eye(3) * 1e-2)

        self.assertTrue(result.accepted)
        self.assertAlmostEqual(result.mahalanobis2, 0.5, places=9)
        np.testing.assert_allclose(kf.mu_state.statek_i.pos, [1.05, 2.0, 3.0], atol=1e-12)
        np.testing.assert_allclose(kf.pk_single_state()[0, 0], 5e-3, atol=1e-12)
        np.testing.assert_array_equal(kf.Pk, kf.Pk.T)

    def test_ekf_single_update_orientation(self) -> None:
        """Test that the attitude correction is composed on the right."""
        kf = make_filter()
        q_before = kf.mu_state.statek_i.orient.copy()
        H = np.zeros((3, 15))
        H[:, 6:9] = np.eye(3)
        kf.ekf_single_update(np.array([0.0, 0.0, 0.01]), H, np.eye(3) * 1e-2)

        expected = q_before * SO3(np.array([1.0, 0.0, 0.0, 0.005]))
        np.testing.assert_allclose(kf.mu_state.statek_i.orient.quat, expected.quat, atol=1e-12)

    def test_ekf_single_update_rejected(self) -> None:
        """Test that a rejected active-epoch update changes nothing."""
        kf = make_filter()
        state_before = kf.mu_state.copy()
        P_before = kf.pk_augmented_state
        result = kf.ekf_single_update(np.array([100.0, 0.0, 0.0]), position_matrix(15), np.eye(3) * 1e-2)

        self.assertFalse(result.accepted)
        self.assertEqual(kf.mu_state, state_before)
        np.testing.assert_array_equal(kf.Pk, P_before)


class TestUsckfCycle(unittest.TestCase):
    """Test a complete predict/update/reset/clone cycle."""

    def test_proprioceptive_cycle(self) -> None:
        """Test covariance properties over repeated cycles."""
        kf = make_filter(P0_scale=1e-3)
        Q = inertial_process_noise_cov(DT, sigma=1e-2)
        R = np.eye(6) * 1e-2

        for k in range(20):
            kf.predict(
                lambda x: inertial_error_process_model(x, np.array([0.0, 0.0, 0.1]), np.zeros(3), DT),
                Q,
            )
            model = ProprioceptiveMeasurement(kf.mu_state.statek_i.orient.quat, G)
            if k % 2:
                kf.single_update(np.zeros(6), model.h, R)
            else:
                kf.ekf_single_update(np.zeros(6), model.H(), R)
            kf.mu_error_single_reset()
            if k % 5 == 4:
                kf.cloning()

            P = kf.pk_augmented_state
            np.testing.assert_allclose(P, P.T, atol=1e-15)
            self.assertGreater(np.linalg.eigvalsh(kf.pk_single_state()).min(), 0.0)
            self.assertAlmostEqual(np.linalg.norm(kf.mu_state.statek_i.orient.quat), 1.0, places=12)

    def test_check_sigma_points_detects_mismatch(self) -> None:
        """Test the consistency check on a tampered covariance."""
        kf = make_filter()
        kf.check_sigma_points()
        with self.assertRaises(FilterConsistencyError):
            kf.check_sigma_points(tolerance=-1.0)

    def test_get_state(self) -> None:
        """Test the generic estimator view."""
        kf = make_filter()
        x, P = kf.get_state()
        self.assertEqual(x.shape, (45,))
        np.testing.assert_array_equal(P, kf.Pk)


if __name__ == "__main__":
    unittest.main()
