"""Unit tests for the inertial error-state motion models.

Test cases include:
- Structure of the continuous Jacobian F
- Discretisation of F and of the process noise
- Quaternion integration against closed-form rotations
- The manifold process model used by the unscented prediction
"""

import unittest

import numpy as np

from localization.coords.rotations import IDENTITY_QUAT, euler_to_quat, omega_matrix, quat_to_euler
from localization.manifolds import SingleState
from localization.models.motion_models import (
    ErrorStateModel,
    error_state_transition,
    inertial_error_process_model,
    inertial_process_noise_cov,
    quaternion_integration,
)
from localization.utils.linalg import skew


class TestErrorStateModel(unittest.TestCase):
    """Test cases for the linearised 15-state model."""

    def test_F_structure(self) -> None:
        """Test the non-zero blocks of F at identity attitude."""
        w = np.array([0.1, 0.2, 0.3])
        a = np.array([1.0, 0.0, 0.0])
        F = ErrorStateModel.F(IDENTITY_QUAT, w, a)

        np.testing.assert_array_equal(F[0:3, 3:6], np.eye(3))
        np.testing.assert_allclose(F[3:6, 6:9], -skew(a))
        np.testing.assert_allclose(F[3:6, 12:15], -np.eye(3))
        np.testing.assert_allclose(F[6:9, 6:9], -skew(w))
        np.testing.assert_allclose(F[6:9, 9:12], -0.5 * np.eye(3))
        np.testing.assert_array_equal(F[9:15, :], np.zeros((6, 15)))

    def test_transition_second_order(self) -> None:
        """Test Φ = I + F dt + F² dt²/2."""
        F = ErrorStateModel.F(euler_to_quat(0.1, 0.2, 0.3), np.ones(3), np.ones(3))
        dt = 0.01
        Phi = ErrorStateModel.transition(F, dt)
        np.testing.assert_allclose(Phi, np.eye(15) + F * dt + F @ F * dt**2 / 2)

    def test_zero_rates_transition(self) -> None:
        """Test the transition for a static, level platform."""
        Phi = error_state_transition(IDENTITY_QUAT, np.zeros(3), np.zeros(3), 0.1)
        np.testing.assert_allclose(Phi[0:3, 3:6], 0.1 * np.eye(3))
        np.testing.assert_allclose(Phi[6:9, 9:12], -0.05 * np.eye(3))

    def test_process_noise_positive_semidefinite(self) -> None:
        """Test that Qc and Qd are symmetric and PSD for a tilted attitude."""
        q = euler_to_quat(0.3, -0.4, 1.2)
        Ra = np.diag([1e-3, 2e-3, 5e-3])
        Qc = ErrorStateModel.Qc(q, Ra, np.eye(3) * 1e-4, np.eye(3) * 1e-8, np.eye(3) * 1e-6, 0.01)
        np.testing.assert_allclose(Qc, Qc.T, atol=1e-15)
        self.assertTrue(np.all(np.linalg.eigvalsh(Qc) >= -1e-15))

        F = ErrorStateModel.F(q, np.array([0.1, 0.0, 0.0]), np.zeros(3))
        Qd = ErrorStateModel.Qd(F, Qc, 0.01)
        np.testing.assert_array_equal(Qd, Qd.T)

    def test_velocity_noise_in_navigation_frame(self) -> None:
        """Test the velocity block Cqᵀ Ra Cq."""
        q = euler_to_quat(0.0, 0.0, np.pi / 2)
        Ra = np.diag([1.0, 4.0, 9.0])
        Qc = ErrorStateModel.Qc(q, Ra, np.eye(3), np.eye(3), np.eye(3), 1.0)
        # body x becomes navigation y after a 90° yaw
        np.testing.assert_allclose(np.diag(Qc[3:6, 3:6]), [4.0, 1.0, 9.0], atol=1e-12)


class TestQuaternionIntegration(unittest.TestCase):
    """Test cases for fourth-order quaternion integration."""

    def test_zero_rate_is_exact(self) -> None:
        """Test that a zero rate leaves the quaternion unchanged."""
        q = euler_to_quat(0.1, 0.2, 0.3)
        q_next, omega = quaternion_integration(q, np.zeros(3), np.zeros((4, 4)), 0.01)
        np.testing.assert_allclose(q_next, q, atol=1e-15)
        np.testing.assert_array_equal(omega, np.zeros((4, 4)))

    def test_constant_yaw_rate(self) -> None:
        """Test a constant yaw rate integrated over one second."""
        rate = 0.5
        w = np.array([0.0, 0.0, rate])
        q = IDENTITY_QUAT.copy()
        old = omega_matrix(w)
        for _ in range(100):
            q, old = quaternion_integration(q, w, old, 0.01)
        self.assertAlmostEqual(np.linalg.norm(q), 1.0, places=12)
        np.testing.assert_allclose(quat_to_euler(q), [0.0, 0.0, rate], atol=1e-4)


class TestInertialErrorProcessModel(unittest.TestCase):
    """Test cases for the manifold process model."""

    def test_propagation(self) -> None:
        """Test position, velocity and orientation propagation."""
        error = SingleState(vel=[1.0, 0.0, 0.0], gbias=[0.1, 0.0, 0.0])
        dt = 0.1
        out = inertial_error_process_model(error, np.array([0.0, 2.0, 0.0]), np.zeros(3), dt)

        np.testing.assert_allclose(out.pos, [dt + 0.5 * dt**2, 0.0, 0.0])
        np.testing.assert_allclose(out.vel, [1.0, 2.0 * dt, 0.0])
        np.testing.assert_allclose(out.orient.quat, IDENTITY_QUAT)
        np.testing.assert_array_equal(out.gbias, error.gbias)

    def test_rotation(self) -> None:
        """Test that the orientation moves by ω dt."""
        out = inertial_error_process_model(SingleState(), np.zeros(3), np.array([0.0, 0.0, 1.0]), 0.2)
        np.testing.assert_allclose(out.orient.log(), [0.0, 0.0, 0.2], atol=1e-12)

    def test_noise(self) -> None:
        """Test the diagonal process noise."""
        Q = inertial_process_noise_cov(0.01)
        np.testing.assert_allclose(Q, np.eye(15) * 1e-3)
        with self.assertRaises(ValueError):
            inertial_process_noise_cov(-1.0)


if __name__ == "__main__":
    unittest.main()
