"""Unit tests for quaternion, direction-cosine and Euler conversions.

Test cases include:
- Hamilton product and conjugate identities
- Both rotation-matrix directions (body -> nav and nav -> body)
- Euler round trips away from gimbal lock
- Exponential/logarithm maps on rotation vectors
- The quaternion-rate matrix Ω(ω)
"""

import unittest

import numpy as np

from localization.coords.rotations import (
    IDENTITY_QUAT,
    euler_to_quat,
    omega_matrix,
    quat_conjugate,
    quat_from_rotation_vector,
    quat_multiply,
    quat_normalize,
    quat_rotate,
    quat_to_dcm,
    quat_to_euler,
    quat_to_rotation_matrix,
    quat_to_rotation_vector,
    rotation_matrix_to_quat,
)


class TestQuaternionAlgebra(unittest.TestCase):
    """Test cases for quaternion products and normalization."""

    def test_identity_is_neutral(self) -> None:
        """Test that the identity quaternion leaves a product unchanged."""
        q = euler_to_quat(0.1, -0.2, 0.3)
        np.testing.assert_allclose(quat_multiply(IDENTITY_QUAT, q), q, atol=1e-15)
        np.testing.assert_allclose(quat_multiply(q, IDENTITY_QUAT), q, atol=1e-15)

    def test_conjugate_is_inverse(self) -> None:
        """Test that q ⊗ q* is the identity for unit quaternions."""
        q = euler_to_quat(0.4, 0.2, -1.1)
        np.testing.assert_allclose(
            quat_multiply(q, quat_conjugate(q)), IDENTITY_QUAT, atol=1e-12
        )

    def test_product_composes_rotations(self) -> None:
        """Test that R(p ⊗ q) = R(p) R(q)."""
        p = euler_to_quat(0.3, 0.0, 0.5)
        q = euler_to_quat(0.0, -0.4, 0.2)
        np.testing.assert_allclose(
            quat_to_rotation_matrix(quat_multiply(p, q)),
            quat_to_rotation_matrix(p) @ quat_to_rotation_matrix(q),
            atol=1e-12,
        )

    def test_normalize(self) -> None:
        """Test normalization to unit norm."""
        q = quat_normalize(np.array([2.0, 0.0, 0.0, 0.0]))
        np.testing.assert_allclose(q, IDENTITY_QUAT)

    def test_normalize_zero_raises(self) -> None:
        """Test that a zero quaternion cannot be normalized."""
        with self.assertRaises(ValueError):
            quat_normalize(np.zeros(4))

    def test_wrong_shape_raises(self) -> None:
        """Test that non-quaternion input is rejected."""
        with self.assertRaises(ValueError):
            quat_multiply(np.zeros(3), IDENTITY_QUAT)


class TestRotationMatrices(unittest.TestCase):
    """Test cases for the two rotation-matrix conventions."""

    def test_dcm_is_transpose_of_rotation_matrix(self) -> None:
        """Test that quat_to_dcm maps navigation vectors into the body frame."""
        q = euler_to_quat(0.2, -0.3, 1.0)
        np.testing.assert_allclose(quat_to_dcm(q), quat_to_rotation_matrix(q).T)

    def test_yaw_90_rotates_x_to_y(self) -> None:
        """Test a known rotation: 90° yaw maps body x to navigation y."""
        q = euler_to_quat(0.0, 0.0, np.pi / 2)
        v_nav = quat_rotate(q, np.array([1.0, 0.0, 0.0]))
        np.testing.assert_allclose(v_nav, [0.0, 1.0, 0.0], atol=1e-12)

    def test_orthogonality(self) -> None:
        """Test that the rotation matrix is orthonormal with det +1."""
        R = quat_to_rotation_matrix(euler_to_quat(1.0, 0.5, -2.0))
        np.testing.assert_allclose(R @ R.T, np.eye(3), atol=1e-12)
        self.assertAlmostEqual(np.linalg.det(R), 1.0, places=12)

    def test_matrix_round_trip(self) -> None:
        """Test rotation matrix -> quaternion -> rotation matrix."""
        for angles in [(0.1, 0.2, 0.3), (np.pi - 0.01, 0.0, 0.0), (0.0, 0.0, -3.0)]:
            R = quat_to_rotation_matrix(euler_to_quat(*angles))
            q = rotation_matrix_to_quat(R)
            np.testing.assert_allclose(quat_to_rotation_matrix(q), R, atol=1e-12)


class TestEuler(unittest.TestCase):
    """Test cases for ZYX Euler conversions."""

    def test_round_trip(self) -> None:
        """Test Euler -> quaternion -> Euler away from gimbal lock."""
        angles = np.array([0.3, -0.7, 2.5])
        np.testing.assert_allclose(quat_to_euler(euler_to_quat(*angles)), angles, atol=1e-12)

    def test_identity(self) -> None:
        """Test that zero angles give exactly the identity quaternion."""
        np.testing.assert_array_equal(euler_to_quat(0.0, 0.0, 0.0), IDENTITY_QUAT)
        np.testing.assert_array_equal(quat_to_euler(IDENTITY_QUAT), np.zeros(3))

    def test_gimbal_lock_pitch_is_finite(self) -> None:
        """Test that pitch at ±90° stays finite."""
        euler = quat_to_euler(euler_to_quat(0.0, np.pi / 2, 0.0))
        self.assertTrue(np.all(np.isfinite(euler)))
        self.assertAlmostEqual(euler[1], np.pi / 2, places=6)


class TestExponentialMap(unittest.TestCase):
    """Test cases for rotation-vector exponential and logarithm."""

    def test_round_trip(self) -> None:
        """Test Log(Exp(φ)) = φ for |φ| < π."""
        phi = np.array([0.3, -0.2, 0.5])
        np.testing.assert_allclose(
            quat_to_rotation_vector(quat_from_rotation_vector(phi)), phi, atol=1e-12
        )

    def test_small_angle(self) -> None:
        """Test that tiny rotation vectors survive the round trip."""
        phi = np.array([1e-14, 0.0, -2e-14])
        np.testing.assert_allclose(
            quat_to_rotation_vector(quat_from_rotation_vector(phi)), phi, atol=1e-20
        )

    def test_log_is_shortest_path(self) -> None:
        """Test that q and -q give the same rotation vector."""
        q = quat_from_rotation_vector(np.array([0.0, 0.0, 1.0]))
        np.testing.assert_allclose(
            quat_to_rotation_vector(-q), quat_to_rotation_vector(q), atol=1e-12
        )


class TestOmegaMatrix(unittest.TestCase):
    """Test cases for the quaternion-rate matrix."""

    def test_matches_right_product(self) -> None:
        """Test that Ω(ω) q equals q ⊗ [0, ω]."""
        w = np.array([0.1, -0.4, 0.25])
        q = euler_to_quat(0.2, 0.1, -0.6)
        np.testing.assert_allclose(
            omega_matrix(w) @ q, quat_multiply(q, np.concatenate(([0.0], w))), atol=1e-15
        )

    def test_skew_symmetric(self) -> None:
        """Test that Ω(ω) is skew-symmetric."""
        W = omega_matrix(np.array([1.0, 2.0, 3.0]))
        np.testing.assert_array_equal(W, -W.T)


if __name__ == "__main__":
    unittest.main()
