"""Rotation representations and conversions.

This module provides the attitude algebra used by the filters:
- Unit quaternions (q = [qw, qx, qy, qz], Hamilton product)
- Direction-cosine matrices in both directions (body-to-nav and nav-to-body)
- Euler angles (roll-pitch-yaw, ZYX convention)
- The SO(3) exponential/logarithm maps on rotation vectors

Conventions:
- Quaternions: [qw, qx, qy, qz] where qw is the scalar part. A filter
  attitude quaternion rotates body-frame vectors into the navigation frame.
- quat_to_rotation_matrix(q) maps body -> navigation (v_nav = R @ v_body).
- quat_to_dcm(q) is its transpose and maps navigation -> body, which is the
  form the inertial error model uses to bring gravity into the body frame.
- Euler angles: [roll, pitch, yaw] in radians (ZYX/3-2-1 convention)

References:
    N. Trawny, S. Roumeliotis, "Indirect Kalman Filter for 3D Attitude
    Estimation", TR 2005-002, University of Minnesota.
    J. Sola, "Quaternion kinematics for the error-state Kalman filter", 2017.
"""

import numpy as np
from numpy.typing import NDArray

IDENTITY_QUAT = np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64)

# Below this angle the exp/log maps switch to their first-order expansions
_SMALL_ANGLE = 1e-12


def _as_quat(q: NDArray[np.float64]) -> NDArray[np.float64]:
    q = np.asarray(q, dtype=np.float64)
    if q.shape != (4,):
        raise ValueError(f"Expected 4-element quaternion, got shape {q.shape}")
    return q


def quat_normalize(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Return q scaled to unit norm.

    Raises:
        ValueError: If q is not a 4-element array or has zero norm.
    """
    q = _as_quat(q)
    n = np.linalg.norm(q)
    if n == 0.0:
        raise ValueError("Cannot normalize a zero quaternion")
    return q / n


def quat_conjugate(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Quaternion conjugate (the inverse for unit quaternions)."""
    q = _as_quat(q)
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=np.float64)


def quat_multiply(p: NDArray[np.float64], q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Hamilton product p ⊗ q.

    Args:
        p: Left quaternion [pw, px, py, pz].
        q: Right quaternion [qw, qx, qy, qz].

    Returns:
        The product quaternion (not renormalized).

    Example:
        >>> qz90 = euler_to_quat(0.0, 0.0, np.pi / 2)
        >>> q = quat_multiply(qz90, qz90)  # 180° about z
        >>> np.allclose(np.abs(q), [0.0, 0.0, 0.0, 1.0])
        True
    """
    p = _as_quat(p)
    q = _as_quat(q)
    pw, pv = p[0], p[1:]
    qw, qv = q[0], q[1:]

    w = pw * qw - pv @ qv
    v = pw * qv + qw * pv + np.cross(pv, qv)

    return np.array([w, v[0], v[1], v[2]], dtype=np.float64)


def quat_rotate(q: NDArray[np.float64], v: NDArray[np.float64]) -> NDArray[np.float64]:
    """Rotate a 3-vector by q (body -> navigation for an attitude quaternion)."""
    return quat_to_rotation_matrix(q) @ np.asarray(v, dtype=np.float64)


def quat_from_rotation_vector(phi: NDArray[np.float64]) -> NDArray[np.float64]:
    """SO(3) exponential map: rotation vector -> unit quaternion.

    Args:
        phi: Rotation vector (axis * angle) in radians, shape (3,).

    Returns:
        Unit quaternion [cos(|φ|/2), sin(|φ|/2) φ/|φ|].

    Raises:
        ValueError: If phi does not have 3 elements.
    """
    phi = np.asarray(phi, dtype=np.float64).reshape(-1)
    if phi.shape != (3,):
        raise ValueError(f"Expected 3-element rotation vector, got shape {phi.shape}")

    angle = np.linalg.norm(phi)
    if angle < _SMALL_ANGLE:
        q = np.array([1.0, 0.5 * phi[0], 0.5 * phi[1], 0.5 * phi[2]])
        return q / np.linalg.norm(q)

    half = 0.5 * angle
    axis = phi / angle
    return np.concatenate(([np.cos(half)], np.sin(half) * axis))


def quat_to_rotation_vector(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """SO(3) logarithm map: unit quaternion -> rotation vector.

    The shortest rotation is returned, i.e. q and -q map to the same vector
    and the angle lies in [0, π].
    """
    q = quat_normalize(q)
    if q[0] < 0.0:
        q = -q

    v = q[1:]
    vnorm = np.linalg.norm(v)
    if vnorm < _SMALL_ANGLE:
        return 2.0 * v / q[0]

    angle = 2.0 * np.arctan2(vnorm, q[0])
    return angle * v / vnorm


def quat_to_dcm(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Direction-cosine matrix mapping navigation-frame vectors into the body frame.

    For an attitude quaternion q (body -> navigation) this returns
    C = R(q)^T, so that v_body = C @ v_nav. The closed form avoids building
    R first:

        C = [[2q0²+2q1²-1,  2q1q2+2q0q3,  2q1q3-2q0q2],
             [2q1q2-2q0q3,  2q0²+2q2²-1,  2q2q3+2q0q1],
             [2q1q3+2q0q2,  2q2q3-2q0q1,  2q0²+2q3²-1]]

    Args:
        q: Unit quaternion [qw, qx, qy, qz].

    Returns:
        3x3 direction-cosine matrix.

    Raises:
        ValueError: If q is not a 4-element array.
    """
    q0, q1, q2, q3 = _as_quat(q)

    return np.array(
        [
            [2.0 * q0 * q0 + 2.0 * q1 * q1 - 1.0,
             2.0 * q1 * q2 + 2.0 * q0 * q3,
             2.0 * q1 * q3 - 2.0 * q0 * q2],
            [2.0 * q1 * q2 - 2.0 * q0 * q3,
             2.0 * q0 * q0 + 2.0 * q2 * q2 - 1.0,
             2.0 * q2 * q3 + 2.0 * q0 * q1],
            [2.0 * q1 * q3 + 2.0 * q0 * q2,
             2.0 * q2 * q3 - 2.0 * q0 * q1,
             2.0 * q0 * q0 + 2.0 * q3 * q3 - 1.0],
        ],
        dtype=np.float64,
    )


def quat_to_rotation_matrix(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert quaternion to the body -> navigation rotation matrix.

    Args:
        q: Unit quaternion as numpy array [qw, qx, qy, qz].

    Returns:
        3x3 rotation matrix R such that v_nav = R @ v_body.

    Raises:
        ValueError: If q is not a 4-element array.
    """
    return quat_to_dcm(q).T


def rotation_matrix_to_quat(R: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert rotation matrix to quaternion.

    Uses Shepperd's method, picking the largest diagonal term to avoid
    dividing by a small number.

    Args:
        R: 3x3 rotation matrix (body -> navigation).

    Returns:
        Unit quaternion as numpy array [qw, qx, qy, qz].

    Raises:
        ValueError: If R is not a 3x3 matrix.
    """
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3):
        raise ValueError(f"Expected 3x3 matrix, got shape {R.shape}")

    trace = np.trace(R)

    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        q = [0.25 / s,
             (R[2, 1] - R[1, 2]) * s,
             (R[0, 2] - R[2, 0]) * s,
             (R[1, 0] - R[0, 1]) * s]
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        q = [(R[2, 1] - R[1, 2]) / s,
             0.25 * s,
             (R[0, 1] + R[1, 0]) / s,
             (R[0, 2] + R[2, 0]) / s]
    elif R[1, 1] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        q = [(R[0, 2] - R[2, 0]) / s,
             (R[0, 1] + R[1, 0]) / s,
             0.25 * s,
             (R[1, 2] + R[2, 1]) / s]
    else:
        s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        q = [(R[1, 0] - R[0, 1]) / s,
             (R[0, 2] + R[2, 0]) / s,
             (R[1, 2] + R[2, 1]) / s,
             0.25 * s]

    return quat_normalize(np.array(q, dtype=np.float64))


def euler_to_quat(
    roll: float,
    pitch: float,
    yaw: float,
) -> NDArray[np.float64]:
    """Build a quaternion from ZYX Euler angles.

    The result is q = q_z(yaw) ⊗ q_y(pitch) ⊗ q_x(roll).

    Args:
        roll: Rotation about x in radians.
        pitch: Rotation about y in radians.
        yaw: Rotation about z in radians.

    Returns:
        Unit quaternion as numpy array [qw, qx, qy, qz].
    """
    cr = np.cos(roll / 2.0)
    sr = np.sin(roll / 2.0)
    cp = np.cos(pitch / 2.0)
    sp = np.sin(pitch / 2.0)
    cy = np.cos(yaw / 2.0)
    sy = np.sin(yaw / 2.0)

    return np.array(
        [
            cr * cp * cy + sr * sp * sy,
            sr * cp * cy - cr * sp * sy,
            cr * sp * cy + sr * cp * sy,
            cr * cp * sy - sr * sp * cy,
        ],
        dtype=np.float64,
    )


def quat_to_euler(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Extract ZYX Euler angles from a unit quaternion.

    Args:
        q: Unit quaternion as numpy array [qw, qx, qy, qz].

    Returns:
        Euler angles as numpy array [roll, pitch, yaw] in radians.

    Raises:
        ValueError: If q is not a 4-element array.
    """
    qw, qx, qy, qz = _as_quat(q)

    roll = np.arctan2(2.0 * (qw * qx + qy * qz), 1.0 - 2.0 * (qx * qx + qy * qy))
    # clip guards arcsin against round-off at gimbal lock
    pitch = np.arcsin(np.clip(2.0 * (qw * qy - qz * qx), -1.0, 1.0))
    yaw = np.arctan2(2.0 * (qw * qz + qx * qy), 1.0 - 2.0 * (qy * qy + qz * qz))

    return np.array([roll, pitch, yaw], dtype=np.float64)


def omega_matrix(omega: NDArray[np.float64]) -> NDArray[np.float64]:
    """Quaternion-rate matrix Ω(ω) for body angular rates.

        Ω(ω) = [[ 0,  -ωx, -ωy, -ωz],
                [ ωx,  0,   ωz, -ωy],
                [ ωy, -ωz,  0,   ωx],
                [ ωz,  ωy, -ωx,  0 ]]

    so that dq/dt = 0.5 Ω(ω) q for a body -> navigation quaternion.

    Raises:
        ValueError: If omega does not have 3 elements.
    """
    w = np.asarray(omega, dtype=np.float64).reshape(-1)
    if w.shape != (3,):
        raise ValueError(f"Expected 3-element angular rate, got shape {w.shape}")

    return np.array(
        [
            [0.0, -w[0], -w[1], -w[2]],
            [w[0], 0.0, w[2], -w[1]],
            [w[1], -w[2], 0.0, w[0]],
            [w[2], w[1], -w[0], 0.0],
        ],
        dtype=np.float64,
    )
