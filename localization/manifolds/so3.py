"""
Orientation as an element of the rotation group SO(3).

The element is stored as a unit quaternion [qw, qx, qy, qz]. Manifold
operations follow the right-perturbation convention:

    q ⊞ δ = q ⊗ Exp(δ)
    y ⊟ x = Log(x⁻¹ ⊗ y)

with δ a rotation vector in the local (body) frame.

Besides the rotation-vector chart, the linearised filters use the
"error quaternion" chart: the vector part [qx, qy, qz] of a small
rotation, for which δθ ≈ 2·[qx, qy, qz].
"""

import numpy as np
from numpy.typing import NDArray

from localization.coords.rotations import (
    quat_conjugate,
    quat_from_rotation_vector,
    quat_multiply,
    quat_normalize,
    quat_to_rotation_matrix,
    quat_to_rotation_vector,
)


class SO3:
    """Unit-quaternion element of SO(3) with boxplus/boxminus."""

    DOF = 3

    def __init__(self, quat: NDArray[np.float64] = None):
        if quat is None:
            self.quat = np.array([1.0, 0.0, 0.0, 0.0])
        else:
            self.quat = quat_normalize(quat)

    @classmethod
    def identity(cls) -> "SO3":
        return cls()

    @classmethod
    def exp(cls, phi: NDArray[np.float64]) -> "SO3":
        """Rotation-vector exponential map."""
        return cls(quat_from_rotation_vector(phi))

    @classmethod
    def from_error_quaternion(cls, v: NDArray[np.float64]) -> "SO3":
        """Rebuild a rotation from the vector part of its quaternion.

        The scalar part is recovered as sqrt(1 - |v|²) so the chart is
        invertible for rotations of at most π. Vectors longer than one are
        treated as unnormalised small-angle errors: [1, v] normalised.
        """
        v = np.asarray(v, dtype=np.float64).reshape(3)
        n2 = v @ v
        if n2 <= 1.0:
            return cls(np.concatenate(([np.sqrt(1.0 - n2)], v)))
        return cls(np.concatenate(([1.0], v)))

    @property
    def dof(self) -> int:
        return self.DOF

    def log(self) -> NDArray[np.float64]:
        """Rotation vector of this element (shortest path)."""
        return quat_to_rotation_vector(self.quat)

    def error_quaternion(self) -> NDArray[np.float64]:
        """Vector part of the quaternion, sign-fixed so that qw >= 0."""
        q = self.quat if self.quat[0] >= 0.0 else -self.quat
        return q[1:].copy()

    def boxplus(self, delta: NDArray[np.float64]) -> "SO3":
        return SO3(quat_multiply(self.quat, quat_from_rotation_vector(delta)))

    def boxminus(self, other: "SO3") -> NDArray[np.float64]:
        return quat_to_rotation_vector(quat_multiply(quat_conjugate(other.quat), self.quat))

    def inverse(self) -> "SO3":
        return SO3(quat_conjugate(self.quat))

    def as_matrix(self) -> NDArray[np.float64]:
        """Body -> navigation rotation matrix."""
        return quat_to_rotation_matrix(self.quat)

    def rotate(self, v: NDArray[np.float64]) -> NDArray[np.float64]:
        return self.as_matrix() @ np.asarray(v, dtype=np.float64)

    def __mul__(self, other: "SO3") -> "SO3":
        if not isinstance(other, SO3):
            return NotImplemented
        return SO3(quat_multiply(self.quat, other.quat))

    def copy(self) -> "SO3":
        # skips renormalisation so copies are bit-identical
        new = SO3.__new__(SO3)
        new.quat = self.quat.copy()
        return new

    def __eq__(self, other) -> bool:
        if not isinstance(other, SO3):
            return NotImplemented
        return np.array_equal(self.quat, other.quat)

    def __repr__(self) -> str:
        return f"SO3(quat={np.array2string(self.quat, precision=6)})"
