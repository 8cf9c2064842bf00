"""Attitude representations used by the localization filters.

Quaternions are scalar-first and rotate body-frame vectors into the
navigation frame; quat_to_dcm gives the transpose (navigation -> body).
"""

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

__all__ = [
    "IDENTITY_QUAT",
    "euler_to_quat",
    "omega_matrix",
    "quat_conjugate",
    "quat_from_rotation_vector",
    "quat_multiply",
    "quat_normalize",
    "quat_rotate",
    "quat_to_dcm",
    "quat_to_euler",
    "quat_to_rotation_matrix",
    "quat_to_rotation_vector",
    "rotation_matrix_to_quat",
]
