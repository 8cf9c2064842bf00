"""Utility functions for the localization filters."""

from localization.utils.angles import (
    D2R,
    R2D,
    degrees_to_radians,
    radians_to_degrees,
    wrap_angle,
)
from localization.utils.linalg import (
    is_symmetric,
    joseph_update,
    skew,
    spd_inverse,
    spd_solve,
    symmetrize,
)

__all__ = [
    "D2R",
    "R2D",
    "degrees_to_radians",
    "radians_to_degrees",
    "wrap_angle",
    "is_symmetric",
    "joseph_update",
    "skew",
    "spd_inverse",
    "spd_solve",
    "symmetrize",
]
