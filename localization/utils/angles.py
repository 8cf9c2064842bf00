"""
Angle helpers.

Filters work in radians throughout; the degree conversion factors are only
meant for presentation (logging, plotting, reports).
"""

import numpy as np
from typing import Union

R2D = 180.0 / np.pi
D2R = np.pi / 180.0


def wrap_angle(angle: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """
    Wrap angle(s) to the [-π, π] range.

    Used when a heading is overwritten or compared, so that -179° and +179°
    are treated as 2° apart rather than 358°.

    Args:
        angle: Angle or array of angles in radians.

    Returns:
        Wrapped angle(s) in range [-π, π].

    Example:
        >>> wrap_angle(3.5 * np.pi)  # 630° -> -90°
        -1.5707963267948966
    """
    if isinstance(angle, np.ndarray):
        return np.arctan2(np.sin(angle), np.cos(angle))
    return float(np.arctan2(np.sin(angle), np.cos(angle)))


def degrees_to_radians(degrees: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """Convert degrees to radians."""
    return degrees * D2R


def radians_to_degrees(radians: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """Convert radians to degrees."""
    return radians * R2D
