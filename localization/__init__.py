"""Error-state Kalman filters for proprioceptive robot localization.

This package contains the estimation components used to fuse inertial,
magnetometer and kinematic-odometry measurements into a pose, velocity,
attitude and bias estimate:
- coords: Quaternion, direction-cosine and Euler conversions
- manifolds: SO(3) and composite manifold states with a named block map
- fusion: Mahalanobis gating and adaptive attitude noise estimation
- models: Proprioceptive measurement and inertial motion models
- estimators: SCKF (15-state error-state EKF) and USCKF (cloned multi-epoch filter)
"""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
