"""Motion, measurement and data models for the localization filters."""

from localization.models.data_model import DataModel
from localization.models.measurement_models import (
    PROPRIOCEPTIVE_SIZE,
    ProprioceptiveMeasurement,
    gravity_attitude_measurement,
    gravity_vector,
    proprioceptive_measurement_matrix,
    proprioceptive_measurement_model,
    proprioceptive_measurement_noise_cov,
    velocity_error_measurement,
)
from localization.models.motion_models import (
    A_STATE_SIZE,
    X_STATE_SIZE,
    ErrorStateModel,
    error_state_transition,
    inertial_error_process_model,
    inertial_process_noise_cov,
    quaternion_integration,
)

__all__ = [
    "DataModel",
    "PROPRIOCEPTIVE_SIZE",
    "ProprioceptiveMeasurement",
    "gravity_attitude_measurement",
    "gravity_vector",
    "proprioceptive_measurement_matrix",
    "proprioceptive_measurement_model",
    "proprioceptive_measurement_noise_cov",
    "velocity_error_measurement",
    "A_STATE_SIZE",
    "X_STATE_SIZE",
    "ErrorStateModel",
    "error_state_transition",
    "inertial_error_process_model",
    "inertial_process_noise_cov",
    "quaternion_integration",
]
