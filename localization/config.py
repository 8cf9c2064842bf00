"""
Configuration structures for the localization filters.

All tunable constants of the filters (window lengths and thresholds of the
adaptive attitude estimator, noise matrices, reference fields, manifold-mean
convergence criteria) are carried by frozen dataclasses that are injected at
construction. Nothing is read from module-level globals, so several filters
with different settings can coexist in one process.

Configurations can be written to and read back from JSON:

    >>> cfg = SckfConfig.from_noise_densities(
    ...     P0=np.eye(15) * 1e-4, gyro_rw=1e-3, gyro_bias_rw=1e-5,
    ...     acc_rw=1e-2, acc_bias_rw=1e-4, dt=0.01)
    >>> save_config(cfg, "sckf.json")
    >>> cfg2 = load_config("sckf.json", SckfConfig)

Matrices are stored as nested lists in JSON and restored as numpy arrays.
"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Type, TypeVar, Union

import numpy as np

from localization.manifolds.blocks import SINGLE_STATE_BLOCKS

T = TypeVar("T")

NUMAXIS = 3
GRAVITY = 9.81


def _as_matrix(name: str, value: Any, shape: tuple) -> np.ndarray:
    arr = np.asarray(value, dtype=np.float64)
    if arr.shape != shape:
        raise ValueError(f"{name} must have shape {shape}, got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} must contain only finite values")
    if not np.allclose(arr, arr.T):
        raise ValueError(f"{name} must be symmetric")
    return arr


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


@dataclass(frozen=True)
class AdaptiveConfig:
    """
    Parameters of the adaptive attitude measurement-noise estimator.

    Attributes:
        m1: Length of the residual history window. The observed residual
            covariance is the mean of the last m1 residual outer products.
        m2: Number of consecutive quiet updates after which the inflation
            is released (set back to zero).
        gamma: Detection threshold on max(λ - μ), the largest excess of an
            observed residual eigenvalue over its predicted value.
        r2count: Initial value of the quiet counter. A value >= m2 starts the
            filter with no inflation.
    """

    m1: int = 10
    m2: int = 5
    gamma: float = 0.1
    r2count: int = 100

    def __post_init__(self) -> None:
        if not isinstance(self.m1, (int, np.integer)) or self.m1 < 1:
            raise ValueError(f"m1 must be a positive integer, got {self.m1}")
        if not isinstance(self.m2, (int, np.integer)) or self.m2 < 1:
            raise ValueError(f"m2 must be a positive integer, got {self.m2}")
        if self.gamma < 0:
            raise ValueError(f"gamma must be non-negative, got {self.gamma}")
        if self.r2count < 0:
            raise ValueError(f"r2count must be non-negative, got {self.r2count}")

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdaptiveConfig":
        return cls(**data)


@dataclass(frozen=True)
class SckfNoiseParams:
    """
    Noise matrices of the SCKF (all 3x3, SI units).

    Attributes:
        Rg: Gyroscope measurement noise covariance ((rad/s)²).
        Qbg: Gyroscope bias random-walk covariance.
        Qba: Accelerometer bias random-walk covariance.
        Ra: Accelerometer measurement noise covariance ((m/s²)²).
        Rat: Accelerometer bias-instability (turn-on) covariance, added to
            the gravity-based attitude measurement noise.
        Rm: Magnetometer noise covariance. Carried for completeness, the
            filter does not fuse magnetometer data.
    """

    Rg: np.ndarray
    Qbg: np.ndarray
    Qba: np.ndarray
    Ra: np.ndarray
    Rat: np.ndarray
    Rm: np.ndarray = field(default_factory=lambda: np.zeros((NUMAXIS, NUMAXIS)))

    def __post_init__(self) -> None:
        for f in fields(self):
            object.__setattr__(
                self, f.name, _as_matrix(f.name, getattr(self, f.name), (NUMAXIS, NUMAXIS))
            )

    @classmethod
    def from_noise_densities(
        cls,
        gyro_rw: float,
        gyro_bias_rw: float,
        acc_rw: float,
        acc_bias_rw: float,
        dt: float,
        acc_bias_instability: float = 0.0,
        mag_rw: float = 0.0,
    ) -> "SckfNoiseParams":
        """
        Build isotropic noise matrices from data-sheet noise densities.

        Args:
            gyro_rw: Angular random walk (rad/√s).
            gyro_bias_rw: Gyro bias random walk (rad/s/√s).
            acc_rw: Velocity random walk (m/s/√s).
            acc_bias_rw: Accelerometer bias random walk (m/s²/√s).
            dt: Sampling interval (s) used to turn densities into
                per-sample variances.
            acc_bias_instability: Accelerometer bias instability (m/s²).
            mag_rw: Magnetometer random walk (T/√s).

        Returns:
            SckfNoiseParams with diagonal matrices.
        """
        if dt <= 0:
            raise ValueError(f"dt must be positive, got {dt}")
        I = np.eye(NUMAXIS)
        return cls(
            Rg=I * gyro_rw**2 / dt,
            Qbg=I * gyro_bias_rw**2,
            Qba=I * acc_bias_rw**2,
            Ra=I * acc_rw**2 / dt,
            Rat=I * acc_bias_instability**2,
            Rm=I * mag_rw**2 / dt,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: _to_jsonable(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SckfNoiseParams":
        return cls(**{k: np.asarray(v, dtype=np.float64) for k, v in data.items()})


@dataclass(frozen=True)
class SckfConfig:
    """
    Complete SCKF configuration.

    Attributes:
        P0: Initial 15x15 error-state covariance (positive definite).
        noise: Noise matrices.
        gravity: Local gravity magnitude (m/s²). The navigation-frame
            reference is [0, 0, gravity].
        dip_angle: Magnetic dip angle (rad). The navigation-frame magnetic
            reference is [cos(dip), 0, -sin(dip)].
        adaptive: Adaptive attitude-noise estimator parameters.
    """

    P0: np.ndarray
    noise: SckfNoiseParams
    gravity: float = GRAVITY
    dip_angle: float = 0.0
    adaptive: AdaptiveConfig = field(default_factory=AdaptiveConfig)

    def __post_init__(self) -> None:
        n = SINGLE_STATE_BLOCKS.dof
        P0 = _as_matrix("P0", self.P0, (n, n))
        if np.any(np.linalg.eigvalsh(P0) <= 0):
            raise ValueError("P0 must be positive definite")
        object.__setattr__(self, "P0", P0)
        if self.gravity <= 0:
            raise ValueError(f"gravity must be positive, got {self.gravity}")

    @classmethod
    def from_noise_densities(
        cls,
        P0: np.ndarray,
        gyro_rw: float,
        gyro_bias_rw: float,
        acc_rw: float,
        acc_bias_rw: float,
        dt: float,
        **kwargs,
    ) -> "SckfConfig":
        """Shortcut combining SckfNoiseParams.from_noise_densities with P0.

        Keyword arguments accepted by SckfNoiseParams.from_noise_densities
        (acc_bias_instability, mag_rw) are forwarded to it, everything else
        to the SckfConfig constructor.
        """
        noise_keys = ("acc_bias_instability", "mag_rw")
        noise_kwargs = {k: kwargs.pop(k) for k in noise_keys if k in kwargs}
        noise = SckfNoiseParams.from_noise_densities(
            gyro_rw, gyro_bias_rw, acc_rw, acc_bias_rw, dt, **noise_kwargs
        )
        return cls(P0=P0, noise=noise, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: _to_jsonable(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SckfConfig":
        data = dict(data)
        data["P0"] = np.asarray(data["P0"], dtype=np.float64)
        data["noise"] = SckfNoiseParams.from_dict(data["noise"])
        if "adaptive" in data:
            data["adaptive"] = AdaptiveConfig.from_dict(data["adaptive"])
        return cls(**data)


@dataclass(frozen=True)
class UsckfConfig:
    """
    USCKF numerical settings.

    Attributes:
        mean_tolerance: Convergence threshold on the norm of the mean
            displacement in the iterative manifold mean.
        mean_max_iterations: Iteration cap of the manifold mean. Reaching
            it raises MeanConvergenceError.
    """

    mean_tolerance: float = 1e-6
    mean_max_iterations: int = 10000

    def __post_init__(self) -> None:
        if self.mean_tolerance <= 0:
            raise ValueError(f"mean_tolerance must be positive, got {self.mean_tolerance}")
        if self.mean_max_iterations < 1:
            raise ValueError(
                f"mean_max_iterations must be >= 1, got {self.mean_max_iterations}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsckfConfig":
        return cls(**data)


def save_config(config: Any, path: Union[str, Path]) -> None:
    """Write a configuration dataclass to a JSON file."""
    with open(Path(path), "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)


def load_config(path: Union[str, Path], cls: Type[T]) -> T:
    """
    Read a configuration dataclass from a JSON file.

    Args:
        path: JSON file written by save_config (or by hand).
        cls: Configuration class to build (AdaptiveConfig, SckfConfig, ...).

    Returns:
        Instance of cls.

    Raises:
        FileNotFoundError: If path does not exist.
        ValueError: If the content fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return cls.from_dict(data)
