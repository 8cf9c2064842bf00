"""
Manifold-valued filter states.

SingleState is the 15-DOF navigation state of one epoch:

    pos ∈ R³, vel ∈ R³, orient ∈ SO(3), gbias ∈ R³, abias ∈ R³

AugmentedState carries three epoch clones of a SingleState (statek,
statek_l, statek_i) plus optional feature vectors attached to each epoch.

Both types implement the capability set the unscented filter relies on:

    dof                 fixed dimension of the tangent space
    boxplus(delta)      displaced copy, vector components add and the
                        orientation is composed on the right
    boxminus(other)     tangent-space difference (self ⊟ other)
    to_vector()/from_vector()
                        flat serialisation, either in rotation-vector
                        coordinates or in error-quaternion coordinates

States are mutable value objects. copy() returns a deep copy and the
manifold operations always return new objects.
"""

from typing import Optional

import numpy as np
from numpy.typing import NDArray

from localization.manifolds import blocks as B
from localization.manifolds.so3 import SO3


def _vec3(v: Optional[NDArray[np.float64]]) -> NDArray[np.float64]:
    if v is None:
        return np.zeros(3)
    v = np.asarray(v, dtype=np.float64).reshape(-1)
    if v.shape != (3,):
        raise ValueError(f"Expected 3-element vector, got shape {v.shape}")
    return v.copy()


class SingleState:
    """Navigation state of a single epoch."""

    DOF = B.SINGLE_STATE_BLOCKS.dof
    blocks = B.SINGLE_STATE_BLOCKS

    def __init__(
        self,
        pos: Optional[NDArray[np.float64]] = None,
        vel: Optional[NDArray[np.float64]] = None,
        orient: Optional[SO3] = None,
        gbias: Optional[NDArray[np.float64]] = None,
        abias: Optional[NDArray[np.float64]] = None,
    ):
        self.pos = _vec3(pos)
        self.vel = _vec3(vel)
        if orient is None:
            orient = SO3.identity()
        elif not isinstance(orient, SO3):
            orient = SO3(orient)
        self.orient = orient.copy()
        self.gbias = _vec3(gbias)
        self.abias = _vec3(abias)

    @property
    def dof(self) -> int:
        return self.DOF

    def boxplus(self, delta: NDArray[np.float64]) -> "SingleState":
        delta = self._check_vector(delta)
        s = self.blocks
        return SingleState(
            pos=self.pos + delta[s.slice(B.POSITION)],
            vel=self.vel + delta[s.slice(B.VELOCITY)],
            orient=self.orient.boxplus(delta[s.slice(B.ORIENTATION)]),
            gbias=self.gbias + delta[s.slice(B.GYRO_BIAS)],
            abias=self.abias + delta[s.slice(B.ACC_BIAS)],
        )

    def boxminus(self, other: "SingleState") -> NDArray[np.float64]:
        return np.concatenate(
            (
                self.pos - other.pos,
                self.vel - other.vel,
                self.orient.boxminus(other.orient),
                self.gbias - other.gbias,
                self.abias - other.abias,
            )
        )

    def to_vector(self, error_quaternion: bool = False) -> NDArray[np.float64]:
        """Flatten the state.

        Args:
            error_quaternion: If True the orientation is written as the
                vector part of its quaternion, otherwise as a rotation vector.
        """
        att = self.orient.error_quaternion() if error_quaternion else self.orient.log()
        return np.concatenate((self.pos, self.vel, att, self.gbias, self.abias))

    @classmethod
    def from_vector(
        cls, vec: NDArray[np.float64], error_quaternion: bool = False
    ) -> "SingleState":
        """Inverse of to_vector."""
        vec = cls._check_vector(vec)
        s = cls.blocks
        att = vec[s.slice(B.ORIENTATION)]
        orient = SO3.from_error_quaternion(att) if error_quaternion else SO3.exp(att)
        return cls(
            pos=vec[s.slice(B.POSITION)],
            vel=vec[s.slice(B.VELOCITY)],
            orient=orient,
            gbias=vec[s.slice(B.GYRO_BIAS)],
            abias=vec[s.slice(B.ACC_BIAS)],
        )

    def set_zero(self) -> None:
        """Zero the vector components and reset the orientation to identity."""
        self.pos = np.zeros(3)
        self.vel = np.zeros(3)
        self.orient = SO3.identity()
        self.gbias = np.zeros(3)
        self.abias = np.zeros(3)

    def copy(self) -> "SingleState":
        return SingleState(self.pos, self.vel, self.orient, self.gbias, self.abias)

    @classmethod
    def _check_vector(cls, vec: NDArray[np.float64]) -> NDArray[np.float64]:
        vec = np.asarray(vec, dtype=np.float64).reshape(-1)
        if vec.shape != (cls.DOF,):
            raise ValueError(f"Expected {cls.DOF}-element vector, got shape {vec.shape}")
        return vec

    def __eq__(self, other) -> bool:
        if not isinstance(other, SingleState):
            return NotImplemented
        return (
            np.array_equal(self.pos, other.pos)
            and np.array_equal(self.vel, other.vel)
            and self.orient == other.orient
            and np.array_equal(self.gbias, other.gbias)
            and np.array_equal(self.abias, other.abias)
        )

    def __repr__(self) -> str:
        return (
            f"SingleState(pos={self.pos}, vel={self.vel}, orient={self.orient}, "
            f"gbias={self.gbias}, abias={self.abias})"
        )


class AugmentedState:
    """Three cloned epochs of a SingleState plus per-epoch feature vectors.

    The active epoch is statek_i; statek_l and statek hold the clones taken
    at the two previous epoch boundaries. Feature vectors are plain
    Euclidean blocks of any size (empty by default).
    """

    def __init__(
        self,
        statek: Optional[SingleState] = None,
        statek_l: Optional[SingleState] = None,
        statek_i: Optional[SingleState] = None,
        features_k: Optional[NDArray[np.float64]] = None,
        features_k_l: Optional[NDArray[np.float64]] = None,
        features_k_i: Optional[NDArray[np.float64]] = None,
    ):
        self.statek = statek.copy() if statek is not None else SingleState()
        self.statek_l = statek_l.copy() if statek_l is not None else SingleState()
        self.statek_i = statek_i.copy() if statek_i is not None else SingleState()
        self.features_k = self._features(features_k)
        self.features_k_l = self._features(features_k_l)
        self.features_k_i = self._features(features_k_i)

    @staticmethod
    def _features(f: Optional[NDArray[np.float64]]) -> NDArray[np.float64]:
        if f is None:
            return np.zeros(0)
        return np.asarray(f, dtype=np.float64).reshape(-1).copy()

    @property
    def feature_sizes(self) -> tuple:
        return (self.features_k.size, self.features_k_l.size, self.features_k_i.size)

    @property
    def blocks(self) -> B.BlockMap:
        return B.augmented_block_map(SingleState.DOF, self.feature_sizes)

    @property
    def dof(self) -> int:
        return 3 * SingleState.DOF + sum(self.feature_sizes)

    def epochs(self):
        return (self.statek, self.statek_l, self.statek_i)

    def boxplus(self, delta: NDArray[np.float64]) -> "AugmentedState":
        delta = self._check_vector(delta)
        s = self.blocks
        return AugmentedState(
            statek=self.statek.boxplus(delta[s.slice(B.STATEK)]),
            statek_l=self.statek_l.boxplus(delta[s.slice(B.STATEK_L)]),
            statek_i=self.statek_i.boxplus(delta[s.slice(B.STATEK_I)]),
            features_k=self.features_k + delta[s.slice(B.FEATURES_K)],
            features_k_l=self.features_k_l + delta[s.slice(B.FEATURES_K_L)],
            features_k_i=self.features_k_i + delta[s.slice(B.FEATURES_K_I)],
        )

    def boxminus(self, other: "AugmentedState") -> NDArray[np.float64]:
        if other.feature_sizes != self.feature_sizes:
            raise ValueError(
                f"Feature sizes differ: {self.feature_sizes} vs {other.feature_sizes}"
            )
        return np.concatenate(
            (
                self.statek.boxminus(other.statek),
                self.statek_l.boxminus(other.statek_l),
                self.statek_i.boxminus(other.statek_i),
                self.features_k - other.features_k,
                self.features_k_l - other.features_k_l,
                self.features_k_i - other.features_k_i,
            )
        )

    def to_vector(self, error_quaternion: bool = False) -> NDArray[np.float64]:
        return np.concatenate(
            [e.to_vector(error_quaternion) for e in self.epochs()]
            + [self.features_k, self.features_k_l, self.features_k_i]
        )

    def set_vector(self, vec: NDArray[np.float64], error_quaternion: bool = False) -> None:
        """Overwrite the state in place from a flat vector of the current layout."""
        vec = self._check_vector(vec)
        s = self.blocks
        self.statek = SingleState.from_vector(vec[s.slice(B.STATEK)], error_quaternion)
        self.statek_l = SingleState.from_vector(vec[s.slice(B.STATEK_L)], error_quaternion)
        self.statek_i = SingleState.from_vector(vec[s.slice(B.STATEK_I)], error_quaternion)
        self.features_k = vec[s.slice(B.FEATURES_K)].copy()
        self.features_k_l = vec[s.slice(B.FEATURES_K_L)].copy()
        self.features_k_i = vec[s.slice(B.FEATURES_K_I)].copy()

    @classmethod
    def from_vector(
        cls,
        vec: NDArray[np.float64],
        feature_sizes=(0, 0, 0),
        error_quaternion: bool = False,
    ) -> "AugmentedState":
        state = cls(
            features_k=np.zeros(feature_sizes[0]),
            features_k_l=np.zeros(feature_sizes[1]),
            features_k_i=np.zeros(feature_sizes[2]),
        )
        state.set_vector(vec, error_quaternion)
        return state

    def copy(self) -> "AugmentedState":
        return AugmentedState(
            self.statek,
            self.statek_l,
            self.statek_i,
            self.features_k,
            self.features_k_l,
            self.features_k_i,
        )

    def _check_vector(self, vec: NDArray[np.float64]) -> NDArray[np.float64]:
        vec = np.asarray(vec, dtype=np.float64).reshape(-1)
        if vec.shape != (self.dof,):
            raise ValueError(f"Expected {self.dof}-element vector, got shape {vec.shape}")
        return vec

    def __eq__(self, other) -> bool:
        if not isinstance(other, AugmentedState):
            return NotImplemented
        return (
            self.statek == other.statek
            and self.statek_l == other.statek_l
            and self.statek_i == other.statek_i
            and np.array_equal(self.features_k, other.features_k)
            and np.array_equal(self.features_k_l, other.features_k_l)
            and np.array_equal(self.features_k_i, other.features_k_i)
        )

    def __repr__(self) -> str:
        return (
            f"AugmentedState(dof={self.dof}, statek={self.statek!r}, "
            f"statek_l={self.statek_l!r}, statek_i={self.statek_i!r}, "
            f"feature_sizes={self.feature_sizes})"
        )
