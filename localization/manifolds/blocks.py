"""
Named block layout of flat state vectors and covariance matrices.

Every filter state is flattened into a vector whose components are grouped
into named blocks. A BlockMap records the (offset, size) of each block so
that covariance sub-matrices can be read and written by name:

    >>> blocks = SINGLE_STATE_BLOCKS
    >>> P = np.eye(blocks.dof)
    >>> P_att = subblock(P, blocks, ORIENTATION)            # 3 x 3
    >>> set_subblock(P, blocks, VELOCITY, ORIENTATION, np.zeros((3, 3)))

Single-state layout (15 DOF):
    POSITION(0:3)  VELOCITY(3:6)  ORIENTATION(6:9)  GYRO_BIAS(9:12)  ACC_BIAS(12:15)

Augmented-state layout:
    STATEK  STATEK_L  STATEK_I  FEATURES_K  FEATURES_K_L  FEATURES_K_I
where the feature blocks are sized by the feature vectors currently carried.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence, Tuple

import numpy as np

POSITION = "pos"
VELOCITY = "vel"
ORIENTATION = "orient"
GYRO_BIAS = "gbias"
ACC_BIAS = "abias"

STATEK = "statek"
STATEK_L = "statek_l"
STATEK_I = "statek_i"
FEATURES_K = "features_k"
FEATURES_K_L = "features_k_l"
FEATURES_K_I = "features_k_i"

EPOCHS = (STATEK, STATEK_L, STATEK_I)
FEATURES = (FEATURES_K, FEATURES_K_L, FEATURES_K_I)


@dataclass(frozen=True)
class Block:
    """A contiguous run of state components."""

    name: str
    offset: int
    size: int

    def __post_init__(self):
        if self.offset < 0:
            raise ValueError(f"Block '{self.name}' offset must be >= 0, got {self.offset}")
        if self.size < 0:
            raise ValueError(f"Block '{self.name}' size must be >= 0, got {self.size}")

    @property
    def slice(self) -> slice:
        return slice(self.offset, self.offset + self.size)


class BlockMap:
    """Ordered mapping from block name to Block.

    Blocks are laid out back to back in the order given.

    Args:
        layout: Sequence of (name, size) pairs.
    """

    def __init__(self, layout: Sequence[Tuple[str, int]]):
        self._blocks: Dict[str, Block] = {}
        offset = 0
        for name, size in layout:
            if name in self._blocks:
                raise ValueError(f"Duplicate block name '{name}'")
            self._blocks[name] = Block(name, offset, int(size))
            offset += int(size)
        self.dof = offset

    def __getitem__(self, name: str) -> Block:
        try:
            return self._blocks[name]
        except KeyError:
            raise KeyError(
                f"Unknown block '{name}', expected one of {list(self._blocks)}"
            ) from None

    def __contains__(self, name: str) -> bool:
        return name in self._blocks

    def __iter__(self) -> Iterator[Block]:
        return iter(self._blocks.values())

    def __len__(self) -> int:
        return len(self._blocks)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._blocks)

    def slice(self, name: str) -> slice:
        return self[name].slice

    def __repr__(self) -> str:
        inner = ", ".join(f"{b.name}[{b.offset}:{b.offset + b.size}]" for b in self)
        return f"BlockMap({inner})"


SINGLE_STATE_BLOCKS = BlockMap(
    [
        (POSITION, 3),
        (VELOCITY, 3),
        (ORIENTATION, 3),
        (GYRO_BIAS, 3),
        (ACC_BIAS, 3),
    ]
)


def augmented_block_map(
    single_dof: int = SINGLE_STATE_BLOCKS.dof,
    feature_sizes: Sequence[int] = (0, 0, 0),
) -> BlockMap:
    """Layout of an augmented state with three epoch clones and feature blocks.

    Args:
        single_dof: DOF of one epoch slot.
        feature_sizes: Sizes of the features_k, features_k_l and features_k_i
            blocks.

    Returns:
        BlockMap for the augmented state.
    """
    if len(feature_sizes) != len(FEATURES):
        raise ValueError(
            f"Expected {len(FEATURES)} feature sizes, got {len(feature_sizes)}"
        )
    layout = [(name, single_dof) for name in EPOCHS]
    layout += list(zip(FEATURES, feature_sizes))
    return BlockMap(layout)


def subblock(
    P: np.ndarray,
    blocks: BlockMap,
    row: str,
    col: Optional[str] = None,
) -> np.ndarray:
    """Copy of the (row, col) sub-matrix of P; col defaults to row."""
    col = row if col is None else col
    return P[blocks.slice(row), blocks.slice(col)].copy()


def set_subblock(
    P: np.ndarray,
    blocks: BlockMap,
    row: str,
    col: str,
    value: np.ndarray,
) -> None:
    """Write value into the (row, col) sub-matrix of P in place."""
    target = P[blocks.slice(row), blocks.slice(col)]
    value = np.asarray(value)
    if value.shape != target.shape:
        raise ValueError(
            f"Block ({row}, {col}) has shape {target.shape}, got {value.shape}"
        )
    P[blocks.slice(row), blocks.slice(col)] = value


def set_diagonal(P: np.ndarray, blocks: BlockMap, name: str, value: float) -> None:
    """Set the (name, name) block of P to value * I in place."""
    size = blocks[name].size
    set_subblock(P, blocks, name, name, value * np.eye(size))
