"""Manifold states for the unscented filters.

Orientation lives on SO(3), everything else in Euclidean space. The block
map names the components of the flattened tangent vectors and the
matching covariance sub-blocks.
"""

from localization.manifolds.blocks import (
    ACC_BIAS,
    EPOCHS,
    FEATURES,
    FEATURES_K,
    FEATURES_K_I,
    FEATURES_K_L,
    GYRO_BIAS,
    ORIENTATION,
    POSITION,
    SINGLE_STATE_BLOCKS,
    STATEK,
    STATEK_I,
    STATEK_L,
    VELOCITY,
    Block,
    BlockMap,
    augmented_block_map,
    set_diagonal,
    set_subblock,
    subblock,
)
from localization.manifolds.so3 import SO3
from localization.manifolds.states import AugmentedState, SingleState

__all__ = [
    "ACC_BIAS",
    "EPOCHS",
    "FEATURES",
    "FEATURES_K",
    "FEATURES_K_I",
    "FEATURES_K_L",
    "GYRO_BIAS",
    "ORIENTATION",
    "POSITION",
    "SINGLE_STATE_BLOCKS",
    "STATEK",
    "STATEK_I",
    "STATEK_L",
    "VELOCITY",
    "Block",
    "BlockMap",
    "augmented_block_map",
    "set_diagonal",
    "set_subblock",
    "subblock",
    "SO3",
    "AugmentedState",
    "SingleState",
]
