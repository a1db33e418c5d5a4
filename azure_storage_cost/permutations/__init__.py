"""Static permutation catalogue and classifier."""

from .classifier import classify, normalize_family
from .registry import PermutationRegistry, build_registry, default_registry
from .types import (
    BLOCK_DISK,
    FAMILIES,
    FILE_SHARE,
    NAS_VOLUME,
    BaselineRule,
    MeterTemplate,
    Permutation,
    SizeBracket,
)

__all__ = [
    "BLOCK_DISK",
    "FAMILIES",
    "FILE_SHARE",
    "NAS_VOLUME",
    "BaselineRule",
    "MeterTemplate",
    "Permutation",
    "PermutationRegistry",
    "SizeBracket",
    "build_registry",
    "classify",
    "default_registry",
    "normalize_family",
]
