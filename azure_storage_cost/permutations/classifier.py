"""Map a resource configuration to exactly one catalogue permutation.

Pure and deterministic: no I/O beyond the one-time catalogue load.
"""

from __future__ import annotations

from typing import Optional

from ..errors import IncompatibleFlags, UnsupportedConfiguration
from .registry import PermutationRegistry, default_registry, normalize_redundancy
from .types import FAMILIES, Permutation

DEFAULT_REDUNDANCY = "lrs"

_FAMILY_ALIASES = {
    "fileshare": "file_share",
    "azurefiles": "file_share",
    "files": "file_share",
    "nasvolume": "nas_volume",
    "anf": "nas_volume",
    "netapp": "nas_volume",
    "azurenetappfiles": "nas_volume",
    "blockdisk": "block_disk",
    "manageddisk": "block_disk",
    "disk": "block_disk",
}


def normalize_family(family: Optional[str]) -> str:
    token = "".join(ch for ch in (family or "").lower() if ch.isalnum())
    if family in FAMILIES:
        return family
    return _FAMILY_ALIASES.get(token, "")


def classify(
    family: str,
    tier: Optional[str],
    cool_access_enabled: bool = False,
    double_encryption_enabled: bool = False,
    redundancy: Optional[str] = None,
    *,
    registry: Optional[PermutationRegistry] = None,
) -> Permutation:
    """Return the single permutation for this configuration.

    Raises IncompatibleFlags when cool access and double encryption are both
    set, and UnsupportedConfiguration when the tuple matches nothing.
    """
    if cool_access_enabled and double_encryption_enabled:
        raise IncompatibleFlags(
            "Cool access and double encryption cannot be enabled on the same volume"
        )

    reg = registry or default_registry()
    fam = normalize_family(family)
    if not fam or fam not in reg.redundancy_keyed:
        raise UnsupportedConfiguration(f"Unsupported storage family: {family!r}")

    canonical = reg.canonical_tier(fam, tier)
    if canonical is None:
        raise UnsupportedConfiguration(f"Unsupported tier {tier!r} for {fam}")

    red: Optional[str] = None
    if reg.redundancy_keyed[fam]:
        red = normalize_redundancy(redundancy) or DEFAULT_REDUNDANCY

    perm = reg.lookup((fam, canonical, bool(cool_access_enabled), bool(double_encryption_enabled), red))
    if perm is None:
        flags = []
        if cool_access_enabled:
            flags.append("cool access")
        if double_encryption_enabled:
            flags.append("double encryption")
        detail = f" with {' and '.join(flags)}" if flags else ""
        red_detail = f" ({red.upper()})" if red else ""
        raise UnsupportedConfiguration(f"No {fam} permutation for tier {tier!r}{red_detail}{detail}")
    return perm
