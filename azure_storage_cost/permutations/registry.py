from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .loader import load_definitions
from .types import Permutation

LookupKey = Tuple[str, str, bool, bool, Optional[str]]

_TOKEN_RE = re.compile(r"[^a-z0-9]")

# Read-access geo variants bill like their base redundancy.
_REDUNDANCY_ALIASES = {
    "ragrs": "grs",
    "ragzrs": "gzrs",
}


def normalize_token(value: Optional[str]) -> str:
    """Normalize tier tokens for comparison (e.g. "Transaction Optimized" -> "transactionoptimized")."""
    return _TOKEN_RE.sub("", (value or "").lower())


def normalize_redundancy(value: Optional[str]) -> Optional[str]:
    """'Standard_LRS' -> 'lrs', 'RA-GRS' -> 'grs'; empty -> None."""
    raw = (value or "").strip()
    if not raw:
        return None
    if "_" in raw:
        raw = raw.rsplit("_", 1)[-1]
    token = normalize_token(raw)
    return _REDUNDANCY_ALIASES.get(token, token) or None


@dataclass
class PermutationRegistry:
    """Immutable-by-convention lookup table for the permutation catalogue."""

    by_key: Dict[LookupKey, Permutation] = field(default_factory=dict)
    by_id: Dict[Tuple[str, int], Permutation] = field(default_factory=dict)
    tier_aliases: Dict[Tuple[str, str], str] = field(default_factory=dict)
    redundancy_keyed: Dict[str, bool] = field(default_factory=dict)

    def register(self, perm: Permutation, aliases: List[str], keyed_on_redundancy: bool) -> None:
        tier = normalize_token(perm.tier)
        redundancy = normalize_redundancy(perm.redundancy) if keyed_on_redundancy else None
        key = (perm.family, tier, perm.cool_access_enabled, perm.double_encryption_enabled, redundancy)
        if key in self.by_key:
            raise ValueError(
                f"Permutations {self.by_key[key].key} and {perm.key} share the classification tuple {key}"
            )
        if (perm.family, perm.id) in self.by_id:
            raise ValueError(f"Duplicate permutation id {perm.key}")
        self.by_key[key] = perm
        self.by_id[(perm.family, perm.id)] = perm
        self.redundancy_keyed[perm.family] = keyed_on_redundancy

        self.tier_aliases[(perm.family, tier)] = tier
        for alias in aliases:
            alias_token = normalize_token(alias)
            existing = self.tier_aliases.get((perm.family, alias_token))
            if existing is not None and existing != tier:
                raise ValueError(f"Tier alias '{alias}' is ambiguous in {perm.family}")
            self.tier_aliases[(perm.family, alias_token)] = tier

    def canonical_tier(self, family: str, tier: Optional[str]) -> Optional[str]:
        return self.tier_aliases.get((family, normalize_token(tier)))

    def lookup(self, key: LookupKey) -> Optional[Permutation]:
        return self.by_key.get(key)

    def get(self, family: str, perm_id: int) -> Optional[Permutation]:
        return self.by_id.get((family, int(perm_id)))

    def families(self) -> List[str]:
        return sorted(self.redundancy_keyed)

    def all(self, family: Optional[str] = None) -> List[Permutation]:
        perms = [p for (fam, _), p in self.by_id.items() if family is None or fam == family]
        return sorted(perms, key=lambda p: (p.family, p.id))


def build_registry(definitions_dir: Optional[Path] = None) -> PermutationRegistry:
    reg = PermutationRegistry()
    for _family, keyed_on_redundancy, entries in load_definitions(definitions_dir):
        for perm, aliases in entries:
            reg.register(perm, aliases, keyed_on_redundancy)
    return reg


_DEFAULT_REGISTRY: Optional[PermutationRegistry] = None


def default_registry() -> PermutationRegistry:
    """Catalogue shipped with the package, built once per process."""
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = build_registry()
    return _DEFAULT_REGISTRY
