from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple

from ..pricing.meters import PriceContext

FILE_SHARE = "file_share"
NAS_VOLUME = "nas_volume"
BLOCK_DISK = "block_disk"

FAMILIES = (FILE_SHARE, NAS_VOLUME, BLOCK_DISK)

# Formula shapes (see formulas/registry.py)
FORMULA_CAPACITY = "capacity"
FORMULA_COOL_SPLIT = "cool_split"
FORMULA_FLAT_BASELINE = "flat_baseline"
FORMULA_FIXED_TIER = "fixed_tier"
FORMULA_PERFORMANCE = "performance"

FORMULAS = (
    FORMULA_CAPACITY,
    FORMULA_COOL_SPLIT,
    FORMULA_FLAT_BASELINE,
    FORMULA_FIXED_TIER,
    FORMULA_PERFORMANCE,
)

GIB_PER_TIB = 1024.0


@dataclass(frozen=True)
class BaselineRule:
    """Performance included for free with the provisioned capacity.

    kind:
      - "none":    nothing included
      - "flat":    ``value`` regardless of capacity
      - "per_tib": ``base + value * capacity_tib``
    """

    kind: str = "none"
    value: float = 0.0
    base: float = 0.0

    def included(self, capacity_gib: Optional[float]) -> float:
        if self.kind == "flat":
            return float(self.value)
        if self.kind == "per_tib":
            tib = max(float(capacity_gib or 0.0), 0.0) / GIB_PER_TIB
            return float(self.base) + tib * float(self.value)
        return 0.0


@dataclass(frozen=True)
class SizeBracket:
    name: str
    max_gib: Optional[float] = None  # None = open-ended top bracket

    def fits(self, capacity_gib: float) -> bool:
        return self.max_gib is None or capacity_gib <= self.max_gib


@dataclass(frozen=True)
class MeterTemplate:
    """Retail query for one meter role; string fields may hold ``{var}`` placeholders."""

    service_name: str
    product_name: str
    sku_name: str
    tier: str = "{tier}"
    redundancy: Optional[str] = "{redundancy}"
    meter_contains: Tuple[str, ...] = ()
    meter_excludes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Permutation:
    """One immutable catalogue entry."""

    family: str
    id: int
    name: str
    tier: str
    redundancy: Optional[str]
    cool_access_enabled: bool
    double_encryption_enabled: bool
    is_provisioned: bool
    formula: str
    required_meters: FrozenSet[str]
    optional_meters: FrozenSet[str] = frozenset()
    included_throughput: BaselineRule = BaselineRule()
    included_iops: BaselineRule = BaselineRule()
    min_capacity_gib: float = 0.0
    brackets: Tuple[SizeBracket, ...] = ()
    description: str = ""
    meters: Dict[str, MeterTemplate] = field(default_factory=dict, compare=False, hash=False, repr=False)
    template_vars: Dict[str, str] = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def key(self) -> str:
        return f"{self.family}:{self.id}"

    @property
    def meter_roles(self) -> FrozenSet[str]:
        return self.required_meters | self.optional_meters

    def bracket_for(self, capacity_gib: float) -> SizeBracket:
        """Smallest size bracket that holds ``capacity_gib``."""
        for bracket in self.brackets:
            if bracket.fits(capacity_gib):
                return bracket
        raise ValueError(f"No size bracket for {capacity_gib} GiB in permutation {self.key}")

    def price_context(self, role: str, **extra: Any) -> PriceContext:
        """Render the meter template for ``role`` into a concrete retail query."""
        template = self.meters.get(role)
        if template is None:
            raise KeyError(f"Permutation {self.key} has no meter for role '{role}'")

        values: Dict[str, Any] = dict(self.template_vars)
        values.update({k: v for k, v in extra.items() if v is not None})

        def _fmt(text: Optional[str]) -> Optional[str]:
            if text is None:
                return None
            try:
                return text.format_map(values)
            except KeyError as ex:
                raise KeyError(f"Meter template for '{role}' in {self.key} needs {ex}") from None

        return PriceContext(
            family=self.family,
            tier=_fmt(template.tier) or "",
            redundancy=_fmt(template.redundancy) or None,
            service_name=_fmt(template.service_name) or "",
            product_name=_fmt(template.product_name) or "",
            sku_name=_fmt(template.sku_name) or "",
            meter_contains=template.meter_contains,
            meter_excludes=template.meter_excludes,
        )
