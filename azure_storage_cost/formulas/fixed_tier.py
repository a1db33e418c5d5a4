from __future__ import annotations

from typing import Any, Dict, List

from ..inputs.types import UniversalCostInputs
from ..permutations.types import FORMULA_FIXED_TIER, Permutation
from ..pricing import meters
from ..pricing.resolver import ResolvedPrice
from .base import BaseFormula, rate_component
from .types import CostComponent


class FixedTierFormula(BaseFormula):
    """Managed disks sold in size brackets: one flat monthly price per disk.

    The provisioned size picks the smallest bracket that fits; the bracket name
    becomes the tier of the capacity meter (e.g. P10).
    """

    name = FORMULA_FIXED_TIER
    core_roles = frozenset({meters.ROLE_CAPACITY})

    def price_extra(self, permutation: Permutation, inputs: UniversalCostInputs) -> Dict[str, Any]:
        bracket = permutation.bracket_for(inputs.billable_capacity_gib)
        return {"bracket": bracket.name}

    def core_components(
        self,
        permutation: Permutation,
        inputs: UniversalCostInputs,
        prices: Dict[str, ResolvedPrice],
    ) -> List[CostComponent]:
        bracket = permutation.bracket_for(inputs.billable_capacity_gib)
        size = f"up to {bracket.max_gib:g} GiB" if bracket.max_gib is not None else "open-ended"
        return [
            rate_component(
                meters.ROLE_CAPACITY,
                1,
                prices[meters.ROLE_CAPACITY],
                inputs.period_hours,
                description=f"1 x {bracket.name} disk ({size}) for {inputs.billable_capacity_gib:g} GiB",
            )
        ]
