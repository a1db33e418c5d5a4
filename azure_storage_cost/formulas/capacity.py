from __future__ import annotations

from typing import Dict, List

from ..inputs.types import UniversalCostInputs
from ..permutations.types import FORMULA_CAPACITY, Permutation
from ..pricing import meters
from ..pricing.resolver import ResolvedPrice
from .base import BaseFormula, rate_component
from .types import CostComponent


class CapacityFormula(BaseFormula):
    """Billable GiB x hourly capacity rate x hours in the period."""

    name = FORMULA_CAPACITY
    core_roles = frozenset({meters.ROLE_CAPACITY})

    def core_components(
        self,
        permutation: Permutation,
        inputs: UniversalCostInputs,
        prices: Dict[str, ResolvedPrice],
    ) -> List[CostComponent]:
        return [
            rate_component(
                meters.ROLE_CAPACITY,
                inputs.billable_capacity_gib,
                prices[meters.ROLE_CAPACITY],
                inputs.period_hours,
            )
        ]
