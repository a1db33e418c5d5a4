from __future__ import annotations

from typing import Dict, List

from ..inputs.types import UniversalCostInputs
from ..permutations.types import FORMULA_COOL_SPLIT, Permutation
from ..pricing import meters
from ..pricing.resolver import ResolvedPrice
from .base import BaseFormula, one_time_component, rate_component
from .types import CostComponent


def cool_split_components(inputs: UniversalCostInputs, prices: Dict[str, ResolvedPrice]) -> List[CostComponent]:
    """Hot and cool capacity at their own rates, plus tiering and retrieval transfer.

    The hot part is billed against the capacity meter; tiering and retrieval
    are per-GiB charges for data moved during the period.
    """
    hours = inputs.period_hours
    out = [
        rate_component(
            meters.ROLE_CAPACITY,
            inputs.hot_gib,
            prices[meters.ROLE_CAPACITY],
            hours,
            description=f"hot tier {inputs.hot_gib:,.2f} GiB",
        ),
        rate_component(
            meters.ROLE_COOL_CAPACITY,
            inputs.cool_gib,
            prices[meters.ROLE_COOL_CAPACITY],
            hours,
            description=f"cool tier {inputs.cool_gib:,.2f} GiB",
        ),
    ]
    for role, quantity in (
        (meters.ROLE_TIERING, inputs.tiered_to_cool_gib),
        (meters.ROLE_RETRIEVAL, inputs.retrieved_from_cool_gib),
    ):
        if role in prices and quantity is not None:
            out.append(one_time_component(role, quantity, prices[role]))
    return out


class CoolSplitFormula(BaseFormula):
    """Cool-access capacity pools: hot/cool split plus data movement."""

    name = FORMULA_COOL_SPLIT
    core_roles = frozenset(
        {meters.ROLE_CAPACITY, meters.ROLE_COOL_CAPACITY, meters.ROLE_TIERING, meters.ROLE_RETRIEVAL}
    )

    def core_components(
        self,
        permutation: Permutation,
        inputs: UniversalCostInputs,
        prices: Dict[str, ResolvedPrice],
    ) -> List[CostComponent]:
        return cool_split_components(inputs, prices)
