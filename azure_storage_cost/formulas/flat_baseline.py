from __future__ import annotations

from typing import Dict, List

from ..inputs.types import UniversalCostInputs
from ..permutations.types import FORMULA_FLAT_BASELINE, Permutation
from ..pricing import meters
from ..pricing.resolver import ResolvedPrice
from .base import BaseFormula, rate_component
from .cool_split import cool_split_components
from .types import CostComponent


class FlatBaselineFormula(BaseFormula):
    """Capacity plus throughput above a flat included baseline.

    Used by the Flexible service level: the first N MiB/s are free regardless
    of size, anything above is billed per MiB/s-hour. With cool access the
    capacity part is split into hot and cool exactly as CoolSplitFormula does.
    """

    name = FORMULA_FLAT_BASELINE
    core_roles = frozenset(
        {
            meters.ROLE_CAPACITY,
            meters.ROLE_THROUGHPUT,
            meters.ROLE_COOL_CAPACITY,
            meters.ROLE_TIERING,
            meters.ROLE_RETRIEVAL,
        }
    )

    def core_components(
        self,
        permutation: Permutation,
        inputs: UniversalCostInputs,
        prices: Dict[str, ResolvedPrice],
    ) -> List[CostComponent]:
        hours = inputs.period_hours
        if meters.ROLE_COOL_CAPACITY in prices:
            out = cool_split_components(inputs, prices)
        else:
            out = [
                rate_component(
                    meters.ROLE_CAPACITY,
                    inputs.billable_capacity_gib,
                    prices[meters.ROLE_CAPACITY],
                    hours,
                )
            ]

        above = inputs.throughput_above_base_mibps or 0.0
        included = inputs.included_throughput_mibps or 0.0
        out.append(
            rate_component(
                meters.ROLE_THROUGHPUT,
                above,
                prices[meters.ROLE_THROUGHPUT],
                hours,
                description=f"{above:,.2f} MiB/s above {included:g} MiB/s included",
            )
        )
        return out
