from __future__ import annotations

from typing import Dict, List

from ..inputs.types import UniversalCostInputs
from ..permutations.types import FORMULA_PERFORMANCE, Permutation
from ..pricing import meters
from ..pricing.resolver import ResolvedPrice
from .base import BaseFormula, rate_component
from .types import CostComponent


class PerformanceFormula(BaseFormula):
    """Provisioned capacity, IOPS and throughput billed independently.

    Only IOPS and throughput above what the capacity includes are charged.
    """

    name = FORMULA_PERFORMANCE
    core_roles = frozenset({meters.ROLE_CAPACITY, meters.ROLE_IOPS, meters.ROLE_THROUGHPUT})

    def core_components(
        self,
        permutation: Permutation,
        inputs: UniversalCostInputs,
        prices: Dict[str, ResolvedPrice],
    ) -> List[CostComponent]:
        hours = inputs.period_hours
        out = [
            rate_component(
                meters.ROLE_CAPACITY,
                inputs.billable_capacity_gib,
                prices[meters.ROLE_CAPACITY],
                hours,
            )
        ]
        if meters.ROLE_IOPS in prices:
            included = inputs.included_iops or 0.0
            above = max(0.0, (inputs.iops or 0.0) - included)
            out.append(
                rate_component(
                    meters.ROLE_IOPS,
                    above,
                    prices[meters.ROLE_IOPS],
                    hours,
                    description=f"{above:,.0f} IOPS above {included:g} included",
                )
            )
        if meters.ROLE_THROUGHPUT in prices:
            included = inputs.included_throughput_mibps or 0.0
            above = inputs.throughput_above_base_mibps
            if above is None:
                above = max(0.0, (inputs.throughput_mibps or 0.0) - included)
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
