"""Evaluate a permutation's formula against normalized inputs.

Evaluation is atomic: every price is looked up first, concurrently, and a
single failure aborts the whole evaluation with FormulaError. Callers never
see a partial breakdown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from ..errors import FormulaError
from ..inputs.types import UniversalCostInputs, missing_fields
from ..permutations.types import Permutation
from ..pricing.resolver import PriceResolver, ResolvedPrice
from ..utils.trace import TraceLogger
from .registry import FormulaRegistry, build_formula_registry
from .types import CostComponent

_LOGGER = logging.getLogger(__name__)

_DEFAULT_REGISTRY: Optional[FormulaRegistry] = None


def _default_registry() -> FormulaRegistry:
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = build_formula_registry()
    return _DEFAULT_REGISTRY


async def evaluate(
    permutation: Permutation,
    inputs: UniversalCostInputs,
    resolver: PriceResolver,
    *,
    registry: Optional[FormulaRegistry] = None,
    trace: Optional[TraceLogger] = None,
) -> List[CostComponent]:
    registry = registry or _default_registry()
    formula = registry.get(permutation)
    if formula is None:
        raise FormulaError(f"No formula '{permutation.formula}' for permutation {permutation.key}")

    missing = [(role, name) for role in sorted(permutation.required_meters) for name in missing_fields(inputs, role)]
    if missing:
        raise FormulaError(
            "Missing inputs: " + ", ".join(f"{name} ({role})" for role, name in missing),
            roles=sorted({role for role, _ in missing}),
        )

    roles = formula.price_roles(permutation, inputs)
    try:
        extra = formula.price_extra(permutation, inputs)
        contexts = {role: permutation.price_context(role, **extra) for role in roles}
    except (KeyError, ValueError) as ex:
        raise FormulaError(f"Cannot build price queries for {permutation.key}: {ex}", roles=roles) from ex

    results = await asyncio.gather(
        *(resolver.get_price(inputs.region, role, contexts[role]) for role in roles),
        return_exceptions=True,
    )

    prices: Dict[str, ResolvedPrice] = {}
    failed: List[str] = []
    first: Optional[BaseException] = None
    for role, result in zip(roles, results):
        if isinstance(result, BaseException):
            failed.append(role)
            first = first or result
            _LOGGER.warning("Price lookup for %s/%s failed: %s", permutation.key, role, result)
        else:
            prices[role] = result
    if failed:
        raise FormulaError(f"Price lookup failed for {', '.join(failed)}: {first}", roles=failed) from first

    components = formula.compute(permutation, inputs, prices)
    if trace is not None:
        trace.log(
            "formula.evaluated",
            {
                "permutation": permutation.key,
                "formula": formula.name,
                "components": [
                    {"type": c.component_type, "role": c.meter_role, "quantity": c.quantity, "cost": c.cost_for_period}
                    for c in components
                ],
            },
            region=inputs.region,
            resource_id=inputs.resource_id,
        )
    return components
