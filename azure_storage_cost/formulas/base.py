from __future__ import annotations

from typing import Any, Dict, List, Protocol

from ..inputs.types import UniversalCostInputs, missing_fields
from ..permutations.types import Permutation
from ..pricing import meters
from ..pricing.resolver import ResolvedPrice
from ..pricing.units import hourly_rate, per_unit_price
from .types import CostComponent, component_type_for

# Optional add-ons billed per unit of quantity (not scaled by the period).
ONE_TIME_ROLES = frozenset(
    {
        meters.ROLE_TIERING,
        meters.ROLE_RETRIEVAL,
        meters.ROLE_EGRESS,
        meters.ROLE_TRANSACTIONS,
        meters.ROLE_TRANSACTIONS_READ,
        meters.ROLE_TRANSACTIONS_WRITE,
        meters.ROLE_TRANSACTIONS_LIST,
    }
)

# Optional add-on role -> inputs field holding its quantity.
ADDON_QUANTITY_FIELDS = {
    meters.ROLE_TRANSACTIONS: "transactions",
    meters.ROLE_TRANSACTIONS_READ: "read_transactions",
    meters.ROLE_TRANSACTIONS_WRITE: "write_transactions",
    meters.ROLE_TRANSACTIONS_LIST: "list_transactions",
    meters.ROLE_RETRIEVAL: "retrieved_from_cool_gib",
    meters.ROLE_EGRESS: "egress_gib",
    meters.ROLE_SNAPSHOT: "snapshot_gib",
    meters.ROLE_BACKUP: "backup_gib",
}


class Formula(Protocol):
    """One fixed cost formula shape."""

    name: str

    def price_roles(self, permutation: Permutation, inputs: UniversalCostInputs) -> List[str]: ...

    def price_extra(self, permutation: Permutation, inputs: UniversalCostInputs) -> Dict[str, Any]: ...

    def compute(
        self,
        permutation: Permutation,
        inputs: UniversalCostInputs,
        prices: Dict[str, ResolvedPrice],
    ) -> List[CostComponent]: ...


class BaseFormula:
    """Shared helpers: role selection, rate/one-time components, optional add-ons."""

    name: str = "base"

    # roles this formula prices itself; everything else optional is an add-on
    core_roles: frozenset = frozenset()

    def price_roles(self, permutation: Permutation, inputs: UniversalCostInputs) -> List[str]:
        roles = set(permutation.required_meters)
        for role in permutation.optional_meters:
            if not missing_fields(inputs, role):
                roles.add(role)
        return sorted(roles)

    def price_extra(self, permutation: Permutation, inputs: UniversalCostInputs) -> Dict[str, Any]:
        return {}

    def compute(
        self,
        permutation: Permutation,
        inputs: UniversalCostInputs,
        prices: Dict[str, ResolvedPrice],
    ) -> List[CostComponent]:
        components = self.core_components(permutation, inputs, prices)
        components.extend(self.addon_components(permutation, inputs, prices))
        return components

    def core_components(
        self,
        permutation: Permutation,
        inputs: UniversalCostInputs,
        prices: Dict[str, ResolvedPrice],
    ) -> List[CostComponent]:
        raise NotImplementedError

    def addon_components(
        self,
        permutation: Permutation,
        inputs: UniversalCostInputs,
        prices: Dict[str, ResolvedPrice],
    ) -> List[CostComponent]:
        out: List[CostComponent] = []
        for role in sorted(prices):
            if role in self.core_roles or role not in ADDON_QUANTITY_FIELDS:
                continue
            quantity = getattr(inputs, ADDON_QUANTITY_FIELDS[role])
            if quantity is None:
                continue
            if role in ONE_TIME_ROLES:
                out.append(one_time_component(role, quantity, prices[role]))
            else:
                out.append(rate_component(role, quantity, prices[role], inputs.period_hours))
        return out


def rate_component(
    role: str,
    quantity: float,
    price: ResolvedPrice,
    period_hours: float,
    *,
    component_type: str = "",
    description: str = "",
) -> CostComponent:
    """quantity x hourly rate x hours in the billing period."""
    rate = hourly_rate(price.unit_price, price.unit_of_measure)
    return CostComponent(
        component_type=component_type or component_type_for(role),
        meter_role=role,
        quantity=float(quantity),
        unit_price=price.unit_price,
        unit_of_measure=price.unit_of_measure,
        cost_for_period=float(quantity) * rate * float(period_hours),
        stale=price.stale,
        meter_key=price.meter_key,
        description=description or f"{quantity:,.2f} x {price.unit_price:g} per {price.unit_of_measure} over {period_hours:g} h",
    )


def one_time_component(
    role: str,
    quantity: float,
    price: ResolvedPrice,
    *,
    description: str = "",
) -> CostComponent:
    """quantity x per-unit price; not scaled by the billing period."""
    unit = per_unit_price(price.unit_price, price.unit_of_measure)
    return CostComponent(
        component_type=component_type_for(role),
        meter_role=role,
        quantity=float(quantity),
        unit_price=price.unit_price,
        unit_of_measure=price.unit_of_measure,
        cost_for_period=float(quantity) * unit,
        stale=price.stale,
        meter_key=price.meter_key,
        description=description or f"{quantity:,.2f} x {price.unit_price:g} per {price.unit_of_measure}",
    )
