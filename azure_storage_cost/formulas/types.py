from __future__ import annotations

from dataclasses import dataclass

from ..pricing import meters

# Component types as they appear in breakdowns.
CAPACITY = "capacity"
COOL_CAPACITY = "cool_capacity"
THROUGHPUT = "throughput"
IOPS = "iops"
TIERING = "tiering"
RETRIEVAL = "retrieval"
TRANSACTIONS = "transactions"
EGRESS = "egress"
SNAPSHOT = "snapshot"
BACKUP = "backup"

COMPONENT_TYPES = (
    CAPACITY,
    COOL_CAPACITY,
    THROUGHPUT,
    IOPS,
    TIERING,
    RETRIEVAL,
    TRANSACTIONS,
    EGRESS,
    SNAPSHOT,
    BACKUP,
)

_ROLE_COMPONENT = {
    meters.ROLE_TRANSACTIONS_READ: TRANSACTIONS,
    meters.ROLE_TRANSACTIONS_WRITE: TRANSACTIONS,
    meters.ROLE_TRANSACTIONS_LIST: TRANSACTIONS,
}


def component_type_for(role: str) -> str:
    return _ROLE_COMPONENT.get(role, role)


@dataclass(frozen=True)
class CostComponent:
    """One priced line of an estimate; immutable once created."""

    component_type: str
    meter_role: str
    quantity: float
    unit_price: float
    unit_of_measure: str
    cost_for_period: float
    is_estimated: bool = True
    stale: bool = False
    meter_key: str = ""
    description: str = ""
