from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from ..config import DEFAULT_COOL_DATA_PERCENT, DEFAULT_COOL_RETRIEVAL_PERCENT, DEFAULT_PERIOD_DAYS
from ..pricing import meters

BYTES_PER_GIB = 1024 ** 3


def bytes_to_gib(value: Optional[float]) -> Optional[float]:
    """Exact binary conversion; the one divisor used for every family."""
    if value is None:
        return None
    return float(value) / BYTES_PER_GIB


@dataclass(frozen=True)
class InputIssue:
    key: str
    issue: str  # "missing" | "invalid" | "minimum" | "conflict"
    message: str


@dataclass(frozen=True)
class CoolDataAssumptions:
    """Cool-tier split used when a cool-access volume has no cool metrics."""

    cool_data_percent: float = DEFAULT_COOL_DATA_PERCENT
    retrieval_percent: float = DEFAULT_COOL_RETRIEVAL_PERCENT

    def __post_init__(self) -> None:
        for name in ("cool_data_percent", "retrieval_percent"):
            value = getattr(self, name)
            if value is None or not 0.0 <= float(value) <= 100.0:
                raise ValueError(f"{name} must be between 0 and 100, got {value!r}")


@dataclass(frozen=True)
class UniversalCostInputs:
    """Canonical per-resource record shared by every storage family.

    Fields a permutation does not use stay None; None means "not known", never 0.
    """

    # identity
    resource_id: str
    resource_name: str
    resource_type: str
    region: str
    family: str
    permutation_id: int
    cool_access_enabled: bool = False
    double_encryption_enabled: bool = False

    # capacity (GiB); provisioned is authoritative when is_provisioned
    is_provisioned: bool = False
    provisioned_gib: Optional[float] = None
    consumed_gib: Optional[float] = None

    # cool tier (GiB)
    hot_gib: Optional[float] = None
    cool_gib: Optional[float] = None
    tiered_to_cool_gib: Optional[float] = None
    retrieved_from_cool_gib: Optional[float] = None

    # performance
    iops: Optional[float] = None
    throughput_mibps: Optional[float] = None
    included_iops: Optional[float] = None
    included_throughput_mibps: Optional[float] = None
    throughput_above_base_mibps: Optional[float] = None

    # transactions (counts over the billing period)
    read_transactions: Optional[float] = None
    write_transactions: Optional[float] = None
    list_transactions: Optional[float] = None
    transactions: Optional[float] = None

    # other (GiB)
    egress_gib: Optional[float] = None
    snapshot_gib: Optional[float] = None
    backup_gib: Optional[float] = None

    period_hours: float = DEFAULT_PERIOD_DAYS * 24.0

    # provenance
    used_cool_assumptions: bool = False
    metrics_fallback: bool = False

    @property
    def billable_capacity_gib(self) -> Optional[float]:
        return self.provisioned_gib if self.is_provisioned else self.consumed_gib

    @property
    def period_days(self) -> float:
        return self.period_hours / 24.0


# Inputs each meter role consumes; "capacity" resolves to billable_capacity_gib.
ROLE_INPUT_FIELDS = {
    meters.ROLE_CAPACITY: ("billable_capacity_gib",),
    meters.ROLE_COOL_CAPACITY: ("hot_gib", "cool_gib"),
    meters.ROLE_TIERING: ("tiered_to_cool_gib",),
    meters.ROLE_RETRIEVAL: ("retrieved_from_cool_gib",),
    meters.ROLE_THROUGHPUT: ("throughput_mibps",),
    meters.ROLE_IOPS: ("iops",),
    meters.ROLE_TRANSACTIONS: ("transactions",),
    meters.ROLE_TRANSACTIONS_READ: ("read_transactions",),
    meters.ROLE_TRANSACTIONS_WRITE: ("write_transactions",),
    meters.ROLE_TRANSACTIONS_LIST: ("list_transactions",),
    meters.ROLE_EGRESS: ("egress_gib",),
    meters.ROLE_SNAPSHOT: ("snapshot_gib",),
    meters.ROLE_BACKUP: ("backup_gib",),
}


def missing_fields(inputs: UniversalCostInputs, role: str) -> Tuple[str, ...]:
    return tuple(name for name in ROLE_INPUT_FIELDS.get(role, ()) if getattr(inputs, name) is None)
