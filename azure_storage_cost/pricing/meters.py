"""Meter roles, meter keys and retail row selection.

A meter key identifies one cached unit price inside a region partition::

    <family-prefix>-<tier>[-<redundancy>]-<role>

e.g. ``files-hot-lrs-capacity`` or ``anf-coolaccess-cool_capacity``.
Components are lower-case ``[a-z0-9_]`` tokens, so ``-`` only ever separates
components and a key always decomposes back into the parts it was built from.

The role is validated *before* the key is built: an unclassified meter row
never produces a key and is never written to the cache.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..errors import InvalidMeterKey

_LOGGER = logging.getLogger(__name__)

# -------- meter roles ----------------------------------------------------------

ROLE_CAPACITY = "capacity"
ROLE_COOL_CAPACITY = "cool_capacity"
ROLE_TIERING = "tiering"
ROLE_RETRIEVAL = "retrieval"
ROLE_THROUGHPUT = "throughput"
ROLE_IOPS = "iops"
ROLE_TRANSACTIONS = "transactions"
ROLE_TRANSACTIONS_READ = "transactions_read"
ROLE_TRANSACTIONS_WRITE = "transactions_write"
ROLE_TRANSACTIONS_LIST = "transactions_list"
ROLE_EGRESS = "egress"
ROLE_SNAPSHOT = "snapshot"
ROLE_BACKUP = "backup"

METER_ROLES = frozenset(
    {
        ROLE_CAPACITY,
        ROLE_COOL_CAPACITY,
        ROLE_TIERING,
        ROLE_RETRIEVAL,
        ROLE_THROUGHPUT,
        ROLE_IOPS,
        ROLE_TRANSACTIONS,
        ROLE_TRANSACTIONS_READ,
        ROLE_TRANSACTIONS_WRITE,
        ROLE_TRANSACTIONS_LIST,
        ROLE_EGRESS,
        ROLE_SNAPSHOT,
        ROLE_BACKUP,
    }
)

FAMILY_PREFIXES: Dict[str, str] = {
    "file_share": "files",
    "nas_volume": "anf",
    "block_disk": "disk",
}
_PREFIX_FAMILIES = {v: k for k, v in FAMILY_PREFIXES.items()}

# NetApp cool access bills tiering and retrieval on the same transfer meter.
ROLE_ALIASES: Dict[Tuple[str, str], str] = {
    ("nas_volume", ROLE_RETRIEVAL): ROLE_TIERING,
}

_COMPONENT_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class PriceContext:
    """Everything needed to query and key the price of one meter role."""

    family: str
    tier: str
    redundancy: Optional[str]
    service_name: str
    product_name: str
    sku_name: str
    meter_contains: Tuple[str, ...] = ()
    meter_excludes: Tuple[str, ...] = ()

    def meter_key(self, role: str) -> str:
        return build_meter_key(self.family, self.tier, self.redundancy, lookup_role(self.family, role))

    def accepts(self, row: Dict[str, Any]) -> bool:
        meter = (row.get("meterName") or "").lower()
        if any(tok.lower() not in meter for tok in self.meter_contains):
            return False
        if any(tok.lower() in meter for tok in self.meter_excludes):
            return False
        return True


def normalize_component(value: Any) -> str:
    """Lower-case, collapse anything outside [a-z0-9] to '_' and trim."""
    return _COMPONENT_RE.sub("_", str(value or "").strip().lower()).strip("_")


def lookup_role(family: str, role: str) -> str:
    return ROLE_ALIASES.get((family, role), role)


def validate_role(role: Optional[str]) -> str:
    if not role or role not in METER_ROLES:
        raise InvalidMeterKey(f"Unclassified meter role: {role!r}")
    return role


def build_meter_key(family: str, tier: str, redundancy: Optional[str], role: Optional[str]) -> str:
    """Build a cache key; raises InvalidMeterKey for an empty/unknown role or tier."""
    role = validate_role(role)
    prefix = FAMILY_PREFIXES.get(family)
    if not prefix:
        raise InvalidMeterKey(f"Unknown storage family: {family!r}")
    tier_c = normalize_component(tier)
    if not tier_c:
        raise InvalidMeterKey(f"Empty tier for {family}/{role}")
    parts = [prefix, tier_c]
    red_c = normalize_component(redundancy)
    if red_c:
        parts.append(red_c)
    parts.append(role)
    return "-".join(parts)


def decompose_meter_key(key: str) -> Tuple[str, str, Optional[str], str]:
    """Inverse of build_meter_key: (family, tier, redundancy, role)."""
    parts = (key or "").split("-")
    if len(parts) == 3:
        prefix, tier, role = parts
        redundancy = None
    elif len(parts) == 4:
        prefix, tier, redundancy, role = parts
    else:
        raise InvalidMeterKey(f"Malformed meter key: {key!r}")
    family = _PREFIX_FAMILIES.get(prefix)
    if family is None or not tier or role not in METER_ROLES:
        raise InvalidMeterKey(f"Malformed meter key: {key!r}")
    if redundancy is not None and not redundancy:
        raise InvalidMeterKey(f"Malformed meter key: {key!r}")
    return family, tier, redundancy, role


# -------- meter-name classification --------------------------------------------


def _classify_file_share(meter: str, sku: str) -> Optional[str]:
    if "snapshot" in meter:
        return ROLE_SNAPSHOT
    if "data transfer out" in meter or "egress" in meter:
        return ROLE_EGRESS
    if "provisioned iops" in meter:
        return ROLE_IOPS
    if "provisioned throughput" in meter:
        return ROLE_THROUGHPUT
    if "data stored" in meter or "provisioned storage" in meter or meter.endswith("provisioned"):
        return ROLE_CAPACITY
    if "write operations" in meter:
        return ROLE_TRANSACTIONS_WRITE
    if "read operations" in meter:
        return ROLE_TRANSACTIONS_READ
    if "list operations" in meter or "create container" in meter:
        return ROLE_TRANSACTIONS_LIST
    if "data retrieval" in meter:
        return ROLE_RETRIEVAL
    return None


def _classify_nas_volume(meter: str, sku: str) -> Optional[str]:
    if "transfer" in meter:
        return ROLE_TIERING
    if "throughput" in meter:
        return ROLE_THROUGHPUT
    if "capacity" in meter:
        if "cool" in meter or "cool" in sku:
            return ROLE_COOL_CAPACITY
        return ROLE_CAPACITY
    if "backup" in meter:
        return ROLE_BACKUP
    return None


def _classify_block_disk(meter: str, sku: str) -> Optional[str]:
    if "burst" in meter or "mount" in meter or "vcpu" in meter:
        return None
    if "snapshot" in meter:
        return ROLE_SNAPSHOT
    if "operations" in meter or "transactions" in meter:
        return ROLE_TRANSACTIONS
    if "iops" in meter:
        return ROLE_IOPS
    if "throughput" in meter:
        return ROLE_THROUGHPUT
    if "capacity" in meter or meter.endswith("disk") or meter.endswith("disks"):
        return ROLE_CAPACITY
    return None


_CLASSIFIERS = {
    "file_share": _classify_file_share,
    "nas_volume": _classify_nas_volume,
    "block_disk": _classify_block_disk,
}


def classify_meter_role(family: str, meter_name: str, sku_name: str = "") -> Optional[str]:
    """Map a retail meter name to a meter role, or None when it is not one we price."""
    fn = _CLASSIFIERS.get(family)
    if fn is None:
        return None
    meter = (meter_name or "").strip().lower()
    if not meter:
        return None
    return fn(meter, (sku_name or "").strip().lower())


# -------- retail row selection -------------------------------------------------


def _g(it: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in it and it[k] is not None:
            return it[k]
    return None


def _effective_ts(row: Dict[str, Any]) -> float:
    raw = _g(row, "effectiveStartDate", "EffectiveStartDate")
    if not raw:
        return 0.0
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def _row_rank(row: Dict[str, Any]) -> Tuple[int, float, int, int, float]:
    price = float(_g(row, "retailPrice", "unitPrice") or 0.0)
    tier_min = float(_g(row, "tierMinimumUnits") or 0.0)
    price_type = str(_g(row, "type", "Type") or "").lower()
    primary = _g(row, "isPrimaryMeterRegion")
    return (
        0 if price > 0 else 1,
        tier_min,
        0 if price_type in ("", "consumption") else 1,
        0 if primary in (None, True) else 1,
        -_effective_ts(row),
    )


def select_price_row(rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Pick one row among several rows classified to the same role.

    Preference: non-zero price, lowest tierMinimumUnits, Consumption price type,
    primary meter region, most recent effectiveStartDate.
    """
    if not rows:
        return None
    ordered = sorted(rows, key=_row_rank)
    if len(rows) > 1:
        _LOGGER.debug(
            "select_price_row: %d candidates, chose meter=%s sku=%s price=%s",
            len(rows),
            ordered[0].get("meterName"),
            ordered[0].get("skuName"),
            _g(ordered[0], "retailPrice", "unitPrice"),
        )
    return ordered[0]


def _odata_quote(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def build_filter(context: PriceContext, region: str) -> str:
    """OData $filter for the Retail Prices API."""
    clauses = [f"serviceName eq {_odata_quote(context.service_name)}"]
    if context.product_name:
        clauses.append(f"productName eq {_odata_quote(context.product_name)}")
    if context.sku_name:
        clauses.append(f"skuName eq {_odata_quote(context.sku_name)}")
    if region:
        clauses.append(f"armRegionName eq {_odata_quote(region)}")
    clauses.append("priceType eq 'Consumption'")
    return " and ".join(clauses)
