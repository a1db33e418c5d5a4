"""Resource + metrics -> UniversalCostInputs, plus input validation.

Fallback policy for cool-access permutations:
  - metrics payload present and parseable, cool metrics present: use them
  - metrics payload present but malformed: log a warning, treat the whole
    capacity as hot (cool/tiered/retrieved = 0) and mark metrics_fallback
  - no cool metrics but CoolDataAssumptions given: split by the assumptions
  - otherwise: leave the cool fields absent, so validation reports them
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, List, Mapping, Optional, Tuple, Union

from ..config import DEFAULT_PERIOD_DAYS
from ..errors import MetricsParseError, ValidationFailed
from ..permutations.types import FORMULA_FLAT_BASELINE, FORMULA_PERFORMANCE, Permutation
from ..pricing import meters
from . import metrics as m
from .metrics import HistoricalMetrics, parse_metrics
from .resources import BlockDiskResource, FileShareResource, NasVolumeResource, Resource
from .types import CoolDataAssumptions, InputIssue, UniversalCostInputs, bytes_to_gib, missing_fields

_LOGGER = logging.getLogger(__name__)

MetricsInput = Union[HistoricalMetrics, Mapping[str, Any], str, bytes, None]


def _scaled_gib(metrics: Optional[HistoricalMetrics], name: str, scale: float) -> Optional[float]:
    if metrics is None:
        return None
    total = metrics.total(name)
    if total is None:
        return None
    return bytes_to_gib(total) * scale


def _scaled_count(metrics: Optional[HistoricalMetrics], name: str, scale: float) -> Optional[float]:
    if metrics is None:
        return None
    total = metrics.total(name)
    return None if total is None else total * scale


def _coerce_metrics(raw: MetricsInput, resource_id: str) -> Tuple[Optional[HistoricalMetrics], bool]:
    """(metrics, fallback_applied)."""
    if raw is None:
        return None, False
    if isinstance(raw, HistoricalMetrics):
        return raw, False
    try:
        return parse_metrics(raw), False
    except MetricsParseError as ex:
        _LOGGER.warning("Ignoring malformed metrics for %s, treating capacity as hot: %s", resource_id, ex)
        return None, True


def _capacity(resource: Resource, metrics: Optional[HistoricalMetrics]) -> Tuple[Optional[float], Optional[float]]:
    """(provisioned_gib, consumed_gib)."""
    used_from_metrics = bytes_to_gib(metrics.average(m.USED_CAPACITY)) if metrics else None
    if isinstance(resource, BlockDiskResource):
        return resource.size_gib, None
    consumed = resource.used_gib if resource.used_gib is not None else used_from_metrics
    return resource.provisioned_gib, consumed


def _performance(resource: Resource) -> Tuple[Optional[float], Optional[float]]:
    """(iops, throughput_mibps) as configured on the resource."""
    if isinstance(resource, FileShareResource):
        return resource.provisioned_iops, resource.provisioned_throughput_mibps
    if isinstance(resource, NasVolumeResource):
        return None, resource.throughput_mibps
    return resource.iops, resource.throughput_mibps


def normalize(
    resource: Resource,
    permutation: Permutation,
    metrics: MetricsInput = None,
    *,
    assumptions: Optional[CoolDataAssumptions] = None,
    period_days: float = DEFAULT_PERIOD_DAYS,
) -> UniversalCostInputs:
    """Build the canonical inputs for ``resource`` under ``permutation``.

    Never raises for missing data: absent values stay None and are reported
    by ``validate``.
    """
    parsed, fallback = _coerce_metrics(metrics, resource.resource_id)
    scale = float(period_days) / parsed.period_days if parsed else 1.0

    provisioned, consumed = _capacity(resource, parsed)
    inputs = UniversalCostInputs(
        resource_id=resource.resource_id,
        resource_name=resource.name,
        resource_type=resource.resource_type,
        region=resource.region,
        family=permutation.family,
        permutation_id=permutation.id,
        cool_access_enabled=permutation.cool_access_enabled,
        double_encryption_enabled=permutation.double_encryption_enabled,
        is_provisioned=permutation.is_provisioned,
        provisioned_gib=provisioned,
        consumed_gib=consumed,
        period_hours=float(period_days) * 24.0,
        metrics_fallback=fallback,
    )
    capacity = inputs.billable_capacity_gib

    # -------- cool tier --------------------------------------------------------
    if permutation.cool_access_enabled:
        inputs = _with_cool_split(inputs, capacity, parsed, scale, fallback, assumptions)

    # -------- performance ------------------------------------------------------
    iops, throughput = _performance(resource)
    roles = permutation.meter_roles
    if capacity is not None:
        inputs = replace(
            inputs,
            included_throughput_mibps=permutation.included_throughput.included(capacity),
            included_iops=permutation.included_iops.included(capacity),
        )
    if meters.ROLE_THROUGHPUT in roles or permutation.formula in (FORMULA_FLAT_BASELINE, FORMULA_PERFORMANCE):
        above = None
        if throughput is not None and inputs.included_throughput_mibps is not None:
            above = max(0.0, throughput - inputs.included_throughput_mibps)
        inputs = replace(inputs, throughput_mibps=throughput, throughput_above_base_mibps=above)
    if meters.ROLE_IOPS in roles:
        inputs = replace(inputs, iops=iops)

    # -------- transactions / traffic ------------------------------------------
    snapshot_gib = getattr(resource, "snapshot_gib", None)
    if snapshot_gib is None and parsed is not None:
        snapshot_gib = bytes_to_gib(parsed.average(m.SNAPSHOT_SIZE))
    inputs = replace(
        inputs,
        read_transactions=_scaled_count(parsed, m.READ_TRANSACTIONS, scale),
        write_transactions=_scaled_count(parsed, m.WRITE_TRANSACTIONS, scale),
        list_transactions=_scaled_count(parsed, m.LIST_TRANSACTIONS, scale),
        transactions=_scaled_count(parsed, m.DISK_TRANSACTIONS, scale),
        egress_gib=_scaled_gib(parsed, m.EGRESS, scale),
        snapshot_gib=snapshot_gib,
        backup_gib=getattr(resource, "backup_gib", None),
    )
    return inputs


def _with_cool_split(
    inputs: UniversalCostInputs,
    capacity: Optional[float],
    parsed: Optional[HistoricalMetrics],
    scale: float,
    fallback: bool,
    assumptions: Optional[CoolDataAssumptions],
) -> UniversalCostInputs:
    if capacity is None:
        return inputs

    if fallback:
        return replace(inputs, hot_gib=capacity, cool_gib=0.0, tiered_to_cool_gib=0.0, retrieved_from_cool_gib=0.0)

    if parsed is not None and parsed.average(m.COOL_TIER_SIZE) is not None:
        cool = min(bytes_to_gib(parsed.average(m.COOL_TIER_SIZE)), capacity)
        tiered = _scaled_gib(parsed, m.COOL_TIER_WRITE, scale)
        retrieved = _scaled_gib(parsed, m.COOL_TIER_READ, scale)
        if (tiered is None or retrieved is None) and assumptions is not None:
            tiered = 0.0 if tiered is None else tiered
            retrieved = cool * assumptions.retrieval_percent / 100.0 if retrieved is None else retrieved
            inputs = replace(inputs, used_cool_assumptions=True)
        return replace(
            inputs,
            hot_gib=max(0.0, capacity - cool),
            cool_gib=cool,
            tiered_to_cool_gib=tiered,
            retrieved_from_cool_gib=retrieved,
        )

    if assumptions is not None:
        cool = capacity * assumptions.cool_data_percent / 100.0
        return replace(
            inputs,
            hot_gib=capacity - cool,
            cool_gib=cool,
            tiered_to_cool_gib=0.0,
            retrieved_from_cool_gib=cool * assumptions.retrieval_percent / 100.0,
            used_cool_assumptions=True,
        )

    return inputs


def validate(inputs: UniversalCostInputs, permutation: Permutation) -> List[InputIssue]:
    """Every violated constraint, in a stable order; empty when valid."""
    issues: List[InputIssue] = []

    if not inputs.resource_id:
        issues.append(InputIssue("resource_id", "missing", "Missing resource id"))
    if not inputs.region:
        issues.append(InputIssue("region", "missing", "Missing region"))

    if inputs.cool_access_enabled and inputs.double_encryption_enabled:
        issues.append(
            InputIssue("flags", "conflict", "Cool access and double encryption are mutually exclusive")
        )
    if (
        inputs.cool_access_enabled != permutation.cool_access_enabled
        or inputs.double_encryption_enabled != permutation.double_encryption_enabled
        or inputs.family != permutation.family
        or inputs.permutation_id != permutation.id
    ):
        issues.append(
            InputIssue("permutation", "conflict", f"Inputs were not normalized for permutation {permutation.key}")
        )

    capacity = inputs.billable_capacity_gib
    cap_key = "provisioned_gib" if inputs.is_provisioned else "consumed_gib"
    if capacity is None:
        issues.append(InputIssue(cap_key, "missing", f"Missing {cap_key.replace('_', ' ')}"))
    elif capacity <= 0:
        issues.append(InputIssue(cap_key, "invalid", f"Capacity must be positive, got {capacity:g} GiB"))
    elif capacity < permutation.min_capacity_gib:
        issues.append(
            InputIssue(
                cap_key,
                "minimum",
                f"Capacity {capacity:g} GiB is below the {permutation.min_capacity_gib:g} GiB minimum for {permutation.name}",
            )
        )

    for role in sorted(permutation.required_meters - {meters.ROLE_CAPACITY}):
        for name in missing_fields(inputs, role):
            issues.append(InputIssue(name, "missing", f"Missing {name} required for {role} pricing"))

    for name in (
        "hot_gib",
        "cool_gib",
        "tiered_to_cool_gib",
        "retrieved_from_cool_gib",
        "iops",
        "throughput_mibps",
        "read_transactions",
        "write_transactions",
        "list_transactions",
        "transactions",
        "egress_gib",
        "snapshot_gib",
        "backup_gib",
    ):
        value = getattr(inputs, name)
        if value is not None and value < 0:
            issues.append(InputIssue(name, "invalid", f"{name} cannot be negative"))

    if inputs.period_hours <= 0:
        issues.append(InputIssue("period_hours", "invalid", "Billing period must be positive"))
    return issues


def normalize_and_validate(
    resource: Resource,
    permutation: Permutation,
    metrics: MetricsInput = None,
    *,
    assumptions: Optional[CoolDataAssumptions] = None,
    period_days: float = DEFAULT_PERIOD_DAYS,
) -> UniversalCostInputs:
    inputs = normalize(resource, permutation, metrics, assumptions=assumptions, period_days=period_days)
    issues = validate(inputs, permutation)
    if issues:
        raise ValidationFailed(issues, resource_id=inputs.resource_id)
    return inputs
