"""Typed, versioned historical-metrics payload.

Version 1 (current)::

    {
      "schemaVersion": 1,
      "periodDays": 30,
      "metrics": {
        "VolumeCoolTierSize": {"average": 107374182400, "maximum": ...},
        "VolumeCoolTierDataWriteSize": {"total": 10737418240}
      }
    }

Version 0 (legacy) is a flat ``{name: number}`` or ``{name: {aggregations}}``
mapping without a version marker; a bare number counts as both the average
and the total, and the window is assumed to be DEFAULT_PERIOD_DAYS.

Anything else raises MetricsParseError; callers decide the fallback.
Capacity and transfer metrics are in bytes, transaction metrics are counts.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from ..config import DEFAULT_PERIOD_DAYS
from ..errors import MetricsParseError

SCHEMA_VERSION = 1

# NetApp cool tier
COOL_TIER_SIZE = "VolumeCoolTierSize"                # bytes currently in the cool tier (average)
COOL_TIER_READ = "VolumeCoolTierDataReadSize"        # bytes retrieved from cool (total)
COOL_TIER_WRITE = "VolumeCoolTierDataWriteSize"      # bytes tiered to cool (total)

# Capacity / traffic
USED_CAPACITY = "UsedCapacity"                       # bytes consumed (average)
EGRESS = "Egress"                                    # bytes out (total)
SNAPSHOT_SIZE = "SnapshotSize"                       # bytes held in snapshots (average)

# Transactions (counts over the window)
READ_TRANSACTIONS = "ReadTransactions"
WRITE_TRANSACTIONS = "WriteTransactions"
LIST_TRANSACTIONS = "ListTransactions"
DISK_TRANSACTIONS = "DiskTransactions"

_AGGREGATIONS = ("average", "total", "maximum", "minimum")


@dataclass(frozen=True)
class MetricSeries:
    average: Optional[float] = None
    total: Optional[float] = None
    maximum: Optional[float] = None
    minimum: Optional[float] = None


@dataclass(frozen=True)
class HistoricalMetrics:
    schema_version: int
    period_days: float
    metrics: Dict[str, MetricSeries] = field(default_factory=dict)

    def get(self, name: str) -> Optional[MetricSeries]:
        return self.metrics.get(name)

    def average(self, name: str) -> Optional[float]:
        series = self.metrics.get(name)
        return series.average if series else None

    def total(self, name: str) -> Optional[float]:
        series = self.metrics.get(name)
        return series.total if series else None

    def has(self, *names: str) -> bool:
        return all(name in self.metrics for name in names)


def _number(value: Any, *, ctx: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MetricsParseError(f"{ctx} must be a number, got {type(value).__name__}")
    out = float(value)
    if math.isnan(out) or math.isinf(out) or out < 0:
        raise MetricsParseError(f"{ctx} must be a finite, non-negative number")
    return out


def _series(value: Any, *, ctx: str) -> MetricSeries:
    if isinstance(value, Mapping):
        unknown = sorted(set(value) - set(_AGGREGATIONS))
        if unknown:
            raise MetricsParseError(f"{ctx} has unknown aggregation(s) {unknown}")
        return MetricSeries(**{agg: _number(value.get(agg), ctx=f"{ctx}.{agg}") for agg in _AGGREGATIONS})
    number = _number(value, ctx=ctx)
    return MetricSeries(average=number, total=number)


def parse_metrics(payload: Union[str, bytes, Mapping[str, Any], None]) -> HistoricalMetrics:
    if payload is None:
        raise MetricsParseError("metrics payload is empty")
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as ex:
            raise MetricsParseError(f"metrics payload is not valid JSON: {ex}") from ex
    if not isinstance(payload, Mapping):
        raise MetricsParseError("metrics payload must be a JSON object")

    version = payload.get("schemaVersion")
    if version is None:
        metrics = {str(name): _series(value, ctx=f"metrics.{name}") for name, value in payload.items()}
        return HistoricalMetrics(schema_version=0, period_days=float(DEFAULT_PERIOD_DAYS), metrics=metrics)

    if version != SCHEMA_VERSION:
        raise MetricsParseError(f"Unsupported metrics schemaVersion: {version!r}")

    period_days = _number(payload.get("periodDays"), ctx="periodDays")
    if not period_days:
        raise MetricsParseError("periodDays must be a positive number")
    raw_metrics = payload.get("metrics")
    if not isinstance(raw_metrics, Mapping):
        raise MetricsParseError("metrics must be an object of metric name -> aggregations")
    metrics = {str(name): _series(value, ctx=f"metrics.{name}") for name, value in raw_metrics.items()}
    return HistoricalMetrics(schema_version=SCHEMA_VERSION, period_days=period_days, metrics=metrics)
