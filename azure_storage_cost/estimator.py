"""
estimator.py

Batch façade: resource record -> classify -> normalize/validate -> evaluate
-> aggregate -> CostEstimate.

Per-resource failures never escape ``estimate``/``estimate_many``. They come
back as a CostEstimate whose ``status`` says what went wrong:

  - "priced":      every price fresh
  - "stale":       at least one price came from a stale cache entry or the
                   regional default table
  - "actual":      components replaced by actual billed cost
  - "invalid":     the record could not be classified or failed validation
  - "unavailable": a required price could not be resolved
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .analysis.aggregator import CostAggregator, CostTotals
from .billing.cost_management import CostManagementClient
from .config import CACHE_FILE, DEFAULT_CURRENCY, DEFAULT_PERIOD_DAYS, PRICE_CACHE_TTL_DAYS, TRACE_FILE
from .errors import ClassificationError, FormulaError, StorageCostError, ValidationFailed
from .formulas.engine import evaluate
from .formulas.registry import FormulaRegistry, build_formula_registry
from .formulas.types import CostComponent
from .inputs.normalize import MetricsInput, normalize_and_validate
from .inputs.resources import NasVolumeResource, Resource, load_resource
from .inputs.types import CoolDataAssumptions, InputIssue
from .permutations.classifier import classify
from .permutations.registry import PermutationRegistry, default_registry
from .permutations.types import NAS_VOLUME, Permutation
from .pricing.cache import PriceCache
from .pricing.defaults import DefaultPriceTable
from .pricing.resolver import PriceResolver
from .pricing.retail_api import RetailPricesClient
from .utils.clock import Clock, utc_now
from .utils.trace import TraceLogger, build_trace_logger

_LOGGER = logging.getLogger(__name__)

STATUS_PRICED = "priced"
STATUS_STALE = "stale"
STATUS_ACTUAL = "actual"
STATUS_INVALID = "invalid"
STATUS_UNAVAILABLE = "unavailable"

CONFIDENCE_FRESH = 80.0
CONFIDENCE_ACTUAL = 95.0
CONFIDENCE_FLOOR = 10.0
STALE_PENALTY = 15.0
ASSUMPTIONS_PENALTY = 10.0
FALLBACK_PENALTY = 15.0

FLEXIBLE_SERVICE_LEVEL = "Flexible"

ResourceInput = Union[Resource, Dict[str, Any]]
Window = Tuple[Union[date, datetime], Union[date, datetime]]


@dataclass(frozen=True)
class CostEstimate:
    resource_id: str
    resource_name: str
    family: str
    region: str
    status: str
    confidence: float
    permutation_id: Optional[int] = None
    permutation_name: str = ""
    components: Tuple[CostComponent, ...] = ()
    totals: Optional[CostTotals] = None
    warnings: Tuple[str, ...] = ()
    errors: Tuple[str, ...] = ()
    issues: Tuple[InputIssue, ...] = ()

    @property
    def total_for_period(self) -> float:
        return self.totals.total_for_period if self.totals is not None else 0.0

    @property
    def ok(self) -> bool:
        return self.status in (STATUS_PRICED, STATUS_STALE, STATUS_ACTUAL)


def estimate_confidence(*, stale: bool, used_assumptions: bool, metrics_fallback: bool) -> float:
    score = CONFIDENCE_FRESH
    if stale:
        score -= STALE_PENALTY
    if used_assumptions:
        score -= ASSUMPTIONS_PENALTY
    if metrics_fallback:
        score -= FALLBACK_PENALTY
    return max(CONFIDENCE_FLOOR, score)


def _record_id(record: ResourceInput) -> str:
    if isinstance(record, dict):
        return str(record.get("id") or record.get("resourceId") or record.get("resource_id") or "")
    return getattr(record, "resource_id", "")


class StorageCostEstimator:
    def __init__(
        self,
        resolver: PriceResolver,
        *,
        registry: Optional[PermutationRegistry] = None,
        formulas: Optional[FormulaRegistry] = None,
        billing: Optional[CostManagementClient] = None,
        period_days: float = DEFAULT_PERIOD_DAYS,
        assumptions: Optional[CoolDataAssumptions] = None,
        trace: Optional[TraceLogger] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.resolver = resolver
        self.registry = registry or default_registry()
        self.formulas = formulas or build_formula_registry(self.registry)
        self.billing = billing
        self.period_days = period_days
        self.assumptions = assumptions if assumptions is not None else CoolDataAssumptions()
        self.trace = trace
        self.clock = clock

    @classmethod
    def create(
        cls,
        *,
        cache_file: Optional[str] = CACHE_FILE,
        currency: str = DEFAULT_CURRENCY,
        use_regional_defaults: bool = False,
        trace_file: Optional[str] = TRACE_FILE,
        billing: Optional[CostManagementClient] = None,
        clock: Clock = utc_now,
        **kwargs: Any,
    ) -> "StorageCostEstimator":
        """Estimator wired to the live Retail Prices API and a persisted cache."""
        cache = PriceCache()
        if cache_file:
            cache.load(cache_file)
        trace = build_trace_logger(trace_file, clock=clock)
        client = RetailPricesClient(currency=currency)
        resolver = PriceResolver(
            client.fetch_rows,
            cache,
            clock=clock,
            ttl=timedelta(days=PRICE_CACHE_TTL_DAYS),
            currency=currency,
            default_table=DefaultPriceTable() if use_regional_defaults else None,
            trace=trace,
        )
        return cls(resolver, billing=billing, trace=trace, clock=clock, **kwargs)

    def save_cache(self, path: str = CACHE_FILE) -> None:
        self.resolver.cache.purge_expired(self.clock())
        self.resolver.cache.save(path)

    # ------------------------------------------------------------------

    def _invalid(self, resource_id: str, *, errors: Sequence[str], resource: Optional[Resource] = None,
                 permutation: Optional[Permutation] = None, issues: Sequence[InputIssue] = ()) -> CostEstimate:
        return CostEstimate(
            resource_id=resource_id,
            resource_name=getattr(resource, "name", ""),
            family=getattr(resource, "family", ""),
            region=getattr(resource, "region", ""),
            status=STATUS_INVALID,
            confidence=0.0,
            permutation_id=permutation.id if permutation else None,
            permutation_name=permutation.name if permutation else "",
            errors=tuple(errors),
            issues=tuple(issues),
        )

    async def estimate(
        self,
        record: ResourceInput,
        metrics: MetricsInput = None,
        *,
        region: Optional[str] = None,
        assumptions: Optional[CoolDataAssumptions] = None,
        actuals_window: Optional[Window] = None,
    ) -> CostEstimate:
        rid = _record_id(record)
        try:
            resource = record if not isinstance(record, dict) else load_resource(record)
        except ValueError as ex:
            return self._invalid(rid, errors=[str(ex)])
        if region:
            resource = replace(resource, region=region.strip().lower().replace(" ", ""))

        try:
            permutation = classify(*resource.classification_args(), registry=self.registry)
        except ClassificationError as ex:
            _LOGGER.info("Cannot classify %s: %s", resource.resource_id, ex)
            return self._invalid(resource.resource_id, errors=[str(ex)], resource=resource)

        try:
            inputs = normalize_and_validate(
                resource,
                permutation,
                metrics,
                assumptions=assumptions or self.assumptions,
                period_days=self.period_days,
            )
        except ValidationFailed as ex:
            return self._invalid(
                resource.resource_id,
                errors=[i.message for i in ex.issues],
                resource=resource,
                permutation=permutation,
                issues=ex.issues,
            )

        warnings: List[str] = []
        if inputs.used_cool_assumptions:
            warnings.append("Cool-tier split estimated from cool data assumptions")
        if inputs.metrics_fallback:
            warnings.append("Metrics payload was malformed; all capacity treated as hot")

        try:
            components = await evaluate(permutation, inputs, self.resolver, registry=self.formulas, trace=self.trace)
        except FormulaError as ex:
            _LOGGER.warning("Cannot price %s (%s): %s", resource.resource_id, permutation.key, ex)
            return CostEstimate(
                resource_id=resource.resource_id,
                resource_name=resource.name,
                family=resource.family,
                region=resource.region,
                status=STATUS_UNAVAILABLE,
                confidence=0.0,
                permutation_id=permutation.id,
                permutation_name=permutation.name,
                warnings=tuple(warnings),
                errors=(str(ex),),
            )

        stale = any(c.stale for c in components)
        if stale:
            warnings.append("Priced from stale or default prices")
        status = STATUS_STALE if stale else STATUS_PRICED
        confidence = estimate_confidence(
            stale=stale,
            used_assumptions=inputs.used_cool_assumptions,
            metrics_fallback=inputs.metrics_fallback,
        )

        if actuals_window is not None and self.billing is not None:
            actual = await self._actual_components(resource.resource_id, actuals_window, warnings)
            if actual:
                components = actual
                status = STATUS_ACTUAL
                confidence = CONFIDENCE_ACTUAL

        if status == STATUS_ACTUAL:
            agg = CostAggregator.for_window(*actuals_window)
        else:
            agg = CostAggregator(inputs.period_days)
        agg.extend(components)

        return CostEstimate(
            resource_id=resource.resource_id,
            resource_name=resource.name,
            family=resource.family,
            region=resource.region,
            status=status,
            confidence=confidence,
            permutation_id=permutation.id,
            permutation_name=permutation.name,
            components=tuple(components),
            totals=agg.totals(),
            warnings=tuple(warnings),
        )

    async def estimate_flexible_what_if(
        self,
        capacity_gib: float,
        throughput_mibps: float,
        region: str,
        *,
        cool_access: bool = False,
        assumptions: Optional[CoolDataAssumptions] = None,
        resource_id: str = "",
        name: str = "",
    ) -> CostEstimate:
        """Price a volume as if it ran on the NetApp Flexible service level.

        Capacity below the Flexible minimum (2400 GiB with cool access) is
        raised to it and the adjustment is reported as a warning. Without cool
        metrics the cool split always comes from the assumptions.
        """
        region = (region or "").strip().lower().replace(" ", "")
        rid = resource_id or f"what-if/flexible/{region}"
        try:
            permutation = classify(NAS_VOLUME, FLEXIBLE_SERVICE_LEVEL, cool_access, registry=self.registry)
        except ClassificationError as ex:
            return self._invalid(rid, errors=[str(ex)])

        capacity = float(capacity_gib)
        adjusted: List[str] = []
        if capacity < permutation.min_capacity_gib:
            adjusted.append(
                f"Capacity raised from {capacity:g} GiB to the {permutation.min_capacity_gib:g} GiB minimum for {permutation.name}"
            )
            _LOGGER.info("What-if %s: %s", rid, adjusted[0])
            capacity = permutation.min_capacity_gib

        volume = NasVolumeResource(
            resource_id=rid,
            name=name or f"{permutation.name} what-if",
            region=region,
            service_level=FLEXIBLE_SERVICE_LEVEL,
            cool_access=cool_access,
            provisioned_gib=capacity,
            throughput_mibps=float(throughput_mibps),
        )
        result = await self.estimate(volume, assumptions=assumptions)
        if not adjusted:
            return result
        return replace(result, warnings=tuple(adjusted) + result.warnings)

    async def _actual_components(self, resource_id: str, window: Window, warnings: List[str]) -> List[CostComponent]:
        start, end = window
        try:
            entries = await self.billing.query_resource_costs(resource_id, start, end)
        except StorageCostError as ex:
            _LOGGER.warning("Actual cost query failed for %s, keeping the estimate: %s", resource_id, ex)
            warnings.append(f"Actual billing unavailable: {ex}")
            return []
        return [
            CostComponent(
                component_type=e.component_type,
                meter_role="",
                quantity=1.0,
                unit_price=e.cost,
                unit_of_measure=e.currency,
                cost_for_period=e.cost,
                is_estimated=False,
                description=" / ".join(p for p in (e.meter_subcategory, e.meter) if p),
            )
            for e in entries
        ]

    async def estimate_many(
        self,
        records: Iterable[ResourceInput],
        metrics: Optional[Mapping[str, MetricsInput]] = None,
        **kwargs: Any,
    ) -> List[CostEstimate]:
        """Estimate every record concurrently; results keep the input order."""
        records = list(records)
        metrics = metrics or {}
        results = await asyncio.gather(
            *(self.estimate(r, metrics.get(_record_id(r)), **kwargs) for r in records),
            return_exceptions=True,
        )
        out: List[CostEstimate] = []
        for record, result in zip(records, results):
            if isinstance(result, Exception):
                rid = _record_id(record)
                _LOGGER.error("Unexpected failure estimating %s: %r", rid, result)
                out.append(
                    CostEstimate(
                        resource_id=rid,
                        resource_name="",
                        family="",
                        region="",
                        status=STATUS_UNAVAILABLE,
                        confidence=0.0,
                        errors=(f"{type(result).__name__}: {result}",),
                    )
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                out.append(result)
        return out


def summarize(estimates: Iterable[CostEstimate]) -> Dict[str, Any]:
    """Batch totals by status and family."""
    by_status: Dict[str, int] = {}
    by_family: Dict[str, float] = {}
    total = 0.0
    for e in estimates:
        by_status[e.status] = by_status.get(e.status, 0) + 1
        if e.ok:
            by_family[e.family] = by_family.get(e.family, 0.0) + e.total_for_period
            total += e.total_for_period
    return {"total_for_period": total, "by_status": by_status, "by_family": by_family}
