"""Caching price resolver with single-flight fetches and stale-on-error.

Per (region, meter key) the state moves Missing -> Fetching -> Cached ->
Stale -> Fetching ... . At most one external fetch is outstanding per
(region, price context); every concurrent caller awaits the same task. A
context covers every meter role of one retail query, so pricing the capacity
and the transactions of one SKU costs a single request.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from ..config import DEFAULT_CURRENCY, PRICE_CACHE_TTL_DAYS
from ..errors import InvalidMeterKey, PriceUnavailable
from ..utils.clock import Clock, utc_now
from ..utils.trace import TraceLogger
from .cache import PriceCache, PriceCacheEntry, new_entry
from .defaults import DefaultPriceTable
from .meters import PriceContext, classify_meter_role, select_price_row

_LOGGER = logging.getLogger(__name__)

Fetcher = Callable[[PriceContext, str], Awaitable[List[Dict[str, Any]]]]

SOURCE_CACHE = "cache"
SOURCE_FETCHED = "fetched"
SOURCE_STALE = "stale_on_error"
SOURCE_DEFAULT = "default"


@dataclass(frozen=True)
class ResolvedPrice:
    region: str
    meter_key: str
    unit_price: float
    unit_of_measure: str
    currency: str
    fetched_at: datetime
    stale: bool
    source: str


class PriceResolver:
    def __init__(
        self,
        fetcher: Fetcher,
        cache: Optional[PriceCache] = None,
        *,
        clock: Clock = utc_now,
        ttl: timedelta = timedelta(days=PRICE_CACHE_TTL_DAYS),
        currency: str = DEFAULT_CURRENCY,
        default_table: Optional[DefaultPriceTable] = None,
        trace: Optional[TraceLogger] = None,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache if cache is not None else PriceCache()
        self.clock = clock
        self.ttl = ttl
        self.currency = currency
        self.default_table = default_table
        self.trace = trace
        self._inflight: Dict[Tuple[str, PriceContext], "asyncio.Future[FrozenSet[str]]"] = {}

    def _trace(self, phase: str, region: str, payload: Dict[str, Any]) -> None:
        if self.trace is not None:
            self.trace.log(phase, payload, region=region)

    async def get_price(self, region: str, role: str, context: PriceContext) -> ResolvedPrice:
        """Unit price for ``role`` under ``context`` in ``region``.

        Raises PriceUnavailable when nothing fresh, stale or default exists;
        never returns a substitute zero price.
        """
        region = (region or "").strip().lower()
        key = context.meter_key(role)
        now = self.clock()

        entry = self.cache.get(region, key)
        if entry is not None and not entry.is_expired(now):
            self._trace("price.cache_hit", region, {"meter_key": key})
            return _resolved(entry, stale=False, source=SOURCE_CACHE)

        reason = ""
        try:
            written = await self._refresh(region, context)
        except Exception as ex:  # noqa: BLE001 - any fetch failure degrades to stale/default
            written = frozenset()
            reason = f"fetch failed: {ex}"
        else:
            if key in written:
                fresh = self.cache.get(region, key)
                if fresh is not None:
                    return _resolved(fresh, stale=False, source=SOURCE_FETCHED)
            reason = "no matching price row"

        stale = self.cache.get(region, key)
        if stale is not None:
            _LOGGER.warning("Using stale price for %s in %s (%s)", key, region, reason)
            self._trace("price.stale_on_error", region, {"meter_key": key, "reason": reason})
            return _resolved(stale, stale=True, source=SOURCE_STALE)

        if self.default_table is not None:
            fallback = self.default_table.lookup(region, key, self.clock())
            if fallback is not None:
                _LOGGER.warning("Using regional default price for %s in %s (%s)", key, region, reason)
                self._trace("price.default", region, {"meter_key": key, "reason": reason})
                return _resolved(fallback, stale=True, source=SOURCE_DEFAULT)

        self._trace("price.unavailable", region, {"meter_key": key, "reason": reason})
        raise PriceUnavailable(region, key, reason)

    async def _refresh(self, region: str, context: PriceContext) -> FrozenSet[str]:
        flight = (region, context)
        task = self._inflight.get(flight)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(region, context))
            self._inflight[flight] = task
            task.add_done_callback(lambda t, k=flight: self._finish(k, t))
        # shield: a caller that stops waiting does not cancel the shared fetch
        return await asyncio.shield(task)

    def _finish(self, flight: Tuple[str, PriceContext], task: "asyncio.Future[FrozenSet[str]]") -> None:
        if self._inflight.get(flight) is task:
            del self._inflight[flight]
        if not task.cancelled():
            # retrieve it so an abandoned failure is not reported as never retrieved
            task.exception()

    async def _fetch_and_store(self, region: str, context: PriceContext) -> FrozenSet[str]:
        self._trace(
            "price.fetch",
            region,
            {"service": context.service_name, "product": context.product_name, "sku": context.sku_name},
        )
        rows = await self.fetcher(context, region)
        now = self.clock()

        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for row in rows or []:
            if not context.accepts(row):
                continue
            role = classify_meter_role(context.family, row.get("meterName") or "", row.get("skuName") or "")
            if role is None:
                _LOGGER.warning(
                    "Skipping unclassified meter '%s' (sku '%s') for %s/%s",
                    row.get("meterName"),
                    row.get("skuName"),
                    context.family,
                    context.tier,
                )
                self._trace("price.rejected_write", region, {"meter_name": row.get("meterName"), "reason": "unclassified"})
                continue
            try:
                key = context.meter_key(role)
            except InvalidMeterKey as ex:
                _LOGGER.warning("Rejected price cache write for meter '%s': %s", row.get("meterName"), ex)
                self._trace("price.rejected_write", region, {"meter_name": row.get("meterName"), "reason": str(ex)})
                continue
            grouped.setdefault(key, []).append(row)

        written: Set[str] = set()
        for key, candidates in grouped.items():
            row = select_price_row(candidates)
            if row is None:
                continue
            entry = new_entry(region, key, row, now=now, ttl=self.ttl, currency=self.currency)
            if self.cache.put(entry):
                written.add(key)

        _LOGGER.debug("Fetched %d rows for %s/%s in %s, cached %s", len(rows or []), context.family, context.tier, region, sorted(written))
        return frozenset(written)


def _resolved(entry: PriceCacheEntry, *, stale: bool, source: str) -> ResolvedPrice:
    return ResolvedPrice(
        region=entry.region,
        meter_key=entry.meter_key,
        unit_price=entry.unit_price,
        unit_of_measure=entry.unit_of_measure,
        currency=entry.currency,
        fetched_at=entry.fetched_at,
        stale=stale or entry.source == SOURCE_DEFAULT,
        source=source,
    )
