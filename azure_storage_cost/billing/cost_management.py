# azure_storage_cost/billing/cost_management.py
"""Actual billed cost per meter from the Azure Cost Management query API.

Optional: estimates never depend on it. The caller injects an async token
provider, so this module carries no credential handling of its own.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from ..config import (
    COST_MANAGEMENT_API_VERSION,
    COST_MANAGEMENT_URL,
    PRICE_FETCH_CONNECT_TIMEOUT_SECONDS,
    PRICE_FETCH_TIMEOUT_SECONDS,
)
from ..errors import BillingQueryError
from ..formulas import types as ct
from ..pricing.http_policy import HttpRetryPolicy

_LOGGER = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]
DateLike = Union[date, datetime]

# Ordered: first keyword hit wins.
_METER_COMPONENTS = (
    ("cool data retrieval", ct.RETRIEVAL),
    ("data retrieval", ct.RETRIEVAL),
    ("cool access data transfer", ct.TIERING),
    ("tiering", ct.TIERING),
    ("cool", ct.COOL_CAPACITY),
    ("snapshot", ct.SNAPSHOT),
    ("backup", ct.BACKUP),
    ("data transfer out", ct.EGRESS),
    ("egress", ct.EGRESS),
    ("throughput", ct.THROUGHPUT),
    ("mibps", ct.THROUGHPUT),
    ("iops", ct.IOPS),
    ("operations", ct.TRANSACTIONS),
    ("transactions", ct.TRANSACTIONS),
    ("data stored", ct.CAPACITY),
    ("capacity", ct.CAPACITY),
    ("provisioned", ct.CAPACITY),
    ("disk", ct.CAPACITY),
)


def component_type_for_meter(meter: str, subcategory: str = "") -> str:
    """Best-effort component type for a billed meter; "other" when unknown."""
    text = f"{meter or ''} {subcategory or ''}".lower()
    for needle, component in _METER_COMPONENTS:
        if needle in text:
            return component
    return "other"


@dataclass(frozen=True)
class ActualCostEntry:
    resource_id: str
    meter: str
    meter_subcategory: str
    cost: float
    currency: str
    component_type: str
    usage_date: Optional[date] = None


def subscription_of(resource_id: str) -> str:
    parts = [p for p in (resource_id or "").split("/") if p]
    for i, p in enumerate(parts[:-1]):
        if p.lower() == "subscriptions":
            return parts[i + 1]
    raise BillingQueryError(f"Cannot find a subscription in resource id '{resource_id}'")


def _iso(value: DateLike) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return f"{value.isoformat()}T00:00:00Z"


def build_query(resource_id: str, start: DateLike, end: DateLike) -> Dict[str, Any]:
    return {
        "type": "ActualCost",
        "timeframe": "Custom",
        "timePeriod": {"from": _iso(start), "to": _iso(end)},
        "dataset": {
            "granularity": "None",
            "aggregation": {"totalCost": {"name": "Cost", "function": "Sum"}},
            "grouping": [
                {"type": "Dimension", "name": "ResourceId"},
                {"type": "Dimension", "name": "MeterSubcategory"},
                {"type": "Dimension", "name": "Meter"},
            ],
            "filter": {"dimensions": {"name": "ResourceId", "operator": "In", "values": [resource_id]}},
        },
    }


def _parse_usage_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    text = str(value)
    # UsageDate comes back as a yyyymmdd number
    if text.isdigit() and len(text) == 8:
        return date(int(text[:4]), int(text[4:6]), int(text[6:]))
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_query_result(payload: Dict[str, Any], resource_id: str) -> List[ActualCostEntry]:
    props = payload.get("properties") if isinstance(payload.get("properties"), dict) else payload
    columns = [str((c or {}).get("name") or "") for c in (props.get("columns") or [])]
    if not columns:
        return []
    index = {name.lower(): i for i, name in enumerate(columns)}

    def _cell(row: List[Any], *names: str) -> Any:
        for n in names:
            i = index.get(n.lower())
            if i is not None and i < len(row):
                return row[i]
        return None

    out: List[ActualCostEntry] = []
    for row in props.get("rows") or []:
        raw_cost = _cell(row, "totalCost", "Cost", "PreTaxCost")
        try:
            cost = float(raw_cost)
        except (TypeError, ValueError):
            _LOGGER.warning("Skipping billing row with non-numeric cost %r for %s", raw_cost, resource_id)
            continue
        meter = str(_cell(row, "Meter") or "")
        sub = str(_cell(row, "MeterSubcategory") or "")
        out.append(
            ActualCostEntry(
                resource_id=str(_cell(row, "ResourceId") or resource_id),
                meter=meter,
                meter_subcategory=sub,
                cost=cost,
                currency=str(_cell(row, "Currency") or "USD"),
                component_type=component_type_for_meter(meter, sub),
                usage_date=_parse_usage_date(_cell(row, "UsageDate")),
            )
        )
    return out


class CostManagementClient:
    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        base_url: str = COST_MANAGEMENT_URL,
        api_version: str = COST_MANAGEMENT_API_VERSION,
        timeout_seconds: float = PRICE_FETCH_TIMEOUT_SECONDS,
        connect_timeout_seconds: float = PRICE_FETCH_CONNECT_TIMEOUT_SECONDS,
        retry_policy: Optional[HttpRetryPolicy] = None,
    ) -> None:
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout_seconds = timeout_seconds
        self.connect_timeout_seconds = connect_timeout_seconds
        self.retry_policy = retry_policy or HttpRetryPolicy()

    def query_url(self, resource_id: str) -> str:
        sub = subscription_of(resource_id)
        return (
            f"{self.base_url}/subscriptions/{sub}/providers/Microsoft.CostManagement/query"
            f"?api-version={self.api_version}"
        )

    async def query_resource_costs(self, resource_id: str, start: DateLike, end: DateLike) -> List[ActualCostEntry]:
        """Per-meter actual cost for one resource over [start, end]."""
        if end <= start:
            raise BillingQueryError(f"Billing window must end after it starts ({start} .. {end})")
        url = self.query_url(resource_id)
        body = build_query(resource_id, start, end)
        try:
            token = await self.token_provider()
        except Exception as ex:  # noqa: BLE001 - surface any credential failure as a billing error
            raise BillingQueryError(f"Could not obtain a Cost Management token: {ex}") from ex
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

        timeout = httpx.Timeout(self.timeout_seconds, connect=self.connect_timeout_seconds)
        entries: List[ActualCostEntry] = []
        async with httpx.AsyncClient(timeout=timeout) as client:
            next_url: Optional[str] = url
            while next_url:
                data = await self._post_json(client, next_url, body, headers)
                entries.extend(parse_query_result(data, resource_id))
                props = data.get("properties") if isinstance(data.get("properties"), dict) else data
                next_url = props.get("nextLink") or None

        _LOGGER.info("Retrieved %d meter cost entries for %s", len(entries), resource_id)
        return entries

    async def _post_json(self, client, url: str, body: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        attempt = 0
        while True:
            try:
                resp = await client.post(url, json=body, headers=headers)
            except (httpx.TimeoutException, httpx.TransportError) as ex:
                if not self.retry_policy.should_retry(attempt):
                    raise BillingQueryError(f"Cost Management request failed after {attempt + 1} attempt(s): {ex!r}") from ex
                _LOGGER.warning("Cost Management transport error (attempt %d): %r", attempt + 1, ex)
                await self.retry_policy.wait_async(attempt)
                attempt += 1
                continue

            status = resp.status_code
            if status >= 400:
                if self.retry_policy.should_retry(attempt, status):
                    retry_after = resp.headers.get("Retry-After")
                    _LOGGER.warning("Cost Management HTTP %d (attempt %d), retry_after=%s", status, attempt + 1, retry_after)
                    await self.retry_policy.wait_async(attempt, retry_after)
                    attempt += 1
                    continue
                raise BillingQueryError(f"Cost Management returned HTTP {status}")

            data = resp.json()
            if not isinstance(data, dict):
                raise BillingQueryError("Cost Management returned a non-object payload")
            return data
