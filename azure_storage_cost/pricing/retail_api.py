# azure_storage_cost/pricing/retail_api.py
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx

from ..config import (
    DEFAULT_CURRENCY,
    PRICE_FETCH_CONNECT_TIMEOUT_SECONDS,
    PRICE_FETCH_TIMEOUT_SECONDS,
    RETAIL_API_URL,
    RETAIL_MAX_PAGES,
)
from ..errors import RetailApiError
from .http_policy import HttpRetryPolicy
from .meters import PriceContext, build_filter

_LOGGER = logging.getLogger(__name__)


def _row_identity(it: Dict[str, Any]) -> Tuple[str, str, str, str, str]:
    return (
        str(it.get("meterId") or ""),
        str(it.get("skuName") or ""),
        str(it.get("meterName") or ""),
        str(it.get("type") or it.get("Type") or ""),
        str(it.get("tierMinimumUnits") or 0),
    )


class RetailPricesClient:
    """
    Async client for the Azure Retail Prices API.

    - one $filter query per call, NextPageLink pagination up to ``max_pages``
    - bounded timeout per request
    - retries with backoff on timeouts, transport errors, 429 and 5xx
    - raises RetailApiError once retries are exhausted (never blocks forever)
    """

    def __init__(
        self,
        *,
        base_url: str = RETAIL_API_URL,
        currency: str = DEFAULT_CURRENCY,
        timeout_seconds: float = PRICE_FETCH_TIMEOUT_SECONDS,
        connect_timeout_seconds: float = PRICE_FETCH_CONNECT_TIMEOUT_SECONDS,
        max_pages: int = RETAIL_MAX_PAGES,
        retry_policy: Optional[HttpRetryPolicy] = None,
    ) -> None:
        self.base_url = base_url
        self.currency = currency
        self.timeout_seconds = timeout_seconds
        self.connect_timeout_seconds = connect_timeout_seconds
        self.max_pages = max_pages
        self.retry_policy = retry_policy or HttpRetryPolicy()

    async def fetch_rows(self, context: PriceContext, region: str) -> List[Dict[str, Any]]:
        """Price rows for one meter context; the resolver's fetcher."""
        return await self.query(build_filter(context, region), label=f"{context.family}/{context.tier}")

    async def query(self, filter_str: str, *, label: str = "") -> List[Dict[str, Any]]:
        if not filter_str:
            return []

        url: Optional[str] = self.base_url
        params: Optional[Dict[str, str]] = {"$filter": filter_str}
        if self.currency:
            params["currencyCode"] = self.currency

        items: List[Dict[str, Any]] = []
        seen: Set[Tuple[str, str, str, str, str]] = set()
        page = 0

        timeout = httpx.Timeout(self.timeout_seconds, connect=self.connect_timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout) as client:
            while url and page < self.max_pages:
                page += 1
                _LOGGER.debug("retail query [%s] page %d url=%s", label, page, url)
                data = await self._get_json(client, url, params)
                for it in data.get("Items") or data.get("items") or []:
                    ident = _row_identity(it)
                    if ident in seen:
                        continue
                    seen.add(ident)
                    items.append(it)

                next_url = data.get("NextPageLink") or data.get("nextPageLink")
                if next_url and self.currency and "currencyCode=" not in next_url:
                    sep = "&" if "?" in next_url else "?"
                    next_url = f"{next_url}{sep}currencyCode={self.currency}"
                url = next_url
                # NextPageLink already carries the query string.
                params = None

        _LOGGER.debug("retail query [%s]: %d rows over %d page(s)", label, len(items), page)
        return items

    async def _get_json(self, client, url: str, params: Optional[Dict[str, str]]) -> Dict[str, Any]:
        attempt = 0
        while True:
            try:
                resp = await client.get(url, params=params)
            except (httpx.TimeoutException, httpx.TransportError) as ex:
                if not self.retry_policy.should_retry(attempt):
                    raise RetailApiError(
                        f"Retail API request failed after {attempt + 1} attempt(s): {ex!r}"
                    ) from ex
                _LOGGER.warning("Retail API transport error (attempt %d): %r", attempt + 1, ex)
                await self.retry_policy.wait_async(attempt)
                attempt += 1
                continue

            status = resp.status_code
            if status >= 400:
                if self.retry_policy.should_retry(attempt, status):
                    retry_after = resp.headers.get("Retry-After")
                    _LOGGER.warning(
                        "Retail API HTTP %d (attempt %d), retry_after=%s", status, attempt + 1, retry_after
                    )
                    await self.retry_policy.wait_async(attempt, retry_after)
                    attempt += 1
                    continue
                raise RetailApiError(f"Retail API returned HTTP {status} for {url}")

            data = resp.json()
            if not isinstance(data, dict):
                raise RetailApiError("Retail API returned a non-object payload")
            return data
