import asyncio
from types import SimpleNamespace
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from azure_storage_cost.errors import RetailApiError
from azure_storage_cost.pricing import retail_api
from azure_storage_cost.pricing.http_policy import HttpRetryPolicy
from azure_storage_cost.pricing.meters import PriceContext


class DummyResponse:
    def __init__(self, payload, status_code=200, headers=None):
        self._payload = payload
        self.status_code = status_code
        self.headers = headers or {}

    def json(self):
        return self._payload


def _fake_httpx(client_cls):
    return SimpleNamespace(
        AsyncClient=client_cls,
        Timeout=lambda *a, **k: None,
        TimeoutException=httpx.TimeoutException,
        TransportError=httpx.TransportError,
    )


def _no_wait_policy(max_retries=3):
    policy = HttpRetryPolicy(max_retries=max_retries, base_delay=0, max_delay=0)

    async def _no_sleep(attempt, retry_after=None):
        return None

    policy.wait_async = _no_sleep
    return policy


CTX = PriceContext("file_share", "Hot", "LRS", "Storage", "Files v2", "Hot LRS")


def test_pagination_dedup_and_currency(monkeypatch):
    requests = []

    class DummyClient:
        def __init__(self, *args, **kwargs):
            self.calls = 0

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        async def get(self, url, params=None):
            requests.append((url, params))
            self.calls += 1
            if self.calls == 1:
                return DummyResponse(
                    {
                        "Items": [
                            {"meterId": "m1", "skuName": "Hot LRS", "meterName": "Hot LRS Data Stored"},
                            {"meterId": "m1", "skuName": "Hot LRS", "meterName": "Hot LRS Data Stored"},
                        ],
                        "NextPageLink": "https://prices.example/api?$skip=100",
                    }
                )
            return DummyResponse(
                {"Items": [{"meterId": "m2", "skuName": "Hot LRS", "meterName": "Hot Write Operations"}]}
            )

    monkeypatch.setattr(retail_api, "httpx", _fake_httpx(DummyClient))
    client = retail_api.RetailPricesClient(currency="EUR", retry_policy=_no_wait_policy())
    rows = asyncio.run(client.fetch_rows(CTX, "eastus"))

    assert [r["meterId"] for r in rows] == ["m1", "m2"]
    assert len(requests) == 2
    first_url, first_params = requests[0]
    assert first_params["currencyCode"] == "EUR"
    assert "armRegionName eq 'eastus'" in first_params["$filter"]
    second_url, second_params = requests[1]
    assert second_params is None
    assert parse_qs(urlparse(second_url).query)["currencyCode"] == ["EUR"]


def test_page_cap(monkeypatch):
    class DummyClient:
        def __init__(self, *args, **kwargs):
            self.calls = 0

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        async def get(self, url, params=None):
            self.calls += 1
            return DummyResponse(
                {
                    "Items": [{"meterId": f"m{self.calls}"}],
                    "NextPageLink": f"https://prices.example/api?$skip={self.calls * 100}",
                }
            )

    monkeypatch.setattr(retail_api, "httpx", _fake_httpx(DummyClient))
    client = retail_api.RetailPricesClient(max_pages=3, retry_policy=_no_wait_policy())
    rows = asyncio.run(client.query("serviceName eq 'Storage'"))
    assert len(rows) == 3


def test_retries_on_429_then_succeeds(monkeypatch):
    statuses = [429, 503, 200]

    class DummyClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        async def get(self, url, params=None):
            status = statuses.pop(0)
            if status != 200:
                return DummyResponse({}, status_code=status, headers={"Retry-After": "0"})
            return DummyResponse({"Items": [{"meterId": "ok"}]})

    monkeypatch.setattr(retail_api, "httpx", _fake_httpx(DummyClient))
    client = retail_api.RetailPricesClient(retry_policy=_no_wait_policy())
    rows = asyncio.run(client.query("serviceName eq 'Storage'"))
    assert rows == [{"meterId": "ok"}]
    assert statuses == []


def test_gives_up_after_retries(monkeypatch):
    attempts = []

    class DummyClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        async def get(self, url, params=None):
            attempts.append(url)
            raise httpx.ConnectTimeout("slow")

    monkeypatch.setattr(retail_api, "httpx", _fake_httpx(DummyClient))
    client = retail_api.RetailPricesClient(retry_policy=_no_wait_policy(max_retries=2))
    with pytest.raises(RetailApiError):
        asyncio.run(client.query("serviceName eq 'Storage'"))
    assert len(attempts) == 3


def test_non_retryable_status_fails_fast(monkeypatch):
    calls = []

    class DummyClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        async def get(self, url, params=None):
            calls.append(url)
            return DummyResponse({}, status_code=400)

    monkeypatch.setattr(retail_api, "httpx", _fake_httpx(DummyClient))
    client = retail_api.RetailPricesClient(retry_policy=_no_wait_policy())
    with pytest.raises(RetailApiError):
        asyncio.run(client.query("serviceName eq 'Storage'"))
    assert len(calls) == 1


def test_retry_policy_delays():
    policy = HttpRetryPolicy(max_retries=3, base_delay=0.5, max_delay=4)
    assert policy.delay_for(0, retry_after="2") == 2.0
    assert policy.delay_for(0, retry_after="100") == 4
    assert 0.5 <= policy.delay_for(0) <= 0.6
    assert policy.delay_for(10) <= 4 * 1.2
    assert policy.should_retry(0, 429)
    assert policy.should_retry(0, 502)
    assert not policy.should_retry(0, 404)
    assert not policy.should_retry(3)
