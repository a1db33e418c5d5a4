import asyncio
from datetime import date, timedelta

import pytest

from azure_storage_cost.billing.cost_management import ActualCostEntry
from azure_storage_cost.errors import BillingQueryError, RetailApiError
from azure_storage_cost.estimator import (
    STATUS_ACTUAL,
    STATUS_INVALID,
    STATUS_PRICED,
    STATUS_STALE,
    STATUS_UNAVAILABLE,
    StorageCostEstimator,
    estimate_confidence,
    summarize,
)
from azure_storage_cost.pricing.resolver import PriceResolver
from azure_storage_cost.utils.clock import FrozenClock

SHARE_ID = "/subscriptions/s1/resourceGroups/rg/providers/Microsoft.Storage/storageAccounts/acct/fileServices/default/shares/share1"

HOT_ROWS = [
    {
        "meterName": "Hot LRS Data Stored",
        "skuName": "Hot LRS",
        "retailPrice": 0.0255,
        "unitOfMeasure": "1 GiB/Month",
        "currencyCode": "USD",
    },
]


def _share(**kw):
    record = {
        "family": "file_share",
        "id": SHARE_ID,
        "name": "share1",
        "location": "East US",
        "sku": "Standard_LRS",
        "accessTier": "Hot",
        "usedGib": 500,
    }
    record.update(kw)
    return record


class Fetcher:
    def __init__(self, rows=None):
        self.rows = HOT_ROWS if rows is None else rows
        self.error = None
        self.calls = 0

    async def __call__(self, context, region):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [r for r in self.rows if r["skuName"] == context.sku_name]


class FakeBilling:
    def __init__(self, entries=None, error=None):
        self.entries = entries or []
        self.error = error

    async def query_resource_costs(self, resource_id, start, end):
        if self.error is not None:
            raise self.error
        return list(self.entries)


def _estimator(t0, fetcher=None, **kw):
    clock = FrozenClock(t0)
    resolver = PriceResolver(fetcher or Fetcher(), clock=clock)
    return StorageCostEstimator(resolver, clock=clock, **kw), clock


def test_priced_estimate(t0):
    est, _ = _estimator(t0)
    result = asyncio.run(est.estimate(_share()))
    assert result.status == STATUS_PRICED
    assert result.ok
    assert result.region == "eastus"
    assert result.permutation_name == "Hot LRS"
    assert result.confidence == 80
    assert result.total_for_period == pytest.approx(12.75)
    assert result.totals.per_day == pytest.approx(12.75 / 30)
    assert result.components[0].meter_key == "files-hot-lrs-capacity"
    assert result.warnings == ()


def test_region_override(t0):
    fetcher = Fetcher()
    est, _ = _estimator(t0, fetcher)
    result = asyncio.run(est.estimate(_share(), region="West Europe"))
    assert result.region == "westeurope"


def test_unknown_record_is_invalid(t0):
    est, _ = _estimator(t0)
    result = asyncio.run(est.estimate({"id": "x", "type": "Microsoft.Sql/servers"}))
    assert result.status == STATUS_INVALID
    assert result.resource_id == "x"
    assert result.errors
    assert not result.ok


def test_incompatible_flags_are_invalid(t0):
    est, _ = _estimator(t0)
    record = {
        "family": "nas_volume",
        "id": "vol1",
        "serviceLevel": "Premium",
        "coolAccess": True,
        "encryptionType": "Double",
        "provisionedGib": 4096,
    }
    result = asyncio.run(est.estimate(record))
    assert result.status == STATUS_INVALID
    assert "cannot be enabled" in result.errors[0]


def test_validation_failure_carries_every_issue(t0):
    est, _ = _estimator(t0)
    record = {"family": "nas_volume", "id": "vol1", "serviceLevel": "Flexible", "provisionedGib": 30}
    result = asyncio.run(est.estimate(record))
    assert result.status == STATUS_INVALID
    assert result.permutation_name == "Flexible"
    assert {i.key for i in result.issues} == {"provisioned_gib", "throughput_mibps"}
    assert len(result.errors) == 2


def test_missing_price_is_unavailable(t0):
    fetcher = Fetcher()
    fetcher.error = RetailApiError("down")
    est, _ = _estimator(t0, fetcher)
    result = asyncio.run(est.estimate(_share()))
    assert result.status == STATUS_UNAVAILABLE
    assert result.components == ()
    assert result.total_for_period == 0
    assert "capacity" in result.errors[0]


def test_stale_price_lowers_confidence(t0):
    fetcher = Fetcher()
    est, clock = _estimator(t0, fetcher)
    asyncio.run(est.estimate(_share()))
    clock.advance(timedelta(days=8))
    fetcher.error = RetailApiError("down")

    result = asyncio.run(est.estimate(_share()))
    assert result.status == STATUS_STALE
    assert result.total_for_period == pytest.approx(12.75)
    assert result.confidence == 65
    assert result.totals.stale
    assert any("stale" in w for w in result.warnings)


def test_cool_assumptions_are_reported(t0):
    rows = [
        {"meterName": "Premium Capacity", "skuName": "Premium", "retailPrice": 0.000403, "unitOfMeasure": "1 GiB/Hour"},
        {
            "meterName": "Standard Storage with Cool Access Capacity",
            "skuName": "Standard Storage with Cool Access",
            "retailPrice": 0.000034,
            "unitOfMeasure": "1 GiB/Hour",
        },
        {
            "meterName": "Standard Storage with Cool Access Data Transfer",
            "skuName": "Standard Storage with Cool Access",
            "retailPrice": 0.01,
            "unitOfMeasure": "1 GiB",
        },
    ]
    est, _ = _estimator(t0, Fetcher(rows))
    record = {"family": "nas_volume", "id": "vol1", "serviceLevel": "Premium", "coolAccess": True, "provisionedGib": 5000}
    result = asyncio.run(est.estimate(record))
    assert result.status == STATUS_PRICED, result.errors
    assert result.confidence == 70
    assert any("assumptions" in w for w in result.warnings)
    by_type = result.totals.breakdown_by_type
    assert set(by_type) == {"capacity", "cool_capacity", "tiering", "retrieval"}
    assert by_type["retrieval"] == pytest.approx(4000 * 0.15 * 0.01)


def test_actual_billing_replaces_the_estimate(t0):
    billing = FakeBilling(
        [
            ActualCostEntry(SHARE_ID, "Hot LRS Data Stored", "Files v2", 11.0, "USD", "capacity"),
            ActualCostEntry(SHARE_ID, "Hot Write Operations", "Files v2", 1.0, "USD", "transactions"),
        ]
    )
    est, _ = _estimator(t0, billing=billing)
    result = asyncio.run(est.estimate(_share(), actuals_window=(date(2024, 4, 1), date(2024, 4, 11))))
    assert result.status == STATUS_ACTUAL
    assert result.confidence == 95
    assert result.total_for_period == pytest.approx(12.0)
    assert result.totals.period_days == 10
    assert not result.totals.is_estimated
    assert all(not c.is_estimated for c in result.components)


def test_billing_failure_keeps_the_estimate(t0):
    est, _ = _estimator(t0, billing=FakeBilling(error=BillingQueryError("403")))
    result = asyncio.run(est.estimate(_share(), actuals_window=(date(2024, 4, 1), date(2024, 4, 11))))
    assert result.status == STATUS_PRICED
    assert result.total_for_period == pytest.approx(12.75)
    assert any("Actual billing unavailable" in w for w in result.warnings)


def test_estimate_many_isolates_failures(t0):
    fetcher = Fetcher()
    est, _ = _estimator(t0, fetcher)
    records = [
        _share(),
        {"id": "bad", "type": "Microsoft.Sql/servers"},
        object(),
        _share(id="/subscriptions/s1/other", name="share2", usedGib=100),
    ]
    results = asyncio.run(est.estimate_many(records))
    assert [r.status for r in results] == [STATUS_PRICED, STATUS_INVALID, STATUS_UNAVAILABLE, STATUS_PRICED]
    assert results[3].total_for_period == pytest.approx(2.55)
    assert "AttributeError" in results[2].errors[0]
    # both shares price the same meter with a single fetch
    assert fetcher.calls == 1

    summary = summarize(results)
    assert summary["total_for_period"] == pytest.approx(15.3)
    assert summary["by_status"] == {STATUS_PRICED: 2, STATUS_INVALID: 1, STATUS_UNAVAILABLE: 1}
    assert summary["by_family"] == {"file_share": pytest.approx(15.3)}


def test_estimate_many_looks_up_metrics_by_resource_id(t0):
    est, _ = _estimator(t0)
    record = _share(usedGib=None)
    metrics = {SHARE_ID: {"UsedCapacity": 100 * 1024 ** 3}}
    [result] = asyncio.run(est.estimate_many([record], metrics))
    assert result.total_for_period == pytest.approx(2.55)


@pytest.mark.parametrize(
    "stale,assumed,fallback,expected",
    [
        (False, False, False, 80),
        (True, False, False, 65),
        (False, True, False, 70),
        (True, True, True, 40),
    ],
)
def test_estimate_confidence(stale, assumed, fallback, expected):
    assert estimate_confidence(stale=stale, used_assumptions=assumed, metrics_fallback=fallback) == expected


FLEXIBLE_ROWS = [
    {
        "meterName": "Flexible Service Level Capacity",
        "skuName": "Flexible Service Level",
        "retailPrice": 0.1,
        "unitOfMeasure": "1 GiB/Month",
        "currencyCode": "USD",
    },
    {
        "meterName": "Flexible Service Level Throughput MiBps",
        "skuName": "Flexible Service Level",
        "retailPrice": 1.0,
        "unitOfMeasure": "1 MiB/s/Month",
        "currencyCode": "USD",
    },
    {
        "meterName": "Standard Storage with Cool Access Capacity",
        "skuName": "Standard Storage with Cool Access",
        "retailPrice": 0.01,
        "unitOfMeasure": "1 GiB/Month",
        "currencyCode": "USD",
    },
    {
        "meterName": "Standard Storage with Cool Access Data Transfer",
        "skuName": "Standard Storage with Cool Access",
        "retailPrice": 0.02,
        "unitOfMeasure": "1 GiB",
        "currencyCode": "USD",
    },
]


def test_flexible_what_if_raises_capacity_to_minimum(t0):
    est, _ = _estimator(t0, Fetcher(FLEXIBLE_ROWS))
    result = asyncio.run(est.estimate_flexible_what_if(20, 200, "East US"))
    assert result.status == STATUS_PRICED
    assert result.permutation_name == "Flexible"
    assert result.region == "eastus"
    assert "raised from 20 GiB to the 50 GiB minimum" in result.warnings[0]
    by_role = {c.meter_role: c for c in result.components}
    assert by_role["capacity"].quantity == 50
    assert by_role["capacity"].cost_for_period == pytest.approx(5.0)
    # 200 MiB/s against 128 included
    assert by_role["throughput"].quantity == pytest.approx(72.0)
    assert result.total_for_period == pytest.approx(77.0)


def test_flexible_what_if_above_minimum_has_no_adjustment(t0):
    est, _ = _estimator(t0, Fetcher(FLEXIBLE_ROWS))
    result = asyncio.run(est.estimate_flexible_what_if(100, 100, "eastus"))
    assert result.warnings == ()
    assert result.total_for_period == pytest.approx(10.0)


def test_flexible_what_if_with_cool_access(t0):
    est, _ = _estimator(t0, Fetcher(FLEXIBLE_ROWS))
    result = asyncio.run(est.estimate_flexible_what_if(100, 100, "eastus", cool_access=True))
    assert result.status == STATUS_PRICED
    assert result.permutation_name == "Flexible (cool access)"
    assert "2400 GiB minimum" in result.warnings[0]
    assert "Cool-tier split estimated from cool data assumptions" in result.warnings
    assert result.confidence == 70
    by_role = {c.meter_role: c for c in result.components}
    # 80% of 2400 GiB cool, 15% of the cool part retrieved
    assert by_role["capacity"].quantity == pytest.approx(480.0)
    assert by_role["cool_capacity"].quantity == pytest.approx(1920.0)
    assert by_role["retrieval"].quantity == pytest.approx(288.0)
    assert result.total_for_period == pytest.approx(48.0 + 19.2 + 5.76)
