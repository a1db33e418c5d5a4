import pytest

from azure_storage_cost.errors import ValidationFailed
from azure_storage_cost.inputs import metrics as m
from azure_storage_cost.inputs.normalize import normalize, normalize_and_validate, validate
from azure_storage_cost.inputs.resources import (
    BlockDiskResource,
    FileShareResource,
    NasVolumeResource,
    load_resource,
)
from azure_storage_cost.inputs.types import BYTES_PER_GIB, CoolDataAssumptions, bytes_to_gib
from azure_storage_cost.permutations import classify

GIB = BYTES_PER_GIB
ANF_ID = "/subscriptions/s1/resourceGroups/rg/providers/Microsoft.NetApp/netAppAccounts/a/capacityPools/p/volumes/v"


def _anf(**kw):
    base = dict(resource_id=ANF_ID, name="vol1", region="eastus", service_level="Standard")
    base.update(kw)
    return NasVolumeResource(**base)


def test_bytes_to_gib_is_binary():
    assert bytes_to_gib(GIB) == 1.0
    assert bytes_to_gib(None) is None


def test_load_resource_from_arm_record():
    record = {
        "id": ANF_ID,
        "name": "acct/pool/vol1",
        "type": "Microsoft.NetApp/netAppAccounts/capacityPools/volumes",
        "location": "West Europe",
        "properties": {"serviceLevel": "Premium", "usageThreshold": 3000 * GIB, "coolAccess": True},
    }
    res = load_resource(record)
    assert isinstance(res, NasVolumeResource)
    assert res.region == "westeurope"
    assert res.provisioned_gib == 3000
    assert res.cool_access is True
    assert classify(*res.classification_args()).id == 6


@pytest.mark.parametrize(
    "record,tier,redundancy",
    [
        ({"family": "file_share", "sku": {"name": "Premium_ZRS"}, "shareQuota": 100}, "Premium", "ZRS"),
        ({"family": "file_share", "sku": "PremiumV2_LRS", "shareQuota": 100}, "ProvisionedV2SSD", "LRS"),
        ({"family": "file_share", "sku": "StandardV2_GRS", "shareQuota": 100}, "ProvisionedV2HDD", "GRS"),
        ({"family": "file_share", "sku": "Standard_LRS", "accessTier": "Cool"}, "Cool", "LRS"),
        ({"family": "file_share", "sku": "Standard_LRS"}, "TransactionOptimized", "LRS"),
    ],
)
def test_file_share_tier_from_sku(record, tier, redundancy):
    res = load_resource(record)
    assert isinstance(res, FileShareResource)
    assert (res.tier, res.redundancy) == (tier, redundancy)


def test_load_block_disk():
    res = load_resource(
        {
            "type": "Microsoft.Compute/disks",
            "id": "/subscriptions/s1/resourceGroups/rg/providers/Microsoft.Compute/disks/d1",
            "location": "eastus",
            "sku": {"name": "Premium_LRS", "tier": "Premium"},
            "properties": {"diskSizeGB": 100, "tier": "P10"},
        }
    )
    assert isinstance(res, BlockDiskResource)
    assert res.size_gib == 100
    assert classify(*res.classification_args()).id == 4


def test_load_resource_rejects_unknown_records():
    with pytest.raises(ValueError):
        load_resource({"type": "Microsoft.Storage/storageAccounts/blobServices/containers"})
    with pytest.raises(ValueError):
        load_resource({"family": "nas_volume", "usageThreshold": "lots"})


def test_minimum_capacity_violation_is_reported():
    perm = classify("nas_volume", "Standard")
    inputs = normalize(_anf(provisioned_gib=30), perm)
    issues = validate(inputs, perm)
    assert [i.issue for i in issues] == ["minimum"]
    with pytest.raises(ValidationFailed) as ei:
        normalize_and_validate(_anf(provisioned_gib=30), perm)
    assert ei.value.issues[0].key == "provisioned_gib"
    assert "50" in ei.value.issues[0].message


def test_cool_access_minimum_is_higher():
    perm = classify("nas_volume", "Standard", cool_access_enabled=True)
    inputs = normalize(_anf(provisioned_gib=1000, cool_access=True), perm, assumptions=CoolDataAssumptions())
    assert any(i.issue == "minimum" for i in validate(inputs, perm))


def test_validate_collects_every_issue():
    perm = classify("nas_volume", "Flexible")
    inputs = normalize(_anf(resource_id="", service_level="Flexible"), perm)
    keys = {i.key for i in validate(inputs, perm)}
    assert {"resource_id", "provisioned_gib", "throughput_mibps"} <= keys


def test_validate_rejects_mismatched_flags():
    perm = classify("nas_volume", "Premium")
    inputs = normalize(_anf(provisioned_gib=100, service_level="Premium"), perm)
    from dataclasses import replace

    bad = replace(inputs, cool_access_enabled=True, double_encryption_enabled=True)
    issues = {i.issue for i in validate(bad, perm)}
    assert "conflict" in issues


def test_cool_split_from_metrics():
    perm = classify("nas_volume", "Standard", cool_access_enabled=True)
    payload = {
        "schemaVersion": 1,
        "periodDays": 15,
        "metrics": {
            m.COOL_TIER_SIZE: {"average": 1000 * GIB},
            m.COOL_TIER_WRITE: {"total": 5 * GIB},
            m.COOL_TIER_READ: {"total": 2 * GIB},
        },
    }
    inputs = normalize(_anf(provisioned_gib=4000, cool_access=True), perm, payload)
    assert inputs.cool_gib == pytest.approx(1000)
    assert inputs.hot_gib == pytest.approx(3000)
    # 15-day totals scaled to the 30-day billing period
    assert inputs.tiered_to_cool_gib == pytest.approx(10)
    assert inputs.retrieved_from_cool_gib == pytest.approx(4)
    assert not inputs.used_cool_assumptions
    assert validate(inputs, perm) == []


def test_cool_split_never_exceeds_capacity():
    perm = classify("nas_volume", "Standard", cool_access_enabled=True)
    payload = {"schemaVersion": 1, "periodDays": 30, "metrics": {m.COOL_TIER_SIZE: {"average": 9000 * GIB}}}
    inputs = normalize(_anf(provisioned_gib=4000, cool_access=True), perm, payload, assumptions=CoolDataAssumptions())
    assert inputs.cool_gib == pytest.approx(4000)
    assert inputs.hot_gib == 0


def test_malformed_metrics_fall_back_to_all_hot(caplog):
    perm = classify("nas_volume", "Standard", cool_access_enabled=True)
    inputs = normalize(_anf(provisioned_gib=4000, cool_access=True), perm, "{not json")
    assert inputs.metrics_fallback is True
    assert inputs.hot_gib == 4000
    assert inputs.cool_gib == 0
    assert inputs.tiered_to_cool_gib == 0
    assert inputs.retrieved_from_cool_gib == 0
    assert "malformed metrics" in caplog.text
    assert validate(inputs, perm) == []


def test_assumptions_fill_cool_split():
    perm = classify("nas_volume", "Premium", cool_access_enabled=True)
    inputs = normalize(
        _anf(provisioned_gib=5000, cool_access=True, service_level="Premium"),
        perm,
        assumptions=CoolDataAssumptions(cool_data_percent=80, retrieval_percent=15),
    )
    assert inputs.used_cool_assumptions
    assert inputs.cool_gib == pytest.approx(4000)
    assert inputs.hot_gib == pytest.approx(1000)
    assert inputs.tiered_to_cool_gib == 0
    assert inputs.retrieved_from_cool_gib == pytest.approx(600)


def test_missing_cool_data_is_a_validation_error_without_assumptions():
    perm = classify("nas_volume", "Standard", cool_access_enabled=True)
    inputs = normalize(_anf(provisioned_gib=4000, cool_access=True), perm)
    missing = {i.key for i in validate(inputs, perm) if i.issue == "missing"}
    assert {"hot_gib", "cool_gib", "tiered_to_cool_gib", "retrieved_from_cool_gib"} <= missing


@pytest.mark.parametrize("percent", [-1, 101, None])
def test_cool_assumptions_are_bounded(percent):
    with pytest.raises(ValueError):
        CoolDataAssumptions(cool_data_percent=percent)


@pytest.mark.parametrize("throughput,expected", [(200, 72), (100, 0), (128, 0)])
def test_throughput_above_flat_baseline_is_never_negative(throughput, expected):
    perm = classify("nas_volume", "Flexible")
    inputs = normalize(_anf(provisioned_gib=100, service_level="Flexible", throughput_mibps=throughput), perm)
    assert inputs.included_throughput_mibps == 128
    assert inputs.throughput_above_base_mibps == expected


def test_per_tib_baseline():
    perm = classify("nas_volume", "Premium")
    inputs = normalize(_anf(provisioned_gib=2048, service_level="Premium"), perm)
    assert inputs.included_throughput_mibps == pytest.approx(128)


def test_pay_as_you_go_share_uses_consumed_capacity():
    perm = classify("file_share", "Hot", redundancy="LRS")
    share = FileShareResource(
        resource_id="share1", name="share1", region="eastus", tier="Hot", redundancy="LRS", provisioned_gib=5120
    )
    payload = {
        "schemaVersion": 1,
        "periodDays": 30,
        "metrics": {
            m.USED_CAPACITY: {"average": 200 * GIB},
            m.READ_TRANSACTIONS: {"total": 50000},
            m.EGRESS: {"total": 3 * GIB},
        },
    }
    inputs = normalize(share, perm, payload)
    assert inputs.billable_capacity_gib == pytest.approx(200)
    assert inputs.read_transactions == 50000
    assert inputs.write_transactions is None
    assert inputs.egress_gib == pytest.approx(3)
    assert validate(inputs, perm) == []


def test_disk_capacity_is_provisioned_size():
    perm = classify("block_disk", "PremiumSSDv2")
    disk = BlockDiskResource(
        resource_id="d1", name="d1", region="eastus", tier="PremiumSSDv2", redundancy="LRS",
        size_gib=1024, iops=5000, throughput_mibps=200,
    )
    inputs = normalize(disk, perm)
    assert inputs.provisioned_gib == 1024
    assert inputs.included_iops == 3000
    assert inputs.iops == 5000
    assert inputs.throughput_above_base_mibps == 75
    assert validate(inputs, perm) == []
