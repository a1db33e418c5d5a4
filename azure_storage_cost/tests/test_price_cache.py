import json
from datetime import timedelta

import pytest

from azure_storage_cost.pricing.cache import CACHE_SCHEMA_VERSION, PriceCache, PriceCacheEntry, new_entry

ROW = {"meterName": "Hot LRS Data Stored", "skuName": "Hot LRS", "retailPrice": 0.0255, "unitOfMeasure": "1 GiB/Month"}


def test_save_and_load_round_trip(tmp_path, t0):
    path = tmp_path / "cache.json"
    cache = PriceCache()
    assert cache.put(new_entry("eastus", "files-hot-lrs-capacity", ROW, now=t0, currency="USD"))
    assert cache.put(new_entry("westeurope", "anf-standard-capacity", dict(ROW, retailPrice=0.1), now=t0))
    cache.save(str(path))

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["schemaVersion"] == CACHE_SCHEMA_VERSION
    assert set(data["partitions"]) == {"eastus", "westeurope"}
    assert "files-hot-lrs-capacity" in data["partitions"]["eastus"]

    loaded = PriceCache()
    loaded.load(str(path))
    assert len(loaded) == 2
    entry = loaded.get("eastus", "files-hot-lrs-capacity")
    assert entry.unit_price == 0.0255
    assert entry.fetched_at == t0
    assert entry.expires_at == t0 + timedelta(days=7)


def test_put_rejects_malformed_keys(t0):
    cache = PriceCache()
    assert not cache.put(new_entry("eastus", "files-hot-", ROW, now=t0))
    assert not cache.put(new_entry("", "files-hot-lrs-capacity", ROW, now=t0))
    assert len(cache) == 0


def test_load_skips_malformed_entries(tmp_path, t0):
    good = new_entry("eastus", "files-hot-lrs-capacity", ROW, now=t0).to_dict()
    bad_key = dict(good, meter_key="files-hot-")
    payload = {
        "schemaVersion": CACHE_SCHEMA_VERSION,
        "partitions": {
            "eastus": {
                "files-hot-lrs-capacity": good,
                "files-hot-": bad_key,
                "files-cool-lrs-capacity": {"region": "eastus"},
            }
        },
    }
    path = tmp_path / "cache.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    cache = PriceCache()
    cache.load(str(path))
    assert len(cache) == 1


def test_missing_or_corrupt_file_is_a_cold_start(tmp_path):
    cache = PriceCache()
    cache.load(str(tmp_path / "nope.json"))
    assert len(cache) == 0

    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{not json", encoding="utf-8")
    cache.load(str(corrupt))
    assert len(cache) == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"schemaVersion": CACHE_SCHEMA_VERSION, "partitions": ["x"]},
        {"schemaVersion": CACHE_SCHEMA_VERSION, "partitions": {"eastus": ["x"]}},
    ],
)
def test_wrongly_shaped_partitions_are_a_cold_start(tmp_path, t0, payload):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    cache = PriceCache()
    cache.put(new_entry("eastus", "files-hot-lrs-capacity", ROW, now=t0))
    cache.load(str(path))
    assert len(cache) == 0


def test_purge_expired(t0):
    cache = PriceCache()
    cache.put(new_entry("eastus", "files-hot-lrs-capacity", ROW, now=t0, ttl=timedelta(days=1)))
    cache.put(new_entry("eastus", "files-cool-lrs-capacity", ROW, now=t0, ttl=timedelta(days=10)))
    assert cache.purge_expired(t0 + timedelta(days=2)) == 1
    assert [e.meter_key for e in cache] == ["files-cool-lrs-capacity"]


def test_entry_from_dict_defaults_source():
    raw = {
        "region": "eastus",
        "meter_key": "disk-p10-lrs-capacity",
        "unit_price": 19.71,
        "fetched_at": "2024-05-01T00:00:00+00:00",
        "expires_at": "2024-05-08T00:00:00+00:00",
    }
    entry = PriceCacheEntry.from_dict(raw)
    assert entry.source == "retail"
    assert entry.unit_of_measure == ""
