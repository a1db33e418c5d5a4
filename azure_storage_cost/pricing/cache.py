"""Region/meter-key price cache with TTL and JSON persistence.

Two-level layout: region is the partition, meter key is the row::

    {"eastus": {"files-hot-lrs-capacity": {...entry...}}}

The persisted file is the only state the engine keeps between runs; it can be
deleted at any time (a cold start just re-fetches).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, Optional

from rich.console import Console

from ..config import CACHE_FILE, PRICE_CACHE_TTL_DAYS
from ..errors import InvalidMeterKey
from .meters import decompose_meter_key

console = Console()
_LOGGER = logging.getLogger(__name__)

# Bump when the persisted entry schema changes.
CACHE_SCHEMA_VERSION = 1


def _parse_ts(value: Any) -> datetime:
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class PriceCacheEntry:
    region: str
    meter_key: str
    unit_price: float
    unit_of_measure: str
    currency: str
    fetched_at: datetime
    expires_at: datetime
    meter_name: str = ""
    sku_name: str = ""
    source: str = "retail"  # "retail" | "default"

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["fetched_at"] = self.fetched_at.isoformat()
        data["expires_at"] = self.expires_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceCacheEntry":
        return cls(
            region=str(data["region"]),
            meter_key=str(data["meter_key"]),
            unit_price=float(data["unit_price"]),
            unit_of_measure=str(data.get("unit_of_measure") or ""),
            currency=str(data.get("currency") or ""),
            fetched_at=_parse_ts(data["fetched_at"]),
            expires_at=_parse_ts(data["expires_at"]),
            meter_name=str(data.get("meter_name") or ""),
            sku_name=str(data.get("sku_name") or ""),
            source=str(data.get("source") or "retail"),
        )


def new_entry(
    region: str,
    meter_key: str,
    row: Dict[str, Any],
    *,
    now: datetime,
    ttl: timedelta = timedelta(days=PRICE_CACHE_TTL_DAYS),
    currency: str = "",
) -> PriceCacheEntry:
    """Cache entry for one retail row, fetched at ``now``."""
    return PriceCacheEntry(
        region=region,
        meter_key=meter_key,
        unit_price=float(row.get("retailPrice", row.get("unitPrice")) or 0.0),
        unit_of_measure=str(row.get("unitOfMeasure") or ""),
        currency=str(row.get("currencyCode") or currency or ""),
        fetched_at=now,
        expires_at=now + ttl,
        meter_name=str(row.get("meterName") or ""),
        sku_name=str(row.get("skuName") or ""),
    )


class PriceCache:
    """In-memory two-level cache; safe for concurrent readers on one event loop."""

    def __init__(self) -> None:
        self._partitions: Dict[str, Dict[str, PriceCacheEntry]] = {}

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._partitions.values())

    def __iter__(self) -> Iterator[PriceCacheEntry]:
        for rows in self._partitions.values():
            yield from rows.values()

    def get(self, region: str, meter_key: str) -> Optional[PriceCacheEntry]:
        return self._partitions.get(region, {}).get(meter_key)

    def put(self, entry: PriceCacheEntry) -> bool:
        """Store ``entry``; rejects (and logs) entries whose key does not decompose."""
        if not entry.region:
            _LOGGER.warning("Rejected price cache write with empty region for key %r", entry.meter_key)
            return False
        try:
            decompose_meter_key(entry.meter_key)
        except InvalidMeterKey as ex:
            _LOGGER.warning("Rejected price cache write for region=%s: %s", entry.region, ex)
            return False
        self._partitions.setdefault(entry.region, {})[entry.meter_key] = entry
        return True

    def purge_expired(self, now: datetime) -> int:
        removed = 0
        for region in list(self._partitions):
            rows = self._partitions[region]
            for key in [k for k, e in rows.items() if e.is_expired(now)]:
                del rows[key]
                removed += 1
            if not rows:
                del self._partitions[region]
        return removed

    def clear(self) -> None:
        self._partitions.clear()

    # -------- persistence --------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": CACHE_SCHEMA_VERSION,
            "partitions": {
                region: {key: entry.to_dict() for key, entry in rows.items()}
                for region, rows in self._partitions.items()
            },
        }

    def load(self, path: str = CACHE_FILE) -> None:
        self._partitions = {}
        if not os.path.exists(path):
            return
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as ex:
            console.print(f"[yellow]Warning: failed to load {path}: {ex}[/yellow]")
            return
        if not isinstance(data, dict) or data.get("schemaVersion") != CACHE_SCHEMA_VERSION:
            console.print(f"[yellow]Warning: ignoring {path}: unknown cache schema[/yellow]")
            return
        partitions = data.get("partitions") or {}
        if not isinstance(partitions, dict) or not all(isinstance(rows, dict) for rows in partitions.values()):
            console.print(f"[yellow]Warning: ignoring {path}: malformed partitions[/yellow]")
            return
        skipped = 0
        for region, rows in partitions.items():
            for key, raw in rows.items():
                try:
                    entry = PriceCacheEntry.from_dict(raw)
                except (KeyError, TypeError, ValueError):
                    skipped += 1
                    continue
                if entry.region != region or entry.meter_key != key or not self.put(entry):
                    skipped += 1
        if skipped:
            console.print(f"[yellow]Warning: skipped {skipped} malformed entries in {path}[/yellow]")

    def save(self, path: str = CACHE_FILE) -> None:
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        except OSError as ex:
            console.print(f"[yellow]Warning: failed to save {path}: {ex}[/yellow]")
