"""Coarse regional default prices, used only as an opt-in last resort.

A snapshot holds a handful of per-GiB / per-10K figures for a region. Prices
served from it are always flagged as default-sourced (and therefore stale), and
each snapshot expires after REGIONAL_DEFAULTS_TTL_HOURS, after which the US
baseline replaces it until the caller supplies a newer one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from ..config import REGIONAL_DEFAULTS_TTL_HOURS
from . import meters
from .cache import PriceCacheEntry

_BRACKET_RE = re.compile(r"^[pes]\d+$")


@dataclass(frozen=True)
class RegionalPriceSnapshot:
    region: str
    currency: str
    captured_at: datetime
    standard_storage_gib_month: float = 0.06
    premium_storage_gib_month: float = 0.20
    ultra_storage_gib_month: float = 0.50
    standard_transactions_per_10k: float = 0.004
    premium_transactions_per_10k: float = 0.005
    snapshot_gib_month: float = 0.05
    backup_gib_month: float = 0.05
    egress_internet_gib: float = 0.087
    egress_intra_region_gib: float = 0.01
    egress_cross_region_gib: float = 0.02
    ttl_hours: float = REGIONAL_DEFAULTS_TTL_HOURS

    @property
    def expires_at(self) -> datetime:
        return self.captured_at + timedelta(hours=self.ttl_hours)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def price_for(self, meter_key: str) -> Optional[Tuple[float, str]]:
        """(unit price, unit of measure) for a meter key, or None when not covered."""
        family, tier, _redundancy, role = meters.decompose_meter_key(meter_key)
        premium = "premium" in tier
        ultra = "ultra" in tier

        if role == meters.ROLE_CAPACITY:
            if family == "block_disk" and _BRACKET_RE.match(tier):
                # Bracketed disks are priced per disk, not per GiB.
                return None
            if ultra:
                return self.ultra_storage_gib_month, "1 GiB/Month"
            if premium:
                return self.premium_storage_gib_month, "1 GiB/Month"
            return self.standard_storage_gib_month, "1 GiB/Month"
        if role in (
            meters.ROLE_TRANSACTIONS,
            meters.ROLE_TRANSACTIONS_READ,
            meters.ROLE_TRANSACTIONS_WRITE,
            meters.ROLE_TRANSACTIONS_LIST,
        ):
            price = self.premium_transactions_per_10k if premium else self.standard_transactions_per_10k
            return price, "10K"
        if role == meters.ROLE_SNAPSHOT:
            return self.snapshot_gib_month, "1 GiB/Month"
        if role == meters.ROLE_BACKUP:
            return self.backup_gib_month, "1 GiB/Month"
        if role == meters.ROLE_EGRESS:
            return self.egress_internet_gib, "1 GB"
        return None


def default_for_us(region: str, now: datetime, currency: str = "USD") -> RegionalPriceSnapshot:
    """US list-price baseline, reused for any region without its own snapshot."""
    return RegionalPriceSnapshot(region=region, currency=currency, captured_at=now)


class DefaultPriceTable:
    """Per-region snapshots, rebuilt once their TTL lapses."""

    def __init__(self, snapshots: Optional[Dict[str, RegionalPriceSnapshot]] = None) -> None:
        self._snapshots: Dict[str, RegionalPriceSnapshot] = dict(snapshots or {})

    def set_snapshot(self, snapshot: RegionalPriceSnapshot) -> None:
        self._snapshots[snapshot.region] = snapshot

    def snapshot(self, region: str, now: datetime) -> RegionalPriceSnapshot:
        snap = self._snapshots.get(region)
        if snap is None:
            snap = default_for_us(region, now)
        elif snap.is_expired(now):
            # an expired caller snapshot is dropped, never re-stamped
            snap = default_for_us(region, now, snap.currency)
        self._snapshots[region] = snap
        return snap

    def lookup(self, region: str, meter_key: str, now: datetime) -> Optional[PriceCacheEntry]:
        snap = self.snapshot(region, now)
        hit = snap.price_for(meter_key)
        if hit is None:
            return None
        price, uom = hit
        return PriceCacheEntry(
            region=region,
            meter_key=meter_key,
            unit_price=price,
            unit_of_measure=uom,
            currency=snap.currency,
            fetched_at=snap.captured_at,
            expires_at=snap.expires_at,
            source="default",
        )
