"""Discovered-resource records, parsed eagerly at the boundary.

Each family has one frozen record type. ``from_record`` reads both the
camelCase shape returned by Azure Resource Manager and snake_case keys, and
converts byte quantities to GiB once. After construction a record is a plain
value with no lazy parsing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from ..config import DEFAULT_REGION
from ..permutations.classifier import normalize_family
from ..permutations.types import BLOCK_DISK, FILE_SHARE, NAS_VOLUME
from .types import bytes_to_gib

FILE_SHARE_TYPE = "Microsoft.Storage/storageAccounts/fileServices/shares"
NAS_VOLUME_TYPE = "Microsoft.NetApp/netAppAccounts/capacityPools/volumes"
BLOCK_DISK_TYPE = "Microsoft.Compute/disks"

_TYPE_FAMILIES = {
    FILE_SHARE_TYPE.lower(): FILE_SHARE,
    NAS_VOLUME_TYPE.lower(): NAS_VOLUME,
    BLOCK_DISK_TYPE.lower(): BLOCK_DISK,
}

ClassificationArgs = Tuple[str, Optional[str], bool, bool, Optional[str]]


# -------- safe getters (camelCase + snake_case) --------------------------------


def _g(it: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in it and it[k] is not None:
            return it[k]
    return None


def _props(record: Dict[str, Any]) -> Dict[str, Any]:
    props = record.get("properties")
    merged = dict(props) if isinstance(props, dict) else {}
    merged.update({k: v for k, v in record.items() if k != "properties"})
    return merged


def _float(value: Any, *, key: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Field '{key}' must be numeric, got {value!r}") from None


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "enabled")
    return bool(value)


def _gib(rec: Dict[str, Any], gib_keys: Tuple[str, ...], byte_keys: Tuple[str, ...]) -> Optional[float]:
    gib = _float(_g(rec, *gib_keys), key=gib_keys[0])
    if gib is not None:
        return gib
    return bytes_to_gib(_float(_g(rec, *byte_keys), key=byte_keys[0]))


def _sku_name(rec: Dict[str, Any]) -> str:
    sku = rec.get("sku")
    if isinstance(sku, dict):
        return str(sku.get("name") or "")
    return str(sku or _g(rec, "skuName", "sku_name") or "")


def split_sku(sku: str) -> Tuple[str, Optional[str]]:
    """'Premium_LRS' -> ('Premium', 'LRS'); 'UltraSSD_LRS' -> ('UltraSSD', 'LRS')."""
    sku = (sku or "").strip()
    if "_" not in sku:
        return sku, None
    tier, redundancy = sku.rsplit("_", 1)
    return tier, redundancy or None


def _identity(rec: Dict[str, Any]) -> Dict[str, str]:
    return {
        "resource_id": str(_g(rec, "id", "resourceId", "resource_id") or ""),
        "name": str(_g(rec, "name", "resourceName", "resource_name") or ""),
        "region": str(_g(rec, "location", "region") or DEFAULT_REGION).strip().lower().replace(" ", ""),
    }


@dataclass(frozen=True)
class FileShareResource:
    resource_id: str
    name: str
    region: str
    tier: str
    redundancy: Optional[str]
    provisioned_gib: Optional[float] = None
    used_gib: Optional[float] = None
    provisioned_iops: Optional[float] = None
    provisioned_throughput_mibps: Optional[float] = None
    snapshot_gib: Optional[float] = None
    resource_type: str = FILE_SHARE_TYPE
    family: str = FILE_SHARE

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "FileShareResource":
        rec = _props(record)
        sku_tier, redundancy = split_sku(_sku_name(rec))
        redundancy = _g(rec, "redundancy") or redundancy

        tier = str(_g(rec, "accessTier", "access_tier", "tier") or "")
        low = sku_tier.lower()
        if low == "premiumv2":
            tier = "ProvisionedV2SSD"
        elif low == "standardv2":
            tier = "ProvisionedV2HDD"
        elif not tier and low == "premium":
            tier = "Premium"
        elif not tier:
            tier = "TransactionOptimized"

        return cls(
            tier=tier,
            redundancy=redundancy,
            provisioned_gib=_float(_g(rec, "shareQuota", "share_quota", "provisionedGib", "provisioned_gib"), key="shareQuota"),
            used_gib=_gib(rec, ("usedGib", "used_gib"), ("shareUsageBytes", "share_usage_bytes")),
            provisioned_iops=_float(_g(rec, "provisionedIops", "provisioned_iops"), key="provisionedIops"),
            provisioned_throughput_mibps=_float(
                _g(rec, "provisionedBandwidthMibps", "provisioned_throughput_mibps"), key="provisionedBandwidthMibps"
            ),
            snapshot_gib=_gib(rec, ("snapshotGib", "snapshot_gib"), ("snapshotBytes", "snapshot_bytes")),
            **_identity(rec),
        )

    def classification_args(self) -> ClassificationArgs:
        return (self.family, self.tier, False, False, self.redundancy)


@dataclass(frozen=True)
class NasVolumeResource:
    resource_id: str
    name: str
    region: str
    service_level: str
    cool_access: bool = False
    double_encryption: bool = False
    provisioned_gib: Optional[float] = None
    used_gib: Optional[float] = None
    throughput_mibps: Optional[float] = None
    snapshot_gib: Optional[float] = None
    backup_gib: Optional[float] = None
    resource_type: str = NAS_VOLUME_TYPE
    family: str = NAS_VOLUME

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "NasVolumeResource":
        rec = _props(record)
        double = _bool(_g(rec, "doubleEncryption", "double_encryption", "isDoubleEncryption"))
        if not double and str(_g(rec, "encryptionType", "encryption_type") or "").lower() == "double":
            double = True
        return cls(
            service_level=str(_g(rec, "serviceLevel", "service_level", "tier") or ""),
            cool_access=_bool(_g(rec, "coolAccess", "cool_access")),
            double_encryption=double,
            provisioned_gib=_gib(rec, ("provisionedGib", "provisioned_gib"), ("usageThreshold", "usage_threshold")),
            used_gib=_gib(rec, ("usedGib", "used_gib"), ("usedBytes", "used_bytes")),
            throughput_mibps=_float(
                _g(rec, "throughputMibps", "throughput_mibps", "actualThroughputMibps"), key="throughputMibps"
            ),
            snapshot_gib=_gib(rec, ("snapshotGib", "snapshot_gib"), ("snapshotBytes", "snapshot_bytes")),
            backup_gib=_gib(rec, ("backupGib", "backup_gib"), ("backupBytes", "backup_bytes")),
            **_identity(rec),
        )

    def classification_args(self) -> ClassificationArgs:
        return (self.family, self.service_level, self.cool_access, self.double_encryption, None)


@dataclass(frozen=True)
class BlockDiskResource:
    resource_id: str
    name: str
    region: str
    tier: str
    redundancy: Optional[str]
    size_gib: Optional[float] = None
    iops: Optional[float] = None
    throughput_mibps: Optional[float] = None
    snapshot_gib: Optional[float] = None
    resource_type: str = BLOCK_DISK_TYPE
    family: str = BLOCK_DISK

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "BlockDiskResource":
        rec = _props(record)
        tier, redundancy = split_sku(_sku_name(rec))
        return cls(
            tier=str(_g(rec, "diskType", "disk_type") or tier),
            redundancy=_g(rec, "redundancy") or redundancy,
            size_gib=_gib(rec, ("diskSizeGB", "disk_size_gib", "size_gib"), ("diskSizeBytes", "disk_size_bytes")),
            iops=_float(_g(rec, "diskIOPSReadWrite", "iops"), key="diskIOPSReadWrite"),
            throughput_mibps=_float(_g(rec, "diskMBpsReadWrite", "throughput_mibps"), key="diskMBpsReadWrite"),
            snapshot_gib=_gib(rec, ("snapshotGib", "snapshot_gib"), ("snapshotBytes", "snapshot_bytes")),
            **_identity(rec),
        )

    def classification_args(self) -> ClassificationArgs:
        return (self.family, self.tier, False, False, self.redundancy)


Resource = Union[FileShareResource, NasVolumeResource, BlockDiskResource]

_RECORD_TYPES = {
    FILE_SHARE: FileShareResource,
    NAS_VOLUME: NasVolumeResource,
    BLOCK_DISK: BlockDiskResource,
}


def load_resource(record: Dict[str, Any]) -> Resource:
    """Parse a discovered-resource record into its family's record type."""
    if not isinstance(record, dict):
        raise ValueError("resource record must be a mapping")
    family = normalize_family(_g(record, "family", "storageFamily", "storage_family"))
    if not family:
        family = _TYPE_FAMILIES.get(str(_g(record, "type", "resourceType", "resource_type") or "").lower(), "")
    if not family:
        raise ValueError("Cannot determine storage family from resource record (set 'family' or 'type')")
    return _RECORD_TYPES[family].from_record(record)
