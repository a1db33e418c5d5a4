"""Resource records, metrics payloads and the canonical cost inputs."""

from .metrics import HistoricalMetrics, MetricSeries, parse_metrics
from .normalize import normalize, normalize_and_validate, validate
from .resources import BlockDiskResource, FileShareResource, NasVolumeResource, load_resource
from .types import CoolDataAssumptions, InputIssue, UniversalCostInputs

__all__ = [
    "BlockDiskResource",
    "CoolDataAssumptions",
    "FileShareResource",
    "HistoricalMetrics",
    "InputIssue",
    "MetricSeries",
    "NasVolumeResource",
    "UniversalCostInputs",
    "load_resource",
    "normalize",
    "normalize_and_validate",
    "parse_metrics",
    "validate",
]
