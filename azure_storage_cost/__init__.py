"""Storage cost permutation and pricing engine for Azure Files, Azure NetApp Files and managed disks."""

from .analysis import CostAggregator, CostForecast, forecast
from .errors import (
    ClassificationError,
    FormulaError,
    IncompatibleFlags,
    PriceUnavailable,
    StorageCostError,
    UnsupportedConfiguration,
    ValidationFailed,
)
from .estimator import CostEstimate, StorageCostEstimator
from .formulas import CostComponent, evaluate
from .inputs import CoolDataAssumptions, UniversalCostInputs, load_resource, normalize, validate
from .permutations import Permutation, classify
from .pricing.resolver import PriceResolver

__version__ = "0.1.0"

__all__ = [
    "ClassificationError",
    "CoolDataAssumptions",
    "CostAggregator",
    "CostComponent",
    "CostEstimate",
    "CostForecast",
    "FormulaError",
    "IncompatibleFlags",
    "Permutation",
    "PriceResolver",
    "PriceUnavailable",
    "StorageCostError",
    "StorageCostEstimator",
    "UniversalCostInputs",
    "UnsupportedConfiguration",
    "ValidationFailed",
    "classify",
    "evaluate",
    "forecast",
    "load_resource",
    "normalize",
    "validate",
]
