from .base import BaseFormula, Formula
from .engine import evaluate
from .registry import FormulaRegistry, build_formula_registry
from .types import COMPONENT_TYPES, CostComponent

__all__ = [
    "BaseFormula",
    "Formula",
    "FormulaRegistry",
    "build_formula_registry",
    "evaluate",
    "COMPONENT_TYPES",
    "CostComponent",
]
