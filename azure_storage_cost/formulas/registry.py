from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from ..permutations.registry import PermutationRegistry
from ..permutations.types import Permutation
from .base import Formula
from .capacity import CapacityFormula
from .cool_split import CoolSplitFormula
from .fixed_tier import FixedTierFormula
from .flat_baseline import FlatBaselineFormula
from .performance import PerformanceFormula


@dataclass
class FormulaRegistry:
    """Dispatch table from permutation key to formula.

    ``formulas`` holds one instance per formula shape; ``by_permutation`` is
    filled from a catalogue so every permutation resolves to exactly one
    formula without inspecting its fields at evaluation time.
    """

    formulas: Dict[str, Formula] = field(default_factory=dict)
    by_permutation: Dict[str, Formula] = field(default_factory=dict)

    def register(self, formula: Formula) -> None:
        self.formulas[formula.name] = formula

    def bind(self, permutations: Iterable[Permutation]) -> None:
        for perm in permutations:
            formula = self.formulas.get(perm.formula)
            if formula is None:
                raise ValueError(f"Permutation {perm.key} uses unknown formula '{perm.formula}'")
            self.by_permutation[perm.key] = formula

    def get(self, permutation: Permutation) -> Optional[Formula]:
        formula = self.by_permutation.get(permutation.key)
        if formula is None:
            formula = self.formulas.get(permutation.formula)
        return formula


def build_formula_registry(catalog: Optional[PermutationRegistry] = None) -> FormulaRegistry:
    reg = FormulaRegistry()
    reg.register(CapacityFormula())
    reg.register(CoolSplitFormula())
    reg.register(FlatBaselineFormula())
    reg.register(FixedTierFormula())
    reg.register(PerformanceFormula())
    if catalog is not None:
        reg.bind(catalog.all())
    return reg
