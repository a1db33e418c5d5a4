from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Union

from ..config import DEFAULT_PERIOD_DAYS
from ..formulas.types import CostComponent

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class CostTotals:
    total_for_period: float
    per_day: float
    period_days: float
    breakdown_by_type: Dict[str, float]
    percentages: Dict[str, float]
    is_estimated: bool
    stale: bool


class CostAggregator:
    """Running total of cost components over one analysis window.

    Totals are recomputed from the stored components on every call, so the
    aggregator never drifts from what was added.
    """

    def __init__(self, period_days: float = DEFAULT_PERIOD_DAYS) -> None:
        if period_days is None or float(period_days) <= 0:
            raise ValueError(f"period_days must be positive, got {period_days!r}")
        self.period_days = float(period_days)
        self._components: List[CostComponent] = []

    @classmethod
    def for_window(cls, start: DateLike, end: DateLike) -> "CostAggregator":
        """Aggregator whose per-day figure divides by the days in [start, end)."""
        delta = end - start
        days = delta.total_seconds() / 86400.0
        if days <= 0:
            raise ValueError(f"Analysis window must end after it starts ({start} .. {end})")
        return cls(period_days=days)

    def add(self, component: CostComponent) -> None:
        self._components.append(component)

    def extend(self, components: Iterable[CostComponent]) -> None:
        for c in components:
            self.add(c)

    @property
    def components(self) -> List[CostComponent]:
        return list(self._components)

    def total_for_period(self) -> float:
        return sum(c.cost_for_period for c in self._components)

    def breakdown_by_type(self) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for c in self._components:
            out[c.component_type] = out.get(c.component_type, 0.0) + c.cost_for_period
        return out

    def percentages(self) -> Dict[str, float]:
        total = self.total_for_period()
        breakdown = self.breakdown_by_type()
        if total == 0:
            return {k: 0.0 for k in breakdown}
        return {k: v / total * 100.0 for k, v in breakdown.items()}

    def totals(self) -> CostTotals:
        total = self.total_for_period()
        return CostTotals(
            total_for_period=total,
            per_day=total / self.period_days,
            period_days=self.period_days,
            breakdown_by_type=self.breakdown_by_type(),
            percentages=self.percentages(),
            is_estimated=any(c.is_estimated for c in self._components),
            stale=any(c.stale for c in self._components),
        )
