"""Cost forecast from a series of historical daily totals.

The band around the projected mid value widens with the coefficient of
variation; it is a dispersion band, not a percentile interval. Short series
(fewer than FORECAST_MIN_SAMPLES points) still report their growth rate
but never a trend.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Sequence, Tuple, Union

from ..config import FORECAST_HORIZON_DAYS, FORECAST_MAX_CONFIDENCE, FORECAST_MIN_SAMPLES

TREND_INCREASING = "Increasing"
TREND_DECREASING = "Decreasing"
TREND_STABLE = "Stable"

# daily growth (% of mean per day) beyond which a trend is reported
TREND_THRESHOLD_PERCENT = 0.5

MIN_CONFIDENCE = 10.0
SHORT_SERIES_CONFIDENCE = 30.0


@dataclass(frozen=True)
class CostForecast:
    low_estimate: float
    mid_estimate: float
    high_estimate: float
    confidence_percent: float
    confidence_level: str
    trend: str
    daily_growth_rate_percent: float
    standard_deviation: float
    coefficient_of_variation: float
    mean_daily_cost: float
    sample_count: int
    horizon_days: int
    risk_factors: Tuple[str, ...] = ()


def _stats(values: Sequence[float]) -> Tuple[float, float, float]:
    """(mean, population std, cv); cv is 0 when the mean is 0."""
    n = len(values)
    if n == 0:
        return 0.0, 0.0, 0.0
    mean = sum(values) / n
    var = sum((v - mean) ** 2 for v in values) / n
    std = math.sqrt(var)
    cv = std / mean if mean > 0 else 0.0
    return mean, std, cv


def _slope(values: Sequence[float]) -> float:
    """Least-squares slope against the sample index."""
    n = len(values)
    if n < 2:
        return 0.0
    x_mean = (n - 1) / 2.0
    y_mean = sum(values) / n
    num = sum((i - x_mean) * (v - y_mean) for i, v in enumerate(values))
    den = sum((i - x_mean) ** 2 for i in range(n))
    return num / den if den else 0.0


def confidence_level(confidence_percent: float) -> str:
    if confidence_percent >= 80:
        return "High"
    if confidence_percent >= 50:
        return "Medium"
    return "Low"


def _confidence(cv: float, n: int, mean: float, stable: bool, *, min_samples: int, max_confidence: float) -> float:
    if mean <= 0:
        return MIN_CONFIDENCE
    if n < min_samples:
        # short history: too little data to trust either trend or dispersion
        return min(SHORT_SERIES_CONFIDENCE, max_confidence)
    if cv == 0:
        return float(max_confidence)
    score = 75.0
    if cv > 0.5:
        score -= 30
    elif cv > 0.3:
        score -= 20
    elif cv > 0.1:
        score -= 10
    if stable:
        score += 10
    score += min(10.0, (n - min_samples) / 3.0)
    return max(MIN_CONFIDENCE, min(float(max_confidence), score))


def forecast(
    daily_costs: Iterable[float],
    *,
    horizon_days: int = FORECAST_HORIZON_DAYS,
    min_samples: int = FORECAST_MIN_SAMPLES,
    max_confidence: float = FORECAST_MAX_CONFIDENCE,
) -> CostForecast:
    """Project total cost over the next ``horizon_days`` days.

    Always returns a populated forecast; an empty or all-zero series yields
    zeros with low confidence instead of raising.
    """
    values = [max(0.0, float(v)) for v in daily_costs]
    n = len(values)
    mean, std, cv = _stats(values)

    growth = 0.0
    if n >= 2 and mean > 0:
        growth = _slope(values) / mean * 100.0

    if n < min_samples or abs(growth) <= TREND_THRESHOLD_PERCENT:
        trend = TREND_STABLE
    elif growth > 0:
        trend = TREND_INCREASING
    else:
        trend = TREND_DECREASING

    # mid: mean daily cost compounded linearly over the horizon midpoint
    projected_daily = mean
    if trend != TREND_STABLE:
        projected_daily = max(0.0, mean * (1.0 + growth / 100.0 * (horizon_days / 2.0)))
    mid = projected_daily * horizon_days

    # band widens with dispersion; floor keeps some width for tiny samples
    spread = max(cv, 0.05 if n < min_samples else 0.0)
    low = max(0.0, mid * (1.0 - spread))
    high = mid * (1.0 + spread)

    confidence = _confidence(cv, n, mean, trend == TREND_STABLE, min_samples=min_samples, max_confidence=max_confidence)

    risks: List[str] = []
    if n and mean == 0:
        risks.append("No cost recorded in the history window")
    if n < min_samples:
        risks.append(f"Only {n} daily samples; at least {min_samples} are needed for trend detection")
    if growth > 5.0:
        risks.append(f"High daily growth rate ({growth:.1f}% per day)")
    if cv > 0.5:
        risks.append(f"High cost volatility (CV {cv:.2f})")
    if confidence < 50:
        risks.append(f"Low forecast confidence ({confidence:.0f}%)")

    return CostForecast(
        low_estimate=low,
        mid_estimate=mid,
        high_estimate=high,
        confidence_percent=confidence,
        confidence_level=confidence_level(confidence),
        trend=trend,
        daily_growth_rate_percent=growth,
        standard_deviation=std,
        coefficient_of_variation=cv,
        mean_daily_cost=mean,
        sample_count=n,
        horizon_days=int(horizon_days),
        risk_factors=tuple(risks),
    )


DateLike = Union[date, datetime, str]


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()


def daily_costs_from_history(
    samples: Iterable[Tuple[DateLike, float]],
    *,
    fill_missing: bool = True,
) -> List[float]:
    """Sum dated cost samples per calendar day, ordered oldest first.

    Days with no sample between the first and last day count as 0 when
    ``fill_missing`` is set.
    """
    per_day: Dict[date, float] = {}
    for when, cost in samples:
        d = _as_date(when)
        per_day[d] = per_day.get(d, 0.0) + float(cost)
    if not per_day:
        return []
    days = sorted(per_day)
    if not fill_missing:
        return [per_day[d] for d in days]
    first = days[0]
    span = (days[-1] - first).days + 1
    out: List[float] = []
    for offset in range(span):
        d = date.fromordinal(first.toordinal() + offset)
        out.append(per_day.get(d, 0.0))
    return out
