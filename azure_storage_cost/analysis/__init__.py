"""Cost aggregation and forecasting."""

from .aggregator import CostAggregator, CostTotals
from .forecast import CostForecast, daily_costs_from_history, forecast

__all__ = ["CostAggregator", "CostTotals", "CostForecast", "daily_costs_from_history", "forecast"]
