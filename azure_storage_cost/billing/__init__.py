"""Optional actual-billing queries."""

from .cost_management import ActualCostEntry, CostManagementClient

__all__ = ["ActualCostEntry", "CostManagementClient"]
