from .tables import render_batch_table, render_estimate_table, render_forecast_table

__all__ = ["render_batch_table", "render_estimate_table", "render_forecast_table"]
