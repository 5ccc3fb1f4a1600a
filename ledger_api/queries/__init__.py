"""Consultas de lectura sobre el ledger."""

from .monthly_summary import MonthlySummary, MetricMonthSummary, build_monthly_summary, month_bounds

__all__ = ["MonthlySummary", "MetricMonthSummary", "build_monthly_summary", "month_bounds"]
