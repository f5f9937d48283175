"""Budget aggregation and analytics queries."""

from budget_tracker.analytics.aggregator import (
    budget_vs_spent,
    expense_approval_rates,
    monthly_spending_trend,
    spending_by_category,
    spending_by_employee,
)
from budget_tracker.analytics.date_range import resolve_date_range
from budget_tracker.analytics.service import AnalyticsQueryService

__all__ = [
    "AnalyticsQueryService",
    "budget_vs_spent",
    "expense_approval_rates",
    "monthly_spending_trend",
    "resolve_date_range",
    "spending_by_category",
    "spending_by_employee",
]
