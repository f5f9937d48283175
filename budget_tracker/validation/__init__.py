"""Expense validation and role capability checks."""

from budget_tracker.validation.authorization import (
    can_create_project,
    can_review,
    can_view_all_expenses,
    can_view_analytics,
    require_identity,
)
from budget_tracker.validation.validator import ExpenseValidator

__all__ = [
    "ExpenseValidator",
    "can_create_project",
    "can_review",
    "can_view_all_expenses",
    "can_view_analytics",
    "require_identity",
]
