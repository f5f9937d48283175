"""Expense lifecycle and project directory."""

from budget_tracker.lifecycle.manager import ExpenseLifecycleManager
from budget_tracker.lifecycle.projects import ProjectDirectory

__all__ = ["ExpenseLifecycleManager", "ProjectDirectory"]
