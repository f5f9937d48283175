"""
Data Models Package

This package contains all Pydantic models used in the Budget Tracker system.
All data flowing through the system must conform to these schemas.
"""

from budget_tracker.models.ledger import (
    ApprovedReview,
    Client,
    Expense,
    ExpenseCategory,
    ExpenseDetails,
    ExpenseDraft,
    ExpenseStatus,
    Identity,
    NewExpense,
    PendingReview,
    Project,
    ProjectStatus,
    RejectedReview,
    ReviewDecision,
    ReviewState,
    User,
    UserRole,
    ValidationIssue,
    ValidationResult,
    review_for,
    utcnow,
)
from budget_tracker.models.analytics import (
    AnalyticsView,
    ApprovalRateRow,
    BudgetVsSpentRow,
    CategorySpendingRow,
    EmployeeSpendingRow,
    LedgerSnapshot,
    MonthlySpendingRow,
    utilization_percent,
)
from budget_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "ApprovedReview",
    "Client",
    "Expense",
    "ExpenseCategory",
    "ExpenseDetails",
    "ExpenseDraft",
    "ExpenseStatus",
    "Identity",
    "NewExpense",
    "PendingReview",
    "Project",
    "ProjectStatus",
    "RejectedReview",
    "ReviewDecision",
    "ReviewState",
    "User",
    "UserRole",
    "ValidationIssue",
    "ValidationResult",
    "review_for",
    "utcnow",
    # Analytics models
    "AnalyticsView",
    "ApprovalRateRow",
    "BudgetVsSpentRow",
    "CategorySpendingRow",
    "EmployeeSpendingRow",
    "LedgerSnapshot",
    "MonthlySpendingRow",
    "utilization_percent",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
