"""
Budget Aggregator

DESIGN DECISION: Aggregation is DETERMINISTIC and recomputed on every query.
Each view is a pure function of a LedgerSnapshot and an optional cutoff.
Nothing is cached and nothing is written back.

Rules shared by every view:
- Only expenses created at or after the cutoff participate
- Spend means APPROVED expenses; pending and rejected never count
- Dangling references never raise. Expenses pointing at a missing project
  are left out of per-project rows; missing submitters get a placeholder name.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from budget_tracker.models.analytics import (
    ApprovalRateRow,
    BudgetVsSpentRow,
    CategorySpendingRow,
    EmployeeSpendingRow,
    LedgerSnapshot,
    MonthlySpendingRow,
)
from budget_tracker.models.ledger import Expense, ExpenseCategory, ExpenseStatus


ZERO = Decimal("0")

# Trend line -> category feeding it
TREND_BUCKETS = {
    "equipment": ExpenseCategory.EQUIPMENT,
    "labor": ExpenseCategory.LABOR,
    "transport": ExpenseCategory.TRAVEL,
}

APPROVAL_LABELS = [
    (ExpenseStatus.PENDING, "Pending"),
    (ExpenseStatus.APPROVED, "Approved"),
    (ExpenseStatus.REJECTED, "Rejected"),
]


def unknown_user_label(user_id: int) -> str:
    return f"Unknown user #{user_id}"


def in_range(expenses: Iterable[Expense], cutoff: Optional[datetime]) -> list[Expense]:
    """Expenses created at or after the cutoff (all of them when None)."""
    if cutoff is None:
        return list(expenses)
    return [e for e in expenses if e.created_at >= cutoff]


def approved(expenses: Iterable[Expense], cutoff: Optional[datetime] = None) -> list[Expense]:
    return [e for e in in_range(expenses, cutoff) if e.status == ExpenseStatus.APPROVED]


def budget_vs_spent(
    snapshot: LedgerSnapshot,
    cutoff: Optional[datetime] = None,
) -> list[BudgetVsSpentRow]:
    """One row per project, ordered by project id."""
    spent: dict[int, Decimal] = {}
    for expense in approved(snapshot.expenses, cutoff):
        spent[expense.project_id] = spent.get(expense.project_id, ZERO) + expense.amount

    return [
        BudgetVsSpentRow(
            project=project.name,
            budget=project.budget,
            spent=spent.get(project.id, ZERO),
        )
        for project in sorted(snapshot.projects, key=lambda p: p.id)
    ]


def spending_by_category(
    snapshot: LedgerSnapshot,
    cutoff: Optional[datetime] = None,
) -> list[CategorySpendingRow]:
    """
    Approved spend per category.

    Rows follow the category enumeration; categories without approved
    spend are left out.
    """
    totals: dict[ExpenseCategory, Decimal] = {}
    for expense in approved(snapshot.expenses, cutoff):
        totals[expense.category] = totals.get(expense.category, ZERO) + expense.amount

    return [
        CategorySpendingRow(category_name=category.value, amount=totals[category])
        for category in ExpenseCategory
        if category in totals
    ]


def spending_by_employee(
    snapshot: LedgerSnapshot,
    cutoff: Optional[datetime] = None,
) -> list[EmployeeSpendingRow]:
    """Approved spend per submitter, ordered by user id."""
    totals: dict[int, Decimal] = {}
    for expense in approved(snapshot.expenses, cutoff):
        totals[expense.submitted_by_id] = (
            totals.get(expense.submitted_by_id, ZERO) + expense.amount
        )

    names = {user.id: user.name for user in snapshot.users}

    return [
        EmployeeSpendingRow(
            employee=names.get(user_id, unknown_user_label(user_id)),
            amount=amount,
            employee_id=user_id,
        )
        for user_id, amount in sorted(totals.items())
    ]


def monthly_spending_trend(
    snapshot: LedgerSnapshot,
    cutoff: Optional[datetime] = None,
) -> list[MonthlySpendingRow]:
    """
    Approved spend per calendar month for the trend lines.

    Every month with at least one approved expense gets a row, in
    chronological order. Only equipment, labor and travel (the
    "transport" line) feed the trend; other categories add nothing.
    """
    months: dict[str, dict[str, Decimal]] = {}

    for expense in approved(snapshot.expenses, cutoff):
        month = expense.created_at.strftime("%Y-%m")
        buckets = months.setdefault(month, {name: ZERO for name in TREND_BUCKETS})
        for name, category in TREND_BUCKETS.items():
            if expense.category == category:
                buckets[name] += expense.amount

    return [
        MonthlySpendingRow(month=month, **buckets)
        for month, buckets in sorted(months.items())
    ]


def expense_approval_rates(
    snapshot: LedgerSnapshot,
    cutoff: Optional[datetime] = None,
) -> list[ApprovalRateRow]:
    """Count of expenses per status. All three rows are always present."""
    counts = {status: 0 for status, _ in APPROVAL_LABELS}
    for expense in in_range(snapshot.expenses, cutoff):
        counts[expense.status] += 1

    return [
        ApprovalRateRow(status=label, count=counts[status])
        for status, label in APPROVAL_LABELS
    ]
