"""
Analytics Models

Aggregate views are NOT entities. They are recomputed from a
LedgerSnapshot on every query and never persisted.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from budget_tracker.models.ledger import Expense, Project, User, utcnow


class AnalyticsView(str, Enum):
    """Names of the aggregate views the dashboards can ask for."""
    BUDGET_VS_SPENT = "budget_vs_spent"
    SPENDING_BY_CATEGORY = "spending_by_category"
    SPENDING_BY_EMPLOYEE = "spending_by_employee"
    MONTHLY_SPENDING_TRENDS = "monthly_spending_trends"
    EXPENSE_APPROVAL_RATES = "expense_approval_rates"


class LedgerSnapshot(BaseModel):
    """
    Everything an aggregation needs, read in one pass.

    The aggregator works on this and nothing else.
    """
    model_config = ConfigDict(frozen=True)

    projects: list[Project] = Field(default_factory=list)
    users: list[User] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)
    taken_at: datetime = Field(default_factory=utcnow)


def utilization_percent(spent: Decimal, budget: Decimal) -> int:
    """
    Share of the budget already spent, as a whole percentage.

    A zero budget reports 0. Over-budget projects report more than 100.
    """
    if budget == 0:
        return 0
    ratio = Decimal(spent) / Decimal(budget) * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class BudgetVsSpentRow(BaseModel):
    project: str
    budget: Decimal
    spent: Decimal

    @property
    def utilization_percent(self) -> int:
        return utilization_percent(self.spent, self.budget)


class CategorySpendingRow(BaseModel):
    category_name: str
    amount: Decimal


class EmployeeSpendingRow(BaseModel):
    employee: str
    amount: Decimal
    employee_id: Optional[int] = None


class MonthlySpendingRow(BaseModel):
    """One month of trend lines. Month is formatted YYYY-MM."""

    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    equipment: Decimal = Decimal("0")
    labor: Decimal = Decimal("0")
    transport: Decimal = Decimal("0")


class ApprovalRateRow(BaseModel):
    status: str = Field(..., pattern="^(Pending|Approved|Rejected)$")
    count: int = Field(ge=0)
