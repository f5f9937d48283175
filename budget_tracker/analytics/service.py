"""
Analytics Query Service

Stateless dispatcher between a dashboard request and the aggregator.

For every query:
1. Identity → required, then the configured role gate
2. Date range → resolved against the service clock
3. Snapshot → read fresh from the Ledger Store
4. View → computed by the matching aggregator function

GUARANTEES:
- Every answer is computed from the current ledger, never from a cache
- Unknown view names are refused, not defaulted
"""

from datetime import datetime
from typing import Callable, Optional, Union
from uuid import UUID

from budget_tracker.analytics import aggregator
from budget_tracker.analytics.date_range import resolve_date_range
from budget_tracker.audit import AuditLogger, create_correlation_id
from budget_tracker.config import AppSettings, get_settings
from budget_tracker.errors import Unauthorized, ValidationFailed
from budget_tracker.models.analytics import (
    AnalyticsView,
    ApprovalRateRow,
    BudgetVsSpentRow,
    CategorySpendingRow,
    EmployeeSpendingRow,
    MonthlySpendingRow,
)
from budget_tracker.models.ledger import Identity, ValidationIssue, utcnow
from budget_tracker.services.storage import LedgerStorageInterface
from budget_tracker.validation import can_view_analytics, require_identity


VIEW_HANDLERS = {
    AnalyticsView.BUDGET_VS_SPENT: aggregator.budget_vs_spent,
    AnalyticsView.SPENDING_BY_CATEGORY: aggregator.spending_by_category,
    AnalyticsView.SPENDING_BY_EMPLOYEE: aggregator.spending_by_employee,
    AnalyticsView.MONTHLY_SPENDING_TRENDS: aggregator.monthly_spending_trend,
    AnalyticsView.EXPENSE_APPROVAL_RATES: aggregator.expense_approval_rates,
}


class AnalyticsQueryService:
    """Answers analytics queries from a fresh ledger snapshot."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utcnow,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._clock = clock
        self._settings = settings or get_settings().app

    def _resolve_view(self, view: Union[AnalyticsView, str]) -> AnalyticsView:
        try:
            return AnalyticsView(view)
        except ValueError:
            allowed = ", ".join(v.value for v in AnalyticsView)
            raise ValidationFailed([ValidationIssue(
                field="view",
                issue_type="invalid_value",
                message=f"Unknown analytics view '{view}'",
                severity="error",
                suggested_fix=f"Use one of: {allowed}",
            )])

    async def query(
        self,
        view: Union[AnalyticsView, str],
        identity: Optional[Identity],
        date_range: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list:
        """
        Compute one analytics view.

        Args:
            view: Which view to compute
            identity: The caller
            date_range: "30", "90", "180", "ytd", "all" or None

        Returns:
            The view's rows

        Raises:
            Unauthorized: No identity, or a role outside the analytics gate
            ValidationFailed: Unknown view
        """
        identity = require_identity(identity, "view analytics")
        correlation_id = correlation_id or create_correlation_id()

        if not can_view_analytics(identity.role, self._settings.analytics_roles_list):
            if self._audit_logger:
                await self._audit_logger.log_authorization_denied(
                    user_id=identity.user_id,
                    role=identity.role.value,
                    action="view analytics",
                    correlation_id=correlation_id,
                )
            raise Unauthorized("view analytics", identity.role.value)

        view = self._resolve_view(view)
        cutoff = resolve_date_range(date_range, self._clock())

        snapshot = await self._storage.snapshot()
        rows = VIEW_HANDLERS[view](snapshot, cutoff)

        if self._audit_logger:
            await self._audit_logger.log_analytics_query(
                view=view.value,
                user_id=identity.user_id,
                date_range=date_range,
                row_count=len(rows),
                correlation_id=correlation_id,
            )

        return rows

    async def budget_vs_spent(
        self,
        identity: Optional[Identity],
        date_range: Optional[str] = None,
    ) -> list[BudgetVsSpentRow]:
        return await self.query(AnalyticsView.BUDGET_VS_SPENT, identity, date_range)

    async def spending_by_category(
        self,
        identity: Optional[Identity],
        date_range: Optional[str] = None,
    ) -> list[CategorySpendingRow]:
        return await self.query(AnalyticsView.SPENDING_BY_CATEGORY, identity, date_range)

    async def spending_by_employee(
        self,
        identity: Optional[Identity],
        date_range: Optional[str] = None,
    ) -> list[EmployeeSpendingRow]:
        return await self.query(AnalyticsView.SPENDING_BY_EMPLOYEE, identity, date_range)

    async def monthly_spending_trends(
        self,
        identity: Optional[Identity],
        date_range: Optional[str] = None,
    ) -> list[MonthlySpendingRow]:
        return await self.query(AnalyticsView.MONTHLY_SPENDING_TRENDS, identity, date_range)

    async def expense_approval_rates(
        self,
        identity: Optional[Identity],
        date_range: Optional[str] = None,
    ) -> list[ApprovalRateRow]:
        return await self.query(AnalyticsView.EXPENSE_APPROVAL_RATES, identity, date_range)
