"""
Main Orchestrator for Budget Tracker

This module ties together all the components and exposes the logical
operations a transport (HTTP routes, a CLI, a job) binds to:
1. Projects (list what the caller may see)
2. Expenses (submit, review, list, detail)
3. Analytics (budget vs spent, category, employee, monthly, approval rates)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every call carries an explicit Identity, never ambient session state
- Reviews go through the store's compare-and-set, never read-then-write
- Every refusal surfaces as a typed error

This is the "glue" layer. It owns no business rules of its own.
"""

from datetime import datetime
from typing import Callable, Optional, Union

import structlog

from budget_tracker.analytics import AnalyticsQueryService
from budget_tracker.audit import AuditLogger
from budget_tracker.config import AppSettings, get_settings
from budget_tracker.lifecycle import ExpenseLifecycleManager, ProjectDirectory
from budget_tracker.models.analytics import (
    ApprovalRateRow,
    BudgetVsSpentRow,
    CategorySpendingRow,
    EmployeeSpendingRow,
    MonthlySpendingRow,
)
from budget_tracker.models.ledger import (
    Expense,
    ExpenseDetails,
    ExpenseDraft,
    ExpenseStatus,
    Identity,
    Project,
    ProjectStatus,
    ReviewDecision,
    utcnow,
)
from budget_tracker.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
)
from budget_tracker.validation import ExpenseValidator


logger = structlog.get_logger(__name__)


class BudgetTrackerApp:
    """
    Facade over the lifecycle manager, project directory and analytics.

    One method per logical operation. Errors from the components
    propagate unchanged.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        lifecycle: Optional[ExpenseLifecycleManager] = None,
        analytics: Optional[AnalyticsQueryService] = None,
        projects: Optional[ProjectDirectory] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._lifecycle = lifecycle or ExpenseLifecycleManager(
            storage, audit_logger=audit_logger
        )
        self._analytics = analytics or AnalyticsQueryService(
            storage, audit_logger=audit_logger
        )
        self._projects = projects or ProjectDirectory(storage)

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    async def list_projects(
        self,
        identity: Optional[Identity],
        client_id: Optional[int] = None,
        status: Optional[Union[ProjectStatus, str]] = None,
    ) -> list[Project]:
        return await self._projects.list_projects(identity, client_id=client_id, status=status)

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def list_expenses(
        self,
        identity: Optional[Identity],
        status: Optional[Union[ExpenseStatus, str]] = None,
    ) -> list[Expense]:
        return await self._lifecycle.list_expenses(identity, status=status)

    async def create_expense(
        self,
        draft: Union[ExpenseDraft, dict],
        identity: Optional[Identity],
    ) -> Expense:
        return await self._lifecycle.submit(draft, identity)

    async def review_expense(
        self,
        expense_id: int,
        decision: Union[ReviewDecision, str],
        identity: Optional[Identity],
        feedback: Optional[str] = None,
    ) -> Expense:
        return await self._lifecycle.review(expense_id, decision, identity, feedback)

    async def get_expense_details(
        self,
        expense_id: int,
        identity: Optional[Identity],
    ) -> ExpenseDetails:
        return await self._lifecycle.get_expense_details(expense_id, identity)

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------

    async def get_budget_vs_spent(
        self,
        identity: Optional[Identity],
    ) -> list[BudgetVsSpentRow]:
        return await self._analytics.budget_vs_spent(identity)

    async def get_spending_by_category(
        self,
        identity: Optional[Identity],
        date_range: Optional[str] = None,
    ) -> list[CategorySpendingRow]:
        return await self._analytics.spending_by_category(identity, date_range)

    async def get_spending_by_employee(
        self,
        identity: Optional[Identity],
        date_range: Optional[str] = None,
    ) -> list[EmployeeSpendingRow]:
        return await self._analytics.spending_by_employee(identity, date_range)

    async def get_monthly_spending_trends(
        self,
        identity: Optional[Identity],
        date_range: Optional[str] = None,
    ) -> list[MonthlySpendingRow]:
        return await self._analytics.monthly_spending_trends(identity, date_range)

    async def get_expense_approval_rates(
        self,
        identity: Optional[Identity],
        date_range: Optional[str] = None,
    ) -> list[ApprovalRateRow]:
        return await self._analytics.expense_approval_rates(identity, date_range)


def create_app_components(
    settings: Optional[AppSettings] = None,
    storage: Optional[LedgerStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    clock: Callable[[], datetime] = utcnow,
) -> BudgetTrackerApp:
    """
    Factory function to create all application components.

    Args:
        settings: App settings; loaded from the environment when omitted
        storage: Ledger Store to use instead of the configured backend
        audit_storage: Activity log store to use instead of the configured one
        clock: Source of "now" for new expenses and date ranges

    Returns:
        A wired BudgetTrackerApp
    """
    settings = settings or get_settings().app

    if storage is None:
        if settings.storage_backend == "google_sheets":
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            if audit_storage is None:
                audit_storage = GoogleSheetsAuditStorage(sheets_client)
        else:
            storage = InMemoryLedgerStorage()

    if audit_storage is None:
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    validator = ExpenseValidator(settings)

    lifecycle = ExpenseLifecycleManager(
        storage,
        validator=validator,
        audit_logger=audit_logger,
        clock=clock,
        settings=settings,
    )
    analytics = AnalyticsQueryService(
        storage,
        audit_logger=audit_logger,
        clock=clock,
        settings=settings,
    )

    logger.info(
        "app_components_created",
        storage_backend=type(storage).__name__,
        environment=settings.app_environment,
    )

    return BudgetTrackerApp(
        storage,
        lifecycle=lifecycle,
        analytics=analytics,
        projects=ProjectDirectory(storage),
        audit_logger=audit_logger,
    )
