"""
Audit Logger

DESIGN DECISION: Every submission, review decision and refused action
is logged. This provides:
1. An activity trail per project and per user
2. Debugging capability when two reviewers collide
3. Accountability for who approved what

The audit logger:
- Is async so it sits naturally inside the lifecycle calls
- Gracefully handles failures (a broken activity log never fails a review)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from budget_tracker.models.audit import AuditEvent, AuditEventBuilder
from budget_tracker.models.ledger import Expense, ValidationIssue
from budget_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (the activity log), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("budget_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_submitted(
        self,
        expense: Expense,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a new pending expense."""
        await self.log(AuditEventBuilder.expense_submitted(expense, correlation_id))

    async def log_expense_reviewed(
        self,
        expense: Expense,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an approval or rejection."""
        await self.log(AuditEventBuilder.expense_reviewed(expense, correlation_id))

    async def log_validation_failed(
        self,
        user_id: Optional[int],
        issues: list[ValidationIssue],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.validation_failed(
            user_id=user_id,
            issues=[issue.model_dump() for issue in issues],
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_authorization_denied(
        self,
        user_id: Optional[int],
        role: Optional[str],
        action: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.authorization_denied(
            user_id=user_id,
            role=role,
            action=action,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_review_conflict(
        self,
        expense_id: int,
        user_id: int,
        current_status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a review that lost the race or hit a terminal expense."""
        event = AuditEventBuilder.review_conflict(
            expense_id=expense_id,
            user_id=user_id,
            current_status=current_status,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_feedback_missing(
        self,
        expense_id: int,
        user_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.feedback_missing(
            expense_id=expense_id,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_analytics_query(
        self,
        view: str,
        user_id: int,
        date_range: Optional[str],
        row_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log analytics query execution."""
        event = AuditEventBuilder.analytics_query_executed(
            view=view,
            user_id=user_id,
            date_range=date_range,
            row_count=row_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., an expense review).
    Pass it through all subsequent operations.
    """
    return uuid4()
