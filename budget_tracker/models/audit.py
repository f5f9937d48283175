"""
Audit Models for Budget Tracker

Every expense submission, review decision and refused action is logged.
This provides:
1. An activity trail per project and per user
2. Debugging information when reviews conflict
3. Accountability for who approved what

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from budget_tracker.models.ledger import Expense, utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Expense lifecycle
    EXPENSE_SUBMITTED = "expense_submitted"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REJECTED = "expense_rejected"

    # Refusals
    VALIDATION_FAILED = "validation_failed"
    AUTHORIZATION_DENIED = "authorization_denied"
    REVIEW_CONFLICT = "review_conflict"
    FEEDBACK_MISSING = "feedback_missing"

    # Analytics
    ANALYTICS_QUERY_EXECUTED = "analytics_query_executed"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of the activity trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who did it, and where
    user_id: Optional[int] = Field(
        default=None,
        description="Acting user, when known"
    )
    project_id: Optional[int] = None

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'analytics')"
    )
    entity_id: Optional[int] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, project_id,
         entity_type, entity_id, correlation_id, description, details_json,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.user_id) if self.user_id is not None else "",
            str(self.project_id) if self.project_id is not None else "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id is not None else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_submitted(expense, correlation_id)
        event = AuditEventBuilder.expense_reviewed(expense, correlation_id)
    """

    @staticmethod
    def expense_submitted(
        expense: Expense,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_SUBMITTED,
            user_id=expense.submitted_by_id,
            project_id=expense.project_id,
            entity_type="expense",
            entity_id=expense.id,
            correlation_id=correlation_id,
            description=(
                f"Submitted expense of {expense.amount} for {expense.description}"
            )[:500],
            details={
                "amount": str(expense.amount),
                "category": expense.category.value,
            },
        )

    @staticmethod
    def expense_reviewed(
        expense: Expense,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        approved = expense.status.value == "approved"
        description = (
            f"{expense.status.value.capitalize()} expense of {expense.amount} "
            f"for {expense.description}"
        )
        if expense.feedback:
            description += f" with feedback: {expense.feedback}"
        return AuditEvent(
            event_type=(
                AuditEventType.EXPENSE_APPROVED
                if approved
                else AuditEventType.EXPENSE_REJECTED
            ),
            user_id=expense.reviewed_by_id,
            project_id=expense.project_id,
            entity_type="expense",
            entity_id=expense.id,
            correlation_id=correlation_id,
            description=description[:500],
            details={
                "submitted_by_id": expense.submitted_by_id,
                "feedback": expense.feedback,
            },
        )

    @staticmethod
    def validation_failed(
        user_id: Optional[int],
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="expense",
            correlation_id=correlation_id,
            description=f"Expense validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def authorization_denied(
        user_id: Optional[int],
        role: Optional[str],
        action: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTHORIZATION_DENIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Denied {action} for role {role or 'anonymous'}",
            details={"action": action, "role": role},
        )

    @staticmethod
    def review_conflict(
        expense_id: int,
        user_id: int,
        current_status: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REVIEW_CONFLICT,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Review refused: expense is already {current_status}",
            details={"current_status": current_status},
        )

    @staticmethod
    def feedback_missing(
        expense_id: int,
        user_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FEEDBACK_MISSING,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description="Expense rejected without feedback for the submitter",
        )

    @staticmethod
    def analytics_query_executed(
        view: str,
        user_id: int,
        date_range: Optional[str],
        row_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYTICS_QUERY_EXECUTED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="analytics",
            correlation_id=correlation_id,
            description=f"Analytics query {view} returned {row_count} rows",
            details={
                "view": view,
                "date_range": date_range,
                "row_count": row_count,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Ledger store error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
