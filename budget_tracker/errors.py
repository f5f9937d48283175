"""
Domain Errors

Typed failures raised by the lifecycle manager, the analytics service and
the authorization helpers. Each carries an ``http_status`` hint so that
whatever transport binds the operations can map them without guessing.

These are never swallowed into a generic success.
"""

from typing import Optional

from budget_tracker.models.ledger import ValidationIssue


class BudgetTrackerError(Exception):
    """Base exception for domain failures."""

    http_status = 400


class ValidationFailed(BudgetTrackerError):
    """Malformed input: non-positive amount, unknown category, missing field."""

    http_status = 422

    def __init__(self, issues: list[ValidationIssue], message: Optional[str] = None):
        self.issues = issues
        if message is None:
            fields = ", ".join(sorted({issue.field for issue in issues})) or "input"
            message = f"Validation failed for: {fields}"
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "message": str(self),
            "issues": [issue.model_dump() for issue in self.issues],
        }


class NotFound(BudgetTrackerError):
    """A referenced project, expense or user does not exist."""

    http_status = 404

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} not found: {entity_id}")


class Unauthorized(BudgetTrackerError):
    """Missing identity, or a role that may not perform the action."""

    http_status = 403

    def __init__(self, action: str, role: Optional[str] = None):
        self.action = action
        self.role = role
        if role is None:
            message = f"Authentication required to {action}"
        else:
            message = f"Role '{role}' may not {action}"
        super().__init__(message)


class InvalidTransition(BudgetTrackerError):
    """
    Review attempted on an expense that is no longer pending.

    The caller must re-fetch the expense before deciding anything else.
    """

    http_status = 409

    def __init__(self, expense_id: int, current_status: str):
        self.expense_id = expense_id
        self.current_status = current_status
        super().__init__(
            f"Expense {expense_id} is {current_status}; only pending expenses can be reviewed"
        )
