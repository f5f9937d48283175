"""
Expense Lifecycle Manager

Owns the state machine of an expense:

    pending --approve--> approved   (terminal)
    pending --reject---> rejected   (terminal)

DESIGN DECISION: The manager never reads-then-writes the status itself.
The check "is it still pending?" and the write of the new review state are
ONE call to ``LedgerStorageInterface.transition_expense``, so two reviewers
racing on the same expense always produce exactly one winner.

Every refusal raises a typed error from ``budget_tracker.errors`` and is
audited. Nothing here turns a failure into a success.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from budget_tracker.audit import AuditLogger, create_correlation_id
from budget_tracker.config import AppSettings, get_settings
from budget_tracker.errors import InvalidTransition, NotFound, Unauthorized, ValidationFailed
from budget_tracker.models.ledger import (
    Expense,
    ExpenseCategory,
    ExpenseDetails,
    ExpenseDraft,
    ExpenseStatus,
    Identity,
    NewExpense,
    ReviewDecision,
    ValidationIssue,
    review_for,
    utcnow,
)
from budget_tracker.services.storage import (
    ConflictError,
    LedgerStorageInterface,
    NotFoundError,
)
from budget_tracker.validation import (
    ExpenseValidator,
    can_review,
    can_view_all_expenses,
    require_identity,
)


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


def issues_from_pydantic(error: ValidationError) -> list[ValidationIssue]:
    """Turn a pydantic ValidationError into field-level issues."""
    issues = []
    for err in error.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "input"
        issues.append(ValidationIssue(
            field=field,
            issue_type="invalid_value",
            message=err.get("msg", "Invalid value"),
            severity="error",
        ))
    return issues


def parse_enum(enum_cls, value, field: str):
    """Accept an enum member or its value, else raise ValidationFailed."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationFailed([ValidationIssue(
            field=field,
            issue_type="invalid_value",
            message=f"Unknown {field} '{value}'",
            severity="error",
            suggested_fix=f"Use one of: {allowed}",
        )])


class ExpenseLifecycleManager:
    """
    Submit, review and read expenses.

    Flow for a submission:
    1. Identity → required, and it overrides any submitter in the draft
    2. Validate → two-stage validation, errors refuse the submission
    3. Project → must exist
    4. Write → Ledger Store assigns the id, status pending

    Flow for a review:
    1. Role → admin or manager
    2. Feedback → warning (or error, when configured) if a rejection has none
    3. Compare-and-set → pending to approved/rejected in one store call
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[ExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utcnow,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().app
        self._validator = validator or ExpenseValidator(self._settings)
        self._audit_logger = audit_logger
        self._clock = clock

    async def _deny(
        self,
        identity: Identity,
        action: str,
        correlation_id: Optional[UUID],
    ) -> Unauthorized:
        if self._audit_logger:
            await self._audit_logger.log_authorization_denied(
                user_id=identity.user_id,
                role=identity.role.value,
                action=action,
                correlation_id=correlation_id,
            )
        return Unauthorized(action, identity.role.value)

    async def _conflict(
        self,
        expense_id: int,
        identity: Identity,
        current_status: str,
        correlation_id: Optional[UUID],
    ) -> InvalidTransition:
        if self._audit_logger:
            await self._audit_logger.log_review_conflict(
                expense_id=expense_id,
                user_id=identity.user_id,
                current_status=current_status,
                correlation_id=correlation_id,
            )
        return InvalidTransition(expense_id, current_status)

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def submit(
        self,
        draft: Union[ExpenseDraft, dict],
        identity: Optional[Identity],
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Record a new pending expense.

        Args:
            draft: The submission, as a model or a plain mapping
            identity: The requester; becomes the submitter

        Returns:
            The stored expense

        Raises:
            Unauthorized: No identity
            ValidationFailed: Malformed draft, nothing is written
            NotFound: The project doesn't exist
        """
        identity = require_identity(identity, "submit expenses")
        correlation_id = correlation_id or create_correlation_id()

        if not isinstance(draft, ExpenseDraft):
            try:
                draft = ExpenseDraft.model_validate(draft)
            except ValidationError as e:
                issues = issues_from_pydantic(e)
                if self._audit_logger:
                    await self._audit_logger.log_validation_failed(
                        identity.user_id, issues, correlation_id
                    )
                raise ValidationFailed(issues)

        # The requester is always the submitter
        draft = draft.model_copy(update={"submitted_by_id": identity.user_id})

        project = None
        if draft.project_id is not None:
            project = await self._storage.get_project(draft.project_id)

        result = await self._validator.validate(draft, project)
        if not result.schema_valid:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    identity.user_id, result.issues, correlation_id
                )
            raise ValidationFailed(result.errors)

        if project is None:
            raise NotFound("project", draft.project_id)

        if result.warnings:
            logger.warning(
                "expense_submission_warnings",
                user_id=identity.user_id,
                project_id=project.id,
                warnings=result.warnings,
            )

        new_expense = NewExpense(
            project_id=project.id,
            amount=draft.amount.quantize(CENT),
            description=draft.description,
            category=ExpenseCategory(draft.category.lower()),
            receipt_url=draft.receipt_url or None,
            submitted_by_id=identity.user_id,
            created_at=self._clock(),
        )

        try:
            expense = await self._storage.create_expense(new_expense)
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation="create_expense",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_expense_submitted(expense, correlation_id)

        return expense

    # -------------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------------

    async def review(
        self,
        expense_id: int,
        decision: Union[ReviewDecision, str],
        identity: Optional[Identity],
        feedback: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Approve or reject a pending expense.

        CRITICAL: Only one review of an expense can ever succeed. A second
        one, concurrent or not, fails with InvalidTransition.

        Raises:
            Unauthorized: No identity, or not a reviewer role
            ValidationFailed: Bad decision value or unacceptable feedback
            NotFound: The expense doesn't exist
            InvalidTransition: The expense is no longer pending
        """
        identity = require_identity(identity, "review expenses")
        correlation_id = correlation_id or create_correlation_id()

        if not can_review(identity.role):
            raise await self._deny(identity, "review expenses", correlation_id)

        decision = parse_enum(ReviewDecision, decision, "decision")

        issues = self._validator.validate_review(decision, feedback)
        errors = [issue for issue in issues if issue.severity == "error"]
        if errors:
            # A closed or missing expense outranks bad feedback
            current = await self._storage.get_expense(expense_id)
            if current is None:
                raise NotFound("expense", expense_id)
            if not current.is_pending:
                raise await self._conflict(
                    expense_id, identity, current.status.value, correlation_id
                )
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    identity.user_id, errors, correlation_id
                )
            raise ValidationFailed(errors)

        try:
            expense = await self._storage.transition_expense(
                expense_id,
                ExpenseStatus.PENDING,
                review_for(decision, identity.user_id, feedback),
            )
        except NotFoundError:
            raise NotFound("expense", expense_id)
        except ConflictError as e:
            raise await self._conflict(
                expense_id, identity, e.current_status, correlation_id
            )

        if any(issue.field == "feedback" for issue in issues):
            logger.warning(
                "expense_rejected_without_feedback",
                expense_id=expense_id,
                reviewer_id=identity.user_id,
            )
            if self._audit_logger:
                await self._audit_logger.log_feedback_missing(
                    expense_id=expense_id,
                    user_id=identity.user_id,
                    correlation_id=correlation_id,
                )

        if self._audit_logger:
            await self._audit_logger.log_expense_reviewed(expense, correlation_id)

        return expense

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_expense(
        self,
        expense_id: int,
        identity: Optional[Identity],
    ) -> Expense:
        """Fetch one expense. Non-reviewers can only see their own."""
        identity = require_identity(identity, "view expenses")

        expense = await self._storage.get_expense(expense_id)
        if expense is None:
            raise NotFound("expense", expense_id)

        if (
            not can_view_all_expenses(identity.role)
            and expense.submitted_by_id != identity.user_id
        ):
            raise await self._deny(identity, "view this expense", None)

        return expense

    async def get_expense_details(
        self,
        expense_id: int,
        identity: Optional[Identity],
    ) -> ExpenseDetails:
        """
        Fetch an expense joined with its submitter, reviewer and project.

        Missing related rows come back as None instead of failing.
        """
        expense = await self.get_expense(expense_id, identity)

        submitter = await self._storage.get_user(expense.submitted_by_id)
        reviewer = None
        if expense.reviewed_by_id is not None:
            reviewer = await self._storage.get_user(expense.reviewed_by_id)
        project = await self._storage.get_project(expense.project_id)

        return ExpenseDetails(
            expense=expense,
            submitter=submitter,
            reviewer=reviewer,
            project=project,
        )

    async def list_expenses(
        self,
        identity: Optional[Identity],
        status: Optional[Union[ExpenseStatus, str]] = None,
        project_id: Optional[int] = None,
    ) -> list[Expense]:
        """
        List expenses visible to the caller, newest first.

        Admins and managers see every expense; everyone else sees
        only what they submitted.
        """
        identity = require_identity(identity, "view expenses")
        if status is not None:
            status = parse_enum(ExpenseStatus, status, "status")

        submitted_by_id = None
        if not can_view_all_expenses(identity.role):
            submitted_by_id = identity.user_id

        return await self._storage.list_expenses(
            project_id=project_id,
            submitted_by_id=submitted_by_id,
            status=status,
        )

    async def list_expenses_by_project(
        self,
        project_id: int,
        identity: Optional[Identity],
    ) -> list[Expense]:
        identity = require_identity(identity, "view expenses")
        if await self._storage.get_project(project_id) is None:
            raise NotFound("project", project_id)
        return await self.list_expenses(identity, project_id=project_id)
