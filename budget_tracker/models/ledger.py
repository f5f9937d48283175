"""
Core Ledger Models for Budget Tracker

These models define the strict schemas for everything the Ledger Store holds.
They are designed to:
1. Enforce the expense invariants at runtime (amount > 0, closed categories)
2. Make illegal review states unrepresentable
3. Be serializable for storage and logging

DESIGN DECISION: Submissions arrive as a permissive ExpenseDraft.
The ExpenseValidator turns a draft into field-level issues, and only a
draft that passes becomes an Expense, which is strict.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


# Amounts must stay below this (exclusive)
MAX_AMOUNT = Decimal("1e15")


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class UserRole(str, Enum):
    """
    Closed set of roles.

    Capability checks live in budget_tracker.validation.authorization;
    nothing else compares role strings.
    """
    ADMIN = "admin"
    MANAGER = "manager"
    SALESPERSON = "salesperson"
    EMPLOYEE = "employee"


class ProjectStatus(str, Enum):
    """Project lifecycle status."""
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"


class ExpenseCategory(str, Enum):
    """
    Supported expense categories.

    DESIGN DECISION: Using explicit categories rather than free text ensures
    consistent categorization and reliable aggregation.
    """
    EQUIPMENT = "equipment"
    LABOR = "labor"
    MATERIALS = "materials"
    TRAVEL = "travel"
    PERMITS = "permits"
    OTHER = "other"


class ExpenseStatus(str, Enum):
    """
    Expense approval status.

    pending -> approved | rejected, both terminal.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewDecision(str, Enum):
    """What a reviewer can decide about a pending expense."""
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def target_status(self) -> ExpenseStatus:
        if self is ReviewDecision.APPROVE:
            return ExpenseStatus.APPROVED
        return ExpenseStatus.REJECTED


# =============================================================================
# IDENTITY
# =============================================================================

class Identity(BaseModel):
    """
    The resolved caller, as handed over by the identity layer.

    Trusted verbatim. Never looked up from ambient state.
    """
    model_config = ConfigDict(frozen=True)

    user_id: int
    role: UserRole


# =============================================================================
# REFERENCE ENTITIES (read by the core, not mutated)
# =============================================================================

class User(BaseModel):
    """A person who can submit or review expenses."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: int
    username: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    role: UserRole


class Client(BaseModel):
    """A customer that projects are run for."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    name: str = Field(..., min_length=1, max_length=200)
    contact_person: str = Field(..., min_length=1, max_length=200)
    contact_email: Optional[str] = Field(default=None, max_length=200)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    created_by_id: Optional[int] = None


class Project(BaseModel):
    """
    A budgeted project.

    The budget is a non-negative amount; zero is allowed and
    reports 0% utilization.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int
    name: str = Field(..., min_length=1, max_length=200)
    client_id: int
    status: ProjectStatus = ProjectStatus.IN_PROGRESS
    start_date: date
    budget: Annotated[
        Decimal,
        Field(ge=0, decimal_places=2, description="Project budget")
    ]
    created_by_id: int


# =============================================================================
# REVIEW STATE - tagged variant
# =============================================================================

class PendingReview(BaseModel):
    """Not reviewed yet. Carries no reviewer and no feedback."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    status: Literal["pending"] = "pending"


class ApprovedReview(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    status: Literal["approved"] = "approved"
    reviewer_id: int
    feedback: Optional[str] = Field(default=None, max_length=1000)


class RejectedReview(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    status: Literal["rejected"] = "rejected"
    reviewer_id: int
    feedback: Optional[str] = Field(default=None, max_length=1000)


ReviewState = Annotated[
    Union[PendingReview, ApprovedReview, RejectedReview],
    Field(discriminator="status"),
]


def review_for(
    decision: ReviewDecision,
    reviewer_id: int,
    feedback: Optional[str] = None,
) -> Union[ApprovedReview, RejectedReview]:
    """Build the terminal review state for a decision."""
    feedback = feedback.strip() if feedback else None
    if decision is ReviewDecision.APPROVE:
        return ApprovedReview(reviewer_id=reviewer_id, feedback=feedback or None)
    return RejectedReview(reviewer_id=reviewer_id, feedback=feedback or None)


# =============================================================================
# EXPENSE MODELS
# =============================================================================

class ExpenseDraft(BaseModel):
    """
    An expense as submitted.

    CRITICAL: This is UNVERIFIED input. Every field is optional and loosely
    typed so that the validator can report all problems at once instead of
    the first one pydantic trips over.

    submitted_by_id is accepted for compatibility but always replaced by
    the requester's identity.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    project_id: Optional[int] = None
    amount: Optional[Decimal] = Field(default=None, allow_inf_nan=True)
    description: Optional[str] = None
    category: Optional[str] = None
    receipt_url: Optional[str] = None
    submitted_by_id: Optional[int] = None


class NewExpense(BaseModel):
    """
    A validated submission, ready to be written.

    The Ledger Store assigns the id. New expenses are always pending,
    so there is no review field here.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    project_id: int
    amount: Annotated[
        Decimal,
        Field(
            gt=0,
            lt=MAX_AMOUNT,
            decimal_places=2,
            description="Expense amount (required)",
        )
    ]
    description: str = Field(..., min_length=1, max_length=500)
    category: ExpenseCategory
    receipt_url: Optional[str] = Field(default=None, max_length=1000)
    submitted_by_id: int
    created_at: datetime = Field(default_factory=utcnow)


class Expense(NewExpense):
    """
    An expense recorded in the ledger.

    CRITICAL: status, reviewer and feedback all come from ``review``,
    so they can only change together.
    """

    id: int
    review: ReviewState = Field(default_factory=PendingReview)

    @property
    def status(self) -> ExpenseStatus:
        return ExpenseStatus(self.review.status)

    @property
    def reviewed_by_id(self) -> Optional[int]:
        return getattr(self.review, "reviewer_id", None)

    @property
    def feedback(self) -> Optional[str]:
        return getattr(self.review, "feedback", None)

    @property
    def is_pending(self) -> bool:
        return self.status is ExpenseStatus.PENDING

    def to_public_dict(self) -> dict:
        """Flat representation used by transports and the activity log."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "amount": str(self.amount),
            "description": self.description,
            "category": self.category.value,
            "receipt_url": self.receipt_url,
            "status": self.status.value,
            "submitted_by_id": self.submitted_by_id,
            "reviewed_by_id": self.reviewed_by_id,
            "feedback": self.feedback,
            "created_at": self.created_at.isoformat(),
        }


class ExpenseDetails(BaseModel):
    """
    An expense joined with the people and project around it.

    Any side of the join may be missing; the view is still returned.
    """

    expense: Expense
    submitter: Optional[User] = None
    reviewer: Optional[User] = None
    project: Optional[Project] = None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix for the submitter"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields)
    Stage 2: Semantic validation (ledger lookups, sanity checks)
    """

    validated_at: datetime = Field(default_factory=utcnow)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)

    # Warnings don't block but should be surfaced
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]
