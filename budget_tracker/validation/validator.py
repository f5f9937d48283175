"""
Two-Stage Expense Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Amount is a positive, finite number with at most two decimals
- Category is one of the closed set
- Description length

STAGE 2 - SEMANTIC VALIDATION:
- Project status checks (expenses against completed projects)
- Absurd amount detection

Stage 2 only runs when stage 1 passes. Stage 1 errors block the
submission; stage 2 only produces warnings.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them.
"""

from decimal import Decimal
from typing import Optional

from budget_tracker.config import AppSettings, get_settings
from budget_tracker.models.ledger import (
    MAX_AMOUNT,
    ExpenseCategory,
    ExpenseDraft,
    Project,
    ProjectStatus,
    ReviewDecision,
    ValidationIssue,
    ValidationResult,
)


CENT = Decimal("0.01")
MAX_DESCRIPTION_LENGTH = 500
MAX_FEEDBACK_LENGTH = 1000


class ExpenseValidator:
    """
    Validates expense drafts and review decisions.

    Stateless apart from the thresholds it reads from settings.
    The caller looks the project up and hands it in.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_schema(
        self,
        draft: ExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if draft.project_id is None:
            issues.append(ValidationIssue(
                field="project_id",
                issue_type="missing",
                message="Project is required",
                severity="error",
                suggested_fix="Pick the project this expense belongs to",
            ))

        amount = draft.amount
        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
        elif not amount.is_finite():
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be a finite number",
                severity="error",
            ))
        elif amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter the amount actually spent",
            ))
        elif amount >= MAX_AMOUNT:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message=f"Amount must be less than {MAX_AMOUNT:,.0f}",
                severity="error",
            ))
        elif amount != amount.quantize(CENT):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount can have at most two decimal places",
                severity="error",
            ))

        if not draft.category:
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category is required",
                severity="error",
            ))
        elif draft.category.lower() not in {c.value for c in ExpenseCategory}:
            allowed = ", ".join(c.value for c in ExpenseCategory)
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_value",
                message=f"Unknown category '{draft.category}'",
                severity="error",
                suggested_fix=f"Use one of: {allowed}",
            ))

        description = draft.description or ""
        if not description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
            ))
        elif len(description) < self._settings.min_description_length:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_short",
                message=(
                    f"Description must be at least "
                    f"{self._settings.min_description_length} characters"
                ),
                severity="error",
            ))
        elif len(description) > MAX_DESCRIPTION_LENGTH:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_long",
                message=f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters",
                severity="error",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def _validate_semantic(
        self,
        draft: ExpenseDraft,
        project: Optional[Project],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if project is not None and project.status == ProjectStatus.COMPLETED:
            issues.append(ValidationIssue(
                field="project_id",
                issue_type="project_completed",
                message=f"Project '{project.name}' is already completed",
                severity="warning",
                suggested_fix="Check that the expense is filed against the right project",
            ))

        max_amount = Decimal(str(self._settings.max_expense_amount))
        if draft.amount is not None and draft.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({draft.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    async def validate(
        self,
        draft: ExpenseDraft,
        project: Optional[Project] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            draft: The submitted expense
            project: The project the draft points at, if it was found

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        # Stage 1: Schema validation
        schema_valid, schema_issues = self._validate_schema(draft)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(draft, project)
            all_issues.extend(semantic_issues)

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def validate_review(
        self,
        decision: ReviewDecision,
        feedback: Optional[str],
    ) -> list[ValidationIssue]:
        """
        Check the feedback attached to a review decision.

        A rejection without feedback is a warning unless
        ``require_rejection_feedback`` is set, then it is an error.
        """
        issues = []
        feedback = (feedback or "").strip()

        if decision is ReviewDecision.REJECT and not feedback:
            issues.append(ValidationIssue(
                field="feedback",
                issue_type="missing",
                message="Rejected without feedback for the submitter",
                severity=(
                    "error" if self._settings.require_rejection_feedback else "warning"
                ),
                suggested_fix="Tell the submitter why the expense was rejected",
            ))

        if len(feedback) > MAX_FEEDBACK_LENGTH:
            issues.append(ValidationIssue(
                field="feedback",
                issue_type="too_long",
                message=f"Feedback must be at most {MAX_FEEDBACK_LENGTH} characters",
                severity="error",
            ))

        return issues

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """Plain-text summary of validation results for the submitter."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if not result.schema_valid:
            lines.append("The expense could not be submitted:")
            for issue in result.errors:
                lines.append(f"   - {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   - {warning}")

        return "\n".join(lines)
