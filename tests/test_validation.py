"""Tests for the expense validator and role capabilities."""

import pytest
from decimal import Decimal

from budget_tracker.config import AppSettings
from budget_tracker.errors import Unauthorized
from budget_tracker.models.ledger import ExpenseDraft, ReviewDecision, UserRole
from budget_tracker.validation import (
    ExpenseValidator,
    can_create_project,
    can_review,
    can_view_all_expenses,
    can_view_analytics,
    require_identity,
)

from conftest import EMPLOYEE, PROJECT_P, PROJECT_R


def _draft(**overrides) -> ExpenseDraft:
    fields = dict(
        project_id=PROJECT_P.id,
        amount=Decimal("150.00"),
        description="Tile cutter",
        category="equipment",
    )
    fields.update(overrides)
    return ExpenseDraft(**fields)


@pytest.fixture
def validator(settings) -> ExpenseValidator:
    return ExpenseValidator(settings)


class TestSchemaValidation:
    """Stage 1 checks."""

    @pytest.mark.asyncio
    async def test_valid_draft(self, validator):
        result = await validator.validate(_draft(), PROJECT_P)
        assert result.is_valid is True
        assert result.issues == []

    @pytest.mark.asyncio
    async def test_missing_amount(self, validator):
        result = await validator.validate(_draft(amount=None), PROJECT_P)
        assert result.schema_valid is False
        assert result.errors[0].issue_type == "missing"

    @pytest.mark.asyncio
    async def test_nan_amount(self, validator):
        result = await validator.validate(_draft(amount=Decimal("NaN")), PROJECT_P)
        assert result.schema_valid is False
        assert result.errors[0].field == "amount"

    @pytest.mark.asyncio
    async def test_too_many_decimals(self, validator):
        result = await validator.validate(_draft(amount=Decimal("10.005")), PROJECT_P)
        assert result.schema_valid is False

    @pytest.mark.asyncio
    async def test_trailing_zeros_are_fine(self, validator):
        result = await validator.validate(_draft(amount=Decimal("10.500")), PROJECT_P)
        assert result.schema_valid is True

    @pytest.mark.asyncio
    async def test_category_is_case_insensitive(self, validator):
        result = await validator.validate(_draft(category="Labor"), PROJECT_P)
        assert result.schema_valid is True

    @pytest.mark.asyncio
    async def test_description_too_short(self, validator):
        result = await validator.validate(_draft(description="ab"), PROJECT_P)
        assert result.errors[0].issue_type == "too_short"

    @pytest.mark.asyncio
    async def test_description_too_long(self, validator):
        result = await validator.validate(_draft(description="x" * 501), PROJECT_P)
        assert result.errors[0].issue_type == "too_long"

    @pytest.mark.asyncio
    async def test_stage_two_skipped_on_schema_errors(self, validator):
        result = await validator.validate(_draft(amount=Decimal("-1")), PROJECT_R)
        assert result.semantic_valid is False
        assert all(issue.severity == "error" for issue in result.issues)


class TestSemanticValidation:
    """Stage 2 checks."""

    @pytest.mark.asyncio
    async def test_completed_project_warns(self, validator):
        result = await validator.validate(_draft(project_id=PROJECT_R.id), PROJECT_R)
        assert result.is_valid is True
        assert result.issues[0].issue_type == "project_completed"
        assert result.warnings

    @pytest.mark.asyncio
    async def test_large_amount_warns(self):
        validator = ExpenseValidator(AppSettings(max_expense_amount=1000.0))
        result = await validator.validate(_draft(amount=Decimal("5000")), PROJECT_P)
        assert result.is_valid is True
        assert result.issues[0].issue_type == "suspicious_value"

    def test_schema_stage_alone(self, validator):
        result = validator._validate_schema(_draft(amount=Decimal("-3")))
        assert result[0] is False


class TestReviewValidation:
    """Checks on review decisions."""

    def test_reject_without_feedback_is_warning(self, validator):
        issues = validator.validate_review(ReviewDecision.REJECT, None)
        assert [i.severity for i in issues] == ["warning"]

    def test_reject_without_feedback_is_error_when_strict(self):
        validator = ExpenseValidator(AppSettings(require_rejection_feedback=True))
        issues = validator.validate_review(ReviewDecision.REJECT, "  ")
        assert [i.severity for i in issues] == ["error"]

    def test_approve_needs_no_feedback(self, validator):
        assert validator.validate_review(ReviewDecision.APPROVE, None) == []

    def test_feedback_too_long(self, validator):
        issues = validator.validate_review(ReviewDecision.APPROVE, "x" * 1001)
        assert issues[0].issue_type == "too_long"


class TestUserFriendlySummary:
    """Tests for get_user_friendly_summary."""

    @pytest.mark.asyncio
    async def test_all_clear(self, validator):
        result = await validator.validate(_draft(), PROJECT_P)
        assert validator.get_user_friendly_summary(result) == "All checks passed."

    @pytest.mark.asyncio
    async def test_errors_and_fixes(self, validator):
        result = await validator.validate(_draft(category="catering"), PROJECT_P)
        summary = validator.get_user_friendly_summary(result)
        assert "Unknown category 'catering'" in summary
        assert "Use one of:" in summary


class TestAuthorization:
    """Tests for role capabilities."""

    @pytest.mark.parametrize("role,expected", [
        (UserRole.ADMIN, True),
        (UserRole.MANAGER, True),
        (UserRole.SALESPERSON, False),
        (UserRole.EMPLOYEE, False),
    ])
    def test_can_review(self, role, expected):
        assert can_review(role) is expected
        assert can_view_all_expenses(role) is expected

    @pytest.mark.parametrize("role,expected", [
        (UserRole.ADMIN, True),
        (UserRole.MANAGER, True),
        (UserRole.SALESPERSON, True),
        (UserRole.EMPLOYEE, False),
    ])
    def test_can_create_project(self, role, expected):
        assert can_create_project(role) is expected

    def test_analytics_open_by_default(self):
        assert all(can_view_analytics(role, []) for role in UserRole)
        assert can_view_analytics(UserRole.EMPLOYEE, None)

    def test_analytics_gate(self):
        allowed = ["admin", "Manager"]
        assert can_view_analytics(UserRole.MANAGER, allowed)
        assert not can_view_analytics(UserRole.EMPLOYEE, allowed)

    def test_require_identity(self):
        assert require_identity(EMPLOYEE, "submit expenses") is EMPLOYEE
        with pytest.raises(Unauthorized, match="Authentication required"):
            require_identity(None, "submit expenses")
