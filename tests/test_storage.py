"""
Tests for the Ledger Store backends.

The Google Sheets backend runs against fake worksheets that keep
rows as lists of strings, the way gspread returns them.
"""

import asyncio
import gc

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from budget_tracker.models.audit import AuditEventBuilder
from budget_tracker.models.ledger import (
    ApprovedReview,
    ExpenseCategory,
    ExpenseStatus,
    NewExpense,
    RejectedReview,
)
from budget_tracker.services.storage import (
    ConflictError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    InMemoryLedgerStorage,
    NotFoundError,
)
from budget_tracker.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    CLIENT_COLUMNS,
    EXPENSE_COLUMNS,
    PROJECT_COLUMNS,
    USER_COLUMNS,
)

from conftest import CLIENTS, NOW, PROJECT_P, PROJECTS, USERS


def _new_expense(amount="100.00", created_at=NOW, submitted_by_id=4, **overrides) -> NewExpense:
    fields = dict(
        project_id=PROJECT_P.id,
        amount=Decimal(amount),
        description="Generator hire",
        category=ExpenseCategory.EQUIPMENT,
        submitted_by_id=submitted_by_id,
        created_at=created_at,
    )
    fields.update(overrides)
    return NewExpense(**fields)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage backends."""

    def __init__(self, columns):
        self.rows = [list(columns)]
        self.update_calls = []

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(cell) for cell in row])

    def update(self, range_name=None, values=None, value_input_option=None):
        self.update_calls.append(range_name)
        start, _ = range_name.split(":")
        column = ord(start[0]) - ord("A")
        row_index = int(start[1:]) - 1
        for offset, value in enumerate(values[0]):
            self.rows[row_index][column + offset] = str(value)


class FakeSheetsClient:
    def __init__(self):
        self.users = FakeWorksheet(USER_COLUMNS)
        self.clients = FakeWorksheet(CLIENT_COLUMNS)
        self.projects = FakeWorksheet(PROJECT_COLUMNS)
        self.expenses = FakeWorksheet(EXPENSE_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def users_sheet(self):
        return self.users

    def clients_sheet(self):
        return self.clients

    def projects_sheet(self):
        return self.projects

    def expenses_sheet(self):
        return self.expenses

    def audit_sheet(self):
        return self.audit


@pytest.fixture
def sheets_client():
    return FakeSheetsClient()


@pytest.fixture
def sheets_storage(sheets_client):
    return GoogleSheetsLedgerStorage(sheets_client)


class TestInMemoryLedgerStorage:
    """Tests for the in-memory backend."""

    @pytest.mark.asyncio
    async def test_create_assigns_sequential_ids(self, storage):
        first = await storage.create_expense(_new_expense())
        second = await storage.create_expense(_new_expense())
        assert (first.id, second.id) == (1, 2)
        assert first.status == ExpenseStatus.PENDING

    @pytest.mark.asyncio
    async def test_transition_compare_and_set(self, storage):
        expense = await storage.create_expense(_new_expense())

        updated = await storage.transition_expense(
            expense.id, ExpenseStatus.PENDING, ApprovedReview(reviewer_id=2)
        )
        assert updated.status == ExpenseStatus.APPROVED

        with pytest.raises(ConflictError) as exc_info:
            await storage.transition_expense(
                expense.id, ExpenseStatus.PENDING, RejectedReview(reviewer_id=3)
            )
        assert exc_info.value.current_status == "approved"

    @pytest.mark.asyncio
    async def test_transition_unknown_expense(self, storage):
        with pytest.raises(NotFoundError):
            await storage.transition_expense(99, ExpenseStatus.PENDING, ApprovedReview(reviewer_id=2))

    @pytest.mark.asyncio
    async def test_concurrent_transitions(self, storage):
        """Test that the per-expense lock lets exactly one writer through."""
        expense = await storage.create_expense(_new_expense())

        results = await asyncio.gather(
            *[
                storage.transition_expense(
                    expense.id, ExpenseStatus.PENDING, ApprovedReview(reviewer_id=reviewer)
                )
                for reviewer in (1, 2, 3)
            ],
            return_exceptions=True,
        )

        assert sum(not isinstance(r, Exception) for r in results) == 1
        assert sum(isinstance(r, ConflictError) for r in results) == 2

    @pytest.mark.asyncio
    async def test_locks_are_released(self, storage):
        """Test that lock entries do not outlive the transitions using them."""
        expense = await storage.create_expense(_new_expense())
        await storage.transition_expense(
            expense.id, ExpenseStatus.PENDING, ApprovedReview(reviewer_id=2)
        )
        with pytest.raises(NotFoundError):
            await storage.transition_expense(99, ExpenseStatus.PENDING, ApprovedReview(reviewer_id=2))

        gc.collect()
        assert len(storage._locks) == 0

    @pytest.mark.asyncio
    async def test_list_newest_first_with_filters(self, storage):
        old = await storage.create_expense(_new_expense(created_at=NOW - timedelta(days=2)))
        new = await storage.create_expense(_new_expense(submitted_by_id=5))

        assert [e.id for e in await storage.list_expenses()] == [new.id, old.id]
        assert [e.id for e in await storage.list_expenses(submitted_by_id=5)] == [new.id]
        assert await storage.list_expenses(status=ExpenseStatus.APPROVED) == []

    @pytest.mark.asyncio
    async def test_duplicate_user_rejected(self, storage):
        with pytest.raises(DuplicateError):
            await storage.save_user(USERS[0])

    @pytest.mark.asyncio
    async def test_list_projects_filters(self, storage):
        created_by_sales = await storage.list_projects(created_by_id=6)
        assert [p.id for p in created_by_sales] == [2]

    @pytest.mark.asyncio
    async def test_snapshot(self, storage):
        await storage.create_expense(_new_expense())
        snap = await storage.snapshot()
        assert len(snap.projects) == len(PROJECTS)
        assert len(snap.users) == len(USERS)
        assert len(snap.expenses) == 1

    @pytest.mark.asyncio
    async def test_empty_store(self):
        storage = InMemoryLedgerStorage()
        assert await storage.get_project(1) is None
        assert await storage.list_users() == []


class TestGoogleSheetsLedgerStorage:
    """Tests for the Sheets backend against fake worksheets."""

    @pytest.mark.asyncio
    async def test_reference_data_round_trip(self, sheets_storage):
        for user in USERS:
            await sheets_storage.save_user(user)
        await sheets_storage.save_client(CLIENTS[0])
        for project in PROJECTS:
            await sheets_storage.save_project(project)

        assert await sheets_storage.get_user(4) == USERS[3]
        assert await sheets_storage.get_client(1) == CLIENTS[0]
        assert await sheets_storage.get_project(PROJECT_P.id) == PROJECT_P
        assert len(await sheets_storage.list_projects()) == len(PROJECTS)

    @pytest.mark.asyncio
    async def test_duplicate_project_rejected(self, sheets_storage):
        await sheets_storage.save_project(PROJECT_P)
        with pytest.raises(DuplicateError):
            await sheets_storage.save_project(PROJECT_P)

    @pytest.mark.asyncio
    async def test_create_and_read_expense(self, sheets_storage):
        created = await sheets_storage.create_expense(_new_expense(amount="1234.50"))

        fetched = await sheets_storage.get_expense(created.id)

        assert created.id == 1
        assert fetched.amount == Decimal("1234.50")
        assert fetched.status == ExpenseStatus.PENDING
        assert fetched.created_at == NOW

    @pytest.mark.asyncio
    async def test_ids_continue_after_existing_rows(self, sheets_storage):
        await sheets_storage.create_expense(_new_expense())
        await sheets_storage.create_expense(_new_expense())
        third = await sheets_storage.create_expense(_new_expense())
        assert third.id == 3

    @pytest.mark.asyncio
    async def test_transition_writes_one_range(self, sheets_storage, sheets_client):
        """Test that status, reviewer and feedback go out in a single update."""
        await sheets_storage.create_expense(_new_expense())
        expense = await sheets_storage.create_expense(_new_expense())

        updated = await sheets_storage.transition_expense(
            expense.id,
            ExpenseStatus.PENDING,
            RejectedReview(reviewer_id=2, feedback="Wrong project"),
        )

        assert updated.status == ExpenseStatus.REJECTED
        assert sheets_client.expenses.update_calls == ["H3:J3"]
        stored = await sheets_storage.get_expense(expense.id)
        assert stored.reviewed_by_id == 2
        assert stored.feedback == "Wrong project"

    @pytest.mark.asyncio
    async def test_transition_conflict_writes_nothing(self, sheets_storage, sheets_client):
        expense = await sheets_storage.create_expense(_new_expense())
        await sheets_storage.transition_expense(
            expense.id, ExpenseStatus.PENDING, ApprovedReview(reviewer_id=2)
        )

        with pytest.raises(ConflictError):
            await sheets_storage.transition_expense(
                expense.id, ExpenseStatus.PENDING, RejectedReview(reviewer_id=3)
            )

        assert len(sheets_client.expenses.update_calls) == 1

    @pytest.mark.asyncio
    async def test_transition_unknown_expense(self, sheets_storage):
        with pytest.raises(NotFoundError):
            await sheets_storage.transition_expense(
                5, ExpenseStatus.PENDING, ApprovedReview(reviewer_id=2)
            )

    @pytest.mark.asyncio
    async def test_malformed_rows_are_skipped(self, sheets_storage, sheets_client):
        """Test that a pending row carrying a reviewer never becomes an Expense."""
        good = await sheets_storage.create_expense(_new_expense())
        bad_row = list(sheets_client.expenses.rows[1])
        bad_row[0] = "2"
        bad_row[8] = "3"  # reviewed_by_id on a pending row
        sheets_client.expenses.rows.append(bad_row)

        listed = await sheets_storage.list_expenses()

        assert [e.id for e in listed] == [good.id]

    @pytest.mark.asyncio
    async def test_hand_typed_date_is_read_as_utc(self, sheets_storage, sheets_client):
        """Test that a timestamp typed without an offset still sorts and filters."""
        await sheets_storage.create_expense(_new_expense())
        typed_row = list(sheets_client.expenses.rows[1])
        typed_row[0] = "2"
        typed_row[7:11] = ["approved", "2", "", "2024-06-01"]
        sheets_client.expenses.rows.append(typed_row)

        listed = await sheets_storage.list_expenses()

        assert [e.id for e in listed] == [1, 2]
        assert listed[1].created_at == datetime(2024, 6, 1, tzinfo=timezone.utc)

        snap = await sheets_storage.snapshot()
        assert len(snap.expenses) == 2

    @pytest.mark.asyncio
    async def test_review_locks_are_released(self, sheets_storage):
        expense = await sheets_storage.create_expense(_new_expense())
        await sheets_storage.transition_expense(
            expense.id, ExpenseStatus.PENDING, ApprovedReview(reviewer_id=2)
        )
        with pytest.raises(NotFoundError):
            await sheets_storage.transition_expense(
                42, ExpenseStatus.PENDING, ApprovedReview(reviewer_id=2)
            )

        gc.collect()
        assert len(sheets_storage._review_locks) == 0

    @pytest.mark.asyncio
    async def test_list_filters(self, sheets_storage):
        await sheets_storage.create_expense(_new_expense(submitted_by_id=4))
        await sheets_storage.create_expense(_new_expense(submitted_by_id=5))

        assert len(await sheets_storage.list_expenses(submitted_by_id=5)) == 1
        assert await sheets_storage.list_expenses(project_id=999) == []


class TestGoogleSheetsAuditStorage:
    """Tests for the Sheets activity log."""

    @pytest.mark.asyncio
    async def test_append_and_query(self, sheets_client):
        audit = GoogleSheetsAuditStorage(sheets_client)
        storage = InMemoryLedgerStorage()
        expense = await storage.create_expense(_new_expense())

        assert await audit.append_event(AuditEventBuilder.expense_submitted(expense)) is True

        by_entity = await audit.get_events_by_entity("expense", expense.id)
        by_project = await audit.get_events_by_project(PROJECT_P.id)
        recent = await audit.get_recent_events(limit=10)

        assert len(by_entity) == len(by_project) == len(recent) == 1
        assert by_entity[0].details["category"] == "equipment"
        assert by_entity[0].timestamp.tzinfo == timezone.utc

    @pytest.mark.asyncio
    async def test_recent_events_limit(self, sheets_client):
        audit = GoogleSheetsAuditStorage(sheets_client)
        for _ in range(5):
            await audit.append_event(
                AuditEventBuilder.system_error("boom", "it broke")
            )
        assert len(await audit.get_recent_events(limit=3)) == 3

    @pytest.mark.asyncio
    async def test_naive_timestamp_read_as_utc(self, sheets_client):
        audit = GoogleSheetsAuditStorage(sheets_client)
        await audit.append_event(AuditEventBuilder.system_error("boom", "it broke"))
        sheets_client.audit.rows[1][1] = "2024-06-01T09:30:00"

        events = await audit.get_recent_events()

        assert events[0].timestamp == datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)
