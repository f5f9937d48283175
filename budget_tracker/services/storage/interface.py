"""
Abstract Ledger Store Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the lifecycle and aggregation logic decoupled from storage

The Ledger Store owns no behavior beyond CRUD and ONE atomic operation:
``transition_expense``, the compare-and-set that moves an expense out of
``pending``. Every backend must make that call atomic per expense id.
"""

from abc import ABC, abstractmethod
from typing import Optional

from budget_tracker.models.analytics import LedgerSnapshot
from budget_tracker.models.audit import AuditEvent
from budget_tracker.models.ledger import (
    Client,
    Expense,
    ExpenseStatus,
    NewExpense,
    Project,
    ProjectStatus,
    ReviewState,
    User,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for the Ledger Store.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Reference data
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_user(self, user: User) -> bool:
        """Insert a user. Raises DuplicateError if the id is taken."""
        pass

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    async def list_users(self) -> list[User]:
        pass

    @abstractmethod
    async def save_client(self, client: Client) -> bool:
        """Insert a client. Raises DuplicateError if the id is taken."""
        pass

    @abstractmethod
    async def get_client(self, client_id: int) -> Optional[Client]:
        pass

    @abstractmethod
    async def save_project(self, project: Project) -> bool:
        """Insert a project. Raises DuplicateError if the id is taken."""
        pass

    @abstractmethod
    async def get_project(self, project_id: int) -> Optional[Project]:
        pass

    @abstractmethod
    async def list_projects(
        self,
        client_id: Optional[int] = None,
        status: Optional[ProjectStatus] = None,
        created_by_id: Optional[int] = None,
    ) -> list[Project]:
        """
        List projects with optional filters.

        Returns:
            Matching projects ordered by id
        """
        pass

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_expense(self, new_expense: NewExpense) -> Expense:
        """
        Write a new pending expense and assign its id.

        Args:
            new_expense: A validated submission

        Returns:
            The stored expense, status pending

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: int) -> Optional[Expense]:
        pass

    @abstractmethod
    async def list_expenses(
        self,
        project_id: Optional[int] = None,
        submitted_by_id: Optional[int] = None,
        status: Optional[ExpenseStatus] = None,
    ) -> list[Expense]:
        """
        List expenses with optional filters.

        Returns:
            Matching expenses, newest first
        """
        pass

    @abstractmethod
    async def transition_expense(
        self,
        expense_id: int,
        expected_status: ExpenseStatus,
        review: ReviewState,
    ) -> Expense:
        """
        Atomically replace the review state of one expense.

        The stored status is compared against ``expected_status`` and the
        new review (status, reviewer, feedback) is written in the same
        atomic step. Nothing is written when the comparison fails.

        Returns:
            The updated expense

        Raises:
            NotFoundError: If the expense doesn't exist
            ConflictError: If the stored status isn't ``expected_status``
        """
        pass

    async def snapshot(self) -> LedgerSnapshot:
        """
        Read everything an aggregation needs.

        Backends can override this with a cheaper single read.
        """
        return LedgerSnapshot(
            projects=await self.list_projects(),
            users=await self.list_users(),
            expenses=await self.list_expenses(),
        )


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        """Events for one entity, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_project(self, project_id: int) -> list[AuditEvent]:
        """Events touching one project, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class ConflictError(StorageError):
    """Compare-and-set lost: the stored status was not the expected one."""

    def __init__(self, entity_id: int, current_status: str):
        self.entity_id = entity_id
        self.current_status = current_status
        super().__init__(
            f"Expense {entity_id} is {current_status}, not the expected status"
        )
