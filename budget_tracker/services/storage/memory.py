"""
In-Memory Storage Implementation

The default backend, and the one every test runs against.

Dict-backed, one process, nothing survives a restart. The compare-and-set
in ``transition_expense`` holds a per-expense asyncio.Lock across the
read-compare-write, and nothing inside the critical section awaits
anything else.
"""

import asyncio
import itertools
import weakref
from typing import Iterable, Optional

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
from budget_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger Store kept in plain dicts."""

    def __init__(
        self,
        users: Iterable[User] = (),
        clients: Iterable[Client] = (),
        projects: Iterable[Project] = (),
    ):
        self._users: dict[int, User] = {u.id: u for u in users}
        self._clients: dict[int, Client] = {c.id: c for c in clients}
        self._projects: dict[int, Project] = {p.id: p for p in projects}
        self._expenses: dict[int, Expense] = {}
        self._expense_ids = itertools.count(1)
        # Entries vanish once no reviewer holds the lock
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, expense_id: int) -> asyncio.Lock:
        lock = self._locks.get(expense_id)
        if lock is None:
            lock = self._locks[expense_id] = asyncio.Lock()
        return lock

    # -------------------------------------------------------------------------
    # Reference data
    # -------------------------------------------------------------------------

    async def save_user(self, user: User) -> bool:
        if user.id in self._users:
            raise DuplicateError(f"User already exists: {user.id}")
        self._users[user.id] = user
        return True

    async def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    async def list_users(self) -> list[User]:
        return sorted(self._users.values(), key=lambda u: u.id)

    async def save_client(self, client: Client) -> bool:
        if client.id in self._clients:
            raise DuplicateError(f"Client already exists: {client.id}")
        self._clients[client.id] = client
        return True

    async def get_client(self, client_id: int) -> Optional[Client]:
        return self._clients.get(client_id)

    async def save_project(self, project: Project) -> bool:
        if project.id in self._projects:
            raise DuplicateError(f"Project already exists: {project.id}")
        self._projects[project.id] = project
        return True

    async def get_project(self, project_id: int) -> Optional[Project]:
        return self._projects.get(project_id)

    async def list_projects(
        self,
        client_id: Optional[int] = None,
        status: Optional[ProjectStatus] = None,
        created_by_id: Optional[int] = None,
    ) -> list[Project]:
        projects = []
        for project in self._projects.values():
            if client_id is not None and project.client_id != client_id:
                continue
            if status is not None and project.status != status:
                continue
            if created_by_id is not None and project.created_by_id != created_by_id:
                continue
            projects.append(project)
        projects.sort(key=lambda p: p.id)
        return projects

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def create_expense(self, new_expense: NewExpense) -> Expense:
        expense_id = next(self._expense_ids)
        expense = Expense(id=expense_id, **new_expense.model_dump())
        self._expenses[expense_id] = expense
        return expense

    async def get_expense(self, expense_id: int) -> Optional[Expense]:
        return self._expenses.get(expense_id)

    async def list_expenses(
        self,
        project_id: Optional[int] = None,
        submitted_by_id: Optional[int] = None,
        status: Optional[ExpenseStatus] = None,
    ) -> list[Expense]:
        expenses = []
        for expense in self._expenses.values():
            if project_id is not None and expense.project_id != project_id:
                continue
            if submitted_by_id is not None and expense.submitted_by_id != submitted_by_id:
                continue
            if status is not None and expense.status != status:
                continue
            expenses.append(expense)
        expenses.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return expenses

    async def transition_expense(
        self,
        expense_id: int,
        expected_status: ExpenseStatus,
        review: ReviewState,
    ) -> Expense:
        async with self._lock_for(expense_id):
            current = self._expenses.get(expense_id)
            if current is None:
                raise NotFoundError(f"Expense not found: {expense_id}")
            if current.status != expected_status:
                raise ConflictError(expense_id, current.status.value)
            updated = current.model_copy(update={"review": review})
            self._expenses[expense_id] = updated
            return updated


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_project(self, project_id: int) -> list[AuditEvent]:
        events = [e for e in self._events if e.project_id == project_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
