"""
Shared fixtures.

Every test runs against the in-memory Ledger Store with a fixed clock.
No Google Sheets, no network.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from budget_tracker.config import AppSettings
from budget_tracker.models.ledger import (
    Client,
    Identity,
    Project,
    ProjectStatus,
    User,
    UserRole,
)
from budget_tracker.orchestrator import create_app_components
from budget_tracker.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

ADMIN = Identity(user_id=1, role=UserRole.ADMIN)
MANAGER = Identity(user_id=2, role=UserRole.MANAGER)
OTHER_MANAGER = Identity(user_id=3, role=UserRole.MANAGER)
EMPLOYEE = Identity(user_id=4, role=UserRole.EMPLOYEE)
OTHER_EMPLOYEE = Identity(user_id=5, role=UserRole.EMPLOYEE)
SALESPERSON = Identity(user_id=6, role=UserRole.SALESPERSON)

USERS = [
    User(id=1, username="admin", name="Ada Admin", role=UserRole.ADMIN),
    User(id=2, username="mgr", name="Max Manager", role=UserRole.MANAGER),
    User(id=3, username="mgr2", name="Mia Manager", role=UserRole.MANAGER),
    User(id=4, username="emp", name="Eli Employee", role=UserRole.EMPLOYEE),
    User(id=5, username="emp2", name="Eva Employee", role=UserRole.EMPLOYEE),
    User(id=6, username="sales", name="Sam Sales", role=UserRole.SALESPERSON),
]

CLIENTS = [
    Client(id=1, name="Acme Builders", contact_person="Dana Reyes"),
]

# P: regular budget, Q: zero budget, R: completed
PROJECT_P = Project(
    id=1,
    name="Warehouse Fit-out",
    client_id=1,
    start_date=date(2024, 1, 10),
    budget=Decimal("10000"),
    created_by_id=1,
)
PROJECT_Q = Project(
    id=2,
    name="Site Survey",
    client_id=1,
    start_date=date(2024, 2, 1),
    budget=Decimal("0"),
    created_by_id=6,
)
PROJECT_R = Project(
    id=3,
    name="Old Office",
    client_id=1,
    status=ProjectStatus.COMPLETED,
    start_date=date(2023, 3, 1),
    budget=Decimal("5000"),
    created_by_id=2,
)
PROJECTS = [PROJECT_P, PROJECT_Q, PROJECT_R]


class FakeClock:
    """Callable clock that tests can move forward or back."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_draft(**overrides) -> dict:
    """A valid submission payload, with overrides."""
    draft = {
        "project_id": PROJECT_P.id,
        "amount": "2000.00",
        "description": "Scaffold rental",
        "category": "equipment",
    }
    draft.update(overrides)
    return draft


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        storage_backend="memory",
        require_rejection_feedback=False,
        analytics_roles="",
        max_expense_amount=1000000.0,
        min_description_length=3,
    )


@pytest.fixture
def strict_settings() -> AppSettings:
    return AppSettings(
        storage_backend="memory",
        require_rejection_feedback=True,
        analytics_roles="admin,manager",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage(users=USERS, clients=CLIENTS, projects=PROJECTS)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def app(settings, storage, audit_storage, clock):
    return create_app_components(
        settings=settings,
        storage=storage,
        audit_storage=audit_storage,
        clock=clock,
    )


@pytest.fixture
def strict_app(strict_settings, storage, audit_storage, clock):
    return create_app_components(
        settings=strict_settings,
        storage=storage,
        audit_storage=audit_storage,
        clock=clock,
    )
