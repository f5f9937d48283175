"""Tests for the app facade, its factory and the ambient services."""

import pytest

from budget_tracker.audit import AuditLogger, create_correlation_id
from budget_tracker.config import AppSettings, get_settings, validate_all_settings
from budget_tracker.errors import NotFound, Unauthorized, ValidationFailed
from budget_tracker.lifecycle import ProjectDirectory
from budget_tracker.models.audit import AuditEventBuilder
from budget_tracker.orchestrator import BudgetTrackerApp, create_app_components
from budget_tracker.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    StorageError,
)

from conftest import ADMIN, EMPLOYEE, MANAGER, SALESPERSON, PROJECTS, make_draft


class FailingAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise StorageError("sheet unavailable")


class TestCreateAppComponents:
    """Tests for the factory."""

    def test_memory_backend_by_default(self, settings):
        app = create_app_components(settings=settings)
        assert isinstance(app, BudgetTrackerApp)
        assert isinstance(app.storage, InMemoryLedgerStorage)

    @pytest.mark.asyncio
    async def test_end_to_end_flow(self, app):
        """Test submit → review → analytics through the facade."""
        expense = await app.create_expense(make_draft(amount="750"), EMPLOYEE)
        await app.review_expense(expense.id, "approve", MANAGER)

        rows = await app.get_budget_vs_spent(ADMIN)

        assert sum(r.spent for r in rows) == 750


class TestProjectDirectory:
    """Tests for project visibility."""

    @pytest.mark.asyncio
    async def test_managers_see_all_projects(self, app):
        projects = await app.list_projects(MANAGER)
        assert len(projects) == len(PROJECTS)

    @pytest.mark.asyncio
    async def test_others_see_their_own_projects(self, app):
        projects = await app.list_projects(SALESPERSON)
        assert [p.created_by_id for p in projects] == [SALESPERSON.user_id]
        assert await app.list_projects(EMPLOYEE) == []

    @pytest.mark.asyncio
    async def test_status_filter(self, app):
        projects = await app.list_projects(ADMIN, status="completed")
        assert [p.name for p in projects] == ["Old Office"]

    @pytest.mark.asyncio
    async def test_bad_status_filter(self, app):
        with pytest.raises(ValidationFailed):
            await app.list_projects(ADMIN, status="cancelled")

    @pytest.mark.asyncio
    async def test_requires_identity(self, app):
        with pytest.raises(Unauthorized):
            await app.list_projects(None)

    @pytest.mark.asyncio
    async def test_get_project(self, storage):
        directory = ProjectDirectory(storage)
        assert (await directory.get_project(1)).name == PROJECTS[0].name
        with pytest.raises(NotFound):
            await directory.get_project(404)


class TestAuditLogger:
    """Tests for the audit logger."""

    @pytest.mark.asyncio
    async def test_logs_to_storage(self):
        storage = InMemoryAuditStorage()
        audit_logger = AuditLogger(storage)

        ok = await audit_logger.log(AuditEventBuilder.system_error("test", "boom"))

        assert ok is True
        assert len(await storage.get_recent_events()) == 1

    @pytest.mark.asyncio
    async def test_local_only(self):
        assert await AuditLogger().log(AuditEventBuilder.system_error("test", "boom")) is True

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        audit_logger = AuditLogger(FailingAuditStorage())
        ok = await audit_logger.log(AuditEventBuilder.system_error("test", "boom"))
        assert ok is False

    @pytest.mark.asyncio
    async def test_broken_activity_log_never_fails_a_review(self, settings, storage, clock):
        """Test that reviews succeed even when the audit store is down."""
        app = create_app_components(
            settings=settings,
            storage=storage,
            audit_storage=FailingAuditStorage(),
            clock=clock,
        )
        expense = await app.create_expense(make_draft(), EMPLOYEE)
        reviewed = await app.review_expense(expense.id, "approve", MANAGER)
        assert reviewed.reviewed_by_id == MANAGER.user_id

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()

    def test_in_memory_audit_storage_is_an_audit_store(self):
        assert isinstance(InMemoryAuditStorage(), AuditStorageInterface)


class TestSettings:
    """Tests for configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("STORAGE_BACKEND", raising=False)
        monkeypatch.delenv("ANALYTICS_ROLES", raising=False)
        settings = AppSettings(_env_file=None)
        assert settings.storage_backend == "memory"
        assert settings.require_rejection_feedback is False
        assert settings.analytics_roles_list == []

    def test_analytics_roles_list(self):
        settings = AppSettings(analytics_roles=" Admin, manager ,,")
        assert settings.analytics_roles_list == ["admin", "manager"]

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValueError):
            AppSettings(storage_backend="postgres")

    def test_env_switches(self, monkeypatch):
        monkeypatch.setenv("REQUIRE_REJECTION_FEEDBACK", "true")
        monkeypatch.setenv("ANALYTICS_ROLES", "admin")
        settings = AppSettings(_env_file=None)
        assert settings.require_rejection_feedback is True
        assert settings.analytics_roles_list == ["admin"]

    def test_validate_all_settings_memory_backend(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        get_settings.cache_clear()
        try:
            results = validate_all_settings()
        finally:
            get_settings.cache_clear()
        assert results == {"app": True}
