"""
Project Directory

Read-only access to projects. Admins and managers see every project,
everyone else sees the projects they created.
"""

from typing import Optional, Union

from budget_tracker.errors import NotFound
from budget_tracker.lifecycle.manager import parse_enum
from budget_tracker.models.ledger import Identity, Project, ProjectStatus
from budget_tracker.services.storage import LedgerStorageInterface
from budget_tracker.validation import can_view_all_expenses, require_identity


class ProjectDirectory:
    """Lists and fetches projects for a caller."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def list_projects(
        self,
        identity: Optional[Identity],
        client_id: Optional[int] = None,
        status: Optional[Union[ProjectStatus, str]] = None,
    ) -> list[Project]:
        identity = require_identity(identity, "view projects")
        if status is not None:
            status = parse_enum(ProjectStatus, status, "status")

        # Same visibility split as expenses
        created_by_id = None
        if not can_view_all_expenses(identity.role):
            created_by_id = identity.user_id

        return await self._storage.list_projects(
            client_id=client_id,
            status=status,
            created_by_id=created_by_id,
        )

    async def get_project(self, project_id: int) -> Project:
        project = await self._storage.get_project(project_id)
        if project is None:
            raise NotFound("project", project_id)
        return project
