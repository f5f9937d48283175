"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a durable backend because:
1. Office staff can look at the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (one organization's ledger is fine)
- No transactions. The review compare-and-set is serialized per expense
  inside this process, re-reads the row under the lock, and writes the
  status/reviewer/feedback cells with ONE range update. Run a single
  writer process against a spreadsheet.
- Limited query capabilities (we filter in Python)
"""

import asyncio
import json
import weakref
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from budget_tracker.config import get_settings
from budget_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_tracker.models.ledger import (
    ApprovedReview,
    Client,
    Expense,
    ExpenseCategory,
    ExpenseStatus,
    NewExpense,
    PendingReview,
    Project,
    ProjectStatus,
    RejectedReview,
    ReviewState,
    User,
    UserRole,
)
from budget_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


USER_COLUMNS = ["id", "username", "name", "role"]

CLIENT_COLUMNS = [
    "id",
    "name",
    "contact_person",
    "contact_email",
    "contact_phone",
    "created_by_id",
]

PROJECT_COLUMNS = [
    "id",
    "name",
    "client_id",
    "status",
    "start_date",
    "budget",
    "created_by_id",
]

# status, reviewed_by_id and feedback must stay adjacent: a review writes
# them as one range.
EXPENSE_COLUMNS = [
    "id",
    "project_id",
    "amount",
    "description",
    "category",
    "receipt_url",
    "submitted_by_id",
    "status",
    "reviewed_by_id",
    "feedback",
    "created_at",
]
REVIEW_RANGE_START = "H"
REVIEW_RANGE_END = "J"

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "project_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


def _cell(row: list, index: int) -> str:
    """Read a cell, treating short rows as blank."""
    try:
        return row[index] if row[index] else ""
    except IndexError:
        return ""


def _opt_int(value: str) -> Optional[int]:
    return int(value) if value else None


def _timestamp(value: str) -> datetime:
    """Parse an ISO timestamp; hand-typed values without an offset are UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def users_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.users_sheet_name, USER_COLUMNS)

    def clients_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.clients_sheet_name, CLIENT_COLUMNS)

    def projects_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.projects_sheet_name, PROJECT_COLUMNS)

    def expenses_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.expenses_sheet_name, EXPENSE_COLUMNS)

    def audit_sheet(self) -> gspread.Worksheet:
        # More rows for the activity log
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of the Ledger Store.

    One worksheet per entity, one entity per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._create_lock = asyncio.Lock()
        self._review_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _user_to_row(self, user: User) -> list:
        return [str(user.id), user.username, user.name, user.role.value]

    def _row_to_user(self, row: list) -> User:
        return User(
            id=int(_cell(row, 0)),
            username=_cell(row, 1),
            name=_cell(row, 2),
            role=UserRole(_cell(row, 3)),
        )

    def _client_to_row(self, client: Client) -> list:
        return [
            str(client.id),
            client.name,
            client.contact_person,
            client.contact_email or "",
            client.contact_phone or "",
            str(client.created_by_id) if client.created_by_id is not None else "",
        ]

    def _row_to_client(self, row: list) -> Client:
        return Client(
            id=int(_cell(row, 0)),
            name=_cell(row, 1),
            contact_person=_cell(row, 2),
            contact_email=_cell(row, 3) or None,
            contact_phone=_cell(row, 4) or None,
            created_by_id=_opt_int(_cell(row, 5)),
        )

    def _project_to_row(self, project: Project) -> list:
        return [
            str(project.id),
            project.name,
            str(project.client_id),
            project.status.value,
            project.start_date.isoformat(),
            str(project.budget),
            str(project.created_by_id),
        ]

    def _row_to_project(self, row: list) -> Project:
        return Project(
            id=int(_cell(row, 0)),
            name=_cell(row, 1),
            client_id=int(_cell(row, 2)),
            status=ProjectStatus(_cell(row, 3)),
            start_date=date.fromisoformat(_cell(row, 4)),
            budget=Decimal(_cell(row, 5)),
            created_by_id=int(_cell(row, 6)),
        )

    def _review_cells(self, review: ReviewState) -> list:
        return [
            review.status,
            str(getattr(review, "reviewer_id", "") or ""),
            getattr(review, "feedback", None) or "",
        ]

    def _cells_to_review(self, status: str, reviewer: str, feedback: str) -> ReviewState:
        if status == ExpenseStatus.PENDING.value:
            if reviewer:
                raise StorageError("Pending expense row carries a reviewer")
            return PendingReview()
        if status == ExpenseStatus.APPROVED.value:
            return ApprovedReview(reviewer_id=int(reviewer), feedback=feedback or None)
        if status == ExpenseStatus.REJECTED.value:
            return RejectedReview(reviewer_id=int(reviewer), feedback=feedback or None)
        raise StorageError(f"Unknown expense status in sheet: {status!r}")

    def _expense_to_row(self, expense: Expense) -> list:
        return [
            str(expense.id),
            str(expense.project_id),
            str(expense.amount),
            expense.description,
            expense.category.value,
            expense.receipt_url or "",
            str(expense.submitted_by_id),
            *self._review_cells(expense.review),
            expense.created_at.isoformat(),
        ]

    def _row_to_expense(self, row: list) -> Expense:
        return Expense(
            id=int(_cell(row, 0)),
            project_id=int(_cell(row, 1)),
            amount=Decimal(_cell(row, 2)),
            description=_cell(row, 3),
            category=ExpenseCategory(_cell(row, 4)),
            receipt_url=_cell(row, 5) or None,
            submitted_by_id=int(_cell(row, 6)),
            review=self._cells_to_review(_cell(row, 7), _cell(row, 8), _cell(row, 9)),
            created_at=_timestamp(_cell(row, 10)),
        )

    # -------------------------------------------------------------------------
    # Generic helpers
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _data_rows(self, sheet: gspread.Worksheet) -> list[list]:
        """All non-empty data rows (header excluded)."""
        return [row for row in sheet.get_all_values()[1:] if row and row[0]]

    def _parse_rows(self, sheet: gspread.Worksheet, parse) -> list:
        items = []
        for row in self._data_rows(sheet):
            try:
                items.append(parse(row))
            except Exception:
                continue  # Skip malformed rows
        return items

    def _find_row(self, sheet: gspread.Worksheet, entity_id: int, parse):
        for row in self._data_rows(sheet):
            if row[0] == str(entity_id):
                return parse(row)
        return None

    def _insert_row(self, sheet: gspread.Worksheet, entity_id: int, row: list, kind: str) -> bool:
        existing_ids = {r[0] for r in self._data_rows(sheet)}
        if str(entity_id) in existing_ids:
            raise DuplicateError(f"{kind} already exists: {entity_id}")
        sheet.append_row(row, value_input_option="RAW")
        return True

    # -------------------------------------------------------------------------
    # Reference data
    # -------------------------------------------------------------------------

    async def save_user(self, user: User) -> bool:
        try:
            return self._insert_row(self._client.users_sheet(), user.id, self._user_to_row(user), "User")
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save user: {e}")

    async def get_user(self, user_id: int) -> Optional[User]:
        try:
            return self._find_row(self._client.users_sheet(), user_id, self._row_to_user)
        except Exception as e:
            raise StorageError(f"Failed to get user: {e}")

    async def list_users(self) -> list[User]:
        try:
            return self._parse_rows(self._client.users_sheet(), self._row_to_user)
        except Exception as e:
            raise StorageError(f"Failed to list users: {e}")

    async def save_client(self, client: Client) -> bool:
        try:
            return self._insert_row(self._client.clients_sheet(), client.id, self._client_to_row(client), "Client")
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save client: {e}")

    async def get_client(self, client_id: int) -> Optional[Client]:
        try:
            return self._find_row(self._client.clients_sheet(), client_id, self._row_to_client)
        except Exception as e:
            raise StorageError(f"Failed to get client: {e}")

    async def save_project(self, project: Project) -> bool:
        try:
            return self._insert_row(
                self._client.projects_sheet(), project.id, self._project_to_row(project), "Project"
            )
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save project: {e}")

    async def get_project(self, project_id: int) -> Optional[Project]:
        try:
            return self._find_row(self._client.projects_sheet(), project_id, self._row_to_project)
        except Exception as e:
            raise StorageError(f"Failed to get project: {e}")

    async def list_projects(
        self,
        client_id: Optional[int] = None,
        status: Optional[ProjectStatus] = None,
        created_by_id: Optional[int] = None,
    ) -> list[Project]:
        try:
            projects = self._parse_rows(self._client.projects_sheet(), self._row_to_project)
        except Exception as e:
            raise StorageError(f"Failed to list projects: {e}")

        return sorted(
            (
                p for p in projects
                if (client_id is None or p.client_id == client_id)
                and (status is None or p.status == status)
                and (created_by_id is None or p.created_by_id == created_by_id)
            ),
            key=lambda p: p.id,
        )

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def create_expense(self, new_expense: NewExpense) -> Expense:
        """Append a pending expense, numbering it after the highest id on the sheet."""
        async with self._create_lock:
            try:
                sheet = self._client.expenses_sheet()
                ids = [int(row[0]) for row in self._data_rows(sheet) if row[0].isdigit()]
                expense = Expense(id=max(ids, default=0) + 1, **new_expense.model_dump())
                sheet.append_row(self._expense_to_row(expense), value_input_option="RAW")
                return expense
            except Exception as e:
                raise StorageError(f"Failed to save expense: {e}")

    async def get_expense(self, expense_id: int) -> Optional[Expense]:
        try:
            return self._find_row(self._client.expenses_sheet(), expense_id, self._row_to_expense)
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")

    async def list_expenses(
        self,
        project_id: Optional[int] = None,
        submitted_by_id: Optional[int] = None,
        status: Optional[ExpenseStatus] = None,
    ) -> list[Expense]:
        try:
            expenses = self._parse_rows(self._client.expenses_sheet(), self._row_to_expense)
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")

        expenses = [
            e for e in expenses
            if (project_id is None or e.project_id == project_id)
            and (submitted_by_id is None or e.submitted_by_id == submitted_by_id)
            and (status is None or e.status == status)
        ]
        # Sort newest first
        expenses.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return expenses

    async def transition_expense(
        self,
        expense_id: int,
        expected_status: ExpenseStatus,
        review: ReviewState,
    ) -> Expense:
        lock = self._review_locks.get(expense_id)
        if lock is None:
            lock = self._review_locks[expense_id] = asyncio.Lock()
        async with lock:
            try:
                sheet = self._client.expenses_sheet()
                all_rows = sheet.get_all_values()

                for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                    if row and row[0] == str(expense_id):
                        current = self._row_to_expense(row)
                        if current.status != expected_status:
                            raise ConflictError(expense_id, current.status.value)

                        sheet.update(
                            range_name=f"{REVIEW_RANGE_START}{idx}:{REVIEW_RANGE_END}{idx}",
                            values=[self._review_cells(review)],
                            value_input_option="RAW",
                        )
                        return current.model_copy(update={"review": review})

                raise NotFoundError(f"Expense not found: {expense_id}")
            except (NotFoundError, ConflictError):
                raise
            except Exception as e:
                raise StorageError(f"Failed to review expense: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=_timestamp(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            user_id=_opt_int(_cell(row, 4)),
            project_id=_opt_int(_cell(row, 5)),
            entity_type=_cell(row, 6) or None,
            entity_id=_opt_int(_cell(row, 7)),
            correlation_id=UUID(_cell(row, 8)) if _cell(row, 8) else None,
            description=_cell(row, 9),
            details=json.loads(_cell(row, 10)) if _cell(row, 10) else {},
            error_message=_cell(row, 11) or None,
        )

    def _events(self) -> list[AuditEvent]:
        sheet = self._client.audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_project(self, project_id: int) -> list[AuditEvent]:
        try:
            events = [e for e in self._events() if e.project_id == project_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
