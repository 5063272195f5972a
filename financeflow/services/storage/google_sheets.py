"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Users can look at their own budget directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (one row per day per user is fine)
- No transactions: apply_change writes the daily record first and, if
  the summary write then fails, puts the old record row back
  (compensating action) before raising
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to a real database later without changing business logic.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from financeflow.config import get_settings
from financeflow.models.audit import AuditEvent, AuditEventType, AuditSeverity
from financeflow.models.ledger import (
    DailyRecord,
    DailyRecordPatch,
    FinanceSummary,
    FinanceSummaryPatch,
    LedgerChange,
)
from financeflow.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for FinanceSummaries sheet
SUMMARY_COLUMNS = [
    "user_id",
    "monthly_credit",
    "daily_target",
    "total_savings",
    "current_month",
    "created_at",
    "updated_at",
]

# Column mappings for DailyRecords sheet
DAILY_RECORD_COLUMNS = [
    "user_id",
    "date",
    "spending_json",
    "tasks_json",
    "notes",
    "due",
    "savings_transferred",
    "borrowed",
    "excess_spending",
    "excess_spending_reason",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _decimal_or_none(value: str) -> Optional[Decimal]:
    return Decimal(value) if value else None


def _datetime_or_none(value: str) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _str_or_empty(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


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

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_summaries_sheet(self) -> gspread.Worksheet:
        """Get or create the FinanceSummaries worksheet."""
        return self._get_or_create_sheet(
            self._settings.summaries_sheet_name, SUMMARY_COLUMNS, rows=100,
        )

    def get_daily_records_sheet(self) -> gspread.Worksheet:
        """Get or create the DailyRecords worksheet."""
        return self._get_or_create_sheet(
            self._settings.daily_records_sheet_name, DAILY_RECORD_COLUMNS, rows=2000,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000,
        )


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    One row per summary and one row per daily record. Spending entries
    and tasks are JSON-serialized into a single cell each.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _summary_to_row(self, summary: FinanceSummary) -> list:
        return [
            summary.user_id or "",
            str(summary.monthly_credit),
            str(summary.daily_target),
            str(summary.total_savings),
            summary.current_month,
            _str_or_empty(summary.created_at),
            _str_or_empty(summary.updated_at),
        ]

    def _row_to_summary(self, row: list) -> FinanceSummary:
        return FinanceSummary(
            user_id=_safe_get(row, 0) or None,
            monthly_credit=Decimal(_safe_get(row, 1, "0")),
            daily_target=Decimal(_safe_get(row, 2, "0")),
            total_savings=Decimal(_safe_get(row, 3, "0")),
            current_month=_safe_get(row, 4),
            created_at=_datetime_or_none(_safe_get(row, 5)),
            updated_at=_datetime_or_none(_safe_get(row, 6)),
        )

    def _record_to_row(self, user_id: str, record: DailyRecord) -> list:
        return [
            user_id,
            record.date,
            json.dumps([entry.model_dump(mode="json") for entry in record.spending]),
            json.dumps([task.model_dump(mode="json") for task in record.tasks]),
            record.notes or "",
            _str_or_empty(record.due),
            _str_or_empty(record.savings_transferred),
            _str_or_empty(record.borrowed),
            _str_or_empty(record.excess_spending),
            record.excess_spending_reason or "",
            _str_or_empty(record.created_at),
            _str_or_empty(record.updated_at),
        ]

    def _row_to_record(self, row: list) -> DailyRecord:
        spending_json = _safe_get(row, 2)
        tasks_json = _safe_get(row, 3)
        return DailyRecord.model_validate({
            "date": _safe_get(row, 1),
            "spending": json.loads(spending_json) if spending_json else [],
            "tasks": json.loads(tasks_json) if tasks_json else [],
            "notes": _safe_get(row, 4) or None,
            "due": _decimal_or_none(_safe_get(row, 5)),
            "savings_transferred": _decimal_or_none(_safe_get(row, 6)),
            "borrowed": _decimal_or_none(_safe_get(row, 7)),
            "excess_spending": _decimal_or_none(_safe_get(row, 8)),
            "excess_spending_reason": _safe_get(row, 9) or None,
            "created_at": _datetime_or_none(_safe_get(row, 10)),
            "updated_at": _datetime_or_none(_safe_get(row, 11)),
        })

    # -------------------------------------------------------------------------
    # Row access
    # -------------------------------------------------------------------------

    def _find_summary_row(self, user_id: str) -> tuple[Optional[int], Optional[list]]:
        """(1-based sheet row index, row values) of a user's summary."""
        sheet = self._client.get_summaries_sheet()
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == user_id:
                return idx, row
        return None, None

    def _find_record_row(self, user_id: str, date: str) -> tuple[Optional[int], Optional[list]]:
        sheet = self._client.get_daily_records_sheet()
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if len(row) > 1 and row[0] == user_id and row[1] == date:
                return idx, row
        return None, None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _write_row(self, sheet: gspread.Worksheet, idx: Optional[int], row: list) -> None:
        """Overwrite row idx, or append when idx is None."""
        if idx is None:
            sheet.append_row(row, value_input_option="RAW")
        else:
            sheet.update(range_name=f"A{idx}", values=[row], value_input_option="RAW")

    def _write_summary(self, user_id: str, summary: FinanceSummary) -> FinanceSummary:
        idx, row = self._find_summary_row(user_id)
        now = datetime.utcnow()
        created_at = _datetime_or_none(_safe_get(row, 5)) if row else None
        stored = summary.model_copy(update={
            "user_id": user_id,
            "created_at": created_at or summary.created_at or now,
            "updated_at": now,
        })
        self._write_row(self._client.get_summaries_sheet(), idx, self._summary_to_row(stored))
        return stored

    # -------------------------------------------------------------------------
    # Interface
    # -------------------------------------------------------------------------

    async def get_summary(self, user_id: str) -> Optional[FinanceSummary]:
        try:
            _, row = self._find_summary_row(user_id)
            return self._row_to_summary(row) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get finance summary: {e}")

    async def save_summary(self, user_id: str, summary: FinanceSummary) -> FinanceSummary:
        try:
            return self._write_summary(user_id, summary)
        except Exception as e:
            raise StorageError(f"Failed to save finance summary: {e}")

    async def get_daily_record(self, user_id: str, date: str) -> Optional[DailyRecord]:
        try:
            _, row = self._find_record_row(user_id, date)
            return self._row_to_record(row) if row else None
        except Exception as e:
            raise StorageError(f"Failed to get daily record: {e}")

    async def list_daily_records(
        self,
        user_id: str,
        date_from: str,
        date_to: str,
    ) -> list[DailyRecord]:
        try:
            sheet = self._client.get_daily_records_sheet()
            records = []
            for row in sheet.get_all_values()[1:]:
                if len(row) < 2 or row[0] != user_id:
                    continue
                if not (date_from <= row[1] < date_to):
                    continue
                try:
                    records.append(self._row_to_record(row))
                except Exception as e:
                    logger.warning("malformed_daily_record_row", date=row[1], error=str(e))
            return sorted(records, key=lambda r: r.date)
        except Exception as e:
            raise StorageError(f"Failed to list daily records: {e}")

    async def insert_daily_record(self, user_id: str, record: DailyRecord) -> DailyRecord:
        try:
            idx, _ = self._find_record_row(user_id, record.date)
            if idx is not None:
                raise DuplicateError(f"Daily record already exists: {record.date}")
            now = datetime.utcnow()
            stored = record.model_copy(update={"created_at": now, "updated_at": now})
            self._write_row(
                self._client.get_daily_records_sheet(),
                None,
                self._record_to_row(user_id, stored),
            )
            return stored
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert daily record: {e}")

    def _patch_record(
        self,
        user_id: str,
        date: str,
        patch: DailyRecordPatch,
    ) -> tuple[DailyRecord, Optional[int], Optional[list]]:
        """Apply a patch; also returns the old row so it can be restored."""
        idx, old_row = self._find_record_row(user_id, date)
        now = datetime.utcnow()
        existing = self._row_to_record(old_row) if old_row else DailyRecord(date=date, created_at=now)
        stored = patch.apply_to(existing).model_copy(update={"updated_at": now})
        self._write_row(
            self._client.get_daily_records_sheet(),
            idx,
            self._record_to_row(user_id, stored),
        )
        return stored, idx, old_row

    async def patch_daily_record(
        self,
        user_id: str,
        date: str,
        patch: DailyRecordPatch,
    ) -> DailyRecord:
        try:
            record, _, _ = self._patch_record(user_id, date, patch)
            return record
        except Exception as e:
            raise StorageError(f"Failed to patch daily record: {e}")

    def _restore_record(self, user_id: str, date: str, idx: Optional[int], old_row: Optional[list]) -> None:
        """Compensating action for a half-applied change."""
        sheet = self._client.get_daily_records_sheet()
        if old_row is not None:
            self._write_row(sheet, idx, old_row)
            return
        new_idx, _ = self._find_record_row(user_id, date)
        if new_idx is not None:
            sheet.delete_rows(new_idx)

    async def apply_change(
        self,
        user_id: str,
        date: str,
        change: LedgerChange,
    ) -> tuple[DailyRecord, Optional[FinanceSummary]]:
        try:
            summary = await self.get_summary(user_id)
            if change.savings_delta != 0 and summary is None:
                raise NotFoundError(f"No finance summary for user {user_id}")

            record, idx, old_row = self._patch_record(user_id, date, change.patch)
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to apply {change.action.value}: {e}")

        if change.savings_delta == 0:
            return record, summary

        try:
            summary = self._write_summary(user_id, FinanceSummaryPatch(
                total_savings=summary.total_savings + change.savings_delta,
            ).apply_to(summary))
        except Exception as e:
            logger.error(
                "savings_write_failed_rolling_back",
                user_id=user_id,
                date=date,
                action=change.action.value,
                error=str(e),
            )
            try:
                self._restore_record(user_id, date, idx, old_row)
            except Exception as rollback_error:
                logger.critical(
                    "rollback_failed",
                    user_id=user_id,
                    date=date,
                    action=change.action.value,
                    error=str(rollback_error),
                )
            raise StorageError(f"Failed to apply {change.action.value}: {e}")

        return record, summary


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
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            user_id=_safe_get(row, 4) or None,
            entity_type=_safe_get(row, 5) or None,
            entity_id=_safe_get(row, 6) or None,
            correlation_id=UUID(_safe_get(row, 7)) if _safe_get(row, 7) else None,
            description=_safe_get(row, 8),
            details=json.loads(_safe_get(row, 9)) if _safe_get(row, 9) else {},
            error_message=_safe_get(row, 10) or None,
            is_user_action=_safe_get(row, 11).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception as e:
                    logger.warning("malformed_audit_row", event_id=row[0], error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append(self, row: list) -> None:
        self._client.get_audit_sheet().append_row(row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._append(event.to_sheets_row())
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning("audit_append_failed", event_id=str(event.event_id), error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._read_events() if e.correlation_id == correlation_id]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._read_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events()
            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
