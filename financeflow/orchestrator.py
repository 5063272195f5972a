"""
Main Orchestrator for FinanceFlow

This module ties together all the components and defines the
end-to-end flows for:
1. Monthly setup (credit + daily target → summary for this month)
2. The daily ledger (open a day → act on it → commit → audit)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is read or written without an authenticated user
- A day's record and the savings pool are committed together
- Every committed, rejected or refused action is audited

The lifecycle manager decides WHAT changes; the orchestrator only loads
state, hands it to the manager and commits the resulting LedgerChange.
"""

import asyncio
from datetime import date
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import structlog

from financeflow.audit import AuditLogger, create_correlation_id
from financeflow.config import get_settings
from financeflow.ledger import (
    DailyRecordManager,
    LedgerValidationError,
    budget_snapshot,
    daily_due,
    is_setup_stale,
    month_bounds,
    month_calendar,
    previous_day_key,
)
from financeflow.ledger.periods import month_key_for
from financeflow.models.ledger import (
    BudgetSnapshot,
    DailyDueStatus,
    DailyRecord,
    DayActivity,
    FinanceSummary,
    LedgerAction,
    LedgerChange,
)
from financeflow.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from financeflow.validation import ActionValidator


logger = structlog.get_logger(__name__)


class UnauthenticatedError(Exception):
    """A write was attempted without a user identity."""

    def __init__(self, action: LedgerAction):
        self.action = action
        super().__init__(f"Sign in to {action.value.replace('_', ' ')}")


async def _require_user(
    user_id: Optional[str],
    action: LedgerAction,
    audit_logger: Optional[AuditLogger],
    correlation_id: UUID,
) -> str:
    if user_id:
        return user_id
    if audit_logger:
        await audit_logger.log_unauthenticated_write(action, correlation_id=correlation_id)
    raise UnauthenticatedError(action)


class MonthlySetupFlow:
    """
    Orchestrates monthly setup.

    Flow:
    1. Check → is there a summary for today's month?
    2. Setup → user enters monthly credit and daily target
    3. Save → summary overwritten, total_savings carried over
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        manager: Optional[DailyRecordManager] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._manager = manager or DailyRecordManager()
        self._audit_logger = audit_logger

    async def get_summary(self, user_id: Optional[str]) -> Optional[FinanceSummary]:
        if not user_id:
            return None
        return await self._storage.get_summary(user_id)

    async def needs_setup(self, user_id: Optional[str], today: date) -> bool:
        """True when the signed-in user has no summary for today's month."""
        if not user_id:
            return False
        return is_setup_stale(await self._storage.get_summary(user_id), today)

    async def setup_month(
        self,
        user_id: Optional[str],
        monthly_credit: Any,
        daily_target: Any,
        today: date,
        correlation_id: Optional[UUID] = None,
    ) -> FinanceSummary:
        """
        Start the month governed by today.

        Raises:
            UnauthenticatedError: If there is no user
            LedgerValidationError: If credit or target is not positive
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await _require_user(
            user_id, LedgerAction.SETUP_MONTH, self._audit_logger, correlation_id
        )

        existing = await self._storage.get_summary(user_id)
        try:
            summary = self._manager.setup_month(
                existing,
                monthly_credit,
                daily_target,
                today,
                user_id=user_id,
            )
        except LedgerValidationError as e:
            if self._audit_logger:
                await self._audit_logger.log_action_rejected(
                    user_id, None, e.result, correlation_id=correlation_id
                )
            raise

        try:
            stored = await self._storage.save_summary(user_id, summary)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    user_id, LedgerAction.SETUP_MONTH, None, str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_month_setup(
                user_id=user_id,
                current_month=stored.current_month,
                monthly_credit=stored.monthly_credit,
                daily_target=stored.daily_target,
                correlation_id=correlation_id,
            )

        return stored


class DailyLedgerFlow:
    """
    Orchestrates everything that happens on a single day.

    Flow for every action:
    1. Authenticate → refuse writes without a user
    2. Load → the day's record (and the summary/period where limits apply)
    3. Apply → the lifecycle manager validates and builds a LedgerChange
    4. Commit → record patch and savings adjustment in one apply_change
    5. Audit → committed, rejected or failed

    A rejected action is audited and re-raised; nothing is written.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        manager: Optional[DailyRecordManager] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._manager = manager or DailyRecordManager()
        self._audit_logger = audit_logger

    @property
    def manager(self) -> DailyRecordManager:
        return self._manager

    @property
    def audit_logger(self) -> Optional[AuditLogger]:
        return self._audit_logger

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_day(
        self,
        user_id: Optional[str],
        date_key: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[DailyRecord]:
        """
        The record for a day, materialising it on first visit.

        A day without a record gets yesterday's incomplete tasks; if any
        were carried, the new record is persisted so they are not carried
        a second time.
        """
        if not user_id:
            return None

        existing = await self._storage.get_daily_record(user_id, date_key)
        if existing is not None:
            return existing

        change = await self._materialize(user_id, date_key)
        if change.is_noop:
            return change.record

        try:
            stored = await self._storage.insert_daily_record(user_id, change.record)
        except DuplicateError:
            # opened concurrently; the other insert won
            return await self._storage.get_daily_record(user_id, date_key)

        await self._audit_carry_over(user_id, date_key, change, correlation_id)
        return stored

    async def get_month_records(
        self,
        user_id: Optional[str],
        year: int,
        month: int,
    ) -> list[DailyRecord]:
        """All records of a calendar month (month is 1-12)."""
        if not user_id:
            return []
        date_from, date_to = month_bounds(month_key_for(year, month))
        return await self._storage.list_daily_records(user_id, date_from, date_to)

    async def get_period_records(self, user_id: Optional[str]) -> list[DailyRecord]:
        """Records of the month the user's summary governs."""
        if not user_id:
            return []
        summary = await self._storage.get_summary(user_id)
        if summary is None:
            return []
        date_from, date_to = month_bounds(summary.current_month)
        return await self._storage.list_daily_records(user_id, date_from, date_to)

    async def get_snapshot(self, user_id: Optional[str]) -> Optional[BudgetSnapshot]:
        if not user_id:
            return None
        summary = await self._storage.get_summary(user_id)
        if summary is None:
            return None
        return budget_snapshot(summary, await self.get_period_records(user_id))

    async def get_day_status(
        self,
        user_id: Optional[str],
        date_key: str,
    ) -> Optional[DailyDueStatus]:
        if not user_id:
            return None
        summary = await self._storage.get_summary(user_id)
        if summary is None:
            return None
        record = await self._storage.get_daily_record(user_id, date_key)
        if record is None:
            record = self._manager.materialize(date_key).record
        return daily_due(record, summary.daily_target)

    async def get_calendar(
        self,
        user_id: Optional[str],
        year: int,
        month: int,
    ) -> dict[str, DayActivity]:
        """Activity marker for every day of the month."""
        records = await self.get_month_records(user_id, year, month)
        return month_calendar(records, month_key_for(year, month))

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    async def _materialize(self, user_id: str, date_key: str) -> LedgerChange:
        """First state of a day with no stored record: yesterday's open tasks carried."""
        self._manager.check_date(LedgerAction.CARRY_OVER_TASKS, date_key)
        previous = await self._storage.get_daily_record(user_id, previous_day_key(date_key))
        return self._manager.materialize(date_key, previous)

    async def _load_record(self, user_id: str, date_key: str) -> tuple[DailyRecord, LedgerChange]:
        """
        The day's record and the unwritten change that opened it.

        The opening change is a no-op for a stored record. For a new day it
        carries the previous day's tasks and must be written with the action.
        """
        record = await self._storage.get_daily_record(user_id, date_key)
        if record is not None:
            return record, LedgerChange(action=LedgerAction.CARRY_OVER_TASKS, record=record)
        opening = await self._materialize(user_id, date_key)
        return opening.record, opening

    async def _audit_carry_over(
        self,
        user_id: str,
        date_key: str,
        change: LedgerChange,
        correlation_id: Optional[UUID],
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_ledger_action(
                user_id=user_id,
                action=LedgerAction.CARRY_OVER_TASKS,
                date_key=date_key,
                savings_delta=change.savings_delta,
                fields=list(change.patch.model_fields_set),
                correlation_id=correlation_id,
                is_user_action=False,
            )

    async def _load_summary(self, user_id: str) -> FinanceSummary:
        summary = await self._storage.get_summary(user_id)
        if summary is None:
            raise NotFoundError("Run monthly setup before using savings, due or excess spending")
        return summary

    async def _commit(
        self,
        user_id: str,
        date_key: str,
        change: LedgerChange,
        correlation_id: UUID,
    ) -> DailyRecord:
        if change.is_noop:
            logger.debug("ledger_noop", action=change.action.value, date=date_key)
            return change.record

        try:
            record, _ = await self._storage.apply_change(user_id, date_key, change)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    user_id, change.action, date_key, str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_ledger_action(
                user_id=user_id,
                action=change.action,
                date_key=date_key,
                savings_delta=change.savings_delta,
                fields=list(change.patch.model_fields_set),
                correlation_id=correlation_id,
            )
        return record

    async def _run(
        self,
        user_id: Optional[str],
        date_key: str,
        action: LedgerAction,
        correlation_id: Optional[UUID],
        build: Callable[[str, DailyRecord], Awaitable[LedgerChange]],
    ) -> DailyRecord:
        """
        Authenticate, load the day, build the change and commit it.

        On a day with no record yet, carried-over tasks are committed in the
        same write as the action.
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await _require_user(user_id, action, self._audit_logger, correlation_id)

        try:
            self._manager.check_date(action, date_key)
            record, opening = await self._load_record(user_id, date_key)
            change = await build(user_id, record)
        except LedgerValidationError as e:
            if self._audit_logger:
                await self._audit_logger.log_action_rejected(
                    user_id, date_key, e.result, correlation_id=correlation_id
                )
            raise

        committed = await self._commit(
            user_id, date_key, change.following(opening), correlation_id
        )
        if not opening.is_noop:
            await self._audit_carry_over(user_id, date_key, opening, correlation_id)
        return committed

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def add_spending(
        self,
        user_id: Optional[str],
        date_key: str,
        description: str,
        amount: Any,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            return self._manager.add_spending(record, description, amount)

        return await self._run(user_id, date_key, LedgerAction.ADD_SPENDING, correlation_id, build)

    async def delete_spending(
        self,
        user_id: Optional[str],
        date_key: str,
        entry_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            return self._manager.delete_spending(record, entry_id)

        return await self._run(user_id, date_key, LedgerAction.DELETE_SPENDING, correlation_id, build)

    async def add_task(
        self,
        user_id: Optional[str],
        date_key: str,
        description: str,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            return self._manager.add_task(record, description)

        return await self._run(user_id, date_key, LedgerAction.ADD_TASK, correlation_id, build)

    async def toggle_task(
        self,
        user_id: Optional[str],
        date_key: str,
        task_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            return self._manager.toggle_task(record, task_id)

        return await self._run(user_id, date_key, LedgerAction.TOGGLE_TASK, correlation_id, build)

    async def delete_task(
        self,
        user_id: Optional[str],
        date_key: str,
        task_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            return self._manager.delete_task(record, task_id)

        return await self._run(user_id, date_key, LedgerAction.DELETE_TASK, correlation_id, build)

    async def set_notes(
        self,
        user_id: Optional[str],
        date_key: str,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            return self._manager.set_notes(record, text)

        return await self._run(user_id, date_key, LedgerAction.SET_NOTES, correlation_id, build)

    async def clear_due(
        self,
        user_id: Optional[str],
        date_key: str,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            summary = await self._load_summary(uid)
            return self._manager.clear_due(record, summary.daily_target)

        return await self._run(user_id, date_key, LedgerAction.CLEAR_DUE, correlation_id, build)

    async def transfer_to_savings(
        self,
        user_id: Optional[str],
        date_key: str,
        amount: Any,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            summary = await self._load_summary(uid)
            return self._manager.transfer_to_savings(record, summary, amount)

        return await self._run(
            user_id, date_key, LedgerAction.TRANSFER_TO_SAVINGS, correlation_id, build
        )

    async def borrow(
        self,
        user_id: Optional[str],
        date_key: str,
        amount: Any,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            summary = await self._load_summary(uid)
            return self._manager.borrow(record, summary, amount)

        return await self._run(user_id, date_key, LedgerAction.BORROW, correlation_id, build)

    async def edit_borrowed(
        self,
        user_id: Optional[str],
        date_key: str,
        new_amount: Any,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            summary = await self._load_summary(uid)
            return self._manager.edit_borrowed(record, summary, new_amount)

        return await self._run(user_id, date_key, LedgerAction.EDIT_BORROWED, correlation_id, build)

    async def delete_borrowed(
        self,
        user_id: Optional[str],
        date_key: str,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            return self._manager.delete_borrowed(record)

        return await self._run(user_id, date_key, LedgerAction.DELETE_BORROWED, correlation_id, build)

    async def record_excess_spending(
        self,
        user_id: Optional[str],
        date_key: str,
        amount: Any,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> DailyRecord:
        async def build(uid: str, record: DailyRecord) -> LedgerChange:
            summary = await self._load_summary(uid)
            records = await self.get_period_records(uid)
            return self._manager.record_excess_spending(record, summary, records, amount, reason)

        return await self._run(
            user_id, date_key, LedgerAction.RECORD_EXCESS_SPENDING, correlation_id, build
        )


def create_app_components(
    use_storage: bool = True,
) -> tuple[MonthlySetupFlow, DailyLedgerFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False (or LEDGER_STORAGE_BACKEND=memory) to keep
                    everything in memory for this process.

    Returns:
        (monthly_setup_flow, daily_ledger_flow, sheets_client)

    Must be called outside a running event loop: a storage fallback is
    written to the audit log before the components are returned.
    """
    ledger_settings = get_settings().ledger

    manager = DailyRecordManager(
        validator=ActionValidator(ledger_settings.limit_policy),
        clear_due_description=ledger_settings.clear_due_description,
    )

    sheets_client = None
    ledger_storage = None
    audit_logger = None
    storage_error = None

    if use_storage and ledger_settings.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            ledger_storage = None
            storage_error = e

    if ledger_storage is None:
        ledger_storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    if storage_error is not None:
        asyncio.run(audit_logger.log_error(
            error_type="storage_not_configured",
            error_message=str(storage_error),
            details={"backend": ledger_settings.storage_backend, "fallback": "memory"},
        ))

    monthly_setup_flow = MonthlySetupFlow(
        storage=ledger_storage,
        manager=manager,
        audit_logger=audit_logger,
    )

    daily_ledger_flow = DailyLedgerFlow(
        storage=ledger_storage,
        manager=manager,
        audit_logger=audit_logger,
    )

    return monthly_setup_flow, daily_ledger_flow, sheets_client
