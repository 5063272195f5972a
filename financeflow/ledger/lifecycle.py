"""
Daily Record Lifecycle Manager

Applies one user action at a time to a single day's record and reports
what has to be written back: the new record, the patch that produces it,
and the adjustment to the summary's total_savings that goes with it.

DESIGN DECISION: The manager never touches storage and never mutates
the records it is given. Every action returns a LedgerChange; the
orchestrator commits the patch and the savings adjustment together.

DESIGN DECISION: Invalid input is rejected before anything is built
(LedgerValidationError), so a rejected action has no side effect.
Limits (remaining target for transfers, available savings for borrows)
follow the configured LimitPolicy; see financeflow.validation.

The clock and the id factory are injected so the manager is deterministic
under test.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping, Optional, Union
from uuid import uuid4

import structlog

from financeflow.ledger.periods import current_month_key, previous_day_key
from financeflow.ledger.reconciliation import (
    available_for_excess_spending,
    available_savings,
    daily_due,
)
from financeflow.models.ledger import (
    ZERO,
    DailyRecord,
    DailyRecordPatch,
    FinanceSummary,
    FinanceSummaryPatch,
    LedgerAction,
    LedgerChange,
    SpendingEntry,
    Task,
    ValidationResult,
)
from financeflow.validation import ActionValidator


logger = structlog.get_logger(__name__)

DEFAULT_CLEAR_DUE_DESCRIPTION = "Clearing due"
CARRIED_SUFFIX = "-carried"


class LedgerError(Exception):
    """Base exception for lifecycle actions."""
    pass


class LedgerValidationError(LedgerError):
    """The action's input was rejected. Nothing was changed."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(i.message for i in result.issues if i.severity == "error")
        super().__init__(f"{result.action.value} rejected: {messages}")


class LimitExceededError(LedgerValidationError):
    """The action would break a limit enforced by the strict policy."""
    pass


def _to_decimal(value: Any) -> Decimal:
    """Coerce user input to Decimal. Unparseable input becomes NaN and fails validation."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal("NaN")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("NaN")


def suggested_daily_target(monthly_credit: Decimal, days: int = 30) -> Decimal:
    """Even split of the monthly credit, rounded to cents."""
    return (_to_decimal(monthly_credit) / days).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class DailyRecordManager:
    """
    State machine over a single DailyRecord.

    Every public action returns a LedgerChange. A change whose is_noop is
    True needs no write at all.
    """

    def __init__(
        self,
        validator: Optional[ActionValidator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        clear_due_description: str = DEFAULT_CLEAR_DUE_DESCRIPTION,
    ):
        self._validator = validator or ActionValidator()
        self._clock = clock or datetime.utcnow
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._clear_due_description = clear_due_description

    @property
    def validator(self) -> ActionValidator:
        return self._validator

    def _ensure_valid(self, result: ValidationResult) -> None:
        if result.is_valid:
            for warning in result.warnings:
                logger.warning(
                    "ledger_action_warning",
                    action=result.action.value,
                    warning=warning,
                )
            return

        if result.input_valid:
            raise LimitExceededError(result)
        raise LedgerValidationError(result)

    @staticmethod
    def _change(
        action: LedgerAction,
        record: DailyRecord,
        patch: Optional[DailyRecordPatch] = None,
        savings_delta: Decimal = ZERO,
    ) -> LedgerChange:
        if patch is None:
            patch = DailyRecordPatch()
        return LedgerChange(
            action=action,
            record=patch.apply_to(record),
            patch=patch,
            savings_delta=savings_delta,
        )

    # -------------------------------------------------------------------------
    # Spending
    # -------------------------------------------------------------------------

    def add_spending(
        self,
        record: DailyRecord,
        description: str,
        amount: Any,
    ) -> LedgerChange:
        """
        Append a spending entry. Not idempotent: each call is a new expense.
        """
        amount = _to_decimal(amount)
        self._ensure_valid(self._validator.validate_spending(description, amount))

        entry = SpendingEntry(
            id=self._id_factory(),
            description=description,
            amount=amount,
            timestamp=self._clock(),
        )
        patch = DailyRecordPatch(spending=[*record.spending, entry])
        return self._change(LedgerAction.ADD_SPENDING, record, patch)

    def delete_spending(self, record: DailyRecord, entry_id: str) -> LedgerChange:
        self._ensure_valid(self._validator.validate_reference(
            LedgerAction.DELETE_SPENDING,
            (entry.id for entry in record.spending),
            entry_id,
            field="spending_id",
        ))

        patch = DailyRecordPatch(
            spending=[entry for entry in record.spending if entry.id != entry_id]
        )
        return self._change(LedgerAction.DELETE_SPENDING, record, patch)

    def record_excess_spending(
        self,
        record: DailyRecord,
        summary: FinanceSummary,
        records: Union[Mapping[str, DailyRecord], Iterable[DailyRecord]],
        amount: Any,
        reason: str,
    ) -> LedgerChange:
        """
        Charge a discretionary amount straight to the month's remaining credit.

        The reason replaces any earlier reason recorded on the same day.
        records are the period's records, used only to warn when the amount
        is more than the credit left.
        """
        amount = _to_decimal(amount)
        self._ensure_valid(self._validator.validate_excess_spending(
            amount,
            reason,
            available_for_excess_spending(summary, records),
        ))

        patch = DailyRecordPatch(
            excess_spending=(record.excess_spending or ZERO) + amount,
            excess_spending_reason=reason,
        )
        return self._change(LedgerAction.RECORD_EXCESS_SPENDING, record, patch)

    def clear_due(self, record: DailyRecord, daily_target: Decimal) -> LedgerChange:
        """
        Pay down the carried-over due out of today's remaining target.

        Adds a synthetic spending entry for min(due, remaining target) and
        lowers due by the same amount; due becomes absent once it reaches
        zero. Nothing happens when there is no due or no room left today.
        """
        due = record.due or ZERO
        if due <= 0:
            return self._change(LedgerAction.CLEAR_DUE, record)

        remaining_target = daily_due(record, daily_target).remaining_target
        amount = min(due, remaining_target)
        if amount <= 0:
            logger.info(
                "clear_due_skipped",
                date=record.date,
                due=str(due),
                remaining_target=str(remaining_target),
            )
            return self._change(LedgerAction.CLEAR_DUE, record)

        entry = SpendingEntry(
            id=f"clear-due-{self._id_factory()}",
            description=self._clear_due_description,
            amount=amount,
            timestamp=self._clock(),
        )
        new_due = due - amount
        patch = DailyRecordPatch(
            spending=[*record.spending, entry],
            due=new_due if new_due > 0 else None,
        )
        return self._change(LedgerAction.CLEAR_DUE, record, patch)

    # -------------------------------------------------------------------------
    # Tasks and notes
    # -------------------------------------------------------------------------

    def add_task(self, record: DailyRecord, description: str) -> LedgerChange:
        self._ensure_valid(self._validator.validate_task(description))

        task = Task(
            id=self._id_factory(),
            description=description,
            completed=False,
            created_date=record.date,
        )
        patch = DailyRecordPatch(tasks=[*record.tasks, task])
        return self._change(LedgerAction.ADD_TASK, record, patch)

    def toggle_task(self, record: DailyRecord, task_id: str) -> LedgerChange:
        self._ensure_valid(self._validator.validate_reference(
            LedgerAction.TOGGLE_TASK,
            (task.id for task in record.tasks),
            task_id,
            field="task_id",
        ))

        patch = DailyRecordPatch(tasks=[
            task.model_copy(update={"completed": not task.completed})
            if task.id == task_id else task
            for task in record.tasks
        ])
        return self._change(LedgerAction.TOGGLE_TASK, record, patch)

    def delete_task(self, record: DailyRecord, task_id: str) -> LedgerChange:
        self._ensure_valid(self._validator.validate_reference(
            LedgerAction.DELETE_TASK,
            (task.id for task in record.tasks),
            task_id,
            field="task_id",
        ))

        patch = DailyRecordPatch(
            tasks=[task for task in record.tasks if task.id != task_id]
        )
        return self._change(LedgerAction.DELETE_TASK, record, patch)

    def set_notes(self, record: DailyRecord, text: str) -> LedgerChange:
        """Replace the day's notes. Callers debounce; this is not time-aware."""
        self._ensure_valid(self._validator.validate_notes(text))
        if text == (record.notes or ""):
            return self._change(LedgerAction.SET_NOTES, record)
        return self._change(LedgerAction.SET_NOTES, record, DailyRecordPatch(notes=text))

    def carry_over_tasks(
        self,
        previous: Optional[DailyRecord],
        today: DailyRecord,
    ) -> LedgerChange:
        """
        Copy yesterday's incomplete tasks onto a day that has none.

        Copies get the id "<original id>-carried" and keep the original
        created_date. Runs only while today has no tasks at all, so it is
        idempotent by presence and never merges.
        """
        if today.tasks or previous is None or not previous.tasks:
            return self._change(LedgerAction.CARRY_OVER_TASKS, today)

        if previous.date != previous_day_key(today.date):
            raise ValueError(
                f"Carry-over source {previous.date} is not the day before {today.date}"
            )

        carried = [
            task.model_copy(update={"id": f"{task.id}{CARRIED_SUFFIX}"})
            for task in previous.tasks
            if not task.completed
        ]
        if not carried:
            return self._change(LedgerAction.CARRY_OVER_TASKS, today)

        return self._change(
            LedgerAction.CARRY_OVER_TASKS,
            today,
            DailyRecordPatch(tasks=carried),
        )

    def materialize(
        self,
        date_key: str,
        previous: Optional[DailyRecord] = None,
    ) -> LedgerChange:
        """The first state of a day that has no record yet, with carry-over applied."""
        self.check_date(LedgerAction.CARRY_OVER_TASKS, date_key)
        return self.carry_over_tasks(previous, DailyRecord(date=date_key))

    def check_date(self, action: LedgerAction, date_key: str) -> None:
        """Reject a date key that is not a real YYYY-MM-DD date."""
        self._ensure_valid(self._validator.validate_date_key(action, date_key))

    # -------------------------------------------------------------------------
    # Savings and borrowing
    # -------------------------------------------------------------------------

    def transfer_to_savings(
        self,
        record: DailyRecord,
        summary: FinanceSummary,
        amount: Any,
    ) -> LedgerChange:
        """Move room under today's target into savings."""
        amount = _to_decimal(amount)
        remaining_target = daily_due(record, summary.daily_target).remaining_target
        self._ensure_valid(self._validator.validate_transfer(amount, remaining_target))

        patch = DailyRecordPatch(
            savings_transferred=(record.savings_transferred or ZERO) + amount
        )
        return self._change(LedgerAction.TRANSFER_TO_SAVINGS, record, patch, savings_delta=amount)

    def borrow(
        self,
        record: DailyRecord,
        summary: FinanceSummary,
        amount: Any,
    ) -> LedgerChange:
        """Pull money out of savings into today's spendable credit. Zero is a no-op."""
        amount = _to_decimal(amount)
        self._ensure_valid(self._validator.validate_borrow(amount, available_savings(summary)))

        if amount == 0:
            return self._change(LedgerAction.BORROW, record)

        patch = DailyRecordPatch(borrowed=(record.borrowed or ZERO) + amount)
        return self._change(LedgerAction.BORROW, record, patch, savings_delta=-amount)

    def edit_borrowed(
        self,
        record: DailyRecord,
        summary: FinanceSummary,
        new_amount: Any,
    ) -> LedgerChange:
        """
        Replace the day's borrowed amount.

        Savings move by the difference only; an edit to the same amount
        changes nothing.
        """
        new_amount = _to_decimal(new_amount)
        old_borrowed = record.borrowed or ZERO
        self._ensure_valid(self._validator.validate_borrow_edit(
            new_amount,
            old_borrowed,
            available_savings(summary),
        ))

        difference = new_amount - old_borrowed
        if difference == 0:
            return self._change(LedgerAction.EDIT_BORROWED, record)

        patch = DailyRecordPatch(borrowed=new_amount)
        return self._change(LedgerAction.EDIT_BORROWED, record, patch, savings_delta=-difference)

    def delete_borrowed(self, record: DailyRecord) -> LedgerChange:
        """Return the whole borrowed amount to savings."""
        old_borrowed = record.borrowed or ZERO
        if old_borrowed <= 0:
            return self._change(LedgerAction.DELETE_BORROWED, record)

        patch = DailyRecordPatch(borrowed=ZERO)
        return self._change(LedgerAction.DELETE_BORROWED, record, patch, savings_delta=old_borrowed)

    # -------------------------------------------------------------------------
    # Monthly setup
    # -------------------------------------------------------------------------

    def setup_month(
        self,
        existing: Optional[FinanceSummary],
        monthly_credit: Any,
        daily_target: Any,
        today: date,
        user_id: Optional[str] = None,
    ) -> FinanceSummary:
        """
        Start (or restart) the month governed by today's date.

        Credit and target are overwritten; total_savings carries over from
        the existing summary, or starts at zero. Records from earlier months
        stay in the store but fall out of the period.
        """
        monthly_credit = _to_decimal(monthly_credit)
        daily_target = _to_decimal(daily_target)
        self._ensure_valid(self._validator.validate_month_setup(monthly_credit, daily_target))

        now = self._clock()
        month = current_month_key(today)

        if existing is not None:
            return FinanceSummaryPatch(
                monthly_credit=monthly_credit,
                daily_target=daily_target,
                current_month=month,
                updated_at=now,
            ).apply_to(existing)

        return FinanceSummary(
            user_id=user_id,
            monthly_credit=monthly_credit,
            daily_target=daily_target,
            total_savings=ZERO,
            current_month=month,
            created_at=now,
            updated_at=now,
        )
