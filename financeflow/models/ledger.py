"""
Core Data Models for FinanceFlow

These models define the schemas for the two documents we store per user
(one FinanceSummary, one DailyRecord per calendar date) and the derived
figures the reconciliation engine computes from them.

DESIGN DECISION: Amounts are Decimal everywhere. Budget arithmetic is
additive over many small entries and float drift would show up in the
remaining-credit figure.

DESIGN DECISION: Partial updates are explicit patch models rather than
dictionaries. A patch field that was never set is left untouched when the
patch is merged; a field explicitly set to None clears the stored value.
"""

import re
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


DATE_KEY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
MONTH_KEY_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"

ZERO = Decimal("0")

MAX_DESCRIPTION_LENGTH = 200
MAX_TASK_LENGTH = 500
MAX_REASON_LENGTH = 500
MAX_NOTES_LENGTH = 5000


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class LedgerAction(str, Enum):
    """
    Every user action that can change a daily record or the summary.

    Used for audit events and for tagging LedgerChange results.
    """
    ADD_SPENDING = "add_spending"
    DELETE_SPENDING = "delete_spending"
    ADD_TASK = "add_task"
    TOGGLE_TASK = "toggle_task"
    DELETE_TASK = "delete_task"
    TRANSFER_TO_SAVINGS = "transfer_to_savings"
    BORROW = "borrow"
    EDIT_BORROWED = "edit_borrowed"
    DELETE_BORROWED = "delete_borrowed"
    RECORD_EXCESS_SPENDING = "record_excess_spending"
    CLEAR_DUE = "clear_due"
    SET_NOTES = "set_notes"
    CARRY_OVER_TASKS = "carry_over_tasks"
    SETUP_MONTH = "setup_month"


class LimitPolicy(str, Enum):
    """
    How soft limits (remaining target, available savings) are enforced.

    STRICT rejects an action that would break a limit.
    LENIENT lets it through and only records a warning.
    """
    STRICT = "strict"
    LENIENT = "lenient"


class DayActivity(str, Enum):
    """Calendar marker for a day, based on what was logged on it."""
    NONE = "none"
    SPENDING = "spending"
    TASKS = "tasks"
    NOTES = "notes"
    SPENDING_AND_TASKS = "spending_and_tasks"
    SPENDING_AND_NOTES = "spending_and_notes"
    TASKS_AND_NOTES = "tasks_and_notes"
    ALL = "all"


def is_date_key(v: str) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    if not isinstance(v, str) or re.match(DATE_KEY_PATTERN, v) is None:
        return False
    try:
        date.fromisoformat(v)
    except ValueError:
        return False
    return True


def _check_date_key(v: str) -> str:
    if not is_date_key(v):
        raise ValueError(f"Not a calendar date: {v}")
    return v


# =============================================================================
# FINANCE SUMMARY
# =============================================================================

class FinanceSummary(BaseModel):
    """
    One per user. The budget for the active month plus the savings pool.

    total_savings is the authoritative running total: borrow and transfer
    actions adjust it at the time they are recorded, it is never recomputed
    from daily records.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: Optional[str] = Field(
        default=None,
        description="Owner of this summary (partition key)"
    )
    monthly_credit: Decimal = Field(
        ...,
        ge=0,
        description="Total budget for the active month"
    )
    daily_target: Decimal = Field(
        ...,
        ge=0,
        description="Intended daily spending ceiling"
    )
    total_savings: Decimal = Field(
        default=ZERO,
        description="Cumulative savings pool (negative after over-borrowing)"
    )
    current_month: str = Field(
        ...,
        pattern=MONTH_KEY_PATTERN,
        description="Month this summary governs (YYYY-MM)"
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FinanceSummaryPatch(BaseModel):
    """Partial update of a FinanceSummary. Unset fields are left untouched."""
    model_config = ConfigDict(str_strip_whitespace=True)

    monthly_credit: Optional[Decimal] = Field(default=None, ge=0)
    daily_target: Optional[Decimal] = Field(default=None, ge=0)
    total_savings: Optional[Decimal] = None
    current_month: Optional[str] = Field(default=None, pattern=MONTH_KEY_PATTERN)
    updated_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set

    def changes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}

    def apply_to(self, summary: FinanceSummary) -> FinanceSummary:
        if self.is_empty:
            return summary
        return summary.model_copy(update=self.changes())


# =============================================================================
# DAILY RECORD
# =============================================================================

class SpendingEntry(BaseModel):
    """
    One itemised expense on a day.

    Immutable once created; only deletion by id is allowed.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    description: str = Field(
        ...,
        min_length=1,
        max_length=MAX_DESCRIPTION_LENGTH,
        description="What the money was spent on"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount spent"
    )
    timestamp: datetime = Field(
        ...,
        description="When the entry was recorded"
    )


class Task(BaseModel):
    """
    A to-do item on a day.

    created_date is preserved across carry-over, so a task that appears on
    a later day still remembers the day it was first written down.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1, max_length=MAX_TASK_LENGTH)
    completed: bool = False
    created_date: str = Field(..., pattern=DATE_KEY_PATTERN)

    @field_validator("created_date")
    @classmethod
    def validate_created_date(cls, v: str) -> str:
        return _check_date_key(v)

    def is_carried_over(self, on_date: str) -> bool:
        """True when the task was created on a different day than on_date."""
        return self.created_date != on_date


class DailyRecord(BaseModel):
    """
    One per user per calendar date.

    Every scalar is optional: absent means "never set" and contributes
    zero to every reconciliation sum.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    date: str = Field(
        ...,
        pattern=DATE_KEY_PATTERN,
        description="Calendar date (YYYY-MM-DD)"
    )
    spending: list[SpendingEntry] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)
    due: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Shortfall carried over from exceeding the daily target"
    )
    savings_transferred: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Cumulative amount moved into savings on this day"
    )
    borrowed: Optional[Decimal] = Field(
        default=None,
        description="Cumulative amount pulled out of savings on this day"
    )
    excess_spending: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Discretionary spend charged to the month's remaining credit"
    )
    excess_spending_reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        """Reject well-formed strings that are not real dates (2024-02-30)."""
        return _check_date_key(v)

    @property
    def total_spent(self) -> Decimal:
        return sum((entry.amount for entry in self.spending), ZERO)

    @property
    def has_spending(self) -> bool:
        return bool(self.spending)

    @property
    def has_tasks(self) -> bool:
        return bool(self.tasks)

    @property
    def has_notes(self) -> bool:
        return bool(self.notes and self.notes.strip())


class DailyRecordPatch(BaseModel):
    """
    Partial update of a DailyRecord.

    Only fields that were explicitly set are merged. Setting a field to
    None clears it; leaving it out keeps whatever is stored.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    spending: Optional[list[SpendingEntry]] = None
    tasks: Optional[list[Task]] = None
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)
    due: Optional[Decimal] = Field(default=None, ge=0)
    savings_transferred: Optional[Decimal] = Field(default=None, ge=0)
    borrowed: Optional[Decimal] = None
    excess_spending: Optional[Decimal] = Field(default=None, ge=0)
    excess_spending_reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set

    def changes(self) -> dict[str, Any]:
        """The explicitly set fields and their values."""
        return {name: getattr(self, name) for name in self.model_fields_set}

    def apply_to(self, record: DailyRecord) -> DailyRecord:
        """Merge this patch into record, returning a new record."""
        if self.is_empty:
            return record
        return record.model_copy(update=self.changes())


# =============================================================================
# DERIVED FIGURES
# =============================================================================

class LedgerTotals(BaseModel):
    """
    Per-category sums over a set of daily records.

    Combining two totals with + is the same as folding the union of
    their record sets.
    """
    model_config = ConfigDict(frozen=True)

    spent: Decimal = ZERO
    savings_transferred: Decimal = ZERO
    borrowed: Decimal = ZERO
    excess_spending: Decimal = ZERO

    @classmethod
    def from_record(cls, record: DailyRecord) -> "LedgerTotals":
        return cls(
            spent=record.total_spent,
            savings_transferred=record.savings_transferred or ZERO,
            borrowed=record.borrowed or ZERO,
            excess_spending=record.excess_spending or ZERO,
        )

    def __add__(self, other: "LedgerTotals") -> "LedgerTotals":
        if not isinstance(other, LedgerTotals):
            return NotImplemented
        return LedgerTotals(
            spent=self.spent + other.spent,
            savings_transferred=self.savings_transferred + other.savings_transferred,
            borrowed=self.borrowed + other.borrowed,
            excess_spending=self.excess_spending + other.excess_spending,
        )


class DailyDueStatus(BaseModel):
    """Where a single day stands against the daily target."""
    model_config = ConfigDict(frozen=True)

    total_spent_today: Decimal
    is_over_target: bool
    current_due: Decimal
    remaining_target: Decimal = Field(
        ...,
        description="Room left for savings transfer today (negative when over)"
    )


class BudgetSnapshot(BaseModel):
    """All month-level figures shown in the summary bar."""
    model_config = ConfigDict(frozen=True)

    current_month: str
    monthly_credit: Decimal
    daily_target: Decimal
    remaining_credit: Decimal
    available_savings: Decimal
    available_for_excess_spending: Decimal
    totals: LedgerTotals

    @property
    def is_overspent(self) -> bool:
        return self.remaining_credit < 0


class LedgerChange(BaseModel):
    """
    The outcome of one lifecycle action.

    record is the new state of the day, patch is what has to be written
    to the store to get there, and savings_delta is the adjustment to the
    summary's total_savings that must be written together with it.
    """

    action: LedgerAction
    record: DailyRecord
    patch: DailyRecordPatch = Field(default_factory=DailyRecordPatch)
    savings_delta: Decimal = ZERO

    @property
    def is_noop(self) -> bool:
        return self.patch.is_empty and self.savings_delta == 0

    def following(self, earlier: "LedgerChange") -> "LedgerChange":
        """
        This change folded onto an earlier one that was never written.

        The merged patch writes both; where both set a field, this change
        wins, since its record was built from the earlier one's.
        """
        if earlier.is_noop:
            return self
        patch = DailyRecordPatch(**{**earlier.patch.changes(), **self.patch.changes()})
        return self.model_copy(update={
            "patch": patch,
            "savings_delta": earlier.savings_delta + self.savings_delta,
        })


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'non_positive', 'limit_exceeded')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage action validation.

    Stage 1: Input validation (amounts, required text, known ids)
    Stage 2: Limit validation (remaining target, available savings/credit)
    """

    action: LedgerAction
    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    input_valid: bool = Field(
        ...,
        description="Did input validation pass?"
    )
    limits_valid: bool = Field(
        ...,
        description="Did limit validation pass?"
    )
    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
