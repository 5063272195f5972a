"""
Tests for FinanceFlow

Test strategy:
1. Unit tests for individual components (models, engine, validators)
2. Integration tests for flows (with in-memory storage)
3. No real API calls in tests
"""

import json
import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from financeflow.models.ledger import (
    DailyRecord,
    DailyRecordPatch,
    FinanceSummary,
    FinanceSummaryPatch,
    LedgerAction,
    LedgerChange,
    LedgerTotals,
    SpendingEntry,
    Task,
    ValidationIssue,
    ValidationResult,
    is_date_key,
)
from financeflow.models.audit import (
    ACTION_EVENT_TYPES,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def make_entry(amount: str, entry_id: str = "e1") -> SpendingEntry:
    return SpendingEntry(
        id=entry_id,
        description="Coffee",
        amount=Decimal(amount),
        timestamp=datetime(2024, 3, 1, 9, 0),
    )


class TestLedgerModels:
    """Tests for summary and daily-record Pydantic models."""

    def test_finance_summary_creation(self):
        """Test FinanceSummary model creation."""
        summary = FinanceSummary(
            monthly_credit=Decimal("3000"),
            daily_target=Decimal("100"),
            current_month="2024-03",
        )
        assert summary.total_savings == Decimal("0")
        assert summary.user_id is None

    def test_finance_summary_rejects_bad_month(self):
        """Test that current_month must be YYYY-MM with a real month."""
        with pytest.raises(ValueError):
            FinanceSummary(
                monthly_credit=Decimal("3000"),
                daily_target=Decimal("100"),
                current_month="2024-13",
            )

    def test_finance_summary_allows_negative_savings(self):
        """Test that over-borrowing can leave savings negative."""
        summary = FinanceSummary(
            monthly_credit=Decimal("3000"),
            daily_target=Decimal("100"),
            total_savings=Decimal("-50"),
            current_month="2024-03",
        )
        assert summary.total_savings == Decimal("-50")

    def test_daily_record_rejects_impossible_date(self):
        """Test that a well-formed but impossible date is rejected."""
        with pytest.raises(ValueError, match="Not a calendar date"):
            DailyRecord(date="2024-02-30")

    def test_daily_record_rejects_unpadded_date(self):
        """Test that dates must be zero-padded so they sort as strings."""
        with pytest.raises(ValueError):
            DailyRecord(date="2024-3-1")

    def test_daily_record_defaults_are_absent(self):
        """Test that a fresh record has no optional values set."""
        record = DailyRecord(date="2024-03-01")
        assert record.spending == []
        assert record.tasks == []
        assert record.due is None
        assert record.borrowed is None
        assert record.total_spent == Decimal("0")

    def test_daily_record_total_spent(self):
        """Test total_spent sums all entries."""
        record = DailyRecord(
            date="2024-03-01",
            spending=[make_entry("40", "a"), make_entry("70", "b")],
        )
        assert record.total_spent == Decimal("110")
        assert record.has_spending is True

    def test_whitespace_only_notes_do_not_count(self):
        """Test that blank notes are not reported as notes."""
        assert DailyRecord(date="2024-03-01", notes="   ").has_notes is False
        assert DailyRecord(date="2024-03-01", notes="Call mum").has_notes is True

    def test_spending_entry_rejects_zero_amount(self):
        """Test that spending must be positive."""
        with pytest.raises(ValueError):
            make_entry("0")

    def test_spending_entry_is_immutable(self):
        """Test that spending entries cannot be edited in place."""
        entry = make_entry("10")
        with pytest.raises(ValidationError):
            entry.amount = Decimal("20")

    def test_spending_entry_strips_whitespace(self):
        """Test that whitespace is stripped from descriptions."""
        entry = SpendingEntry(
            id="e1",
            description="  Lunch  ",
            amount=Decimal("12"),
            timestamp=datetime(2024, 3, 1),
        )
        assert entry.description == "Lunch"

    def test_task_carried_over(self):
        """Test is_carried_over compares against created_date."""
        task = Task(id="t1", description="Pay rent", created_date="2024-03-01")
        assert task.is_carried_over("2024-03-02") is True
        assert task.is_carried_over("2024-03-01") is False


class TestPatches:
    """Tests for partial-update models."""

    def test_unset_fields_are_untouched(self):
        """Test that fields left out of a patch keep their stored values."""
        record = DailyRecord(date="2024-03-01", notes="keep", due=Decimal("10"))
        patched = DailyRecordPatch(borrowed=Decimal("5")).apply_to(record)
        assert patched.notes == "keep"
        assert patched.due == Decimal("10")
        assert patched.borrowed == Decimal("5")

    def test_explicit_none_clears_field(self):
        """Test that a field set to None is cleared."""
        record = DailyRecord(date="2024-03-01", due=Decimal("10"))
        patch = DailyRecordPatch(due=None)
        assert patch.is_empty is False
        assert patch.apply_to(record).due is None

    def test_empty_patch_returns_same_record(self):
        """Test that an empty patch is a no-op."""
        record = DailyRecord(date="2024-03-01")
        patch = DailyRecordPatch()
        assert patch.is_empty is True
        assert patch.apply_to(record) is record

    def test_patch_does_not_mutate_input(self):
        """Test that apply_to returns a new record."""
        record = DailyRecord(date="2024-03-01")
        DailyRecordPatch(notes="new").apply_to(record)
        assert record.notes is None

    def test_patch_changes_lists_only_set_fields(self):
        """Test changes() contains exactly the set fields."""
        patch = DailyRecordPatch(notes="x", due=None)
        assert patch.changes() == {"notes": "x", "due": None}

    def test_summary_patch(self):
        """Test FinanceSummaryPatch merges only set fields."""
        summary = FinanceSummary(
            monthly_credit=Decimal("3000"),
            daily_target=Decimal("100"),
            total_savings=Decimal("500"),
            current_month="2024-03",
        )
        patched = FinanceSummaryPatch(total_savings=Decimal("300")).apply_to(summary)
        assert patched.total_savings == Decimal("300")
        assert patched.monthly_credit == Decimal("3000")


class TestDerivedModels:
    """Tests for totals and change results."""

    def test_totals_addition(self):
        """Test that totals add per category."""
        a = LedgerTotals(spent=Decimal("10"), borrowed=Decimal("5"))
        b = LedgerTotals(spent=Decimal("1"), excess_spending=Decimal("2"))
        total = a + b
        assert total.spent == Decimal("11")
        assert total.borrowed == Decimal("5")
        assert total.excess_spending == Decimal("2")

    def test_totals_from_empty_record(self):
        """Test that a bare record contributes zero everywhere."""
        assert LedgerTotals.from_record(DailyRecord(date="2024-03-01")) == LedgerTotals()

    def test_change_is_noop(self):
        """Test is_noop for an empty patch and zero delta."""
        record = DailyRecord(date="2024-03-01")
        assert LedgerChange(action=LedgerAction.CLEAR_DUE, record=record).is_noop is True
        change = LedgerChange(
            action=LedgerAction.BORROW,
            record=record,
            savings_delta=Decimal("-1"),
        )
        assert change.is_noop is False

    def test_change_following_merges_patches(self):
        """Test a change folded onto an unwritten one writes both patches."""
        carried = Task(id="t1-carried", description="open", created_date="2024-03-01")
        opening = LedgerChange(
            action=LedgerAction.CARRY_OVER_TASKS,
            record=DailyRecord(date="2024-03-02", tasks=[carried]),
            patch=DailyRecordPatch(tasks=[carried]),
        )
        record = opening.record.model_copy(update={"spending": [make_entry("10")]})
        change = LedgerChange(
            action=LedgerAction.ADD_SPENDING,
            record=record,
            patch=DailyRecordPatch(spending=record.spending),
        )

        merged = change.following(opening)
        assert merged.action == LedgerAction.ADD_SPENDING
        assert set(merged.patch.changes()) == {"tasks", "spending"}
        assert merged.patch.tasks[0].id == "t1-carried"
        assert merged.savings_delta == Decimal("0")

    def test_change_following_noop(self):
        """Test folding onto a no-op returns the change unchanged."""
        record = DailyRecord(date="2024-03-02")
        opening = LedgerChange(action=LedgerAction.CARRY_OVER_TASKS, record=record)
        change = LedgerChange(
            action=LedgerAction.BORROW,
            record=record,
            patch=DailyRecordPatch(borrowed=Decimal("5")),
            savings_delta=Decimal("-5"),
        )
        assert change.following(opening) is change

    @pytest.mark.parametrize("value,expected", [
        ("2024-02-29", True),
        ("2023-02-29", False),
        ("2024-3-1", False),
        ("2024-03-01 ", False),
        (None, False),
    ])
    def test_is_date_key(self, value, expected):
        """Test only real YYYY-MM-DD dates are date keys."""
        assert is_date_key(value) is expected


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.SPENDING_ADDED,
            description="Spending added",
        )
        assert event.event_type == AuditEventType.SPENDING_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.MONEY_BORROWED,
            description="Borrowed",
            details={"savings_delta": "-200"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "money_borrowed"
        assert log_dict["details"]["savings_delta"] == "-200"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.NOTES_UPDATED,
            description="Notes updated",
            user_id="alice",
            details={"fields": ["notes"]},
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 12  # Expected number of columns
        assert row[2] == "notes_updated"  # event_type
        assert row[4] == "alice"  # user_id
        assert json.loads(row[9]) == {"fields": ["notes"]}
        assert row[11] == "True"  # is_user_action

    def test_every_action_has_an_event_type(self):
        """Test that each ledger action maps to an audit event type."""
        for action in LedgerAction:
            assert action in ACTION_EVENT_TYPES

    def test_audit_event_builder_ledger_action(self):
        """Test AuditEventBuilder.ledger_action."""
        correlation_id = uuid4()
        event = AuditEventBuilder.ledger_action(
            user_id="alice",
            action=LedgerAction.TRANSFER_TO_SAVINGS,
            date_key="2024-03-01",
            savings_delta=Decimal("25"),
            fields=["savings_transferred"],
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.SAVINGS_TRANSFERRED
        assert event.entity_type == "daily_record"
        assert event.entity_id == "2024-03-01"
        assert event.details["savings_delta"] == "25"
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_audit_event_builder_month_setup(self):
        """Test AuditEventBuilder.month_setup."""
        event = AuditEventBuilder.month_setup(
            user_id="alice",
            current_month="2024-03",
            monthly_credit=Decimal("3000"),
            daily_target=Decimal("100"),
        )
        assert event.event_type == AuditEventType.MONTH_SETUP
        assert event.entity_type == "finance_summary"
        assert event.entity_id == "2024-03"

    def test_audit_event_builder_unauthenticated_write(self):
        """Test that refused writes are warnings without a user."""
        event = AuditEventBuilder.unauthenticated_write(LedgerAction.BORROW)
        assert event.event_type == AuditEventType.UNAUTHENTICATED_WRITE
        assert event.severity == AuditSeverity.WARNING
        assert event.user_id is None


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            action=LedgerAction.ADD_SPENDING,
            input_valid=False,
            limits_valid=True,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="non_positive",
                    message="Amount must be greater than zero",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            action=LedgerAction.RECORD_EXCESS_SPENDING,
            input_valid=True,
            limits_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="limit_exceeded",
                    message="Over available credit",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
