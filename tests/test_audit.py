"""
Tests for the audit logger and the audit trail of failed saves.
"""

import pytest
from decimal import Decimal

from financeflow.audit import AuditLogger, create_correlation_id
from financeflow.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from financeflow.models.ledger import LedgerAction
from financeflow.orchestrator import DailyLedgerFlow
from financeflow.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    StorageError,
)
from financeflow.validation import ActionValidator


class BrokenAuditStorage(InMemoryAuditStorage):
    """Audit storage whose writes always blow up."""

    async def append_event(self, event):
        raise RuntimeError("sheet unavailable")


class BrokenLedgerStorage(InMemoryLedgerStorage):
    """Ledger storage that refuses every commit."""

    async def apply_change(self, user_id, date, change):
        raise StorageError("write failed")


@pytest.mark.asyncio
class TestAuditLogger:
    """Tests for AuditLogger persistence."""

    async def test_event_is_persisted(self):
        """Test a logged event reaches storage."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        event = AuditEventBuilder.system_error("boom", "details")

        assert await logger.log(event) is True
        assert storage.events == [event]

    async def test_no_storage_still_succeeds(self):
        """Test logging without storage only logs locally."""
        logger = AuditLogger()
        assert await logger.log(AuditEventBuilder.system_error("boom", "details")) is True

    async def test_storage_failure_is_not_raised(self):
        """Test a failing audit store reports False instead of raising."""
        logger = AuditLogger(BrokenAuditStorage())
        assert await logger.log(AuditEventBuilder.system_error("boom", "details")) is False

    async def test_ledger_action_details(self):
        """Test committed actions record fields and savings movement."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await logger.log_ledger_action(
            user_id="alice",
            action=LedgerAction.BORROW,
            date_key="2024-03-02",
            savings_delta=Decimal("-30"),
            fields=["borrowed"],
            correlation_id=correlation_id,
        )

        event = storage.events[0]
        assert event.event_type == AuditEventType.MONEY_BORROWED
        assert event.entity_id == "2024-03-02"
        assert event.details["savings_delta"] == "-30"
        assert event.details["fields"] == ["borrowed"]
        assert await storage.get_events_by_correlation_id(correlation_id) == [event]

    async def test_rejection_records_issues(self):
        """Test a rejected action keeps every validation issue."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        result = ActionValidator().validate_spending("", Decimal("-1"))

        await logger.log_action_rejected("alice", "2024-03-02", result)

        event = storage.events[0]
        assert event.event_type == AuditEventType.ACTION_REJECTED
        assert event.severity == AuditSeverity.WARNING
        assert event.details["action"] == LedgerAction.ADD_SPENDING.value
        assert len(event.details["issues"]) == 2

    async def test_unauthenticated_write(self):
        """Test refused writes carry the action but no user."""
        storage = InMemoryAuditStorage()
        await AuditLogger(storage).log_unauthenticated_write(LedgerAction.SET_NOTES)

        event = storage.events[0]
        assert event.event_type == AuditEventType.UNAUTHENTICATED_WRITE
        assert event.user_id is None
        assert event.details == {"action": "set_notes"}


@pytest.mark.asyncio
class TestSaveFailures:
    """Tests for storage failures during a commit."""

    async def test_failed_commit_is_audited_and_raised(self):
        """Test a storage error is audited as save_failed and re-raised."""
        audit_storage = InMemoryAuditStorage()
        flow = DailyLedgerFlow(
            storage=BrokenLedgerStorage(),
            audit_logger=AuditLogger(audit_storage),
        )

        with pytest.raises(StorageError):
            await flow.add_spending("alice", "2024-03-02", "Lunch", "12")

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.SAVE_FAILED
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "write failed"
        assert event.details == {"action": "add_spending"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
