"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the ledger engine independent of where documents live
2. Use in-memory storage for testing and local runs
3. Swap Google Sheets for a real database later

The store holds two kinds of documents per user: one FinanceSummary and
one DailyRecord per date. Dates are "YYYY-MM-DD" strings and range
lookups compare them as strings.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from financeflow.models.audit import AuditEvent
from financeflow.models.ledger import (
    DailyRecord,
    DailyRecordPatch,
    FinanceSummary,
    LedgerChange,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for summary and daily-record storage.

    Any storage implementation (in-memory, Google Sheets, ...) must
    implement these methods.
    """

    @abstractmethod
    async def get_summary(self, user_id: str) -> Optional[FinanceSummary]:
        """
        Unique lookup of a user's finance summary.

        Returns:
            The summary if found, None otherwise
        """
        pass

    @abstractmethod
    async def save_summary(self, user_id: str, summary: FinanceSummary) -> FinanceSummary:
        """
        Insert the user's summary, or replace every field of the existing one.

        Returns:
            The summary as stored (user_id and timestamps filled in)

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_daily_record(self, user_id: str, date: str) -> Optional[DailyRecord]:
        """
        Unique lookup of a daily record by (user, date).

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_daily_records(
        self,
        user_id: str,
        date_from: str,
        date_to: str,
    ) -> list[DailyRecord]:
        """
        Range lookup of a user's daily records.

        Args:
            user_id: Owner of the records
            date_from: Inclusive lower bound (string comparison)
            date_to: Exclusive upper bound (string comparison)

        Returns:
            Matching records in date order
        """
        pass

    @abstractmethod
    async def insert_daily_record(self, user_id: str, record: DailyRecord) -> DailyRecord:
        """
        Insert a new daily record.

        Raises:
            DuplicateError: If a record for (user, date) already exists
        """
        pass

    @abstractmethod
    async def patch_daily_record(
        self,
        user_id: str,
        date: str,
        patch: DailyRecordPatch,
    ) -> DailyRecord:
        """
        Overwrite only the fields set on the patch.

        The record is created if it does not exist yet.

        Returns:
            The record after the patch
        """
        pass

    @abstractmethod
    async def apply_change(
        self,
        user_id: str,
        date: str,
        change: LedgerChange,
    ) -> tuple[DailyRecord, Optional[FinanceSummary]]:
        """
        Commit one lifecycle action: the daily-record patch and the
        total_savings adjustment together.

        Either both writes land or neither does.

        Returns:
            (record after the patch, summary after the adjustment)

        Raises:
            NotFoundError: If the change moves savings but the user has no summary
            StorageError: If the change could not be committed
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID.

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: 'daily_record' or 'finance_summary'
            entity_id: The entity's key (date or month)

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
