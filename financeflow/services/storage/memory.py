"""
In-Memory Storage Implementation

Used by the test suite and for local runs without Google credentials.
Documents are kept as validated models keyed by user (and date).

A single asyncio.Lock serialises writes, so apply_change is atomic with
respect to other coroutines on the same store.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from financeflow.models.audit import AuditEvent
from financeflow.models.ledger import (
    DailyRecord,
    DailyRecordPatch,
    FinanceSummary,
    FinanceSummaryPatch,
    LedgerChange,
)
from financeflow.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed ledger storage."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or datetime.utcnow
        self._summaries: dict[str, FinanceSummary] = {}
        self._records: dict[tuple[str, str], DailyRecord] = {}
        self._lock = asyncio.Lock()

    async def get_summary(self, user_id: str) -> Optional[FinanceSummary]:
        return self._summaries.get(user_id)

    async def save_summary(self, user_id: str, summary: FinanceSummary) -> FinanceSummary:
        async with self._lock:
            return self._put_summary(user_id, summary)

    def _put_summary(self, user_id: str, summary: FinanceSummary) -> FinanceSummary:
        now = self._clock()
        existing = self._summaries.get(user_id)
        stored = summary.model_copy(update={
            "user_id": user_id,
            "created_at": existing.created_at if existing else (summary.created_at or now),
            "updated_at": now,
        })
        self._summaries[user_id] = stored
        return stored

    async def get_daily_record(self, user_id: str, date: str) -> Optional[DailyRecord]:
        return self._records.get((user_id, date))

    async def list_daily_records(
        self,
        user_id: str,
        date_from: str,
        date_to: str,
    ) -> list[DailyRecord]:
        records = [
            record
            for (owner, day), record in self._records.items()
            if owner == user_id and date_from <= day < date_to
        ]
        return sorted(records, key=lambda r: r.date)

    async def insert_daily_record(self, user_id: str, record: DailyRecord) -> DailyRecord:
        async with self._lock:
            key = (user_id, record.date)
            if key in self._records:
                raise DuplicateError(f"Daily record already exists: {record.date}")
            now = self._clock()
            stored = record.model_copy(update={"created_at": now, "updated_at": now})
            self._records[key] = stored
            return stored

    async def patch_daily_record(
        self,
        user_id: str,
        date: str,
        patch: DailyRecordPatch,
    ) -> DailyRecord:
        async with self._lock:
            return self._patch_record(user_id, date, patch)

    def _patch_record(self, user_id: str, date: str, patch: DailyRecordPatch) -> DailyRecord:
        now = self._clock()
        key = (user_id, date)
        existing = self._records.get(key) or DailyRecord(date=date, created_at=now)
        stored = patch.apply_to(existing).model_copy(update={"updated_at": now})
        self._records[key] = stored
        return stored

    async def apply_change(
        self,
        user_id: str,
        date: str,
        change: LedgerChange,
    ) -> tuple[DailyRecord, Optional[FinanceSummary]]:
        async with self._lock:
            summary = self._summaries.get(user_id)
            if change.savings_delta != 0 and summary is None:
                raise NotFoundError(f"No finance summary for user {user_id}")

            # both writes happen under the lock with nothing that can fail between them
            record = self._patch_record(user_id, date, change.patch)
            if change.savings_delta != 0:
                summary = self._put_summary(user_id, FinanceSummaryPatch(
                    total_savings=summary.total_savings + change.savings_delta,
                ).apply_to(summary))
            return record, summary


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit storage."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
