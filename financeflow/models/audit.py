"""
Audit Models for FinanceFlow

Every action that changes a user's budget is logged for audit purposes.
This provides:
1. Traceability of every savings, borrow and spending change
2. Debugging information when the two documents drift apart
3. A way to reconstruct how a day's figures came about

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from financeflow.models.ledger import LedgerAction


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each lifecycle action has its own event type.
    """
    # Monthly setup
    MONTH_SETUP = "month_setup"

    # Spending
    SPENDING_ADDED = "spending_added"
    SPENDING_DELETED = "spending_deleted"
    EXCESS_SPENDING_RECORDED = "excess_spending_recorded"
    DUE_CLEARED = "due_cleared"

    # Tasks and notes
    TASK_ADDED = "task_added"
    TASK_TOGGLED = "task_toggled"
    TASK_DELETED = "task_deleted"
    TASKS_CARRIED_OVER = "tasks_carried_over"
    NOTES_UPDATED = "notes_updated"

    # Savings
    SAVINGS_TRANSFERRED = "savings_transferred"
    MONEY_BORROWED = "money_borrowed"
    BORROWED_EDITED = "borrowed_edited"
    BORROWED_DELETED = "borrowed_deleted"

    # Rejections and failures
    ACTION_REJECTED = "action_rejected"
    UNAUTHENTICATED_WRITE = "unauthenticated_write"
    SAVE_FAILED = "save_failed"

    # System events
    SYSTEM_ERROR = "system_error"


ACTION_EVENT_TYPES: dict[LedgerAction, AuditEventType] = {
    LedgerAction.ADD_SPENDING: AuditEventType.SPENDING_ADDED,
    LedgerAction.DELETE_SPENDING: AuditEventType.SPENDING_DELETED,
    LedgerAction.ADD_TASK: AuditEventType.TASK_ADDED,
    LedgerAction.TOGGLE_TASK: AuditEventType.TASK_TOGGLED,
    LedgerAction.DELETE_TASK: AuditEventType.TASK_DELETED,
    LedgerAction.TRANSFER_TO_SAVINGS: AuditEventType.SAVINGS_TRANSFERRED,
    LedgerAction.BORROW: AuditEventType.MONEY_BORROWED,
    LedgerAction.EDIT_BORROWED: AuditEventType.BORROWED_EDITED,
    LedgerAction.DELETE_BORROWED: AuditEventType.BORROWED_DELETED,
    LedgerAction.RECORD_EXCESS_SPENDING: AuditEventType.EXCESS_SPENDING_RECORDED,
    LedgerAction.CLEAR_DUE: AuditEventType.DUE_CLEARED,
    LedgerAction.SET_NOTES: AuditEventType.NOTES_UPDATED,
    LedgerAction.CARRY_OVER_TASKS: AuditEventType.TASKS_CARRIED_OVER,
    LedgerAction.SETUP_MONTH: AuditEventType.MONTH_SETUP,
}


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - whose data and which document
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the affected documents"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity ('daily_record' or 'finance_summary')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Key of the entity (date for daily records, month for summaries)"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a carry-over and the action that caused it)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _money(amount: Optional[Decimal]) -> Optional[str]:
    return str(amount) if amount is not None else None


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.ledger_action(user_id, action, date, ...)
        event = AuditEventBuilder.month_setup(user_id, month, credit, target)
    """

    @staticmethod
    def ledger_action(
        user_id: str,
        action: LedgerAction,
        date_key: str,
        savings_delta: Decimal,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
        is_user_action: bool = True,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=ACTION_EVENT_TYPES[action],
            user_id=user_id,
            entity_type="daily_record",
            entity_id=date_key,
            correlation_id=correlation_id,
            description=f"{action.value.replace('_', ' ').capitalize()} on {date_key}",
            details={
                "action": action.value,
                "fields": sorted(fields),
                "savings_delta": _money(savings_delta),
            },
            is_user_action=is_user_action,
        )

    @staticmethod
    def month_setup(
        user_id: str,
        current_month: str,
        monthly_credit: Decimal,
        daily_target: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_SETUP,
            user_id=user_id,
            entity_type="finance_summary",
            entity_id=current_month,
            correlation_id=correlation_id,
            description=f"Month {current_month} set up",
            details={
                "monthly_credit": _money(monthly_credit),
                "daily_target": _money(daily_target),
            },
            is_user_action=True,
        )

    @staticmethod
    def action_rejected(
        user_id: Optional[str],
        action: LedgerAction,
        date_key: Optional[str],
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="daily_record" if date_key else None,
            entity_id=date_key,
            correlation_id=correlation_id,
            description=f"{action.value} rejected with {len(issues)} issues",
            details={
                "action": action.value,
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def unauthenticated_write(
        action: LedgerAction,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UNAUTHENTICATED_WRITE,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Refused {action.value}: no authenticated user",
            details={"action": action.value},
        )

    @staticmethod
    def save_failed(
        user_id: str,
        action: LedgerAction,
        date_key: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="daily_record" if date_key else "finance_summary",
            entity_id=date_key,
            correlation_id=correlation_id,
            description=f"Failed to save {action.value}",
            error_message=error_message,
            details={"action": action.value},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
