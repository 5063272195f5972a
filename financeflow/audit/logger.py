"""
Audit Logger

DESIGN DECISION: Every change to a user's budget is logged.
This provides:
1. Complete traceability of savings and borrow movements
2. Debugging capability when figures look wrong
3. A record of rejected and refused actions

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from financeflow.models.audit import AuditEvent, AuditEventBuilder
from financeflow.models.ledger import LedgerAction, ValidationResult
from financeflow.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("financeflow.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_ledger_action(
        self,
        user_id: str,
        action: LedgerAction,
        date_key: str,
        savings_delta: Decimal,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
        is_user_action: bool = True,
    ) -> None:
        """Log a committed lifecycle action."""
        event = AuditEventBuilder.ledger_action(
            user_id=user_id,
            action=action,
            date_key=date_key,
            savings_delta=savings_delta,
            fields=fields,
            correlation_id=correlation_id,
            is_user_action=is_user_action,
        )
        await self.log(event)

    async def log_month_setup(
        self,
        user_id: str,
        current_month: str,
        monthly_credit: Decimal,
        daily_target: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.month_setup(
            user_id=user_id,
            current_month=current_month,
            monthly_credit=monthly_credit,
            daily_target=daily_target,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_action_rejected(
        self,
        user_id: Optional[str],
        date_key: Optional[str],
        result: ValidationResult,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an action refused by validation."""
        event = AuditEventBuilder.action_rejected(
            user_id=user_id,
            action=result.action,
            date_key=date_key,
            issues=[issue.model_dump() for issue in result.issues],
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_unauthenticated_write(
        self,
        action: LedgerAction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.unauthenticated_write(
            action=action,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_save_failed(
        self,
        user_id: str,
        action: LedgerAction,
        date_key: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.save_failed(
            user_id=user_id,
            action=action,
            date_key=date_key,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., opening a day).
    Pass it through all subsequent operations.
    """
    return uuid4()
