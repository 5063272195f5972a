"""
Data Models Package

This package contains all Pydantic models used in FinanceFlow.
All data flowing through the system must conform to these schemas.
"""

from financeflow.models.ledger import (
    BudgetSnapshot,
    DailyDueStatus,
    DailyRecord,
    DailyRecordPatch,
    DayActivity,
    FinanceSummary,
    FinanceSummaryPatch,
    LedgerAction,
    LedgerChange,
    LedgerTotals,
    LimitPolicy,
    SpendingEntry,
    Task,
    ValidationIssue,
    ValidationResult,
)
from financeflow.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "BudgetSnapshot",
    "DailyDueStatus",
    "DailyRecord",
    "DailyRecordPatch",
    "DayActivity",
    "FinanceSummary",
    "FinanceSummaryPatch",
    "LedgerAction",
    "LedgerChange",
    "LedgerTotals",
    "LimitPolicy",
    "SpendingEntry",
    "Task",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
