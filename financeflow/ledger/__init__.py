"""
Budget ledger package.

- reconciliation: pure functions over a summary and a period's records
- lifecycle: one action at a time on a single day's record
- periods: month/day keys and calendar markers
"""

from financeflow.ledger.lifecycle import (
    DailyRecordManager,
    LedgerError,
    LedgerValidationError,
    LimitExceededError,
    suggested_daily_target,
)
from financeflow.ledger.periods import (
    current_month_key,
    date_key,
    day_activity,
    is_setup_stale,
    month_bounds,
    month_calendar,
    previous_day_key,
)
from financeflow.ledger.reconciliation import (
    available_for_excess_spending,
    available_savings,
    budget_snapshot,
    daily_due,
    fold_records,
    remaining_credit,
)

__all__ = [
    # Lifecycle
    "DailyRecordManager",
    "LedgerError",
    "LedgerValidationError",
    "LimitExceededError",
    "suggested_daily_target",
    # Periods
    "current_month_key",
    "date_key",
    "day_activity",
    "is_setup_stale",
    "month_bounds",
    "month_calendar",
    "previous_day_key",
    # Reconciliation
    "available_for_excess_spending",
    "available_savings",
    "budget_snapshot",
    "daily_due",
    "fold_records",
    "remaining_credit",
]
