"""
Ledger Reconciliation Engine

Folds a user's FinanceSummary and the daily records of a period into the
figures shown to the user: remaining credit, available savings, the
day's due and remaining target, and what is left for excess spending.

DESIGN DECISION: Everything here is a pure function of its inputs.
No storage access, no clock, no logging. The fold is a per-category sum,
so the order of records (and how the set is split) never matters.

Sign conventions:
- spending and savings transfers consume monthly credit
- borrowing restores spendable credit (it is cash pulled out of savings)
- excess spending consumes credit but is kept out of itemised spending
"""

from decimal import Decimal
from typing import Iterable, Mapping, Union

from financeflow.models.ledger import (
    ZERO,
    BudgetSnapshot,
    DailyDueStatus,
    DailyRecord,
    FinanceSummary,
    LedgerTotals,
)


Records = Union[Mapping[str, DailyRecord], Iterable[DailyRecord]]


def _iter_records(records: Records) -> Iterable[DailyRecord]:
    if isinstance(records, Mapping):
        return records.values()
    return records


def fold_records(records: Records) -> LedgerTotals:
    """Sum every category over the records."""
    totals = LedgerTotals()
    for record in _iter_records(records):
        totals = totals + LedgerTotals.from_record(record)
    return totals


def remaining_credit_from_totals(
    monthly_credit: Decimal,
    totals: LedgerTotals,
) -> Decimal:
    return (
        monthly_credit
        - totals.spent
        - totals.savings_transferred
        + totals.borrowed
        - totals.excess_spending
    )


def remaining_credit(summary: FinanceSummary, records: Records) -> Decimal:
    """
    Monthly credit left after the period's records.

    Not floored at zero: a negative value means the month is overspent.
    """
    return remaining_credit_from_totals(summary.monthly_credit, fold_records(records))


def available_savings(summary: FinanceSummary) -> Decimal:
    """
    The savings pool as stored.

    Borrowing and transfers already adjusted total_savings when they were
    recorded, so it is not recomputed from daily records.
    """
    return summary.total_savings


def daily_due(record: DailyRecord, daily_target: Decimal) -> DailyDueStatus:
    """Where one day stands against the daily target."""
    total_spent_today = record.total_spent
    is_over_target = total_spent_today > daily_target
    overage = max(ZERO, total_spent_today - daily_target)

    return DailyDueStatus(
        total_spent_today=total_spent_today,
        is_over_target=is_over_target,
        current_due=(record.due or ZERO) + overage,
        remaining_target=(
            daily_target - total_spent_today - (record.savings_transferred or ZERO)
        ),
    )


def available_for_excess_spending(
    summary: FinanceSummary,
    records: Records,
) -> Decimal:
    return max(ZERO, remaining_credit(summary, records))


def budget_snapshot(summary: FinanceSummary, records: Records) -> BudgetSnapshot:
    """All month-level figures in one pass over the records."""
    totals = fold_records(records)
    remaining = remaining_credit_from_totals(summary.monthly_credit, totals)

    return BudgetSnapshot(
        current_month=summary.current_month,
        monthly_credit=summary.monthly_credit,
        daily_target=summary.daily_target,
        remaining_credit=remaining,
        available_savings=available_savings(summary),
        available_for_excess_spending=max(ZERO, remaining),
        totals=totals,
    )
