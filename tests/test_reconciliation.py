"""
Tests for the reconciliation engine.

Everything here is pure: records in, figures out.
"""

import pytest
from datetime import datetime
from decimal import Decimal

from financeflow.ledger.reconciliation import (
    available_for_excess_spending,
    available_savings,
    budget_snapshot,
    daily_due,
    fold_records,
    remaining_credit,
)
from financeflow.models.ledger import DailyRecord, FinanceSummary, SpendingEntry


def summary(credit="3000", target="100", savings="0") -> FinanceSummary:
    return FinanceSummary(
        monthly_credit=Decimal(credit),
        daily_target=Decimal(target),
        total_savings=Decimal(savings),
        current_month="2024-03",
    )


def record(day: int, *amounts: str, **fields) -> DailyRecord:
    spending = [
        SpendingEntry(
            id=f"{day}-{i}",
            description="item",
            amount=Decimal(amount),
            timestamp=datetime(2024, 3, day, 12, 0),
        )
        for i, amount in enumerate(amounts)
    ]
    return DailyRecord(date=f"2024-03-{day:02d}", spending=spending, **fields)


MONTH = [
    record(1, "40", "70"),
    record(2, "50", savings_transferred=Decimal("20")),
    record(3, borrowed=Decimal("150")),
    record(4, "9.99", excess_spending=Decimal("30"), excess_spending_reason="gift"),
    record(5),
    record(6, "0.01", "0.02", savings_transferred=Decimal("5"), borrowed=Decimal("1")),
]


class TestRemainingCredit:
    """Tests for remaining_credit and the record fold."""

    def test_empty_period_leaves_full_credit(self):
        """Test that no records means nothing was used."""
        assert remaining_credit(summary(), []) == Decimal("3000")

    def test_bare_record_contributes_nothing(self):
        """Test that a record with every optional field absent adds zero."""
        assert remaining_credit(summary(), [DailyRecord(date="2024-03-01")]) == Decimal("3000")

    def test_signs(self):
        """Test spending and transfers consume credit, borrowing restores it."""
        records = [
            record(1, "100"),
            record(2, savings_transferred=Decimal("50")),
            record(3, borrowed=Decimal("30")),
            record(4, excess_spending=Decimal("20"), excess_spending_reason="x"),
        ]
        assert remaining_credit(summary(), records) == Decimal("3000") - 100 - 50 + 30 - 20

    def test_can_go_negative(self):
        """Test that overspending is not floored at zero."""
        assert remaining_credit(summary(credit="50"), [record(1, "80")]) == Decimal("-30")

    def test_accepts_mapping(self):
        """Test that a {date: record} mapping folds the same as a list."""
        by_date = {r.date: r for r in MONTH}
        assert remaining_credit(summary(), by_date) == remaining_credit(summary(), MONTH)

    @pytest.mark.parametrize("split", range(len(MONTH) + 1))
    def test_fold_is_additive_over_any_split(self, split):
        """Test that folding two disjoint halves and adding equals folding the whole."""
        left, right = MONTH[:split], MONTH[split:]
        assert fold_records(left) + fold_records(right) == fold_records(MONTH)

    @pytest.mark.parametrize("order", [MONTH, list(reversed(MONTH)), MONTH[3:] + MONTH[:3]])
    def test_fold_is_order_independent(self, order):
        """Test that record order does not change the totals."""
        assert fold_records(order) == fold_records(MONTH)

    def test_remaining_matches_categories_summed_independently(self):
        """Test remaining credit equals credit minus each category summed on its own."""
        spent = sum((r.total_spent for r in MONTH), Decimal("0"))
        transferred = sum((r.savings_transferred or Decimal("0") for r in MONTH), Decimal("0"))
        borrowed = sum((r.borrowed or Decimal("0") for r in MONTH), Decimal("0"))
        excess = sum((r.excess_spending or Decimal("0") for r in MONTH), Decimal("0"))
        expected = Decimal("3000") - spent - transferred + borrowed - excess
        assert remaining_credit(summary(), MONTH) == expected


class TestExcessSpending:
    """Tests for excess spending isolation."""

    def test_excess_not_in_spending_totals(self):
        """Test excess spending stays out of itemised spending."""
        only_excess = [record(1, excess_spending=Decimal("30"), excess_spending_reason="gift")]
        assert fold_records(only_excess).spent == Decimal("0")
        assert remaining_credit(summary(), only_excess) == Decimal("2970")

    def test_available_for_excess_is_floored(self):
        """Test that available credit for excess never goes below zero."""
        assert available_for_excess_spending(summary(credit="50"), [record(1, "80")]) == Decimal("0")
        assert available_for_excess_spending(summary(credit="100"), [record(1, "80")]) == Decimal("20")


class TestSavings:
    """Tests for available_savings."""

    def test_available_savings_is_stored_total(self):
        """Test that savings are read from the summary, not recomputed."""
        s = summary(savings="500")
        assert available_savings(s) == Decimal("500")


class TestDailyDue:
    """Tests for the per-day due calculation."""

    def test_over_target_day(self):
        """Test a day that spends past its target."""
        status = daily_due(record(1, "40", "70"), Decimal("100"))
        assert status.total_spent_today == Decimal("110")
        assert status.is_over_target is True
        assert status.current_due == Decimal("10")
        assert status.remaining_target == Decimal("-10")

    def test_carried_due_adds_to_overage(self):
        """Test that a carried-over due is added to today's overage."""
        status = daily_due(record(2, "120", due=Decimal("10")), Decimal("100"))
        assert status.current_due == Decimal("30")

    def test_under_target_with_transfer(self):
        """Test that transfers reduce today's remaining target."""
        status = daily_due(record(2, "50", savings_transferred=Decimal("20")), Decimal("100"))
        assert status.is_over_target is False
        assert status.current_due == Decimal("0")
        assert status.remaining_target == Decimal("30")

    def test_exactly_on_target_is_not_over(self):
        """Test the boundary where spending equals the target."""
        status = daily_due(record(1, "100"), Decimal("100"))
        assert status.is_over_target is False
        assert status.remaining_target == Decimal("0")


class TestBudgetSnapshot:
    """Tests for budget_snapshot."""

    def test_snapshot_matches_individual_functions(self):
        """Test that the snapshot agrees with each figure computed alone."""
        s = summary(savings="120")
        snapshot = budget_snapshot(s, MONTH)
        assert snapshot.remaining_credit == remaining_credit(s, MONTH)
        assert snapshot.available_savings == Decimal("120")
        assert snapshot.available_for_excess_spending == available_for_excess_spending(s, MONTH)
        assert snapshot.totals == fold_records(MONTH)
        assert snapshot.current_month == "2024-03"

    def test_overspent_flag(self):
        """Test is_overspent when remaining credit is negative."""
        assert budget_snapshot(summary(credit="50"), [record(1, "80")]).is_overspent is True
        assert budget_snapshot(summary(), []).is_overspent is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
