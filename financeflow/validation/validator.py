"""
Two-Stage Action Validation

DESIGN DECISION: Every lifecycle action is validated in two stages
before anything is changed:

STAGE 1 - INPUT VALIDATION:
- Amounts are finite and positive
- Required text (descriptions, excess spending reason) is present and
  within its length limit
- Dates are real calendar dates
- Referenced spending entries / tasks exist

STAGE 2 - LIMIT VALIDATION:
- A savings transfer fits in the day's remaining target
- A borrow fits in the available savings
- Excess spending fits in the month's remaining credit

Stage 1 failures are always errors. Stage 2 failures are errors under
the strict limit policy and warnings under the lenient one, except for
excess spending, which only ever warns (the user is told and may go on).

IMPORTANT: Validation NEVER clamps or fixes values.
It reports issues; the caller decides.
"""

from decimal import Decimal
from typing import Iterable, Optional

from financeflow.models.ledger import (
    MAX_DESCRIPTION_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_REASON_LENGTH,
    MAX_TASK_LENGTH,
    LedgerAction,
    LimitPolicy,
    ValidationIssue,
    ValidationResult,
    is_date_key,
)


class ActionValidator:
    """
    Validates the inputs of one lifecycle action.

    Stage 1 always runs. Stage 2 only runs when stage 1 passed.
    """

    def __init__(self, policy: LimitPolicy = LimitPolicy.STRICT):
        self._policy = policy

    @property
    def policy(self) -> LimitPolicy:
        return self._policy

    # -------------------------------------------------------------------------
    # Stage 1 checks
    # -------------------------------------------------------------------------

    def _check_amount(
        self,
        amount: Decimal,
        field: str = "amount",
        allow_zero: bool = False,
    ) -> list[ValidationIssue]:
        if not isinstance(amount, Decimal) or not amount.is_finite():
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{field.replace('_', ' ').capitalize()} must be a number",
                severity="error",
            )]

        if amount < 0 or (amount == 0 and not allow_zero):
            qualifier = "zero or more" if allow_zero else "greater than zero"
            return [ValidationIssue(
                field=field,
                issue_type="non_positive",
                message=f"{field.replace('_', ' ').capitalize()} must be {qualifier}",
                severity="error",
                suggested_fix="Enter a positive amount",
            )]

        return []

    def _check_text(
        self,
        value: Optional[str],
        field: str,
        max_length: int,
        required: bool = True,
    ) -> list[ValidationIssue]:
        label = field.replace("_", " ").capitalize()
        if value is None or not value.strip():
            if not required:
                return []
            return [ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{label} is required",
                severity="error",
            )]

        if len(value.strip()) > max_length:
            return [ValidationIssue(
                field=field,
                issue_type="too_long",
                message=f"{label} must be at most {max_length} characters",
                severity="error",
                suggested_fix="Shorten the text",
            )]
        return []

    def _check_reference(
        self,
        known_ids: Iterable[str],
        item_id: str,
        field: str,
    ) -> list[ValidationIssue]:
        if item_id not in set(known_ids):
            return [ValidationIssue(
                field=field,
                issue_type="not_found",
                message=f"No {field.replace('_id', '').replace('_', ' ')} with id {item_id}",
                severity="error",
            )]
        return []

    # -------------------------------------------------------------------------
    # Stage 2 checks
    # -------------------------------------------------------------------------

    def _check_limit(
        self,
        amount: Decimal,
        limit: Decimal,
        field: str,
        message: str,
        suggested_fix: str,
        always_soft: bool = False,
    ) -> list[ValidationIssue]:
        if amount <= limit:
            return []

        hard = self._policy == LimitPolicy.STRICT and not always_soft
        return [ValidationIssue(
            field=field,
            issue_type="limit_exceeded",
            message=message,
            severity="error" if hard else "warning",
            suggested_fix=suggested_fix,
        )]

    def _build_result(
        self,
        action: LedgerAction,
        input_issues: list[ValidationIssue],
        limit_issues: list[ValidationIssue],
    ) -> ValidationResult:
        input_valid = not any(i.severity == "error" for i in input_issues)
        limits_valid = not any(i.severity == "error" for i in limit_issues)
        all_issues = input_issues + limit_issues

        return ValidationResult(
            action=action,
            input_valid=input_valid,
            limits_valid=limits_valid,
            is_valid=input_valid and limits_valid,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
        )

    # -------------------------------------------------------------------------
    # Per-action validation
    # -------------------------------------------------------------------------

    def validate_spending(self, description: str, amount: Decimal) -> ValidationResult:
        issues = (
            self._check_text(description, "description", MAX_DESCRIPTION_LENGTH)
            + self._check_amount(amount)
        )
        return self._build_result(LedgerAction.ADD_SPENDING, issues, [])

    def validate_task(self, description: str) -> ValidationResult:
        return self._build_result(
            LedgerAction.ADD_TASK,
            self._check_text(description, "description", MAX_TASK_LENGTH),
            [],
        )

    def validate_notes(self, text: Optional[str]) -> ValidationResult:
        """Notes may be empty (that clears them) but not longer than the limit."""
        return self._build_result(
            LedgerAction.SET_NOTES,
            self._check_text(text, "notes", MAX_NOTES_LENGTH, required=False),
            [],
        )

    def validate_date_key(self, action: LedgerAction, date_key: str) -> ValidationResult:
        issues = []
        if not is_date_key(date_key):
            issues.append(ValidationIssue(
                field="date",
                issue_type="invalid_value",
                message=f"{date_key!r} is not a calendar date",
                severity="error",
                suggested_fix="Use the YYYY-MM-DD format",
            ))
        return self._build_result(action, issues, [])

    def validate_reference(
        self,
        action: LedgerAction,
        known_ids: Iterable[str],
        item_id: str,
        field: str,
    ) -> ValidationResult:
        return self._build_result(
            action,
            self._check_reference(known_ids, item_id, field),
            [],
        )

    def validate_transfer(
        self,
        amount: Decimal,
        remaining_target: Decimal,
    ) -> ValidationResult:
        input_issues = self._check_amount(amount)
        limit_issues = []
        if not input_issues:
            limit_issues = self._check_limit(
                amount,
                remaining_target,
                field="amount",
                message=(
                    f"Cannot transfer {amount}: only {max(remaining_target, Decimal('0'))} "
                    "is left under today's target"
                ),
                suggested_fix="Transfer at most the remaining target",
            )
        return self._build_result(LedgerAction.TRANSFER_TO_SAVINGS, input_issues, limit_issues)

    def validate_borrow(
        self,
        amount: Decimal,
        available_savings: Decimal,
    ) -> ValidationResult:
        input_issues = self._check_amount(amount, allow_zero=True)
        limit_issues = []
        if not input_issues:
            limit_issues = self._check_limit(
                amount,
                available_savings,
                field="amount",
                message=f"Cannot borrow {amount}: only {available_savings} is in savings",
                suggested_fix="Borrow at most your available savings",
            )
        return self._build_result(LedgerAction.BORROW, input_issues, limit_issues)

    def validate_borrow_edit(
        self,
        new_amount: Decimal,
        old_borrowed: Decimal,
        available_savings: Decimal,
    ) -> ValidationResult:
        input_issues = self._check_amount(new_amount, field="new_amount", allow_zero=True)
        limit_issues = []
        if not input_issues:
            # the old borrow is returned to savings before the new one is taken
            limit = available_savings + old_borrowed
            limit_issues = self._check_limit(
                new_amount,
                limit,
                field="new_amount",
                message=f"Cannot borrow {new_amount}: only {limit} would be in savings",
                suggested_fix="Lower the borrowed amount",
            )
        return self._build_result(LedgerAction.EDIT_BORROWED, input_issues, limit_issues)

    def validate_excess_spending(
        self,
        amount: Decimal,
        reason: str,
        available_credit: Decimal,
    ) -> ValidationResult:
        input_issues = (
            self._check_amount(amount)
            + self._check_text(reason, "reason", MAX_REASON_LENGTH)
        )
        limit_issues = []
        if not input_issues:
            limit_issues = self._check_limit(
                amount,
                available_credit,
                field="amount",
                message=f"This amount exceeds your available credit ({available_credit})",
                suggested_fix="Make sure you really want to overspend this month",
                always_soft=True,
            )
        return self._build_result(LedgerAction.RECORD_EXCESS_SPENDING, input_issues, limit_issues)

    def validate_month_setup(
        self,
        monthly_credit: Decimal,
        daily_target: Decimal,
    ) -> ValidationResult:
        issues = (
            self._check_amount(monthly_credit, field="monthly_credit")
            + self._check_amount(daily_target, field="daily_target")
        )
        if not issues and daily_target > monthly_credit:
            issues.append(ValidationIssue(
                field="daily_target",
                issue_type="suspicious_value",
                message="Daily target is larger than the whole monthly credit",
                severity="warning",
                suggested_fix="Please verify both amounts",
            ))
        return self._build_result(LedgerAction.SETUP_MONTH, issues, [])

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the UI shows when an action is rejected or warned about.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if result.has_errors:
            lines.append("This could not be saved:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please note:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
