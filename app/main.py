"""
Streamlit Frontend for FinanceFlow

The page a user opens every day to log spending, tick off tasks and
keep an eye on the month's budget.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Month figures always visible at the top
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions

The UI never computes budget figures itself: everything shown comes
from the ledger flows, and every button is one ledger action.
"""

import asyncio
import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

import streamlit as st

from financeflow.audit import create_correlation_id
from financeflow.config import get_settings, validate_all_settings
from financeflow.ledger import (
    LedgerValidationError,
    date_key,
    suggested_daily_target,
)
from financeflow.models.ledger import DayActivity, ValidationResult
from financeflow.orchestrator import (
    DailyLedgerFlow,
    MonthlySetupFlow,
    UnauthenticatedError,
    create_app_components,
)
from financeflow.services.storage import StorageError


# Page configuration
st.set_page_config(
    page_title="FinanceFlow",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


ACTIVITY_MARKERS = {
    DayActivity.NONE: "",
    DayActivity.SPENDING: "🔴",
    DayActivity.TASKS: "🔵",
    DayActivity.NOTES: "🟢",
    DayActivity.SPENDING_AND_TASKS: "🟣",
    DayActivity.SPENDING_AND_NOTES: "🟠",
    DayActivity.TASKS_AND_NOTES: "🩵",
    DayActivity.ALL: "⭐",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    logging.basicConfig(level=get_settings().app.log_level)
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def money(amount: Decimal) -> str:
    return f"{get_settings().ledger.currency_symbol}{amount:,.2f}"


def perform(label: str, coro, checked: Optional[ValidationResult] = None) -> bool:
    """
    Run one ledger action and report the outcome. Returns True on success.

    checked is the validator's result for the same input, computed by the
    caller; its warnings are shown after the page reruns.
    """
    _, ledger_flow, _ = get_components()
    validator = ledger_flow.manager.validator

    try:
        run_async(coro)
    except LedgerValidationError as e:
        message = validator.get_user_friendly_summary(e.result).replace("\n", "<br>")
        st.markdown(f"""
        <div class="warning-box">
            <h4>⚠️ {label} not saved</h4>
            <p>{message}</p>
        </div>
        """, unsafe_allow_html=True)
        return False
    except UnauthenticatedError as e:
        st.warning(str(e))
        return False
    except StorageError as e:
        st.markdown(f"""
        <div class="error-box">
            <h4>❌ Could not save</h4>
            <p>{e}</p>
        </div>
        """, unsafe_allow_html=True)
        return False
    except Exception as e:
        if ledger_flow.audit_logger:
            run_async(ledger_flow.audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"action": label},
            ))
        st.error(f"Error: {str(e)}")
        return False

    if checked is not None and checked.warnings:
        st.session_state.notice = validator.get_user_friendly_summary(checked)
    return True


def show_notice():
    """Warnings left by the last action, shown once."""
    notice = st.session_state.pop("notice", None)
    if notice:
        st.markdown(f"""
        <div class="warning-box">
            <p>{notice.replace(chr(10), "<br>")}</p>
        </div>
        """, unsafe_allow_html=True)


def main():
    """Main application entry point."""
    setup_flow, ledger_flow, _ = get_components()

    st.sidebar.title("💰 FinanceFlow")
    st.sidebar.markdown("---")

    user_id = st.sidebar.text_input(
        "Signed in as",
        value=st.session_state.get("user_id", ""),
        help="Your email or user name",
    ).strip() or None
    st.session_state.user_id = user_id or ""

    page = st.sidebar.radio(
        "Navigate to:",
        ["📅 Day", "🗓️ Calendar", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    selected_day = st.sidebar.date_input("Day", value=st.session_state.get("day", date.today()))
    st.session_state.day = selected_day

    if not user_id:
        st.info("Sign in (enter your name in the sidebar) to start tracking your budget.")
        if page == "⚙️ Settings":
            render_settings_page()
        return

    if run_async(setup_flow.needs_setup(user_id, date.today())):
        render_setup_page(setup_flow, user_id)
        return

    render_summary_bar(ledger_flow, user_id)
    show_notice()

    if page == "📅 Day":
        render_day_page(ledger_flow, user_id, selected_day)
    elif page == "🗓️ Calendar":
        render_calendar_page(ledger_flow, user_id, selected_day)
    elif page == "⚙️ Settings":
        render_settings_page()
        with st.expander("Start the month again"):
            render_setup_page(setup_flow, user_id)


def render_setup_page(setup_flow: MonthlySetupFlow, user_id: str):
    """Monthly setup: credit and daily target for today's month."""
    validator = get_components()[1].manager.validator
    st.title("🗓️ Set up this month")
    st.markdown("How much do you have for the month, and how much do you want to spend per day?")

    monthly_credit = st.number_input("Monthly credit *", min_value=0.0, step=100.0, key="setup_credit")
    suggested = suggested_daily_target(Decimal(str(monthly_credit))) if monthly_credit > 0 else Decimal("0")
    daily_target = st.number_input(
        "Daily target *",
        min_value=0.0,
        value=float(suggested),
        step=10.0,
        help="Suggested: monthly credit divided by 30",
        key="setup_target",
    )

    if st.button("✅ Save month", type="primary"):
        credit, target = Decimal(str(monthly_credit)), Decimal(str(daily_target))
        ok = perform(
            "Monthly setup",
            setup_flow.setup_month(
                user_id, credit, target, date.today(),
                correlation_id=create_correlation_id(),
            ),
            checked=validator.validate_month_setup(credit, target),
        )
        if ok:
            st.rerun()


def render_summary_bar(ledger_flow: DailyLedgerFlow, user_id: str):
    snapshot = run_async(ledger_flow.get_snapshot(user_id))
    if snapshot is None:
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Monthly credit", money(snapshot.monthly_credit))
    col2.metric(
        "Remaining",
        money(snapshot.remaining_credit),
        delta="overspent" if snapshot.is_overspent else None,
        delta_color="inverse",
    )
    col3.metric("Daily target", money(snapshot.daily_target))
    col4.metric("Total savings", money(snapshot.available_savings))
    st.markdown("---")


def render_day_page(ledger_flow: DailyLedgerFlow, user_id: str, day: date):
    """Everything logged on one day."""
    key = date_key(day)
    record = run_async(ledger_flow.get_day(user_id, key))
    status = run_async(ledger_flow.get_day_status(user_id, key))
    snapshot = run_async(ledger_flow.get_snapshot(user_id))
    validator = ledger_flow.manager.validator

    st.title(f"📅 {day.strftime('%A, %d %B %Y')}")

    if status is not None:
        col1, col2, col3 = st.columns(3)
        col1.metric("Spent today", money(status.total_spent_today))
        col2.metric("Left under target", money(status.remaining_target))
        col3.metric("Due", money(status.current_due))
        if status.is_over_target:
            st.warning("You are over today's target. The difference is added to your due.")

    spending_col, tasks_col = st.columns(2)

    with spending_col:
        st.subheader("💸 Spending")
        for entry in record.spending:
            c1, c2 = st.columns([4, 1])
            c1.write(f"{entry.description}: {money(entry.amount)}")
            if c2.button("🗑️", key=f"del-spend-{entry.id}"):
                if perform("Delete", ledger_flow.delete_spending(user_id, key, entry.id)):
                    st.rerun()

        with st.form("add_spending", clear_on_submit=True):
            description = st.text_input("What for?")
            amount = st.number_input("Amount", min_value=0.0, step=1.0)
            if st.form_submit_button("Add spending"):
                if perform("Spending", ledger_flow.add_spending(
                    user_id, key, description, Decimal(str(amount))
                )):
                    st.rerun()

        if record.due and st.button(f"Clear due ({money(record.due)})"):
            if perform("Clear due", ledger_flow.clear_due(user_id, key)):
                st.rerun()

    with tasks_col:
        st.subheader("✅ Tasks")
        for task in record.tasks:
            c1, c2 = st.columns([4, 1])
            label = task.description
            if task.is_carried_over(key):
                label += f" (from {task.created_date})"
            checked = c1.checkbox(label, value=task.completed, key=f"task-{task.id}")
            if checked != task.completed:
                if perform("Task", ledger_flow.toggle_task(user_id, key, task.id)):
                    st.rerun()
            if c2.button("🗑️", key=f"del-task-{task.id}"):
                if perform("Delete", ledger_flow.delete_task(user_id, key, task.id)):
                    st.rerun()

        with st.form("add_task", clear_on_submit=True):
            task_description = st.text_input("New task")
            if st.form_submit_button("Add task"):
                if perform("Task", ledger_flow.add_task(user_id, key, task_description)):
                    st.rerun()

    st.markdown("---")
    savings_col, excess_col = st.columns(2)

    with savings_col:
        st.subheader("🏦 Savings")
        st.write(f"Transferred today: {money(record.savings_transferred or Decimal('0'))}")
        st.write(f"Borrowed today: {money(record.borrowed or Decimal('0'))}")

        with st.form("transfer", clear_on_submit=True):
            transfer_amount = Decimal(str(st.number_input("Move to savings", min_value=0.0, step=1.0)))
            if st.form_submit_button("Transfer"):
                checked = None
                if status is not None:
                    checked = validator.validate_transfer(transfer_amount, status.remaining_target)
                if perform(
                    "Transfer",
                    ledger_flow.transfer_to_savings(user_id, key, transfer_amount),
                    checked=checked,
                ):
                    st.rerun()

        with st.form("borrow", clear_on_submit=True):
            borrow_amount = Decimal(str(st.number_input("Borrow from savings", min_value=0.0, step=1.0)))
            if st.form_submit_button("Borrow"):
                checked = None
                if snapshot is not None:
                    checked = validator.validate_borrow(borrow_amount, snapshot.available_savings)
                if perform("Borrow", ledger_flow.borrow(user_id, key, borrow_amount), checked=checked):
                    st.rerun()

        if record.borrowed and record.borrowed > 0:
            with st.form("edit_borrowed"):
                new_amount = st.number_input(
                    "Change borrowed amount",
                    min_value=0.0,
                    value=float(record.borrowed),
                    step=1.0,
                )
                if st.form_submit_button("Update"):
                    if perform("Borrow", ledger_flow.edit_borrowed(
                        user_id, key, Decimal(str(new_amount))
                    )):
                        st.rerun()
            if st.button("Return everything borrowed today"):
                if perform("Borrow", ledger_flow.delete_borrowed(user_id, key)):
                    st.rerun()

    with excess_col:
        st.subheader("🧾 Excess spending")
        if record.excess_spending:
            st.write(f"{money(record.excess_spending)}: {record.excess_spending_reason or ''}")

        with st.form("excess", clear_on_submit=True):
            excess_amount = Decimal(str(
                st.number_input("Amount", min_value=0.0, step=1.0, key="excess_amount")
            ))
            reason = st.text_input("Reason")
            checked = None
            if snapshot is not None:
                checked = validator.validate_excess_spending(
                    excess_amount, reason, snapshot.available_for_excess_spending
                )
            confirmed = True
            if checked is not None and checked.warnings:
                confirmed = st.checkbox(f"{' '.join(checked.warnings)}. Record it anyway?")
            if st.form_submit_button("Record"):
                if not confirmed:
                    st.warning("Please confirm before recording more than your available credit.")
                elif perform(
                    "Excess spending",
                    ledger_flow.record_excess_spending(user_id, key, excess_amount, reason),
                    checked=checked,
                ):
                    st.rerun()

    st.markdown("---")
    st.subheader("📝 Notes")
    with st.form("notes"):
        notes = st.text_area("Notes", value=record.notes or "", label_visibility="collapsed")
        if st.form_submit_button("Save notes"):
            if perform("Notes", ledger_flow.set_notes(user_id, key, notes)):
                st.rerun()


def render_calendar_page(ledger_flow: DailyLedgerFlow, user_id: str, day: date):
    """Month grid with a marker for every day that has something logged."""
    st.title(f"🗓️ {day.strftime('%B %Y')}")
    markers = run_async(ledger_flow.get_calendar(user_id, day.year, day.month))

    st.caption(
        "🔴 spending  🔵 tasks  🟢 notes  🟣 spending + tasks  "
        "🟠 spending + notes  🩵 tasks + notes  ⭐ everything"
    )

    header = st.columns(7)
    for col, name in zip(header, calendar.day_abbr):
        col.markdown(f"**{name}**")

    for week in calendar.Calendar().monthdayscalendar(day.year, day.month):
        cols = st.columns(7)
        for col, day_number in zip(cols, week):
            if day_number == 0:
                col.write("")
                continue
            key = date_key(date(day.year, day.month, day_number))
            col.write(f"{day_number} {ACTIVITY_MARKERS[markers.get(key, DayActivity.NONE)]}")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Ledger", "ledger"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    ledger = get_settings().ledger
    st.write(f"Storage backend: `{ledger.storage_backend}`")
    st.write(f"Limit policy: `{ledger.limit_policy.value}`")
    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
