"""Tests for account status and due-date derivation."""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from pharmacy.accounting.schemas import AccountStatus
from pharmacy.accounting.status_engine import (
    FixedClock,
    InvalidAmountError,
    InvalidDateError,
    SystemClock,
    apply_charge,
    apply_due_date,
    apply_payment,
    calculate_status,
    days_overdue,
    days_until_due,
    effective_due_date,
    parse_amount,
    parse_iso_date,
)

TODAY = date(2024, 6, 15)


def _days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


# ============================================================================
# STATUS RULES
# ============================================================================


class TestCalculateStatus:
    """Classification of accounts as paid, overdue or current."""

    @pytest.mark.parametrize(
        "last_payment, due, created",
        [
            (None, None, _days_ago(400)),
            (_days_ago(200), _days_ago(100), _days_ago(400)),
            (None, TODAY + timedelta(days=10), TODAY),
        ],
    )
    def test_zero_balance_is_always_paid(self, last_payment, due, created):
        """Nothing owed means paid, whatever the dates say."""
        assert calculate_status(Decimal("0"), last_payment, due, created, TODAY) == AccountStatus.PAID
        assert effective_due_date(Decimal("0"), last_payment, due, created) is None

    @pytest.mark.parametrize("days_past", [1, 2, 30, 365])
    def test_past_explicit_due_date_is_overdue(self, days_past):
        """A balance with an explicit due date before today is overdue."""
        status = calculate_status(Decimal("10"), TODAY, _days_ago(days_past), TODAY, TODAY)
        assert status == AccountStatus.OVERDUE

    def test_payment_today_without_due_date_is_current(self):
        """Paying today restarts the 30 day term."""
        status = calculate_status(Decimal("50"), TODAY, None, _days_ago(500), TODAY)
        assert status == AccountStatus.CURRENT
        assert effective_due_date(Decimal("50"), TODAY, None, _days_ago(500)) == TODAY + timedelta(days=30)

    def test_explicit_due_date_wins_over_fallback(self):
        """The stored due date is used even when the 30 day fallback is later."""
        due = effective_due_date(Decimal("20"), _days_ago(1), _days_ago(5), _days_ago(90))
        assert due == _days_ago(5)

    def test_fallback_uses_created_at_without_payments(self):
        due = effective_due_date(Decimal("20"), None, None, date(2024, 1, 1))
        assert due == date(2024, 1, 31)

    def test_due_today_is_not_overdue(self):
        """Overdue only once the due date is strictly before today."""
        assert calculate_status(Decimal("5"), None, TODAY, _days_ago(10), TODAY) == AccountStatus.CURRENT
        assert calculate_status(Decimal("5"), None, _days_ago(1), _days_ago(10), TODAY) == AccountStatus.OVERDUE

    def test_custom_term_days(self):
        status = calculate_status(Decimal("5"), None, None, _days_ago(10), TODAY, term_days=7)
        assert status == AccountStatus.OVERDUE


class TestEndToEndScenarios:
    """Worked examples covering the whole derivation."""

    def test_scenario_overdue_by_fifteen_days(self):
        """Last payment 45 days ago puts the due date 15 days in the past."""
        last_payment = _days_ago(45)
        due = effective_due_date(Decimal("100"), last_payment, None, _days_ago(100))

        assert due == _days_ago(15)
        assert calculate_status(Decimal("100"), last_payment, None, _days_ago(100), TODAY) == AccountStatus.OVERDUE
        assert days_overdue(due, TODAY) == 15

    def test_scenario_zero_balance_paid(self):
        assert calculate_status(Decimal("0.00"), _days_ago(45), None, _days_ago(100), TODAY) == AccountStatus.PAID


class TestDayCounts:
    def test_days_overdue_never_negative(self):
        assert days_overdue(TODAY + timedelta(days=3), TODAY) == 0
        assert days_overdue(None, TODAY) == 0

    def test_days_until_due(self):
        assert days_until_due(TODAY + timedelta(days=3), TODAY) == 3
        assert days_until_due(None, TODAY) is None


# ============================================================================
# MUTATIONS
# ============================================================================


class TestApplyPayment:
    """Balance, due date and status after a payment."""

    def test_partial_payment_resets_due_date(self):
        update = apply_payment(Decimal("100"), Decimal("40"), _days_ago(60), _days_ago(20), _days_ago(90), TODAY)
        assert update.total_owed == Decimal("60")
        assert update.due_date == TODAY + timedelta(days=30)
        assert update.status == AccountStatus.CURRENT

    def test_overpayment_clamps_to_zero(self):
        """Paying more than is owed leaves a zero balance, never a credit."""
        update = apply_payment(Decimal("25"), Decimal("40"), None, None, _days_ago(10), TODAY)
        assert update.total_owed == Decimal("0")
        assert update.status == AccountStatus.PAID

    def test_non_positive_amount_rejected(self):
        with pytest.raises(InvalidAmountError):
            apply_payment(Decimal("25"), Decimal("0"), None, None, _days_ago(10), TODAY)


class TestApplyCharge:
    def test_charge_on_empty_account_starts_new_term(self):
        """A charge on a zero balance is due 30 days from today, not from account creation."""
        update = apply_charge(Decimal("0"), Decimal("80"), None, None, _days_ago(365), TODAY)
        assert update.total_owed == Decimal("80")
        assert update.due_date == TODAY + timedelta(days=30)
        assert update.status == AccountStatus.CURRENT

    def test_charge_keeps_existing_due_date(self):
        update = apply_charge(Decimal("10"), Decimal("5"), None, _days_ago(3), _days_ago(60), TODAY)
        assert update.due_date == _days_ago(3)
        assert update.status == AccountStatus.OVERDUE


class TestApplyDueDate:
    def test_moving_due_date_forward_clears_overdue(self):
        update = apply_due_date(Decimal("30"), None, TODAY + timedelta(days=7), _days_ago(90), TODAY)
        assert update.status == AccountStatus.CURRENT
        assert update.due_date == TODAY + timedelta(days=7)

    def test_moving_due_date_back_makes_overdue(self):
        update = apply_due_date(Decimal("30"), None, _days_ago(1), _days_ago(5), TODAY)
        assert update.status == AccountStatus.OVERDUE


# ============================================================================
# PARSING AND CLOCKS
# ============================================================================


class TestParsing:
    """Dates and amounts are validated, never defaulted."""

    def test_parse_iso_date_variants(self):
        assert parse_iso_date("2024-06-15") == TODAY
        assert parse_iso_date("2024-06-15T23:10:00") == TODAY
        assert parse_iso_date(datetime(2024, 6, 15, 8, 0)) == TODAY

    def test_aware_datetime_is_read_in_utc(self):
        sydney_morning = datetime(2024, 6, 16, 9, 0, tzinfo=timezone(timedelta(hours=10)))
        assert parse_iso_date(sydney_morning) == TODAY

    @pytest.mark.parametrize("value", ["", "15/06/2024", "not a date", None, 20240615])
    def test_invalid_dates_raise(self, value):
        with pytest.raises(InvalidDateError):
            parse_iso_date(value)

    def test_parse_amount(self):
        assert parse_amount("12.5") == Decimal("12.50")
        assert parse_amount(3) == Decimal("3.00")

    @pytest.mark.parametrize("value", [None, True, "abc", -1, "NaN", "Infinity"])
    def test_invalid_amounts_raise(self, value):
        with pytest.raises(InvalidAmountError):
            parse_amount(value)

    def test_zero_amount_rejected_when_not_allowed(self):
        with pytest.raises(InvalidAmountError):
            parse_amount("0", allow_zero=False)


class TestClocks:
    def test_fixed_clock(self):
        assert FixedClock(TODAY).today() == TODAY

    def test_system_clock_converts_to_its_zone(self):
        clock = SystemClock("Australia/Sydney")
        late_utc = datetime(2024, 6, 15, 20, 0)
        assert clock.to_local_date(late_utc) == date(2024, 6, 16)

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValueError):
            SystemClock("Mars/Olympus_Mons")
