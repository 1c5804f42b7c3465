"""Account status and due-date derivation.

An account with nothing owed is ``paid``. Otherwise its effective due date is
the explicit ``due_date`` when one is set, or 30 days after the later of the
last payment and account creation; the account is ``overdue`` once that date
is strictly before today and ``current`` until then.

"Today" is never read from the wall clock here. Callers pass it in, usually
from a :class:`Clock`, and every date comparison is made on plain calendar
dates in the single timezone the clock was built with.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .schemas import AccountStatus

logger = logging.getLogger(__name__)

PAYMENT_TERM_DAYS = 30


class InvalidDateError(ValueError):
    """Raised when an account date cannot be interpreted."""


class InvalidAmountError(ValueError):
    """Raised when a monetary amount is missing, negative or not a number."""


# --- Clock ---


class Clock:
    """Source of the current calendar date."""

    tz = timezone.utc

    def today(self) -> date:
        raise NotImplementedError

    def to_local_date(self, value: datetime) -> date:
        """Truncates a timestamp to a calendar date in this clock's zone."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(self.tz).date()


class SystemClock(Clock):
    """Wall-clock date in one explicit timezone."""

    def __init__(self, tz_name: str = "UTC"):
        try:
            self.tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {tz_name}") from e

    def today(self) -> date:
        return datetime.now(self.tz).date()


class FixedClock(Clock):
    """Always reports the same date. Used by tests and back-dated reports."""

    def __init__(self, day: date):
        self.day = day

    def today(self) -> date:
        return self.day


# --- Parsing ---


def parse_iso_date(value, field_name: str = "date") -> date:
    """Coerces a date, datetime or ISO-8601 string to a calendar date.

    Anything else is rejected with :class:`InvalidDateError`; there is no
    fallback value.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parse_iso_date(parsed, field_name)
    raise InvalidDateError(f"Invalid {field_name}: {value!r} is not an ISO date")


def parse_optional_date(value, field_name: str = "date") -> date | None:
    if value is None or value == "":
        return None
    return parse_iso_date(value, field_name)


def parse_amount(value, field_name: str = "amount", allow_zero: bool = True) -> Decimal:
    """Coerces a JSON number or numeric string to a two-place Decimal."""
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(f"Invalid {field_name}: {value!r}")
    try:
        amount = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(f"Invalid {field_name}: {value!r}") from e
    if not amount.is_finite() or amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmountError(f"Invalid {field_name}: {value!r}")
    return amount


# --- Status rules ---


def effective_due_date(total_owed, last_payment_date: date | None, due_date: date | None,
                       created_at: date, term_days: int = PAYMENT_TERM_DAYS) -> date | None:
    """Date after which an account with a balance becomes overdue.

    Returns ``None`` for an account with nothing owed.
    """
    if Decimal(total_owed) == 0:
        return None
    if due_date is not None:
        return due_date
    base_date = last_payment_date or created_at
    return base_date + timedelta(days=term_days)


def calculate_status(total_owed, last_payment_date: date | None, due_date: date | None,
                     created_at: date, today: date, term_days: int = PAYMENT_TERM_DAYS) -> AccountStatus:
    """Classifies an account as paid, overdue or current."""
    due = effective_due_date(total_owed, last_payment_date, due_date, created_at, term_days)
    if due is None:
        return AccountStatus.PAID
    if due < today:
        return AccountStatus.OVERDUE
    return AccountStatus.CURRENT


def days_overdue(due: date | None, today: date) -> int:
    """Whole days past the due date, never negative."""
    if due is None:
        return 0
    return max(0, (today - due).days)


def days_until_due(due: date | None, today: date) -> int | None:
    if due is None:
        return None
    return (due - today).days


@dataclass(frozen=True)
class StatusUpdate:
    """New balance fields to persist after a mutation."""

    total_owed: Decimal
    due_date: date | None
    status: AccountStatus


def apply_payment(total_owed, amount, last_payment_date: date | None, due_date: date | None,
                  created_at: date, today: date, term_days: int = PAYMENT_TERM_DAYS) -> StatusUpdate:
    """Balance, due date and status after a payment is taken today.

    The balance never drops below zero. While something is still owed the
    due date restarts ``term_days`` from today.
    """
    amount = Decimal(amount)
    if amount <= 0:
        raise InvalidAmountError("Payment amount must be greater than zero")
    new_balance = max(Decimal("0"), Decimal(total_owed) - amount)
    if new_balance == 0:
        return StatusUpdate(new_balance, due_date, AccountStatus.PAID)

    new_due_date = today + timedelta(days=term_days)
    status = calculate_status(new_balance, today, new_due_date, created_at, today, term_days)
    return StatusUpdate(new_balance, new_due_date, status)


def apply_charge(total_owed, amount, last_payment_date: date | None, due_date: date | None,
                 created_at: date, today: date, term_days: int = PAYMENT_TERM_DAYS) -> StatusUpdate:
    """Balance and status after adding a charge to the account.

    A charge on an account that owed nothing starts a fresh ``term_days``
    term from today; otherwise the existing due date stands.
    """
    amount = Decimal(amount)
    if amount <= 0:
        raise InvalidAmountError("Charge amount must be greater than zero")
    new_balance = Decimal(total_owed) + amount
    if Decimal(total_owed) == 0:
        due_date = today + timedelta(days=term_days)
    status = calculate_status(new_balance, last_payment_date, due_date, created_at, today, term_days)
    return StatusUpdate(new_balance, due_date, status)


def apply_due_date(total_owed, last_payment_date: date | None, new_due_date: date,
                   created_at: date, today: date, term_days: int = PAYMENT_TERM_DAYS) -> StatusUpdate:
    """Status after the due date is edited directly."""
    status = calculate_status(total_owed, last_payment_date, new_due_date, created_at, today, term_days)
    logger.debug("Due date set to %s, status now %s", new_due_date, status.value)
    return StatusUpdate(Decimal(total_owed), new_due_date, status)
