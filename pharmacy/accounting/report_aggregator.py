"""Turns customer accounts into report-ready models.

The pipeline is filter -> sort -> summarize / age / group. Every step is a
plain function over already-loaded :class:`AccountSnapshot` objects, and
"today" is always passed in, so a report built twice for the same date is
identical.
"""

import locale
import logging
import unicodedata
from datetime import date
from decimal import Decimal

from .schemas import (
    AccountContentOptions,
    AccountReport,
    AccountRow,
    AccountSnapshot,
    AccountStatus,
    AgingBucket,
    BulkReport,
    CallEntry,
    ContactRow,
    DateRange,
    OutstandingBalance,
    PaymentEntry,
    ReportBucket,
    ReportFilterCriteria,
    ReportOptions,
    ReportSummary,
    SortField,
    StatusGroup,
)
from .status_engine import (
    PAYMENT_TERM_DAYS,
    calculate_status,
    days_overdue,
    days_until_due,
    effective_due_date,
)

logger = logging.getLogger(__name__)

STATUS_ORDER = {
    AccountStatus.OVERDUE: 0,
    AccountStatus.CURRENT: 1,
    AccountStatus.PAID: 2,
}

# (label, min days, max days); None means open-ended
AGING_BANDS = [
    ("1-30", 1, 30),
    ("31-60", 31, 60),
    ("61-90", 61, 90),
    ("90+", 91, None),
]

REPORT_TITLES = {
    ReportBucket.OVERDUE: "Overdue Accounts Report",
    ReportBucket.CURRENT: "Current Accounts Report",
    ReportBucket.ALL: "All Accounts Report",
}


class ReportValidationError(ValueError):
    """Raised for report requests that cannot be satisfied as given."""


def _percentage(part, whole) -> float:
    if not whole:
        return 0.0
    return round(float(Decimal(part) / Decimal(whole) * 100), 2)


# --- Per-account evaluation ---


def evaluate_account(account: AccountSnapshot, today: date,
                     payment_date_range: DateRange | None = None,
                     term_days: int = PAYMENT_TERM_DAYS) -> AccountRow:
    """Derives status, effective due date and days overdue for one account."""
    due = effective_due_date(account.total_owed, account.last_payment_date,
                             account.due_date, account.created_at, term_days)
    status = calculate_status(account.total_owed, account.last_payment_date,
                              account.due_date, account.created_at, today, term_days)
    payments = filter_history(account.payments, payment_date_range, "payment_date")
    return AccountRow(
        id=account.id,
        patient_name=account.patient_name,
        mrn=account.mrn,
        phone=account.phone,
        total_owed=account.total_owed,
        status=status,
        effective_due_date=due,
        days_overdue=days_overdue(due, today) if status == AccountStatus.OVERDUE else 0,
        last_payment_date=account.last_payment_date,
        last_payment_amount=account.last_payment_amount,
        total_payments=sum((p.amount for p in payments), Decimal("0")),
        hospital_name=account.hospital_name,
        patient_type=account.patient_type,
    )


# --- Filter ---


def _passes(row: AccountRow, criteria: ReportFilterCriteria) -> bool:
    if criteria.bucket != ReportBucket.ALL and row.status.value != criteria.bucket.value:
        return False
    if criteria.min_balance is not None and row.total_owed < criteria.min_balance:
        return False
    if criteria.max_balance is not None and row.total_owed > criteria.max_balance:
        return False
    if not criteria.include_zero_balance and row.total_owed == 0:
        return False
    if not criteria.include_paid_accounts and row.status == AccountStatus.PAID:
        return False
    if criteria.bucket == ReportBucket.OVERDUE:
        if criteria.min_days_overdue is not None and row.days_overdue < criteria.min_days_overdue:
            return False
        if criteria.max_days_overdue is not None and row.days_overdue > criteria.max_days_overdue:
            return False
    return True


def filter_accounts(rows: list[AccountRow], criteria: ReportFilterCriteria) -> list[AccountRow]:
    """Keeps the rows that pass every active criterion. Input order is kept."""
    return [row for row in rows if _passes(row, criteria)]


# --- Sort ---


def name_sort_key(name: str):
    """Collation key for patient names.

    Case and accents are folded first so "alpha" sorts before "Beta"; the
    active LC_COLLATE locale then orders what is left.
    """
    folded = unicodedata.normalize("NFKD", name or "").casefold()
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch)).strip()
    try:
        return locale.strxfrm(folded)
    except (ValueError, OSError):
        return folded


def _sort_key(sort_by: SortField):
    if sort_by == SortField.AMOUNT:
        return lambda row: row.total_owed
    if sort_by == SortField.NAME:
        return lambda row: name_sort_key(row.patient_name)
    if sort_by == SortField.DUE_DATE:
        # Accounts with no due date (paid) go after every dated account
        return lambda row: (row.effective_due_date is None, row.effective_due_date or date.max)
    if sort_by == SortField.STATUS:
        return lambda row: STATUS_ORDER[row.status]
    raise ReportValidationError(f"Unsupported sort field: {sort_by}")


def sort_accounts(rows: list[AccountRow], sort_by: SortField | str = SortField.AMOUNT,
                  direction: str = "desc") -> list[AccountRow]:
    """Stable sort by amount, name, effective due date or status."""
    if direction not in ("asc", "desc"):
        raise ReportValidationError(f"Unsupported sort direction: {direction}")
    return sorted(rows, key=_sort_key(SortField(sort_by)), reverse=direction == "desc")


# --- History ---


def filter_history(entries: list, date_range: DateRange | None, date_attr: str) -> list:
    """Entries within the inclusive range, newest first."""
    kept = [e for e in entries if date_range is None or date_range.contains(getattr(e, date_attr))]
    return sorted(kept, key=lambda e: getattr(e, date_attr), reverse=True)


def filter_payments(payments: list[PaymentEntry], date_range: DateRange | None = None) -> list[PaymentEntry]:
    return filter_history(payments, date_range, "payment_date")


def filter_calls(calls: list[CallEntry], date_range: DateRange | None = None) -> list[CallEntry]:
    return filter_history(calls, date_range, "call_date")


# --- Summaries ---


def summarize(rows: list[AccountRow]) -> ReportSummary:
    """Counts and totals. Every ratio is 0 for an empty set."""
    count = len(rows)
    total_outstanding = sum((r.total_owed for r in rows), Decimal("0"))
    total_payments = sum((r.total_payments for r in rows), Decimal("0"))
    average = (total_outstanding / count).quantize(Decimal("0.01")) if count else Decimal("0")

    by_status = {status: 0 for status in AccountStatus}
    for row in rows:
        by_status[row.status] += 1

    return ReportSummary(
        total_accounts=count,
        total_outstanding=total_outstanding,
        total_payments=total_payments,
        average_balance=average,
        overdue_count=by_status[AccountStatus.OVERDUE],
        current_count=by_status[AccountStatus.CURRENT],
        paid_count=by_status[AccountStatus.PAID],
        overdue_percentage=_percentage(by_status[AccountStatus.OVERDUE], count),
        current_percentage=_percentage(by_status[AccountStatus.CURRENT], count),
        paid_percentage=_percentage(by_status[AccountStatus.PAID], count),
    )


def _band_for(days: int) -> str:
    for label, low, high in AGING_BANDS:
        if high is None or days <= high:
            return label
    return AGING_BANDS[-1][0]


def aging_buckets(rows: list[AccountRow]) -> list[AgingBucket]:
    """Overdue accounts split into 1-30, 31-60, 61-90 and 90+ day bands."""
    buckets = {label: AgingBucket(label=label, min_days=low, max_days=high) for label, low, high in AGING_BANDS}
    overdue = [r for r in rows if r.status == AccountStatus.OVERDUE]
    total_overdue = sum((r.total_owed for r in overdue), Decimal("0"))

    for row in overdue:
        bucket = buckets[_band_for(max(0, row.days_overdue))]
        bucket.count += 1
        bucket.amount += row.total_owed

    for bucket in buckets.values():
        bucket.percentage = _percentage(bucket.amount, total_overdue)
    return list(buckets.values())


def group_by_status(rows: list[AccountRow]) -> list[StatusGroup]:
    """Partitions rows by status in the fixed order overdue, current, paid.

    Row order within each group is preserved, and every status gets a group
    even when it is empty.
    """
    groups = {status: [] for status in sorted(AccountStatus, key=STATUS_ORDER.get)}
    for row in rows:
        groups[row.status].append(row)
    return [StatusGroup(status=status, accounts=accounts) for status, accounts in groups.items()]


def contact_list(rows: list[AccountRow]) -> list[ContactRow]:
    return [
        ContactRow(
            patient_name=r.patient_name,
            mrn=r.mrn,
            phone=r.phone,
            total_owed=r.total_owed,
            status=r.status,
        )
        for r in rows
    ]


# --- Report builders ---


def history_ranges_from(criteria: ReportFilterCriteria,
                        options: AccountContentOptions) -> AccountContentOptions:
    """Per-account options with any unset history range taken from the report filters."""
    return options.model_copy(update={
        "payment_date_range": options.payment_date_range or criteria.payment_date_range,
        "call_date_range": options.call_date_range or criteria.call_date_range,
    })


def build_report(accounts: list[AccountSnapshot], criteria: ReportFilterCriteria,
                 options: ReportOptions, today: date,
                 account_options: AccountContentOptions | None = None,
                 term_days: int = PAYMENT_TERM_DAYS) -> BulkReport:
    """Filters, sorts and summarizes accounts into a bulk report.

    No matching accounts is not an error: the report simply has no rows and
    ``is_empty`` is true. When ``account_options`` is given, each matching
    account also gets its own detail sections, in report order. History ranges
    left unset in those options fall back to the ranges in ``criteria``.
    """
    rows = [evaluate_account(a, today, criteria.payment_date_range, term_days) for a in accounts]
    rows = filter_accounts(rows, criteria)
    rows = sort_accounts(rows, options.sort_by, options.sort_direction)

    logger.info(
        "Built %s report for %s: %d of %d accounts matched",
        criteria.bucket.value, today.isoformat(), len(rows), len(accounts),
    )

    report = BulkReport(
        title=options.custom_title or REPORT_TITLES[criteria.bucket],
        report_type=criteria.bucket,
        generated_on=today,
        accounts=rows,
        include_detailed_breakdown=options.include_detailed_breakdown,
    )
    if options.include_summary_statistics:
        report.summary = summarize(rows)
    if options.include_aging_analysis and criteria.bucket != ReportBucket.CURRENT:
        report.aging = aging_buckets(rows)
    if options.include_contact_list:
        report.contacts = contact_list(rows)
    if options.group_by_status:
        report.groups = group_by_status(rows)
    if account_options is not None:
        account_options = history_ranges_from(criteria, account_options)
        by_id = {a.id: a for a in accounts}
        report.account_details = [
            build_account_report(by_id[row.id], account_options, today, term_days) for row in rows
        ]
    return report


def build_account_report(account: AccountSnapshot, options: AccountContentOptions,
                         today: date, term_days: int = PAYMENT_TERM_DAYS) -> AccountReport:
    """Collects the sections of a single-account report."""
    row = evaluate_account(account, today, options.payment_date_range, term_days)
    all_payments = sum((p.amount for p in account.payments), Decimal("0"))

    outstanding = OutstandingBalance(
        total_owed=row.total_owed,
        effective_due_date=row.effective_due_date,
        days_overdue=row.days_overdue,
        days_until_due=days_until_due(row.effective_due_date, today)
        if row.status == AccountStatus.CURRENT else None,
        status=row.status,
    )

    return AccountReport(
        title=options.custom_title or f"Account Report - {account.patient_name}",
        generated_on=today,
        account=row,
        account_age_days=max(0, (today - account.created_at).days),
        created_at=account.created_at,
        total_payments=all_payments,
        outstanding=outstanding,
        payments=filter_payments(account.payments, options.payment_date_range)
        if options.include_payment_history else None,
        calls=filter_calls(account.calls, options.call_date_range)
        if options.include_call_history else None,
        notes=account.notes if options.include_notes else None,
        options=options,
    )
