"""Account status rules and report aggregation, free of any I/O."""

from .report_aggregator import (
    ReportValidationError,
    aging_buckets,
    build_account_report,
    build_report,
    evaluate_account,
    filter_accounts,
    filter_calls,
    filter_payments,
    group_by_status,
    sort_accounts,
    summarize,
)
from .status_engine import (
    Clock,
    FixedClock,
    InvalidAmountError,
    InvalidDateError,
    SystemClock,
    apply_charge,
    apply_due_date,
    apply_payment,
    calculate_status,
    days_overdue,
    effective_due_date,
    parse_iso_date,
)

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "InvalidAmountError",
    "InvalidDateError",
    "ReportValidationError",
    "parse_iso_date",
    "effective_due_date",
    "calculate_status",
    "days_overdue",
    "apply_payment",
    "apply_charge",
    "apply_due_date",
    "evaluate_account",
    "filter_accounts",
    "sort_accounts",
    "filter_payments",
    "filter_calls",
    "summarize",
    "aging_buckets",
    "group_by_status",
    "build_report",
    "build_account_report",
]
