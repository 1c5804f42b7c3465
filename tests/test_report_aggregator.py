"""Tests for filtering, sorting and summarizing accounts into reports."""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from pydantic import ValidationError

from pharmacy.accounting.report_aggregator import (
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
from pharmacy.accounting.schemas import (
    AccountContentOptions,
    AccountSnapshot,
    AccountStatus,
    CallEntry,
    DateRange,
    PaymentEntry,
    ReportBucket,
    ReportFilterCriteria,
    ReportOptions,
    SortField,
)

TODAY = date(2024, 6, 15)


def _days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


def _make_account(
    account_id,
    owed,
    name: str = "Patient",
    due: date | None = None,
    last_payment: date | None = None,
    created: date = date(2023, 1, 1),
    payments=(),
    calls=(),
) -> AccountSnapshot:
    """Helper to create an AccountSnapshot for testing."""
    return AccountSnapshot(
        id=account_id,
        patient_name=name,
        mrn=f"MRN{account_id}",
        phone="0412 345 678",
        total_owed=Decimal(str(owed)),
        last_payment_date=last_payment,
        due_date=due,
        created_at=created,
        payments=list(payments),
        calls=list(calls),
    )


def _payment(pid, account_id, amount, day) -> PaymentEntry:
    return PaymentEntry(id=pid, account_id=account_id, amount=Decimal(str(amount)), payment_date=day, method="card")


def _call(cid, account_id, day, comments="Left voicemail") -> CallEntry:
    return CallEntry(id=cid, account_id=account_id, call_date=day, comments=comments, created_by="Pharmacy Staff")


def _rows(accounts):
    return [evaluate_account(a, TODAY) for a in accounts]


@pytest.fixture
def mixed_accounts():
    """Two overdue, two current and one paid account with distinct balances."""
    return [
        _make_account(1, 120, "Carol", due=_days_ago(10)),
        _make_account(2, 45.5, "alice", due=TODAY + timedelta(days=5)),
        _make_account(3, 0, "Dave"),
        _make_account(4, 300, "bob", due=_days_ago(70)),
        _make_account(5, 80, "Eve", last_payment=_days_ago(2)),
    ]


# ============================================================================
# FILTER
# ============================================================================


class TestFilter:
    """Filter criteria applied to evaluated accounts."""

    def test_min_days_overdue_scenario(self):
        """Only accounts at least 31 days overdue survive an overdue filter with min 31."""
        accounts = [
            _make_account(1, 50, due=_days_ago(10)),
            _make_account(2, 50, due=_days_ago(35)),
            _make_account(3, 50, due=_days_ago(95)),
        ]
        criteria = ReportFilterCriteria(bucket=ReportBucket.OVERDUE, min_days_overdue=31)
        kept = filter_accounts(_rows(accounts), criteria)
        assert [r.id for r in kept] == [2, 3]
        assert [r.days_overdue for r in kept] == [35, 95]

    def test_paid_account_never_in_overdue_bucket(self):
        criteria = ReportFilterCriteria(bucket=ReportBucket.OVERDUE, include_zero_balance=True, include_paid_accounts=True)
        kept = filter_accounts(_rows([_make_account(1, 0, due=_days_ago(50))]), criteria)
        assert kept == []

    def test_zero_balance_dropped_by_default(self, mixed_accounts):
        kept = filter_accounts(_rows(mixed_accounts), ReportFilterCriteria())
        assert 3 not in [r.id for r in kept]

    def test_all_bucket_defaults_include_paid(self, mixed_accounts):
        criteria = ReportFilterCriteria.for_bucket("all")
        kept = filter_accounts(_rows(mixed_accounts), criteria)
        assert len(kept) == len(mixed_accounts)

    def test_balance_range(self, mixed_accounts):
        criteria = ReportFilterCriteria(min_balance=Decimal("50"), max_balance=Decimal("150"))
        kept = filter_accounts(_rows(mixed_accounts), criteria)
        assert sorted(r.id for r in kept) == [1, 5]

    def test_current_bucket(self, mixed_accounts):
        kept = filter_accounts(_rows(mixed_accounts), ReportFilterCriteria.for_bucket(ReportBucket.CURRENT))
        assert sorted(r.id for r in kept) == [2, 5]

    def test_inverted_balance_range_rejected(self):
        with pytest.raises(ValidationError):
            ReportFilterCriteria(min_balance=Decimal("100"), max_balance=Decimal("10"))

    def test_inverted_days_range_rejected(self):
        with pytest.raises(ValidationError):
            ReportFilterCriteria(bucket="overdue", min_days_overdue=60, max_days_overdue=30)

    def test_inverted_date_range_rejected(self):
        with pytest.raises(ValidationError):
            DateRange(start_date=TODAY, end_date=_days_ago(1))

    @pytest.mark.parametrize(
        "model, fields",
        [
            (ReportFilterCriteria, {"minDaysOverdue": 31}),
            (ReportOptions, {"sortBy": "name"}),
            (AccountContentOptions, {"includeNotes": True}),
            (DateRange, {"start_date": TODAY, "end_date": TODAY, "end": TODAY}),
        ],
    )
    def test_unknown_option_keys_rejected(self, model, fields):
        """A misspelled option raises instead of being dropped."""
        with pytest.raises(ValidationError):
            model(**fields)

    def test_unknown_filter_key_rejected_by_bucket_defaults(self):
        with pytest.raises(ValidationError):
            ReportFilterCriteria.for_bucket("overdue", minDaysOverdue=31)


# ============================================================================
# SORT
# ============================================================================


class TestSort:
    """Stable sorting by amount, name, due date and status."""

    def test_amount_ascending_is_reverse_of_descending(self, mixed_accounts):
        rows = _rows(mixed_accounts)
        ascending = [r.id for r in sort_accounts(rows, SortField.AMOUNT, "asc")]
        descending = [r.id for r in sort_accounts(rows, SortField.AMOUNT, "desc")]
        assert ascending == list(reversed(descending))
        assert ascending == [3, 2, 5, 1, 4]

    def test_name_sort_is_case_insensitive(self):
        """'alpha' sorts before 'Beta' even though 'B' < 'a' by code point."""
        rows = _rows([_make_account(1, 10, "Beta"), _make_account(2, 10, "alpha")])
        assert [r.patient_name for r in sort_accounts(rows, "name", "asc")] == ["alpha", "Beta"]

    def test_name_sort_ignores_accents(self):
        rows = _rows([_make_account(1, 10, "Zoe"), _make_account(2, 10, "Émile"), _make_account(3, 10, "david")])
        assert [r.patient_name for r in sort_accounts(rows, "name", "asc")] == ["david", "Émile", "Zoe"]

    def test_status_order(self, mixed_accounts):
        statuses = [r.status for r in sort_accounts(_rows(mixed_accounts), SortField.STATUS, "asc")]
        assert statuses == [
            AccountStatus.OVERDUE, AccountStatus.OVERDUE,
            AccountStatus.CURRENT, AccountStatus.CURRENT,
            AccountStatus.PAID,
        ]

    def test_status_sort_is_stable(self, mixed_accounts):
        """Ties keep their input order."""
        ordered = sort_accounts(_rows(mixed_accounts), SortField.STATUS, "asc")
        assert [r.id for r in ordered] == [1, 4, 2, 5, 3]

    def test_due_date_sort_puts_paid_last(self, mixed_accounts):
        ordered = sort_accounts(_rows(mixed_accounts), SortField.DUE_DATE, "asc")
        assert [r.id for r in ordered] == [4, 1, 2, 5, 3]

    def test_bad_direction_rejected(self, mixed_accounts):
        with pytest.raises(ValueError):
            sort_accounts(_rows(mixed_accounts), SortField.AMOUNT, "sideways")


# ============================================================================
# SUMMARIES
# ============================================================================


class TestSummaries:
    """Summary statistics, aging buckets and grouping."""

    def test_empty_summary_is_zero(self):
        summary = summarize([])
        assert summary.total_accounts == 0
        assert summary.average_balance == Decimal("0")
        assert summary.overdue_percentage == 0.0

    def test_summary_totals(self, mixed_accounts):
        summary = summarize(_rows(mixed_accounts))
        assert summary.total_accounts == 5
        assert summary.total_outstanding == Decimal("545.50")
        assert summary.average_balance == Decimal("109.10")
        assert (summary.overdue_count, summary.current_count, summary.paid_count) == (2, 2, 1)
        assert summary.overdue_percentage == 40.0

    def test_total_payments_respects_payment_range(self):
        account = _make_account(
            1, 10, due=TODAY,
            payments=[_payment(1, 1, 20, _days_ago(40)), _payment(2, 1, 15, _days_ago(5))],
        )
        window = DateRange(start_date=_days_ago(10), end_date=TODAY)
        row = evaluate_account(account, TODAY, payment_date_range=window)
        assert summarize([row]).total_payments == Decimal("15")

    def test_aging_buckets_sum_to_overdue_totals(self):
        accounts = [
            _make_account(1, 10, due=_days_ago(1)),
            _make_account(2, 20, due=_days_ago(30)),
            _make_account(3, 30, due=_days_ago(31)),
            _make_account(4, 40, due=_days_ago(75)),
            _make_account(5, 50, due=_days_ago(91)),
            _make_account(6, 60, due=TODAY + timedelta(days=3)),
        ]
        rows = _rows(accounts)
        buckets = aging_buckets(rows)
        overdue = [r for r in rows if r.status == AccountStatus.OVERDUE]

        assert [b.label for b in buckets] == ["1-30", "31-60", "61-90", "90+"]
        assert [b.count for b in buckets] == [2, 1, 1, 1]
        assert sum(b.count for b in buckets) == len(overdue)
        assert sum(b.amount for b in buckets) == sum(r.total_owed for r in overdue)
        assert sum(b.percentage for b in buckets) == pytest.approx(100.0, abs=0.05)

    def test_aging_with_no_overdue_amount(self):
        buckets = aging_buckets(_rows([_make_account(1, 10, due=TODAY)]))
        assert all(b.count == 0 and b.percentage == 0.0 for b in buckets)

    def test_overdue_by_fifteen_days_lands_in_first_bucket(self):
        rows = _rows([_make_account(1, 100, last_payment=_days_ago(45), created=_days_ago(100))])
        assert rows[0].days_overdue == 15
        assert aging_buckets(rows)[0].count == 1

    def test_grouping_is_lossless_partition(self, mixed_accounts):
        rows = sort_accounts(_rows(mixed_accounts), SortField.AMOUNT, "desc")
        groups = group_by_status(rows)
        assert [g.status for g in groups] == [AccountStatus.OVERDUE, AccountStatus.CURRENT, AccountStatus.PAID]
        flattened = [r.id for g in groups for r in g.accounts]
        assert sorted(flattened) == sorted(r.id for r in rows)
        assert all(r.status == g.status for g in groups for r in g.accounts)


# ============================================================================
# HISTORY
# ============================================================================


class TestHistory:
    def test_payments_filtered_inclusively_and_newest_first(self):
        payments = [
            _payment(1, 1, 10, _days_ago(30)),
            _payment(2, 1, 10, _days_ago(10)),
            _payment(3, 1, 10, _days_ago(20)),
            _payment(4, 1, 10, _days_ago(1)),
        ]
        window = DateRange(start_date=_days_ago(20), end_date=_days_ago(10))
        assert [p.id for p in filter_payments(payments, window)] == [2, 3]
        assert [p.id for p in filter_payments(payments)] == [4, 2, 3, 1]

    def test_calls_sorted_newest_first(self):
        calls = [_call(1, 1, _days_ago(3)), _call(2, 1, _days_ago(1))]
        assert [c.id for c in filter_calls(calls)] == [2, 1]

    def test_blank_call_comments_rejected(self):
        with pytest.raises(ValidationError):
            _call(1, 1, TODAY, comments="   ")


# ============================================================================
# REPORT BUILDERS
# ============================================================================


class TestBuildReport:
    """Full bulk and single-account report models."""

    def test_overdue_report(self, mixed_accounts):
        report = build_report(mixed_accounts, ReportFilterCriteria.for_bucket("overdue"), ReportOptions(), TODAY)
        assert report.title == "Overdue Accounts Report"
        assert [a.id for a in report.accounts] == [4, 1]
        assert report.summary.total_accounts == 2
        assert report.aging is not None
        assert len(report.contacts) == 2
        assert report.account_details is None
        assert not report.is_empty

    def test_current_report_has_no_aging(self, mixed_accounts):
        report = build_report(mixed_accounts, ReportFilterCriteria.for_bucket("current"), ReportOptions(), TODAY)
        assert report.aging is None

    def test_no_matches_is_empty_report(self):
        report = build_report(
            [_make_account(1, 10, due=TODAY + timedelta(days=1))],
            ReportFilterCriteria.for_bucket("overdue"), ReportOptions(), TODAY,
        )
        assert report.is_empty
        assert report.summary.average_balance == Decimal("0")

    def test_optional_sections_left_out(self, mixed_accounts):
        options = ReportOptions(
            include_summary_statistics=False,
            include_aging_analysis=False,
            include_contact_list=False,
            group_by_status=True,
            custom_title="Month End",
        )
        report = build_report(mixed_accounts, ReportFilterCriteria.for_bucket("all"), options, TODAY)
        assert report.title == "Month End"
        assert report.summary is None and report.aging is None and report.contacts is None
        assert [len(g.accounts) for g in report.groups] == [2, 2, 1]

    def test_account_options_add_per_account_sections(self, mixed_accounts):
        """Per-account content options produce one detail section per account, in report order."""
        content = AccountContentOptions(include_call_history=False)
        report = build_report(
            mixed_accounts, ReportFilterCriteria.for_bucket("overdue"), ReportOptions(), TODAY,
            account_options=content,
        )
        assert [d.account.id for d in report.account_details] == [a.id for a in report.accounts]
        assert all(d.calls is None for d in report.account_details)

    def test_filter_history_ranges_apply_to_account_sections(self):
        """Date ranges on the report filters narrow each account's payment and call history."""
        account = _make_account(
            1, 40, due=TODAY + timedelta(days=3),
            payments=[_payment(1, 1, 10, date(2024, 1, 5)), _payment(2, 1, 15, date(2024, 6, 2))],
            calls=[_call(1, 1, date(2024, 1, 5), "old"), _call(2, 1, date(2024, 6, 1), "new")],
        )
        june = DateRange(start_date=date(2024, 6, 1), end_date=date(2024, 6, 30))
        criteria = ReportFilterCriteria.for_bucket("all", payment_date_range=june, call_date_range=june)

        report = build_report([account], criteria, ReportOptions(), TODAY,
                              account_options=AccountContentOptions())
        detail = report.account_details[0]

        assert [c.comments for c in detail.calls] == ["new"]
        assert [p.id for p in detail.payments] == [2]
        assert report.summary.total_payments == sum(p.amount for p in detail.payments)

    def test_account_option_ranges_take_precedence(self):
        account = _make_account(
            1, 40, due=TODAY + timedelta(days=3),
            calls=[_call(1, 1, date(2024, 1, 5), "old"), _call(2, 1, date(2024, 6, 1), "new")],
        )
        criteria = ReportFilterCriteria.for_bucket(
            "all", call_date_range=DateRange(start_date=date(2024, 6, 1), end_date=date(2024, 6, 30))
        )
        january = DateRange(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))

        report = build_report([account], criteria, ReportOptions(), TODAY,
                              account_options=AccountContentOptions(call_date_range=january))
        assert [c.comments for c in report.account_details[0].calls] == ["old"]

    def test_same_inputs_same_report(self, mixed_accounts):
        criteria = ReportFilterCriteria.for_bucket("all")
        first = build_report(mixed_accounts, criteria, ReportOptions(), TODAY)
        second = build_report(mixed_accounts, criteria, ReportOptions(), TODAY)
        assert first == second


class TestBuildAccountReport:
    def test_current_account_sections(self):
        account = _make_account(
            7, 60, "Frank", due=TODAY + timedelta(days=12), created=_days_ago(40),
            payments=[_payment(1, 7, 25, _days_ago(30)), _payment(2, 7, 15, _days_ago(3))],
            calls=[_call(1, 7, _days_ago(2))],
        )
        options = AccountContentOptions(
            payment_date_range=DateRange(start_date=_days_ago(7), end_date=TODAY),
            include_notes=True,
        )
        report = build_account_report(account, options, TODAY)

        assert report.title == "Account Report - Frank"
        assert report.account_age_days == 40
        assert report.total_payments == Decimal("40")
        assert [p.id for p in report.payments] == [2]
        assert len(report.calls) == 1
        assert report.outstanding.days_until_due == 12
        assert report.outstanding.status == AccountStatus.CURRENT

    def test_overdue_account_has_days_overdue(self):
        report = build_account_report(_make_account(8, 10, due=_days_ago(9)), AccountContentOptions(), TODAY)
        assert report.outstanding.days_overdue == 9
        assert report.outstanding.days_until_due is None

    def test_sections_can_be_turned_off(self):
        options = AccountContentOptions(include_payment_history=False, include_call_history=False)
        report = build_account_report(_make_account(9, 10), options, TODAY)
        assert report.payments is None and report.calls is None

    def test_at_least_one_section_required(self):
        with pytest.raises(ValidationError):
            AccountContentOptions(
                include_contact_info=False,
                include_payment_history=False,
                include_call_history=False,
                include_outstanding_balance=False,
                include_account_summary=False,
            )
