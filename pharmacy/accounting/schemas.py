"""Shared types for account status derivation and account reporting."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator, model_validator

# Money stays Decimal in memory and is emitted as a plain number in JSON.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class AccountStatus(str, Enum):
    """Derived state of a customer account."""

    CURRENT = "current"
    OVERDUE = "overdue"
    PAID = "paid"


class PaymentMethod(str, Enum):
    """How a payment was made."""

    CASH = "cash"
    CARD = "card"
    INSURANCE = "insurance"
    OTHER = "other"


class ReportBucket(str, Enum):
    """Which accounts a bulk report is about."""

    OVERDUE = "overdue"
    CURRENT = "current"
    ALL = "all"


class SortField(str, Enum):
    AMOUNT = "amount"
    NAME = "name"
    DUE_DATE = "due_date"
    STATUS = "status"


class PaymentEntry(BaseModel):
    """One recorded payment against an account."""

    id: int | str
    account_id: int | str
    amount: Money = Field(gt=0)
    payment_date: date
    method: PaymentMethod = PaymentMethod.OTHER
    notes: str | None = None


class CallEntry(BaseModel):
    """One phone contact made about an account."""

    id: int | str
    account_id: int | str
    call_date: date
    comments: str
    created_by: str | None = None

    @field_validator("comments")
    @classmethod
    def _comments_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("comments must not be empty")
        return value


class AccountSnapshot(BaseModel):
    """A customer account with its history, as handed to the report pipeline."""

    id: int | str
    patient_name: str
    mrn: str
    phone: str | None = None
    total_owed: Money = Field(ge=0)
    last_payment_date: date | None = None
    last_payment_amount: Money | None = None
    due_date: date | None = None
    created_at: date
    status: AccountStatus | None = None
    notes: str | None = None
    hospital_name: str | None = None
    patient_type: Literal["in-patient", "out-patient"] = "out-patient"
    payments: list[PaymentEntry] = []
    calls: list[CallEntry] = []


class DateRange(BaseModel):
    """Inclusive date window applied to payment or call history."""

    model_config = ConfigDict(extra="forbid")

    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class ReportFilterCriteria(BaseModel):
    """Which accounts to include in a bulk report."""

    model_config = ConfigDict(extra="forbid")

    bucket: ReportBucket = ReportBucket.ALL
    min_balance: Decimal | None = Field(default=None, ge=0)
    max_balance: Decimal | None = Field(default=None, ge=0)
    min_days_overdue: int | None = Field(default=None, ge=0)
    max_days_overdue: int | None = Field(default=None, ge=0)
    include_zero_balance: bool = False
    include_paid_accounts: bool = False
    payment_date_range: DateRange | None = None
    call_date_range: DateRange | None = None

    @model_validator(mode="after")
    def _ranges_not_inverted(self) -> "ReportFilterCriteria":
        if (
            self.min_balance is not None
            and self.max_balance is not None
            and self.min_balance > self.max_balance
        ):
            raise ValueError("min_balance must not exceed max_balance")
        if (
            self.min_days_overdue is not None
            and self.max_days_overdue is not None
            and self.min_days_overdue > self.max_days_overdue
        ):
            raise ValueError("min_days_overdue must not exceed max_days_overdue")
        return self

    @classmethod
    def for_bucket(cls, bucket: ReportBucket | str, **overrides) -> "ReportFilterCriteria":
        """Defaults used by the bulk export screen for each report type."""
        bucket = ReportBucket(bucket)
        defaults = {
            "bucket": bucket,
            "include_zero_balance": bucket == ReportBucket.ALL,
            "include_paid_accounts": bucket == ReportBucket.ALL,
            "min_days_overdue": 1 if bucket == ReportBucket.OVERDUE else None,
        }
        defaults.update(overrides)
        return cls(**defaults)


class ReportOptions(BaseModel):
    """Layout choices for a bulk report."""

    model_config = ConfigDict(extra="forbid")

    sort_by: SortField = SortField.AMOUNT
    sort_direction: Literal["asc", "desc"] = "desc"
    group_by_status: bool = False
    include_summary_statistics: bool = True
    include_aging_analysis: bool = True
    include_contact_list: bool = True
    include_detailed_breakdown: bool = True
    custom_title: str | None = None


class AccountContentOptions(BaseModel):
    """Sections to include in a single-account report."""

    model_config = ConfigDict(extra="forbid")

    include_contact_info: bool = True
    include_payment_history: bool = True
    include_call_history: bool = True
    include_outstanding_balance: bool = True
    include_account_summary: bool = True
    include_notes: bool = False
    payment_date_range: DateRange | None = None
    call_date_range: DateRange | None = None
    custom_title: str | None = None

    @model_validator(mode="after")
    def _at_least_one_section(self) -> "AccountContentOptions":
        if not any(
            [
                self.include_contact_info,
                self.include_payment_history,
                self.include_call_history,
                self.include_outstanding_balance,
                self.include_account_summary,
            ]
        ):
            raise ValueError("At least one content option must be selected")
        return self


# --- Report output model ---


class AccountRow(BaseModel):
    """An account as it appears in a rendered report."""

    id: int | str
    patient_name: str
    mrn: str
    phone: str | None = None
    total_owed: Money
    status: AccountStatus
    effective_due_date: date | None = None
    days_overdue: int = 0
    last_payment_date: date | None = None
    last_payment_amount: Money | None = None
    total_payments: Money = Decimal("0")
    hospital_name: str | None = None
    patient_type: str = "out-patient"


class ReportSummary(BaseModel):
    """Headline figures for a set of accounts."""

    total_accounts: int
    total_outstanding: Money
    total_payments: Money
    average_balance: Money
    overdue_count: int = 0
    current_count: int = 0
    paid_count: int = 0
    overdue_percentage: float = 0.0
    current_percentage: float = 0.0
    paid_percentage: float = 0.0


class AgingBucket(BaseModel):
    """Overdue accounts falling within one days-overdue band."""

    label: str
    min_days: int
    max_days: int | None
    count: int = 0
    amount: Money = Decimal("0")
    percentage: float = 0.0


class ContactRow(BaseModel):
    patient_name: str
    mrn: str
    phone: str | None = None
    total_owed: Money
    status: AccountStatus


class StatusGroup(BaseModel):
    status: AccountStatus
    accounts: list[AccountRow]


class OutstandingBalance(BaseModel):
    total_owed: Money
    effective_due_date: date | None = None
    days_overdue: int = 0
    days_until_due: int | None = None
    status: AccountStatus


class AccountReport(BaseModel):
    """Renderable model for a single-account report."""

    title: str
    generated_on: date
    account: AccountRow
    account_age_days: int
    created_at: date
    total_payments: Money
    outstanding: OutstandingBalance
    payments: list[PaymentEntry] | None = None
    calls: list[CallEntry] | None = None
    notes: str | None = None
    options: AccountContentOptions


class BulkReport(BaseModel):
    """Renderable model for a multi-account report."""

    title: str
    report_type: ReportBucket
    generated_on: date
    accounts: list[AccountRow] = []
    summary: ReportSummary | None = None
    aging: list[AgingBucket] | None = None
    contacts: list[ContactRow] | None = None
    groups: list[StatusGroup] | None = None
    include_detailed_breakdown: bool = True
    # Per-account sections, only when the caller asked for them
    account_details: list[AccountReport] | None = None

    @property
    def is_empty(self) -> bool:
        return not self.accounts
