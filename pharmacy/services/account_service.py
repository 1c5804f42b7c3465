# /pharmacy/services/account_service.py
"""Database side of the accounting screens.

Accounts are read into :class:`AccountSnapshot` objects with their payment
and call history fully loaded before anything is aggregated. History is
fetched with one ``IN`` query per batch of accounts rather than one query per
account. Mutations here only stage changes on the session; the caller
commits.
"""
from collections import defaultdict
from decimal import Decimal
from flask import current_app
from sqlalchemy.orm import joinedload
from pharmacy.extensions import db
from pharmacy.models.accounting_models import CustomerAccount, PaymentRecord, CallLog
from pharmacy.models.patient_models import Patient
from pharmacy.accounting import (
    apply_charge,
    apply_due_date,
    apply_payment,
    calculate_status,
    evaluate_account,
)
from pharmacy.accounting.schemas import (
    AccountSnapshot,
    AccountStatus,
    CallEntry,
    PaymentEntry,
    PaymentMethod,
)

DEFAULT_CALLER = 'Pharmacy Staff'


def get_clock():
    return current_app.extensions['account_clock']


def get_term_days():
    return current_app.config['PAYMENT_TERM_DAYS']


def _batches(ids, size):
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


def _load_history(model, account_ids, date_column):
    """Rows of `model` for every account id, grouped by account, newest first."""
    grouped = defaultdict(list)
    batch_size = current_app.config['REPORT_FETCH_BATCH_SIZE']
    for batch in _batches(list(account_ids), batch_size):
        rows = (model.query
                .filter(model.account_id.in_(batch))
                .order_by(date_column.desc(), model.id.desc())
                .all())
        for row in rows:
            grouped[row.account_id].append(row)
    return grouped


def payment_entry(record: PaymentRecord) -> PaymentEntry:
    return PaymentEntry(
        id=record.id,
        account_id=record.account_id,
        amount=Decimal(record.amount),
        payment_date=record.payment_date,
        method=PaymentMethod(record.payment_method),
        notes=record.notes,
    )


def call_entry(record: CallLog) -> CallEntry:
    return CallEntry(
        id=record.id,
        account_id=record.account_id,
        call_date=record.call_date,
        comments=record.comments,
        created_by=record.created_by,
    )


def to_snapshot(account: CustomerAccount, payments=(), calls=()) -> AccountSnapshot:
    patient = account.patient
    hospital = patient.hospital if patient else None
    return AccountSnapshot(
        id=account.id,
        patient_name=account.patient_name,
        mrn=account.mrn,
        phone=account.phone or (patient.phone if patient else None),
        total_owed=Decimal(account.total_owed or 0),
        last_payment_date=account.last_payment_date,
        last_payment_amount=Decimal(account.last_payment_amount) if account.last_payment_amount is not None else None,
        due_date=account.due_date,
        created_at=get_clock().to_local_date(account.created_at),
        status=AccountStatus(account.status) if account.status else None,
        notes=account.notes,
        hospital_name=hospital.name if hospital else None,
        patient_type=patient.patient_type if patient else 'out-patient',
        payments=[payment_entry(p) for p in payments],
        calls=[call_entry(c) for c in calls],
    )


def load_snapshots(account_ids=None, hospital_id=None, with_history=True) -> list[AccountSnapshot]:
    """Accounts ordered by balance, largest first, with their history attached."""
    query = (CustomerAccount.query
             .options(joinedload(CustomerAccount.patient).joinedload(Patient.hospital))
             .order_by(CustomerAccount.total_owed.desc(), CustomerAccount.id))
    if hospital_id is not None:
        query = query.join(Patient).filter(Patient.hospital_id == hospital_id)

    if account_ids is not None:
        accounts = []
        for batch in _batches(list(account_ids), current_app.config['REPORT_FETCH_BATCH_SIZE']):
            accounts.extend(query.filter(CustomerAccount.id.in_(batch)).all())
    else:
        accounts = query.all()

    if not with_history or not accounts:
        return [to_snapshot(a) for a in accounts]

    ids = [a.id for a in accounts]
    payments = _load_history(PaymentRecord, ids, PaymentRecord.payment_date)
    calls = _load_history(CallLog, ids, CallLog.call_date)
    current_app.logger.debug(f"Loaded history for {len(ids)} accounts")
    return [to_snapshot(a, payments[a.id], calls[a.id]) for a in accounts]


def load_snapshot(account: CustomerAccount) -> AccountSnapshot:
    payments = account.payments.order_by(PaymentRecord.payment_date.desc(), PaymentRecord.id.desc()).all()
    calls = account.calls.order_by(CallLog.call_date.desc(), CallLog.id.desc()).all()
    return to_snapshot(account, payments, calls)


def days_outstanding(row, created_at, today) -> int:
    """Days past due for overdue accounts, days since opening for current ones with a balance."""
    if row.status == AccountStatus.OVERDUE:
        return row.days_overdue
    if row.status == AccountStatus.CURRENT and row.total_owed > 0:
        return max(0, (today - created_at).days)
    return 0


def account_summary(snapshot: AccountSnapshot, today) -> dict:
    """JSON shape used by the account list and detail endpoints."""
    row = evaluate_account(snapshot, today, term_days=get_term_days())
    data = row.model_dump(mode='json', exclude={'total_payments'})
    data.update({
        'due_date': snapshot.due_date.isoformat() if snapshot.due_date else None,
        'created_at': snapshot.created_at.isoformat(),
        'notes': snapshot.notes,
        'days_outstanding': days_outstanding(row, snapshot.created_at, today),
    })
    return data


def overview(snapshots: list[AccountSnapshot], today) -> dict:
    """Headline totals for the accounting dashboard."""
    totals = {
        'total_outstanding': Decimal('0'),
        'overdue_count': 0,
        'overdue_amount': Decimal('0'),
        'current_count': 0,
        'current_amount': Decimal('0'),
        'paid_count': 0,
        'in_patient_outstanding': 0,
        'out_patient_outstanding': 0,
    }
    for snapshot in snapshots:
        row = evaluate_account(snapshot, today, term_days=get_term_days())
        totals['total_outstanding'] += row.total_owed
        totals[f'{row.status.value}_count'] += 1
        if row.status != AccountStatus.PAID:
            totals[f'{row.status.value}_amount'] += row.total_owed
            key = 'in_patient_outstanding' if row.patient_type == 'in-patient' else 'out_patient_outstanding'
            totals[key] += 1

    for key in ('total_outstanding', 'overdue_amount', 'current_amount'):
        totals[key] = float(totals[key])
    totals['total_accounts'] = len(snapshots)
    return totals


# --- Mutations ---


def _apply(account: CustomerAccount, update):
    account.total_owed = update.total_owed
    account.due_date = update.due_date
    account.status = update.status.value


def record_payment(account: CustomerAccount, amount: Decimal, method=PaymentMethod.OTHER,
                   notes=None, recorded_by=None) -> PaymentRecord:
    """Stages a payment taken today along with the account's new balance and status."""
    clock = get_clock()
    today = clock.today()
    update = apply_payment(
        Decimal(account.total_owed), amount, account.last_payment_date, account.due_date,
        clock.to_local_date(account.created_at), today, get_term_days(),
    )
    payment = PaymentRecord(
        account_id=account.id,
        amount=amount,
        payment_date=today,
        payment_method=PaymentMethod(method).value,
        notes=notes or None,
        recorded_by=recorded_by,
    )
    if amount > Decimal(account.total_owed):
        current_app.logger.warning(
            f"Overpayment on account {account.id}: {amount} taken against a balance of {account.total_owed}"
        )
    _apply(account, update)
    account.last_payment_date = today
    account.last_payment_amount = amount
    db.session.add(payment)
    current_app.logger.info(
        f"Payment of {amount} recorded on account {account.id}; balance {update.total_owed}, status {update.status.value}"
    )
    return payment


def add_charge(account: CustomerAccount, amount: Decimal, description=None):
    clock = get_clock()
    update = apply_charge(
        Decimal(account.total_owed), amount, account.last_payment_date, account.due_date,
        clock.to_local_date(account.created_at), clock.today(), get_term_days(),
    )
    _apply(account, update)
    if description:
        account.notes = f"{account.notes}\n{description}" if account.notes else description
    current_app.logger.info(f"Charge of {amount} added to account {account.id}; balance {update.total_owed}")
    return update


def update_due_date(account: CustomerAccount, new_due_date):
    clock = get_clock()
    update = apply_due_date(
        Decimal(account.total_owed), account.last_payment_date, new_due_date,
        clock.to_local_date(account.created_at), clock.today(), get_term_days(),
    )
    _apply(account, update)
    return update


def add_call_log(account: CustomerAccount, comments: str, created_by=None, call_date=None) -> CallLog:
    if not comments or not comments.strip():
        raise ValueError('Comments are required')
    call = CallLog(
        account_id=account.id,
        call_date=call_date or get_clock().today(),
        comments=comments.strip(),
        created_by=created_by or DEFAULT_CALLER,
    )
    db.session.add(call)
    return call


def mark_complete(account: CustomerAccount):
    """Writes the balance off and marks the account paid."""
    account.total_owed = Decimal('0')
    account.status = AccountStatus.PAID.value


def open_account_for(patient: Patient) -> CustomerAccount:
    """The patient's account, opened with a zero balance if they have none yet."""
    if patient.account is not None:
        return patient.account
    account = CustomerAccount(
        patient=patient,
        patient_name=patient.name,
        mrn=patient.mrn,
        phone=patient.phone,
        total_owed=Decimal('0'),
        status=AccountStatus.CURRENT.value,
    )
    db.session.add(account)
    return account


def refresh_statuses() -> int:
    """Re-derives and stores the status of every account. Returns how many changed."""
    clock = get_clock()
    today = clock.today()
    changed = 0
    for account in CustomerAccount.query.all():
        status = calculate_status(
            Decimal(account.total_owed), account.last_payment_date, account.due_date,
            clock.to_local_date(account.created_at), today, get_term_days(),
        )
        if account.status != status.value:
            account.status = status.value
            changed += 1
    return changed


def recent_payments(limit=5) -> list[dict]:
    rows = (db.session.query(PaymentRecord, CustomerAccount)
            .join(CustomerAccount, PaymentRecord.account_id == CustomerAccount.id)
            .order_by(PaymentRecord.payment_date.desc(), PaymentRecord.id.desc())
            .limit(limit)
            .all())
    return [
        {**payment_entry(p).model_dump(mode='json'), 'patient_name': a.patient_name, 'mrn': a.mrn}
        for p, a in rows
    ]
