from decimal import Decimal
from flask import request, jsonify, current_app
from pharmacy.extensions import db
from pharmacy.models.accounting_models import CustomerAccount
from pharmacy.accounting.schemas import AccountStatus, PaymentMethod
from pharmacy.accounting.status_engine import parse_amount, parse_iso_date
from pharmacy.services import account_service
from pharmacy.utils.decorators import get_current_user
from pharmacy.utils.sms_util import compose_payment_message, send_sms


def _get_account(account_id):
    return db.session.get(CustomerAccount, account_id)


def _not_found():
    return jsonify({'error': 'Account not found'}), 404


def get_accounts():
    """Accounts with their derived status, largest balance first. Optional ?status= and ?hospital_id=."""
    status = request.args.get('status')
    if status and status not in {s.value for s in AccountStatus}:
        return jsonify({'error': 'status must be one of current, overdue, paid'}), 400

    today = account_service.get_clock().today()
    snapshots = account_service.load_snapshots(
        hospital_id=request.args.get('hospital_id', type=int), with_history=False
    )
    accounts = [account_service.account_summary(s, today) for s in snapshots]
    if status:
        accounts = [a for a in accounts if a['status'] == status]
    return jsonify({'accounts': accounts, 'as_of': today.isoformat()}), 200


def get_accounts_overview():
    today = account_service.get_clock().today()
    snapshots = account_service.load_snapshots(with_history=False)
    return jsonify({**account_service.overview(snapshots, today), 'as_of': today.isoformat()}), 200


def get_account(account_id):
    account = _get_account(account_id)
    if not account:
        return _not_found()

    today = account_service.get_clock().today()
    snapshot = account_service.load_snapshot(account)
    data = account_service.account_summary(snapshot, today)
    data['patient_id'] = account.patient_id
    data['total_payments'] = float(sum((p.amount for p in snapshot.payments), 0))
    return jsonify(data), 200


def get_payment_history(account_id):
    account = _get_account(account_id)
    if not account:
        return _not_found()
    snapshot = account_service.load_snapshot(account)
    return jsonify({'payments': [p.model_dump(mode='json') for p in snapshot.payments]}), 200


def get_call_history(account_id):
    account = _get_account(account_id)
    if not account:
        return _not_found()
    snapshot = account_service.load_snapshot(account)
    return jsonify({'calls': [c.model_dump(mode='json') for c in snapshot.calls]}), 200


def get_recent_payments():
    limit = min(max(request.args.get('limit', 5, type=int), 1), 100)
    return jsonify({'payments': account_service.recent_payments(limit)}), 200


def _account_response(account, message, code=200, **extra):
    today = account_service.get_clock().today()
    return jsonify({
        'message': message,
        'account': account_service.account_summary(account_service.to_snapshot(account), today),
        **extra
    }), code


def record_payment(account_id):
    account = _get_account(account_id)
    if not account:
        return _not_found()

    data = request.get_json(silent=True) or {}
    amount = parse_amount(data.get('amount'), 'amount', allow_zero=False)
    try:
        method = PaymentMethod(data.get('payment_method', 'other'))
    except ValueError:
        return jsonify({'error': 'payment_method must be one of cash, card, insurance, other'}), 400
    if Decimal(account.total_owed) == 0:
        return jsonify({'error': 'Account has no outstanding balance'}), 409

    user = get_current_user()
    payment = account_service.record_payment(
        account, amount, method, notes=data.get('notes'), recorded_by=user.id if user else None
    )
    db.session.commit()
    return _account_response(
        account, 'Payment recorded successfully', 201,
        payment=account_service.payment_entry(payment).model_dump(mode='json')
    )


def add_charge(account_id):
    account = _get_account(account_id)
    if not account:
        return _not_found()

    data = request.get_json(silent=True) or {}
    amount = parse_amount(data.get('amount'), 'amount', allow_zero=False)
    account_service.add_charge(account, amount, description=data.get('description'))
    db.session.commit()
    return _account_response(account, 'Charge added successfully', 201)


def update_due_date(account_id):
    account = _get_account(account_id)
    if not account:
        return _not_found()

    data = request.get_json(silent=True) or {}
    if not data.get('due_date'):
        return jsonify({'error': 'due_date is required'}), 400
    new_due_date = parse_iso_date(data['due_date'], 'due_date')

    update = account_service.update_due_date(account, new_due_date)
    db.session.commit()
    current_app.logger.info(f"Account {account.id} due date set to {new_due_date}, status {update.status.value}")
    return _account_response(account, 'Due date updated successfully')


def add_call_log(account_id):
    account = _get_account(account_id)
    if not account:
        return _not_found()

    data = request.get_json(silent=True) or {}
    try:
        call = account_service.add_call_log(account, data.get('comments'), created_by=data.get('created_by'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    db.session.commit()
    return jsonify({
        'message': 'Call log added successfully',
        'call': account_service.call_entry(call).model_dump(mode='json')
    }), 201


def mark_account_complete(account_id):
    account = _get_account(account_id)
    if not account:
        return _not_found()
    account_service.mark_complete(account)
    db.session.commit()
    return _account_response(account, 'Account marked as paid.')


def send_payment_link(account_id):
    """Texts the patient a payment link, using the stored phone unless one is given."""
    account = _get_account(account_id)
    if not account:
        return _not_found()

    data = request.get_json(silent=True) or {}
    phone = data.get('phone') or account.phone
    message = data.get('message') or compose_payment_message(account.patient_name, account.total_owed)

    result = send_sms(phone, message)
    if not result['success']:
        return jsonify({'error': result['error']}), 400
    return jsonify({'message': result['message'], 'phone': phone, 'sms': message}), 200
