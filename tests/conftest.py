import itertools
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from pharmacy import create_app
from pharmacy.extensions import db as _db
from pharmacy.accounting.status_engine import FixedClock
from pharmacy.commands import seed_defaults
from pharmacy.models.accounting_models import CustomerAccount, PaymentRecord, CallLog
from pharmacy.models.hospital_models import Hospital
from pharmacy.models.patient_models import Patient
from pharmacy.models.user_models import User, Role
from pharmacy.utils.encryption_util import encryptor

TODAY = date(2024, 6, 15)
TEST_PASSWORD = 'Pharm@cyTest2024'

_sequence = itertools.count(1)


@pytest.fixture
def app():
    app = create_app('testing')
    app.extensions['account_clock'] = FixedClock(TODAY)

    with app.app_context():
        _db.create_all()
        seed_defaults()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def hospital(app):
    return Hospital.query.filter_by(name='Northern Beaches Hospital').first()


@pytest.fixture
def make_user(app):
    """Factory for users with a given role and, optionally, a hospital."""
    def _make_user(role='staff', hospital=None, username=None):
        n = next(_sequence)
        username = username or f"{role}{n}"
        email = f"{username}@pharmacy.test"
        user = User(
            username=encryptor.encrypt(username),
            email=encryptor.encrypt(email),
            username_hash=User.create_hash(username),
            email_hash=User.create_hash(email),
            role=Role.query.filter_by(name=role).first(),
            hospital_id=hospital.id if hospital else None,
        )
        user.set_password(TEST_PASSWORD)
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make_user


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user):
        token = create_access_token(identity=str(user.id))
        return {'Authorization': f'Bearer {token}'}
    return _auth_headers


@pytest.fixture
def staff_headers(make_user, auth_headers):
    return auth_headers(make_user('staff'))


@pytest.fixture
def admin_headers(make_user, auth_headers):
    return auth_headers(make_user('admin'))


@pytest.fixture
def make_account(app):
    """
    Factory for a patient with a customer account.

    ``created`` is a calendar date; the stored timestamp is midday UTC on
    that day so the fixed test clock sees the same date. ``payments`` is a
    list of ``(amount, date)`` pairs and ``calls`` a list of
    ``(comments, date)`` pairs.
    """
    def _make_account(name='Jane Citizen', owed=0, due=None, last_payment=None,
                      created=TODAY - timedelta(days=60), hospital=None,
                      phone='0412 345 678', payments=(), calls=(), status='current'):
        n = next(_sequence)
        patient = Patient(
            name=name,
            mrn=f"MRN{n:05d}",
            phone=phone,
            hospital_id=hospital.id if hospital else None,
        )
        account = CustomerAccount(
            patient=patient,
            patient_name=name,
            mrn=patient.mrn,
            phone=phone,
            total_owed=Decimal(str(owed)),
            due_date=due,
            last_payment_date=last_payment,
            status=status,
            created_at=datetime.combine(created, time(12, 0)),
        )
        _db.session.add_all([patient, account])
        _db.session.flush()
        for amount, day in payments:
            _db.session.add(PaymentRecord(account_id=account.id, amount=Decimal(str(amount)),
                                          payment_date=day, payment_method='card'))
        for comments, day in calls:
            _db.session.add(CallLog(account_id=account.id, comments=comments, call_date=day))
        _db.session.commit()
        return account
    return _make_account
