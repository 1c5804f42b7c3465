from datetime import datetime
from pharmacy.extensions import db

class CustomerAccount(db.Model):
    """A patient's running balance with the pharmacy. One account per patient."""
    __tablename__ = 'customer_accounts'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), unique=True, nullable=False)
    patient_name = db.Column(db.String(255), nullable=False)
    mrn = db.Column(db.String(64), nullable=False, index=True)
    phone = db.Column(db.String(32))
    total_owed = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    last_payment_date = db.Column(db.Date)
    last_payment_amount = db.Column(db.Numeric(10, 2))
    due_date = db.Column(db.Date)
    # Persisted copy of the derived status; refreshed on every mutation
    status = db.Column(db.String(16), nullable=False, default='current', index=True)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = db.relationship('Patient', back_populates='account')
    payments = db.relationship('PaymentRecord', backref='account', lazy='dynamic')
    calls = db.relationship('CallLog', backref='account', lazy='dynamic')


class PaymentRecord(db.Model):
    """A payment taken against an account. Never edited after insert."""
    __tablename__ = 'payment_records'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('customer_accounts.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    payment_method = db.Column(db.String(20), nullable=False, default='other')
    notes = db.Column(db.Text)
    recorded_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class CallLog(db.Model):
    """A phone call made to a patient about their account. Never edited after insert."""
    __tablename__ = 'call_logs'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('customer_accounts.id'), nullable=False, index=True)
    call_date = db.Column(db.Date, nullable=False)
    comments = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.String(255), nullable=False, default='Pharmacy Staff')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
