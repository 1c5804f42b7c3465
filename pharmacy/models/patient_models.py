from datetime import datetime
from pharmacy.extensions import db
from pharmacy.utils.encryption_util import encryptor

class Patient(db.Model):
    """Pharmacy patient. Address, Medicare number and allergies are stored encrypted."""
    __tablename__ = 'patients'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    dob = db.Column(db.Date)
    mrn = db.Column(db.String(64), unique=True, nullable=False, index=True)
    phone = db.Column(db.String(32))

    # --- Encrypted PII ---
    address = db.Column(db.String(1024))
    medicare = db.Column(db.String(512))
    allergies = db.Column(db.Text)

    notes = db.Column(db.Text)
    hospital_id = db.Column(db.Integer, db.ForeignKey('hospitals.id'))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    hospital = db.relationship('Hospital')
    discharge_forms = db.relationship('DischargeForm', back_populates='patient', lazy='dynamic',
                                      order_by='DischargeForm.discharge_timestamp.desc()')
    account = db.relationship('CustomerAccount', back_populates='patient', uselist=False)

    ENCRYPTED_FIELDS = ('address', 'medicare', 'allergies')

    @property
    def patient_type(self) -> str:
        return 'in-patient' if self.hospital_id else 'out-patient'

    def set_encrypted(self, **fields):
        for name, value in fields.items():
            if name not in self.ENCRYPTED_FIELDS:
                raise KeyError(name)
            setattr(self, name, encryptor.encrypt(value) if value else None)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'dob': self.dob.isoformat() if self.dob else None,
            'mrn': self.mrn,
            'phone': self.phone,
            'address': encryptor.decrypt(self.address),
            'medicare': encryptor.decrypt(self.medicare),
            'allergies': encryptor.decrypt(self.allergies),
            'notes': self.notes,
            'hospital_id': self.hospital_id,
            'hospital_name': self.hospital.name if self.hospital else None,
            'patient_type': self.patient_type,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
