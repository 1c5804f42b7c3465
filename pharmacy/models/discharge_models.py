from datetime import datetime
from pharmacy.extensions import db
from pharmacy.utils.encryption_util import encryptor

TEMPLATE_TYPES = ('before-admission', 'after-admission', 'new', 'hospital-specific')
FORM_STATUSES = ('active', 'archived', 'draft')

class DischargeForm(db.Model):
    """A discharge medication plan.

    Patient details are copied onto the form when it is submitted so the plan
    still reads as it was signed even after the patient record changes.
    """
    __tablename__ = 'discharge_forms'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)

    # --- Patient snapshot (address, medicare, allergies encrypted) ---
    name = db.Column(db.String(255), nullable=False)
    mrn = db.Column(db.String(64), nullable=False)
    dob = db.Column(db.Date)
    phone = db.Column(db.String(32))
    address = db.Column(db.String(1024))
    medicare = db.Column(db.String(512))
    allergies = db.Column(db.Text)

    # --- After-admission / default template ---
    admission_date = db.Column(db.Date)
    discharge_date = db.Column(db.Date)
    pharmacist = db.Column(db.String(255))
    date_list_prepared = db.Column(db.Date)

    # --- Before-admission template ---
    concession = db.Column(db.String(255))
    health_fund = db.Column(db.String(255))
    reason_for_admission = db.Column(db.Text)
    relevant_past_medical_history = db.Column(db.Text)
    community_pharmacist = db.Column(db.String(255))
    general_practitioner = db.Column(db.String(255))
    medication_risks_comments = db.Column(db.Text)
    sources_of_history = db.Column(db.Text)
    pharmacist_signature = db.Column(db.String(255))
    date_time_signed = db.Column(db.DateTime)

    template_type = db.Column(db.String(32), nullable=False, default='after-admission')
    hospital_name = db.Column(db.String(255))
    hospital_id = db.Column(db.Integer, db.ForeignKey('hospitals.id'))
    medications = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(16), nullable=False, default='active')
    discharge_timestamp = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = db.relationship('Patient', back_populates='discharge_forms')
    hospital = db.relationship('Hospital')

    def to_dict(self):
        def iso(value):
            return value.isoformat() if value else None

        return {
            'id': self.id,
            'patient_id': self.patient_id,
            'name': self.name,
            'mrn': self.mrn,
            'dob': iso(self.dob),
            'phone': self.phone,
            'address': encryptor.decrypt(self.address),
            'medicare': encryptor.decrypt(self.medicare),
            'allergies': encryptor.decrypt(self.allergies),
            'admission_date': iso(self.admission_date),
            'discharge_date': iso(self.discharge_date),
            'pharmacist': self.pharmacist,
            'date_list_prepared': iso(self.date_list_prepared),
            'concession': self.concession,
            'health_fund': self.health_fund,
            'reason_for_admission': self.reason_for_admission,
            'relevant_past_medical_history': self.relevant_past_medical_history,
            'community_pharmacist': self.community_pharmacist,
            'general_practitioner': self.general_practitioner,
            'medication_risks_comments': self.medication_risks_comments,
            'sources_of_history': self.sources_of_history,
            'pharmacist_signature': self.pharmacist_signature,
            'date_time_signed': iso(self.date_time_signed),
            'template_type': self.template_type,
            'hospital_name': self.hospital_name,
            'hospital_id': self.hospital_id,
            'medications': self.medications or [],
            'status': self.status,
            'discharge_timestamp': iso(self.discharge_timestamp),
        }
