# /pharmacy/services/patient_service.py
from flask import current_app
from pharmacy.extensions import db
from pharmacy.models.patient_models import Patient
from pharmacy.models.hospital_models import Hospital
from pharmacy.accounting.status_engine import parse_optional_date
from pharmacy.utils.phone_util import normalize_au_phone

PLAIN_FIELDS = ('name', 'phone', 'dob', 'hospital_id', 'notes')


def resolve_hospital(hospital_id=None, hospital_name=None):
    """Finds a hospital by id, or by name when only the name is known."""
    if hospital_id is not None:
        return db.session.get(Hospital, hospital_id)
    if hospital_name:
        return Hospital.query.filter(db.func.lower(Hospital.name) == hospital_name.strip().lower()).first()
    return None


def apply_patient_fields(patient: Patient, data: dict):
    """Copies the supplied fields onto a patient, encrypting PII. Absent keys are left alone."""
    if 'name' in data:
        if not (data['name'] or '').strip():
            raise ValueError('name must not be empty')
        patient.name = data['name'].strip()
    if 'dob' in data:
        patient.dob = parse_optional_date(data['dob'], 'dob')
    if 'phone' in data:
        patient.phone = normalize_au_phone(data['phone'])
    if 'hospital_id' in data:
        if data['hospital_id'] is not None and resolve_hospital(hospital_id=data['hospital_id']) is None:
            raise LookupError('Hospital not found')
        patient.hospital_id = data['hospital_id']
    if 'notes' in data:
        patient.notes = data['notes']

    encrypted = {k: data[k] for k in Patient.ENCRYPTED_FIELDS if k in data}
    if encrypted:
        patient.set_encrypted(**encrypted)


def upsert_patient(data: dict):
    """
    Creates the patient with this MRN, or updates the existing one.

    Returns ``(patient, created)``. Staged on the session only.
    """
    mrn = (data.get('mrn') or '').strip()
    if not mrn:
        raise ValueError('mrn is required')

    patient = Patient.query.filter_by(mrn=mrn).first()
    created = patient is None
    if created:
        if not (data.get('name') or '').strip():
            raise ValueError('name is required')
        patient = Patient(mrn=mrn)
        db.session.add(patient)

    apply_patient_fields(patient, data)
    current_app.logger.info(f"Patient {'created' if created else 'updated'} for MRN {mrn}")
    return patient, created
