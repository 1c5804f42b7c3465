from flask import request, jsonify
from sqlalchemy.exc import IntegrityError
from pharmacy.extensions import db
from pharmacy.models.patient_models import Patient
from pharmacy.accounting.report_aggregator import name_sort_key
from pharmacy.services.patient_service import upsert_patient, apply_patient_fields


def get_all_patients():
    """All patients ordered by name. Optional ?hospital_id= filter."""
    query = Patient.query
    hospital_id = request.args.get('hospital_id', type=int)
    if hospital_id is not None:
        query = query.filter_by(hospital_id=hospital_id)
    patients = sorted(query.all(), key=lambda p: name_sort_key(p.name))
    return jsonify({'patients': [p.to_dict() for p in patients]}), 200


def get_patient(patient_id):
    patient = db.session.get(Patient, patient_id)
    if not patient:
        return jsonify({'error': 'Patient not found'}), 404
    return jsonify(patient.to_dict()), 200


def save_patient():
    """Creates a patient, or updates the one with the same MRN."""
    data = request.get_json(silent=True) or {}
    try:
        patient, created = upsert_patient(data)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except LookupError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 404
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'A patient with this MRN already exists'}), 409

    return jsonify({
        'message': 'Patient created successfully' if created else 'Patient updated successfully',
        'patient': patient.to_dict()
    }), 201 if created else 200


def update_patient(patient_id):
    patient = db.session.get(Patient, patient_id)
    if not patient:
        return jsonify({'error': 'Patient not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'mrn' in data and data['mrn'] != patient.mrn:
        if Patient.query.filter_by(mrn=data['mrn']).first():
            return jsonify({'error': 'A patient with this MRN already exists'}), 409
        patient.mrn = data['mrn']

    try:
        apply_patient_fields(patient, data)
        # Keep the account's copy of the contact details in step
        if patient.account is not None:
            patient.account.patient_name = patient.name
            patient.account.mrn = patient.mrn
            patient.account.phone = patient.phone
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except LookupError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 404

    return jsonify({'message': 'Patient updated successfully', 'patient': patient.to_dict()}), 200


def save_patient_notes(patient_id):
    patient = db.session.get(Patient, patient_id)
    if not patient:
        return jsonify({'error': 'Patient not found'}), 404

    data = request.get_json(silent=True) or {}
    if 'notes' not in data:
        return jsonify({'error': 'notes is required'}), 400

    patient.notes = data['notes']
    db.session.commit()
    return jsonify({'message': 'Notes saved successfully', 'notes': patient.notes}), 200
