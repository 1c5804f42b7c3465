import io
from datetime import datetime, timezone
from flask import request, jsonify, send_file, current_app
from pharmacy.extensions import db
from pharmacy.models.discharge_models import DischargeForm, TEMPLATE_TYPES, FORM_STATUSES
from pharmacy.models.patient_models import Patient
from pharmacy.accounting.status_engine import parse_optional_date, InvalidDateError
from pharmacy.services.patient_service import upsert_patient, resolve_hospital
from pharmacy.services.account_service import open_account_for
from pharmacy.reports.medication_export import export_medications, medication_export_filename

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

# Request key -> column, for free-text form fields
TEXT_FIELDS = (
    'pharmacist', 'concession', 'health_fund', 'reason_for_admission',
    'relevant_past_medical_history', 'community_pharmacist', 'general_practitioner',
    'medication_risks_comments', 'sources_of_history', 'pharmacist_signature',
)
DATE_FIELDS = ('admission_date', 'discharge_date', 'date_list_prepared')


def _parse_signed_at(value):
    if not value:
        return None
    try:
        signed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError as e:
        raise InvalidDateError(f"Invalid date_time_signed: {value!r}") from e
    if signed.tzinfo is not None:
        signed = signed.astimezone(timezone.utc).replace(tzinfo=None)
    return signed


def submit_discharge_form():
    """
    Saves a discharge medication plan.

    The patient is created or updated by MRN, the form is stored with a copy
    of the patient's details, and the patient gets a zero-balance account if
    they do not already have one. All of it commits together.
    """
    data = request.get_json(silent=True) or {}
    template_type = data.get('template_type', 'after-admission')
    if template_type not in TEMPLATE_TYPES:
        return jsonify({'error': f"template_type must be one of {', '.join(TEMPLATE_TYPES)}"}), 400

    medications = data.get('medications') or []
    if not isinstance(medications, list) or any(not isinstance(m, dict) or not m.get('name') for m in medications):
        return jsonify({'error': 'medications must be a list of objects with a name'}), 400

    status = data.get('status', 'active')
    if status not in FORM_STATUSES:
        return jsonify({'error': f"status must be one of {', '.join(FORM_STATUSES)}"}), 400

    hospital = resolve_hospital(hospital_name=data.get('hospital_name'))

    try:
        patient_fields = {k: data[k] for k in ('name', 'mrn', 'dob', 'address', 'medicare', 'allergies', 'phone') if k in data}
        patient, patient_created = upsert_patient(patient_fields)
        if hospital is not None and patient.hospital_id is None:
            patient.hospital_id = hospital.id

        form = DischargeForm(
            patient=patient,
            name=patient.name,
            mrn=patient.mrn,
            dob=patient.dob,
            phone=patient.phone,
            address=patient.address,
            medicare=patient.medicare,
            allergies=patient.allergies,
            date_time_signed=_parse_signed_at(data.get('date_time_signed')),
            template_type=template_type,
            hospital_name=data.get('hospital_name') or None,
            hospital_id=hospital.id if hospital else None,
            medications=medications,
            status=status,
            discharge_timestamp=datetime.utcnow(),
        )
        for field in TEXT_FIELDS:
            setattr(form, field, data.get(field) or None)
        for field in DATE_FIELDS:
            setattr(form, field, parse_optional_date(data.get(field), field))
        db.session.add(form)

        account = open_account_for(patient)
        db.session.commit()
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except LookupError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 404
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to save discharge form: {e}")
        raise

    current_app.logger.info(f"Discharge form {form.id} saved for patient {patient.id}")
    return jsonify({
        'message': 'Discharge form saved successfully',
        'discharge_form_id': form.id,
        'patient_id': patient.id,
        'patient_created': patient_created,
        'customer_account_id': account.id,
        'hospital_id': form.hospital_id,
    }), 201


def get_discharge_forms():
    """Forms newest first, optionally filtered by ?status= and ?hospital_id=."""
    query = DischargeForm.query
    status = request.args.get('status')
    if status:
        if status not in FORM_STATUSES:
            return jsonify({'error': f"status must be one of {', '.join(FORM_STATUSES)}"}), 400
        query = query.filter_by(status=status)
    hospital_id = request.args.get('hospital_id', type=int)
    if hospital_id is not None:
        query = query.filter_by(hospital_id=hospital_id)

    forms = query.order_by(DischargeForm.discharge_timestamp.desc(), DischargeForm.id.desc()).all()
    return jsonify({'discharge_forms': [f.to_dict() for f in forms]}), 200


def get_discharge_form(form_id):
    form = db.session.get(DischargeForm, form_id)
    if not form:
        return jsonify({'error': 'Discharge form not found'}), 404
    return jsonify(form.to_dict()), 200


def get_patient_discharge_forms(patient_id):
    patient = db.session.get(Patient, patient_id)
    if not patient:
        return jsonify({'error': 'Patient not found'}), 404
    forms = patient.discharge_forms.all()
    return jsonify({'discharge_forms': [f.to_dict() for f in forms]}), 200


def update_discharge_form_status(form_id):
    form = db.session.get(DischargeForm, form_id)
    if not form:
        return jsonify({'error': 'Discharge form not found'}), 404

    status = (request.get_json(silent=True) or {}).get('status')
    if status not in FORM_STATUSES:
        return jsonify({'error': f"status must be one of {', '.join(FORM_STATUSES)}"}), 400

    form.status = status
    db.session.commit()
    return jsonify({'message': 'Status updated', 'discharge_form': form.to_dict()}), 200


def export_discharge_medications(form_id):
    """Downloads the form's medication list as an Excel sheet."""
    form = db.session.get(DischargeForm, form_id)
    if not form:
        return jsonify({'error': 'Discharge form not found'}), 404

    content = export_medications(form.medications, form.template_type)
    return send_file(
        io.BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=medication_export_filename(form.name, form.template_type)
    )
