# /pharmacy/api/routes.py

from flask_jwt_extended import jwt_required
from . import api_bp
from pharmacy.extensions import limiter
from pharmacy.utils.decorators import (
    audit_log, require_permission, require_role, hospital_selection_required
)
from .controllers import (
    auth_controller, user_controller, patient_controller,
    discharge_controller, account_controller, report_controller
)


# --- Authentication Endpoints ---
@api_bp.route('/auth/register', methods=['POST'])
@jwt_required(optional=True)
@limiter.limit("5 per hour")
@audit_log("USER_REGISTRATION", "users")
def register():
    return auth_controller.register_user()

@api_bp.route('/auth/login', methods=['POST'])
@limiter.limit("10 per minute")
@audit_log("USER_LOGIN", "authentication")
def login():
    return auth_controller.login_user()

@api_bp.route('/auth/logout', methods=['POST'])
@jwt_required()
@audit_log("USER_LOGOUT", "authentication")
def logout():
    return auth_controller.logout_user()

@api_bp.route('/auth/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    return auth_controller.refresh_token()

@api_bp.route('/auth/change-password', methods=['POST'])
@jwt_required()
@audit_log("PASSWORD_CHANGE", "authentication")
def change_password():
    return auth_controller.change_user_password()


# --- Current User & Hospital Selection ---
@api_bp.route('/users/me', methods=['GET'])
@jwt_required()
def get_current_user_route():
    return user_controller.get_current_user_details()

@api_bp.route('/hospitals', methods=['GET'])
@jwt_required()
def get_hospitals():
    return user_controller.get_hospitals()

@api_bp.route('/users/me/hospital', methods=['PUT'])
@jwt_required()
@audit_log("SELECT_HOSPITAL", "users")
def select_hospital():
    return user_controller.select_hospital()


# --- Admin Endpoints ---
@api_bp.route('/admin/users', methods=['GET'])
@jwt_required()
@audit_log("VIEW_ALL_USERS", "users")
@require_role('admin')
def get_users():
    return user_controller.get_all_users()

@api_bp.route('/admin/users/<int:user_id>/role', methods=['PUT'])
@jwt_required()
@audit_log("UPDATE_USER_ROLE", "users")
@require_role('admin')
def update_user_role(user_id):
    return user_controller.update_user_role(user_id)


# --- Patient Endpoints ---
@api_bp.route('/patients', methods=['GET'])
@jwt_required()
@audit_log("VIEW_ALL_PATIENTS", "patients")
@hospital_selection_required
@require_permission('patients', 'read')
def get_patients():
    return patient_controller.get_all_patients()

@api_bp.route('/patients', methods=['POST'])
@jwt_required()
@audit_log("SAVE_PATIENT", "patients")
@hospital_selection_required
@require_permission('patients', 'write')
def save_patient():
    return patient_controller.save_patient()

@api_bp.route('/patients/<int:patient_id>', methods=['GET'])
@jwt_required()
@audit_log("VIEW_PATIENT", "patients")
@hospital_selection_required
@require_permission('patients', 'read')
def get_patient(patient_id):
    return patient_controller.get_patient(patient_id)

@api_bp.route('/patients/<int:patient_id>', methods=['PUT'])
@jwt_required()
@audit_log("UPDATE_PATIENT", "patients")
@hospital_selection_required
@require_permission('patients', 'write')
def update_patient(patient_id):
    return patient_controller.update_patient(patient_id)

@api_bp.route('/patients/<int:patient_id>/notes', methods=['PUT'])
@jwt_required()
@audit_log("UPDATE_PATIENT_NOTES", "patients")
@hospital_selection_required
@require_permission('patients', 'write')
def save_patient_notes(patient_id):
    return patient_controller.save_patient_notes(patient_id)

@api_bp.route('/patients/<int:patient_id>/discharge-forms', methods=['GET'])
@jwt_required()
@audit_log("VIEW_PATIENT_DISCHARGE_FORMS", "discharge_forms")
@hospital_selection_required
@require_permission('discharge_forms', 'read')
def get_patient_discharge_forms(patient_id):
    return discharge_controller.get_patient_discharge_forms(patient_id)


# --- Discharge Medication Plans ---
@api_bp.route('/discharge-forms', methods=['POST'])
@jwt_required()
@audit_log("SUBMIT_DISCHARGE_FORM", "discharge_forms")
@hospital_selection_required
@require_permission('discharge_forms', 'write')
def submit_discharge_form():
    return discharge_controller.submit_discharge_form()

@api_bp.route('/discharge-forms', methods=['GET'])
@jwt_required()
@audit_log("VIEW_DISCHARGE_FORMS", "discharge_forms")
@hospital_selection_required
@require_permission('discharge_forms', 'read')
def get_discharge_forms():
    return discharge_controller.get_discharge_forms()

@api_bp.route('/discharge-forms/<int:form_id>', methods=['GET'])
@jwt_required()
@audit_log("VIEW_DISCHARGE_FORM", "discharge_forms")
@hospital_selection_required
@require_permission('discharge_forms', 'read')
def get_discharge_form(form_id):
    return discharge_controller.get_discharge_form(form_id)

@api_bp.route('/discharge-forms/<int:form_id>/status', methods=['PUT'])
@jwt_required()
@audit_log("UPDATE_DISCHARGE_FORM_STATUS", "discharge_forms")
@hospital_selection_required
@require_permission('discharge_forms', 'write')
def update_discharge_form_status(form_id):
    return discharge_controller.update_discharge_form_status(form_id)

@api_bp.route('/discharge-forms/<int:form_id>/medications.xlsx', methods=['GET'])
@jwt_required()
@audit_log("EXPORT_MEDICATIONS", "discharge_forms")
@hospital_selection_required
@require_permission('discharge_forms', 'read')
def export_discharge_medications(form_id):
    return discharge_controller.export_discharge_medications(form_id)


# --- Accounting Endpoints ---
@api_bp.route('/accounts', methods=['GET'])
@jwt_required()
@audit_log("VIEW_ACCOUNTS", "accounts")
@hospital_selection_required
@require_permission('accounts', 'read')
def get_accounts():
    return account_controller.get_accounts()

@api_bp.route('/accounts/overview', methods=['GET'])
@jwt_required()
@hospital_selection_required
@require_permission('accounts', 'read')
def get_accounts_overview():
    return account_controller.get_accounts_overview()

@api_bp.route('/payments/recent', methods=['GET'])
@jwt_required()
@hospital_selection_required
@require_permission('accounts', 'read')
def get_recent_payments():
    return account_controller.get_recent_payments()

@api_bp.route('/accounts/<int:account_id>', methods=['GET'])
@jwt_required()
@audit_log("VIEW_ACCOUNT", "accounts")
@hospital_selection_required
@require_permission('accounts', 'read')
def get_account(account_id):
    return account_controller.get_account(account_id)

@api_bp.route('/accounts/<int:account_id>/payments', methods=['GET'])
@jwt_required()
@audit_log("VIEW_PAYMENT_HISTORY", "accounts")
@hospital_selection_required
@require_permission('accounts', 'read')
def get_payment_history(account_id):
    return account_controller.get_payment_history(account_id)

@api_bp.route('/accounts/<int:account_id>/payments', methods=['POST'])
@jwt_required()
@audit_log("RECORD_PAYMENT", "accounts")
@hospital_selection_required
@require_permission('accounts', 'write')
def record_payment(account_id):
    return account_controller.record_payment(account_id)

@api_bp.route('/accounts/<int:account_id>/charges', methods=['POST'])
@jwt_required()
@audit_log("ADD_CHARGE", "accounts")
@hospital_selection_required
@require_permission('accounts', 'write')
def add_charge(account_id):
    return account_controller.add_charge(account_id)

@api_bp.route('/accounts/<int:account_id>/due-date', methods=['PUT'])
@jwt_required()
@audit_log("UPDATE_DUE_DATE", "accounts")
@hospital_selection_required
@require_permission('accounts', 'write')
def update_due_date(account_id):
    return account_controller.update_due_date(account_id)

@api_bp.route('/accounts/<int:account_id>/calls', methods=['GET'])
@jwt_required()
@audit_log("VIEW_CALL_HISTORY", "accounts")
@hospital_selection_required
@require_permission('accounts', 'read')
def get_call_history(account_id):
    return account_controller.get_call_history(account_id)

@api_bp.route('/accounts/<int:account_id>/calls', methods=['POST'])
@jwt_required()
@audit_log("ADD_CALL_LOG", "accounts")
@hospital_selection_required
@require_permission('accounts', 'write')
def add_call_log(account_id):
    return account_controller.add_call_log(account_id)

@api_bp.route('/accounts/<int:account_id>/complete', methods=['POST'])
@jwt_required()
@audit_log("MARK_ACCOUNT_PAID", "accounts")
@hospital_selection_required
@require_permission('accounts', 'write')
def mark_account_complete(account_id):
    return account_controller.mark_account_complete(account_id)

@api_bp.route('/accounts/<int:account_id>/payment-link', methods=['POST'])
@jwt_required()
@limiter.limit("20 per hour")
@audit_log("SEND_PAYMENT_LINK", "accounts")
@hospital_selection_required
@require_permission('accounts', 'write')
def send_payment_link(account_id):
    return account_controller.send_payment_link(account_id)


# --- Reports ---
@api_bp.route('/reports/accounts', methods=['POST'])
@jwt_required()
@audit_log("BUILD_ACCOUNTS_REPORT", "reports")
@hospital_selection_required
@require_permission('reports', 'read')
def get_accounts_report():
    return report_controller.get_accounts_report()

@api_bp.route('/reports/accounts.pdf', methods=['POST'])
@jwt_required()
@audit_log("EXPORT_ACCOUNTS_REPORT", "reports")
@hospital_selection_required
@require_permission('reports', 'read')
def export_accounts_report_pdf():
    return report_controller.export_accounts_report_pdf()

@api_bp.route('/accounts/<int:account_id>/report.pdf', methods=['POST'])
@jwt_required()
@audit_log("EXPORT_ACCOUNT_REPORT", "reports")
@hospital_selection_required
@require_permission('reports', 'read')
def export_account_report_pdf(account_id):
    return report_controller.export_account_report_pdf(account_id)
