from pharmacy.models.user_models import User, Role, Permission
from pharmacy.models.system_models import AuditLog, RevokedToken
from pharmacy.models.hospital_models import Hospital
from pharmacy.models.patient_models import Patient
from pharmacy.models.discharge_models import DischargeForm
from pharmacy.models.accounting_models import CustomerAccount, PaymentRecord, CallLog
