# /pharmacy/utils/sms_util.py
from decimal import Decimal
from urllib.parse import quote
from flask import current_app

def build_payment_link(patient_name: str) -> str:
    base_url = current_app.config['PAYMENT_LINK_BASE_URL']
    bill_name = quote(patient_name, safe="-_.!~*'()")
    return f"{base_url}?&bill_name={bill_name}"

def compose_payment_message(patient_name: str, total_owed: Decimal) -> str:
    """Default text for the payment-link SMS."""
    return (
        f"Hi {patient_name},\n\n"
        f"Your outstanding balance is ${Decimal(total_owed):.2f}. "
        f"Please use this secure link to make a payment: {build_payment_link(patient_name)}\n\n"
        f"Thank you,\n{current_app.config['PHARMACY_NAME']}"
    )

def send_sms(recipient_phone: str, message: str) -> dict:
    """
    Hands a message to the SMS gateway.

    No gateway is wired up, so the message is written to the application log
    and reported as sent.
    """
    if not recipient_phone:
        current_app.logger.error("No recipient phone number. SMS not sent.")
        return {'success': False, 'error': 'Recipient phone number is required'}

    current_app.logger.info(f"SMS to {recipient_phone}: {message}")
    return {'success': True, 'message': 'SMS queued for delivery (simulated)'}
