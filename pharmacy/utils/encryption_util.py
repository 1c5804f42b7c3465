# /pharmacy/utils/encryption_util.py
from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

class Encryptor:
    """
    Field-level encryption for patient and user PII.
    Initialized with the Flask app so the key comes from PATIENT_ENCRYPTION_KEY.
    """
    def __init__(self, app=None):
        self.fernet = None
        if app:
            self.init_app(app)

    def init_app(self, app):
        key = app.config.get('PATIENT_ENCRYPTION_KEY')
        if not key:
            raise ValueError("PATIENT_ENCRYPTION_KEY not set in the Flask application config.")

        self.fernet = Fernet(key.encode() if isinstance(key, str) else key)

    def encrypt(self, data) -> str | None:
        """Encrypts a value, passing None and empty strings through untouched."""
        if self.fernet is None:
            raise RuntimeError("Encryptor has not been initialized with an app context.")

        if data is None or data == "":
            return data

        if not isinstance(data, str):
            data = str(data)

        return self.fernet.encrypt(data.encode('utf-8')).decode('utf-8')

    def decrypt(self, token: str) -> str | None:
        if self.fernet is None:
            raise RuntimeError("Encryptor has not been initialized with an app context.")

        if not token:
            return None

        try:
            return self.fernet.decrypt(token.encode('utf-8')).decode('utf-8')
        except InvalidToken:
            current_app.logger.error("Decryption failed: Invalid token provided.")
            return None

# Single uninitialized instance shared by models and controllers
encryptor = Encryptor()
