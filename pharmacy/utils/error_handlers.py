# /pharmacy/utils/error_handlers.py
from flask import jsonify, current_app
from pydantic import ValidationError
from pharmacy.extensions import db
from pharmacy.accounting.status_engine import InvalidDateError, InvalidAmountError
from pharmacy.accounting.report_aggregator import ReportValidationError

def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def validation_error(error):
        db.session.rollback()
        details = error.errors(include_url=False, include_context=False, include_input=False)
        return jsonify({'error': 'Validation failed', 'details': details}), 400

    @app.errorhandler(InvalidDateError)
    @app.errorhandler(InvalidAmountError)
    @app.errorhandler(ReportValidationError)
    def bad_value(error):
        db.session.rollback()
        return jsonify({'error': str(error)}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(429)
    def rate_limited(error):
        return jsonify({'error': 'Too many requests', 'details': str(error.description)}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        current_app.audit_logger.error(f"Internal server error: {str(error)}")
        return jsonify({'error': 'Internal server error'}), 500
