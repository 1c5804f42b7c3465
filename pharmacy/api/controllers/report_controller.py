import io
from datetime import datetime
from flask import request, jsonify, send_file, current_app
from pharmacy.extensions import db
from pharmacy.models.accounting_models import CustomerAccount
from pharmacy.accounting.report_aggregator import build_report, build_account_report
from pharmacy.accounting.schemas import (
    AccountContentOptions,
    ReportBucket,
    ReportFilterCriteria,
    ReportOptions,
)
from pharmacy.reports.pdf_builder import (
    AccountReportPDF,
    account_report_filename,
    bulk_report_filename,
)
from pharmacy.services import account_service


def _pdf_builder():
    return AccountReportPDF(current_app.config['PHARMACY_NAME'], current_app.config['PHARMACY_ADDRESS'])


def _pdf_response(content, filename):
    return send_file(
        io.BytesIO(content),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=filename
    )


def _build_bulk_report():
    """
    Reads a bulk report request and builds the report model.

    Body: ``report_type`` (overdue / current / all), optional ``filters``,
    ``options``, ``account_options`` and ``account_ids``. Returns
    ``(report, None)`` or ``(None, error_response)``.
    """
    data = request.get_json(silent=True) or {}
    report_type = data.get('report_type', ReportBucket.ALL.value)
    if report_type not in {b.value for b in ReportBucket}:
        return None, (jsonify({'error': 'report_type must be one of overdue, current, all'}), 400)

    filters = {k: v for k, v in (data.get('filters') or {}).items() if k != 'bucket'}
    criteria = ReportFilterCriteria.for_bucket(report_type, **filters)
    options = ReportOptions.model_validate(data.get('options') or {})
    account_options = None
    if data.get('account_options') is not None:
        account_options = AccountContentOptions.model_validate(data['account_options'])

    account_ids = data.get('account_ids')
    if account_ids is not None and not isinstance(account_ids, list):
        return None, (jsonify({'error': 'account_ids must be a list'}), 400)

    clock = account_service.get_clock()
    snapshots = account_service.load_snapshots(account_ids=account_ids)
    report = build_report(
        snapshots, criteria, options, clock.today(),
        account_options=account_options,
        term_days=account_service.get_term_days(),
    )
    return report, None


def get_accounts_report():
    """Bulk report as JSON. An empty result is still a 200 with is_empty set."""
    report, error = _build_bulk_report()
    if error:
        return error
    return jsonify({**report.model_dump(mode='json'), 'is_empty': report.is_empty}), 200


def export_accounts_report_pdf():
    report, error = _build_bulk_report()
    if error:
        return error
    if report.is_empty:
        return jsonify({'error': f"No accounts matched the {report.report_type.value} report filters"}), 404

    clock = account_service.get_clock()
    content = _pdf_builder().build_bulk(report, datetime.now(clock.tz))
    current_app.logger.info(f"Exported {report.report_type.value} accounts PDF with {len(report.accounts)} accounts")
    return _pdf_response(content, bulk_report_filename(report.report_type, len(report.accounts), report.generated_on))


def export_account_report_pdf(account_id):
    account = db.session.get(CustomerAccount, account_id)
    if not account:
        return jsonify({'error': 'Account not found'}), 404

    options = AccountContentOptions.model_validate(request.get_json(silent=True) or {})
    clock = account_service.get_clock()
    report = build_account_report(
        account_service.load_snapshot(account), options, clock.today(),
        term_days=account_service.get_term_days(),
    )
    content = _pdf_builder().build_account(report, datetime.now(clock.tz))
    return _pdf_response(content, account_report_filename(account.patient_name, report.generated_on))
