"""Invoices blueprint: factures, their payments and PDF."""
from flask import Blueprint, request, jsonify, send_file, current_app, g

from backoffice.database import get_session
from backoffice.middleware import require_login
from backoffice.decorators.permissions import require_permission
from backoffice.services.invoice_service import (
    create_invoice, update_invoice, delete_invoice, get_invoice, list_invoices
)
from backoffice.services.payment_service import record_payment, list_payments
from backoffice.services.document_pdf_service import generate_invoice_pdf, business_info_from_config
from backoffice.blueprints.metrics import (
    documents_created_total, payments_recorded_total, payments_amount_total
)
from backoffice.utils.request_helpers import get_json_payload

invoices_bp = Blueprint('invoices', __name__, url_prefix='/invoices')


@invoices_bp.route('/', methods=['GET'])
@require_login
@require_permission('view_invoices')
def list_invoices_view():
    """List invoices. Filters: ?status=... and ?q=<text>; ?overdue=1 keeps overdue ones."""
    db_session = get_session()
    invoices = list_invoices(
        db_session,
        status=request.args.get('status', '').strip() or None,
        search=request.args.get('q', '').strip() or None,
    )
    if request.args.get('overdue', type=int):
        invoices = [invoice for invoice in invoices if invoice.is_overdue()]

    return jsonify({
        'status': 'success',
        'invoices': [invoice.to_dict(include_lines=False, include_payments=False) for invoice in invoices]
    })


@invoices_bp.route('/', methods=['POST'])
@require_login
@require_permission('create_invoices')
def create_invoice_view():
    """Create a draft invoice without going through a quote."""
    config = current_app.config
    invoice = create_invoice(
        get_json_payload(),
        get_session(),
        tva_rate=config['TVA_RATE'],
        created_by=g.user_id,
        due_days=config['INVOICE_DUE_DAYS'],
        default_country=config.get('DEFAULT_CLIENT_COUNTRY'),
        reference_attempts=config['REFERENCE_MAX_ATTEMPTS'],
    )
    documents_created_total.labels(kind='invoice').inc()
    current_app.logger.info(f"Invoice {invoice.reference} created by user {g.user_id}")

    return jsonify({'status': 'success', 'invoice': invoice.to_dict()}), 201


@invoices_bp.route('/<int:invoice_id>', methods=['GET'])
@require_login
@require_permission('view_invoices')
def get_invoice_view(invoice_id):
    invoice = get_invoice(invoice_id, get_session())
    return jsonify({'status': 'success', 'invoice': invoice.to_dict()})


@invoices_bp.route('/<int:invoice_id>', methods=['PUT'])
@require_login
@require_permission('edit_invoices')
def update_invoice_view(invoice_id):
    """Update header fields, draft lines or the explicit status (sent, cancelled)."""
    invoice = update_invoice(invoice_id, get_json_payload(), get_session())
    return jsonify({'status': 'success', 'invoice': invoice.to_dict()})


@invoices_bp.route('/<int:invoice_id>', methods=['DELETE'])
@require_login
@require_permission('delete_invoices')
def delete_invoice_view(invoice_id):
    delete_invoice(invoice_id, get_session())
    current_app.logger.info(f"Invoice {invoice_id} deleted by user {g.user_id}")
    return jsonify({'status': 'success', 'message': 'Facture supprimée.'})


@invoices_bp.route('/<int:invoice_id>/payments', methods=['GET'])
@require_login
@require_permission('view_payments')
def list_invoice_payments_view(invoice_id):
    payments = list_payments(get_session(), invoice_id=invoice_id)
    return jsonify({
        'status': 'success',
        'payments': [payment.to_dict() for payment in payments]
    })


@invoices_bp.route('/<int:invoice_id>/payments', methods=['POST'])
@require_login
@require_permission('pay_invoices')
def record_payment_view(invoice_id):
    """Record a payment; responds with the payment and the recomputed invoice."""
    db_session = get_session()
    payment = record_payment(
        invoice_id,
        get_json_payload(),
        db_session,
        created_by=g.user_id,
        reference_attempts=current_app.config['REFERENCE_MAX_ATTEMPTS'],
    )
    payments_recorded_total.inc()
    payments_amount_total.inc(payment.amount)

    invoice = get_invoice(invoice_id, db_session)
    return jsonify({
        'status': 'success',
        'payment': payment.to_dict(),
        'invoice': invoice.to_dict(include_lines=False)
    }), 201


@invoices_bp.route('/<int:invoice_id>/pdf', methods=['GET'])
@require_login
@require_permission('view_invoices')
def invoice_pdf_view(invoice_id):
    """Download the invoice as a PDF."""
    db_session = get_session()
    invoice = get_invoice(invoice_id, db_session)
    pdf_buffer = generate_invoice_pdf(invoice_id, db_session, business_info_from_config(current_app.config))

    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"facture_{invoice.reference}.pdf"
    )
