"""Quotes blueprint: devis CRUD, lines, revisions, conversion and PDF."""
from flask import Blueprint, request, jsonify, send_file, current_app, g

from backoffice.database import get_session
from backoffice.middleware import require_login
from backoffice.decorators.permissions import require_permission
from backoffice.services.quote_service import (
    create_quote, update_quote, delete_quote, get_quote, list_quotes,
    add_quote_line, update_quote_line, remove_quote_line,
    create_quote_revision, list_quote_revisions
)
from backoffice.services.conversion_service import convert_quote_to_invoice
from backoffice.services.document_pdf_service import generate_quote_pdf, business_info_from_config
from backoffice.blueprints.metrics import documents_created_total, quote_conversions_total
from backoffice.utils.request_helpers import get_json_payload

quotes_bp = Blueprint('quotes', __name__, url_prefix='/quotes')


@quotes_bp.route('/', methods=['GET'])
@require_login
@require_permission('view_quotes')
def list_quotes_view():
    """List quotes. Filters: ?status=draft|sent|... and ?q=<text>."""
    db_session = get_session()
    quotes = list_quotes(
        db_session,
        status=request.args.get('status', '').strip() or None,
        search=request.args.get('q', '').strip() or None,
    )
    return jsonify({
        'status': 'success',
        'quotes': [quote.to_dict(include_lines=False) for quote in quotes]
    })


@quotes_bp.route('/', methods=['POST'])
@require_login
@require_permission('create_quotes')
def create_quote_view():
    """Create a draft quote."""
    db_session = get_session()
    config = current_app.config

    quote = create_quote(
        get_json_payload(),
        db_session,
        created_by=g.user_id,
        default_validity_days=config['QUOTE_VALID_DAYS'],
        default_country=config.get('DEFAULT_CLIENT_COUNTRY'),
        reference_attempts=config['REFERENCE_MAX_ATTEMPTS'],
    )
    documents_created_total.labels(kind='quote').inc()
    current_app.logger.info(f"Quote {quote.reference} created by user {g.user_id}")

    return jsonify({'status': 'success', 'quote': quote.to_dict()}), 201


@quotes_bp.route('/<int:quote_id>', methods=['GET'])
@require_login
@require_permission('view_quotes')
def get_quote_view(quote_id):
    quote = get_quote(quote_id, get_session())
    return jsonify({'status': 'success', 'quote': quote.to_dict()})


@quotes_bp.route('/<int:quote_id>', methods=['PUT'])
@require_login
@require_permission('edit_quotes')
def update_quote_view(quote_id):
    """Update header fields, replace lines and/or change status."""
    quote = update_quote(
        quote_id,
        get_json_payload(),
        get_session(),
        default_country=current_app.config.get('DEFAULT_CLIENT_COUNTRY'),
    )
    return jsonify({'status': 'success', 'quote': quote.to_dict()})


@quotes_bp.route('/<int:quote_id>', methods=['DELETE'])
@require_login
@require_permission('delete_quotes')
def delete_quote_view(quote_id):
    delete_quote(quote_id, get_session())
    current_app.logger.info(f"Quote {quote_id} deleted by user {g.user_id}")
    return jsonify({'status': 'success', 'message': 'Devis supprimé.'})


@quotes_bp.route('/<int:quote_id>/lines', methods=['POST'])
@require_login
@require_permission('edit_quotes')
def add_quote_line_view(quote_id):
    db_session = get_session()
    line = add_quote_line(quote_id, get_json_payload(), db_session)
    quote = get_quote(quote_id, db_session)
    return jsonify({'status': 'success', 'line': line.to_dict(), 'quote': quote.to_dict()}), 201


@quotes_bp.route('/<int:quote_id>/lines/<int:line_id>', methods=['PUT'])
@require_login
@require_permission('edit_quotes')
def update_quote_line_view(quote_id, line_id):
    db_session = get_session()
    line = update_quote_line(quote_id, line_id, get_json_payload(), db_session)
    quote = get_quote(quote_id, db_session)
    return jsonify({'status': 'success', 'line': line.to_dict(), 'quote': quote.to_dict()})


@quotes_bp.route('/<int:quote_id>/lines/<int:line_id>', methods=['DELETE'])
@require_login
@require_permission('edit_quotes')
def remove_quote_line_view(quote_id, line_id):
    quote = remove_quote_line(quote_id, line_id, get_session())
    return jsonify({'status': 'success', 'quote': quote.to_dict()})


@quotes_bp.route('/<int:quote_id>/convert-to-invoice', methods=['POST'])
@require_login
@require_permission('convert_quotes')
def convert_quote_view(quote_id):
    """
    Convert an accepted quote into an invoice.

    Returns 201 with the new invoice, or 200 with the invoice created by an
    earlier conversion of the same quote.
    """
    config = current_app.config
    invoice, created = convert_quote_to_invoice(
        quote_id,
        get_session(),
        tva_rate=config['TVA_RATE'],
        due_days=config['INVOICE_DUE_DAYS'],
        created_by=g.user_id,
        reference_attempts=config['REFERENCE_MAX_ATTEMPTS'],
    )
    quote_conversions_total.labels(outcome='created' if created else 'existing').inc()

    if created:
        documents_created_total.labels(kind='invoice').inc()
        current_app.logger.info(f"Quote {quote_id} converted to {invoice.reference} by user {g.user_id}")

    return jsonify({
        'status': 'success',
        'created': created,
        'invoice': invoice.to_dict()
    }), 201 if created else 200


@quotes_bp.route('/<int:quote_id>/revisions', methods=['POST'])
@require_login
@require_permission('create_quotes')
def create_revision_view(quote_id):
    """Copy a quote into a new lettered draft revision."""
    revision = create_quote_revision(quote_id, get_session(), created_by=g.user_id)
    documents_created_total.labels(kind='quote_revision').inc()
    return jsonify({'status': 'success', 'quote': revision.to_dict()}), 201


@quotes_bp.route('/<int:quote_id>/revisions', methods=['GET'])
@require_login
@require_permission('view_quotes')
def list_revisions_view(quote_id):
    quotes = list_quote_revisions(quote_id, get_session())
    return jsonify({
        'status': 'success',
        'quotes': [quote.to_dict(include_lines=False) for quote in quotes]
    })


@quotes_bp.route('/<int:quote_id>/pdf', methods=['GET'])
@require_login
@require_permission('view_quotes')
def quote_pdf_view(quote_id):
    """Download the quote as a PDF."""
    db_session = get_session()
    quote = get_quote(quote_id, db_session)
    pdf_buffer = generate_quote_pdf(quote_id, db_session, business_info_from_config(current_app.config))

    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"devis_{quote.reference}.pdf"
    )
