"""Payments blueprint: ledger listing and payment deletion."""
from flask import Blueprint, request, jsonify, current_app, g

from backoffice.database import get_session
from backoffice.middleware import require_login
from backoffice.decorators.permissions import require_permission
from backoffice.services.payment_service import delete_payment, list_payments
from backoffice.blueprints.metrics import payments_deleted_total

payments_bp = Blueprint('payments', __name__, url_prefix='/payments')


@payments_bp.route('/', methods=['GET'])
@require_login
@require_permission('view_payments')
def list_payments_view():
    """List payments, optionally for one invoice (?invoice_id=)."""
    payments = list_payments(get_session(), invoice_id=request.args.get('invoice_id', type=int))
    return jsonify({
        'status': 'success',
        'payments': [payment.to_dict() for payment in payments]
    })


@payments_bp.route('/<int:payment_id>', methods=['DELETE'])
@require_login
@require_permission('delete_payments')
def delete_payment_view(payment_id):
    """Delete a payment; responds with the recomputed invoice."""
    invoice = delete_payment(payment_id, get_session())
    payments_deleted_total.inc()
    current_app.logger.info(f"Payment {payment_id} deleted by user {g.user_id}")

    return jsonify({
        'status': 'success',
        'invoice': invoice.to_dict(include_lines=False)
    })
