# backend/stockbill/routes/payments.py
"""Payment API routes."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission, service_error
from ..errors import AppError
from ..services import payment_service
from ..services.pagination import page_args

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_auth
@require_permission("payments.create")
def record_payment_route():
    """
    Record a credit or debit payment.

    Body: {amount_cents, payment_method, payment_type, description,
           invoice_id?, customer?, reference?, notes?, branch?}
    When invoice_id is given, the invoice's payment_status is reconciled
    and returned as invoice_payment_status.
    """
    payload = request.get_json(silent=True)
    try:
        payment = payment_service.record_payment(g.authz, payload if payload is not None else {})
        return jsonify({"payment": payment}), 201
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("")
@require_auth
def list_payments_route():
    page, per_page = page_args(request.args)
    try:
        result = payment_service.list_payments(
            g.authz,
            invoice_id=request.args.get("invoice_id", type=int),
            payment_type=request.args.get("payment_type"),
            payment_method=request.args.get("payment_method"),
            branch=request.args.get("branch"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except AppError as e:
        return service_error(e)
