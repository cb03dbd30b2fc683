# backend/stockbill/routes/invoices.py
"""Invoice API routes with permission enforcement"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission, service_error
from ..errors import AppError
from ..qr import scan_product
from ..services import invoice_service, payment_service
from ..services.pagination import page_args

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")
billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


@invoices_bp.post("")
@require_auth
@require_permission("billing.create")
def create_invoice_route():
    """
    Create an invoice and decrement stock for every item.

    400: validation failure or insufficient stock (body names the product,
         available and requested quantities)
    403: missing billing.create
    """
    payload = request.get_json(silent=True)
    try:
        invoice = invoice_service.create_invoice(g.authz, payload if payload is not None else {})
        return jsonify({"invoice": invoice}), 201
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    page, per_page = page_args(request.args)
    try:
        result = invoice_service.list_invoices(
            g.authz,
            search=request.args.get("search"),
            status=request.args.get("status"),
            branch=request.args.get("branch"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except AppError as e:
        return service_error(e)


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        return jsonify({"invoice": invoice_service.get_invoice(g.authz, invoice_id)}), 200
    except AppError as e:
        return service_error(e)


@invoices_bp.post("/<int:invoice_id>/reconcile")
@require_auth
@require_permission("payments.create")
def reconcile_invoice_route(invoice_id: int):
    """Recompute payment status from all linked payments (idempotent)."""
    try:
        return jsonify({"balance": payment_service.reconcile_invoice(g.authz, invoice_id)}), 200
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to reconcile invoice")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.post("/qr-scan")
@require_auth
@require_permission("billing.create")
def qr_scan_route():
    """Resolve a scanned product QR payload to a sellable product."""
    data = request.get_json(silent=True) or {}
    try:
        product = scan_product(g.authz, data.get("qr_data"))
        return jsonify({"product": product.to_dict()}), 200
    except AppError as e:
        return service_error(e)
