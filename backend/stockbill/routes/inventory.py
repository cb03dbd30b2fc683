# backend/stockbill/routes/inventory.py
"""Stock adjustment and movement history routes."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission, service_error
from ..errors import AppError
from ..services import inventory_service
from ..services.pagination import page_args
from ..validation import coerce_int, require_positive_int

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/adjust")
@require_auth
@require_permission("inventory.adjust")
def adjust_route():
    """
    Manual stock correction.

    Body: {product_id, quantity_delta (non-zero, signed), reason, reference?}
    """
    data = request.get_json(silent=True) or {}
    try:
        result = inventory_service.adjust_stock(
            g.authz,
            product_id=require_positive_int(data.get("product_id"), "product_id"),
            quantity_delta=coerce_int(data.get("quantity_delta"), "quantity_delta"),
            reason=data.get("reason"),
            reference=data.get("reference"),
        )
        return jsonify(result), 201
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
@require_auth
def movements_route():
    page, per_page = page_args(request.args)
    try:
        result = inventory_service.list_movements(
            g.authz,
            product_id=request.args.get("product_id", type=int),
            movement_type=request.args.get("type"),
            reference=request.args.get("reference"),
            branch=request.args.get("branch"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except AppError as e:
        return service_error(e)
