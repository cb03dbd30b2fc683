# backend/stockbill/routes/products.py
"""
Product management routes with branch scoping.

SECURITY: All routes require authentication.
- Reads need only a verified identity; results are branch-scoped
- Writes require products.create / products.update / products.delete
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission, service_error
from ..errors import AppError
from ..qr import build_product_payload
from ..services import products_service
from ..services.pagination import page_args

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List active products.

    Query params:
    - branch: admins only; ignored for everyone else
    - category, search, sort_by, sort_order
    - page, limit (default 20, max 100)
    """
    page, per_page = page_args(request.args)
    try:
        result = products_service.list_products(
            g.authz,
            branch=request.args.get("branch"),
            category=request.args.get("category"),
            search=request.args.get("search"),
            sort_by=request.args.get("sort_by"),
            sort_order=request.args.get("sort_order"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except AppError as e:
        return service_error(e)


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(g.authz, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except AppError as e:
        return service_error(e)


@products_bp.get("/<int:product_id>/qr")
@require_auth
def product_qr_route(product_id: int):
    """QR payload for a shelf label (the client renders the image)."""
    try:
        product = products_service.get_product(g.authz, product_id)
        return jsonify({"product_id": product.id, "qr_data": build_product_payload(product)}), 200
    except AppError as e:
        return service_error(e)


@products_bp.post("")
@require_auth
@require_permission("products.create")
def create_product_route():
    payload = request.get_json(silent=True)
    try:
        created = products_service.create_product(g.authz, payload if payload is not None else {})
        return jsonify({"product": created}), 201
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("products.update")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True)
    try:
        updated = products_service.update_product(g.authz, product_id, payload if payload is not None else {})
        return jsonify({"product": updated}), 200
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("products.delete")
def delete_product_route(product_id: int):
    """Soft delete (is_active=false)."""
    try:
        products_service.delete_product(g.authz, product_id)
        return jsonify({"ok": True}), 200
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
