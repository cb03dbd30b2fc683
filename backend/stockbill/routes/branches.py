# backend/stockbill/routes/branches.py
"""
Branch routes.

Any authenticated user can list or fetch the branches they can see
(admins: all, others: their own). Only admins create, edit or deactivate
branches. Deactivation is a soft delete: the branch keeps its records but
accepts no new writes.
"""

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import IntegrityError

from ..decorators import require_admin, require_auth
from ..extensions import db
from ..models import Branch

branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")

BRANCH_FIELDS = ("name", "address", "phone", "email", "manager")


def _clean(data: dict) -> dict:
    cleaned = {}
    for key in BRANCH_FIELDS:
        if key in data:
            value = data[key]
            cleaned[key] = str(value).strip() if value is not None else None
    return cleaned


@branches_bp.get("")
@require_auth
def list_branches_route():
    query = db.session.query(Branch).order_by(Branch.name.asc())
    if not g.authz.can_admin():
        query = query.filter(Branch.id == g.authz.branch)
    branches = query.all()
    return jsonify({"items": [b.to_dict() for b in branches], "count": len(branches)}), 200


@branches_bp.get("/<branch_id>")
@require_auth
def get_branch_route(branch_id: str):
    branch = db.session.get(Branch, branch_id)
    if branch is None or not g.authz.can_access_branch(branch.id):
        return jsonify({"error": "Branch not found"}), 404
    return jsonify({"branch": branch.to_dict()}), 200

@branches_bp.post("")
@require_auth
@require_admin
def create_branch_route():
    data = request.get_json(silent=True) or {}
    fields = _clean(data)
    if not fields.get("name"):
        return jsonify({"error": "name is required"}), 400

    branch_id = data.get("id")
    branch = Branch(**fields)
    if branch_id:
        branch.id = str(branch_id).strip()

    try:
        db.session.add(branch)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "Branch already exists"}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create branch")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"branch": branch.to_dict()}), 201


@branches_bp.put("/<branch_id>")
@require_auth
@require_admin
def update_branch_route(branch_id: str):
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        return jsonify({"error": "Branch not found"}), 404

    data = request.get_json(silent=True) or {}
    fields = _clean(data)
    if "name" in fields and not fields["name"]:
        return jsonify({"error": "name cannot be blank"}), 400
    for key, value in fields.items():
        setattr(branch, key, value)
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            return jsonify({"error": "is_active must be a boolean"}), 400
        branch.is_active = data["is_active"]

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "Branch name already exists"}), 409

    return jsonify({"branch": branch.to_dict()}), 200


@branches_bp.delete("/<branch_id>")
@require_auth
@require_admin
def deactivate_branch_route(branch_id: str):
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        return jsonify({"error": "Branch not found"}), 404

    branch.is_active = False
    db.session.commit()
    return jsonify({"message": "Branch deactivated", "branch": branch.to_dict()}), 200
