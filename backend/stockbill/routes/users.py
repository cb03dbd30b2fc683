# backend/stockbill/routes/users.py
"""
User management routes (admin only).

- GET    /api/users            list (search, branch, include_inactive)
- POST   /api/users            create with role, branch and permissions
- GET    /api/users/<id>       one account
- PUT    /api/users/<id>       edit account, role, grants or password
- DELETE /api/users/<id>       soft delete; admins cannot remove themselves
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth, service_error
from ..errors import AppError
from ..services import auth_service, permission_service

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _audit(event_type: str, action: str) -> None:
    permission_service.log_security_event(
        user_id=g.authz.user_id,
        event_type=event_type,
        success=True,
        resource=request.path,
        action=action,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        branch_id=g.authz.branch,
    )


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    users = auth_service.list_users(
        search=request.args.get("search"),
        branch_id=request.args.get("branch"),
        include_inactive=include_inactive,
    )
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.post("")
@require_auth
@require_admin
def create_user_route():
    """
    Request body:
    - email, name, password: required
    - role: admin | manager | user (default user)
    - branch_id: required for non-admin roles
    - permissions: optional list of codes (default: role defaults)
    """
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("password") or not data.get("name"):
        return jsonify({"error": "email, name and password required"}), 400

    try:
        user = auth_service.create_user(
            email=data["email"],
            name=data["name"],
            password=data["password"],
            role=data.get("role") or "user",
            branch_id=data.get("branch_id"),
            permissions=data.get("permissions"),
        )
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    _audit("USER_CREATED", f"Created user: {user.email}")
    return jsonify({"user": user.to_dict(), "message": "User created successfully"}), 201


@users_bp.get("/<int:user_id>")
@require_auth
@require_admin
def get_user_route(user_id: int):
    try:
        return jsonify({"user": auth_service.get_user(user_id).to_dict()}), 200
    except AppError as e:
        return service_error(e)


@users_bp.put("/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_user(user_id, data)
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to update user %s", user_id)
        return jsonify({"error": "Internal server error"}), 500

    if data.get("password"):
        _audit("PASSWORD_RESET", f"Reset password for user: {user.email}")
    return jsonify({"user": user.to_dict(), "message": "User updated successfully"}), 200


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def delete_user_route(user_id: int):
    try:
        user = auth_service.deactivate_user(user_id, actor_id=g.authz.user_id)
    except AppError as e:
        return service_error(e)

    _audit("USER_DEACTIVATED", f"Deactivated user: {user.email}")
    return jsonify({"message": "User deleted successfully", "user": user.to_dict()}), 200
