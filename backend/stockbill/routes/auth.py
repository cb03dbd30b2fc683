# backend/stockbill/routes/auth.py
"""
Authentication API routes

- POST /api/auth/login issues a signed token (also set as the auth-token
  cookie for browser clients)
- POST /api/auth/logout clears the cookie (tokens are stateless and simply
  expire)
- POST /api/auth/register signs up a counter user in an active branch
- GET  /api/auth/me returns the verified identity
- PUT  /api/auth/profile updates the caller's name, email or password
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, service_error
from ..errors import AppError
from ..services import auth_service, permission_service, session_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _with_auth_cookie(response, token: str):
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        token,
        max_age=current_app.config["JWT_EXPIRES_MINUTES"] * 60,
        httponly=True,
        secure=not current_app.debug and not current_app.testing,
        samesite="Lax",
    )
    return response


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by email + password.

    Unknown email, wrong password and inactive accounts all answer the same
    401 so the endpoint does not reveal which emails exist.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not email or not password:
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                action="LOGIN",
                reason=f"Invalid credentials for {str(email).strip().lower()}",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )
            return jsonify({"error": "Invalid credentials"}), 401

        identity = auth_service.identity_for_user(user)
        token = session_service.issue_token(identity)

        response = jsonify({
            "user": user.to_dict(),
            "token": token,
            "message": "Login successful",
        })
        return _with_auth_cookie(response, token), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    response = jsonify({"message": "Logout successful"})
    response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"])
    return response, 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"identity": g.identity.to_dict()}), 200


@auth_bp.post("/register")
def register_route():
    """
    Self-service sign-up. The account is always a plain `user` bound to the
    requested branch; role and permissions in the body are ignored.
    """
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.register_user(data)
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500

    token = session_service.issue_token(auth_service.identity_for_user(user))
    response = jsonify({
        "user": user.to_dict(),
        "token": token,
        "message": "Registration successful",
    })
    return _with_auth_cookie(response, token), 201


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_profile(g.authz.user_id, data)
    except AppError as e:
        return service_error(e)
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict(), "message": "Profile updated successfully"}), 200
