# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import AppError, AuthorizationError
from .extensions import db
from .permissions import Authorization
from .services import permission_service, session_service


def _extract_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get(current_app.config.get("AUTH_COOKIE_NAME", "auth-token"))


def _is_authenticated() -> bool:
    return isinstance(getattr(g, "authz", None), Authorization) and g.authz.identity is not None


def _log_denial(event_type: str, reason: str, action: str | None = None) -> None:
    authz = getattr(g, "authz", None)
    permission_service.log_security_event(
        user_id=authz.user_id if authz else None,
        event_type=event_type,
        success=False,
        resource=request.path,
        action=action or request.method,
        reason=reason,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        branch_id=authz.branch if authz else None,
    )


def require_auth(f):
    """
    Require a verified identity.

    Accepts `Authorization: Bearer <token>` or the auth-token cookie.
    Sets:
    - g.identity: the verified Identity
    - g.authz: Authorization wrapping it (pass this into services)

    Returns 401 if the token is missing, malformed, expired or forged.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _extract_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        identity = session_service.resolve(token)
        if identity is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.identity = identity
        g.authz = Authorization(identity)
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission (admins always pass; see permissions.evaluator).

    Denials are written to security_events.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if not g.authz.has_permission(permission_code):
                _log_denial("PERMISSION_DENIED", f"Missing permission: {permission_code}")
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_admin(f):
    """Require the admin role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not g.authz.can_admin():
            _log_denial("PERMISSION_DENIED", "Admin role required")
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function


def service_error(exc: AppError):
    """
    Translate a service-layer error into a JSON response.

    Rolls back whatever the failed request left in the session and audits
    authorization failures.
    """
    db.session.rollback()
    if isinstance(exc, AuthorizationError):
        _log_denial("AUTHORIZATION_DENIED", exc.message)
    if exc.status_code >= 500:
        current_app.logger.error("Service error on %s %s: %r", request.method, request.path, exc)
    return jsonify(exc.to_dict()), exc.status_code
