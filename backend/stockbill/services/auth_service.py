# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Tokens are issued separately (see session_service.py)
- Inactive users cannot authenticate
"""

import re

import bcrypt
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import AppError, ConflictError, NotFoundError, ValidationError
from ..models import Branch, User
from ..permissions import Identity, ROLE_NAMES, default_permissions_for_role, validate_permission_code
from ..time_utils import utcnow
from .tenant_service import require_active_branch


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """
    Hash password using bcrypt (cost factor 12 by default).

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash (timing-safe via bcrypt.checkpw)."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash
        return False


def create_user(
    email: str,
    name: str,
    password: str,
    role: str = "user",
    branch_id: str | None = None,
    permissions: list[str] | None = None,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Permissions default to the role's defaults.
    """
    email = _normalize_email(email)
    if not name or not name.strip():
        raise ValidationError("name is required")
    if role not in ROLE_NAMES:
        raise ValidationError(f"Unknown role: {role}")

    if permissions is None:
        permissions = default_permissions_for_role(role)
    unknown = [p for p in permissions if not validate_permission_code(p)]
    if unknown:
        raise ValidationError(f"Unknown permissions: {', '.join(unknown)}")

    if branch_id is not None and not db.session.get(Branch, branch_id):
        raise ValidationError("Branch not found")
    if role != "admin" and branch_id is None:
        raise ValidationError("Non-admin users must be assigned to a branch")

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("A user with this email already exists")

    user = User(
        email=email,
        name=name.strip(),
        password_hash=hash_password(password),
        role=role,
        permissions=list(permissions),
        branch_id=branch_id,
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A user with this email already exists")
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user by email and password.

    Returns the User on success; None for unknown email, wrong password or
    a deactivated account. Records last_login_at on success.
    """
    email = (email or "").strip().lower()
    if not email or not password:
        return None

    user = db.session.query(User).filter_by(email=email).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def identity_for_user(user: User) -> Identity:
    return Identity.build(
        user_id=user.id,
        email=user.email,
        role=user.role,
        permissions=user.permissions or [],
        branch=user.branch_id,
    )


# =============================================================================
# Account management
# =============================================================================

def _normalize_email(email) -> str:
    email = (email or "").strip().lower() if isinstance(email, str) else ""
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    return email


def _email_taken(email: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(User.id).filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def _commit_user(user: User) -> User:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A user with this email already exists")
    return user


def list_users(*, search: str | None = None, branch_id: str | None = None, include_inactive: bool = False) -> list[User]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    if branch_id:
        query = query.filter(User.branch_id == branch_id)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(or_(User.name.ilike(term), User.email.ilike(term)))
    return query.order_by(User.name.asc(), User.id.asc()).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def update_user(user_id: int, data: dict) -> User:
    """
    Admin edit of an account.

    Accepted keys: email, name, role, permissions, branch_id, is_active,
    password. A role change without explicit permissions resets them to the
    new role's defaults.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    user = get_user(user_id)
    try:
        _apply_admin_patch(user, data)
    except AppError:
        db.session.rollback()
        raise
    return _commit_user(user)


def _apply_admin_patch(user: User, data: dict) -> None:
    if "email" in data:
        email = _normalize_email(data["email"])
        if _email_taken(email, exclude_id=user.id):
            raise ConflictError("A user with this email already exists")
        user.email = email

    if "name" in data:
        name = data["name"]
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name cannot be blank")
        user.name = name.strip()

    if "role" in data:
        if data["role"] not in ROLE_NAMES:
            raise ValidationError(f"Unknown role: {data['role']}")
        if data["role"] != user.role and "permissions" not in data:
            user.permissions = list(default_permissions_for_role(data["role"]))
        user.role = data["role"]

    if "permissions" in data:
        permissions = data["permissions"]
        if not isinstance(permissions, list):
            raise ValidationError("permissions must be a list")
        unknown = [p for p in permissions if not validate_permission_code(p)]
        if unknown:
            raise ValidationError(f"Unknown permissions: {', '.join(map(str, unknown))}")
        user.permissions = list(permissions)

    if "branch_id" in data:
        branch_id = data["branch_id"] or None
        if branch_id is not None and not db.session.get(Branch, branch_id):
            raise ValidationError("Branch not found")
        user.branch_id = branch_id

    if user.role != "admin" and user.branch_id is None:
        raise ValidationError("Non-admin users must be assigned to a branch")

    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise ValidationError("is_active must be a boolean")
        user.is_active = data["is_active"]

    if data.get("password"):
        user.password_hash = hash_password(data["password"])


def deactivate_user(user_id: int, *, actor_id: str | None) -> User:
    """Soft delete: the account stays for audit, login is refused."""
    user = get_user(user_id)
    if actor_id is not None and str(user.id) == str(actor_id):
        raise ValidationError("Cannot delete your own account")
    if not user.is_active:
        raise ValidationError("User is already deactivated")
    user.is_active = False
    db.session.commit()
    return user


def register_user(data: dict) -> User:
    """
    Self-service sign-up into an active branch.

    Always creates a plain `user` with the role defaults; role and
    permissions in the payload are ignored.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    if not data.get("email") or not data.get("password") or not data.get("name"):
        raise ValidationError("Email, password, and name are required")
    branch_id = data.get("branch_id") or data.get("branch")
    if not branch_id:
        raise ValidationError("branch_id is required")
    require_active_branch(str(branch_id))
    return create_user(
        email=data["email"],
        name=data["name"],
        password=data["password"],
        role="user",
        branch_id=str(branch_id),
    )


def update_profile(user_id, data: dict) -> User:
    """
    A user editing their own name, email or password.

    A new password needs the current one.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    user = db.session.get(User, int(user_id)) if str(user_id).isdigit() else None
    if user is None or not user.is_active:
        raise NotFoundError("User not found")
    try:
        _apply_profile_patch(user, data)
    except AppError:
        db.session.rollback()
        raise
    return _commit_user(user)


def _apply_profile_patch(user: User, data: dict) -> None:
    new_password = data.get("new_password")
    if new_password and not verify_password(data.get("current_password") or "", user.password_hash):
        raise ValidationError("Current password is incorrect")

    if "email" in data:
        email = _normalize_email(data["email"])
        if _email_taken(email, exclude_id=user.id):
            raise ConflictError("A user with this email already exists")
        user.email = email

    if "name" in data:
        name = data["name"]
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name cannot be blank")
        user.name = name.strip()

    if new_password:
        user.password_hash = hash_password(new_password)
