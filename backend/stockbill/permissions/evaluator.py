# Overview: Pure permission/role/branch checks plus the Authorization object.

"""
Permission Evaluator

All access decisions go through this module. The admin bypass is
implemented here and nowhere else: decorators and services hold an
Authorization object and ask it, they never compare roles themselves.

Functions are total. A missing identity, a None permission or a malformed
permission set all answer False (except for admins, who answer True).
"""

from __future__ import annotations

from ..errors import AuthorizationError
from .definitions import ADMIN_ROLE, WILDCARD_VERBS
from .identity import Identity


def is_admin(identity: Identity | None) -> bool:
    return identity is not None and getattr(identity, "role", None) == ADMIN_ROLE


def has_permission(identity: Identity | None, permission: str | None) -> bool:
    """
    Exact grant, or "<verb>:all" covering a "<verb>:"-prefixed permission.

    No other wildcard expansion: "products.*" or "*:all" grant nothing to
    non-admins.
    """
    if identity is None:
        return False
    if is_admin(identity):
        return True
    if not permission or not isinstance(permission, str):
        return False

    granted = getattr(identity, "permissions", None)
    if not granted:
        return False
    try:
        if permission in granted:
            return True
        for verb in WILDCARD_VERBS:
            if f"{verb}:all" in granted and permission.startswith(f"{verb}:"):
                return True
    except TypeError:
        return False
    return False


def has_role(identity: Identity | None, role: str | None) -> bool:
    if identity is None or not role:
        return False
    current = getattr(identity, "role", None)
    if not current:
        return False
    return current == role


def can_access_branch(identity: Identity | None, branch_id: str | None) -> bool:
    if identity is None:
        return False
    if is_admin(identity):
        return True
    if not branch_id:
        return False
    own = getattr(identity, "branch", None)
    if not own:
        return False
    return own == branch_id


class Authorization:
    """
    Access decisions for one identity.

    Built once per request by require_auth and passed into services.
    """

    def __init__(self, identity: Identity | None):
        self.identity = identity

    def __repr__(self) -> str:
        if self.identity is None:
            return "<Authorization anonymous>"
        return f"<Authorization user={self.identity.user_id} role={self.identity.role}>"

    @property
    def user_id(self) -> str | None:
        return self.identity.user_id if self.identity else None

    @property
    def branch(self) -> str | None:
        return self.identity.branch if self.identity else None

    def can_admin(self) -> bool:
        return is_admin(self.identity)

    def has_permission(self, permission: str | None) -> bool:
        return has_permission(self.identity, permission)

    def has_role(self, role: str | None) -> bool:
        return has_role(self.identity, role)

    def can_access_branch(self, branch_id: str | None) -> bool:
        return can_access_branch(self.identity, branch_id)

    def require(self, permission: str) -> None:
        if not self.has_permission(permission):
            raise AuthorizationError(
                f"Missing permission: {permission}",
                details={"required_permission": permission},
            )

    def require_branch(self, branch_id: str | None) -> None:
        if not self.can_access_branch(branch_id):
            raise AuthorizationError("Access to this branch is not allowed")


def as_authorization(subject) -> Authorization:
    """Accept either an Identity or an Authorization (service entry points take both)."""
    if isinstance(subject, Authorization):
        return subject
    return Authorization(subject)
