"""
Branch Scoping Helpers

Every query touching branch-owned data goes through one of these helpers.

SECURITY INVARIANTS:
1. Non-admins only ever see or write their own branch; any branch named by
   the client is discarded, not validated.
2. A non-admin without a branch sees nothing and can write nothing.
3. Admins see every branch, or the one they explicitly filter on.
4. Single-record lookups across a branch boundary answer "not found" so
   record ids from other branches are not confirmed.

USAGE:
    scope = resolve_branch_scope(authz, request.args.get("branch"))
    query = scope.apply(query, Product.branch_id)
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import false

from ..extensions import db
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..models import Branch
from ..permissions import Authorization


@dataclass(frozen=True)
class BranchScope:
    """Read scope: every branch, exactly one, or none."""
    all_branches: bool = False
    branch_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.all_branches and not self.branch_id

    def apply(self, query, column):
        if self.all_branches:
            return query
        if not self.branch_id:
            return query.filter(false())
        return query.filter(column == self.branch_id)


def resolve_branch_scope(authz: Authorization, requested: str | None = None) -> BranchScope:
    if authz.can_admin():
        if requested:
            return BranchScope(branch_id=str(requested))
        return BranchScope(all_branches=True)
    return BranchScope(branch_id=authz.branch)


def require_active_branch(branch_id: str) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise ValidationError("Branch not found")
    if not branch.is_active:
        raise ValidationError("Branch is inactive")
    return branch


def resolve_write_branch(authz: Authorization, requested: str | None = None) -> str:
    """
    The branch a new record is written to.

    Non-admins always get their own branch. Admins get the requested
    branch, falling back to their own.
    """
    if authz.can_admin():
        branch_id = str(requested) if requested else authz.branch
        if not branch_id:
            raise ValidationError("branch is required")
    else:
        branch_id = authz.branch
        if not branch_id:
            raise AuthorizationError("User is not assigned to a branch")
    require_active_branch(branch_id)
    return branch_id


def ensure_record_visible(authz: Authorization, record, label: str):
    """Return `record` if the caller may see it, else raise NotFoundError."""
    if record is None or not authz.can_access_branch(record.branch_id):
        raise NotFoundError(f"{label} not found")
    return record
