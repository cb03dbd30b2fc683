"""
Branch isolation tests.

Tests cover:
1. Read scope: non-admins see exactly their branch, admins see all or one
2. Write branch: client-supplied branches are ignored for non-admins
3. Cross-branch single-record lookups answer "not found"
4. Inactive branches accept no writes
"""

import pytest

from stockbill.errors import AuthorizationError, NotFoundError, ValidationError
from stockbill.models import Product
from stockbill.permissions import Authorization
from stockbill.services.tenant_service import (
    BranchScope,
    ensure_record_visible,
    resolve_branch_scope,
    resolve_write_branch,
)


# ============================================================================
# Read scope
# ============================================================================

class TestBranchScope:

    def test_non_admin_is_pinned_to_own_branch(self, user_identity):
        scope = resolve_branch_scope(Authorization(user_identity), "branch-b")
        assert scope == BranchScope(branch_id="branch-a")

    def test_admin_sees_all_or_requested(self, admin_identity):
        authz = Authorization(admin_identity)
        assert resolve_branch_scope(authz).all_branches
        assert resolve_branch_scope(authz, "branch-b") == BranchScope(branch_id="branch-b")

    def test_no_branch_means_empty_scope(self, db_session, branch_a, make_product, identity_for):
        make_product(branch_a)
        scope = resolve_branch_scope(Authorization(identity_for("user", None)))
        assert scope.is_empty
        assert scope.apply(db_session.query(Product), Product.branch_id).count() == 0


# ============================================================================
# Write branch
# ============================================================================

class TestWriteBranch:

    def test_non_admin_request_is_ignored(self, branch_a, branch_b, user_identity):
        assert resolve_write_branch(Authorization(user_identity), "branch-b") == "branch-a"

    def test_non_admin_without_branch(self, branch_a, identity_for):
        with pytest.raises(AuthorizationError):
            resolve_write_branch(Authorization(identity_for("user", None)))

    def test_admin_falls_back_to_own_branch(self, branch_a, admin_identity):
        assert resolve_write_branch(Authorization(admin_identity)) == "branch-a"

    def test_admin_without_any_branch(self, db_session, identity_for):
        with pytest.raises(ValidationError):
            resolve_write_branch(Authorization(identity_for("admin", None)))

    def test_unknown_branch(self, branch_a, admin_identity):
        with pytest.raises(ValidationError):
            resolve_write_branch(Authorization(admin_identity), "nowhere")

    def test_inactive_branch(self, db_session, branch_a, user_identity):
        branch_a.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            resolve_write_branch(Authorization(user_identity))


# ============================================================================
# Single-record visibility
# ============================================================================

class TestRecordVisibility:

    def test_cross_branch_record_is_not_found(self, branch_a, branch_b, make_product, user_identity):
        product = make_product(branch_b)
        with pytest.raises(NotFoundError, match="Product not found"):
            ensure_record_visible(Authorization(user_identity), product, "Product")

    def test_own_branch_record_is_returned(self, branch_a, make_product, user_identity):
        product = make_product(branch_a)
        assert ensure_record_visible(Authorization(user_identity), product, "Product") is product

    def test_missing_record(self, branch_a, user_identity):
        with pytest.raises(NotFoundError):
            ensure_record_visible(Authorization(user_identity), None, "Invoice")
