"""
Permission evaluator tests.

These are pure functions; no database is needed.
"""

import pytest

from stockbill.errors import AuthorizationError
from stockbill.permissions import (
    Authorization,
    Identity,
    as_authorization,
    can_access_branch,
    default_permissions_for_role,
    has_permission,
    has_role,
    is_admin,
    validate_permission_code,
)


def ident(role="user", permissions=(), branch="branch-a"):
    return Identity.build(user_id="7", email="x@y.z", role=role, permissions=list(permissions), branch=branch)


# ============================================================================
# has_permission
# ============================================================================

class TestHasPermission:

    def test_exact_grant(self):
        assert has_permission(ident(permissions=["billing.create"]), "billing.create")

    def test_missing_grant(self):
        assert not has_permission(ident(permissions=["billing.create"]), "payments.create")

    def test_admin_bypasses_everything(self):
        admin = ident(role="admin", permissions=[])
        assert has_permission(admin, "payments.create")
        assert has_permission(admin, "anything.at.all")
        assert has_permission(admin, None)

    @pytest.mark.parametrize("verb", ["read", "write", "delete"])
    def test_verb_all_covers_prefixed_permission(self, verb):
        identity = ident(permissions=[f"{verb}:all"])
        assert has_permission(identity, f"{verb}:invoices")
        assert has_permission(identity, f"{verb}:products")

    def test_verb_all_does_not_cross_verbs(self):
        identity = ident(permissions=["read:all"])
        assert not has_permission(identity, "write:invoices")
        assert not has_permission(identity, "billing.create")

    @pytest.mark.parametrize("granted", ["products.*", "*:all", "billing"])
    def test_no_other_wildcard_expansion(self, granted):
        assert not has_permission(ident(permissions=[granted]), "products.read")

    def test_star_is_not_a_wildcard_for_non_admins(self):
        assert not has_permission(ident(role="manager", permissions=["*"]), "products.read")

    @pytest.mark.parametrize("permission", [None, "", 42])
    def test_malformed_permission_is_false(self, permission):
        assert not has_permission(ident(permissions=["billing.create"]), permission)

    def test_missing_identity_is_false(self):
        assert not has_permission(None, "billing.create")

    def test_empty_grants_is_false(self):
        assert not has_permission(ident(permissions=[]), "billing.create")


# ============================================================================
# Roles and branches
# ============================================================================

class TestRolesAndBranches:

    def test_is_admin(self):
        assert is_admin(ident(role="admin"))
        assert not is_admin(ident(role="manager"))
        assert not is_admin(None)

    def test_has_role_exact_match(self):
        assert has_role(ident(role="manager"), "manager")
        assert not has_role(ident(role="manager"), "admin")
        assert not has_role(ident(role="manager"), None)
        assert not has_role(None, "manager")

    def test_own_branch_only(self):
        identity = ident(branch="branch-a")
        assert can_access_branch(identity, "branch-a")
        assert not can_access_branch(identity, "branch-b")
        assert not can_access_branch(identity, None)

    def test_branch_match_is_exact(self):
        identity = ident(branch="1")
        assert can_access_branch(identity, "1")
        assert not can_access_branch(identity, 1)
        assert not can_access_branch(identity, "1 ")

    def test_user_without_branch_sees_nothing(self):
        assert not can_access_branch(ident(branch=None), "branch-a")

    def test_admin_sees_every_branch(self):
        admin = ident(role="admin", branch=None)
        assert can_access_branch(admin, "branch-a")
        assert can_access_branch(admin, "branch-b")


# ============================================================================
# Authorization object
# ============================================================================

class TestAuthorization:

    def test_require_raises_with_required_permission(self):
        authz = Authorization(ident(permissions=["products.read"]))
        with pytest.raises(AuthorizationError) as exc_info:
            authz.require("payments.create")
        assert exc_info.value.details == {"required_permission": "payments.create"}
        assert exc_info.value.status_code == 403

    def test_require_branch(self):
        authz = Authorization(ident(branch="branch-a"))
        authz.require_branch("branch-a")
        with pytest.raises(AuthorizationError):
            authz.require_branch("branch-b")

    def test_anonymous_authorization_denies(self):
        authz = Authorization(None)
        assert authz.user_id is None
        assert not authz.has_permission("products.read")
        assert not authz.can_access_branch("branch-a")

    def test_as_authorization_accepts_both(self):
        identity = ident()
        authz = Authorization(identity)
        assert as_authorization(authz) is authz
        assert as_authorization(identity).identity is identity


# ============================================================================
# Role defaults
# ============================================================================

class TestRoleDefaults:

    def test_user_cannot_record_payments_by_default(self):
        identity = ident(role="user", permissions=default_permissions_for_role("user"))
        assert has_permission(identity, "billing.create")
        assert not has_permission(identity, "payments.create")
        assert not has_permission(identity, "inventory.adjust")

    def test_manager_defaults(self):
        identity = ident(role="manager", permissions=default_permissions_for_role("manager"))
        for code in ("payments.create", "inventory.adjust", "products.delete"):
            assert has_permission(identity, code)

    def test_unknown_role_has_no_defaults(self):
        assert default_permissions_for_role("auditor") == []

    def test_validate_permission_code(self):
        assert validate_permission_code("billing.create")
        assert validate_permission_code("read:all")
        assert validate_permission_code("*")
        assert not validate_permission_code("billing.destroy")
