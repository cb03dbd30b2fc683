"""
Account management tests.

Covers:
- admin user management (service and /api/users routes)
- self-service registration and profile edits
- branch fetch and soft delete routes
"""

import pytest

from stockbill.errors import ConflictError, NotFoundError, ValidationError
from stockbill.models import Branch, SecurityEvent, User
from stockbill.services import auth_service, session_service

PASSWORD = "Password123!"


def headers_for(user: User) -> dict:
    token = session_service.issue_token(auth_service.identity_for_user(user))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def clerk(db_session, branch_a):
    return auth_service.create_user(
        email="clerk@stockbill.test", name="Clerk", password=PASSWORD, role="user", branch_id="branch-a"
    )


@pytest.fixture
def admin_user(db_session, branch_a):
    return auth_service.create_user(
        email="boss@stockbill.test", name="Boss", password=PASSWORD, role="admin", branch_id="branch-a"
    )


# ============================================================================
# Service: admin management
# ============================================================================

class TestUserService:

    def test_list_filters(self, db_session, clerk, admin_user):
        assert {u.email for u in auth_service.list_users()} == {"clerk@stockbill.test", "boss@stockbill.test"}
        assert [u.email for u in auth_service.list_users(search="CLERK")] == ["clerk@stockbill.test"]

        auth_service.deactivate_user(clerk.id, actor_id=str(admin_user.id))
        assert [u.email for u in auth_service.list_users()] == ["boss@stockbill.test"]
        assert len(auth_service.list_users(include_inactive=True)) == 2

    def test_role_change_resets_grants(self, db_session, clerk):
        user = auth_service.update_user(clerk.id, {"role": "manager"})
        assert user.role == "manager"
        assert "payments.create" in user.permissions

    def test_explicit_grants_win(self, db_session, clerk):
        user = auth_service.update_user(clerk.id, {"role": "manager", "permissions": ["products.read"]})
        assert user.permissions == ["products.read"]

    def test_unknown_permission_rejected(self, db_session, clerk):
        with pytest.raises(ValidationError):
            auth_service.update_user(clerk.id, {"permissions": ["billing.destroy"]})

    def test_non_admin_needs_a_branch(self, db_session, clerk):
        with pytest.raises(ValidationError):
            auth_service.update_user(clerk.id, {"branch_id": None, "name": "Renamed"})
        refreshed = db_session.get(User, clerk.id)
        assert refreshed.branch_id == "branch-a"
        assert refreshed.name == "Clerk"

    def test_email_conflict(self, db_session, clerk, admin_user):
        with pytest.raises(ConflictError):
            auth_service.update_user(clerk.id, {"email": "Boss@StockBill.test"})
        assert db_session.get(User, clerk.id).email == "clerk@stockbill.test"

    def test_password_reset(self, db_session, clerk):
        auth_service.update_user(clerk.id, {"password": "NewPass456!"})
        assert auth_service.authenticate("clerk@stockbill.test", "NewPass456!") is not None
        assert auth_service.authenticate("clerk@stockbill.test", PASSWORD) is None

    def test_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            auth_service.get_user(4242)

    def test_deactivate(self, db_session, clerk, admin_user):
        auth_service.deactivate_user(clerk.id, actor_id=str(admin_user.id))
        assert db_session.get(User, clerk.id).is_active is False
        assert auth_service.authenticate("clerk@stockbill.test", PASSWORD) is None

        with pytest.raises(ValidationError, match="already deactivated"):
            auth_service.deactivate_user(clerk.id, actor_id=str(admin_user.id))

    def test_cannot_deactivate_self(self, db_session, admin_user):
        with pytest.raises(ValidationError, match="your own account"):
            auth_service.deactivate_user(admin_user.id, actor_id=str(admin_user.id))
        assert db_session.get(User, admin_user.id).is_active is True


# ============================================================================
# Service: registration and profile
# ============================================================================

class TestSelfService:

    def test_register_is_always_a_plain_user(self, db_session, branch_a):
        user = auth_service.register_user({
            "email": "New@StockBill.test",
            "name": "Newcomer",
            "password": PASSWORD,
            "branch_id": "branch-a",
            "role": "admin",
            "permissions": ["payments.create"],
        })
        assert user.email == "new@stockbill.test"
        assert user.role == "user"
        assert "payments.create" not in user.permissions
        assert user.branch_id == "branch-a"

    @pytest.mark.parametrize("payload", [
        {"email": "a@b.c", "password": PASSWORD},
        {"email": "a@b.c", "password": PASSWORD, "name": "A"},
        {"email": "a@b.c", "password": PASSWORD, "name": "A", "branch_id": "nowhere"},
    ])
    def test_register_rejects_incomplete(self, db_session, branch_a, payload):
        with pytest.raises(ValidationError):
            auth_service.register_user(payload)

    def test_register_into_inactive_branch(self, db_session, branch_a):
        branch_a.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError, match="inactive"):
            auth_service.register_user({
                "email": "a@b.c", "name": "A", "password": PASSWORD, "branch_id": "branch-a",
            })

    def test_register_duplicate_email(self, db_session, clerk):
        with pytest.raises(ConflictError):
            auth_service.register_user({
                "email": "clerk@stockbill.test", "name": "Again", "password": PASSWORD, "branch_id": "branch-a",
            })

    def test_profile_password_needs_current(self, db_session, clerk):
        before = clerk.password_hash
        with pytest.raises(ValidationError, match="Current password"):
            auth_service.update_profile(str(clerk.id), {"name": "Changed", "new_password": "NewPass456!",
                                                        "current_password": "wrong"})
        refreshed = db_session.get(User, clerk.id)
        assert refreshed.password_hash == before
        assert refreshed.name == "Clerk"

    def test_profile_update(self, db_session, clerk):
        user = auth_service.update_profile(str(clerk.id), {
            "name": "Counter Clerk",
            "email": "Counter@StockBill.test",
            "current_password": PASSWORD,
            "new_password": "NewPass456!",
        })
        assert user.name == "Counter Clerk"
        assert user.email == "counter@stockbill.test"
        assert auth_service.authenticate("counter@stockbill.test", "NewPass456!") is not None

    def test_profile_of_unknown_account(self, db_session):
        with pytest.raises(NotFoundError):
            auth_service.update_profile("300", {"name": "Ghost"})


# ============================================================================
# Routes
# ============================================================================

class TestUserRoutes:

    def test_non_admin_is_denied(self, client, db_session, user_headers, manager_headers):
        assert client.get("/api/users", headers=user_headers).status_code == 403
        assert client.post("/api/users", json={}, headers=manager_headers).status_code == 403

    def test_admin_lifecycle(self, client, db_session, admin_user):
        headers = headers_for(admin_user)

        created = client.post("/api/users", json={
            "email": "Cashier@StockBill.test",
            "name": "Cashier",
            "password": PASSWORD,
            "role": "user",
            "branch_id": "branch-a",
        }, headers=headers)
        assert created.status_code == 201
        user_id = created.get_json()["user"]["id"]
        assert "password_hash" not in created.get_json()["user"]

        fetched = client.get(f"/api/users/{user_id}", headers=headers)
        assert fetched.get_json()["user"]["email"] == "cashier@stockbill.test"

        updated = client.put(f"/api/users/{user_id}", json={"role": "manager"}, headers=headers)
        assert updated.status_code == 200
        assert updated.get_json()["user"]["role"] == "manager"

        deleted = client.delete(f"/api/users/{user_id}", headers=headers)
        assert deleted.status_code == 200
        assert deleted.get_json()["user"]["is_active"] is False

        listed = client.get("/api/users", headers=headers).get_json()
        assert [u["email"] for u in listed["users"]] == ["boss@stockbill.test"]

        events = {e.event_type for e in db_session.query(SecurityEvent)}
        assert {"USER_CREATED", "USER_DEACTIVATED"} <= events

    def test_admin_cannot_delete_self(self, client, db_session, admin_user):
        resp = client.delete(f"/api/users/{admin_user.id}", headers=headers_for(admin_user))
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Cannot delete your own account"

    def test_duplicate_and_missing(self, client, db_session, admin_user, clerk):
        headers = headers_for(admin_user)
        dup = client.post("/api/users", json={
            "email": "clerk@stockbill.test", "name": "Dup", "password": PASSWORD, "branch_id": "branch-a",
        }, headers=headers)
        assert dup.status_code == 409
        assert client.get("/api/users/4242", headers=headers).status_code == 404
        assert client.post("/api/users", json={"email": "x@y.z"}, headers=headers).status_code == 400


class TestRegisterAndProfileRoutes:

    def test_register_logs_in(self, client, db_session, branch_a):
        resp = client.post("/api/auth/register", json={
            "email": "walkin@stockbill.test",
            "name": "Walk In",
            "password": PASSWORD,
            "branch_id": "branch-a",
            "role": "admin",
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["user"]["role"] == "user"

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.get_json()["identity"]["branch"] == "branch-a"

    def test_register_duplicate_is_409(self, client, db_session, clerk):
        resp = client.post("/api/auth/register", json={
            "email": "clerk@stockbill.test", "name": "Again", "password": PASSWORD, "branch_id": "branch-a",
        })
        assert resp.status_code == 409

    def test_profile_requires_auth(self, client, db_session):
        assert client.put("/api/auth/profile", json={"name": "x"}).status_code == 401

    def test_profile_update(self, client, db_session, clerk):
        resp = client.put("/api/auth/profile", json={"name": "Renamed"}, headers=headers_for(clerk))
        assert resp.status_code == 200
        assert resp.get_json()["user"]["name"] == "Renamed"

        bad = client.put("/api/auth/profile", json={"new_password": "NewPass456!", "current_password": "nope"},
                         headers=headers_for(clerk))
        assert bad.status_code == 400


class TestBranchRoutes:

    def test_get_branch_is_scoped(self, client, db_session, branch_a, branch_b, user_headers, admin_headers):
        assert client.get("/api/branches/branch-a", headers=user_headers).get_json()["branch"]["id"] == "branch-a"
        assert client.get("/api/branches/branch-b", headers=user_headers).status_code == 404
        assert client.get("/api/branches/branch-b", headers=admin_headers).status_code == 200
        assert client.get("/api/branches/nowhere", headers=admin_headers).status_code == 404

    def test_deactivate_branch(self, client, db_session, branch_a, branch_b, user_headers, admin_headers):
        assert client.delete("/api/branches/branch-b", headers=user_headers).status_code == 403

        resp = client.delete("/api/branches/branch-b", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["branch"]["is_active"] is False
        assert db_session.get(Branch, "branch-b").is_active is False

        assert client.delete("/api/branches/nowhere", headers=admin_headers).status_code == 404
