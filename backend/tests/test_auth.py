"""
Authentication and authorization tests.

Verifies:
- Login issues a bearer token; logout revokes it
- Unauthenticated requests return 401
- Staff is denied admin-only operations (403)
- Admin can manage users; deactivation revokes sessions and never
  applies to the acting admin
"""

import pytest

from conftest import TEST_PASSWORD, auth_headers, get_auth_token


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:

    def test_login_returns_token_and_permissions(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["token"]
        assert body["user"]["roles"] == ["admin"]
        assert "VIEW_REPORTS" in body["permissions"]

    def test_login_by_email(self, client, staff_user):
        resp = client.post("/api/auth/login", json={"email": "staff@sierra.test", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert "VIEW_REPORTS" not in resp.get_json()["permissions"]

    def test_wrong_password_is_401(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_missing_credentials_is_400(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin"})
        assert resp.status_code == 400

    def test_me_and_logout(self, client, admin_user):
        headers = auth_headers(get_auth_token(client, "admin", TEST_PASSWORD))

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.get_json()["user"]["username"] == "admin"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_garbage_token_is_401(self, client, seed):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("GET", "/api/payments"),
            ("POST", "/api/payments"),
            ("GET", "/api/purchases"),
            ("GET", "/api/supplier-payments"),
            ("GET", "/api/accounts"),
            ("POST", "/api/accounts/transaction"),
            ("GET", "/api/customers"),
            ("GET", "/api/products"),
            ("GET", "/api/expenses"),
            ("GET", "/api/financial-reports/profit-loss"),
            ("GET", "/api/dashboard/stats"),
            ("GET", "/api/users"),
        ],
    )
    def test_requires_auth(self, client, seed, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_health_is_public(self, client, seed):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"


# =============================================================================
# STAFF DENIED ADMIN OPERATIONS - 403
# =============================================================================


class TestStaffDenied:

    def test_cannot_list_users(self, client, staff_headers):
        resp = client.get("/api/users", headers=staff_headers)
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "MANAGE_USERS"

    def test_cannot_view_reports(self, client, staff_headers):
        resp = client.get(
            "/api/financial-reports/trading-account?start_date=2026-01-01&end_date=2026-01-31",
            headers=staff_headers,
        )
        assert resp.status_code == 403

    def test_cannot_transfer_funds(self, client, staff_headers):
        resp = client.post(
            "/api/accounts/transaction",
            json={"type": "deposit", "amount_cents": 100, "to_account_id": 1},
            headers=staff_headers,
        )
        assert resp.status_code == 403

    def test_cannot_edit_purchases(self, client, staff_headers):
        resp = client.put("/api/purchases/1/update", json={}, headers=staff_headers)
        assert resp.status_code == 403

    def test_can_view_orders(self, client, staff_headers):
        assert client.get("/api/orders", headers=staff_headers).status_code == 200


# =============================================================================
# USER MANAGEMENT (ADMIN)
# =============================================================================


class TestUserManagement:

    def test_admin_creates_staff_user(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"username": "cashier2", "email": "c2@sierra.test", "password": "Str0ng!Pass"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["user"]["roles"] == ["staff"]

        assert get_auth_token(client, "cashier2", "Str0ng!Pass")

    def test_weak_password_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"username": "weak", "email": "weak@sierra.test", "password": "password"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_duplicate_username_is_409(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"username": "admin", "email": "other@sierra.test", "password": TEST_PASSWORD},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_unknown_role_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"username": "x1", "email": "x1@sierra.test", "password": TEST_PASSWORD, "role": "owner"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_get_user(self, client, admin_headers, staff_user):
        resp = client.get(f"/api/users/{staff_user.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["username"] == "staff"
        assert client.get("/api/users/999", headers=admin_headers).status_code == 404

    def test_promote_staff_to_admin(self, client, admin_headers, staff_user):
        resp = client.put(f"/api/users/{staff_user.id}", json={"role": "admin", "full_name": "Senior Clerk"}, headers=admin_headers)
        assert resp.status_code == 200
        user = resp.get_json()["user"]
        assert user["roles"] == ["admin"]
        assert user["full_name"] == "Senior Clerk"

        token = get_auth_token(client, "staff", TEST_PASSWORD)
        assert client.get("/api/users", headers=auth_headers(token)).status_code == 200

    def test_email_taken_is_409(self, client, admin_headers, staff_user):
        resp = client.put(f"/api/users/{staff_user.id}", json={"email": "admin@sierra.test"}, headers=admin_headers)
        assert resp.status_code == 409

    @pytest.mark.parametrize(
        "payload",
        [
            {"username": "renamed"},
            {"role": "owner"},
            {"is_active": "no"},
            {"email": "  "},
        ],
    )
    def test_invalid_update_rejected(self, client, admin_headers, staff_user, payload):
        assert client.put(f"/api/users/{staff_user.id}", json=payload, headers=admin_headers).status_code == 400

    def test_cannot_demote_or_deactivate_self(self, client, admin_headers, admin_user):
        assert client.put(f"/api/users/{admin_user.id}", json={"role": "staff"}, headers=admin_headers).status_code == 400
        assert client.put(f"/api/users/{admin_user.id}", json={"is_active": False}, headers=admin_headers).status_code == 400
        assert client.delete(f"/api/users/{admin_user.id}", headers=admin_headers).status_code == 400
        assert client.get("/api/users", headers=admin_headers).status_code == 200

    def test_delete_deactivates_and_logs_out(self, client, admin_headers, staff_user, staff_headers):
        assert client.get("/api/orders", headers=staff_headers).status_code == 200

        resp = client.delete(f"/api/users/{staff_user.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sessions_revoked"] == 1

        assert client.get("/api/orders", headers=staff_headers).status_code == 401
        assert get_auth_token(client, "staff", TEST_PASSWORD) is None
        # The row stays for attribution
        assert client.get(f"/api/users/{staff_user.id}", headers=admin_headers).get_json()["user"]["is_active"] is False
        assert client.delete(f"/api/users/{staff_user.id}", headers=admin_headers).status_code == 400

    def test_reactivate(self, client, admin_headers, staff_user):
        client.delete(f"/api/users/{staff_user.id}", headers=admin_headers)
        resp = client.put(f"/api/users/{staff_user.id}", json={"is_active": True}, headers=admin_headers)
        assert resp.status_code == 200
        assert get_auth_token(client, "staff", TEST_PASSWORD)

    def test_staff_cannot_edit_users(self, client, staff_headers, admin_user):
        assert client.put(f"/api/users/{admin_user.id}", json={"full_name": "x"}, headers=staff_headers).status_code == 403
        assert client.delete(f"/api/users/{admin_user.id}", headers=staff_headers).status_code == 403
