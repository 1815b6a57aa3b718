"""
Authorization tests for the Memimo CRM.

Verifies:
- Unauthenticated requests return 401
- Standard role denied user administration and campaign status changes (403)
- Admin role can perform privileged operations
- The access guard decision table
"""

import pytest

from memimo_crm.guard import AccessDecision, GuardState, resolve_access


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/admin/users"),
            ("POST", "/api/admin/users"),
            ("GET", "/api/admin/roles"),
            ("GET", "/api/admin/auth-logs"),
            ("GET", "/api/customers"),
            ("POST", "/api/customers"),
            ("GET", "/api/products"),
            ("GET", "/api/products/categories"),
            ("GET", "/api/sales"),
            ("GET", "/api/campaigns"),
            ("GET", "/api/campaigns/channels"),
            ("POST", "/api/campaigns/dispatch"),
            ("GET", "/api/reports/dashboard"),
            ("GET", "/api/reports/sales"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["code"] == "AUTH_REQUIRED"

    def test_garbage_token(self, client):
        resp = client.get("/api/customers", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_non_bearer_header(self, client):
        resp = client.get("/api/customers", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401

    def test_health_is_public(self, client, setup_roles):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"


# =============================================================================
# STANDARD ROLE DENIED ADMIN OPERATIONS (403)
# =============================================================================


class TestStandardDeniedAdmin:
    """Standard role cannot perform privileged operations."""

    def test_cannot_list_users(self, client, staff_headers):
        resp = client.get("/api/admin/users", headers=staff_headers)
        assert resp.status_code == 403
        assert resp.json["code"] == "AUTH_UNAUTHORIZED"

    def test_cannot_create_user(self, client, staff_headers):
        resp = client.post(
            "/api/admin/users",
            json={"email": "x@memimo.local", "password": "secret1", "first_name": "X"},
            headers=staff_headers,
        )
        assert resp.status_code == 403

    def test_cannot_change_campaign_status(self, client, staff_headers):
        created = client.post(
            "/api/campaigns",
            json={"name": "Verano", "channel": "whatsapp"},
            headers=staff_headers,
        )
        assert created.status_code == 201

        resp = client.patch(
            f"/api/campaigns/{created.json['campaign']['id']}/status",
            json={"status": "paused"},
            headers=staff_headers,
        )
        assert resp.status_code == 403
        assert resp.json["code"] == "AUTH_UNAUTHORIZED"

    def test_can_use_day_to_day_screens(self, client, staff_headers):
        for path in ("/api/customers", "/api/products", "/api/sales", "/api/campaigns", "/api/reports/dashboard"):
            resp = client.get(path, headers=staff_headers)
            assert resp.status_code == 200, path


# =============================================================================
# ADMIN ALLOWED
# =============================================================================


class TestAdminAllowed:

    def test_admin_lists_users_and_roles(self, client, admin_headers, staff_user):
        resp = client.get("/api/admin/users", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 2
        assert all("password_hash" not in u for u in resp.json["users"])

        resp = client.get("/api/admin/roles", headers=admin_headers)
        assert sorted(r["name"] for r in resp.json["roles"]) == ["admin", "standard"]


# =============================================================================
# ACCESS GUARD
# =============================================================================


class TestAccessGuard:

    @pytest.mark.parametrize(
        "state,required_role,expected",
        [
            (GuardState(loading=True), None, AccessDecision.LOADING),
            (GuardState(loading=True, authenticated=True, role="admin"), "admin", AccessDecision.LOADING),
            (GuardState(), None, AccessDecision.REDIRECT_LOGIN),
            (GuardState(), "admin", AccessDecision.REDIRECT_LOGIN),
            (GuardState(authenticated=True, role="standard"), "admin", AccessDecision.REDIRECT_INSUFFICIENT_ROLE),
            (GuardState(authenticated=True, role="standard"), None, AccessDecision.AUTHORIZED),
            (GuardState(authenticated=True, role="admin"), "admin", AccessDecision.AUTHORIZED),
        ],
    )
    def test_decision_table(self, state, required_role, expected):
        assert resolve_access(state, required_role) == expected
