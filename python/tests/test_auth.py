"""Integration tests for the authentication middleware.

Tests the full auth flow including:
- Bearer token validation (missing, malformed, bad signature, expired)
- Query-string tokens
- Public routes reachable without a token
- User tokens refused on /admin and staff tokens refused elsewhere
- Live staff account checks on every /admin request
"""

import pytest
from fastapi.testclient import TestClient

from kivendi.app import create_app
from kivendi.auth.verifier import JwtTokenVerifier, mint_token
from tests.factories import create_admin, create_user
from tests.helpers import (
    TEST_JWT_SECRET,
    auth_headers,
    error_code,
    staff_headers,
    staff_token,
    user_token,
)


class TestAuthBoundary:
    """Tests for the authentication boundary.

    These tests verify that unauthenticated requests are rejected correctly.
    """

    def test_no_authorization_header(self, client):
        """No Authorization header returns 401 E_UNAUTHENTICATED."""
        response = client.get("/api/v1/conversations")

        assert response.status_code == 401
        body = response.json()
        assert body["error"]["code"] == "E_UNAUTHENTICATED"
        assert "authentication" in body["error"]["message"].lower()

    def test_wrong_authorization_format(self, client):
        response = client.get("/api/v1/conversations", headers={"Authorization": "Basic abc123"})

        assert response.status_code == 401
        assert error_code(response) == "E_UNAUTHENTICATED"

    def test_empty_bearer_token(self, client):
        response = client.get("/api/v1/conversations", headers={"Authorization": "Bearer   "})

        assert response.status_code == 401

    def test_bad_signature(self, client, engine):
        token = mint_token("some-other-secret", 1)

        response = client.get(
            "/api/v1/conversations", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid token signature"

    def test_expired_token(self, client, engine):
        token = user_token(1, expires_in=-3600)

        response = client.get(
            "/api/v1/conversations", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Token expired"

    def test_error_carries_request_id(self, client):
        response = client.get("/api/v1/conversations")

        assert response.json()["error"]["request_id"] == response.headers["X-Request-ID"]


class TestTokenTransport:
    """Tests for where the token may come from."""

    def test_query_token_accepted(self, client, db_session):
        user = create_user(db_session)

        response = client.get(f"/api/v1/conversations?token={user_token(user.id)}")

        assert response.status_code == 200

    def test_header_wins_over_query(self, client, db_session):
        user = create_user(db_session)

        response = client.get(
            f"/api/v1/conversations?token={user_token(user.id)}",
            headers={"Authorization": "Basic nope"},
        )

        assert response.status_code == 401


class TestPublicRoutes:
    """Routes reachable without any token."""

    @pytest.mark.parametrize(
        "path", ["/health", "/api/v1/boost-offers", "/api/v1/boosted-ads"]
    )
    def test_public_get(self, client, engine, path):
        response = client.get(path)

        assert response.status_code == 200

    def test_public_pattern_is_method_specific(self, client):
        """Only GET is public on the offer catalog."""
        response = client.post("/api/v1/boost-offers", json={})

        assert response.status_code == 401


class TestIdentityKinds:
    """User and staff tokens are not interchangeable."""

    def test_staff_token_refused_on_user_route(self, client, db_session):
        admin = create_admin(db_session)

        response = client.get("/api/v1/conversations", headers=staff_headers(admin.id))

        assert response.status_code == 401
        assert error_code(response) == "E_UNAUTHENTICATED"

    def test_user_token_refused_on_admin_route(self, client, db_session):
        user = create_user(db_session)

        response = client.get("/api/v1/admin/staff", headers=auth_headers(user.id))

        assert response.status_code == 403
        assert error_code(response) == "E_FORBIDDEN"

    def test_unknown_role_refused(self, client, db_session):
        admin = create_admin(db_session)
        token = mint_token(TEST_JWT_SECRET, admin.id, role="superuser")

        response = client.get(
            "/api/v1/admin/staff", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 403


class TestStaffAccountChecks:
    """The admins table is consulted on every back-office request."""

    def test_active_staff(self, client, db_session):
        admin = create_admin(db_session, name="Fatou")

        response = client.get("/api/v1/admin/staff", headers=staff_headers(admin.id))

        assert response.status_code == 200
        assert [s["name"] for s in response.json()["data"]] == ["Fatou"]

    def test_disabled_staff(self, client, db_session):
        admin = create_admin(db_session, is_active=False)

        response = client.get("/api/v1/admin/staff", headers=staff_headers(admin.id))

        assert response.status_code == 403
        assert error_code(response) == "E_STAFF_DISABLED"

    def test_deactivation_applies_before_expiry(self, client, db_session):
        """A token minted while active stops working once the account is disabled."""
        admin = create_admin(db_session)
        headers = {"Authorization": f"Bearer {staff_token(admin.id)}"}
        assert client.get("/api/v1/admin/staff", headers=headers).status_code == 200

        admin.is_active = False
        db_session.commit()

        assert client.get("/api/v1/admin/staff", headers=headers).status_code == 403

    def test_unknown_staff(self, client, engine):
        response = client.get("/api/v1/admin/staff", headers=staff_headers(777777))

        assert response.status_code == 401
        assert error_code(response) == "E_UNAUTHENTICATED"

    def test_lookup_failure_is_internal_error(self, engine, gateway, push_transport, object_store):
        def broken_lookup(admin_id: int) -> bool | None:
            raise RuntimeError("database unavailable")

        app = create_app(
            token_verifier=JwtTokenVerifier(TEST_JWT_SECRET),
            payment_gateway=gateway,
            push_transport=push_transport,
            object_store=object_store,
            run_expiry_loop=False,
            staff_status_lookup=broken_lookup,
        )
        with TestClient(app) as client:
            response = client.get("/api/v1/admin/staff", headers=staff_headers(1))

        assert response.status_code == 500
        assert error_code(response) == "E_INTERNAL"
