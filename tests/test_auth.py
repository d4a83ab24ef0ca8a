"""
Tests for sign-in, the session-token fallback and page protection
"""
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from conftest import PASSWORD


@pytest.mark.integration
class TestApiLogin:
    """Tests for the primary Flask-Login session"""

    def test_login_with_username(self, client, users):
        response = client.post("/api/auth/login", json={"username": "finance", "password": PASSWORD})
        assert response.status_code == 200
        assert response.get_json()["user"]["role"] == "FINANCE"

    def test_login_with_email_is_case_insensitive(self, client, users):
        response = client.post("/api/auth/login", json={"email": "FINANCE@ampere.test", "password": PASSWORD})
        assert response.status_code == 200

    def test_wrong_password(self, client, users):
        response = client.post("/api/auth/login", json={"username": "finance", "password": "nope"})
        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid credentials"

    def test_inactive_user_cannot_login(self, client, make_user):
        make_user("dormant", "SALES", active=False)
        response = client.post("/api/auth/login", json={"username": "dormant", "password": PASSWORD})
        assert response.status_code == 401
        assert response.get_json()["error"] == "Account is inactive"

    def test_login_stamps_last_login(self, client, users):
        client.post("/api/auth/login", json={"username": "sales", "password": PASSWORD})
        assert users["SALES"].last_login_at is not None

    def test_missing_password_is_invalid_input(self, client, users):
        response = client.post("/api/auth/login", json={"username": "sales"})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid input"

    def test_session_endpoint(self, login_as):
        signed_in = login_as("ADMIN")
        assert signed_in.get("/api/auth/session").get_json()["user"]["name"] == "admin"

    def test_logout(self, login_as):
        signed_in = login_as("ADMIN")
        signed_in.post("/api/auth/logout")
        assert signed_in.get("/api/auth/session").get_json()["user"] is None


@pytest.mark.integration
class TestSessionTokenCookie:
    """Tests for the JWT session-token fallback"""

    def test_custom_login_sets_cookie(self, client, users):
        response = client.post("/api/custom-login", json={"username": "admin", "password": PASSWORD})
        assert response.status_code == 200
        cookies = response.headers.getlist("Set-Cookie")
        assert any(c.startswith("session-token=") and "HttpOnly" in c for c in cookies)
        assert any(c.startswith("auth-method=custom") for c in cookies)

    def test_cookie_authenticates_api_calls(self, client, users):
        client.post("/api/custom-login", json={"username": "admin", "password": PASSWORD})
        response = client.get("/api/clients")
        assert response.status_code == 200

    def test_tampered_cookie_is_rejected(self, client, users):
        client.set_cookie("session-token", "not-a-jwt")
        assert client.get("/api/clients").status_code == 401

    def test_expired_cookie_is_rejected(self, app, client, users):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"id": users["ADMIN"].id, "iat": past - timedelta(hours=24), "exp": past},
            app.config["SECRET_KEY"],
            algorithm="HS256",
        )
        client.set_cookie("session-token", token)
        assert client.get("/api/clients").status_code == 401

    def test_cookie_for_deactivated_user_is_rejected(self, db, client, users):
        client.post("/api/custom-login", json={"username": "sales", "password": PASSWORD})
        users["SALES"].is_active = False
        db.session.commit()
        assert client.get("/api/clients").status_code == 401


@pytest.mark.integration
class TestPageProtection:
    """Tests for page redirects and API 401s"""

    def test_api_requires_session(self, client):
        response = client.get("/api/clients")
        assert response.status_code == 401
        assert response.get_json() == {"error": "Unauthorized"}

    def test_protected_page_redirects_to_login(self, client):
        response = client.get("/dashboard")
        assert response.status_code == 302
        assert "/auth/login?callbackUrl=%2Fdashboard" in response.headers["Location"]

    def test_login_page_renders(self, client):
        response = client.get("/auth/login")
        assert response.status_code == 200
        assert b"Sign in" in response.data

    def test_form_login_redirects_to_callback(self, client, users):
        response = client.post(
            "/auth/login?callbackUrl=/clients",
            data={"username": "admin", "password": PASSWORD},
        )
        assert response.status_code == 302
        assert response.headers["Location"].endswith("/clients")

    def test_form_login_ignores_external_callback(self, client, users):
        response = client.post(
            "/auth/login?callbackUrl=https://evil.test/",
            data={"username": "admin", "password": PASSWORD},
        )
        assert response.headers["Location"].endswith("/dashboard")

    def test_dashboard_renders_when_signed_in(self, login_as):
        response = login_as("PROJECT_MANAGER").get("/dashboard")
        assert response.status_code == 200
        assert b"Dashboard" in response.data


@pytest.mark.integration
class TestSignup:
    """Tests for self-registration"""

    def test_signup_creates_user(self, client):
        response = client.post("/api/signup", json={
            "name": "newbie",
            "email": "Newbie@Ampere.test",
            "password": "longenough",
            "firstName": "New",
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["message"] == "User created successfully"
        assert body["user"]["email"] == "newbie@ampere.test"

    @pytest.mark.parametrize("role", ["WIZARD", "ADMIN", ""])
    def test_role_outside_signup_roles_becomes_project_manager(self, client, role):
        response = client.post("/api/signup", json={
            "name": "newbie",
            "email": "newbie@ampere.test",
            "password": "longenough",
            "role": role,
        })
        assert response.status_code == 201
        assert response.get_json()["user"]["role"] == "PROJECT_MANAGER"

    def test_signup_keeps_valid_role(self, client):
        response = client.post("/api/signup", json={
            "name": "ledger", "email": "ledger@ampere.test", "password": "longenough", "role": "FINANCE",
        })
        assert response.get_json()["user"]["role"] == "FINANCE"

    def test_duplicate_email(self, client, users):
        response = client.post("/api/signup", json={
            "name": "someone",
            "email": "admin@ampere.test",
            "password": "longenough",
        })
        assert response.status_code == 400
        assert response.get_json()["error"] == "User with this email already exists"

    def test_short_password(self, client):
        response = client.post("/api/signup", json={"name": "x", "email": "x@ampere.test", "password": "123"})
        assert response.status_code == 400
