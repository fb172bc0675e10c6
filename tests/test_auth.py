"""
Tests for sign-in, sessions and the current-user endpoint.
"""
from urllib.parse import parse_qs, urlparse

from studio.core.security import IMPERSONATION_COOKIE, SESSION_COOKIE
from studio.database.models import User


def _state_from(auth_url):
    return parse_qs(urlparse(auth_url).query)["state"][0]


class TestPasswordLogin:
    """POST /api/auth/login"""

    def test_login_sets_session_cookie(self, client, make_user):
        make_user("staff@jkkn.ac.in", password="correct horse")

        response = client.post("/api/auth/login", json={"email": "Staff@JKKN.ac.in", "password": "correct horse"})

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["email"] == "staff@jkkn.ac.in"
        assert body["token"]
        assert SESSION_COOKIE in response.cookies

    def test_wrong_password_is_401(self, client, make_user):
        make_user("staff@jkkn.ac.in", password="correct horse")

        response = client.post("/api/auth/login", json={"email": "staff@jkkn.ac.in", "password": "wrong"})

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"

    def test_missing_fields_are_400(self, client):
        response = client.post("/api/auth/login", json={"email": "staff@jkkn.ac.in"})

        assert response.status_code == 400
        assert response.json()["error"] == "Email and password are required"

    def test_google_only_account_cannot_use_password(self, client, make_user):
        make_user("oauth@jkkn.ac.in")

        response = client.post("/api/auth/login", json={"email": "oauth@jkkn.ac.in", "password": "anything"})

        assert response.status_code == 401


class TestGoogleSignIn:
    """GET /api/auth/login and /api/auth/callback"""

    def test_login_url_points_at_google(self, client):
        response = client.get("/api/auth/login", params={"next": "/cycle/new"})

        assert response.status_code == 200
        url = response.json()["authUrl"]
        assert url.startswith("https://accounts.google.com/")
        assert "client_id=test-client-id" in url

    def test_new_user_without_institution_is_sent_to_picker(self, client, monkeypatch, fake_response, count):
        state = _state_from(client.get("/api/auth/login").json()["authUrl"])
        monkeypatch.setattr(
            "studio.services.auth_service.requests.post",
            lambda *args, **kwargs: fake_response({"access_token": "google-token"}),
        )
        monkeypatch.setattr(
            "studio.services.auth_service.requests.get",
            lambda *args, **kwargs: fake_response({"email": "Fresh@jkkn.ac.in", "name": "Fresh Learner"}),
        )

        response = client.get(
            "/api/auth/callback", params={"code": "abc", "state": state}, follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/select-institution"
        assert SESSION_COOKIE in response.cookies
        assert count(User, email="fresh@jkkn.ac.in") == 1

    def test_existing_member_returns_to_next(self, client, monkeypatch, fake_response, learner):
        state = _state_from(client.get("/api/auth/login", params={"next": "/cycle/new"}).json()["authUrl"])
        monkeypatch.setattr(
            "studio.services.auth_service.requests.post",
            lambda *args, **kwargs: fake_response({"access_token": "google-token"}),
        )
        monkeypatch.setattr(
            "studio.services.auth_service.requests.get",
            lambda *args, **kwargs: fake_response({"email": "learner@jkkn.ac.in"}),
        )

        response = client.get(
            "/api/auth/callback", params={"code": "abc", "state": state}, follow_redirects=False
        )

        assert response.headers["location"] == "/cycle/new"

    def test_outside_domain_is_refused(self, client, monkeypatch, fake_response, count):
        state = _state_from(client.get("/api/auth/login").json()["authUrl"])
        monkeypatch.setattr(
            "studio.services.auth_service.requests.post",
            lambda *args, **kwargs: fake_response({"access_token": "google-token"}),
        )
        monkeypatch.setattr(
            "studio.services.auth_service.requests.get",
            lambda *args, **kwargs: fake_response({"email": "someone@gmail.com"}),
        )

        response = client.get(
            "/api/auth/callback", params={"code": "abc", "state": state}, follow_redirects=False
        )

        assert response.headers["location"] == "/login?error=domain_not_allowed"
        assert count(User) == 0

    def test_tampered_state_fails_sign_in(self, client):
        response = client.get(
            "/api/auth/callback", params={"code": "abc", "state": "not-a-token"}, follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/login?error=auth_callback_error"


class TestCurrentUser:
    """GET /api/auth/me and POST /api/auth/logout"""

    def test_me_requires_session(self, client):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    def test_me_returns_profile_with_institution(self, client, learner):
        user_id, headers = learner

        response = client.get("/api/auth/me", headers=headers)

        body = response.json()
        assert body["user"]["id"] == user_id
        assert body["user"]["institution"]["short_name"] == "JKKNCET"
        assert body["isImpersonating"] is False

    def test_session_cookie_works_like_bearer_header(self, client, learner):
        user_id, headers = learner
        client.cookies.set(SESSION_COOKIE, headers["Authorization"].split(" ", 1)[1])

        response = client.get("/api/auth/me")

        assert response.json()["user"]["id"] == user_id

    def test_logout_clears_cookies(self, client):
        response = client.post("/api/auth/logout")

        assert response.json() == {"success": True}
        cookies = response.headers.get_list("set-cookie")
        assert any(c.startswith(f"{SESSION_COOKIE}=") for c in cookies)
        assert any(c.startswith(f"{IMPERSONATION_COOKIE}=") for c in cookies)
