"""
Tests for the GitHub login flow endpoints.
"""

import time
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from library_api.auth import sessions
from library_api.config import config
from library_api.main import LOGIN_TTL_SECONDS, app


@pytest.fixture
def github_configured(monkeypatch):
    """Pretend OAuth credentials are configured."""
    monkeypatch.setattr(config, "github_client_id", "client-123")
    monkeypatch.setattr(config, "github_client_secret", "secret-456")
    monkeypatch.setattr(config, "github_callback_url", "http://localhost:3000/auth/github/callback")


def _start_login(client):
    response = client.get("/auth/github", follow_redirects=False)
    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    return parse_qs(location.query)["state"][0]


def test_home_anonymous(client):
    """Home reports logged-out sessions."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["authenticated"] is False
    assert data["user"] is None


def test_home_logged_in(auth_client):
    """Home reports the logged-in user."""
    data = auth_client.get("/").json()
    assert data["authenticated"] is True
    assert data["user"]["username"] == "octocat"
    assert data["message"] == "Logged in as octocat"


def test_login_redirects_to_github(client, github_configured):
    """Login redirects to GitHub with the configured client and a state."""
    response = client.get("/auth/github", follow_redirects=False)

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.netloc == "github.com"
    query = parse_qs(location.query)
    assert query["client_id"] == ["client-123"]
    assert query["redirect_uri"] == ["http://localhost:3000/auth/github/callback"]
    assert query["state"][0]
    assert config.session_cookie_name in response.cookies


def test_login_without_credentials(client, monkeypatch):
    """Unconfigured OAuth sends the user home with an error."""
    monkeypatch.setattr(config, "github_client_id", "")
    response = client.get("/auth/github", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/?error=oauth_not_configured"


def test_callback_logs_user_in(client, github_configured, mock_gateway):
    """A valid callback establishes a session that unlocks /books."""
    state = _start_login(client)

    with patch("library_api.main.exchange_code_for_token", AsyncMock(return_value="gho_token")), \
            patch("library_api.main.fetch_github_profile", AsyncMock(return_value={"login": "octocat", "id": 1})):
        response = client.get(
            f"/auth/github/callback?code=abc&state={state}",
            follow_redirects=False
        )

    assert response.status_code == 302
    assert response.headers["location"] == "/"
    assert client.get("/").json()["user"]["username"] == "octocat"
    assert client.get("/books").status_code == 200


def test_callback_rejects_wrong_state(client, github_configured):
    """A mismatched state never reaches GitHub."""
    _start_login(client)

    with patch("library_api.main.exchange_code_for_token", AsyncMock()) as exchange:
        response = client.get(
            "/auth/github/callback?code=abc&state=forged",
            follow_redirects=False
        )

    assert response.headers["location"] == "/?error=invalid_state"
    exchange.assert_not_awaited()
    assert client.get("/").json()["authenticated"] is False


def test_callback_access_denied(client, github_configured):
    """Users who decline on GitHub are sent home with an error."""
    state = _start_login(client)
    response = client.get(
        f"/auth/github/callback?error=access_denied&state={state}",
        follow_redirects=False
    )
    assert response.headers["location"] == "/?error=access_denied"


def test_login_session_is_short_lived(client, github_configured):
    """Pending logins expire after ten minutes, well before a logged-in session."""
    response = client.get("/auth/github", follow_redirects=False)

    assert f"Max-Age={LOGIN_TTL_SECONDS}" in response.headers["set-cookie"]
    pending_id = response.cookies[config.session_cookie_name]
    expires_at = sessions._data[pending_id]["expires_at"]
    assert expires_at - time.time() <= LOGIN_TTL_SECONDS


def test_abandoned_logins_are_swept(client, github_configured):
    """Starting a login clears pending logins that have expired."""
    now = time.time()
    with patch("library_api.auth.time.time", return_value=now):
        baseline = len(sessions)
        for _ in range(50):
            _start_login(client)
    assert len(sessions) == baseline + 50

    with patch("library_api.auth.time.time", return_value=now + LOGIN_TTL_SECONDS + 1):
        _start_login(client)
    assert len(sessions) <= baseline + 1


def test_callback_github_failure(client, github_configured):
    """Errors talking to GitHub end the login attempt."""
    state = _start_login(client)

    with patch("library_api.main.exchange_code_for_token",
               AsyncMock(side_effect=httpx.ConnectError("unreachable"))):
        response = client.get(
            f"/auth/github/callback?code=abc&state={state}",
            follow_redirects=False
        )

    assert response.headers["location"] == "/?error=internal_error"
    assert client.get("/").json()["authenticated"] is False


def test_callback_non_json_from_github(client, github_configured):
    """A GitHub reply that is not JSON ends the login attempt instead of a 500."""
    state = _start_login(client)

    with patch("library_api.main.exchange_code_for_token",
               AsyncMock(side_effect=ValueError("Expecting value: line 1 column 1 (char 0)"))):
        response = client.get(
            f"/auth/github/callback?code=abc&state={state}",
            follow_redirects=False
        )

    assert response.status_code == 302
    assert response.headers["location"] == "/?error=internal_error"
    assert client.get("/").json()["authenticated"] is False


def test_logout_destroys_session(session_id, auth_client):
    """Logout removes the server-side session."""
    response = auth_client.get("/logout", follow_redirects=False)

    assert response.status_code == 302
    assert sessions.get(session_id) is None


def test_api_docs_served(client):
    """Swagger UI and the API description are available without login."""
    assert client.get("/api-docs").status_code == 200
    schema = client.get("/openapi.json").json()
    assert "/books" in schema["paths"]
    assert "/books/{book_id}" in schema["paths"]


def test_api_description_comes_from_settings():
    """The configured description heads the generated API description."""
    assert config.api_description in app.description
