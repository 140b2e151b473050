"""
GitHub OAuth login, server-side sessions and the authentication guard.
"""

import secrets
import time
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
import structlog
from fastapi import Request

from library_api.config import APIConfig, config
from library_api.exceptions import AuthenticationError, UnauthorizedError
from library_api.models import Principal, RequestContext

logger = structlog.get_logger(__name__)


class SessionStore:
    """In-memory server-side session storage with TTL."""

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds
        self._data: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def generate_session_id() -> str:
        """Generate a new opaque session identifier."""
        return secrets.token_urlsafe(32)

    def create(self, data: Optional[Dict[str, Any]] = None, ttl_seconds: Optional[int] = None) -> str:
        """
        Create a session. Expired sessions are swept first so abandoned
        logins do not accumulate.

        Args:
            data: Initial session data
            ttl_seconds: Lifetime of this session, defaults to the store TTL

        Returns:
            The new session identifier
        """
        self.cleanup_expired()
        session_id = self.generate_session_id()
        self._data[session_id] = {
            "data": dict(data or {}),
            "expires_at": time.time() + (ttl_seconds or self.ttl_seconds)
        }
        return session_id

    def get(self, session_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Retrieve session data if the session exists and has not expired."""
        if not session_id or session_id not in self._data:
            return None

        entry = self._data[session_id]
        if time.time() > entry["expires_at"]:
            del self._data[session_id]
            return None

        return entry["data"]

    def update(self, session_id: str, data: Dict[str, Any]) -> bool:
        """
        Merge data into an existing session.

        Returns:
            True if updated, False if the session is missing or expired
        """
        current = self.get(session_id)
        if current is None:
            return False
        current.update(data)
        return True

    def delete(self, session_id: Optional[str]) -> None:
        """Delete a session."""
        if session_id:
            self._data.pop(session_id, None)

    def cleanup_expired(self) -> int:
        """
        Remove expired sessions.

        Returns:
            Number of sessions removed
        """
        now = time.time()
        expired = [key for key, entry in self._data.items() if now > entry["expires_at"]]
        for key in expired:
            del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._data)


sessions = SessionStore(ttl_seconds=config.session_max_age)


def generate_state() -> str:
    """Generate a random state parameter for CSRF protection."""
    return secrets.token_urlsafe(32)


def _json_object(response: httpx.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as e:
        raise AuthenticationError(f"GitHub returned a non-JSON response: {e}") from e
    if not isinstance(payload, dict):
        raise AuthenticationError("GitHub returned an unexpected response")
    return payload


def build_authorization_url(state: str, settings: APIConfig = config) -> str:
    """Build the GitHub authorize URL the browser is redirected to."""
    params = {
        "client_id": settings.github_client_id,
        "redirect_uri": settings.get_callback_url(),
        "scope": settings.github_scope,
        "state": state,
    }
    return f"{settings.github_authorize_url}?{urlencode(params)}"


async def exchange_code_for_token(code: str, settings: APIConfig = config) -> str:
    """
    Exchange an authorization code for a GitHub access token.

    Args:
        code: Authorization code from the callback

    Returns:
        The access token

    Raises:
        AuthenticationError: If GitHub rejects the code
    """
    token_data = {
        "client_id": settings.github_client_id,
        "client_secret": settings.github_client_secret,
        "code": code,
        "redirect_uri": settings.get_callback_url(),
    }

    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.post(
            settings.github_token_url,
            data=token_data,
            headers={"Accept": "application/json"}
        )
        response.raise_for_status()
        payload = _json_object(response)

    # GitHub reports bad codes with a 200 and an "error" field
    access_token = payload.get("access_token")
    if not access_token:
        raise AuthenticationError(payload.get("error_description") or payload.get("error") or "No access token returned")
    return access_token


async def fetch_github_profile(access_token: str, settings: APIConfig = config) -> Dict[str, Any]:
    """Fetch the authenticated user's GitHub profile."""
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/vnd.github+json",
    }
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.get(settings.github_user_url, headers=headers)
        response.raise_for_status()
        return _json_object(response)


def authenticate_github_user(access_token: str, profile: Dict[str, Any]) -> Principal:
    """
    Turn a completed GitHub handshake into a session principal.

    Args:
        access_token: Token issued by GitHub (not stored)
        profile: GitHub user profile

    Returns:
        The principal to store in the session

    Raises:
        AuthenticationError: If the profile carries no username
    """
    if not access_token:
        raise AuthenticationError("Missing access token")

    username = profile.get("login") or profile.get("username")
    if not username:
        raise AuthenticationError("GitHub profile has no username")

    logger.info("GitHub OAuth successful", username=username)
    return Principal(username=username, provider="github", profile=profile)


async def require_principal(request: Request) -> RequestContext:
    """
    Resolve the logged-in principal for a request.

    Raises:
        UnauthorizedError: If the session has no principal
    """
    session_id = request.cookies.get(config.session_cookie_name)
    session = sessions.get(session_id)
    if not session or "principal" not in session:
        logger.warning("Unauthenticated request rejected", path=request.url.path)
        raise UnauthorizedError("You must be logged in to access this resource")

    return RequestContext(
        principal=Principal(**session["principal"]),
        session_id=session_id
    )
