"""Session authentication and URL-masking helpers."""

from __future__ import annotations

import hmac
from urllib.parse import urlsplit, urlunsplit

from fastapi import HTTPException, Request, status

from zone_uptime.config import Settings

AUTH_SESSION_KEY = "authenticated"


def get_app_settings(request: Request) -> Settings:
    """Return the settings the running application was created with."""
    return request.app.state.settings


def is_authenticated(request: Request) -> bool:
    """Return whether the current request may see and change monitors."""
    if not get_app_settings(request).auth_enabled:
        return True
    return bool(request.session.get(AUTH_SESSION_KEY, False))


def verify_credentials(username: str, password: str, settings: Settings) -> bool:
    """Validate username and password against the configured dashboard user."""
    username_ok = hmac.compare_digest(username.encode(), settings.auth_username.encode())
    password_ok = hmac.compare_digest(password.encode(), settings.auth_password.encode())
    return username_ok and password_ok


def set_authenticated(request: Request) -> None:
    request.session[AUTH_SESSION_KEY] = True


def clear_authenticated(request: Request) -> None:
    request.session.pop(AUTH_SESSION_KEY, None)


def require_authenticated_user(request: Request) -> None:
    """Dependency rejecting anonymous requests when auth is enabled."""
    if not is_authenticated(request):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )


def mask_url(url: str) -> str:
    """Hide a monitor's host and path from anonymous viewers."""
    parsed = urlsplit(url)
    host = parsed.netloc

    if not host:
        return "***"

    masked_host = host[0] + "***" if len(host) > 1 else "*"
    masked = parsed._replace(netloc=masked_host, path="/***", query="", fragment="")
    return urlunsplit(masked)
