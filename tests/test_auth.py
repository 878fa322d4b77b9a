"""Test the auth module."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from zone_uptime import auth
from zone_uptime.config import Settings


def _settings(*, auth_enabled: bool = True) -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        AUTH_ENABLED=auth_enabled,
        AUTH_USERNAME="admin",
        AUTH_PASSWORD="secret",
    )


def _request_with_session(
    session_data: dict | None = None, *, auth_enabled: bool = True
) -> Request:
    app = SimpleNamespace(state=SimpleNamespace(settings=_settings(auth_enabled=auth_enabled)))
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [],
        "app": app,
        "session": session_data if session_data is not None else {},
    }
    return Request(scope)


def test_verify_credentials_accepts_single_configured_user() -> None:
    settings = _settings()

    assert auth.verify_credentials("admin", "secret", settings=settings)
    assert not auth.verify_credentials("admin", "wrong", settings=settings)
    assert not auth.verify_credentials("wrong", "secret", settings=settings)


def test_require_authenticated_user_rejects_unauthorized_request() -> None:
    request = _request_with_session()

    with pytest.raises(HTTPException) as error:
        auth.require_authenticated_user(request)

    assert error.value.status_code == 401


def test_require_authenticated_user_allows_authenticated_session() -> None:
    request = _request_with_session({auth.AUTH_SESSION_KEY: True})

    auth.require_authenticated_user(request)


def test_require_authenticated_user_skips_when_auth_disabled() -> None:
    request = _request_with_session(auth_enabled=False)

    auth.require_authenticated_user(request)
    assert auth.is_authenticated(request) is True


def test_login_and_logout_update_the_session() -> None:
    session: dict = {}
    request = _request_with_session(session)

    auth.set_authenticated(request)
    assert auth.is_authenticated(request) is True

    auth.clear_authenticated(request)
    assert auth.is_authenticated(request) is False


def test_mask_url_hides_host_and_path() -> None:
    assert auth.mask_url("https://example.com/health") == "https://e***/***"
    assert auth.mask_url("https://example.com/health?token=abc") == "https://e***/***"
    assert auth.mask_url("not a url") == "***"
