"""API routes and request/response schemas for monitors, checks and settings."""

from __future__ import annotations

from datetime import datetime
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError

from zone_uptime.auth import (
    clear_authenticated,
    get_app_settings,
    is_authenticated,
    mask_url,
    require_authenticated_user,
    set_authenticated,
    verify_credentials,
)
from zone_uptime.context import MonitorContext
from zone_uptime.db.models import Monitor
from zone_uptime.db.store import (
    RETENTION_DAYS_KEY,
    MonitorExistsError,
    MonitorStats,
    MonitorStore,
    clamp_retention_days,
)
from zone_uptime.discovery import sync_zones

router = APIRouter()


def get_store(request: Request) -> MonitorStore:
    return request.app.state.store


def get_context(request: Request) -> MonitorContext:
    return request.app.state.context


def _validate_http_url(value: str) -> str:
    value = value.strip()
    parsed = urlsplit(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid URL")
    return value


class MonitorCreate(BaseModel):
    """Payload for adding a manual monitor."""

    url: str = Field(..., min_length=1, max_length=2048)
    name: str | None = Field(None, max_length=255)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _validate_http_url(value)


class MonitorUpdate(BaseModel):
    """Payload for renaming a monitor or pointing it at a new URL."""

    url: str | None = Field(None, min_length=1, max_length=2048)
    name: str | None = Field(None, min_length=1, max_length=255)

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str | None) -> str | None:
        return None if value is None else _validate_http_url(value)


class MonitorResponse(BaseModel):
    """Serialized monitor."""

    id: int
    url: str
    name: str
    source: str
    is_active: bool
    user_paused: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CheckResponse(BaseModel):
    """Serialized check result."""

    id: int
    monitor_id: int
    status_code: int | None
    response_ms: int | None
    is_up: bool
    error: str | None
    error_type: str | None
    checked_at: datetime

    model_config = {"from_attributes": True}


class IncidentResponse(BaseModel):
    """Serialized incident."""

    id: int
    monitor_id: int
    started_at: datetime
    resolved_at: datetime | None
    notified_down: bool
    notified_up: bool

    model_config = {"from_attributes": True}


class MonitorStatsResponse(BaseModel):
    """Dashboard row with 24h uptime for an active monitor."""

    id: int
    url: str
    name: str
    source: str
    is_active: bool
    up_24h: int
    total_24h: int
    uptime_percentage: float | None
    last_response_ms: int | None
    current_status: bool | None


class SettingsResponse(BaseModel):
    retention_days: int


class SettingsUpdate(BaseModel):
    retention_days: float | None = None


class SyncResponse(BaseModel):
    """Summary of a zone reconciliation run."""

    pages: int
    complete: bool
    domains: int
    created: int
    updated: int
    skipped_deleted: int
    deactivated: int
    reactivated: int


class LoginRequest(BaseModel):
    """Login request payload."""

    username: str
    password: str


class AuthStateResponse(BaseModel):
    """Authentication state response payload."""

    authenticated: bool
    auth_enabled: bool


def _serialize_monitor(monitor: Monitor, expose_url: bool) -> MonitorResponse:
    response = MonitorResponse.model_validate(monitor)
    if not expose_url:
        response.url = mask_url(monitor.url)
    return response


def _serialize_stats(stats: MonitorStats, expose_url: bool) -> MonitorStatsResponse:
    monitor = stats.monitor
    uptime = (stats.up_24h / stats.total_24h * 100) if stats.total_24h else None
    return MonitorStatsResponse(
        id=monitor.id,
        url=monitor.url if expose_url else mask_url(monitor.url),
        name=monitor.name,
        source=monitor.source,
        is_active=monitor.is_active,
        up_24h=stats.up_24h,
        total_24h=stats.total_24h,
        uptime_percentage=round(uptime, 2) if uptime is not None else None,
        last_response_ms=stats.last_response_ms,
        current_status=stats.current_status,
    )


async def _require_monitor(store: MonitorStore, monitor_id: int) -> Monitor:
    monitor = await store.get_monitor(monitor_id)
    if monitor is None:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return monitor


@router.get("/auth/me", response_model=AuthStateResponse)
async def auth_me(request: Request) -> AuthStateResponse:
    """Return authentication state for the current request."""
    settings = get_app_settings(request)
    return AuthStateResponse(
        authenticated=is_authenticated(request),
        auth_enabled=settings.auth_enabled,
    )


@router.post("/auth/login", response_model=AuthStateResponse)
async def auth_login(payload: LoginRequest, request: Request) -> AuthStateResponse:
    """Authenticate a user session."""
    settings = get_app_settings(request)

    if not settings.auth_enabled:
        return AuthStateResponse(authenticated=True, auth_enabled=False)

    if not verify_credentials(payload.username, payload.password, settings=settings):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    set_authenticated(request)
    return AuthStateResponse(authenticated=True, auth_enabled=True)


@router.post("/auth/logout", response_model=AuthStateResponse)
async def auth_logout(request: Request) -> AuthStateResponse:
    """Log out the current user session."""
    clear_authenticated(request)
    return AuthStateResponse(
        authenticated=False, auth_enabled=get_app_settings(request).auth_enabled
    )


@router.get("/monitors", response_model=list[MonitorResponse])
async def list_monitors(
    request: Request,
    store: MonitorStore = Depends(get_store),
) -> list[MonitorResponse]:
    """List all monitors that have not been deleted."""
    expose_url = is_authenticated(request)
    monitors = await store.get_all_monitors()
    return [_serialize_monitor(monitor, expose_url=expose_url) for monitor in monitors]


@router.post("/monitors", response_model=MonitorResponse, status_code=201)
async def create_monitor(
    payload: MonitorCreate,
    store: MonitorStore = Depends(get_store),
    _: None = Depends(require_authenticated_user),
) -> Monitor:
    """Add a manual monitor."""
    try:
        return await store.create_monitor(payload.url, payload.name)
    except (MonitorExistsError, IntegrityError) as e:
        raise HTTPException(status_code=409, detail="Monitor already exists") from e


@router.get("/monitors/{monitor_id}", response_model=MonitorResponse)
async def get_monitor(
    monitor_id: int,
    request: Request,
    store: MonitorStore = Depends(get_store),
) -> MonitorResponse:
    """Fetch a monitor by ID."""
    monitor = await _require_monitor(store, monitor_id)
    return _serialize_monitor(monitor, expose_url=is_authenticated(request))


@router.put("/monitors/{monitor_id}", response_model=MonitorResponse)
async def update_monitor(
    monitor_id: int,
    payload: MonitorUpdate,
    store: MonitorStore = Depends(get_store),
    _: None = Depends(require_authenticated_user),
) -> Monitor:
    """Rename a monitor or change its URL."""
    try:
        monitor = await store.update_monitor(monitor_id, url=payload.url, name=payload.name)
    except IntegrityError as e:
        raise HTTPException(status_code=409, detail="Monitor already exists") from e
    if monitor is None:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return monitor


@router.delete("/monitors/{monitor_id}", status_code=204)
async def delete_monitor(
    monitor_id: int,
    store: MonitorStore = Depends(get_store),
    _: None = Depends(require_authenticated_user),
) -> Response:
    """Soft-delete a monitor so zone sync never brings it back."""
    if not await store.delete_monitor(monitor_id):
        raise HTTPException(status_code=404, detail="Monitor not found")
    return Response(status_code=204)


@router.post("/monitors/{monitor_id}/toggle", response_model=MonitorResponse)
async def toggle_monitor(
    monitor_id: int,
    store: MonitorStore = Depends(get_store),
    _: None = Depends(require_authenticated_user),
) -> Monitor:
    """Pause or resume a monitor."""
    monitor = await store.toggle_monitor(monitor_id)
    if monitor is None:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return monitor


@router.get("/monitors/{monitor_id}/checks", response_model=list[CheckResponse])
async def get_monitor_checks(
    monitor_id: int,
    limit: int = Query(default=288, ge=1, le=10000),
    store: MonitorStore = Depends(get_store),
) -> list:
    """Return the most recent checks for a monitor, newest first."""
    await _require_monitor(store, monitor_id)
    return await store.get_recent_checks(monitor_id, limit)


@router.get("/monitors/{monitor_id}/incidents", response_model=list[IncidentResponse])
async def get_monitor_incidents(
    monitor_id: int,
    limit: int = Query(default=20, ge=1, le=500),
    store: MonitorStore = Depends(get_store),
) -> list:
    """Return the most recent incidents for a monitor, newest first."""
    await _require_monitor(store, monitor_id)
    return await store.get_monitor_incidents(monitor_id, limit)


@router.get("/stats", response_model=list[MonitorStatsResponse])
async def get_stats(
    request: Request,
    store: MonitorStore = Depends(get_store),
) -> list[MonitorStatsResponse]:
    """Return 24h uptime for active monitors, failing ones first."""
    expose_url = is_authenticated(request)
    return [_serialize_stats(row, expose_url) for row in await store.get_monitor_stats()]


@router.post("/sync-zones", response_model=SyncResponse)
async def trigger_zone_sync(
    ctx: MonitorContext = Depends(get_context),
    _: None = Depends(require_authenticated_user),
) -> SyncResponse:
    """Run a zone reconciliation immediately."""
    if ctx.inventory is None:
        raise HTTPException(status_code=503, detail="Zone inventory is not configured")
    summary = await sync_zones(ctx)
    return SyncResponse.model_validate(summary, from_attributes=True)


@router.get("/settings", response_model=SettingsResponse)
async def get_runtime_settings(
    request: Request,
    store: MonitorStore = Depends(get_store),
) -> SettingsResponse:
    """Return settings editable from the dashboard."""
    default = get_app_settings(request).default_retention_days
    return SettingsResponse(retention_days=await store.get_retention_days(default))


@router.put("/settings", response_model=SettingsResponse)
async def update_runtime_settings(
    payload: SettingsUpdate,
    request: Request,
    store: MonitorStore = Depends(get_store),
    _: None = Depends(require_authenticated_user),
) -> SettingsResponse:
    """Update the check retention period, clamped to 1-90 days."""
    if payload.retention_days is not None:
        days = clamp_retention_days(round(payload.retention_days))
        await store.set_setting(RETENTION_DAYS_KEY, str(days))
    default = get_app_settings(request).default_retention_days
    return SettingsResponse(retention_days=await store.get_retention_days(default))
