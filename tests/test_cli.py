"""Test the cli module."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from zone_uptime import cli
from zone_uptime.config import Settings
from zone_uptime.db.models import Check, Monitor, utcnow
from zone_uptime.db.session import Database


class _DummyServer:
    def __init__(self, _config: object) -> None:
        pass

    async def serve(self) -> None:
        return None


def test_serve_preserves_environment_for_migrations(monkeypatch: pytest.MonkeyPatch) -> None:
    """Serve should pass existing env vars to migration subprocess."""
    captured: dict[str, object] = {}

    monkeypatch.setenv("TEST_SENTINEL", "present")
    monkeypatch.setattr(
        cli,
        "get_settings",
        lambda: SimpleNamespace(
            database_url="postgresql+asyncpg://u:p@localhost:5432/db",
            app_host="127.0.0.1",
            app_port=8000,
            log_level="INFO",
        ),
    )
    monkeypatch.setattr(cli, "configure_logging", lambda _level: None)
    monkeypatch.setattr(cli, "create_app", lambda _settings=None: object())
    monkeypatch.setattr(cli, "Config", lambda **kwargs: kwargs)
    monkeypatch.setattr(cli, "Server", _DummyServer)

    def _fake_run(cmd: list[str], env: dict[str, str] | None = None) -> SimpleNamespace:
        captured["cmd"] = cmd
        captured["env"] = env
        return SimpleNamespace(returncode=0)

    monkeypatch.setattr("subprocess.run", _fake_run)

    cli.serve()

    env = captured["env"]
    assert isinstance(env, dict)
    assert env["TEST_SENTINEL"] == "present"
    assert env["DATABASE_URL"] == "postgresql+asyncpg://u:p@localhost:5432/db"


def test_migrate_preserves_environment_for_migrations(monkeypatch: pytest.MonkeyPatch) -> None:
    """Migrate should pass existing env vars to migration subprocess."""
    captured: dict[str, object] = {}

    monkeypatch.setenv("TEST_SENTINEL", "present")
    monkeypatch.setattr(
        cli,
        "get_settings",
        lambda: SimpleNamespace(database_url="postgresql+asyncpg://u:p@localhost:5432/db"),
    )

    def _fake_run(cmd: list[str], env: dict[str, str] | None = None) -> SimpleNamespace:
        captured["cmd"] = cmd
        captured["env"] = env
        return SimpleNamespace(returncode=0)

    monkeypatch.setattr("subprocess.run", _fake_run)

    cli.migrate()

    env = captured["env"]
    assert isinstance(env, dict)
    assert env["TEST_SENTINEL"] == "present"
    assert env["DATABASE_URL"] == "postgresql+asyncpg://u:p@localhost:5432/db"
    assert captured["cmd"][-3:] == ["alembic", "upgrade", "head"]


def test_migrate_exits_non_zero_when_alembic_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli, "get_settings", lambda: SimpleNamespace(database_url="sqlite+aiosqlite:///x.db")
    )
    monkeypatch.setattr("subprocess.run", lambda cmd, env=None: SimpleNamespace(returncode=1))

    result = CliRunner().invoke(cli.app, ["migrate"])

    assert result.exit_code == 1


def test_sync_zones_requires_cloudflare_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    settings = Settings(_env_file=None, database_url="sqlite+aiosqlite:///unused.db")
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "configure_logging", lambda _level: None)

    result = CliRunner().invoke(cli.app, ["sync-zones"])

    assert result.exit_code == 1


def test_cleanup_removes_checks_past_retention(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"

    async def seed() -> None:
        db = Database(database_url)
        await db.init()
        async with db.session() as session:
            monitor = Monitor(url="https://old.test", name="old")
            session.add(monitor)
            await session.flush()
            session.add(
                Check(
                    monitor_id=monitor.id,
                    status_code=200,
                    response_ms=5,
                    is_up=True,
                    checked_at=utcnow() - timedelta(days=30),
                )
            )
            session.add(Check(monitor_id=monitor.id, status_code=200, response_ms=5, is_up=True))
        await db.close()

    asyncio.run(seed())
    settings = Settings(_env_file=None, database_url=database_url)
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "configure_logging", lambda _level: None)

    result = CliRunner().invoke(cli.app, ["cleanup"])

    assert result.exit_code == 0
    assert "Removed 1 checks and 0 incidents older than 7 days" in result.output
