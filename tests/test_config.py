"""Tests for dashboard.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from dashboard.config import Settings


def test_default_settings(tmp_path: Path) -> None:
    """Default values are set correctly."""
    s = Settings(_env_file=None, STATE_DIR=tmp_path)
    assert s.API_URL == "http://localhost:3001"
    assert s.TOKEN_COOKIE_DAYS == 7
    assert s.ONLINE_THRESHOLD_MINUTES == 5
    assert s.REQUESTS_POLL_INTERVAL == 10.0
    assert s.COUNTDOWN_TICK_INTERVAL == 1.0
    assert s.SUCCESS_BANNER_SECONDS == 3.0
    assert s.ERROR_BANNER_SECONDS == 5.0


def test_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Upper-case environment variables override defaults."""
    monkeypatch.setenv("API_URL", "https://mdm.example.com")
    monkeypatch.setenv("REQUESTS_POLL_INTERVAL", "2.5")
    monkeypatch.setenv("STATE_DIR", str(tmp_path / "state"))

    s = Settings(_env_file=None)

    assert s.API_URL == "https://mdm.example.com"
    assert s.REQUESTS_POLL_INTERVAL == 2.5
    assert s.STATE_DIR == tmp_path / "state"


def test_state_dir_is_created(tmp_path: Path) -> None:
    """state_dir creates the directory on first use."""
    target = tmp_path / "nested" / "state"
    s = Settings(_env_file=None, STATE_DIR=target)

    assert s.session_db_path == target / "session.db"
    assert target.is_dir()


def test_default_state_dir_uses_config_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Without STATE_DIR the per-user config folder is used."""
    monkeypatch.setattr("dashboard.config._config_dir", lambda: tmp_path / "MDMDashboard")
    s = Settings(_env_file=None)
    assert s.state_dir == tmp_path / "MDMDashboard"
