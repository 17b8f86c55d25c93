"""Tests for the command-line entry point, run against the demo backend."""

from __future__ import annotations

import os
import signal
import subprocess
import sys
from pathlib import Path

import pytest

from dashboard.config import Settings
from dashboard.demo import DEMO_EMAIL, DEMO_PASSWORD
from dashboard.main import main

ROOT = Path(__file__).resolve().parents[1]


def _run(settings: Settings, *argv: str) -> int:
    return main(["--demo", *argv], settings)


@pytest.fixture()
def demo_login(settings: Settings, capsys: pytest.CaptureFixture[str]) -> Settings:
    assert _run(settings, "login", "--email", DEMO_EMAIL, "--password", DEMO_PASSWORD) == 0
    assert f"Logged in as {DEMO_EMAIL}" in capsys.readouterr().out
    return settings


def test_requires_login(settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(settings, "overview") == 1
    assert "Not logged in" in capsys.readouterr().err


def test_bad_credentials(settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(settings, "login", "--email", DEMO_EMAIL, "--password", "wrong") == 1
    assert "Login failed: Invalid email or password" in capsys.readouterr().err


def test_session_persists_between_runs(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "whoami") == 0
    assert DEMO_EMAIL in capsys.readouterr().out


def test_logout(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "logout") == 0
    assert _run(demo_login, "whoami") == 1


def test_overview_and_devices(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "overview") == 0
    out = capsys.readouterr().out
    assert "Total devices:      2" in out
    assert "Online devices:     1" in out

    assert _run(demo_login, "devices") == 0
    out = capsys.readouterr().out
    assert "Pixel 7" in out
    assert "ONLINE" in out
    assert "Galaxy Tab" in out


def test_unknown_device(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "device", "999") == 1
    captured = capsys.readouterr()
    assert "Device Not Found" in captured.out
    assert "Run 'mdm-dashboard devices' to list devices." in captured.out
    assert "Device 999 not found" in captured.err


def test_block_app(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "apps", "1", "--block", "com.android.chrome") == 0
    assert "[ok] Chrome blocked successfully" in capsys.readouterr().out


def test_block_unknown_app(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "apps", "1", "--block", "com.missing") == 1
    assert "No app 'com.missing'" in capsys.readouterr().err


def test_remove_url(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "urls", "1") == 0
    assert "*.gambling.*" in capsys.readouterr().out

    assert _run(demo_login, "urls", "1", "--remove", "104", "--yes") == 0
    out = capsys.readouterr().out
    assert "URL removed from blacklist successfully" in out
    assert "No blacklisted URLs." in out


def test_requests(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "requests", "--status", "pending") == 0
    out = capsys.readouterr().out
    assert "2 pending of 3" in out
    assert "Disable Restriction" in out


def test_settings_validation(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "settings", "1", "--cooldown-hours", "0") == 1
    assert "Cooldown must be between 1 and 168 hours" in capsys.readouterr().out


def test_settings_update(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "settings", "1", "--cooldown-hours", "48", "--no-require-approval") == 0
    out = capsys.readouterr().out
    assert "Settings updated successfully" in out
    assert "48 hours" in out
    assert "Require admin approval:  off" in out


def test_violations(demo_login: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(demo_login, "violations", "--device", "1") == 0
    out = capsys.readouterr().out
    assert "Violations for Pixel 7" in out
    assert "Blocked App Access Attempt" in out


def test_interrupted_prompt_exits(
    settings: Settings, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def _interrupt(prompt: str = "") -> str:
        raise KeyboardInterrupt

    monkeypatch.setattr("builtins.input", _interrupt)
    assert _run(settings, "login") == 130
    assert "Interrupted." in capsys.readouterr().err


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
def test_sigint_stops_login_prompt(tmp_path: Path) -> None:
    env = {**os.environ, "STATE_DIR": str(tmp_path)}
    proc = subprocess.Popen(
        [sys.executable, "-u", "-m", "dashboard.main", "--demo", "login"],
        cwd=ROOT,
        env=env,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    try:
        assert proc.stdout.readline().startswith(b"Demo backend:")
        proc.send_signal(signal.SIGINT)
        assert proc.wait(timeout=10) == 130
    finally:
        if proc.poll() is None:
            proc.kill()
        proc.communicate()
