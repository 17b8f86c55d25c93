"""Shared fixtures for the dashboard test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from dashboard.config import Settings
from dashboard.demo import DEMO_EMAIL, DEMO_PASSWORD, DemoBackend
from dashboard.state import AppState
from dashboard.storage import SessionStore

START = datetime(2025, 12, 26, 18, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary state dir; never reads a .env file."""
    return Settings(
        _env_file=None,
        API_URL="http://testserver",
        STATE_DIR=tmp_path,
    )


@pytest.fixture()
def store(clock: FakeClock) -> SessionStore:
    """Return a SessionStore backed by an in-memory SQLite database."""
    s = SessionStore(":memory:", clock=clock)
    yield s
    s.close()


@pytest.fixture()
def backend(clock: FakeClock) -> DemoBackend:
    """In-memory backend seeded with two devices and their policies."""
    return DemoBackend(clock=clock)


@pytest_asyncio.fixture()
async def state(settings: Settings, store: SessionStore, backend: DemoBackend, clock: FakeClock) -> AppState:
    """AppState wired to the fake backend, not logged in."""
    app_state = AppState(settings, store=store, transport=backend.transport(), clock=clock)
    yield app_state
    await app_state.client.close()


@pytest_asyncio.fixture()
async def logged_in(state: AppState) -> AppState:
    """AppState with an authenticated admin session."""
    await state.auth.login(DEMO_EMAIL, DEMO_PASSWORD)
    return state
