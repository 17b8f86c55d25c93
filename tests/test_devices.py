"""Tests for dashboard.devices (the shared device cache)."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import httpx
import pytest

from dashboard.api import ApiClient
from dashboard.config import Settings
from dashboard.demo import DemoBackend
from dashboard.devices import DeviceCache
from dashboard.schemas import Device
from dashboard.state import AppState

DEVICE = {"id": 7, "device_name": "Pixel", "last_seen": "2025-12-26T17:59:00Z"}


@pytest.mark.asyncio
async def test_busy_flag_suppresses_duplicate_fetch(settings: Settings, clock) -> None:
    """fetch() while a fetch is in flight issues no second request."""
    release = asyncio.Event()
    calls = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        await release.wait()
        return httpx.Response(200, json={"devices": [DEVICE]})

    client = ApiClient(settings, lambda: "tok", transport=httpx.MockTransport(handler))
    cache = DeviceCache(client, clock=clock)

    first = asyncio.create_task(cache.fetch())
    await asyncio.sleep(0)
    while not calls:
        await asyncio.sleep(0)
    assert cache.loading is True

    await cache.fetch()
    await cache.refresh()
    release.set()
    await first

    assert calls == ["/api/management/devices"]
    assert cache.loading is False
    assert [d.id for d in cache.devices] == ["7"]
    await client.close()


@pytest.mark.asyncio
async def test_fetch_once_refresh_always(logged_in: AppState, backend: DemoBackend) -> None:
    await logged_in.devices.fetch()
    await logged_in.devices.fetch()
    assert len(backend.calls_to("GET", "/api/management/devices")) == 1

    await logged_in.devices.refresh()
    assert len(backend.calls_to("GET", "/api/management/devices")) == 2


@pytest.mark.asyncio
async def test_fetch_error_is_recorded(logged_in: AppState, backend: DemoBackend) -> None:
    backend.fail_next("/api/management/devices", 500, "Database unavailable")

    await logged_in.devices.fetch()

    assert logged_in.devices.error == "Database unavailable"
    assert logged_in.devices.loaded is False
    assert logged_in.devices.loading is False


@pytest.mark.asyncio
async def test_lookup_and_counts(logged_in: AppState) -> None:
    cache = logged_in.devices
    await cache.fetch()

    assert cache.get("1").device_name == "Pixel 7"
    assert cache.get("999") is None
    assert cache.total_count == 2
    assert cache.restricted_count == 1
    assert cache.online_count == 1


def test_online_threshold_is_strict(clock) -> None:
    """Online means last_seen strictly within the last five minutes."""
    now = clock()
    threshold = timedelta(minutes=5)

    just_inside = Device(id="1", device_name="a", last_seen=now - threshold + timedelta(seconds=1))
    boundary = Device(id="2", device_name="b", last_seen=now - threshold)
    never = Device(id="3", device_name="c")

    assert just_inside.is_online(now, threshold) is True
    assert boundary.is_online(now, threshold) is False
    assert never.is_online(now, threshold) is False


def test_numeric_ids_become_strings() -> None:
    assert Device.model_validate(DEVICE).id == "7"
