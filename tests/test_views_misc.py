"""Tests for the overview, device, violations and settings pages."""

from __future__ import annotations

import asyncio

import pytest

from dashboard.demo import DemoBackend
from dashboard.render import render_devices
from dashboard.state import AppState
from dashboard.views import DeviceDetailView, DevicesView, SettingsView, ViolationsView


@pytest.mark.asyncio
async def test_overview_counts(logged_in: AppState) -> None:
    async with DevicesView(logged_in) as view:
        assert view.total_count == 2
        assert view.restricted_count == 1
        assert view.online_count == 1
        assert view.is_empty is False


@pytest.mark.asyncio
async def test_device_list_uses_cache(logged_in: AppState, backend: DemoBackend) -> None:
    async with DevicesView(logged_in):
        pass
    async with DevicesView(logged_in):
        pass
    assert len(backend.calls_to("GET", "/api/management/devices")) == 1


@pytest.mark.asyncio
async def test_empty_fleet(settings, store, clock) -> None:
    backend = DemoBackend(clock=clock, seed=False)
    state = AppState(settings, store=store, transport=backend.transport(), clock=clock)
    await state.auth.login("admin@example.com", "demo1234")

    async with DevicesView(state) as view:
        assert view.is_empty is True
    await state.client.close()


@pytest.mark.asyncio
async def test_device_list_error_banner(logged_in: AppState, backend: DemoBackend) -> None:
    backend.fail_next("/api/management/devices", 503, "Service unavailable")
    async with DevicesView(logged_in) as view:
        assert view.error == "Service unavailable"
        assert view.is_empty is False

        await view.refresh()
        assert view.error is None
        assert view.total_count == 2


@pytest.mark.asyncio
async def test_device_detail(logged_in: AppState) -> None:
    async with DeviceDetailView(logged_in, "2") as view:
        assert view.device.device_name == "Galaxy Tab"
        assert view.is_online is False
        assert view.blocked_count == 1
        assert view.locked_count == 1


@pytest.mark.asyncio
async def test_device_detail_not_found(logged_in: AppState) -> None:
    async with DeviceDetailView(logged_in, "nope") as view:
        assert view.not_found is True


@pytest.mark.asyncio
async def test_violations_filter(logged_in: AppState, backend: DemoBackend) -> None:
    async with ViolationsView(logged_in) as view:
        assert len(view.violations) == 2
        assert [d.id for d in view.devices] == ["1", "2"]

        await view.set_device_filter("2")

        assert [v.device_id for v in view.violations] == ["2"]
        assert view.details(view.violations[0]) == {"url": "casino.gambling.com"}

    params = [
        p for m, p, _ in backend.calls if m == "GET" and p == "/api/management/violations"
    ]
    assert len(params) == 2


@pytest.mark.asyncio
async def test_settings_defaults(logged_in: AppState) -> None:
    async with SettingsView(logged_in, "1") as view:
        assert view.cooldown_hours == 24
        assert view.require_admin_approval is True
        assert view.vpn_always_on is False
        assert view.prevent_factory_reset is True


@pytest.mark.asyncio
@pytest.mark.parametrize("hours", [0, 169])
async def test_settings_rejects_cooldown_out_of_range(
    logged_in: AppState, backend: DemoBackend, hours: int
) -> None:
    async with SettingsView(logged_in, "1") as view:
        view.update(cooldown_hours=hours)

        assert await view.save() is False
        assert view.error == "Cooldown must be between 1 and 168 hours"
    assert backend.calls_to("PUT", "/api/management/devices/1/settings") == []


@pytest.mark.asyncio
async def test_settings_save(logged_in: AppState, backend: DemoBackend) -> None:
    async with SettingsView(logged_in, "1") as view:
        view.update(cooldown_hours=48, vpn_always_on=True)

        assert await view.save() is True

        assert backend.calls_to("PUT", "/api/management/devices/1/settings") == [
            {
                "cooldown_hours": 48,
                "require_admin_approval": True,
                "vpn_always_on": True,
                "prevent_factory_reset": True,
            }
        ]
        assert view.success_message == "Settings updated successfully"
        assert view.saving is False


@pytest.mark.asyncio
async def test_success_banner_clears_itself(settings, store, backend: DemoBackend, clock) -> None:
    quick = settings.model_copy(update={"SUCCESS_BANNER_SECONDS": 0.02})
    state = AppState(quick, store=store, transport=backend.transport(), clock=clock)
    await state.auth.login("admin@example.com", "demo1234")

    async with SettingsView(state, "1") as view:
        await view.save()
        assert view.success_message == "Settings updated successfully"

        await asyncio.sleep(0.1)
        assert view.success_message is None
        assert view.active_timers == 0
    await state.client.close()


@pytest.mark.asyncio
async def test_session_expiry_mid_view(logged_in: AppState, backend: DemoBackend) -> None:
    """A 401 while saving ends the session without an error banner."""
    reasons = []
    logged_in.auth.on_logout(reasons.append)

    async with SettingsView(logged_in, "1") as view:
        backend.revoke_all_tokens()
        assert await view.save() is False
        assert view.error is None

    assert reasons == ["unauthorized"]
    assert logged_in.auth.is_authenticated is False


@pytest.mark.asyncio
async def test_malformed_last_seen_renders_unknown(logged_in: AppState, backend: DemoBackend) -> None:
    backend.devices[0]["last_seen"] = "not-a-date"
    async with DevicesView(logged_in) as view:
        assert view.error is None
        assert view.devices[0].last_seen is None
        assert view.online_count == 0
        assert "Unknown" in render_devices(view)


@pytest.mark.asyncio
async def test_invalid_device_payload_shows_banner(logged_in: AppState, backend: DemoBackend) -> None:
    del backend.devices[0]["device_name"]
    async with DevicesView(logged_in) as view:
        assert view.error == "Malformed backend response: invalid Device"
