"""Tests for the app policy page (optimistic block/lock toggles)."""

from __future__ import annotations

import pytest

from dashboard.demo import DemoBackend
from dashboard.state import AppState
from dashboard.views import AppsView

POLICY_PATH = "/api/management/policies/apps"


@pytest.mark.asyncio
async def test_mount_loads_apps(logged_in: AppState) -> None:
    async with AppsView(logged_in, "1") as view:
        assert view.device.device_name == "Pixel 7"
        assert [a.app_name for a in view.apps] == ["Chrome", "TikTok", "WhatsApp"]
        assert view.blocked_count == 1
        assert view.locked_count == 1
        assert view.not_found is False


@pytest.mark.asyncio
async def test_unknown_device(logged_in: AppState, backend: DemoBackend) -> None:
    async with AppsView(logged_in, "999") as view:
        assert view.not_found is True
        assert view.apps == []
    assert backend.calls_to("GET", "/api/management/devices/999/apps") == []


@pytest.mark.asyncio
async def test_block_sends_one_request_with_other_flag_unchanged(
    logged_in: AppState, backend: DemoBackend
) -> None:
    async with AppsView(logged_in, "1") as view:
        chrome = view.find("com.android.chrome")
        seen = []
        view.on_change = lambda: seen.append(view.find(chrome.id).is_blocked)

        ok = await view.toggle_block(chrome.id)

        assert ok is True
        # the flag flipped before the request completed
        assert seen[0] is True
        assert backend.calls_to("POST", POLICY_PATH) == [
            {
                "device_id": "1",
                "package_name": "com.android.chrome",
                "app_name": "Chrome",
                "is_blocked": True,
                "is_uninstallable": False,
            }
        ]
        assert view.find(chrome.id).is_blocked is True
        assert view.success_message == "Chrome blocked successfully"


@pytest.mark.asyncio
async def test_unlock_keeps_block_flag(logged_in: AppState, backend: DemoBackend) -> None:
    async with AppsView(logged_in, "1") as view:
        whatsapp = view.find("com.whatsapp")
        assert whatsapp.is_uninstallable is True

        assert await view.toggle_lock(whatsapp.id) is True

        body = backend.calls_to("POST", POLICY_PATH)[-1]
        assert body["is_uninstallable"] is False
        assert body["is_blocked"] is False
        assert view.success_message == "WhatsApp unlocked successfully"


@pytest.mark.asyncio
async def test_failed_toggle_rolls_back(logged_in: AppState, backend: DemoBackend) -> None:
    async with AppsView(logged_in, "1") as view:
        tiktok = view.find("com.zhiliaoapp.musically")
        backend.fail_next(POLICY_PATH, 500, "Policy write failed")

        ok = await view.toggle_block(tiktok.id)

        assert ok is False
        assert view.find(tiktok.id).is_blocked is True
        assert view.error == "Policy write failed"
        assert view.success_message is None


@pytest.mark.asyncio
async def test_explicit_value(logged_in: AppState, backend: DemoBackend) -> None:
    async with AppsView(logged_in, "1") as view:
        tiktok = view.find("com.zhiliaoapp.musically")
        await view.toggle_block(tiktok.id, True)
        assert backend.calls_to("POST", POLICY_PATH)[-1]["is_blocked"] is True


@pytest.mark.asyncio
async def test_unknown_app_raises(logged_in: AppState) -> None:
    async with AppsView(logged_in, "1") as view:
        with pytest.raises(KeyError):
            await view.toggle_block(424242)


@pytest.mark.asyncio
async def test_search(logged_in: AppState) -> None:
    async with AppsView(logged_in, "1") as view:
        assert [a.app_name for a in view.search("TIK")] == ["TikTok"]
        assert [a.app_name for a in view.search("com.")] == ["Chrome", "TikTok", "WhatsApp"]

        view.search("nothing-like-this")
        assert view.filtered_apps == []
        assert view.no_matches is True


@pytest.mark.asyncio
async def test_close_cancels_banner_timer(logged_in: AppState) -> None:
    view = AppsView(logged_in, "1")
    await view.mount()
    await view.toggle_block(view.find("com.android.chrome").id)
    assert view.active_timers == 1

    await view.close()

    assert view.active_timers == 0
