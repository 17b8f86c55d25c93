"""Overview, device list and device detail pages."""

from __future__ import annotations

from ..schemas import App, Device
from .base import DeviceScopedView, View


class DevicesView(View):
    """Device list with fleet counts; backed by the shared device cache.

    Used for both the overview page and the device list page.
    """

    async def mount(self) -> None:
        self.mounted = True
        await self._load(self._state.devices.fetch)

    async def load(self) -> None:
        await self._load(self._state.devices.refresh)

    async def refresh(self) -> None:
        await self.load()

    async def _load(self, action) -> None:
        self.loading = True
        try:
            await action()
        finally:
            self.loading = self._state.devices.loading
        if self._state.devices.error:
            self.flash_error(self._state.devices.error, transient=False)
        else:
            self.dismiss()
        self._changed()

    @property
    def devices(self) -> list[Device]:
        return self._state.devices.devices

    @property
    def total_count(self) -> int:
        return self._state.devices.total_count

    @property
    def restricted_count(self) -> int:
        return self._state.devices.restricted_count

    @property
    def online_count(self) -> int:
        return self._state.devices.online_count

    def is_online(self, device: Device) -> bool:
        return self._state.devices.is_online(device)

    @property
    def is_empty(self) -> bool:
        return not self.loading and not self.devices and self.error is None


class DeviceDetailView(DeviceScopedView):
    """One device with a summary of its app policies."""

    def __init__(self, state, device_id: str) -> None:
        super().__init__(state, device_id)
        self.apps: list[App] = []

    async def load(self) -> None:
        apps = await self._fetch(lambda: self._state.client.devices.list_apps(self.device_id))
        if apps is not None:
            self.apps = apps

    @property
    def is_online(self) -> bool:
        device = self.device
        return device is not None and self._state.devices.is_online(device)

    @property
    def blocked_count(self) -> int:
        return sum(1 for a in self.apps if a.is_blocked)

    @property
    def locked_count(self) -> int:
        return sum(1 for a in self.apps if a.is_uninstallable)
