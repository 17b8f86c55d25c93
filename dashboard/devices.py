"""Process-wide device list shared by every view."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from .api import ApiClient
from .errors import ApiError, get_error_message
from .schemas import Device

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceCache:
    """In-memory device list, fetched once per authenticated session.

    A busy flag guards against duplicate fetches: calling :meth:`fetch` or
    :meth:`refresh` while a fetch is outstanding does nothing.  Lookups are a
    linear scan; admin-operated fleets are small.
    """

    def __init__(
        self,
        client: ApiClient,
        *,
        online_threshold: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._online_threshold = online_threshold
        self._clock = clock
        self._busy = False

        self.devices: list[Device] = []
        self.loaded = False
        self.error: str | None = None

    @property
    def loading(self) -> bool:
        return self._busy

    async def fetch(self) -> None:
        """Load devices unless they are already loaded or loading."""
        if self.loaded:
            return
        await self._load()

    async def refresh(self) -> None:
        """Re-fetch devices, replacing the cached list."""
        await self._load()

    async def _load(self) -> None:
        if self._busy:
            log.debug("Device fetch already in flight, skipping.")
            return
        self._busy = True
        self.error = None
        try:
            self.devices = await self._client.devices.list_devices()
            self.loaded = True
            log.info("Loaded %d devices.", len(self.devices))
        except ApiError as exc:
            self.error = get_error_message(exc)
            log.error("Failed to fetch devices: %s", self.error)
        finally:
            self._busy = False

    def clear(self) -> None:
        self.devices = []
        self.loaded = False
        self.error = None

    # -- lookups -------------------------------------------------------------

    def get(self, device_id: str) -> Device | None:
        for device in self.devices:
            if device.id == str(device_id):
                return device
        return None

    def is_online(self, device: Device) -> bool:
        return device.is_online(self._clock(), self._online_threshold)

    @property
    def total_count(self) -> int:
        return len(self.devices)

    @property
    def restricted_count(self) -> int:
        return sum(1 for d in self.devices if d.is_restricted)

    @property
    def online_count(self) -> int:
        return sum(1 for d in self.devices if self.is_online(d))
