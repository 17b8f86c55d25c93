"""Violation log page."""

from __future__ import annotations

from typing import Any

from ..schemas import Device, Violation
from ..utils import safe_json_parse
from .base import View


class ViolationsView(View):
    """Read-only policy violation log, optionally filtered by device."""

    def __init__(self, state, device_filter: str = "all") -> None:
        super().__init__(state)
        self.violations: list[Violation] = []
        self.device_filter = str(device_filter)

    async def mount(self) -> None:
        self.mounted = True
        # The device list feeds the filter choices.
        await self._state.devices.fetch()
        await self.load()

    async def load(self) -> None:
        device_id = None if self.device_filter == "all" else self.device_filter
        violations = await self._fetch(
            lambda: self._state.client.violations.list_violations(device_id)
        )
        if violations is not None:
            self.violations = violations

    async def set_device_filter(self, device_id: str) -> None:
        self.device_filter = str(device_id)
        await self.load()

    @property
    def devices(self) -> list[Device]:
        return self._state.devices.devices

    @staticmethod
    def details(violation: Violation) -> dict[str, Any]:
        data = safe_json_parse(violation.details, {})
        return data if isinstance(data, dict) else {"value": data}
