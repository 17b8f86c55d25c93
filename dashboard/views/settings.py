"""Per-device policy settings page."""

from __future__ import annotations

from ..errors import ApiError, UnauthorizedError, get_error_message
from .base import DeviceScopedView

MIN_COOLDOWN_HOURS = 1
MAX_COOLDOWN_HOURS = 168


class SettingsView(DeviceScopedView):
    """Cooldown period and device hardening flags.

    The backend offers no read endpoint, so the form starts from the
    defaults and keeps whatever was saved last.
    """

    def __init__(self, state, device_id: str) -> None:
        super().__init__(state, device_id)
        self.cooldown_hours = 24
        self.require_admin_approval = True
        self.vpn_always_on = False
        self.prevent_factory_reset = True
        self.saving = False

    async def load(self) -> None:
        return None

    def update(
        self,
        *,
        cooldown_hours: int | None = None,
        require_admin_approval: bool | None = None,
        vpn_always_on: bool | None = None,
        prevent_factory_reset: bool | None = None,
    ) -> None:
        if cooldown_hours is not None:
            self.cooldown_hours = cooldown_hours
        if require_admin_approval is not None:
            self.require_admin_approval = require_admin_approval
        if vpn_always_on is not None:
            self.vpn_always_on = vpn_always_on
        if prevent_factory_reset is not None:
            self.prevent_factory_reset = prevent_factory_reset
        self._changed()

    def validate(self) -> str | None:
        if not MIN_COOLDOWN_HOURS <= self.cooldown_hours <= MAX_COOLDOWN_HOURS:
            return (
                f"Cooldown must be between {MIN_COOLDOWN_HOURS} and "
                f"{MAX_COOLDOWN_HOURS} hours"
            )
        return None

    async def save(self) -> bool:
        problem = self.validate()
        if problem:
            self.flash_error(problem, transient=False)
            return False

        self.saving = True
        self.dismiss()
        try:
            saved = await self._state.client.device_settings.update_settings(
                self.device_id,
                cooldown_hours=self.cooldown_hours,
                require_admin_approval=self.require_admin_approval,
                vpn_always_on=self.vpn_always_on,
                prevent_factory_reset=self.prevent_factory_reset,
            )
        except UnauthorizedError:
            return False
        except ApiError as exc:
            self.flash_error(get_error_message(exc), transient=False)
            return False
        finally:
            self.saving = False
            self._changed()

        if saved is not None:
            self.update(
                cooldown_hours=saved.cooldown_hours,
                require_admin_approval=saved.require_admin_approval,
                vpn_always_on=saved.vpn_always_on,
                prevent_factory_reset=saved.prevent_factory_reset,
            )
        self.flash_success("Settings updated successfully")
        return True
