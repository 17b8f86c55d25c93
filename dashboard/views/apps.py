"""Installed-app policy page: search, block and lock toggles."""

from __future__ import annotations

import logging

from ..schemas import App, AppPolicyRequest
from ..utils import filter_apps
from .base import DeviceScopedView

log = logging.getLogger(__name__)


class AppsView(DeviceScopedView):
    """Block/lock policy management for one device's installed apps.

    ``is_blocked`` and ``is_uninstallable`` are independent flags; toggling
    one always sends the other unchanged.
    """

    def __init__(self, state, device_id: str) -> None:
        super().__init__(state, device_id)
        self.apps: list[App] = []
        self.search_query = ""

    async def load(self) -> None:
        apps = await self._fetch(lambda: self._state.client.devices.list_apps(self.device_id))
        if apps is not None:
            self.apps = apps

    # -- search --------------------------------------------------------------

    def search(self, query: str) -> list[App]:
        self.search_query = query
        self._changed()
        return self.filtered_apps

    @property
    def filtered_apps(self) -> list[App]:
        return filter_apps(self.apps, self.search_query)

    @property
    def no_matches(self) -> bool:
        return bool(self.apps) and not self.filtered_apps

    def find(self, key: str | int) -> App | None:
        """Look an app up by id or package name."""
        for app in self.apps:
            if str(app.id) == str(key) or app.package_name == key:
                return app
        return None

    # -- toggles -------------------------------------------------------------

    async def toggle_block(self, app_id: int, is_blocked: bool | None = None) -> bool:
        """Set (or flip, when *is_blocked* is None) the block flag."""
        app = self._require(app_id)
        if is_blocked is None:
            is_blocked = not app.is_blocked
        verb = "blocked" if is_blocked else "unblocked"
        return await self._update(app, "is_blocked", is_blocked, f"{app.app_name} {verb} successfully")

    async def toggle_lock(self, app_id: int, is_uninstallable: bool | None = None) -> bool:
        """Set (or flip) the uninstall-lock flag."""
        app = self._require(app_id)
        if is_uninstallable is None:
            is_uninstallable = not app.is_uninstallable
        verb = "locked" if is_uninstallable else "unlocked"
        return await self._update(
            app, "is_uninstallable", is_uninstallable, f"{app.app_name} {verb} successfully"
        )

    def _require(self, app_id: int) -> App:
        app = self.find(app_id)
        if app is None:
            raise KeyError(f"Unknown app {app_id}")
        return app

    async def _update(self, app: App, field: str, value: bool, success: str) -> bool:
        previous = getattr(app, field)
        updated = app.model_copy(update={field: value})
        self._replace(updated)

        policy = AppPolicyRequest(
            device_id=self.device_id,
            package_name=updated.package_name,
            app_name=updated.app_name,
            is_blocked=updated.is_blocked,
            is_uninstallable=updated.is_uninstallable,
        )
        log.debug("Policy update %s: %s=%s", app.package_name, field, value)

        def _rollback() -> None:
            current = self.find(app.id)
            # Only undo our own change; a later toggle may already own the field.
            if current is not None and getattr(current, field) == value:
                self._replace(current.model_copy(update={field: previous}))

        return await self._mutate(
            lambda: self._state.client.policies.update_app_policy(policy),
            rollback=_rollback,
            success=success,
        )

    def _replace(self, app: App) -> None:
        self.apps = [app if a.id == app.id else a for a in self.apps]

    @property
    def blocked_count(self) -> int:
        return sum(1 for a in self.apps if a.is_blocked)

    @property
    def locked_count(self) -> int:
        return sum(1 for a in self.apps if a.is_uninstallable)
