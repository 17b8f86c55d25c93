"""Explicit application state shared by all views.

Wires the settings, session store, API client, auth manager and device cache
together.  Views receive the :class:`AppState` by reference instead of
reaching for module globals, so tests can build one around a fake backend.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx

from .api import ApiClient
from .auth import AuthManager
from .config import Settings, settings as default_settings
from .devices import DeviceCache
from .storage import SessionStore

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AppState:
    """Everything a view needs to talk to the backend."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: SessionStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or default_settings
        self.clock = clock
        self.store = store or SessionStore(
            self.settings.session_db_path,
            token_days=self.settings.TOKEN_COOKIE_DAYS,
        )
        self.client = ApiClient(self.settings, self.store.get_token, transport=transport)
        self.auth = AuthManager(self.store, self.client)
        self.devices = DeviceCache(
            self.client,
            online_threshold=timedelta(minutes=self.settings.ONLINE_THRESHOLD_MINUTES),
            clock=clock,
        )
        self.auth.on_logout(self._on_logout)

    def _on_logout(self, reason: str) -> None:
        log.debug("Session ended (%s); dropping cached devices.", reason)
        self.devices.clear()

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> bool:
        """Revalidate the stored session and, if valid, load devices."""
        ok = await self.auth.verify()
        if ok:
            await self.devices.fetch()
        return ok

    async def close(self) -> None:
        await self.client.close()
        self.store.close()

    async def __aenter__(self) -> AppState:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
