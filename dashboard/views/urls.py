"""URL blacklist page."""

from __future__ import annotations

import logging

from ..errors import ApiError, NotFoundError, UnauthorizedError, get_error_message
from ..schemas import BlacklistedUrl
from .base import DeviceScopedView

log = logging.getLogger(__name__)

ADD_ONLY_MESSAGE = "Removing blacklist entries is not supported by this backend"


class UrlsView(DeviceScopedView):
    """Blacklisted URL patterns for one device.

    Some backend builds cannot list or delete entries.  When listing answers
    404/405 the view switches to *add-only* mode and just remembers the
    entries added during this session.
    """

    def __init__(self, state, device_id: str) -> None:
        super().__init__(state, device_id)
        self.urls: list[BlacklistedUrl] = []
        self.add_only = False
        self.submitting = False

    async def load(self) -> None:
        if self.add_only:
            return
        urls = await self._fetch(self._list_urls)
        if urls is not None:
            self.urls = urls

    async def _list_urls(self) -> list[BlacklistedUrl] | None:
        try:
            return await self._state.client.policies.list_urls(self.device_id)
        except ApiError as exc:
            if isinstance(exc, NotFoundError) or exc.status_code == 405:
                self._enter_add_only()
                return None
            raise

    def _enter_add_only(self) -> None:
        log.info("Backend cannot list URL blacklist entries; add-only mode.")
        self.add_only = True

    async def add(self, url_pattern: str, description: str | None = None) -> bool:
        """Blacklist *url_pattern* (``*`` is a wildcard)."""
        pattern = url_pattern.strip()
        if not pattern:
            self.flash_error("URL pattern is required", transient=False)
            return False
        self.submitting = True
        self.dismiss()
        try:
            created = await self._state.client.policies.add_url(
                self.device_id,
                pattern,
                (description or "").strip() or None,
            )
        except UnauthorizedError:
            return False
        except ApiError as exc:
            self.flash_error(get_error_message(exc), transient=False)
            return False
        finally:
            self.submitting = False
        self.flash_success("URL added to blacklist successfully")
        if self.add_only:
            if created is not None:
                self.urls = [*self.urls, created]
        else:
            await self.load()
        self._changed()
        return True

    async def remove(self, url_id: int) -> bool:
        """Remove one entry; the local list drops it before the round trip."""
        if self.add_only:
            self.flash_error(ADD_ONLY_MESSAGE)
            return False
        index = next((i for i, u in enumerate(self.urls) if u.id == url_id), None)
        if index is None:
            self.flash_error(f"URL {url_id} is not in the blacklist")
            return False
        removed = self.urls[index]
        self.urls = [u for u in self.urls if u.id != url_id]

        def _rollback() -> None:
            if all(u.id != url_id for u in self.urls):
                urls = list(self.urls)
                urls.insert(min(index, len(urls)), removed)
                self.urls = urls

        return await self._mutate(
            lambda: self._state.client.policies.delete_url(url_id),
            rollback=_rollback,
            success="URL removed from blacklist successfully",
        )

    def find(self, url_id: int) -> BlacklistedUrl | None:
        return next((u for u in self.urls if u.id == url_id), None)
