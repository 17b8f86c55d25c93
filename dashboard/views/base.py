"""Common plumbing for view-models.

A view-model owns the state of one dashboard page: its data, the loading
flag, the error / success banners and any timers it runs.  Timers are scoped
to the view: they start in :meth:`View.mount` (or later) and are always
cancelled by :meth:`View.close`.  Views are async context managers, so::

    async with RequestsView(state) as view:
        ...

guarantees teardown.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from ..errors import ApiError, UnauthorizedError, get_error_message
from ..schemas import Device

if TYPE_CHECKING:
    from ..state import AppState

log = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V", bound="View")


class View:
    """Base class for all page view-models."""

    def __init__(self, state: AppState) -> None:
        self._state = state
        self._settings = state.settings
        self._clock = state.clock

        self.loading = False
        self.error: str | None = None
        self.success_message: str | None = None
        self.mounted = False

        # Called after every state change so a renderer can redraw.
        self.on_change: Callable[[], None] | None = None

        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []
        self._banner_timers: dict[str, asyncio.TimerHandle] = {}
        self._fetch_seq = 0
        self._inflight = 0
        self._mutating = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mount(self) -> None:
        """Fetch the page's data.  Subclasses extend this."""
        self.mounted = True
        await self.load()

    async def load(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        """Cancel every timer owned by this view."""
        self._stop_event.set()
        for handle in self._banner_timers.values():
            handle.cancel()
        self._banner_timers.clear()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self.mounted = False

    async def __aenter__(self: V) -> V:
        await self.mount()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def now(self) -> datetime:
        return self._clock()

    @property
    def active_timers(self) -> int:
        """Number of running loops and pending banner timers."""
        running = sum(1 for t in self._tasks if not t.done())
        return running + len(self._banner_timers)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _start_loop(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[None] | None],
    ) -> None:
        """Run *callback* every *interval* seconds until the view closes."""

        async def _loop() -> None:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break
                except asyncio.TimeoutError:
                    pass
                try:
                    result = callback()
                    if asyncio.iscoroutine(result):
                        await result
                except Exception:
                    log.exception("%s loop iteration failed", name)

        self._tasks.append(asyncio.create_task(_loop(), name=f"{type(self).__name__}:{name}"))

    def _set_banner(self, kind: str, message: str | None, clear_after: float | None) -> None:
        setattr(self, kind, message)
        old = self._banner_timers.pop(kind, None)
        if old is not None:
            old.cancel()
        if message is None or clear_after is None or self._stop_event.is_set():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        def _clear() -> None:
            self._banner_timers.pop(kind, None)
            if getattr(self, kind) == message:
                setattr(self, kind, None)
                self._changed()

        self._banner_timers[kind] = loop.call_later(clear_after, _clear)

    def flash_success(self, message: str) -> None:
        self._set_banner("success_message", message, self._settings.SUCCESS_BANNER_SECONDS)

    def flash_error(self, message: str, *, transient: bool = True) -> None:
        clear_after = self._settings.ERROR_BANNER_SECONDS if transient else None
        self._set_banner("error", message, clear_after)

    def dismiss(self) -> None:
        """Dismiss both banners."""
        self._set_banner("error", None, None)
        self._set_banner("success_message", None, None)

    def _changed(self) -> None:
        if self.on_change is not None:
            try:
                self.on_change()
            except Exception:
                log.exception("on_change listener failed")

    # ------------------------------------------------------------------
    # Backend calls
    # ------------------------------------------------------------------

    def _invalidate_fetches(self) -> None:
        """Make any in-flight list fetch stale so it cannot undo a mutation."""
        self._fetch_seq += 1

    async def _fetch(self, fetch: Callable[[], Awaitable[T]]) -> T | None:
        """Run a list fetch with loading/error bookkeeping.

        Returns *None* when the call failed, when a newer fetch superseded it,
        or when a local mutation was in flight at any point during it.
        """
        self._fetch_seq += 1
        seq = self._fetch_seq
        self._inflight += 1
        self.loading = True
        self._set_banner("error", None, None)
        try:
            result = await fetch()
        except UnauthorizedError:
            return None
        except ApiError as exc:
            if seq == self._fetch_seq:
                self.flash_error(get_error_message(exc), transient=False)
            return None
        finally:
            self._inflight -= 1
            self.loading = self._inflight > 0
            self._changed()
        if seq != self._fetch_seq or self._mutating:
            log.debug("Dropping stale response for %s", type(self).__name__)
            return None
        return result

    async def _mutate(
        self,
        call: Callable[[], Awaitable[Any]],
        *,
        rollback: Callable[[], None],
        success: str,
    ) -> bool:
        """Issue a mutation whose optimistic change was already applied.

        On failure *rollback* restores the previous local state and the error
        is flashed.  Any list fetch that overlaps the call is dropped.
        """
        self._invalidate_fetches()
        self._mutating += 1
        self._changed()
        try:
            await call()
        except ApiError as exc:
            rollback()
            if not isinstance(exc, UnauthorizedError):
                self.flash_error(get_error_message(exc))
            self._changed()
            return False
        finally:
            self._mutating -= 1
            self._invalidate_fetches()
        self.flash_success(success)
        self._changed()
        return True


class DeviceScopedView(View):
    """A page about one device; falls back to "Device Not Found"."""

    def __init__(self, state: AppState, device_id: str) -> None:
        super().__init__(state)
        self.device_id = str(device_id)

    async def mount(self) -> None:
        self.mounted = True
        await self._state.devices.fetch()
        if self._state.devices.loaded and self.device is None:
            log.info("Device %s not found", self.device_id)
            self._changed()
            return
        await self.load()

    @property
    def device(self) -> Device | None:
        return self._state.devices.get(self.device_id)

    @property
    def not_found(self) -> bool:
        return self.mounted and not self.loading and self.device is None
