"""Approval requests page with auto-refresh and cooldown countdowns."""

from __future__ import annotations

import logging

from ..schemas import REQUEST_STATUSES, ApprovalRequest, Decision
from ..utils import countdown_seconds, filter_requests, format_countdown, safe_json_parse
from .base import View

log = logging.getLogger(__name__)

STATUS_FILTERS: tuple[str, ...] = ("all", *REQUEST_STATUSES)


class RequestsView(View):
    """Device-initiated approval requests.

    While mounted with ``live=True`` the view re-fetches the list every
    ``REQUESTS_POLL_INTERVAL`` seconds and recomputes each request's cooldown
    countdown every ``COUNTDOWN_TICK_INTERVAL`` seconds.  The countdown is
    display-only.
    """

    def __init__(self, state) -> None:
        super().__init__(state)
        self.requests: list[ApprovalRequest] = []
        self.status_filter = "all"
        self.countdowns: dict[int, int] = {}

    async def mount(self, *, live: bool = True) -> None:
        self.mounted = True
        await self.load()
        if live:
            self._start_loop("poll", self._settings.REQUESTS_POLL_INTERVAL, self.load)
            self._start_loop("countdown", self._settings.COUNTDOWN_TICK_INTERVAL, self.tick)

    async def load(self) -> None:
        requests = await self._fetch(self._state.client.approvals.list_requests)
        if requests is not None:
            self.requests = requests
            self.tick()

    # -- countdown -----------------------------------------------------------

    def tick(self) -> None:
        """Recompute every countdown from ``cooldown_until`` and the clock."""
        now = self._clock()
        self.countdowns = {
            r.id: countdown_seconds(r.cooldown_until, now)
            for r in self.requests
            if r.cooldown_until is not None
        }
        self._changed()

    def countdown_text(self, request: ApprovalRequest) -> str | None:
        if request.cooldown_until is None:
            return None
        return format_countdown(self.countdowns.get(request.id, 0))

    # -- filtering -----------------------------------------------------------

    def set_filter(self, status: str) -> None:
        if status not in STATUS_FILTERS:
            raise ValueError(f"Unknown status filter {status!r}")
        self.status_filter = status
        self._changed()

    @property
    def filtered_requests(self) -> list[ApprovalRequest]:
        return filter_requests(self.requests, self.status_filter)

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self.requests if r.is_pending)

    @property
    def total_count(self) -> int:
        return len(self.requests)

    @staticmethod
    def target_data(request: ApprovalRequest) -> dict:
        data = safe_json_parse(request.target_data, {})
        return data if isinstance(data, dict) else {"value": data}

    def find(self, request_id: int) -> ApprovalRequest | None:
        return next((r for r in self.requests if r.id == request_id), None)

    # -- decisions -----------------------------------------------------------

    async def approve(self, request_id: int, notes: str | None = None) -> bool:
        return await self._decide(request_id, "approved", notes)

    async def deny(self, request_id: int, notes: str | None = None) -> bool:
        return await self._decide(request_id, "denied", notes)

    async def _decide(self, request_id: int, status: Decision, notes: str | None) -> bool:
        index = next((i for i, r in enumerate(self.requests) if r.id == request_id), None)
        if index is None:
            self.flash_error(f"Request {request_id} not found")
            return False
        request = self.requests[index]
        if not request.is_pending:
            # approved/denied are terminal
            self.flash_error(f"Request {request_id} is already {request.status}")
            return False

        self.requests = [r for r in self.requests if r.id != request_id]
        log.info("Request %d -> %s", request_id, status)

        def _rollback() -> None:
            if self.find(request_id) is None:
                requests = list(self.requests)
                requests.insert(min(index, len(requests)), request)
                self.requests = requests

        return await self._mutate(
            lambda: self._state.client.approvals.update_request(request_id, status, notes or None),
            rollback=_rollback,
            success=f"Request {status} successfully",
        )
