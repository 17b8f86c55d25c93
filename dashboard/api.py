"""REST communication with the device-management backend.

Uses httpx for async REST calls.  Every outbound request carries the admin's
bearer token (read from the session store at send time) in the
``Authorization`` header.  A 401 from any call is reported to the
``on_unauthorized`` callback before the error is raised, which is how the
auth manager learns that the session is gone.

The resource clients (:class:`AuthApi`, :class:`DeviceApi`, …) are thin:
one method per backend endpoint, no state, no retries.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Generator, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .config import Settings
from .errors import (
    ApiError,
    UnauthorizedError,
    error_from_response,
    error_from_transport,
)
from .schemas import (
    App,
    AppPolicyRequest,
    ApprovalRequest,
    BlacklistedUrl,
    Decision,
    Device,
    DeviceSettings,
    LoginResponse,
    RegisterResponse,
    VerifyResponse,
    Violation,
)

log = logging.getLogger(__name__)
M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class BearerAuth(httpx.Auth):
    """Attach ``Authorization: Bearer <token>`` when a token is stored."""

    def __init__(self, get_token: Callable[[], str | None]) -> None:
        self._get_token = get_token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._get_token()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


class ApiClient:
    """Async HTTP client shared by all resource clients.

    Parameters
    ----------
    settings:
        Supplies the backend base URL and timeouts.
    get_token:
        Returns the current bearer token or *None*.
    transport:
        Optional httpx transport; tests and demo mode pass an
        ``httpx.MockTransport`` here.
    """

    def __init__(
        self,
        settings: Settings,
        get_token: Callable[[], str | None],
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._auth = BearerAuth(get_token)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        # Set by the auth manager; called once for every 401 response.
        self.on_unauthorized: Callable[[], None] | None = None

        self.auth = AuthApi(self)
        self.devices = DeviceApi(self)
        self.policies = PolicyApi(self)
        self.approvals = RequestApi(self)
        self.violations = ViolationApi(self)
        self.device_settings = SettingsApi(self)

    # -- lifecycle -----------------------------------------------------------

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._settings.API_URL,
                headers={"Content-Type": "application/json"},
                auth=self._auth,
                timeout=httpx.Timeout(
                    self._settings.REQUEST_TIMEOUT,
                    connect=self._settings.CONNECT_TIMEOUT,
                ),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Shut down the underlying HTTP client gracefully."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # -- request -------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        guard: bool = True,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Raises :class:`ApiError` (or a subclass) on any failure.  With
        *guard* set, a 401 first invokes :attr:`on_unauthorized`; the login
        and register endpoints disable it so that bad credentials do not
        touch the stored session.
        """
        client = self._ensure_client()
        log.debug("%s %s", method, path)
        try:
            resp = await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            log.error("%s %s request error: %s", method, path, exc)
            raise error_from_transport(exc) from exc

        if resp.is_success:
            if not resp.content:
                return {}
            try:
                return resp.json()
            except ValueError as exc:
                raise ApiError("Invalid JSON in backend response", resp.status_code) from exc

        error = error_from_response(resp)
        log.warning(
            "%s %s failed with HTTP %s: %s",
            method,
            path,
            resp.status_code,
            error.message,
        )
        if isinstance(error, UnauthorizedError) and guard and self.on_unauthorized is not None:
            self.on_unauthorized()
        raise error


def _items(payload: Any, key: str) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        items = payload.get(key)
        if isinstance(items, list):
            return items
    raise ApiError(f"Malformed backend response: missing '{key}'")


def _parse(model: type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        log.error("Malformed %s in backend response: %s", model.__name__, exc)
        raise ApiError(f"Malformed backend response: invalid {model.__name__}") from exc


def _parse_items(model: type[M], payload: Any, key: str) -> list[M]:
    return [_parse(model, item) for item in _items(payload, key)]


# ---------------------------------------------------------------------------
# Resource clients
# ---------------------------------------------------------------------------


class AuthApi:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def register(self, email: str, password: str) -> RegisterResponse:
        """POST /api/auth/register"""
        data = await self._client.request(
            "POST",
            "/api/auth/register",
            json={"email": email, "password": password},
            guard=False,
        )
        return _parse(RegisterResponse, data)

    async def login(self, email: str, password: str) -> LoginResponse:
        """POST /api/auth/login"""
        data = await self._client.request(
            "POST",
            "/api/auth/login",
            json={"email": email, "password": password},
            guard=False,
        )
        return _parse(LoginResponse, data)

    async def verify(self) -> VerifyResponse:
        """POST /api/auth/verify"""
        data = await self._client.request("POST", "/api/auth/verify")
        return _parse(VerifyResponse, data)


class DeviceApi:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def list_devices(self) -> list[Device]:
        """GET /api/management/devices"""
        data = await self._client.request("GET", "/api/management/devices")
        return _parse_items(Device, data, "devices")

    async def list_apps(self, device_id: str) -> list[App]:
        """GET /api/management/devices/{id}/apps"""
        data = await self._client.request("GET", f"/api/management/devices/{device_id}/apps")
        return _parse_items(App, data, "apps")


class PolicyApi:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def update_app_policy(self, policy: AppPolicyRequest) -> dict[str, Any]:
        """POST /api/management/policies/apps

        The backend upserts by ``(device_id, package_name)``; both flags are
        always sent.
        """
        return await self._client.request(
            "POST",
            "/api/management/policies/apps",
            json=policy.model_dump(),
        )

    async def list_urls(self, device_id: str) -> list[BlacklistedUrl]:
        """GET /api/management/policies/urls?device_id=

        Not every backend build serves this endpoint; callers handle
        :class:`~dashboard.errors.NotFoundError`.
        """
        data = await self._client.request(
            "GET",
            "/api/management/policies/urls",
            params={"device_id": device_id},
        )
        return _parse_items(BlacklistedUrl, data, "urls")

    async def add_url(
        self,
        device_id: str,
        url_pattern: str,
        description: str | None = None,
    ) -> BlacklistedUrl | None:
        """POST /api/management/policies/urls"""
        body: dict[str, Any] = {"device_id": device_id, "url_pattern": url_pattern}
        if description:
            body["description"] = description
        data = await self._client.request("POST", "/api/management/policies/urls", json=body)
        url = data.get("url") if isinstance(data, dict) else None
        return _parse(BlacklistedUrl, url) if url else None

    async def delete_url(self, url_id: int) -> dict[str, Any]:
        """DELETE /api/management/policies/urls/{id}"""
        return await self._client.request("DELETE", f"/api/management/policies/urls/{url_id}")


class RequestApi:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def list_requests(self) -> list[ApprovalRequest]:
        """GET /api/management/requests"""
        data = await self._client.request("GET", "/api/management/requests")
        return _parse_items(ApprovalRequest, data, "requests")

    async def update_request(
        self,
        request_id: int,
        status: Decision,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """PUT /api/management/requests/{id}"""
        body: dict[str, Any] = {"status": status}
        if notes:
            body["notes"] = notes
        return await self._client.request(
            "PUT",
            f"/api/management/requests/{request_id}",
            json=body,
        )


class ViolationApi:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def list_violations(self, device_id: str | None = None) -> list[Violation]:
        """GET /api/management/violations[?device_id=]"""
        params = {"device_id": device_id} if device_id else None
        data = await self._client.request("GET", "/api/management/violations", params=params)
        return _parse_items(Violation, data, "violations")


class SettingsApi:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def update_settings(
        self,
        device_id: str,
        *,
        cooldown_hours: int,
        require_admin_approval: bool,
        vpn_always_on: bool,
        prevent_factory_reset: bool,
    ) -> DeviceSettings | None:
        """PUT /api/management/devices/{id}/settings"""
        data = await self._client.request(
            "PUT",
            f"/api/management/devices/{device_id}/settings",
            json={
                "cooldown_hours": cooldown_hours,
                "require_admin_approval": require_admin_approval,
                "vpn_always_on": vpn_always_on,
                "prevent_factory_reset": prevent_factory_reset,
            },
        )
        saved = data.get("settings") if isinstance(data, dict) else None
        return _parse(DeviceSettings, saved) if saved else None
