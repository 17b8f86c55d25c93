"""Demo backend for running the dashboard without a server.

:class:`DemoBackend` implements the backend's HTTP contract in memory and is
mounted through ``httpx.MockTransport``, so the whole client stack (bearer
auth, 401 guard, error extraction) runs unchanged.  The CLI uses it for
``--demo``; the test-suite uses it as a fake backend.
"""

from __future__ import annotations

import itertools
import json
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx

DEMO_EMAIL = "admin@example.com"
DEMO_PASSWORD = "demo1234"
# Issued to the demo admin on every login so a session survives restarts.
DEMO_TOKEN = "demo-session-token"

_Handler = Callable[..., httpx.Response]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def _error(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"error": message})


class DemoBackend:
    """In-memory device-management backend.

    Parameters
    ----------
    clock:
        Source of "now" for seeded timestamps.
    url_listing:
        When *False* the backend behaves like the builds that can only add
        blacklist entries: listing and deleting answer 404.
    seed:
        Populate demo devices, apps, URLs, requests and violations.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        url_listing: bool = True,
        seed: bool = True,
    ) -> None:
        self._clock = clock
        self.url_listing = url_listing
        self._ids = itertools.count(100)

        self.admins: dict[str, dict[str, Any]] = {}
        self.passwords: dict[str, str] = {}
        self.tokens: dict[str, str] = {}  # token -> email
        self.devices: list[dict[str, Any]] = []
        self.apps: list[dict[str, Any]] = []
        self.urls: list[dict[str, Any]] = []
        self.requests: list[dict[str, Any]] = []
        self.violations: list[dict[str, Any]] = []
        self.settings: dict[str, dict[str, Any]] = {}

        # (method, path, json body) for every request received
        self.calls: list[tuple[str, str, Any]] = []
        # path -> (status, message) forced failures, consumed once
        self.failures: dict[str, tuple[int, str]] = {}

        self._routes: list[tuple[str, re.Pattern[str], _Handler]] = [
            ("POST", re.compile(r"^/api/auth/register$"), self._register),
            ("POST", re.compile(r"^/api/auth/login$"), self._login),
            ("POST", re.compile(r"^/api/auth/verify$"), self._verify),
            ("GET", re.compile(r"^/api/management/devices$"), self._list_devices),
            ("GET", re.compile(r"^/api/management/devices/(?P<device_id>[^/]+)/apps$"), self._list_apps),
            ("PUT", re.compile(r"^/api/management/devices/(?P<device_id>[^/]+)/settings$"), self._update_settings),
            ("POST", re.compile(r"^/api/management/policies/apps$"), self._update_app_policy),
            ("GET", re.compile(r"^/api/management/policies/urls$"), self._list_urls),
            ("POST", re.compile(r"^/api/management/policies/urls$"), self._add_url),
            ("DELETE", re.compile(r"^/api/management/policies/urls/(?P<url_id>\d+)$"), self._delete_url),
            ("GET", re.compile(r"^/api/management/requests$"), self._list_requests),
            ("PUT", re.compile(r"^/api/management/requests/(?P<request_id>\d+)$"), self._update_request),
            ("GET", re.compile(r"^/api/management/violations$"), self._list_violations),
        ]

        self.add_admin(DEMO_EMAIL, DEMO_PASSWORD)
        self.tokens[DEMO_TOKEN] = DEMO_EMAIL
        if seed:
            self._seed()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        if path in self.failures:
            status, message = self.failures.pop(path)
            return _error(status, message)

        for method, pattern, handler in self._routes:
            match = pattern.match(path)
            if match and method == request.method:
                return handler(request, body, **match.groupdict())
        return _error(404, f"Cannot {request.method} {path}")

    def fail_next(self, path: str, status: int, message: str) -> None:
        """Make the next request to *path* fail with *status*."""
        self.failures[path] = (status, message)

    def calls_to(self, method: str, path: str) -> list[Any]:
        return [body for m, p, body in self.calls if m == method and p == path]

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def add_admin(self, email: str, password: str) -> dict[str, Any]:
        admin = {"id": len(self.admins) + 1, "email": email, "created_at": _iso(self._clock())}
        self.admins[email] = admin
        self.passwords[email] = password
        return admin

    def issue_token(self, email: str = DEMO_EMAIL) -> str:
        token = secrets.token_hex(16)
        self.tokens[token] = email
        return token

    def revoke_all_tokens(self) -> None:
        self.tokens.clear()

    def add_device(self, device_id: str, name: str, *, last_seen: datetime, restricted: bool = True) -> dict[str, Any]:
        now = self._clock()
        device = {
            "id": device_id,
            "device_name": name,
            "android_id": f"a{secrets.token_hex(7)}",
            "last_seen": _iso(last_seen),
            "policy_version": 3,
            "is_restricted": restricted,
            "created_at": _iso(now - timedelta(days=30)),
        }
        self.devices.append(device)
        return device

    def add_app(self, device_id: str, package_name: str, app_name: str, **flags: bool) -> dict[str, Any]:
        now = _iso(self._clock())
        app = {
            "id": next(self._ids),
            "device_id": device_id,
            "package_name": package_name,
            "app_name": app_name,
            "version_code": 1,
            "version_name": "1.0",
            "is_blocked": flags.get("is_blocked", False),
            "is_uninstallable": flags.get("is_uninstallable", False),
            "created_at": now,
            "updated_at": now,
        }
        self.apps.append(app)
        return app

    def add_request(
        self,
        device_id: str,
        request_type: str,
        *,
        status: str = "pending",
        cooldown: timedelta | None = None,
        target_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        now = self._clock()
        device = self._device(device_id)
        req = {
            "id": next(self._ids),
            "device_id": device_id,
            "device_name": device["device_name"] if device else "",
            "request_type": request_type,
            "target_data": json.dumps(target_data or {}),
            "status": status,
            "requested_at": _iso(now),
            "cooldown_until": _iso(now + cooldown) if cooldown is not None else None,
            "notes": None,
        }
        self.requests.append(req)
        return req

    def add_violation(self, device_id: str, violation_type: str, details: dict[str, Any]) -> dict[str, Any]:
        device = self._device(device_id)
        violation = {
            "id": next(self._ids),
            "device_id": device_id,
            "device_name": device["device_name"] if device else "",
            "violation_type": violation_type,
            "details": json.dumps(details),
            "created_at": _iso(self._clock()),
        }
        self.violations.append(violation)
        return violation

    def _seed(self) -> None:
        now = self._clock()
        self.add_device("1", "Pixel 7", last_seen=now - timedelta(minutes=1))
        self.add_device("2", "Galaxy Tab", last_seen=now - timedelta(hours=2), restricted=False)

        self.add_app("1", "com.android.chrome", "Chrome")
        self.add_app("1", "com.zhiliaoapp.musically", "TikTok", is_blocked=True)
        self.add_app("1", "com.whatsapp", "WhatsApp", is_uninstallable=True)
        self.add_app("2", "com.google.android.youtube", "YouTube", is_blocked=True, is_uninstallable=True)

        self.urls.append({
            "id": next(self._ids),
            "device_id": "1",
            "url_pattern": "*.gambling.*",
            "description": "Gambling sites",
            "created_at": _iso(now),
        })

        self.add_request("1", "disable_restriction", cooldown=timedelta(seconds=90),
                         target_data={"reason": "Homework research"})
        self.add_request("1", "uninstall_app", target_data={"package_name": "com.whatsapp"})
        self.add_request("2", "change_settings", status="approved")

        self.add_violation("1", "blocked_app_attempt", {"package_name": "com.zhiliaoapp.musically"})
        self.add_violation("2", "blocked_url_attempt", {"url": "casino.gambling.com"})

    def _device(self, device_id: str) -> dict[str, Any] | None:
        return next((d for d in self.devices if d["id"] == str(device_id)), None)

    # ------------------------------------------------------------------
    # Auth endpoints
    # ------------------------------------------------------------------

    def _admin_for(self, request: httpx.Request) -> dict[str, Any] | None:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        email = self.tokens.get(header[len("Bearer "):])
        return self.admins.get(email) if email else None

    def _register(self, request: httpx.Request, body: Any) -> httpx.Response:
        email = (body or {}).get("email", "")
        password = (body or {}).get("password", "")
        if not email or not password:
            return _error(400, "Email and password are required")
        if len(password) < 8:
            return _error(400, "Password must be at least 8 characters")
        if email in self.admins:
            return _error(409, "Admin already exists")
        admin = self.add_admin(email, password)
        return httpx.Response(201, json={"message": "Admin registered successfully", "admin_id": admin["id"]})

    def _login(self, request: httpx.Request, body: Any) -> httpx.Response:
        email = (body or {}).get("email", "")
        if self.passwords.get(email) != (body or {}).get("password"):
            return _error(401, "Invalid email or password")
        token = DEMO_TOKEN if email == DEMO_EMAIL else self.issue_token(email)
        self.tokens[token] = email
        return httpx.Response(200, json={"token": token, "admin": self.admins[email]})

    def _verify(self, request: httpx.Request, body: Any) -> httpx.Response:
        admin = self._admin_for(request)
        if admin is None:
            return _error(401, "Invalid or expired token")
        return httpx.Response(200, json={"valid": True, "admin": admin})

    # ------------------------------------------------------------------
    # Management endpoints
    # ------------------------------------------------------------------

    def _authorized(self, request: httpx.Request) -> httpx.Response | None:
        if self._admin_for(request) is None:
            return _error(401, "Access token required")
        return None

    def _list_devices(self, request: httpx.Request, body: Any) -> httpx.Response:
        if denied := self._authorized(request):
            return denied
        return httpx.Response(200, json={"devices": self.devices})

    def _list_apps(self, request: httpx.Request, body: Any, device_id: str) -> httpx.Response:
        if denied := self._authorized(request):
            return denied
        if self._device(device_id) is None:
            return _error(404, "Device not found")
        return httpx.Response(200, json={"apps": [a for a in self.apps if a["device_id"] == device_id]})

    def _update_app_policy(self, request: httpx.Request, body: Any) -> httpx.Response:
        if denied := self._authorized(request):
            return denied
        device_id = str(body.get("device_id", ""))
        package_name = body.get("package_name")
        if self._device(device_id) is None or not package_name:
            return _error(400, "device_id and package_name are required")
        app = next(
            (a for a in self.apps if a["device_id"] == device_id and a["package_name"] == package_name),
            None,
        )
        if app is None:
            app = self.add_app(device_id, package_name, body.get("app_name", package_name))
        app["is_blocked"] = bool(body.get("is_blocked"))
        app["is_uninstallable"] = bool(body.get("is_uninstallable"))
        app["updated_at"] = _iso(self._clock())
        device = self._device(device_id)
        device["policy_version"] += 1
        return httpx.Response(200, json={"message": "Policy updated", "policy": app})

    def _list_urls(self, request: httpx.Request, body: Any) -> httpx.Response:
        if denied := self._authorized(request):
            return denied
        if not self.url_listing:
            return _error(404, "Cannot GET /api/management/policies/urls")
        device_id = request.url.params.get("device_id")
        urls = [u for u in self.urls if device_id is None or u["device_id"] == device_id]
        return httpx.Response(200, json={"urls": urls})

    def _add_url(self, request: httpx.Request, body: Any) -> httpx.Response:
        if denied := self._authorized(request):
            return denied
        pattern = (body or {}).get("url_pattern", "")
        if not pattern:
            return _error(400, "url_pattern is required")
        url = {
            "id": next(self._ids),
            "device_id": str(body.get("device_id", "")),
            "url_pattern": pattern,
            "description": body.get("description"),
            "created_at": _iso(self._clock()),
        }
        self.urls.append(url)
        return httpx.Response(201, json={"message": "URL added", "url": url})

    def _delete_url(self, request: httpx.Request, body: Any, url_id: str) -> httpx.Response:
        if denied := self._authorized(request):
            return denied
        if not self.url_listing:
            return _error(404, f"Cannot DELETE {request.url.path}")
        before = len(self.urls)
        self.urls = [u for u in self.urls if u["id"] != int(url_id)]
        if len(self.urls) == before:
            return _error(404, "URL not found")
        return httpx.Response(200, json={"message": "URL removed"})

    def _list_requests(self, request: httpx.Request, body: Any) -> httpx.Response:
        if denied := self._authorized(request):
            return denied
        return httpx.Response(200, json={"requests": self.requests})

    def _update_request(self, request: httpx.Request, body: Any, request_id: str) -> httpx.Response:
        if denied := self._authorized(request):
            return denied
        req = next((r for r in self.requests if r["id"] == int(request_id)), None)
        if req is None:
            return _error(404, "Request not found")
        status = (body or {}).get("status")
        if status not in ("approved", "denied"):
            return _error(400, "Status must be approved or denied")
        if req["status"] != "pending":
            return _error(400, "Request has already been processed")
        req["status"] = status
        req["notes"] = body.get("notes")
        return httpx.Response(200, json={"message": f"Request {status}", "request": req})

    def _list_violations(self, request: httpx.Request, body: Any) -> httpx.Response:
        if denied := self._authorized(request):
            return denied
        device_id = request.url.params.get("device_id")
        violations = [v for v in self.violations if device_id is None or v["device_id"] == device_id]
        return httpx.Response(200, json={"violations": violations})

    def _update_settings(self, request: httpx.Request, body: Any, device_id: str) -> httpx.Response:
        if denied := self._authorized(request):
            return denied
        if self._device(device_id) is None:
            return _error(404, "Device not found")
        hours = (body or {}).get("cooldown_hours")
        if not isinstance(hours, int) or not 1 <= hours <= 168:
            return _error(400, "cooldown_hours must be between 1 and 168")
        saved = {
            "id": 1,
            "device_id": device_id,
            "cooldown_hours": hours,
            "require_admin_approval": bool(body.get("require_admin_approval")),
            "vpn_always_on": bool(body.get("vpn_always_on")),
            "prevent_factory_reset": bool(body.get("prevent_factory_reset")),
            "updated_at": _iso(self._clock()),
        }
        self.settings[device_id] = saved
        return httpx.Response(200, json={"message": "Settings updated", "settings": saved})
