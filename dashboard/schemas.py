"""Backend payloads as seen by the dashboard.

The backend owns these entities; the dashboard only keeps transient copies.
Unknown fields are ignored so newer backend builds do not break parsing.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or pass a datetime through) as aware UTC.

    Anything unparseable becomes *None*, which renders as "Unknown".
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except (AttributeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


Timestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]

RequestStatus = Literal["pending", "approved", "denied"]
Decision = Literal["approved", "denied"]

REQUEST_STATUSES: tuple[str, ...] = ("pending", "approved", "denied")


class _Schema(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class Admin(_Schema):
    id: int
    email: str
    created_at: Timestamp = None


class LoginResponse(_Schema):
    token: str
    admin: Admin


class VerifyResponse(_Schema):
    valid: bool
    admin: Admin | None = None


class RegisterResponse(_Schema):
    message: str = ""
    admin_id: int | None = None


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


class Device(_Schema):
    id: str
    device_name: str
    android_id: str = ""
    last_seen: Timestamp = None
    policy_version: int = 0
    is_restricted: bool = False
    created_at: Timestamp = None

    def is_online(
        self,
        now: datetime | None = None,
        threshold: timedelta = timedelta(minutes=5),
    ) -> bool:
        """True when the device reported in within *threshold* of *now*."""
        if self.last_seen is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now - self.last_seen < threshold


class DeviceSettings(_Schema):
    id: int | None = None
    device_id: str
    cooldown_hours: int = Field(default=24, ge=1, le=168)
    require_admin_approval: bool = True
    vpn_always_on: bool = False
    prevent_factory_reset: bool = True
    updated_at: Timestamp = None


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class App(_Schema):
    id: int
    device_id: str
    package_name: str
    app_name: str
    version_code: int | None = None
    version_name: str | None = None
    is_blocked: bool = False
    is_uninstallable: bool = False
    created_at: Timestamp = None
    updated_at: Timestamp = None


class AppPolicyRequest(_Schema):
    device_id: str
    package_name: str
    app_name: str
    is_blocked: bool
    is_uninstallable: bool


class BlacklistedUrl(_Schema):
    id: int
    device_id: str
    url_pattern: str
    description: str | None = None
    created_at: Timestamp = None


# ---------------------------------------------------------------------------
# Approval requests & violations
# ---------------------------------------------------------------------------


class ApprovalRequest(_Schema):
    id: int
    device_id: str
    device_name: str = ""
    request_type: str
    target_data: Any = None  # opaque JSON, usually a string
    status: str = "pending"
    requested_at: Timestamp = None
    cooldown_until: Timestamp = None
    notes: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"


class Violation(_Schema):
    id: int
    device_id: str
    device_name: str = ""
    violation_type: str
    details: Any = None  # opaque JSON, usually a string
    created_at: Timestamp = None
