"""Formatting helpers shared by views and the renderer."""

from __future__ import annotations

import json
import math
import re
from datetime import datetime, timezone, tzinfo
from typing import Any, Iterable, TypeVar

from .schemas import App, ApprovalRequest, parse_timestamp

T = TypeVar("T")

_UNKNOWN = "Unknown"

_VIOLATION_TYPES: dict[str, str] = {
    "blocked_app_attempt": "Blocked App Access Attempt",
    "blocked_url_attempt": "Blocked URL Access Attempt",
    "uninstall_attempt": "App Uninstall Attempt",
    "settings_change_attempt": "Settings Change Attempt",
}

_REQUEST_TYPES: dict[str, str] = {
    "disable_restriction": "Disable Restriction",
    "uninstall_app": "Uninstall App",
    "change_settings": "Change Settings",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Relative / absolute time
# ---------------------------------------------------------------------------


def _distance(seconds: float) -> str:
    """Approximate wording for a time distance, e.g. ``"about 2 hours"``."""
    minutes = seconds / 60
    if seconds < 30:
        return "less than a minute"
    if minutes < 1.5:
        return "1 minute"
    if minutes < 45:
        return f"{round(minutes)} minutes"
    if minutes < 90:
        return "about 1 hour"
    hours = minutes / 60
    if hours < 24:
        return f"about {round(hours)} hours"
    days = hours / 24
    if hours < 42:
        return "1 day"
    if days < 30:
        return f"{round(days)} days"
    if days < 45:
        return "about 1 month"
    if days < 60:
        return "about 2 months"
    months = days / 30
    if days < 365:
        return f"{round(months)} months"
    years = int(days // 365)
    rest_months = (days - years * 365) / 30
    if rest_months < 3:
        return f"about {years} year{'s' if years > 1 else ''}"
    if rest_months < 9:
        return f"over {years} year{'s' if years > 1 else ''}"
    return f"almost {years + 1} years"


def format_relative_time(value: str | datetime | None, now: datetime | None = None) -> str:
    """``"5 minutes ago"`` / ``"in about 2 hours"``; ``"Unknown"`` if unparseable."""
    dt = parse_timestamp(value)
    if dt is None:
        return _UNKNOWN
    delta = (now or _utcnow()) - dt
    seconds = delta.total_seconds()
    if seconds >= 0:
        return f"{_distance(seconds)} ago"
    return f"in {_distance(-seconds)}"


def format_absolute_time(value: str | datetime | None, tz: tzinfo | None = None) -> str:
    """``"Dec 26, 2025 6:05 PM"`` in *tz* (local time by default)."""
    dt = parse_timestamp(value)
    if dt is None:
        return _UNKNOWN
    dt = dt.astimezone(tz)
    hour = dt.hour % 12 or 12
    meridiem = "AM" if dt.hour < 12 else "PM"
    return f"{dt:%b} {dt.day:02d}, {dt.year} {hour}:{dt.minute:02d} {meridiem}"


def get_time_remaining(value: str | datetime | None, now: datetime | None = None) -> str | None:
    """Wording for the time left until *value*, or *None* once it has passed."""
    dt = parse_timestamp(value)
    if dt is None:
        return None
    seconds = (dt - (now or _utcnow())).total_seconds()
    if seconds <= 0:
        return None
    return _distance(seconds)


# ---------------------------------------------------------------------------
# Countdown
# ---------------------------------------------------------------------------


def countdown_seconds(value: str | datetime | None, now: datetime | None = None) -> int:
    """Whole seconds until *value*; 0 when it is in the past or unparseable."""
    dt = parse_timestamp(value)
    if dt is None:
        return 0
    diff = (dt - (now or _utcnow())).total_seconds()
    return math.floor(diff) if diff > 0 else 0


def format_countdown(seconds: int) -> str:
    """Format seconds as ``"2h 15m 30s"``; ``"Expired"`` when not positive."""
    if seconds <= 0:
        return "Expired"

    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def safe_json_parse(value: Any, fallback: T) -> Any | T:
    """Decode an opaque JSON payload, returning *fallback* if it is not JSON.

    Payloads that already arrive decoded (dicts, lists) are returned as-is.
    """
    if isinstance(value, (dict, list)):
        return value
    if not isinstance(value, (str, bytes)):
        return fallback
    try:
        return json.loads(value)
    except ValueError:
        return fallback


def _humanize(key: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key.replace("_", " "))


def format_violation_type(violation_type: str) -> str:
    return _VIOLATION_TYPES.get(violation_type) or _humanize(violation_type)


def format_request_type(request_type: str) -> str:
    return _REQUEST_TYPES.get(request_type) or _humanize(request_type)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def filter_apps(apps: Iterable[App], query: str) -> list[App]:
    """Case-insensitive match on app name or package name; blank → all."""
    needle = query.strip().lower()
    if not needle:
        return list(apps)
    return [
        app
        for app in apps
        if needle in app.app_name.lower() or needle in app.package_name.lower()
    ]


def filter_requests(requests: Iterable[ApprovalRequest], status: str) -> list[ApprovalRequest]:
    if status == "all":
        return list(requests)
    return [r for r in requests if r.status == status]
