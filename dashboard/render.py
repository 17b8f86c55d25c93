"""Plain-text rendering of the dashboard pages.

Each ``render_*`` function takes a mounted view-model and returns the page as
a string.  Status is shown as text labels instead of colours so the output
stays readable when piped.
"""

from __future__ import annotations

from typing import Sequence

from .utils import (
    format_absolute_time,
    format_relative_time,
    format_request_type,
    format_violation_type,
    truncate,
)
from .views import (
    AppsView,
    DeviceDetailView,
    DeviceScopedView,
    DevicesView,
    RequestsView,
    SettingsView,
    UrlsView,
    View,
    ViolationsView,
)

# Text labels for each status
_STATUS_LABELS: dict[str, str] = {
    "online": "ONLINE",
    "offline": "offline",
    "restricted": "restricted",
    "unrestricted": "unrestricted",
    "pending": "PENDING",
    "approved": "approved",
    "denied": "denied",
}

_DETAIL_WIDTH = 48


def _table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> str:
    cells = [[str(c) for c in headers]] + [[str(c) for c in row] for row in rows]
    widths = [max(len(row[i]) for row in cells) for i in range(len(headers))]
    lines = []
    for n, row in enumerate(cells):
        lines.append("  ".join(c.ljust(w) for c, w in zip(row, widths)).rstrip())
        if n == 0:
            lines.append("  ".join("-" * w for w in widths))
    return "\n".join(lines)


def _banners(view: View) -> list[str]:
    lines = []
    if view.error:
        lines.append(f"[error] {view.error}")
    if view.success_message:
        lines.append(f"[ok] {view.success_message}")
    return lines


def _page(title: str, view: View, body: list[str]) -> str:
    lines = [title, "=" * len(title), *_banners(view)]
    if view.loading:
        lines.append("Loading...")
    lines.extend(body)
    return "\n".join(lines)


def render_not_found(view: DeviceScopedView) -> str:
    return _page(
        "Device Not Found",
        view,
        [f"No device with id {view.device_id}.", "Run 'mdm-dashboard devices' to list devices."],
    )


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


def render_overview(view: DevicesView) -> str:
    body = [
        f"Total devices:      {view.total_count}",
        f"Restricted devices: {view.restricted_count}",
        f"Online devices:     {view.online_count}",
    ]
    return _page("Overview", view, body)


def render_devices(view: DevicesView) -> str:
    if view.is_empty:
        return _page("Devices", view, ["No devices registered yet."])
    now = view.now()
    rows = [
        (
            d.id,
            d.device_name,
            _STATUS_LABELS["online" if view.is_online(d) else "offline"],
            _STATUS_LABELS["restricted" if d.is_restricted else "unrestricted"],
            format_relative_time(d.last_seen, now),
            d.policy_version,
        )
        for d in view.devices
    ]
    table = _table(("ID", "Name", "Status", "Mode", "Last seen", "Policy"), rows)
    return _page("Devices", view, [table])


def render_device_detail(view: DeviceDetailView) -> str:
    device = view.device
    if view.not_found or device is None:
        return render_not_found(view)
    body = [
        f"Name:           {device.device_name}",
        f"Android ID:     {device.android_id or '-'}",
        f"Status:         {_STATUS_LABELS['online' if view.is_online else 'offline']}",
        f"Mode:           {_STATUS_LABELS['restricted' if device.is_restricted else 'unrestricted']}",
        f"Last seen:      {format_relative_time(device.last_seen, view.now())}",
        f"Registered:     {format_absolute_time(device.created_at)}",
        f"Policy version: {device.policy_version}",
        f"Apps:           {len(view.apps)} installed, {view.blocked_count} blocked, "
        f"{view.locked_count} locked",
    ]
    return _page(f"Device {device.id}", view, body)


def render_apps(view: AppsView) -> str:
    if view.not_found or view.device is None:
        return render_not_found(view)
    title = f"Apps on {view.device.device_name}"
    if not view.apps:
        return _page(title, view, ["No apps reported by this device."])
    if view.no_matches:
        return _page(title, view, [f"No apps match {view.search_query!r}."])
    rows = [
        (
            a.id,
            a.app_name,
            a.package_name,
            a.version_name or "-",
            "yes" if a.is_blocked else "no",
            "yes" if a.is_uninstallable else "no",
        )
        for a in view.filtered_apps
    ]
    table = _table(("ID", "App", "Package", "Version", "Blocked", "Locked"), rows)
    summary = f"{len(view.apps)} apps, {view.blocked_count} blocked, {view.locked_count} locked"
    return _page(title, view, [table, summary])


def render_urls(view: UrlsView) -> str:
    if view.not_found or view.device is None:
        return render_not_found(view)
    title = f"URL blacklist for {view.device.device_name}"
    body: list[str] = []
    if view.add_only:
        body.append("This backend cannot list entries; showing entries added in this session.")
    if view.urls:
        rows = [
            (u.id, u.url_pattern, truncate(u.description or "-", _DETAIL_WIDTH), format_absolute_time(u.created_at))
            for u in view.urls
        ]
        body.append(_table(("ID", "Pattern", "Description", "Added"), rows))
    elif not view.add_only:
        body.append("No blacklisted URLs.")
    return _page(title, view, body)


def _describe(data: dict) -> str:
    text = ", ".join(f"{k}={v}" for k, v in data.items()) or "-"
    return truncate(text, _DETAIL_WIDTH)


def render_requests(view: RequestsView) -> str:
    body = [f"{view.pending_count} pending of {view.total_count} (filter: {view.status_filter})"]
    requests = view.filtered_requests
    if not requests:
        body.append("No requests.")
        return _page("Approval Requests", view, body)
    rows = [
        (
            r.id,
            r.device_name or r.device_id,
            format_request_type(r.request_type),
            _STATUS_LABELS.get(r.status, r.status),
            format_relative_time(r.requested_at, view.now()),
            view.countdown_text(r) or "-",
            _describe(view.target_data(r)),
        )
        for r in requests
    ]
    body.append(_table(("ID", "Device", "Type", "Status", "Requested", "Cooldown", "Details"), rows))
    return _page("Approval Requests", view, body)


def render_violations(view: ViolationsView) -> str:
    title = "Violations"
    if view.device_filter != "all":
        device = next((d for d in view.devices if d.id == view.device_filter), None)
        title += f" for {device.device_name if device else view.device_filter}"
    if not view.violations:
        return _page(title, view, ["No violations recorded."])
    rows = [
        (
            v.id,
            v.device_name or v.device_id,
            format_violation_type(v.violation_type),
            format_absolute_time(v.created_at),
            _describe(view.details(v)),
        )
        for v in view.violations
    ]
    return _page(title, view, [_table(("ID", "Device", "Type", "When", "Details"), rows)])


def render_settings(view: SettingsView) -> str:
    if view.not_found or view.device is None:
        return render_not_found(view)

    def _flag(value: bool) -> str:
        return "on" if value else "off"

    body = [
        f"Cooldown:                {view.cooldown_hours} hours",
        f"Require admin approval:  {_flag(view.require_admin_approval)}",
        f"VPN always on:           {_flag(view.vpn_always_on)}",
        f"Prevent factory reset:   {_flag(view.prevent_factory_reset)}",
    ]
    return _page(f"Settings for {view.device.device_name}", view, body)
