"""Page view-models.

Every page of the dashboard is imported here so callers can pull them from
one place.
"""

from dashboard.views.apps import AppsView  # noqa: F401
from dashboard.views.base import DeviceScopedView, View  # noqa: F401
from dashboard.views.devices import DeviceDetailView, DevicesView  # noqa: F401
from dashboard.views.requests import RequestsView  # noqa: F401
from dashboard.views.settings import SettingsView  # noqa: F401
from dashboard.views.urls import UrlsView  # noqa: F401
from dashboard.views.violations import ViolationsView  # noqa: F401

__all__ = [
    "AppsView",
    "DeviceDetailView",
    "DeviceScopedView",
    "DevicesView",
    "RequestsView",
    "SettingsView",
    "UrlsView",
    "View",
    "ViolationsView",
]
