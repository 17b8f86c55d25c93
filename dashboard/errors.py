"""Exceptions raised by the dashboard core.

Every failed backend call surfaces as an :class:`ApiError` carrying a
human-readable message.  The message is taken from the backend's JSON body
(``message`` first, then ``error``), falling back to the transport error and
finally to a generic string.
"""

from __future__ import annotations

from typing import Any

import httpx

GENERIC_ERROR_MESSAGE = "An error occurred"


class DashboardError(Exception):
    """Base class for all dashboard errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ApiError(DashboardError):
    """A backend call failed.

    ``status_code`` is *None* for transport failures (connection refused,
    timeouts, …) where no HTTP response was received.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def is_transport_error(self) -> bool:
        return self.status_code is None


class UnauthorizedError(ApiError):
    """The backend answered 401; the session has already been cleared."""


class NotFoundError(ApiError):
    """The backend answered 404."""


class InputError(DashboardError):
    """Local validation failed before any request was sent."""


class DeviceNotFoundError(DashboardError):
    """The requested device is not known to the device cache."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device {device_id} not found")
        self.device_id = device_id


def _message_from_body(response: httpx.Response) -> tuple[str | None, Any]:
    try:
        payload = response.json()
    except ValueError:
        return None, response.text
    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value, payload
    return None, payload


def error_from_response(response: httpx.Response) -> ApiError:
    """Build the matching :class:`ApiError` for a non-2xx response."""
    message, payload = _message_from_body(response)
    if not message:
        message = f"Request failed with status code {response.status_code}"
    status = response.status_code
    if status == 401:
        return UnauthorizedError(message, status, payload)
    if status == 404:
        return NotFoundError(message, status, payload)
    return ApiError(message, status, payload)


def error_from_transport(exc: httpx.HTTPError) -> ApiError:
    """Wrap an httpx transport failure."""
    return ApiError(str(exc) or GENERIC_ERROR_MESSAGE)


def get_error_message(exc: BaseException | None) -> str:
    """Return the text to show to the user for *exc*."""
    if isinstance(exc, DashboardError):
        return exc.message or GENERIC_ERROR_MESSAGE
    if exc is not None and str(exc):
        return str(exc)
    return GENERIC_ERROR_MESSAGE
