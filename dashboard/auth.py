"""Admin session lifecycle.

State machine::

    UNKNOWN ──(no stored token / verify fails)──▶ UNAUTHENTICATED
    UNKNOWN ──(verify succeeds)────────────────▶ AUTHENTICATED
    UNAUTHENTICATED ──(login succeeds)─────────▶ AUTHENTICATED
    AUTHENTICATED ──(logout / any 401)─────────▶ UNAUTHENTICATED

The manager never navigates anywhere itself.  Whoever renders the UI
subscribes with :meth:`AuthManager.on_logout` and sends the admin back to the
login entry point when the callback fires.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable

from .api import ApiClient
from .errors import ApiError, get_error_message
from .schemas import Admin, RegisterResponse
from .storage import SessionStore

log = logging.getLogger(__name__)

LogoutCallback = Callable[[str], None]

REASON_LOGOUT = "logout"
REASON_UNAUTHORIZED = "unauthorized"
REASON_INVALID = "invalid"


class AuthState(str, enum.Enum):
    UNKNOWN = "unknown"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class AuthManager:
    """Owns the admin session and the global 401 guard.

    Parameters
    ----------
    store:
        Persistent token/profile storage.
    client:
        The shared API client; the manager installs itself as the client's
        ``on_unauthorized`` handler.
    """

    def __init__(self, store: SessionStore, client: ApiClient) -> None:
        self._store = store
        self._client = client
        self._client.on_unauthorized = self.handle_unauthorized
        self._listeners: list[LogoutCallback] = []

        self.state = AuthState.UNKNOWN
        self.user: Admin | None = None
        self.token: str | None = None

    # -- subscriptions -------------------------------------------------------

    def on_logout(self, callback: LogoutCallback) -> Callable[[], None]:
        """Register *callback(reason)*; returns a function that unsubscribes."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _emit_logout(self, reason: str) -> None:
        for callback in list(self._listeners):
            try:
                callback(reason)
            except Exception:
                log.exception("Logout listener failed")

    # -- state ---------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return (
            self.state is AuthState.AUTHENTICATED
            and self.token is not None
            and self.user is not None
        )

    def _set_authenticated(self, token: str, admin: Admin) -> None:
        self.token = token
        self.user = admin
        self.state = AuthState.AUTHENTICATED

    def _set_unauthenticated(self) -> AuthState:
        previous = self.state
        self._store.clear_auth()
        self.token = None
        self.user = None
        self.state = AuthState.UNAUTHENTICATED
        return previous

    # -- operations ----------------------------------------------------------

    async def verify(self) -> bool:
        """Validate the stored token against the backend.

        Any failure (invalid token, 401, network error) clears all stored
        auth state.  There is no retry.
        """
        token = self._store.get_token()
        if not token:
            self.state = AuthState.UNAUTHENTICATED
            self.token = None
            self.user = None
            return False

        try:
            response = await self._client.auth.verify()
        except ApiError as exc:
            log.error("Auth verification failed: %s", get_error_message(exc))
            self._set_unauthenticated()
            return False

        if response.valid and response.admin is not None:
            self._store.set_user(response.admin)
            self._set_authenticated(token, response.admin)
            log.info("Session verified for %s", response.admin.email)
            return True

        log.info("Stored token rejected by backend; clearing session.")
        if self._set_unauthenticated() is not AuthState.UNAUTHENTICATED:
            self._emit_logout(REASON_INVALID)
        return False

    async def login(self, email: str, password: str) -> Admin:
        """Exchange credentials for a token.

        On failure the backend's message is raised unchanged as an
        :class:`~dashboard.errors.ApiError` and the stored session is left
        exactly as it was.
        """
        try:
            response = await self._client.auth.login(email, password)
        except ApiError:
            if self.state is AuthState.UNKNOWN:
                self.state = AuthState.UNAUTHENTICATED
            raise
        self._store.set_token(response.token)
        self._store.set_user(response.admin)
        self._set_authenticated(response.token, response.admin)
        log.info("Logged in as %s", response.admin.email)
        return response.admin

    async def register(self, email: str, password: str) -> RegisterResponse:
        """Create an admin account.  Does not log in."""
        response = await self._client.auth.register(email, password)
        log.info("Registered admin account %s", response.admin_id)
        return response

    def logout(self) -> None:
        """Clear stored state unconditionally and notify subscribers."""
        self._set_unauthenticated()
        log.info("Logged out.")
        self._emit_logout(REASON_LOGOUT)

    def handle_unauthorized(self) -> None:
        """Global 401 guard, called by the API client for every 401.

        Clearing is idempotent; subscribers are only notified when the
        session actually ends, so a burst of 401s from concurrent calls sends
        the admin to the login screen once.
        """
        previous = self._set_unauthenticated()
        log.warning("Backend rejected the session token (401).")
        if previous is not AuthState.UNAUTHENTICATED:
            self._emit_logout(REASON_UNAUTHORIZED)
