"""SQLite-backed client-side session store.

The dashboard persists two things between runs:

* the bearer token, kept in a small *cookie jar* with an expiry and a
  same-site attribute (7 days, ``strict``), and
* the admin profile, kept in a key/value *local storage* table.

Both tables live in one SQLite file inside the state directory.  Clearing the
session always removes both together.

This module is **synchronous** (plain ``sqlite3``); every call touches a
single row and completes well below the resolution of the UI timers.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

from .schemas import Admin

log = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"
USER_KEY = "auth_user"

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS cookies (
    name       TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    same_site  TEXT NOT NULL DEFAULT 'strict' CHECK (same_site IN ('strict', 'lax', 'none'))
);

CREATE TABLE IF NOT EXISTS local_storage (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Persistent token + profile storage.

    Parameters
    ----------
    db_path:
        Path of the SQLite file, or ``":memory:"`` for a throw-away store.
    token_days:
        Lifetime of the token cookie.
    clock:
        Returns the current UTC time; injectable for expiry tests.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        token_days: int = 7,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db_path = str(db_path)
        self._token_days = token_days
        self._clock = clock
        log.debug("Opening session store at %s", self._db_path)
        self._conn: sqlite3.Connection = sqlite3.connect(self._db_path)
        self._create_tables()

    def _create_tables(self) -> None:
        with self._conn:
            self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        self._conn.close()

    # -- cookie jar -----------------------------------------------------------

    def set_cookie(
        self,
        name: str,
        value: str,
        *,
        expires: timedelta,
        same_site: str = "strict",
    ) -> None:
        expires_at = (self._clock() + expires).isoformat()
        with self._conn:
            self._conn.execute(
                "INSERT INTO cookies (name, value, expires_at, same_site) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(name) DO UPDATE SET value = excluded.value, "
                "expires_at = excluded.expires_at, same_site = excluded.same_site",
                (name, value, expires_at, same_site),
            )

    def get_cookie(self, name: str) -> str | None:
        """Return the cookie value, or *None* if absent or expired.

        Expired cookies are purged on read.
        """
        row = self._conn.execute(
            "SELECT value, expires_at FROM cookies WHERE name = ?",
            (name,),
        ).fetchone()
        if row is None:
            return None
        value, expires_at = row
        if datetime.fromisoformat(expires_at) <= self._clock():
            log.info("Cookie %s expired, removing it.", name)
            self.remove_cookie(name)
            return None
        return value

    def cookie_attributes(self, name: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT expires_at, same_site FROM cookies WHERE name = ?",
            (name,),
        ).fetchone()
        if row is None:
            return None
        return {"expires_at": datetime.fromisoformat(row[0]), "same_site": row[1]}

    def remove_cookie(self, name: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM cookies WHERE name = ?", (name,))

    # -- local storage --------------------------------------------------------

    def set_item(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO local_storage (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "updated_at = excluded.updated_at",
                (key, value, self._clock().isoformat()),
            )

    def get_item(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM local_storage WHERE key = ?",
            (key,),
        ).fetchone()
        return row[0] if row else None

    def remove_item(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))

    # -- auth helpers ---------------------------------------------------------

    def set_token(self, token: str) -> None:
        self.set_cookie(
            TOKEN_KEY,
            token,
            expires=timedelta(days=self._token_days),
            same_site="strict",
        )

    def get_token(self) -> str | None:
        return self.get_cookie(TOKEN_KEY)

    def remove_token(self) -> None:
        self.remove_cookie(TOKEN_KEY)

    def set_user(self, admin: Admin) -> None:
        self.set_item(USER_KEY, admin.model_dump_json())

    def get_user(self) -> Admin | None:
        raw = self.get_item(USER_KEY)
        if raw is None:
            return None
        try:
            return Admin.model_validate(json.loads(raw))
        except ValueError:
            log.warning("Corrupt cached admin profile, discarding it.")
            self.remove_user()
            return None

    def remove_user(self) -> None:
        self.remove_item(USER_KEY)

    def clear_auth(self) -> None:
        """Remove token and profile together."""
        with self._conn:
            self._conn.execute("DELETE FROM cookies WHERE name = ?", (TOKEN_KEY,))
            self._conn.execute("DELETE FROM local_storage WHERE key = ?", (USER_KEY,))
        log.debug("Stored auth state cleared.")

    def is_authenticated(self) -> bool:
        return self.get_token() is not None
