from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

from sagesync_models import AccessToken
from sagesync_settings import get_settings


def _ts(dt: datetime) -> float:
    return dt.timestamp()


def _dt(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class TokenStore:
    """Single-row sqlite persistence for the Fracttal access token.

    One token per deployment, so the table holds at most one row (id=1).
    """

    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or get_settings().DB_PATH
        self._init_db()

    def _init_db(self) -> None:
        with sqlite3.connect(self.db_path) as cx:
            cx.execute(
                """CREATE TABLE IF NOT EXISTS access_token(
                id INTEGER PRIMARY KEY CHECK (id = 1),
                access_token TEXT NOT NULL,
                refresh_token TEXT,
                token_type TEXT NOT NULL,
                expires_at REAL NOT NULL,
                obtained_at REAL NOT NULL
            )"""
            )

    def load(self) -> AccessToken | None:
        """Return the persisted token (expired or not), or None."""
        with sqlite3.connect(self.db_path) as cx:
            cur = cx.execute(
                "SELECT access_token, refresh_token, token_type, expires_at, obtained_at "
                "FROM access_token WHERE id=1"
            )
            r = cur.fetchone()
        if not r:
            return None
        return AccessToken(
            value=r[0],
            refresh_value=r[1],
            token_type=r[2],
            expires_at=_dt(r[3]),
            obtained_at=_dt(r[4]),
        )

    def save(self, token: AccessToken) -> None:
        with sqlite3.connect(self.db_path) as cx:
            cx.execute(
                "INSERT OR REPLACE INTO access_token"
                "(id, access_token, refresh_token, token_type, expires_at, obtained_at) "
                "VALUES(1,?,?,?,?,?)",
                (
                    token.value,
                    token.refresh_value,
                    token.token_type,
                    _ts(token.expires_at),
                    _ts(token.obtained_at),
                ),
            )
            cx.commit()

    def clear(self) -> None:
        with sqlite3.connect(self.db_path) as cx:
            cx.execute("DELETE FROM access_token")
            cx.commit()
