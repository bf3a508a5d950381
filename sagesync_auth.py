from __future__ import annotations

import sqlite3
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, cast

import httpx
import structlog

from sagesync_db import TokenStore
from sagesync_errors import AuthenticationError
from sagesync_models import AccessToken
from sagesync_settings import SettingsStrict

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


def request_token(
    http: httpx.Client, auth_url: str, client_id: str, client_secret: str, data: dict[str, str]
) -> dict[str, Any]:
    """POST an OAuth2 grant using HTTP Basic client authentication.

    Raises AuthenticationError with a descriptive message on failure.
    """
    grant = data.get("grant_type")
    logger.info("Requesting Fracttal token", url=auth_url, grant_type=grant)

    try:
        r = http.post(auth_url, data=data, auth=(client_id, client_secret))
        r.raise_for_status()
        payload = cast(dict[str, Any], r.json())
    except httpx.HTTPStatusError as e:
        logger.error(
            "Fracttal auth failed",
            grant_type=grant,
            status_code=e.response.status_code,
            response=e.response.text[:500],
        )
        error_msg = f"Fracttal authentication failed ({grant}): {e.response.text[:200]}"
        if "invalid_client" in e.response.text:
            error_msg += "\nCheck your FRACTTAL_CLIENT_ID and FRACTTAL_CLIENT_SECRET"
        raise AuthenticationError(error_msg, e.response.status_code, e.response.text[:500]) from e
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Fracttal auth error", grant_type=grant, error=str(e))
        raise AuthenticationError(f"Fracttal authentication error: {e}") from e

    if not isinstance(payload.get("access_token"), str):
        raise AuthenticationError("Authentication succeeded but no access_token in response")
    return payload


class TokenManager:
    """Owns the single Fracttal access token of this process.

    Tokens are served from memory while they have more than `margin` left,
    otherwise re-acquired: first from the persisted store, then via the
    refresh_token grant, then via client_credentials.
    """

    def __init__(
        self,
        auth_url: str,
        client_id: str,
        client_secret: str,
        store: TokenStore,
        *,
        timeout: float = 30,
        margin: timedelta = timedelta(minutes=5),
        default_ttl: int = 7200,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.auth_url = auth_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._store = store
        self._margin = margin
        self._default_ttl = default_ttl
        self._clock = clock
        self._http = httpx.Client(timeout=timeout, transport=transport)
        self._token: AccessToken | None = None
        # Re-entrant: get_access_token -> authenticate -> refresh_access_token
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, s: SettingsStrict, store: TokenStore | None = None) -> TokenManager:
        return cls(
            s.FRACTTAL_OAUTH_URL,
            s.FRACTTAL_CLIENT_ID,
            s.FRACTTAL_CLIENT_SECRET,
            store or TokenStore(s.DB_PATH),
            timeout=s.HTTP_TIMEOUT,
            margin=timedelta(seconds=s.TOKEN_MARGIN),
            default_ttl=s.TOKEN_TTL,
        )

    def get_access_token(self) -> str:
        with self._lock:
            tok = self._token
            if tok is not None:
                left = tok.remaining(self._clock())
                if left > self._margin:
                    return tok.value
                logger.info("Token close to expiry, renewing", minutes_left=_minutes(left))
            return self.authenticate()

    def authenticate(self) -> str:
        with self._lock:
            stored = self._store.load()
            if stored is not None:
                left = stored.remaining(self._clock())
                if left > timedelta(0):
                    self._token = stored
                    logger.info(
                        "Token loaded from store",
                        expires_at=stored.expires_at.isoformat(),
                        minutes_left=_minutes(left),
                    )
                    return stored.value
                logger.info("Stored token expired", minutes_ago=-_minutes(left))

            has_refresh = bool(
                (self._token and self._token.refresh_value) or (stored and stored.refresh_value)
            )
            if has_refresh:
                try:
                    return self.refresh_access_token()
                except AuthenticationError as e:
                    logger.warning("Token refresh failed, using client credentials", error=str(e))

            payload = request_token(
                self._http,
                self.auth_url,
                self._client_id,
                self._client_secret,
                {"grant_type": "client_credentials"},
            )
            return self._adopt(payload)

    def refresh_access_token(self) -> str:
        with self._lock:
            current = self._token or self._store.load()
            refresh = current.refresh_value if current else None
            if not refresh:
                raise AuthenticationError("No refresh token available")
            payload = request_token(
                self._http,
                self.auth_url,
                self._client_id,
                self._client_secret,
                {"grant_type": "refresh_token", "refresh_token": refresh},
            )
            return self._adopt(payload, fallback_refresh=refresh)

    def invalidate(self) -> None:
        """Forget the current token everywhere so the next call fetches a new one."""
        with self._lock:
            self._token = None
            self._store.clear()

    def describe(self) -> dict[str, Any]:
        with self._lock:
            tok = self._token or self._store.load()
            if tok is None:
                return {"has_token": False}
            left = tok.remaining(self._clock())
            return {
                "has_token": True,
                "in_memory": tok is self._token,
                "expires_at": tok.expires_at.isoformat(),
                "minutes_left": _minutes(left),
                "expired": left <= timedelta(0),
                "has_refresh_token": bool(tok.refresh_value),
            }

    def close(self) -> None:
        self._http.close()

    def _adopt(self, payload: dict[str, Any], fallback_refresh: str | None = None) -> str:
        now = self._clock()
        ttl = int(payload.get("expires_in") or self._default_ttl)
        token = AccessToken(
            value=payload["access_token"],
            refresh_value=payload.get("refresh_token") or fallback_refresh,
            token_type=payload.get("token_type") or "Bearer",
            expires_at=now + timedelta(seconds=ttl),
            obtained_at=now,
        )
        self._token = token
        try:
            self._store.save(token)
        except sqlite3.Error as e:
            logger.warning("Could not persist token", error=str(e))
        logger.info("Fracttal token acquired", expires_at=token.expires_at.isoformat())
        return token.value
