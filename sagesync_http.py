from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, cast
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
)

from sagesync_errors import (
    AuthExpiredError,
    AuthenticationError,
    RemoteNotFoundError,
    RemoteRequestError,
    UnauthorizedEndpointError,
)
from sagesync_models import WarehouseCreate
from sagesync_settings import SettingsStrict

logger = structlog.get_logger()

UNAUTHORIZED_ENDPOINT = "UNAUTHORIZED_ENDPOINT"


class TokenSource(Protocol):
    def get_access_token(self) -> str: ...

    def invalidate(self) -> None: ...


def build_url(base: str, path: str) -> str:
    """Join the base and path with a single slash."""
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def _is_unauthorized_endpoint(r: httpx.Response) -> bool:
    try:
        body = r.json()
    except ValueError:
        return UNAUTHORIZED_ENDPOINT in (r.text or "")
    return isinstance(body, dict) and body.get("message") == UNAUTHORIZED_ENDPOINT


def call_with_token_renewal(
    tokens: TokenSource, send: Callable[[str], httpx.Response], endpoint: str = ""
) -> httpx.Response:
    """Call `send(bearer)` and replay it once with a new token on a 401.

    A second 401 raises AuthenticationError. A 401 flagged UNAUTHORIZED_ENDPOINT
    raises UnauthorizedEndpointError straight away since a new token cannot help.
    """

    def attempt() -> httpx.Response:
        r = send(tokens.get_access_token())
        if r.status_code != 401:
            return r
        if _is_unauthorized_endpoint(r):
            logger.error(
                "Endpoint not authorized for these credentials",
                endpoint=endpoint,
                hint="ask Fracttal to enable the required module",
            )
            raise UnauthorizedEndpointError(endpoint, 401, r.text[:500])
        raise AuthExpiredError(f"{endpoint} -> 401", 401, r.text[:500])

    def renew(state: RetryCallState) -> None:
        logger.warning("Token rejected (401), renewing and replaying", endpoint=endpoint)
        tokens.invalidate()

    def give_up(state: RetryCallState) -> httpx.Response:
        exc = state.outcome.exception() if state.outcome else None
        logger.error("Token rejected again after renewal", endpoint=endpoint)
        raise AuthenticationError(
            f"Fracttal rejected a freshly issued token for {endpoint}",
            401,
            getattr(exc, "response_body", ""),
        ) from exc

    retrying = Retrying(
        stop=stop_after_attempt(2),
        retry=retry_if_exception_type(AuthExpiredError),
        before_sleep=renew,
        retry_error_callback=give_up,
    )
    return retrying(attempt)


def _raise_for_status(r: httpx.Response, method: str, url: str) -> None:
    """Map HTTP failures onto the sagesync error taxonomy."""
    if r.status_code == 404:
        logger.info("Not found", method=method, url=url)
        raise RemoteNotFoundError(f"{method} {url} -> 404", 404, r.text[:500])
    if r.status_code == 429:
        logger.warning("Rate limited", url=url, status_code=r.status_code)
    elif r.status_code >= 500:
        logger.error("Server error", url=url, status_code=r.status_code, response=r.text[:500])
    if r.status_code >= 400:
        logger.error("HTTP error", method=method, url=url, status_code=r.status_code, response=r.text[:500])
        raise RemoteRequestError(
            f"{method} {url} -> {r.status_code}: {r.text[:200]}", r.status_code, r.text[:500]
        )


def unwrap(envelope: dict[str, Any]) -> dict[str, Any] | None:
    """Return the first record of a Fracttal {success, data} envelope, or None."""
    if not envelope or envelope.get("success") is False:
        return None
    data = envelope.get("data")
    if isinstance(data, list):
        data = data[0] if data else None
    return data if isinstance(data, dict) and data else None


class FracttalClient:
    """Fracttal REST API with bearer tokens injected by a TokenManager."""

    def __init__(
        self,
        tokens: TokenSource,
        base_url: str,
        timeout: float = 30,
        transport: httpx.BaseTransport | None = None,
    ):
        self.tokens = tokens
        self.base_url = base_url
        self._http = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, s: SettingsStrict, tokens: TokenSource) -> FracttalClient:
        return cls(tokens, s.FRACTTAL_BASE_URL, timeout=s.HTTP_TIMEOUT)

    def close(self) -> None:
        self._http.close()

    def request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = build_url(self.base_url, path)
        logger.debug("Making request", method=method, url=url, params=params)

        def send(bearer: str) -> httpx.Response:
            return self._http.request(
                method,
                url,
                json=payload,
                params=params,
                headers={"Authorization": f"Bearer {bearer}"},
            )

        try:
            r = call_with_token_renewal(self.tokens, send, endpoint=f"{method} {path}")
        except httpx.TransportError as e:
            logger.error("Request error", method=method, url=url, error=str(e))
            raise RemoteRequestError(f"{method} {url} failed: {e}") from e

        _raise_for_status(r, method, url)
        try:
            return cast(dict[str, Any], r.json())
        except ValueError:
            logger.warning("No JSON response", method=method, url=url, status_code=r.status_code)
            return {}

    # ---------- Warehouses ----------
    def get_warehouse(self, code: str) -> dict[str, Any]:
        """Return the warehouse record; RemoteNotFoundError if Fracttal has none."""
        envelope = self.request("GET", f"/warehouses/{quote(code, safe='')}")
        data = unwrap(envelope)
        if data is None:
            raise RemoteNotFoundError(f"Warehouse {code} not found", 404)
        return data

    def list_warehouses(self, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        envelope = self.request("GET", "/warehouses", params=params)
        data = envelope.get("data") or []
        return data if isinstance(data, list) else [data]

    def create_warehouse(self, warehouse: WarehouseCreate) -> dict[str, Any]:
        logger.info("Creating warehouse", code=warehouse.code, description=warehouse.description)
        envelope = self.request("POST", "/warehouses/", payload=warehouse.model_dump())
        return unwrap(envelope) or warehouse.model_dump()

    # ---------- Inventories ----------
    def get_inventory(self, code: str) -> dict[str, Any]:
        return self.request("GET", f"/inventories/{quote(code, safe='')}")

    def update_inventory(self, code: str, warehouse_code: str, data: dict[str, Any]) -> dict[str, Any]:
        logger.info("Updating inventory", item=code, warehouse=warehouse_code)
        body = {"code": code, "code_warehouse": warehouse_code, **data}
        return self.request("PUT", f"/inventories/{quote(code, safe='')}", payload=body)

    def associate_inventory(self, code: str, warehouse_code: str, data: dict[str, Any]) -> dict[str, Any]:
        logger.info("Associating item to warehouse", item=code, warehouse=warehouse_code)
        body = {"code": code, "code_warehouse": warehouse_code, **data}
        return self.request("POST", "/inventories_associate_warehouse/", payload=body)

    def create_inventory(
        self, code: str, description: str, warehouse_code: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        logger.info("Creating inventory item", item=code, warehouse=warehouse_code)
        body = {
            "code": code,
            "description": description or code,
            "code_warehouse": warehouse_code,
            **data,
        }
        return self.request("POST", "/inventories/", payload=body)
