from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from sagesync_config import ConfigModel
from sagesync_db import TokenStore
from sagesync_http import FracttalClient

BASE_URL = "https://fracttal.test/api"
OAUTH_URL = "https://auth.fracttal.test/oauth/token"


class FakeTokens:
    """Stand-in for TokenManager: hands out tok-1, tok-2, ... after each invalidate()."""

    def __init__(self):
        self.generation = 1
        self.invalidations = 0

    def get_access_token(self) -> str:
        return f"tok-{self.generation}"

    def invalidate(self) -> None:
        self.invalidations += 1
        self.generation += 1


class FakeFracttal:
    """In-memory Fracttal API served through httpx.MockTransport."""

    def __init__(self):
        self.warehouses: dict[str, dict[str, Any]] = {}
        self.inventories: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str, dict[str, Any] | None]] = []
        self.failing_items: set[str] = set()
        self.forbidden_paths: set[str] = set()
        self.valid_tokens: set[str] | None = None

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls_to(self, method: str, prefix: str) -> list[dict[str, Any] | None]:
        return [body for m, p, body in self.calls if m == method and p.startswith(prefix)]

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body))

        if path in self.forbidden_paths:
            return httpx.Response(401, json={"message": "UNAUTHORIZED_ENDPOINT"})
        if self.valid_tokens is not None:
            bearer = request.headers.get("Authorization", "").removeprefix("Bearer ")
            if bearer not in self.valid_tokens:
                return httpx.Response(401, json={"message": "invalid token"})

        parts = [p for p in path.split("/") if p]
        if request.method == "GET" and parts[0] == "warehouses":
            if len(parts) == 1:
                return httpx.Response(200, json={"success": True, "data": list(self.warehouses.values())})
            wh = self.warehouses.get(parts[1])
            if wh is None:
                return httpx.Response(404, json={"success": False, "message": "not found"})
            return httpx.Response(200, json={"success": True, "data": [wh]})
        if request.method == "POST" and parts == ["warehouses"]:
            self.warehouses[body["code"]] = body
            return httpx.Response(200, json={"success": True, "data": [body]})
        if request.method == "GET" and parts[0] == "inventories":
            code = parts[1]
            if code in self.failing_items:
                return httpx.Response(500, text="boom")
            item = self.inventories.get(code)
            if item is None:
                return httpx.Response(404, json={"success": False})
            return httpx.Response(200, json={"success": True, "data": [item]})
        if request.method == "PUT" and parts[0] == "inventories":
            return httpx.Response(200, json={"success": True, "data": [body]})
        if request.method == "POST" and parts == ["inventories_associate_warehouse"]:
            item = self.inventories[body["code"]]
            item.setdefault("warehouses", []).append({"code_warehouse": body["code_warehouse"]})
            return httpx.Response(200, json={"success": True, "data": [body]})
        if request.method == "POST" and parts == ["inventories"]:
            self.inventories[body["code"]] = {
                "code": body["code"],
                "warehouses": [{"code_warehouse": body["code_warehouse"]}],
            }
            return httpx.Response(200, json={"success": True, "data": [body]})
        return httpx.Response(400, json={"message": f"unexpected {request.method} {path}"})


@pytest.fixture
def fracttal() -> FakeFracttal:
    return FakeFracttal()


@pytest.fixture
def tokens() -> FakeTokens:
    return FakeTokens()


@pytest.fixture
def client(fracttal: FakeFracttal, tokens: FakeTokens):
    c = FracttalClient(tokens, BASE_URL, timeout=5, transport=fracttal.transport())
    yield c
    c.close()


@pytest.fixture
def token_store(tmp_path) -> TokenStore:
    return TokenStore(str(tmp_path / "tokens.sqlite3"))


@pytest.fixture
def config() -> ConfigModel:
    return ConfigModel.model_validate(
        {
            "location_mapping": {
                "GRAL": {
                    "warehouse_code": "ALM-GRAL",
                    "special_rules": [
                        {
                            "name": "Explosives",
                            "keywords": ["DETONANTE", "NONEL"],
                            "warehouse_code": "ALM-POLV",
                        },
                        {
                            "name": "Cords",
                            "keywords": ["CORDON"],
                            "warehouse_code": "ALM-CORD",
                        },
                    ],
                },
                "TALLER": {"warehouse_code": "ALM-TALLER"},
            },
            "default_warehouse": {"code": "ALM-GRAL"},
            "warehouse_creation": {
                "enabled": True,
                "description_template": "ALMACEN {code}",
                "default_values": {"external_integration": True},
            },
        }
    )
