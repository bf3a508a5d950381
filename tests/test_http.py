import httpx
import pytest

from conftest import BASE_URL, FakeTokens
from sagesync_errors import (
    AuthenticationError,
    RemoteNotFoundError,
    RemoteRequestError,
    UnauthorizedEndpointError,
)
from sagesync_http import FracttalClient, build_url, call_with_token_renewal, unwrap


def _sender(*statuses, body=None):
    """Return a send() callable replaying the given statuses and recording bearers."""
    seen: list[str] = []
    queue = list(statuses)

    def send(bearer: str) -> httpx.Response:
        seen.append(bearer)
        return httpx.Response(queue.pop(0), json=body or {"success": True})

    return send, seen


def test_success_uses_current_token():
    tokens = FakeTokens()
    send, seen = _sender(200)
    r = call_with_token_renewal(tokens, send)
    assert r.status_code == 200
    assert seen == ["tok-1"]
    assert tokens.invalidations == 0


def test_single_401_renews_and_replays_once():
    tokens = FakeTokens()
    send, seen = _sender(401, 200)
    r = call_with_token_renewal(tokens, send, endpoint="GET /warehouses/X")
    assert r.status_code == 200
    assert seen == ["tok-1", "tok-2"]
    assert tokens.invalidations == 1


def test_second_401_is_fatal_and_not_retried_again():
    tokens = FakeTokens()
    send, seen = _sender(401, 401, 200)
    with pytest.raises(AuthenticationError):
        call_with_token_renewal(tokens, send)
    assert seen == ["tok-1", "tok-2"]
    assert tokens.invalidations == 1


def test_unauthorized_endpoint_is_not_retried():
    tokens = FakeTokens()
    send, seen = _sender(401, 200, body={"message": "UNAUTHORIZED_ENDPOINT"})
    with pytest.raises(UnauthorizedEndpointError) as exc:
        call_with_token_renewal(tokens, send, endpoint="GET /warehouses/X")
    assert exc.value.endpoint == "GET /warehouses/X"
    assert seen == ["tok-1"]
    assert tokens.invalidations == 0


def test_other_errors_pass_through_untouched():
    tokens = FakeTokens()
    send, seen = _sender(500)
    assert call_with_token_renewal(tokens, send).status_code == 500
    assert seen == ["tok-1"]


def test_build_url_and_unwrap():
    assert build_url("https://x/api/", "/warehouses") == "https://x/api/warehouses"
    assert unwrap({"success": True, "data": [{"code": "A"}]}) == {"code": "A"}
    assert unwrap({"success": True, "data": {"code": "A"}}) == {"code": "A"}
    assert unwrap({"success": False, "data": [{"code": "A"}]}) is None
    assert unwrap({"success": True, "data": []}) is None


def test_client_sends_bearer_header(client, fracttal, tokens):
    fracttal.valid_tokens = {"tok-1"}
    fracttal.warehouses["ALM-GRAL"] = {"code": "ALM-GRAL"}
    assert client.get_warehouse("ALM-GRAL")["code"] == "ALM-GRAL"


def test_client_replays_after_token_rotation(client, fracttal, tokens):
    fracttal.valid_tokens = {"tok-2"}
    fracttal.warehouses["ALM-GRAL"] = {"code": "ALM-GRAL"}
    assert client.get_warehouse("ALM-GRAL")["code"] == "ALM-GRAL"
    assert tokens.invalidations == 1
    assert len(fracttal.calls) == 2


def test_client_maps_404_to_not_found(client):
    with pytest.raises(RemoteNotFoundError):
        client.get_warehouse("NOPE")


def test_client_maps_5xx_to_request_error(client, fracttal):
    fracttal.failing_items.add("X1")
    with pytest.raises(RemoteRequestError) as exc:
        client.get_inventory("X1")
    assert exc.value.status_code == 500


def test_transport_failure_becomes_request_error(tokens):
    def handle(request):
        raise httpx.ConnectError("connection refused", request=request)

    c = FracttalClient(tokens, BASE_URL, transport=httpx.MockTransport(handle))
    with pytest.raises(RemoteRequestError):
        c.get_inventory("X1")
    c.close()
