import json
from decimal import Decimal

import httpx
import pytest

from session_store import SessionStore
from transport import AuthExpiredError, Transport, TransportError


def make_transport(handler, token=None):
    store = SessionStore()
    if token:
        store.set_token(token)
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return Transport(store, base_url="http://api.test/api", client=http), store


async def test_attaches_bearer_token_when_present() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        seen["url"] = str(request.url)
        return httpx.Response(200, json=[])

    transport, _ = make_transport(handler, token="abc123")
    assert await transport.request("/entities/Member") == []
    assert seen["auth"] == "Bearer abc123"
    assert seen["url"] == "http://api.test/api/entities/Member"


async def test_omits_authorization_without_credential() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["has_auth"] = "authorization" in request.headers
        return httpx.Response(200, json={"ok": True})

    transport, _ = make_transport(handler)
    assert await transport.request("/payments/config") == {"ok": True}
    assert seen["has_auth"] is False


async def test_json_body_is_serialized_with_decimals() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["content_type"] = request.headers.get("content-type")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "t1"})

    transport, _ = make_transport(handler)
    out = await transport.request(
        "/entities/Transaction",
        method="POST",
        body={"amount": Decimal("12.50"), "type": "charge"},
    )
    assert out == {"id": "t1"}
    assert seen["content_type"] == "application/json"
    assert seen["body"] == {"amount": 12.5, "type": "charge"}


async def test_no_content_resolves_to_none() -> None:
    transport, _ = make_transport(lambda request: httpx.Response(204))
    assert await transport.request("/entities/Member/m1", method="DELETE") is None


async def test_non_json_success_resolves_to_none() -> None:
    transport, _ = make_transport(lambda request: httpx.Response(200, text="<html>ok</html>"))
    assert await transport.request("/entities/Member") is None


async def test_failure_carries_server_message() -> None:
    transport, _ = make_transport(
        lambda request: httpx.Response(404, json={"message": "Unknown entity: Nope"})
    )
    with pytest.raises(TransportError) as excinfo:
        await transport.request("/entities/Nope")
    assert excinfo.value.status_code == 404
    assert str(excinfo.value) == "Unknown entity: Nope"


async def test_failure_without_message_uses_generic_text() -> None:
    transport, _ = make_transport(lambda request: httpx.Response(502, text="Bad gateway"))
    with pytest.raises(TransportError) as excinfo:
        await transport.request("/entities/Member")
    assert excinfo.value.status_code == 502
    assert excinfo.value.message == "Request failed: 502"


async def test_unauthorized_clears_credential_before_raising() -> None:
    transport, store = make_transport(
        lambda request: httpx.Response(401, json={"message": "Session expired"}),
        token="stale",
    )
    store.set_user({"id": "u1"})
    with pytest.raises(AuthExpiredError) as excinfo:
        await transport.request("/entities/Member")
    assert excinfo.value.status_code == 401
    assert store.token is None
    assert store.user is None


async def test_forbidden_does_not_clear_credential() -> None:
    transport, store = make_transport(
        lambda request: httpx.Response(403, json={"message": "Forbidden"}),
        token="still-good",
    )
    with pytest.raises(TransportError) as excinfo:
        await transport.request("/payments/activate-memberships-bulk", method="POST", body={})
    assert not isinstance(excinfo.value, AuthExpiredError)
    assert store.token == "still-good"


async def test_multipart_body_skips_json_content_type() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["content_type"] = request.headers.get("content-type", "")
        seen["content"] = request.content
        return httpx.Response(200, json={"file_url": "https://files.test/a.pdf"})

    transport, _ = make_transport(handler, token="t")
    out = await transport.request(
        "/integrations/Core/UploadFile",
        method="POST",
        files={"file": ("a.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert out == {"file_url": "https://files.test/a.pdf"}
    assert seen["content_type"].startswith("multipart/form-data; boundary=")
    assert b"%PDF-1.4" in seen["content"]


async def test_rejects_body_and_raw_body_together() -> None:
    transport, _ = make_transport(lambda request: httpx.Response(200, json={}))
    with pytest.raises(ValueError):
        await transport.request("/x", method="POST", body={"a": 1}, raw_body=b"a=1")


async def test_credential_cleared_elsewhere_is_seen_by_next_request() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("authorization"))
        return httpx.Response(200, json=[])

    transport, store = make_transport(handler, token="first")
    await transport.request("/entities/Member")
    store.clear_token()
    await transport.request("/entities/Member")
    assert seen == ["Bearer first", None]
