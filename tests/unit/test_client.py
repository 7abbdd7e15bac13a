"""Unit tests for ShoppingHelpClient request pipeline.

A real ``requests.Session`` prepares every request; only ``send`` is
replaced, so URLs, headers and bodies are exactly what would hit the wire.

Coverage:
* NotAuthorizedError before any network call
* Bearer token, JSON body and URL for each resource action
* DecodeError carries the request URL; HTTP errors pass through
* Optional tracer masks the bearer token
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, List
from unittest.mock import MagicMock

import pytest
import requests

from myshoppinghelp.auth.clock import fixed_clock
from myshoppinghelp.auth.models import ProviderMetadata, Session, TokenResponse
from myshoppinghelp.auth.session import SessionManager
from myshoppinghelp.auth.storage import MemorySecretStorage
from myshoppinghelp.auth.store import SessionStore
from myshoppinghelp.client import ShoppingHelpClient
from myshoppinghelp.config import ShoppingHelpConfig
from myshoppinghelp.errors import DecodeError, NotAuthorizedError, UnknownError
from myshoppinghelp.models import ItemType, ListItemCreatePayload, ListItemUpdatePayload
from myshoppinghelp.refs import Ref, RefType
from myshoppinghelp.tracing import RequestTracer

NOW = 1_700_000_000.0
BASE = "https://api.example.test/v1/"


# --------------------------------------------------------------------------- #
# Helpers                                                                     #
# --------------------------------------------------------------------------- #
def _jwt(sub: str) -> str:
    def enc(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()

    return f"{enc({'alg': 'none'})}.{enc({'sub': sub})}.signature-part"


TOKEN = _jwt("user-1")


def _manager(*, logged_in: bool = True) -> tuple[SessionManager, MagicMock]:
    storage = MemorySecretStorage()
    if logged_in:
        SessionStore(storage).save(
            Session(
                is_authorized=True,
                provider_metadata=ProviderMetadata(
                    issuer="https://auth.example.test",
                    authorization_endpoint="https://auth.example.test/authorize",
                    token_endpoint="https://auth.example.test/token",
                ),
                client_id="cid",
                redirect_uri="myapp://msh/callback",
                last_token_response=TokenResponse(
                    access_token=TOKEN,
                    expires_at=int(NOW) + 3600,
                    obtained_at=int(NOW),
                    refresh_token="rt-1",
                ),
            )
        )
    provider = MagicMock()
    manager = SessionManager(
        provider=provider, storage_factory=lambda group: storage, clock=fixed_clock(NOW)
    )
    manager.configure(ShoppingHelpConfig(client_id="cid", redirect_url_protocol="myapp"))
    return manager, provider


class FakeTransport:
    """Replacement for ``Session.send`` returning canned responses."""

    def __init__(self, status: int = 200, body: Any = None, raw: bytes | None = None) -> None:
        self.status = status
        self.content = raw if raw is not None else json.dumps(body).encode()
        self.sent: List[requests.PreparedRequest] = []

    def __call__(self, prepared: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        self.sent.append(prepared)
        resp = requests.Response()
        resp.status_code = self.status
        resp._content = self.content
        resp.url = prepared.url
        resp.request = prepared
        resp.headers["Content-Type"] = "application/json"
        return resp


def _client(
    transport: FakeTransport,
    monkeypatch: pytest.MonkeyPatch,
    *,
    logged_in: bool = True,
    tracer: RequestTracer | None = None,
) -> ShoppingHelpClient:
    http = requests.Session()
    monkeypatch.setattr(http, "send", transport)
    manager, _ = _manager(logged_in=logged_in)
    return ShoppingHelpClient(manager, http=http, base_url=BASE, tracer=tracer)


# --------------------------------------------------------------------------- #
# Authorization gate                                                          #
# --------------------------------------------------------------------------- #
def test_logged_out_raises_before_network(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = FakeTransport(body={"id": "x"})
    client = _client(transport, monkeypatch, logged_in=False)

    with pytest.raises(NotAuthorizedError):
        client.create_list(Ref(type=RefType.LIST, hostname="h", id="1"))
    with pytest.raises(NotAuthorizedError):
        client.get_lists()
    with pytest.raises(NotAuthorizedError):
        client.get_recipe_metadata("https://example.com/pie")
    assert transport.sent == []


# --------------------------------------------------------------------------- #
# Lists                                                                       #
# --------------------------------------------------------------------------- #
def test_create_list_sends_single_post(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = FakeTransport(body={"id": "new-list"})
    client = _client(transport, monkeypatch)
    ref = Ref(type=RefType.RECIPE, hostname="example.com", id="42")

    list_id = client.create_list(ref, checkboxes=True)

    assert list_id == "new-list"
    (sent,) = transport.sent
    assert sent.method == "POST"
    assert sent.url == BASE + "lists"
    assert sent.headers["Authorization"] == f"Bearer {TOKEN}"
    assert sent.headers["Content-Type"] == "application/json"
    assert json.loads(sent.body) == {
        "ref": "nrn:msh:example.com:wprm_recipe:42",
        "name": "wprm_recipe",
        "uniqueItems": True,
        "checkboxes": True,
        "quantities": False,
    }


def test_get_lists_uses_subject_claim(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = FakeTransport(body=[{"id": "l1", "items": []}, {"bogus": True}])
    client = _client(transport, monkeypatch)

    lists = client.get_lists()

    assert [lst.id for lst in lists] == ["l1"]
    (sent,) = transport.sent
    assert sent.method == "GET"
    assert sent.url == BASE + "lists?userId=user-1"
    assert sent.body is None
    assert "Content-Type" not in sent.headers


def test_get_list_and_delete(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = FakeTransport(body={"id": "l 1", "items": [{"id": "i1", "type": "recipe", "name": "Pie"}]})
    client = _client(transport, monkeypatch)

    shopping_list = client.get_list("l 1")
    client.delete_list("l 1")

    assert shopping_list.items[0].name == "Pie"
    assert [(r.method, r.url) for r in transport.sent] == [
        ("GET", BASE + "lists/l%201"),
        ("DELETE", BASE + "lists/l%201"),
    ]


# --------------------------------------------------------------------------- #
# Items                                                                       #
# --------------------------------------------------------------------------- #
def test_item_actions(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = FakeTransport(raw=b"")
    client = _client(transport, monkeypatch)

    client.add_item(ListItemCreatePayload(type=ItemType.INGREDIENT, name="Milk"), "l1")
    client.update_item(
        ListItemUpdatePayload(id="i1", type=ItemType.INGREDIENT, name="Milk", checked=True), "l1"
    )
    client.remove_item("i1", "l1")

    add, update, remove = transport.sent
    assert (add.method, add.url) == ("POST", BASE + "lists/l1/items")
    assert json.loads(add.body) == {"type": "ingredient", "name": "Milk"}
    assert (update.method, update.url) == ("PUT", BASE + "lists/l1/items/i1")
    assert json.loads(update.body)["checked"] is True
    assert (remove.method, remove.url) == ("DELETE", BASE + "lists/l1/items/i1")


# --------------------------------------------------------------------------- #
# Errors                                                                      #
# --------------------------------------------------------------------------- #
def test_malformed_body_raises_decode_error(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(FakeTransport(raw=b"<html>oops</html>"), monkeypatch)

    with pytest.raises(DecodeError) as excinfo:
        client.get_recipe_metadata("https://example.com/pie")

    assert excinfo.value.url == BASE + "metadata?url=https%3A%2F%2Fexample.com%2Fpie"
    assert excinfo.value.to_payload()["url"] == excinfo.value.url


def test_wrong_shape_raises_decode_error(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(FakeTransport(body={"id": 5}), monkeypatch)
    with pytest.raises(DecodeError):
        client.create_list(Ref(type=RefType.LIST))


def test_http_error_passes_through(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(FakeTransport(status=500, body={"error": "down"}), monkeypatch)
    with pytest.raises(requests.HTTPError):
        client.get_list("l1")


def test_invalid_base_url() -> None:
    manager, _ = _manager()
    client = ShoppingHelpClient(manager, base_url="not a url")
    with pytest.raises(UnknownError):
        client.get_list("l1")


@pytest.mark.parametrize("base_url", ["ftp://api.example.test/v1/", "mailto:lists@example.test/"])
def test_unsupported_scheme(base_url: str) -> None:
    manager, _ = _manager()
    client = ShoppingHelpClient(manager, http=requests.Session(), base_url=base_url)
    with pytest.raises(UnknownError):
        client.get_list("l1")


def test_non_http_response(monkeypatch: pytest.MonkeyPatch) -> None:
    http = requests.Session()
    monkeypatch.setattr(http, "send", lambda prepared, **kwargs: object())
    manager, _ = _manager()
    client = ShoppingHelpClient(manager, http=http, base_url=BASE)
    with pytest.raises(UnknownError):
        client.delete_list("l1")


def test_fresh_token_does_not_refresh(monkeypatch: pytest.MonkeyPatch) -> None:
    http = requests.Session()
    monkeypatch.setattr(http, "send", FakeTransport(raw=b""))
    manager, provider = _manager()
    ShoppingHelpClient(manager, http=http, base_url=BASE).delete_list("l1")
    provider.perform_refresh.assert_not_called()


# --------------------------------------------------------------------------- #
# Tracing                                                                     #
# --------------------------------------------------------------------------- #
def test_tracer_masks_bearer_token(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    transport = FakeTransport(body={"id": "new-list", "access_token": "leaky-token-value"})
    client = _client(transport, monkeypatch, tracer=RequestTracer())

    with caplog.at_level(logging.DEBUG, logger="myshoppinghelp.trace"):
        client.create_list(Ref(type=RefType.LIST, hostname="h", id="1"))

    text = caplog.text
    assert "curl" in text
    assert "-X POST" in text
    assert "Got data for: POST" in text
    assert TOKEN not in text
    assert "leaky-token-value" not in text
