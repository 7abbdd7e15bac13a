"""Authenticated client for the MyShoppingHelp REST API.

Every public method follows the same pipeline:

1. check that the session manager has a logged-in user (no network call
   otherwise),
2. obtain a valid access token, refreshing it when needed,
3. build the request against the versioned API origin,
4. attach ``Authorization: Bearer ...`` (and ``Content-Type`` for bodies),
5. execute it and decode the JSON body into the expected model.

Transport errors and non-2xx responses surface unchanged as ``requests``
exceptions.  A body that does not match the expected shape raises
:class:`~myshoppinghelp.errors.DecodeError` carrying the request URL.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, TypeVar
from urllib.parse import quote

import requests

from myshoppinghelp.auth.session import SessionManager
from myshoppinghelp.config import DEFAULT_API_BASE_URL
from myshoppinghelp.errors import DecodeError, NotAuthorizedError, UnknownError
from myshoppinghelp.models import (
    CreatedList,
    ListCreatePayload,
    ListItemCreatePayload,
    ListItemUpdatePayload,
    ModelDecodeError,
    RecipeMetadata,
    ShoppingList,
    decode_lists,
)
from myshoppinghelp.refs import Ref
from myshoppinghelp.tracing import RequestTracer

logger = logging.getLogger("myshoppinghelp.client")

T = TypeVar("T")

_INVALID_URL_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.InvalidSchema,
    requests.exceptions.MissingSchema,
)


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class ShoppingHelpClient:
    """One method per REST resource action of the shopping-list API."""

    def __init__(
        self,
        session_manager: SessionManager,
        *,
        http: requests.Session | None = None,
        base_url: str = DEFAULT_API_BASE_URL,
        tracer: RequestTracer | None = None,
        timeout: float | tuple[float, float] | None = None,
        token_timeout: float | None = None,
    ) -> None:
        self.session_manager = session_manager
        self.http = http or requests.Session()
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.tracer = tracer
        self.timeout = timeout
        self.token_timeout = token_timeout

    # ------------------------------------------------------------------ #
    # Lists                                                              #
    # ------------------------------------------------------------------ #
    def get_lists(self) -> list[ShoppingList]:
        """Return the user's lists; malformed entries are skipped."""
        user_id = self.session_manager.current_user_id
        if not user_id:
            raise NotAuthorizedError("No user id available for the current session")
        return self._get_json("lists", params={"userId": user_id}, decoder=decode_lists)

    def get_list(self, list_id: str) -> ShoppingList:
        self._require_login()
        return self._get_json(f"lists/{_segment(list_id)}", decoder=ShoppingList.from_dict)

    def create_list(
        self,
        ref: Ref,
        *,
        unique_items: bool = True,
        checkboxes: bool = False,
        quantities: bool = False,
        name: str | None = None,
    ) -> str:
        """Create a list bound to *ref* and return its server-assigned id."""
        self._require_login()
        payload = ListCreatePayload(
            ref=ref,
            unique_items=unique_items,
            checkboxes=checkboxes,
            quantities=quantities,
            name=name,
        )
        created = self._get_json(
            "lists", method="POST", payload=payload.to_payload(), decoder=CreatedList.from_dict
        )
        logger.info("Created list %s for ref type %s", created.id, ref.type.value)
        return created.id

    def delete_list(self, list_id: str) -> None:
        self._require_login()
        self._send(f"lists/{_segment(list_id)}", method="DELETE")

    # ------------------------------------------------------------------ #
    # Items                                                              #
    # ------------------------------------------------------------------ #
    def add_item(self, item: ListItemCreatePayload, list_id: str) -> None:
        self._require_login()
        self._send(f"lists/{_segment(list_id)}/items", method="POST", payload=item.to_payload())

    def update_item(self, item: ListItemUpdatePayload, list_id: str) -> None:
        self._require_login()
        self._send(
            f"lists/{_segment(list_id)}/items/{_segment(item.id)}",
            method="PUT",
            payload=item.to_payload(),
        )

    def remove_item(self, item_id: str, list_id: str) -> None:
        self._require_login()
        self._send(f"lists/{_segment(list_id)}/items/{_segment(item_id)}", method="DELETE")

    # ------------------------------------------------------------------ #
    # Metadata                                                           #
    # ------------------------------------------------------------------ #
    def get_recipe_metadata(self, url: str) -> RecipeMetadata:
        self._require_login()
        return self._get_json("metadata", params={"url": url}, decoder=RecipeMetadata.from_dict)

    # ------------------------------------------------------------------ #
    # Pipeline                                                           #
    # ------------------------------------------------------------------ #
    def _require_login(self) -> None:
        if not self.session_manager.is_logged_in:
            raise NotAuthorizedError()

    def _get_json(
        self,
        path: str,
        *,
        decoder: Callable[[Any], T],
        params: dict[str, str] | None = None,
        method: str = "GET",
        payload: dict[str, Any] | None = None,
    ) -> T:
        response = self._send(path, params=params, method=method, payload=payload)
        url = response.url or self.base_url + path
        try:
            return decoder(response.json())
        except (ValueError, ModelDecodeError) as exc:
            if self.tracer is not None:
                self.tracer.decode_failure(url, exc)
            logger.debug("Cannot parse data for %s: %s", url, exc)
            raise DecodeError(url=url, cause=exc) from exc

    def _send(
        self,
        path: str,
        *,
        params: dict[str, str] | None = None,
        method: str = "GET",
        payload: dict[str, Any] | None = None,
    ) -> requests.Response:
        token = self.session_manager.get_valid_access_token(timeout=self.token_timeout)

        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        data: bytes | None = None
        if payload is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(payload).encode("utf-8")

        try:
            prepared = self.http.prepare_request(
                requests.Request(
                    method, self.base_url + path, params=params, headers=headers, data=data
                )
            )
        except _INVALID_URL_ERRORS as exc:
            raise UnknownError(f"Invalid request URL for {path}: {exc}") from exc

        started = self.tracer.request(prepared) if self.tracer is not None else 0.0
        try:
            response = self.http.send(prepared, timeout=self.timeout)
        except _INVALID_URL_ERRORS as exc:
            # no transport adapter for the scheme
            raise UnknownError(f"Invalid request URL for {path}: {exc}") from exc
        if self.tracer is not None:
            self.tracer.response(response, started)

        if not isinstance(response, requests.Response) or response.status_code is None:
            raise UnknownError(f"No HTTP response for {method} {prepared.url}")

        response.raise_for_status()
        logger.debug("%s %s -> %s", method, prepared.url, response.status_code)
        return response
