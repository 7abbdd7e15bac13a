"""Optional request/response tracing for debugging API calls.

Tracing is off unless a :class:`RequestTracer` is handed to the client.
Bearer tokens and token-bearing JSON fields are masked before anything is
written to the log.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import requests

from myshoppinghelp.utils.logging import mask_sensitive, redact_mapping

_REDACTED_HEADERS = ("authorization", "cookie", "set-cookie")


def _redact_header(name: str, value: str) -> str:
    if name.lower() not in _REDACTED_HEADERS:
        return value
    if name.lower() == "authorization" and " " in value:
        scheme, credential = value.split(" ", 1)
        return f"{scheme} {mask_sensitive(credential, 6)}"
    return mask_sensitive(value, 0)


def _body_text(body: Any) -> str | None:
    if body is None:
        return None
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(body)
    except ValueError:
        return str(body)
    if isinstance(data, dict):
        data = redact_mapping(data)
    return json.dumps(data, indent=2, sort_keys=True)


def curl_command(request: requests.PreparedRequest) -> str:
    """Render *request* as a copy-pasteable ``curl`` command."""
    command = [f'curl "{request.url}"']
    if request.method == "HEAD":
        command[0] += " --head"
    elif request.method and request.method != "GET":
        command.append(f"-X {request.method}")

    for name, value in request.headers.items():
        if name.lower() == "cookie":
            continue
        command.append(f"-H '{name}: {_redact_header(name, value)}'")

    body = _body_text(request.body)
    if body is not None:
        escaped = body.replace("'", "'\\''")
        command.append(f"-d '{escaped}'")
    return " \\\n\t".join(command)


class RequestTracer:
    """Log every outgoing request and its response at DEBUG level."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("myshoppinghelp.trace")

    def request(self, request: requests.PreparedRequest) -> float:
        """Trace *request*; return the start timestamp for :meth:`response`."""
        started = time.monotonic()
        self.logger.debug("Getting data:\n%s", curl_command(request))
        return started

    def response(self, response: Any, started: float) -> None:
        elapsed = time.monotonic() - started
        request = getattr(response, "request", None)
        target = f"{getattr(request, 'method', '-')} - {getattr(request, 'url', '-')}"
        status = getattr(response, "status_code", None)
        if status is None:
            self.logger.error("Got no HTTP response for %s (%.3fs)", target, elapsed)
            return
        headers = {
            name: _redact_header(name, value)
            for name, value in dict(getattr(response, "headers", {}) or {}).items()
        }
        self.logger.debug(
            "Got data for: %s | Total time: %.3fs\nCODE: %s\nHEADERS: %s\nDATA: %s",
            target,
            elapsed,
            status,
            headers,
            _body_text(getattr(response, "content", None)) or "n/a",
        )

    def decode_failure(self, url: str, error: BaseException) -> None:
        self.logger.error("Cannot parse data for %s. Reason:\n\n%s", url, error)
