"""State parameter helpers for the authorization-code flow.

The *state* parameter binds the redirect delivered by the platform to the
flow that started it.  Three values are encoded in a compact, URL-safe
string:

1. ``flow_id`` – random identifier generated when the flow starts
2. ``ts`` – UNIX timestamp produced by an injected clock
3. ``sig`` – HMAC-SHA256 signature of the first two fields using a secret
   held by the OAuth client for the lifetime of the process

Format (plain text before base64-url encoding)::

    <flow_id>:<ts>:<sig>

Only the (truncated) ``flow_id`` is ever logged.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import logging
from hashlib import sha256
from typing import Final

from myshoppinghelp.auth.clock import Clock, default_clock

_LOG = logging.getLogger("myshoppinghelp.auth.state")

_SIG_LEN: Final[int] = 12  # characters kept from hex digest


class InvalidStateError(Exception):
    """Raised when an incoming state is missing/invalid or signature check fails."""


def _b64e(data: str) -> str:
    return base64.urlsafe_b64encode(data.encode("utf-8")).rstrip(b"=").decode("ascii")


def _b64d(data: str) -> str:
    pad_len = (-len(data)) % 4
    return base64.urlsafe_b64decode(data + "=" * pad_len).decode("utf-8")


def _sign(message: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), msg=message.encode(), digestmod=sha256).hexdigest()
    return digest[:_SIG_LEN]


def build_state(flow_id: str, secret: str, *, clock: Clock = default_clock) -> str:
    """Build the signed state string for an authorization request."""
    payload = f"{flow_id}:{int(clock())}"
    encoded = _b64e(f"{payload}:{_sign(payload, secret)}")
    _LOG.debug("Built state for flow_id=%s****", flow_id[:6])
    return encoded


def parse_state(state: str, secret: str) -> tuple[str, int]:
    """Validate and decode a state received on the redirect URL.

    Returns
    -------
    tuple[str, int]
        ``(flow_id, ts)`` on success.

    Raises
    ------
    InvalidStateError
        If the state is malformed or the signature does not validate.
    """
    try:
        parts = _b64d(state).split(":")
    except (ValueError, binascii.Error):
        raise InvalidStateError("state cannot be decoded") from None

    if len(parts) != 3:
        raise InvalidStateError("state has an unexpected format")

    flow_id, ts_str, sig = parts
    if not flow_id or not ts_str.isdigit():
        raise InvalidStateError("state missing fields")

    if not hmac.compare_digest(sig, _sign(f"{flow_id}:{ts_str}", secret)):
        raise InvalidStateError("state signature mismatch")

    _LOG.debug("Parsed state for flow_id=%s****", flow_id[:6])
    return flow_id, int(ts_str)
