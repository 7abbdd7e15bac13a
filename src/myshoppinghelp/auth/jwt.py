"""Best-effort decoding of the ``sub`` claim out of a bearer token.

No signature validation happens here: the value only identifies the user for
API paths such as ``lists?userId=...``.  It is never used to authenticate.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any


def decode_claims(token: str) -> dict[str, Any] | None:
    """Return the JWT payload of *token*, or ``None`` if it is not a JWT."""
    parts = token.split(".") if isinstance(token, str) else []
    if len(parts) != 3 or not parts[1]:
        return None
    segment = parts[1]
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
        claims = json.loads(raw.decode("utf-8"))
    except (ValueError, binascii.Error, UnicodeDecodeError):
        return None
    return claims if isinstance(claims, dict) else None


def decode_subject(token: str | None) -> str | None:
    if not token:
        return None
    claims = decode_claims(token)
    if claims is None:
        return None
    subject = claims.get("sub")
    return subject if isinstance(subject, str) and subject else None
