"""Persistence of the single opaque session blob."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Final

from myshoppinghelp.auth.models import Session
from myshoppinghelp.auth.storage import SecretStorage

_LOG = logging.getLogger("myshoppinghelp.auth.store")

SESSION_KEY: Final[str] = "ShoppingHelpSession"


class SessionDecodeError(ValueError):
    """Raised when the persisted blob cannot be turned back into a session."""


def encode_session(session: Session) -> str:
    raw = json.dumps(session.to_dict(), separators=(",", ":"), sort_keys=True)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_session(blob: str) -> Session:
    try:
        raw = base64.b64decode(blob.encode("ascii"), validate=True)
        return Session.from_dict(json.loads(raw.decode("utf-8")))
    except (ValueError, binascii.Error, KeyError, TypeError, AttributeError) as exc:
        raise SessionDecodeError(f"Stored session is unreadable: {exc}") from exc


class SessionStore:
    """Wrap a :class:`SecretStorage` to persist/restore one session."""

    def __init__(self, storage: SecretStorage, *, key: str = SESSION_KEY) -> None:
        self.storage = storage
        self.key = key

    def save(self, session: Session) -> None:
        self.storage.set(self.key, encode_session(session))
        _LOG.debug("Persisted session under key=%s", self.key)

    def load(self) -> Session | None:
        """Return the stored session, ``None`` if absent.

        Raises
        ------
        SessionDecodeError
            If a blob exists but cannot be decoded.
        """
        blob = self.storage.get(self.key)
        if blob is None:
            return None
        return decode_session(blob)

    def delete(self) -> None:
        self.storage.delete(self.key)
        _LOG.debug("Deleted session under key=%s", self.key)
