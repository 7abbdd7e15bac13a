"""Secret storage backends for persisted session blobs.

This module introduces a *narrow* persistence interface
(:class:`SecretStorage`) and two implementations:

* :class:`DiskSecretStorage` – one JSON file per key, written with
  *temp-file + os.replace* and guarded by an advisory lock file.  Files are
  created with ``0600`` permissions.
* :class:`MemorySecretStorage` – process-local dictionary.

An optional ``access_group`` scopes the stored keys to a shared namespace so
that several apps of the same vendor can read the same session.

Environment variables
---------------------
MSH_STORAGE_DIR
    Base directory for all persisted secrets.
    Defaults to ``~/.myshoppinghelp/secrets`` when unset.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
from contextlib import contextmanager
from hashlib import sha256
from pathlib import Path
from typing import Protocol, runtime_checkable

_LOG = logging.getLogger("myshoppinghelp.auth.storage")

# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #


def _slug(text: str, max_len: int = 80) -> str:
    """Filesystem-safe slug."""
    text = (text or "").strip().lower()
    text = re.sub(r"[^a-z0-9._-]+", "-", text)
    text = re.sub(r"-{2,}", "-", text).strip("-")
    return text[:max_len] or "unknown"


def _hash(text: str, length: int = 16) -> str:
    return sha256(text.encode()).hexdigest()[:length]


def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    fd = os.open(tmp, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        json.dump(data, fh, separators=(",", ":"), sort_keys=True)
    os.replace(tmp, path)  # atomic on POSIX


@contextmanager
def _file_lock(lock_path: Path, retries: int = 25, delay: float = 0.2):
    """Advisory file lock using ``os.O_EXCL`` temp-file creation."""
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    for attempt in range(retries + 1):
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
            os.close(fd)
            break
        except FileExistsError:
            if attempt == retries:
                raise TimeoutError(f"Could not acquire lock {lock_path}") from None
            time.sleep(delay)
    try:
        yield
    finally:
        lock_path.unlink(missing_ok=True)


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


class UnreadableSecretError(OSError):
    """Raised when a stored secret exists but cannot be read back."""


@runtime_checkable
class SecretStorage(Protocol):
    """Persist, retrieve and delete a named secret string.

    ``get`` returns ``None`` for an absent key and raises :class:`OSError`
    when a value exists but is unreadable.
    """

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class DiskSecretStorage:
    """JSON-file implementation of :class:`SecretStorage`."""

    def __init__(
        self,
        base_dir: str | os.PathLike | None = None,
        *,
        access_group: str | None = None,
    ) -> None:
        root = Path(
            base_dir
            or os.getenv("MSH_STORAGE_DIR")
            or Path.home() / ".myshoppinghelp" / "secrets"
        ).expanduser()
        self.access_group = access_group
        self.base_dir = root / "groups" / _slug(access_group) if access_group else root / "default"
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{_slug(key, 40)}-{_hash(key)}.json"

    def _lock(self, key: str) -> Path:
        return self._path(key).with_suffix(".lock")

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            _LOG.warning("Unreadable secret file for key=%s: %s", key, exc)
            raise UnreadableSecretError(f"Secret file for {key} is corrupt: {exc}") from exc
        value = data.get("value") if isinstance(data, dict) else None
        if not isinstance(value, str):
            raise UnreadableSecretError(f"Secret file for {key} has no string value")
        return value

    def set(self, key: str, value: str) -> None:
        with _file_lock(self._lock(key)):
            _atomic_write(self._path(key), {"key": key, "value": value})

    def delete(self, key: str) -> None:
        with _file_lock(self._lock(key)):
            self._path(key).unlink(missing_ok=True)


class MemorySecretStorage:
    """In-process implementation of :class:`SecretStorage`."""

    def __init__(self, *, access_group: str | None = None) -> None:
        self.access_group = access_group
        self._values: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)
