"""
Unit tests for secret storage backends and session blob persistence.

Coverage:
* DiskSecretStorage atomic write, 0600 permissions and access-group scoping
* DiskSecretStorage file-lock exclusivity (single holder)
* SessionStore round-trip and corrupt blob detection
"""

from __future__ import annotations

import base64
import json
import os
import stat
import sys
import threading
import time
from pathlib import Path

import pytest

from myshoppinghelp.auth.models import ProviderMetadata, Session, TokenResponse
from myshoppinghelp.auth.storage import (
    DiskSecretStorage,
    MemorySecretStorage,
    UnreadableSecretError,
    _file_lock,
)
from myshoppinghelp.auth.store import (
    SESSION_KEY,
    SessionDecodeError,
    SessionStore,
    decode_session,
    encode_session,
)


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #
def _session(access_token: str = "at-1") -> Session:
    return Session(
        is_authorized=True,
        provider_metadata=ProviderMetadata(
            issuer="https://auth.example.test",
            authorization_endpoint="https://auth.example.test/authorize",
            token_endpoint="https://auth.example.test/token",
        ),
        client_id="cid",
        redirect_uri="myapp://msh/callback",
        last_token_response=TokenResponse(
            access_token=access_token,
            expires_at=1300,
            obtained_at=1000,
            refresh_token="rt-1",
        ),
    )


# --------------------------------------------------------------------------- #
# DiskSecretStorage                                                           #
# --------------------------------------------------------------------------- #
def test_disk_storage_round_trip(tmp_path: Path) -> None:
    storage = DiskSecretStorage(tmp_path)
    assert storage.get("k") is None

    storage.set("k", "value-1")
    storage.set("k", "value-2")
    assert storage.get("k") == "value-2"

    files = list((tmp_path / "default").glob("*.json"))
    assert len(files) == 1
    # No lingering *.tmp or *.lock file
    assert not list((tmp_path / "default").glob("*.tmp"))
    assert not list((tmp_path / "default").glob("*.lock"))

    storage.delete("k")
    assert storage.get("k") is None
    storage.delete("k")  # idempotent


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_disk_storage_file_mode(tmp_path: Path) -> None:
    storage = DiskSecretStorage(tmp_path)
    storage.set(SESSION_KEY, "secret")
    (path,) = (tmp_path / "default").glob("*.json")
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


def test_disk_storage_access_groups_are_isolated(tmp_path: Path) -> None:
    shared = DiskSecretStorage(tmp_path, access_group="group.help.myshopping")
    private = DiskSecretStorage(tmp_path)

    shared.set(SESSION_KEY, "shared-blob")
    assert private.get(SESSION_KEY) is None
    assert DiskSecretStorage(tmp_path, access_group="group.help.myshopping").get(SESSION_KEY) == (
        "shared-blob"
    )
    assert (tmp_path / "groups" / "group.help.myshopping").is_dir()


def test_disk_storage_env_base_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MSH_STORAGE_DIR", str(tmp_path / "env"))
    storage = DiskSecretStorage()
    storage.set("k", "v")
    assert storage.base_dir == tmp_path / "env" / "default"


@pytest.mark.parametrize("content", ["{not json", "[]", "{\"key\": \"k\"}"])
def test_disk_storage_unreadable_file_raises(tmp_path: Path, content: str) -> None:
    storage = DiskSecretStorage(tmp_path)
    storage.set("k", "v")
    (path,) = (tmp_path / "default").glob("*.json")
    path.write_text(content, encoding="utf-8")
    with pytest.raises(UnreadableSecretError):
        storage.get("k")
    with pytest.raises(OSError):
        storage.get("k")


def test_disk_storage_lock_single_holder(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    storage = DiskSecretStorage(tmp_path)
    lock_path = storage._lock("k")  # type: ignore[attr-defined]
    holding = threading.Event()

    def holder() -> None:
        with _file_lock(lock_path, retries=0, delay=0):  # immediate hold
            holding.set()
            time.sleep(0.3)

    t = threading.Thread(target=holder)
    t.start()
    assert holding.wait(1.0)

    # Writing while the lock is held elsewhere should raise TimeoutError
    monkeypatch.setattr(
        "myshoppinghelp.auth.storage._file_lock",
        lambda path: _file_lock(path, retries=0, delay=0),
    )
    with pytest.raises(TimeoutError):
        storage.set("k", "v")
    monkeypatch.undo()

    t.join()
    storage.set("k", "v")
    assert storage.get("k") == "v"


# --------------------------------------------------------------------------- #
# SessionStore                                                                #
# --------------------------------------------------------------------------- #
def test_session_blob_is_base64_json() -> None:
    blob = encode_session(_session())
    data = json.loads(base64.b64decode(blob))
    assert data["client_id"] == "cid"
    assert data["last_token_response"]["access_token"] == "at-1"
    assert decode_session(blob) == _session()


def test_session_store_round_trip() -> None:
    storage = MemorySecretStorage()
    store = SessionStore(storage)
    assert store.load() is None

    store.save(_session("at-2"))
    assert storage.get(SESSION_KEY) is not None
    assert store.load() == _session("at-2")

    store.delete()
    assert store.load() is None


@pytest.mark.parametrize(
    "blob",
    [
        "not base64 at all!",
        base64.b64encode(b"{not json").decode(),
        base64.b64encode(b'{"is_authorized": true}').decode(),
        base64.b64encode(b"[]").decode(),
    ],
)
def test_session_store_corrupt_blob(blob: str) -> None:
    storage = MemorySecretStorage()
    storage.set(SESSION_KEY, blob)
    with pytest.raises(SessionDecodeError):
        SessionStore(storage).load()
