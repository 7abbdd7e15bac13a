"""Session lifecycle building blocks.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
pkce
    Proof-Key for Code Exchange helpers.
state
    Signed ``state`` parameter encoding / validation.
models
    Immutable dataclasses for provider metadata, tokens and the session.
jwt
    Best-effort ``sub`` claim decoding.
storage
    Secret storage backends (disk, memory).
store
    Persistence of the session blob.
oidc
    OAuth capability contracts and the default ``requests`` implementation.
session
    :class:`SessionManager`, the single source of truth for login state.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).
"""

from __future__ import annotations

from .clock import Clock, default_clock  # noqa: F401
from .models import AuthorizationRequest, ProviderMetadata, Session, TokenResponse  # noqa: F401
from .oidc import AuthorizationFlow, OAuthProvider, OIDCClient, browser_presenter  # noqa: F401
from .session import SessionManager, SessionState  # noqa: F401
from .storage import DiskSecretStorage, MemorySecretStorage, SecretStorage  # noqa: F401
from .store import SESSION_KEY, SessionStore  # noqa: F401

__all__ = [
    # clock
    "Clock",
    "default_clock",
    # models
    "AuthorizationRequest",
    "ProviderMetadata",
    "Session",
    "TokenResponse",
    # oauth capability
    "AuthorizationFlow",
    "OAuthProvider",
    "OIDCClient",
    "browser_presenter",
    # session
    "SessionManager",
    "SessionState",
    # storage
    "DiskSecretStorage",
    "MemorySecretStorage",
    "SecretStorage",
    "SESSION_KEY",
    "SessionStore",
]
