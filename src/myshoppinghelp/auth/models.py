"""Typed, immutable records used by the session layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Final
from urllib.parse import urlencode

from myshoppinghelp.auth.clock import Clock, default_clock

DEFAULT_SCOPES: Final[tuple[str, ...]] = ("openid", "email", "profile")


@dataclass(frozen=True, slots=True)
class ProviderMetadata:
    """Endpoints published by the provider's discovery document."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    end_session_endpoint: str | None = None
    userinfo_endpoint: str | None = None

    @classmethod
    def from_discovery(cls, document: dict[str, Any]) -> "ProviderMetadata":
        missing = [
            key
            for key in ("issuer", "authorization_endpoint", "token_endpoint")
            if not isinstance(document.get(key), str)
        ]
        if missing:
            raise ValueError(f"discovery document missing {', '.join(missing)}")
        return cls(
            issuer=document["issuer"],
            authorization_endpoint=document["authorization_endpoint"],
            token_endpoint=document["token_endpoint"],
            end_session_endpoint=document.get("end_session_endpoint"),
            userinfo_endpoint=document.get("userinfo_endpoint"),
        )


@dataclass(frozen=True, slots=True)
class TokenResponse:
    """Snapshot of the last token endpoint response."""

    access_token: str
    expires_at: int
    obtained_at: int
    refresh_token: str | None = None
    id_token: str | None = None
    token_type: str = "Bearer"
    scope: str | None = None

    @property
    def ttl(self) -> int:
        """Seconds between *obtained_at* and *expires_at*."""
        return self.expires_at - self.obtained_at

    def is_expired(self, *, clock: Clock = default_clock, grace_seconds: int = 60) -> bool:
        return (self.expires_at - int(clock())) <= grace_seconds

    @classmethod
    def from_token_endpoint(
        cls,
        data: dict[str, Any],
        *,
        clock: Clock = default_clock,
        previous: "TokenResponse | None" = None,
    ) -> "TokenResponse":
        """Build a record from a token endpoint JSON body.

        A refresh response may omit ``refresh_token`` or ``id_token``; the
        values of *previous* are carried over in that case.
        """
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response missing access_token")
        obtained_at = int(clock())
        expires_in = int(data.get("expires_in", 3600))
        return cls(
            access_token=access_token,
            expires_at=obtained_at + expires_in,
            obtained_at=obtained_at,
            refresh_token=data.get("refresh_token")
            or (previous.refresh_token if previous else None),
            id_token=data.get("id_token") or (previous.id_token if previous else None),
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope") or (previous.scope if previous else None),
        )


@dataclass(frozen=True, slots=True)
class AuthorizationRequest:
    """Everything needed to start one authorization-code flow."""

    flow_id: str
    client_id: str
    redirect_uri: str
    state: str
    code_verifier: str
    code_challenge: str
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    prefers_ephemeral_session: bool = True

    def authorize_url(self, metadata: ProviderMetadata) -> str:
        query = {
            "client_id": self.client_id,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "redirect_uri": self.redirect_uri,
            "state": self.state,
            "code_challenge": self.code_challenge,
            "code_challenge_method": "S256",
        }
        separator = "&" if "?" in metadata.authorization_endpoint else "?"
        return f"{metadata.authorization_endpoint}{separator}{urlencode(query)}"


@dataclass(frozen=True, slots=True)
class Session:
    """Authorization state plus what is needed to refresh it silently."""

    is_authorized: bool
    provider_metadata: ProviderMetadata
    client_id: str
    redirect_uri: str
    last_token_response: TokenResponse | None = None
    scopes: tuple[str, ...] = field(default=DEFAULT_SCOPES)

    @property
    def access_token(self) -> str | None:
        if self.last_token_response is None:
            return None
        return self.last_token_response.access_token

    @property
    def refresh_token(self) -> str | None:
        if self.last_token_response is None:
            return None
        return self.last_token_response.refresh_token

    def replace_tokens(self, tokens: TokenResponse) -> "Session":
        """Return a new session carrying *tokens*; the receiver is unchanged."""
        return replace(self, last_token_response=tokens, is_authorized=True)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["scopes"] = list(self.scopes)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Rebuild a session from :meth:`to_dict` output.

        Raises
        ------
        ValueError
            If a field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError("session: expected an object")
        tokens = data.get("last_token_response")
        scopes = data.get("scopes") or list(DEFAULT_SCOPES)
        if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
            raise ValueError("session.scopes: expected a list of strings")
        return cls(
            is_authorized=_typed(data, "is_authorized", bool, "session"),
            provider_metadata=_provider_from_dict(data.get("provider_metadata")),
            client_id=_typed(data, "client_id", str, "session"),
            redirect_uri=_typed(data, "redirect_uri", str, "session"),
            last_token_response=_tokens_from_dict(tokens) if tokens is not None else None,
            scopes=tuple(scopes),
        )


# --------------------------------------------------------------------------- #
# persisted-form validation                                                   #
# --------------------------------------------------------------------------- #


def _typed(data: dict[str, Any], key: str, kind: type, what: str, *, optional: bool = False) -> Any:
    value = data.get(key)
    if value is None and optional:
        return None
    # bool is an int subclass
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ValueError(f"{what}.{key}: expected {kind.__name__}")
    return value


def _provider_from_dict(data: Any) -> ProviderMetadata:
    if not isinstance(data, dict):
        raise ValueError("session.provider_metadata: expected an object")
    what = "session.provider_metadata"
    return ProviderMetadata(
        issuer=_typed(data, "issuer", str, what),
        authorization_endpoint=_typed(data, "authorization_endpoint", str, what),
        token_endpoint=_typed(data, "token_endpoint", str, what),
        end_session_endpoint=_typed(data, "end_session_endpoint", str, what, optional=True),
        userinfo_endpoint=_typed(data, "userinfo_endpoint", str, what, optional=True),
    )


def _tokens_from_dict(data: Any) -> TokenResponse:
    if not isinstance(data, dict):
        raise ValueError("session.last_token_response: expected an object")
    what = "session.last_token_response"
    return TokenResponse(
        access_token=_typed(data, "access_token", str, what),
        expires_at=_typed(data, "expires_at", int, what),
        obtained_at=_typed(data, "obtained_at", int, what),
        refresh_token=_typed(data, "refresh_token", str, what, optional=True),
        id_token=_typed(data, "id_token", str, what, optional=True),
        token_type=_typed(data, "token_type", str, what, optional=True) or "Bearer",
        scope=_typed(data, "scope", str, what, optional=True),
    )
