"""OAuth 2.0 / OpenID Connect capability used by the session manager.

The session manager only talks to the :class:`OAuthProvider` protocol:

* ``discover`` – fetch the provider configuration (discovery document)
* ``present_authorization`` – show the authorization UI and return a
  :class:`AuthorizationFlow` that later consumes the redirect URL
* ``perform_refresh`` – callback-style "give me fresh tokens"

:class:`OIDCClient` is the default implementation on top of ``requests``.
It is a public client: PKCE (S256) protects the code exchange and a signed
``state`` binds the redirect to the flow that started it.

SECURITY NOTE
-------------
No raw secrets (state, code verifiers, authorization codes, access / refresh
tokens) are ever logged.
"""

from __future__ import annotations

import hmac
import logging
import threading
import uuid
import webbrowser
from typing import Any, Callable, Final, Protocol, runtime_checkable
from urllib.parse import parse_qs, urlsplit

import requests

from myshoppinghelp.auth.clock import Clock, default_clock
from myshoppinghelp.auth.log_utils import get_auth_logger
from myshoppinghelp.auth.models import (
    DEFAULT_SCOPES,
    AuthorizationRequest,
    ProviderMetadata,
    Session,
    TokenResponse,
)
from myshoppinghelp.auth.pkce import code_challenge_s256, generate_code_verifier
from myshoppinghelp.auth.state import build_state
from myshoppinghelp.errors import AuthError
from myshoppinghelp.utils.logging import mask_sensitive

_LOG = logging.getLogger("myshoppinghelp.auth.oidc")

DISCOVERY_PATH: Final[str] = "/.well-known/openid-configuration"

SessionCallback = Callable[[Session | None, BaseException | None], None]


# --------------------------------------------------------------------------- #
# Capability contracts                                                        #
# --------------------------------------------------------------------------- #


class Presenter(Protocol):
    """Shows the authorization page; must run on the UI-owning thread."""

    def __call__(self, url: str, *, ephemeral: bool) -> object: ...


def browser_presenter(url: str, *, ephemeral: bool = True) -> object:
    """Open *url* in the system browser (no ephemeral support)."""
    return webbrowser.open(url)


@runtime_checkable
class AuthorizationFlow(Protocol):
    def resume(self, url: str) -> bool: ...
    def cancel(self) -> None: ...


@runtime_checkable
class OAuthProvider(Protocol):
    def discover(self, issuer: str) -> ProviderMetadata: ...

    def present_authorization(
        self,
        request: AuthorizationRequest,
        metadata: ProviderMetadata,
        presenter: Presenter,
        callback: SessionCallback,
    ) -> AuthorizationFlow: ...

    def perform_refresh(self, session: Session, callback: SessionCallback) -> None: ...


def new_authorization_request(
    *,
    client_id: str,
    redirect_uri: str,
    state_secret: str,
    scopes: tuple[str, ...] = DEFAULT_SCOPES,
    clock: Clock = default_clock,
) -> AuthorizationRequest:
    """Return a fresh request with its own flow id, state and PKCE pair."""
    flow_id = uuid.uuid4().hex
    verifier = generate_code_verifier()
    return AuthorizationRequest(
        flow_id=flow_id,
        client_id=client_id,
        redirect_uri=redirect_uri,
        state=build_state(flow_id, state_secret, clock=clock),
        code_verifier=verifier,
        code_challenge=code_challenge_s256(verifier),
        scopes=scopes,
    )


def _redirect_key(url: str) -> tuple[str, str, str]:
    parts = urlsplit(url)
    return parts.scheme.lower(), parts.netloc.lower(), parts.path.rstrip("/")


def _first(params: dict[str, list[str]], key: str) -> str | None:
    values = params.get(key)
    return values[0] if values else None


# --------------------------------------------------------------------------- #
# Pending authorization                                                       #
# --------------------------------------------------------------------------- #


class PendingAuthorization:
    """One in-flight authorization; resolves its callback exactly once."""

    def __init__(
        self,
        client: "OIDCClient",
        request: AuthorizationRequest,
        metadata: ProviderMetadata,
        callback: SessionCallback,
    ) -> None:
        self.request = request
        self.metadata = metadata
        self._client = client
        self._callback = callback
        self._lock = threading.Lock()
        self._done = False
        self._log = get_auth_logger(
            base_logger_name="myshoppinghelp.auth.oidc",
            flow_id=request.flow_id,
            client_id=request.client_id,
            operation="login",
        )

    @property
    def done(self) -> bool:
        return self._done

    def _claim(self) -> bool:
        with self._lock:
            if self._done:
                return False
            self._done = True
            return True

    def _owns_state(self, state: str | None) -> bool:
        return bool(state) and hmac.compare_digest(state, self.request.state)

    def resume(self, url: str) -> bool:
        """Consume the redirect *url* if it belongs to this flow."""
        if _redirect_key(url) != _redirect_key(self.request.redirect_uri):
            return False

        params = parse_qs(urlsplit(url).query)
        if not self._owns_state(_first(params, "state")):
            self._log.debug("Ignoring redirect with foreign state")
            return False
        if not self._claim():
            return False

        error = _first(params, "error")
        if error:
            description = _first(params, "error_description")
            message = f"{error}: {description}" if description else error
            self._log.info("Authorization rejected by provider (%s)", error)
            self._callback(None, AuthError(f"Authorization failed: {message}"))
            return True

        code = _first(params, "code")
        if not code:
            self._callback(None, AuthError("Redirect did not include an authorization code"))
            return True

        try:
            session = self._client.exchange_code(self.request, self.metadata, code)
        except AuthError as exc:
            self._callback(None, exc)
            return True
        self._callback(session, None)
        return True

    def cancel(self) -> None:
        if self._claim():
            self._log.info("Authorization flow cancelled")
            self._callback(None, AuthError("Authorization flow was cancelled"))


# --------------------------------------------------------------------------- #
# Default provider                                                            #
# --------------------------------------------------------------------------- #


class OIDCClient:
    """``requests``-based :class:`OAuthProvider`."""

    def __init__(
        self,
        http: requests.Session | None = None,
        *,
        clock: Clock = default_clock,
        grace_seconds: int = 60,
        background_refresh: bool = True,
        timeout: float | tuple[float, float] | None = None,
    ) -> None:
        self.http = http or requests.Session()
        self.clock = clock
        self.grace_seconds = grace_seconds
        self.background_refresh = background_refresh
        self.timeout = timeout

    # ------------------------------------------------------------------ #
    # Discovery                                                          #
    # ------------------------------------------------------------------ #
    def discover(self, issuer: str) -> ProviderMetadata:
        url = issuer.rstrip("/") + DISCOVERY_PATH
        try:
            resp = self.http.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise AuthError(f"Discovery request failed: {exc}", cause=exc) from exc
        if not resp.ok:
            raise AuthError(f"Discovery endpoint returned {resp.status_code}")
        try:
            metadata = ProviderMetadata.from_discovery(resp.json())
        except (ValueError, AttributeError) as exc:
            raise AuthError(f"Invalid discovery document: {exc}", cause=exc) from exc
        _LOG.debug("Discovered provider configuration for %s", metadata.issuer)
        return metadata

    # ------------------------------------------------------------------ #
    # Authorization                                                      #
    # ------------------------------------------------------------------ #
    def present_authorization(
        self,
        request: AuthorizationRequest,
        metadata: ProviderMetadata,
        presenter: Presenter,
        callback: SessionCallback,
    ) -> PendingAuthorization:
        flow = PendingAuthorization(self, request, metadata, callback)
        url = request.authorize_url(metadata)
        _LOG.debug(
            "Presenting authorization for flow=%s**** state=%s",
            request.flow_id[:6],
            mask_sensitive(request.state, 6),
        )
        presenter(url, ephemeral=request.prefers_ephemeral_session)
        return flow

    def exchange_code(
        self, request: AuthorizationRequest, metadata: ProviderMetadata, code: str
    ) -> Session:
        """Exchange an authorization *code* for tokens."""
        data = self._token_request(
            metadata,
            {
                "grant_type": "authorization_code",
                "client_id": request.client_id,
                "code": code,
                "redirect_uri": request.redirect_uri,
                "code_verifier": request.code_verifier,
            },
            what="Token",
        )
        try:
            tokens = TokenResponse.from_token_endpoint(data, clock=self.clock)
        except (ValueError, TypeError) as exc:
            raise AuthError(str(exc), cause=exc) from exc
        _LOG.info(
            "Exchanged authorization code for flow=%s**** (expires in %ss)",
            request.flow_id[:6],
            tokens.ttl,
        )
        return Session(
            is_authorized=True,
            provider_metadata=metadata,
            client_id=request.client_id,
            redirect_uri=request.redirect_uri,
            last_token_response=tokens,
            scopes=request.scopes,
        )

    # ------------------------------------------------------------------ #
    # Refresh                                                            #
    # ------------------------------------------------------------------ #
    def refresh_session(self, session: Session) -> Session:
        """Run the refresh grant synchronously and return the new session."""
        previous = session.last_token_response
        if not session.refresh_token:
            raise AuthError("No refresh token available")
        data = self._token_request(
            session.provider_metadata,
            {
                "grant_type": "refresh_token",
                "client_id": session.client_id,
                "refresh_token": session.refresh_token,
            },
            what="Refresh",
        )
        try:
            tokens = TokenResponse.from_token_endpoint(data, clock=self.clock, previous=previous)
        except (ValueError, TypeError) as exc:
            raise AuthError(str(exc), cause=exc) from exc
        _LOG.info("Refreshed access token (expires in %ss)", tokens.ttl)
        return session.replace_tokens(tokens)

    def perform_refresh(self, session: Session, callback: SessionCallback) -> None:
        """Deliver a session with fresh tokens to *callback*.

        The callback runs exactly once: immediately when the cached token is
        still valid, otherwise after the refresh grant completes (on a
        background thread unless ``background_refresh`` is off).
        """
        tokens = session.last_token_response
        if tokens is not None and not tokens.is_expired(
            clock=self.clock, grace_seconds=self.grace_seconds
        ):
            callback(session, None)
            return

        if not self.background_refresh:
            self._refresh_and_report(session, callback)
            return

        worker = threading.Thread(
            target=self._refresh_and_report,
            args=(session, callback),
            name="msh-token-refresh",
            daemon=True,
        )
        worker.start()

    def _refresh_and_report(self, session: Session, callback: SessionCallback) -> None:
        try:
            refreshed = self.refresh_session(session)
        except AuthError as exc:
            callback(None, exc)
        except Exception as exc:  # broad: the callback must fire exactly once
            _LOG.warning("Unexpected token refresh failure: %s", exc, exc_info=True)
            callback(None, AuthError(f"Token refresh failed: {exc}", cause=exc))
        else:
            callback(refreshed, None)

    # ------------------------------------------------------------------ #
    # helpers                                                            #
    # ------------------------------------------------------------------ #
    def _token_request(
        self, metadata: ProviderMetadata, form: dict[str, str], *, what: str
    ) -> dict[str, Any]:
        try:
            resp = self.http.post(
                metadata.token_endpoint,
                data=form,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AuthError(f"{what} request failed: {exc}", cause=exc) from exc

        if not resp.ok:
            raise AuthError(f"{what} endpoint returned {resp.status_code}: {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise AuthError(f"{what} endpoint returned invalid JSON", cause=exc) from exc
        if not isinstance(data, dict):
            raise AuthError(f"{what} endpoint returned an unexpected body")
        return data
