"""SessionManager – owner of the authenticated user's session.

The manager is the single source of truth for "is the user logged in".  It
orchestrates login (discovery, authorization UI, code exchange), restoration
of the persisted session, token refresh and logout.

Concurrency
-----------
Every mutation of the session (adoption after login, refresh, logout,
restoration) runs under one re-entrant lock, so two mutations never
interleave their writes to the persisted blob.  Read-only properties may be
used from any thread.

The OAuth capability reports refreshed tokens through a callback.
:meth:`SessionManager.get_valid_access_token` bridges that callback into a
blocking call with a one-shot :class:`concurrent.futures.Future`: the first
resolution wins and any later callback is ignored.  Concurrent callers share
the in-flight refresh.

Session listeners fire only when ``is_logged_in`` flips, not when a refresh
replaces the tokens of an existing session.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Callable
from urllib.parse import parse_qsl, urlsplit

from myshoppinghelp.auth.clock import Clock, default_clock
from myshoppinghelp.auth.jwt import decode_subject
from myshoppinghelp.auth.log_utils import get_auth_logger
from myshoppinghelp.auth.models import DEFAULT_SCOPES, Session
from myshoppinghelp.auth.oidc import (
    AuthorizationFlow,
    OAuthProvider,
    OIDCClient,
    Presenter,
    browser_presenter,
    new_authorization_request,
)
from myshoppinghelp.auth.state import InvalidStateError, parse_state
from myshoppinghelp.auth.storage import DiskSecretStorage, SecretStorage
from myshoppinghelp.auth.store import SessionDecodeError, SessionStore
from myshoppinghelp.config import ShoppingHelpConfig
from myshoppinghelp.errors import (
    AuthError,
    ConfigurationError,
    NotAuthorizedError,
    ShoppingHelpError,
)

_LOG = logging.getLogger("myshoppinghelp.auth.session")

SessionListener = Callable[[bool], None]
StorageFactory = Callable[[str | None], SecretStorage]


class SessionState(str, Enum):
    LOGGED_OUT = "logged_out"
    AUTHORIZING = "authorizing"
    LOGGED_IN = "logged_in"
    REFRESHING_TOKEN = "refreshing_token"


def _disk_storage(access_group: str | None) -> SecretStorage:
    return DiskSecretStorage(access_group=access_group)


class SessionManager:
    """Login, logout, restoration and token access for one user session."""

    def __init__(
        self,
        *,
        provider: OAuthProvider | None = None,
        storage_factory: StorageFactory | None = None,
        clock: Clock = default_clock,
        grace_seconds: int = 60,
    ) -> None:
        self._provider: OAuthProvider = provider or OIDCClient(
            clock=clock, grace_seconds=grace_seconds
        )
        self._storage_factory = storage_factory or _disk_storage
        self._clock = clock
        self.grace_seconds = grace_seconds

        self._lock = threading.RLock()
        self._config: ShoppingHelpConfig | None = None
        self._store: SessionStore | None = None
        self._session: Session | None = None
        self._restored = False

        self._pending_flow: AuthorizationFlow | None = None
        self._login_future: Future[Session] | None = None
        self._refresh_future: Future[str] | None = None

        self._listeners: list[SessionListener] = []
        self._state_secret = uuid.uuid4().hex

    # ------------------------------------------------------------------ #
    # Configuration & restoration                                        #
    # ------------------------------------------------------------------ #
    def configure(self, config: ShoppingHelpConfig) -> None:
        """Set client id, redirect target and storage scope.

        Calling it again with the same configuration is a no-op.  A different
        storage scope re-targets the store; the session is restored again
        from the new scope on next use.
        """
        notify = False
        with self._lock:
            if self._config == config:
                return
            rescope = self._config is None or self._config.storage_scope != config.storage_scope
            self._config = config
            if rescope:
                self._store = SessionStore(self._storage_factory(config.storage_scope))
                if self._restored:
                    notify = self._adopt(None, persist=False)
                self._restored = False
            _LOG.debug(
                "Configured session manager (client_id=%s, app_group=%s)",
                config.client_id,
                config.storage_scope or "-",
            )
        if notify:
            self._notify(False)

    @property
    def config(self) -> ShoppingHelpConfig | None:
        return self._config

    def _require_config(self) -> ShoppingHelpConfig:
        if self._config is None:
            raise ConfigurationError("SessionManager.configure() must be called first")
        return self._config

    def _require_store(self) -> SessionStore:
        self._require_config()
        assert self._store is not None
        return self._store

    def _ensure_restored(self) -> None:
        if not self._restored:
            self.restore_session()

    def restore_session(self) -> bool:
        """Load the persisted session; return whether the user is logged in.

        Unreadable or corrupt content is deleted and treated as logged out.
        """
        with self._lock:
            store = self._require_store()
            self._restored = True
            try:
                session = store.load()
            except (SessionDecodeError, OSError) as exc:
                _LOG.warning("Could not resume session, clearing it. Reason: %s", exc)
                session = None
                try:
                    store.delete()
                except OSError as delete_exc:
                    _LOG.warning("Could not delete unreadable session: %s", delete_exc)
            notify = self._adopt(session, persist=False)
            logged_in = self._is_logged_in_locked()
        if notify:
            self._notify(logged_in)
        _LOG.debug("Session restored (logged_in=%s)", logged_in)
        return logged_in

    # ------------------------------------------------------------------ #
    # Observable surface                                                 #
    # ------------------------------------------------------------------ #
    def _is_logged_in_locked(self) -> bool:
        return self._session is not None and self._session.is_authorized

    @property
    def is_logged_in(self) -> bool:
        self._ensure_restored()
        return self._is_logged_in_locked()

    @property
    def is_busy(self) -> bool:
        """True while a login or a token refresh is in flight."""
        return self._login_future is not None or self._refresh_future is not None

    @property
    def state(self) -> SessionState:
        if self._login_future is not None:
            return SessionState.AUTHORIZING
        if self._refresh_future is not None:
            return SessionState.REFRESHING_TOKEN
        return SessionState.LOGGED_IN if self.is_logged_in else SessionState.LOGGED_OUT

    @property
    def current_access_token(self) -> str | None:
        self._ensure_restored()
        session = self._session
        return session.access_token if session is not None else None

    @property
    def current_user_id(self) -> str | None:
        """Subject claim of the current access token (best effort)."""
        return decode_subject(self.current_access_token)

    def add_session_listener(self, listener: SessionListener) -> SessionListener:
        """Register *listener*; it receives ``is_logged_in`` on every edge."""
        with self._lock:
            self._listeners.append(listener)
        return listener

    def remove_session_listener(self, listener: SessionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, logged_in: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(logged_in)
            except Exception:  # broad: one observer must not break the others
                _LOG.exception("Session listener %r failed", listener)

    # ------------------------------------------------------------------ #
    # Mutation helpers (caller holds the lock)                           #
    # ------------------------------------------------------------------ #
    def _adopt(self, session: Session | None, *, persist: bool = True) -> bool:
        """Make *session* current; return True when ``is_logged_in`` flips."""
        was_logged_in = self._is_logged_in_locked()
        self._session = session
        if persist:
            store = self._require_store()
            try:
                if session is None:
                    store.delete()
                else:
                    store.save(session)
            except OSError as exc:
                _LOG.error("Could not persist session. Reason: %s", exc)
        return was_logged_in != self._is_logged_in_locked()

    # ------------------------------------------------------------------ #
    # Login                                                              #
    # ------------------------------------------------------------------ #
    def start_login(self, presenter: Presenter = browser_presenter) -> Future[Session]:
        """Begin an authorization flow and return its one-shot result.

        A flow still pending from an earlier call is cancelled; that call's
        future fails with :class:`AuthError`.
        """
        config = self._require_config()
        self._ensure_restored()

        future: Future[Session] = Future()
        future.set_running_or_notify_cancel()
        with self._lock:
            superseded = self._pending_flow
            self._pending_flow = None
            self._login_future = future
        if superseded is not None:
            superseded.cancel()

        log = get_auth_logger(
            base_logger_name="myshoppinghelp.auth.session",
            client_id=config.client_id,
            operation="login",
        )
        log.info("Starting login")

        def _on_finished(session: Session | None, error: BaseException | None) -> None:
            self._finish_login(future, session, error)

        try:
            metadata = self._provider.discover(config.issuer)
            request = new_authorization_request(
                client_id=config.client_id,
                redirect_uri=config.redirect_uri,
                state_secret=self._state_secret,
                scopes=DEFAULT_SCOPES,
                clock=self._clock,
            )
            flow = self._provider.present_authorization(request, metadata, presenter, _on_finished)
        except AuthError as exc:
            self._finish_login(future, None, exc)
            return future
        except Exception as exc:  # broad: presenter errors end the flow
            self._finish_login(future, None, AuthError(f"Could not present authorization: {exc}", cause=exc))
            return future

        stale = False
        with self._lock:
            if not future.done() and self._login_future is future:
                self._pending_flow = flow
            else:
                # finished synchronously, cancelled or superseded meanwhile
                stale = True
        if stale:
            flow.cancel()
        return future

    def login(
        self, presenter: Presenter = browser_presenter, *, timeout: float | None = None
    ) -> Session:
        """Run :meth:`start_login` and wait for the redirect to complete it."""
        future = self.start_login(presenter)
        try:
            return future.result(timeout)
        except FutureTimeoutError:
            self.cancel_login()
            raise AuthError("Timed out waiting for authorization") from None

    def cancel_login(self) -> None:
        with self._lock:
            flow = self._pending_flow
            self._pending_flow = None
            future = self._login_future
        if flow is not None:
            flow.cancel()
        if future is not None:
            self._finish_login(future, None, AuthError("Authorization flow was cancelled"))

    def _finish_login(
        self,
        future: Future[Session],
        session: Session | None,
        error: BaseException | None,
    ) -> None:
        notify = False
        with self._lock:
            if future.done():
                return
            if self._login_future is future:
                self._login_future = None
                self._pending_flow = None
            if error is None and session is not None:
                notify = self._adopt(session)
                future.set_result(session)
                _LOG.info("Login succeeded")
            else:
                if not isinstance(error, ShoppingHelpError):
                    error = AuthError(f"Authorization failed: {error}", cause=error)
                future.set_exception(error)
                _LOG.info("Login failed: %s", error)
            logged_in = self._is_logged_in_locked()
        if notify:
            self._notify(logged_in)

    def resume_authorization_callback(self, url: str) -> bool:
        """Feed a redirect *url* to the pending flow; return whether it was consumed."""
        with self._lock:
            flow = self._pending_flow
        if flow is None:
            return False

        state = dict(parse_qsl(urlsplit(url).query)).get("state")
        if state:
            try:
                parse_state(state, self._state_secret)
            except InvalidStateError:
                _LOG.warning("Rejected redirect with an invalid state")
                return False

        consumed = flow.resume(url)
        if consumed:
            with self._lock:
                if self._pending_flow is flow:
                    self._pending_flow = None
        return consumed

    # ------------------------------------------------------------------ #
    # Logout                                                             #
    # ------------------------------------------------------------------ #
    def logout(self) -> None:
        """Drop the session and purge the persisted blob."""
        self._require_store()
        with self._lock:
            self._restored = True
            notify = self._adopt(None)
        if notify:
            _LOG.info("Logged out")
            self._notify(False)

    # ------------------------------------------------------------------ #
    # Tokens                                                             #
    # ------------------------------------------------------------------ #
    def get_valid_access_token(self, *, timeout: float | None = None) -> str:
        """Return a usable access token, refreshing it first when stale.

        Raises
        ------
        NotAuthorizedError
            If there is no authorized session (no network call is made).
        AuthError
            If the refresh fails or does not finish within *timeout*.
        """
        self._require_config()
        self._ensure_restored()

        start_refresh = False
        with self._lock:
            session = self._session
            if session is None or not session.is_authorized:
                raise NotAuthorizedError("No active session")
            tokens = session.last_token_response
            if tokens is not None and not tokens.is_expired(
                clock=self._clock, grace_seconds=self.grace_seconds
            ):
                return tokens.access_token

            future = self._refresh_future
            if future is None:
                future = Future()
                future.set_running_or_notify_cancel()
                self._refresh_future = future
                start_refresh = True

        if start_refresh:
            _LOG.debug("Access token stale, refreshing")

            def _on_refreshed(refreshed: Session | None, error: BaseException | None) -> None:
                self._finish_refresh(future, session, refreshed, error)

            try:
                self._provider.perform_refresh(session, _on_refreshed)
            except Exception as exc:  # broad: the future must always resolve
                self._finish_refresh(
                    future, session, None, AuthError(f"Token refresh failed: {exc}", cause=exc)
                )

        try:
            return future.result(timeout)
        except FutureTimeoutError:
            self._finish_refresh(
                future, session, None, AuthError("Timed out waiting for token refresh")
            )
            return future.result(0)

    def _finish_refresh(
        self,
        future: Future[str],
        base: Session,
        refreshed: Session | None,
        error: BaseException | None,
    ) -> None:
        with self._lock:
            if future.done():
                # the waiters already failed; keep rotated tokens if still current
                if (
                    error is None
                    and refreshed is not None
                    and refreshed.access_token
                    and self._session is base
                ):
                    self._adopt(refreshed)
                    _LOG.info("Adopted token refresh that completed after its timeout")
                else:
                    _LOG.debug("Ignoring late token refresh result")
                return
            if self._refresh_future is future:
                self._refresh_future = None

            if error is None and refreshed is not None and refreshed.access_token:
                if self._session is not base:
                    future.set_exception(NotAuthorizedError("Session ended during token refresh"))
                    return
                # replacing tokens of an existing session is not an edge
                self._adopt(refreshed)
                future.set_result(refreshed.access_token)
                return

            if error is None:
                error = AuthError("Token refresh returned no access token")
            elif not isinstance(error, ShoppingHelpError):
                error = AuthError(f"Token refresh failed: {error}", cause=error)
            _LOG.warning("Token refresh failed: %s", error)
            future.set_exception(error)
