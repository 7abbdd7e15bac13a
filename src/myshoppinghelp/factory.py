"""Composition root helpers.

The SDK keeps no process-wide singletons: the application builds one
:class:`SessionManager` and hands it to every component that needs it.
"""

from __future__ import annotations

import logging

import requests

from myshoppinghelp.auth.oidc import OIDCClient
from myshoppinghelp.auth.session import SessionManager, StorageFactory
from myshoppinghelp.client import ShoppingHelpClient
from myshoppinghelp.config import ShoppingHelpConfig
from myshoppinghelp.tracing import RequestTracer

logger = logging.getLogger("myshoppinghelp.factory")


def build_session_manager(
    config: ShoppingHelpConfig,
    *,
    http: requests.Session | None = None,
    storage_factory: StorageFactory | None = None,
) -> SessionManager:
    manager = SessionManager(
        provider=OIDCClient(http=http),
        storage_factory=storage_factory,
    )
    manager.configure(config)
    return manager


def build_client(
    config: ShoppingHelpConfig,
    *,
    session_manager: SessionManager | None = None,
    http: requests.Session | None = None,
) -> ShoppingHelpClient:
    """Return an API client wired to *session_manager* (built if omitted)."""
    http = http or requests.Session()
    manager = session_manager or build_session_manager(config, http=http)
    tracer = RequestTracer() if config.debug_trace else None
    if tracer is not None:
        logger.warning("Request tracing is enabled; do not use in production")
    return ShoppingHelpClient(
        manager,
        http=http,
        base_url=config.api_base_url,
        tracer=tracer,
    )
