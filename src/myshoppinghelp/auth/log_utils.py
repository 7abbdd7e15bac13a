"""Structured logging helpers for the session layer.

This module restricts **which** contextual attributes are attached to log
records in order to avoid leaking secrets.  The helpers ONLY inject the
following *non-sensitive* fields:

- ``flow_id``     – The authorization flow identifier (first 6 chars kept)
- ``client_id``   – OAuth client identifier of the configured app
- ``operation``   – Session operation being performed (``login``, ``refresh``…)

Usage
-----
>>> from myshoppinghelp.auth.log_utils import get_auth_logger
>>> log = get_auth_logger(flow_id="3f2a9c01d4", operation="login")
>>> log.info("Presenting authorization UI")
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping


class _AuthLoggerAdapter(logging.LoggerAdapter):
    """Inject whitelisted auth context into log records."""

    extra_keys = ("flow_id", "client_id", "operation")

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        extra_clean: MutableMapping[str, Any] = {}
        for k in self.extra_keys:
            if not extra or extra.get(k) is None:
                continue
            if k == "flow_id":
                extra_clean[k] = str(extra[k])[:6]
            else:
                extra_clean[k] = extra[k]
        super().__init__(logger, extra_clean)

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        if "extra" not in kwargs or kwargs["extra"] is None:
            kwargs["extra"] = {}
        # merge but do not overwrite call-site provided extras
        for k, v in self.extra.items():
            kwargs["extra"].setdefault(k, v)
        return msg, kwargs


def get_auth_logger(
    *,
    base_logger_name: str = "myshoppinghelp.auth",
    flow_id: str | None = None,
    client_id: str | None = None,
    operation: str | None = None,
) -> logging.LoggerAdapter:
    """Return a LoggerAdapter pre-filled with auth context."""
    return _AuthLoggerAdapter(
        logging.getLogger(base_logger_name),
        {"flow_id": flow_id, "client_id": client_id, "operation": operation},
    )
