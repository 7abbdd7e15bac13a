"""Logging helpers shared across the SDK."""

from __future__ import annotations

import logging

_SENSITIVE_KEYS = (
    "access_token",
    "refresh_token",
    "id_token",
    "code",
    "code_verifier",
    "state",
    "client_secret",
)


def mask_sensitive(value: str | None, keep_chars: int = 4) -> str:
    """Return *value* with everything but the first *keep_chars* masked."""
    if not value:
        return ""
    if len(value) <= keep_chars:
        return "*" * len(value)
    return value[:keep_chars] + "*" * (len(value) - keep_chars)


def redact_mapping(data: dict, keep_chars: int = 4) -> dict:
    """Return a shallow copy of *data* with token-bearing keys masked."""
    redacted = dict(data)
    for key in _SENSITIVE_KEYS:
        if isinstance(redacted.get(key), str):
            redacted[key] = mask_sensitive(redacted[key], keep_chars)
    return redacted


def setup_logging(level: int = logging.WARNING) -> logging.Logger:
    """Configure the package root logger and return it."""
    logger = logging.getLogger("myshoppinghelp")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        logger.addHandler(handler)
    return logger
