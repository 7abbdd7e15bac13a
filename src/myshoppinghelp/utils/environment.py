"""Utility functions related to environment variables."""

import os
from typing import Final, Tuple

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")


def truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def env_flag(name: str) -> bool:
    """Return True if the environment variable *name* is set to a truthy value."""
    return truthy(os.getenv(name))


def env_str(name: str, default: str | None = None) -> str | None:
    """Return the stripped value of *name*, or *default* when unset/blank."""
    value = (os.getenv(name) or "").strip()
    return value or default
