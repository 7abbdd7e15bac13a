"""Small helpers shared by the SDK modules."""

from .logging import mask_sensitive, redact_mapping, setup_logging  # noqa: F401

__all__ = ["mask_sensitive", "redact_mapping", "setup_logging"]
