"""Exception types surfaced by the MyShoppingHelp SDK.

Only lightweight, **data-carrying** exceptions live here so that application
layers can transform them into user-facing messages.  None of them ever
carries a token or other secret.
"""

from __future__ import annotations


class ShoppingHelpError(RuntimeError):
    """Base class for every error raised by the SDK."""

    code = "unknown"

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.code, "message": str(self)}


class ConfigurationError(ShoppingHelpError):
    """Raised when an operation runs before ``configure`` or with bad settings."""

    code = "not_configured"


class NotAuthorizedError(ShoppingHelpError):
    """No (valid) session exists for an operation that requires one."""

    code = "not_authorized"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Not authorized.")


class UnknownError(ShoppingHelpError):
    """Malformed URL, non-HTTP response or other unclassified condition."""

    code = "unknown"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Unknown error.")


class DecodeError(ShoppingHelpError):
    """The response body did not match the expected shape."""

    code = "decode_error"

    def __init__(self, *, url: str, cause: BaseException) -> None:
        super().__init__(f"Cannot parse data for {url}: {cause}")
        self.url: str = url
        self.cause: BaseException = cause

    def to_payload(self) -> dict[str, str]:
        payload = super().to_payload()
        payload["url"] = self.url
        return payload


class AuthError(ShoppingHelpError):
    """OAuth discovery, authorization or refresh failed."""

    code = "auth_error"

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause: BaseException | None = cause
