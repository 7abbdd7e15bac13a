"""Configuration for the MyShoppingHelp SDK."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final

from myshoppinghelp.errors import ConfigurationError
from myshoppinghelp.utils.environment import env_flag, env_str

logger = logging.getLogger("myshoppinghelp.config")

DEFAULT_ISSUER: Final[str] = "https://auth.myshopping.help"
DEFAULT_API_BASE_URL: Final[str] = "https://api.myshopping.help/v1/"
DEFAULT_REDIRECT_URL_PATH: Final[str] = "msh/callback"


@dataclass(frozen=True)
class ShoppingHelpConfig:
    """Settings recognised by the session manager and API client.

    Attributes:
        client_id: OAuth client identifier registered with the provider.
        redirect_url_protocol: Custom scheme the platform routes back to the app.
        app_group_id: Optional storage namespace shared between apps.
        redirect_url_path: Path part of the redirect URI.
        issuer: OIDC issuer used for discovery.
        api_base_url: Versioned REST API origin.
        debug_trace: Enable request/response tracing in the factory.
    """

    client_id: str
    redirect_url_protocol: str
    app_group_id: str | None = None
    redirect_url_path: str = DEFAULT_REDIRECT_URL_PATH
    issuer: str = DEFAULT_ISSUER
    api_base_url: str = DEFAULT_API_BASE_URL
    debug_trace: bool = False

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ConfigurationError("client_id is required")
        if not self.redirect_url_protocol:
            raise ConfigurationError("redirect_url_protocol is required")

    @property
    def redirect_uri(self) -> str:
        """Return the redirect URI registered with the provider."""
        path = (self.redirect_url_path or DEFAULT_REDIRECT_URL_PATH).lstrip("/")
        return f"{self.redirect_url_protocol}://{path}"

    @property
    def storage_scope(self) -> str | None:
        return self.app_group_id

    @classmethod
    def from_env(cls) -> "ShoppingHelpConfig":
        """Create the configuration from ``MSH_*`` environment variables.

        Raises:
            ConfigurationError: If a required variable is missing.
        """
        client_id = env_str("MSH_CLIENT_ID")
        protocol = env_str("MSH_REDIRECT_URL_PROTOCOL")
        if not client_id or not protocol:
            raise ConfigurationError(
                "MSH_CLIENT_ID and MSH_REDIRECT_URL_PROTOCOL must be set"
            )

        config = cls(
            client_id=client_id,
            redirect_url_protocol=protocol,
            app_group_id=env_str("MSH_APP_GROUP_ID"),
            redirect_url_path=env_str("MSH_REDIRECT_URL_PATH", DEFAULT_REDIRECT_URL_PATH),
            issuer=env_str("MSH_ISSUER", DEFAULT_ISSUER),
            api_base_url=env_str("MSH_API_BASE_URL", DEFAULT_API_BASE_URL),
            debug_trace=env_flag("MSH_DEBUG_TRACE"),
        )
        logger.debug(
            "Loaded configuration from environment (app_group=%s, trace=%s)",
            config.app_group_id or "-",
            config.debug_trace,
        )
        return config
