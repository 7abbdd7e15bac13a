"""Client SDK for the MyShoppingHelp shopping-list service."""

from __future__ import annotations

from .auth import SessionManager, SessionState  # noqa: F401
from .client import ShoppingHelpClient  # noqa: F401
from .config import ShoppingHelpConfig  # noqa: F401
from .errors import (  # noqa: F401
    AuthError,
    ConfigurationError,
    DecodeError,
    NotAuthorizedError,
    ShoppingHelpError,
    UnknownError,
)
from .factory import build_client, build_session_manager  # noqa: F401
from .models import (  # noqa: F401
    ItemType,
    ListItem,
    ListItemCreatePayload,
    ListItemUpdatePayload,
    RecipeMetadata,
    ShoppingList,
)
from .refs import Ref, RefType  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "ConfigurationError",
    "DecodeError",
    "ItemType",
    "ListItem",
    "ListItemCreatePayload",
    "ListItemUpdatePayload",
    "NotAuthorizedError",
    "RecipeMetadata",
    "Ref",
    "RefType",
    "SessionManager",
    "SessionState",
    "ShoppingHelpClient",
    "ShoppingHelpConfig",
    "ShoppingHelpError",
    "ShoppingList",
    "UnknownError",
    "build_client",
    "build_session_manager",
]
