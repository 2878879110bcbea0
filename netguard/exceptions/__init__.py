"""
Exceptions Package for NetGuard Monitor

Provides the exception hierarchy used for error handling
throughout the application.
"""

from netguard.exceptions.base import (
    NetGuardException,
    ConfigurationError,
)

from netguard.exceptions.panel import (
    PanelException,
    PanelNetworkError,
    PanelAuthError,
    PanelNotFoundError,
    PanelServerError,
    PanelHTTPError,
    PayloadParseError,
)

from netguard.exceptions.bot import (
    BotException,
    BotForbiddenError,
    BotUnauthorizedError,
    ChatNotFoundError,
)

__all__ = [
    # Base exceptions
    "NetGuardException",
    "ConfigurationError",

    # Panel exceptions
    "PanelException",
    "PanelNetworkError",
    "PanelAuthError",
    "PanelNotFoundError",
    "PanelServerError",
    "PanelHTTPError",
    "PayloadParseError",

    # Bot exceptions
    "BotException",
    "BotForbiddenError",
    "BotUnauthorizedError",
    "ChatNotFoundError",
]
