"""
Bot Exception Classes for NetGuard Monitor

Telegram delivery and polling failures, translated from aiogram's
exception types into the application hierarchy.
"""

from __future__ import annotations

from typing import Any, Optional

from aiogram.exceptions import (
    TelegramAPIError,
    TelegramForbiddenError,
    TelegramUnauthorizedError,
)

from netguard.config.constants import MessageTemplates
from netguard.exceptions.base import NetGuardException


class BotException(NetGuardException):
    """
    Base Bot Exception

    Parent class for all Telegram-related exceptions.
    """

    default_error_code = 4000

    def __init__(
        self,
        message: str,
        chat_id: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

        if chat_id:
            self.details["chat_id"] = chat_id

    @classmethod
    def from_telegram(
        cls,
        error: Exception,
        chat_id: Optional[str] = None,
    ) -> "BotException":
        """
        Translate an aiogram error into the matching bot exception.

        Args:
            error: The exception raised by the Bot API client
            chat_id: Target chat of the failed call

        Returns:
            BotForbiddenError, BotUnauthorizedError, ChatNotFoundError
            or a plain BotException
        """
        text = error.message if isinstance(error, TelegramAPIError) else str(error)

        if isinstance(error, TelegramForbiddenError):
            return BotForbiddenError(chat_id=chat_id, cause=error)
        if isinstance(error, TelegramUnauthorizedError):
            return BotUnauthorizedError(cause=error)
        if "chat not found" in text.lower():
            return ChatNotFoundError(chat_id=chat_id, cause=error)
        return cls(text or error.__class__.__name__, chat_id=chat_id, cause=error)


class BotForbiddenError(BotException):
    """The bot was blocked by the user or removed from the chat (403)."""

    default_error_code = 4003
    default_recoverable = False

    def __init__(self, message: str = MessageTemplates.BOT_FORBIDDEN, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class BotUnauthorizedError(BotException):
    """The bot token was rejected (401)."""

    default_error_code = 4001
    default_recoverable = False

    def __init__(self, message: str = MessageTemplates.INVALID_TOKEN, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ChatNotFoundError(BotException):
    """The target chat does not exist or has never talked to the bot."""

    default_error_code = 4004

    def __init__(self, message: str = MessageTemplates.CHAT_NOT_FOUND, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
