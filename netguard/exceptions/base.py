"""
Base Exception Classes for NetGuard Monitor

Provides the root of the exception hierarchy. Every error raised by
the application carries a numeric code, a details mapping and an
optional underlying cause so it can be logged and rendered uniformly.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class NetGuardException(Exception):
    """
    Base Exception Class

    All custom exceptions in NetGuard inherit from this class.

    Attributes:
        message: Human-readable error message
        error_code: Numeric error code for categorization
        details: Additional error details as dictionary
        cause: The underlying exception, if any
        timestamp: When the exception occurred
        recoverable: Whether the operation may succeed on a later attempt
    """

    default_error_code: int = 1000
    default_recoverable: bool = True

    def __init__(
        self,
        message: str = "An error occurred",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = (
            recoverable if recoverable is not None else self.default_recoverable
        )
        self.timestamp = datetime.now(timezone.utc)

    @property
    def full_message(self) -> str:
        """Get full error message with code."""
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }

    def log_format(self) -> str:
        """Format exception for a single log line."""
        parts = [
            f"Exception: {self.__class__.__name__}",
            f"Code: {self.error_code}",
            f"Message: {self.message}",
        ]

        if self.details:
            parts.append(f"Details: {self.details}")

        if self.cause:
            parts.append(f"Cause: {self.cause}")

        return " | ".join(parts)

    def user_message(self) -> str:
        """
        Get user-friendly error message.

        Returns:
            Message suitable for displaying to operators
        """
        return self.message

    def __str__(self) -> str:
        return self.full_message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code}, "
            f"details={self.details})"
        )


class ConfigurationError(NetGuardException):
    """
    Configuration Error

    Raised before any I/O when a required endpoint, credential or
    target is missing from the settings.
    """

    default_error_code = 1100
    default_recoverable = False

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        title: str = "Configuration Missing",
        tip: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize configuration error.

        Args:
            message: Error message
            config_key: The settings key that is missing or invalid
            title: Short heading for operator-facing reports
            tip: Remediation hint
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        self.title = title
        self.tip = tip

        if config_key:
            self.details["config_key"] = config_key
