"""
Panel Exception Classes for NetGuard Monitor

Failures talking to the node management panel. Each class knows the
short title and remediation tip shown to the operator, so a failed
scan collapses into exactly one error record.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from netguard.exceptions.base import NetGuardException

if TYPE_CHECKING:
    from netguard.monitoring.models import ScanErrorRecord


class PanelException(NetGuardException):
    """
    Base Panel Exception

    Parent class for all panel-related exceptions.
    """

    default_error_code = 3000
    title: str = "Connection Failed"
    tip: str = "Check your internet connection and try again."

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

        self.url = url
        self.status_code = status_code

        if url:
            self.details["url"] = url

        if status_code is not None:
            self.details["status_code"] = status_code

    @property
    def stops_schedule(self) -> bool:
        """Whether periodic scanning should be switched off after this error."""
        return False

    def to_record(self) -> "ScanErrorRecord":
        """Build the operator-facing error record for this failure."""
        from netguard.monitoring.models import ScanErrorRecord

        return ScanErrorRecord(title=self.title, message=self.message, tip=self.tip)


class PanelNetworkError(PanelException):
    """The panel could not be reached at the transport level."""

    default_error_code = 3001
    title = "Network or CORS Error"
    tip = (
        "1. Ensure Panel URL is correct.\n"
        "2. Try enabling/disabling the relay.\n"
        "3. Check the relay URL in the settings."
    )

    def __init__(
        self,
        message: str = "Failed to connect to Panel API. The relay might be failing.",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)


class PanelAuthError(PanelException):
    """The panel rejected the API token (401/403)."""

    default_error_code = 3002
    default_recoverable = False
    title = "Authentication Failed"
    tip = (
        "1. Check your API Token.\n"
        "2. If using the relay, it might be stripping headers. Try disabling it."
    )

    def __init__(
        self,
        message: str = "API Token rejected (401/403). Auto-Scan stopped.",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

    @property
    def stops_schedule(self) -> bool:
        return True


class PanelNotFoundError(PanelException):
    """The panel endpoint returned 404."""

    default_error_code = 3003
    default_recoverable = False
    title = "Panel Not Found"
    tip = (
        "Check your Domain URL. It should just be the domain "
        "(e.g. https://panel.example.com) without any paths."
    )

    def __init__(
        self,
        message: str = "API endpoint returned 404 Not Found.",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

    @property
    def stops_schedule(self) -> bool:
        return True


class PanelServerError(PanelException):
    """The panel answered with a 5xx status."""

    default_error_code = 3004
    title = "Server Error"
    tip = "Check the panel logs on your VPS. The service might be crashing."

    def __init__(
        self,
        message: str = "The remote Panel server returned a 500 error.",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)


class PanelHTTPError(PanelException):
    """Any other non-success HTTP status."""

    default_error_code = 3005

    def __init__(self, status_code: int, **kwargs: Any) -> None:
        super().__init__(f"HTTP_{status_code}", status_code=status_code, **kwargs)


class PayloadParseError(PanelException):
    """A panel response body was not valid JSON."""

    default_error_code = 3006
    title = "Invalid Response"
    tip = "The panel returned a body that is not JSON. Check the URL and relay."
