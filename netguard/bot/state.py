"""
Bot connection state for NetGuard Monitor.

    unknown ─► checking ─► connected ◄──┐
                    │          │         │ successful poll
                    └─► failed ┴─────────┘
    connected / failed ─► forbidden      (403; stays until connect())
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from netguard.utils.logger import get_logger


logger = get_logger("BotStatus")


class BotConnectionState(str, Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    CONNECTED = "connected"
    FAILED = "failed"
    FORBIDDEN = "forbidden"


@dataclass
class BotStatus:
    """
    Visible state of the Telegram connection.

    Shared by the bot gateway and the alert dispatcher; both may move it
    to ``forbidden`` or ``connected``.
    """

    state: BotConnectionState = BotConnectionState.UNKNOWN
    bot_name: Optional[str] = None
    last_error: Optional[str] = None
    last_poll_at: Optional[float] = None

    @property
    def is_forbidden(self) -> bool:
        return self.state == BotConnectionState.FORBIDDEN

    @property
    def is_connected(self) -> bool:
        return self.state == BotConnectionState.CONNECTED

    def transition(
        self,
        state: BotConnectionState,
        error: Optional[str] = None,
    ) -> None:
        """Move to ``state``; an error is kept, a clean transition clears it."""
        if state != self.state:
            logger.info(f"[Bot] State {self.state.value} → {state.value}")
        self.state = state
        self.last_error = error

    def mark_polled(self, now: Optional[float] = None) -> None:
        self.last_poll_at = now if now is not None else time.time()
