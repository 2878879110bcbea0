"""
============================================================================
NETGUARD MONITOR - ALERT DISPATCHER
============================================================================
Sends Telegram notifications for scan results and bot replies.

Rate Limiting
-------------
A single rate limiter covers all non-forced sends: after one goes out, the
next is dropped unless ``alert_cooldown`` seconds (default 300) have
passed. Forced sends (bot replies, test messages) bypass the limiter and
never move its baseline.

Formatting Fallback
-------------------
Messages are sent with Markdown. When Telegram rejects one as a Bad
Request (other than "chat not found") it is sent once more as plain text
with the markup characters removed. Nothing else is retried.

Failure Handling
----------------
A 403 moves the shared BotStatus to ``forbidden`` and every later call is
skipped until the gateway reconnects. "chat not found" and any other
failure are kept as the status error. None of these raise.
============================================================================
"""

import time
from typing import Any, Callable, List, Optional

from aiogram.exceptions import TelegramAPIError, TelegramBadRequest

from netguard.bot.state import BotConnectionState, BotStatus
from netguard.config.constants import MessageTemplates
from netguard.config.settings import Settings
from netguard.exceptions import (
    BotException,
    BotForbiddenError,
    ChatNotFoundError,
    ConfigurationError,
)
from netguard.monitoring.models import AnalysisResult, NodeSnapshot
from netguard.storage.manager import StateKeys, StateStore
from netguard.utils.helpers import StringHelper, TimeHelper, format_speed
from netguard.utils.logger import get_logger


logger = get_logger("AlertDispatcher")


# ============================================================================
# RATE LIMITER
# ============================================================================

class AlertRateLimiter:
    """
    One send per ``cooldown`` seconds.

    Attributes:
        cooldown: Minimum spacing between sends in seconds
        last_sent_at: Epoch seconds of the last counted send, or None
    """

    def __init__(self, cooldown: float = 300, last_sent_at: Optional[float] = None):
        self.cooldown = cooldown
        self.last_sent_at = last_sent_at

    def allow(self, now: float) -> bool:
        if self.last_sent_at is None:
            return True
        return now - self.last_sent_at >= self.cooldown

    def mark(self, now: float) -> None:
        self.last_sent_at = now

    def remaining(self, now: float) -> float:
        if self.last_sent_at is None:
            return 0.0
        return max(0.0, self.cooldown - (now - self.last_sent_at))


# ============================================================================
# ALERT DISPATCHER
# ============================================================================

class AlertDispatcher:
    """
    Telegram notification sender.

    Parameters
    ----------
    settings : Settings
        Shared application settings (token, default chat, limits).
    bot : aiogram.Bot | None
        Bot used to send messages. Without one every send raises
        ConfigurationError.
    status : BotStatus | None
        Shared connection state; a new one is created if omitted.
    state_store : StateStore | None
        Where ``last_sent_at`` is persisted. Optional.
    clock : callable
        Returns epoch seconds; replaceable in tests.
    """

    def __init__(
        self,
        settings: Settings,
        bot: Any = None,
        status: Optional[BotStatus] = None,
        state_store: Optional[StateStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.bot = bot
        self.status = status or BotStatus()
        self.state_store = state_store
        self.clock = clock
        self.limiter = AlertRateLimiter(cooldown=settings.scan.alert_cooldown)

        self.sent_count = 0
        self.suppressed_count = 0

    async def load_state(self) -> None:
        """Restore the limiter baseline from the state store."""
        if self.state_store is None:
            return
        last_sent_at = await self.state_store.get_float(StateKeys.ALERT_LAST_SENT_AT)
        if last_sent_at is not None:
            self.limiter.last_sent_at = last_sent_at
            logger.debug(f"[Alerts] Restored last alert time {last_sent_at:.0f}")

    # ------------------------------------------------------------------
    # SENDING
    # ------------------------------------------------------------------

    async def notify(
        self,
        message: str,
        force: bool = False,
        chat_id: Optional[str] = None,
    ) -> bool:
        """
        Send ``message`` to ``chat_id`` or the configured default chat.

        Args:
            message: Markdown text
            force: Bypass (and do not update) the rate limiter
            chat_id: Explicit target chat

        Returns:
            True if Telegram accepted the message

        Raises:
            ConfigurationError: No bot token/client or no target chat
        """
        if self.status.is_forbidden:
            logger.warning("[Alerts] Notification skipped: bot is forbidden")
            return False

        if self.bot is None or not self.settings.telegram.token:
            raise ConfigurationError(
                "Missing Telegram bot token",
                config_key="TELEGRAM_BOT_TOKEN",
            )

        target = chat_id or self.settings.telegram.chat_id
        if not target:
            raise ConfigurationError(
                "Missing Telegram chat ID",
                config_key="TELEGRAM_CHAT_ID",
                tip="Set TELEGRAM_CHAT_ID or run chat auto-detection.",
            )

        now = self.clock()
        if not force and not self.limiter.allow(now):
            self.suppressed_count += 1
            logger.info(
                f"[Alerts] Notification skipped due to rate limit "
                f"({TimeHelper.seconds_to_human_readable(self.limiter.remaining(now))} left)"
            )
            return False

        try:
            await self._send(str(target), message)
        except BotForbiddenError as e:
            self.status.transition(BotConnectionState.FORBIDDEN, e.user_message())
            logger.error(f"[Alerts] {e.log_format()}")
            return False
        except ChatNotFoundError as e:
            self.status.last_error = e.user_message()
            logger.error(f"[Alerts] {e.log_format()}")
            return False
        except BotException as e:
            self.status.last_error = f"Send Failed: {e.user_message()}"
            logger.error(f"[Alerts] {e.log_format()}")
            return False

        if not force:
            self.limiter.mark(now)
            await self._persist_last_sent(now)

        self.sent_count += 1
        if not self.status.is_connected:
            self.status.transition(BotConnectionState.CONNECTED)
        return True

    async def _send(self, chat_id: str, text: str) -> None:
        """
        One Markdown attempt, then one plain-text attempt on a Bad Request.

        Raises:
            BotException: Translated Telegram failure
        """
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=self.settings.telegram.parse_mode,
            )
            return
        except TelegramBadRequest as e:
            if "chat not found" in e.message.lower():
                raise ChatNotFoundError(chat_id=chat_id, cause=e)
            logger.warning(f"[Alerts] Markdown send failed ({e.message}); retrying as plain text")
        except TelegramAPIError as e:
            raise BotException.from_telegram(e, chat_id=chat_id)
        except Exception as e:
            raise BotException(str(e) or e.__class__.__name__, chat_id=chat_id, cause=e)

        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=StringHelper.strip_markdown(text),
                parse_mode=None,
            )
        except TelegramAPIError as e:
            raise BotException.from_telegram(e, chat_id=chat_id)
        except Exception as e:
            raise BotException(str(e) or e.__class__.__name__, chat_id=chat_id, cause=e)

    async def _persist_last_sent(self, now: float) -> None:
        if self.state_store is None:
            return
        try:
            await self.state_store.set(StateKeys.ALERT_LAST_SENT_AT, now)
        except Exception as e:
            logger.warning(f"[Alerts] Could not persist last alert time: {e}")

    # ------------------------------------------------------------------
    # ALERT COMPOSITION
    # ------------------------------------------------------------------

    def _node_list(self, nodes: List[NodeSnapshot], with_speed: bool) -> str:
        lines = []
        for node in nodes:
            line = f"- *{StringHelper.clean_node_name(node.name)}*: {node.online_users} users"
            if with_speed:
                line += f", {format_speed(node.current_speed_kbps)}"
            lines.append(line)

        kept, dropped = StringHelper.truncated_lines(lines, self.settings.scan.alert_node_limit)
        text = "\n".join(kept)
        if dropped:
            text += f"\n...and {dropped} more."
        return text

    def compose_alert(self, result: AnalysisResult) -> Optional[str]:
        """
        Build the alert text for a scan result, or None if nothing to report.

        Critical nodes take precedence; otherwise nodes above the
        high-load user count are reported.
        """
        critical = list(result.critical_nodes)
        if critical:
            body = (
                f"🚨 *Throttling Alert*\n\n"
                f"Detected {len(critical)} node(s) with likely speed limits:\n"
                f"{self._node_list(critical, with_speed=True)}"
            )
        else:
            threshold = self.settings.scan.high_load_users
            loaded = [n for n in result.nodes if n.online_users > threshold]
            if not loaded:
                return None
            body = (
                f"🔥 *High Load Alert*\n\n"
                f"{len(loaded)} node(s) have >{threshold} active users:\n"
                f"{self._node_list(loaded, with_speed=False)}"
            )

        return f"{body}\n\n⚠️ Advice: {result.recommendation}"

    async def check_and_notify(self, result: AnalysisResult) -> bool:
        """
        Compose and send (rate limited) the alert for ``result``.

        Returns:
            True if an alert was sent
        """
        message = self.compose_alert(result)
        if message is None:
            return False

        try:
            return await self.notify(message)
        except ConfigurationError as e:
            logger.debug(f"[Alerts] Alert not sent: {e.message}")
            return False

    async def send_test(self, chat_id: Optional[str] = None) -> bool:
        """Send the forced configuration test message."""
        return await self.notify(MessageTemplates.TEST_MESSAGE, force=True, chat_id=chat_id)
