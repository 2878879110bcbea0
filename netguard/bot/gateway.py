"""
============================================================================
NETGUARD MONITOR - BOT GATEWAY
============================================================================
Long-poll command gateway for the Telegram bot.

Design
------
The gateway owns the update offset and the polling loop. Each iteration
asks ``getUpdates`` for updates after the stored offset, handles them one
at a time (a command is fully answered before the next update is looked
at), advances the offset to the highest id seen and persists it. The loop
is a plain ``while`` with ``asyncio.sleep`` between iterations:

    connected           → next poll in ``poll_interval_connected`` (2s)
    any other state     → next poll in ``poll_interval_failed`` (10s)
    403 / 401           → loop exits until ``connect()`` is called again

Replies are forced sends through the AlertDispatcher, so they bypass the
alert rate limiter but still respect the ``forbidden`` state.

Chat Detection
--------------
After ``arm_chat_detection()`` the next inbound text message is not
treated as a command: its chat id is written to
``settings.telegram.chat_id`` (this gateway is the only writer of that
field), persisted, and confirmed to that chat.
============================================================================
"""

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from aiogram.exceptions import TelegramForbiddenError, TelegramUnauthorizedError
from aiogram.types import Update

from netguard.bot.commands import (
    format_nodes,
    format_scan_summary,
    format_status,
    help_text,
    normalize_command,
)
from netguard.bot.state import BotConnectionState, BotStatus
from netguard.config.constants import BotCommands, MessageTemplates
from netguard.config.settings import Settings
from netguard.exceptions import ConfigurationError
from netguard.monitoring.models import AnalysisSnapshot
from netguard.storage.manager import StateKeys, StateStore
from netguard.utils.logger import get_logger

if TYPE_CHECKING:
    from netguard.monitoring.alerts import AlertDispatcher
    from netguard.monitoring.scheduler import ScanScheduler


logger = get_logger("BotGateway")


class BotGateway:
    """
    Telegram polling loop and command handlers.

    Parameters
    ----------
    settings : Settings
        Shared application settings.
    bot : aiogram.Bot
        Bot API client (``get_me``, ``get_updates``).
    dispatcher : AlertDispatcher
        Sends every reply.
    status : BotStatus | None
        Shared connection state; defaults to the dispatcher's.
    snapshot : AnalysisSnapshot | None
        Latest scan result, read by /status and /nodes.
    scanner : ScanScheduler | None
        Runs the out-of-band scan for /scan.
    state_store : StateStore | None
        Persists the update offset and a detected chat id.
    """

    def __init__(
        self,
        settings: Settings,
        bot: Any,
        dispatcher: "AlertDispatcher",
        status: Optional[BotStatus] = None,
        snapshot: Optional[AnalysisSnapshot] = None,
        scanner: Optional["ScanScheduler"] = None,
        state_store: Optional[StateStore] = None,
    ):
        self.settings = settings
        self.bot = bot
        self.dispatcher = dispatcher
        self.status = status or dispatcher.status
        self.snapshot = snapshot if snapshot is not None else AnalysisSnapshot()
        self.scanner = scanner
        self.state_store = state_store

        self.offset = 0
        self._detecting_chat = False
        self._in_flight = False
        self._running = False
        self._task: Optional[asyncio.Task] = None

        self._handlers: Dict[BotCommands, Callable[[str], Awaitable[None]]] = {
            BotCommands.START: self._cmd_help,
            BotCommands.HELP: self._cmd_help,
            BotCommands.SCAN: self._cmd_scan,
            BotCommands.STATUS: self._cmd_status,
            BotCommands.NODES: self._cmd_nodes,
            BotCommands.PING: self._cmd_ping,
        }

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_detecting_chat(self) -> bool:
        return self._detecting_chat

    async def load_state(self) -> None:
        """Restore the offset and, if none is configured, the chat id."""
        if self.state_store is None:
            return

        self.offset = max(self.offset, await self.state_store.get_int(StateKeys.TELEGRAM_OFFSET))
        if not self.settings.telegram.chat_id:
            chat_id = await self.state_store.get(StateKeys.TELEGRAM_CHAT_ID)
            if chat_id:
                self.settings.telegram.chat_id = chat_id
        logger.debug(f"[Bot] Restored offset {self.offset}")

    async def connect(self) -> bool:
        """
        Verify the token with ``getMe`` and start polling.

        Polling also starts after a transient failure so the bot recovers
        on its own; only a rejected token leaves it stopped.

        Returns:
            True when the bot is connected
        """
        if not self.settings.telegram.token:
            self.status.transition(BotConnectionState.FAILED, "Missing bot token")
            return False

        self.status.transition(BotConnectionState.CHECKING)
        try:
            me = await self.bot.get_me()
        except TelegramUnauthorizedError:
            self.status.transition(BotConnectionState.FAILED, MessageTemplates.INVALID_TOKEN)
            logger.error(f"[Bot] {MessageTemplates.INVALID_TOKEN}")
            return False
        except Exception as e:
            self.status.bot_name = None
            self.status.transition(BotConnectionState.FAILED, str(e) or e.__class__.__name__)
            logger.error(f"[Bot] Connection check failed: {e}")
            # Any later successful poll moves the bot back to connected
            await self.start()
            return False

        self.status.bot_name = me.first_name or me.username
        self.status.transition(BotConnectionState.CONNECTED)
        logger.info(f"[Bot] ✓ Connected as {self.status.bot_name}")

        await self.start()
        return True

    async def start(self) -> None:
        """Start the polling loop if it is not already running."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("[Bot] ✓ Polling loop started")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[Bot] ✓ Polling loop stopped")

    def arm_chat_detection(self) -> None:
        """Capture the chat id of the next inbound message."""
        self._detecting_chat = True
        logger.info("[Bot] Chat detection armed; send any message to the bot")

    # ------------------------------------------------------------------
    # POLLING
    # ------------------------------------------------------------------

    def _next_delay(self) -> float:
        config = self.settings.telegram
        if self.status.is_connected:
            return config.poll_interval_connected
        return config.poll_interval_failed

    async def _loop(self) -> None:
        while self._running:
            try:
                delay = await self.poll_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[Bot] Unhandled error in polling loop: {e}")
                delay = self._next_delay()

            if delay is None:
                logger.warning(f"[Bot] Polling stopped ({self.status.state.value})")
                break

            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                break

        self._running = False

    async def poll_once(self) -> Optional[float]:
        """
        Run one polling iteration.

        Returns:
            Seconds until the next iteration, or None when polling must
            stop (forbidden, rejected token or no token)
        """
        if self.status.is_forbidden or not self.settings.telegram.token:
            return None
        if self._in_flight:
            return self._next_delay()

        self._in_flight = True
        try:
            start_offset = self.offset
            try:
                updates = await self.bot.get_updates(
                    offset=start_offset + 1,
                    limit=self.settings.telegram.poll_limit,
                    timeout=0,
                )
            except TelegramForbiddenError:
                self.status.transition(BotConnectionState.FORBIDDEN, MessageTemplates.POLL_FORBIDDEN)
                return None
            except TelegramUnauthorizedError:
                self.status.transition(BotConnectionState.FAILED, MessageTemplates.INVALID_TOKEN)
                return None
            except Exception as e:
                logger.warning(f"[Bot] Poll warning: {e}")
                if self.status.is_connected:
                    self.status.last_error = f"Polling Error: {str(e)[:30]}..."
                return self._next_delay()

            self.status.mark_polled()
            if self.status.state == BotConnectionState.FAILED:
                self.status.transition(BotConnectionState.CONNECTED)

            max_id = start_offset
            for update in updates or ():
                if update.update_id <= start_offset:
                    continue
                max_id = max(max_id, update.update_id)
                await self._handle_update(update)

            if max_id > self.offset:
                self.offset = max_id
                await self._persist(StateKeys.TELEGRAM_OFFSET, max_id)

            if self.status.is_forbidden:
                return None
            return self._next_delay()
        finally:
            self._in_flight = False

    async def _persist(self, key: str, value: object) -> None:
        if self.state_store is None:
            return
        try:
            await self.state_store.set(key, value)
        except Exception as e:
            logger.warning(f"[Bot] Could not persist {key}: {e}")

    # ------------------------------------------------------------------
    # UPDATE HANDLING
    # ------------------------------------------------------------------

    async def _handle_update(self, update: Update) -> None:
        message = update.message
        if message is None or not message.text:
            return

        chat_id = str(message.chat.id)
        try:
            if self._detecting_chat:
                await self._capture_chat(chat_id)
                return

            command = normalize_command(message.text)
            if command is None:
                return

            logger.info(f"[Bot] /{command.value} from chat {chat_id}")
            await self._handlers[command](chat_id)
        except ConfigurationError as e:
            logger.warning(f"[Bot] Cannot reply: {e.message}")
        except Exception as e:
            logger.error(f"[Bot] Error handling update {update.update_id}: {e}")

    async def _capture_chat(self, chat_id: str) -> None:
        self.settings.telegram.chat_id = chat_id
        self._detecting_chat = False
        await self._persist(StateKeys.TELEGRAM_CHAT_ID, chat_id)
        logger.info(f"[Bot] ✓ Chat ID {chat_id} saved")
        await self._reply(chat_id, MessageTemplates.CHAT_CONFIGURED.format(chat_id=chat_id))

    async def _reply(self, chat_id: str, text: str) -> bool:
        return await self.dispatcher.notify(text, force=True, chat_id=chat_id)

    async def _cmd_help(self, chat_id: str) -> None:
        await self._reply(chat_id, help_text())

    async def _cmd_scan(self, chat_id: str) -> None:
        await self._reply(chat_id, MessageTemplates.SCAN_STARTED)

        result = await self.scanner.run_cycle() if self.scanner is not None else None
        if result is None:
            await self._reply(chat_id, MessageTemplates.SCAN_FAILED)
            return

        await self._reply(chat_id, format_scan_summary(result))

    async def _cmd_status(self, chat_id: str) -> None:
        await self._reply(chat_id, format_status(self.snapshot))

    async def _cmd_nodes(self, chat_id: str) -> None:
        await self._reply(
            chat_id,
            format_nodes(self.snapshot, limit=self.settings.scan.nodes_reply_limit),
        )

    async def _cmd_ping(self, chat_id: str) -> None:
        await self._reply(chat_id, MessageTemplates.PONG)
