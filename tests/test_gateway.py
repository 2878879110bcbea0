from __future__ import annotations

import pytest
from aiogram.exceptions import (
    TelegramForbiddenError,
    TelegramNetworkError,
    TelegramUnauthorizedError,
)

from conftest import make_settings, make_update, poll_method
from netguard.bot.commands import format_scan_summary, normalize_command
from netguard.bot.gateway import BotGateway
from netguard.bot.state import BotConnectionState
from netguard.config.constants import BotCommands, MessageTemplates
from netguard.monitoring.alerts import AlertDispatcher
from netguard.monitoring.classifier import analyze_locally
from netguard.monitoring.models import AnalysisSnapshot, NodeMetrics
from netguard.storage.manager import StateKeys


class StubScanner:
    def __init__(self, result=None, error: Exception = None) -> None:
        self.result = result
        self.error = error
        self.calls = 0

    async def run_cycle(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def make_gateway(settings, bot, clock, **kwargs) -> BotGateway:
    dispatcher = AlertDispatcher(settings, bot=bot, clock=clock)
    gateway = BotGateway(settings, bot, dispatcher, **kwargs)
    gateway.status.transition(BotConnectionState.CONNECTED)
    return gateway


# ---------------------------------------------------------------------------
# Command parsing
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "text, expected",
    [
        ("/ping", BotCommands.PING),
        ("  /STATUS  ", BotCommands.STATUS),
        ("/nodes@netguard_bot", BotCommands.NODES),
        ("/scan now please", BotCommands.SCAN),
        ("/start", BotCommands.START),
        ("ping", None),
        ("/unknown", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_command(text, expected) -> None:
    assert normalize_command(text) == expected


# ---------------------------------------------------------------------------
# Offset handling
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_offset_never_decreases_with_out_of_order_batches(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    bot.batches = [
        [make_update(10, "hi"), make_update(8, "hi")],
        [make_update(9, "/ping"), make_update(11, "hi")],
        [make_update(4, "/ping")],
    ]

    await gateway.poll_once()
    assert gateway.offset == 10
    await gateway.poll_once()
    assert gateway.offset == 11
    await gateway.poll_once()
    assert gateway.offset == 11

    assert [c["offset"] for c in bot.poll_calls] == [1, 11, 12]
    assert all(c["limit"] == 5 and c["timeout"] == 0 for c in bot.poll_calls)
    # stale updates 9 and 4 were not answered
    assert bot.sent == []


@pytest.mark.asyncio
async def test_offset_is_persisted_and_restored(settings, bot, clock, state_store) -> None:
    gateway = make_gateway(settings, bot, clock, state_store=state_store)
    bot.batches = [[make_update(42, "hello")]]
    await gateway.poll_once()
    assert await state_store.get_int(StateKeys.TELEGRAM_OFFSET) == 42

    restarted = make_gateway(settings, bot, clock, state_store=state_store)
    await restarted.load_state()
    await restarted.poll_once()
    assert bot.poll_calls[-1]["offset"] == 43


@pytest.mark.asyncio
async def test_handler_failure_still_advances_offset(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock, scanner=StubScanner(error=RuntimeError("boom")))
    bot.batches = [[make_update(3, "/scan")]]

    await gateway.poll_once()

    assert gateway.offset == 3
    assert bot.texts() == [MessageTemplates.SCAN_STARTED]


# ---------------------------------------------------------------------------
# Connection states
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_no_polls_after_forbidden_until_connect(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    bot.poll_errors = [TelegramForbiddenError(method=poll_method(), message="Forbidden: bot was kicked")]

    assert await gateway.poll_once() is None
    assert gateway.status.state == BotConnectionState.FORBIDDEN
    assert gateway.status.last_error == MessageTemplates.POLL_FORBIDDEN

    for _ in range(3):
        assert await gateway.poll_once() is None
    assert len(bot.poll_calls) == 1

    assert await gateway.connect()
    await gateway.stop()
    assert gateway.status.state == BotConnectionState.CONNECTED

    assert await gateway.poll_once() == settings.telegram.poll_interval_connected
    assert len(bot.poll_calls) == 2


@pytest.mark.asyncio
async def test_rejected_token_while_polling_stops_the_loop(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    bot.poll_errors = [TelegramUnauthorizedError(method=poll_method(), message="Unauthorized")]

    assert await gateway.poll_once() is None
    assert gateway.status.state == BotConnectionState.FAILED
    assert gateway.status.last_error == MessageTemplates.INVALID_TOKEN


@pytest.mark.asyncio
async def test_transient_poll_error_keeps_state_and_reports(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    bot.poll_errors = [TelegramNetworkError(method=poll_method(), message="connection reset")]

    assert await gateway.poll_once() == settings.telegram.poll_interval_connected
    assert gateway.status.state == BotConnectionState.CONNECTED
    assert gateway.status.last_error.startswith("Polling Error:")


@pytest.mark.asyncio
async def test_successful_poll_recovers_failed_state(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    gateway.status.transition(BotConnectionState.FAILED, "earlier")

    assert await gateway.poll_once() == settings.telegram.poll_interval_connected
    assert gateway.status.state == BotConnectionState.CONNECTED
    assert gateway.status.last_poll_at is not None


@pytest.mark.asyncio
async def test_connect_with_invalid_token(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    bot.me_error = TelegramUnauthorizedError(method=poll_method(), message="Unauthorized")

    assert not await gateway.connect()
    assert gateway.status.state == BotConnectionState.FAILED
    assert gateway.status.last_error == MessageTemplates.INVALID_TOKEN
    assert not gateway.is_running


@pytest.mark.asyncio
async def test_connect_network_failure_keeps_polling_and_recovers(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    bot.me_error = TelegramNetworkError(method=poll_method(), message="network is unreachable")

    assert not await gateway.connect()
    assert gateway.status.state == BotConnectionState.FAILED
    assert gateway.is_running

    assert await gateway.poll_once() == settings.telegram.poll_interval_connected
    assert gateway.status.state == BotConnectionState.CONNECTED

    await gateway.stop()
    assert not gateway.is_running


@pytest.mark.asyncio
async def test_connect_without_token_does_no_io(bot, clock) -> None:
    gateway = make_gateway(make_settings(bot_token=""), bot, clock)

    assert not await gateway.connect()
    assert gateway.status.state == BotConnectionState.FAILED
    assert bot.me_calls == 0


@pytest.mark.asyncio
async def test_connect_starts_and_stop_ends_polling(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)

    assert await gateway.connect()
    assert gateway.status.bot_name == "NetGuard"
    assert gateway.is_running

    await gateway.stop()
    assert not gateway.is_running


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_ping_replies_to_sender_chat(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    bot.batches = [[make_update(1, "/ping", chat_id=555)]]

    await gateway.poll_once()

    assert bot.sent == [{"chat_id": "555", "text": MessageTemplates.PONG, "parse_mode": "Markdown"}]


@pytest.mark.asyncio
async def test_replies_bypass_the_alert_rate_limit(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    bot.batches = [[make_update(1, "/ping"), make_update(2, "/help"), make_update(3, "/start")]]

    await gateway.poll_once()

    assert len(bot.sent) == 3
    assert bot.texts()[1].startswith("🛡️ *NetGuard Bot Commands*")
    assert gateway.dispatcher.limiter.last_sent_at is None


@pytest.mark.asyncio
async def test_plain_text_and_empty_messages_are_ignored(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    bot.batches = [[make_update(1, "hello"), make_update(2, None)]]

    await gateway.poll_once()

    assert bot.sent == []
    assert gateway.offset == 2


@pytest.mark.asyncio
async def test_status_and_nodes_without_data(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock)
    bot.batches = [[make_update(1, "/status"), make_update(2, "/nodes")]]

    await gateway.poll_once()

    assert bot.texts() == [MessageTemplates.NO_STATUS_DATA, MessageTemplates.NO_NODE_DATA]


@pytest.mark.asyncio
async def test_status_and_nodes_read_the_snapshot(settings, bot, clock) -> None:
    snapshot = AnalysisSnapshot()
    snapshot.publish(
        analyze_locally(
            [
                NodeMetrics(name="calm", users=2, speed_kbps=4000, is_connected=True),
                NodeMetrics(name="slow", users=4, speed_kbps=8, is_connected=True),
            ]
        ),
        now=clock.now,
    )
    gateway = make_gateway(settings, bot, clock, snapshot=snapshot)
    bot.batches = [[make_update(1, "/status"), make_update(2, "/nodes")]]

    await gateway.poll_once()

    status, nodes = bot.texts()
    assert "📊 *System Status Report*" in status
    assert "Total Users: `6`" in status
    assert "Critical Issues: `1`" in status
    assert nodes.startswith("🌐 *Node Connections*")
    assert nodes.index("slow") < nodes.index("calm")


@pytest.mark.asyncio
async def test_scan_command_runs_cycle_and_reports(settings, bot, clock) -> None:
    result = analyze_locally([NodeMetrics(name="a", users=4, speed_kbps=8, is_connected=True)])
    scanner = StubScanner(result=result)
    gateway = make_gateway(settings, bot, clock, scanner=scanner)
    bot.batches = [[make_update(1, "/scan")]]

    await gateway.poll_once()

    assert scanner.calls == 1
    assert bot.texts() == [MessageTemplates.SCAN_STARTED, format_scan_summary(result)]


@pytest.mark.asyncio
async def test_scan_command_reports_failure(settings, bot, clock) -> None:
    gateway = make_gateway(settings, bot, clock, scanner=StubScanner(result=None))
    bot.batches = [[make_update(1, "/scan")]]

    await gateway.poll_once()

    assert bot.texts() == [MessageTemplates.SCAN_STARTED, MessageTemplates.SCAN_FAILED]


# ---------------------------------------------------------------------------
# Chat detection
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_chat_detection_captures_next_message(bot, clock, state_store) -> None:
    settings = make_settings(chat_id=None)
    gateway = make_gateway(settings, bot, clock, state_store=state_store)
    gateway.arm_chat_detection()
    bot.batches = [[make_update(1, "/ping", chat_id=987)]]

    await gateway.poll_once()

    assert settings.telegram.chat_id == "987"
    assert not gateway.is_detecting_chat
    assert bot.texts() == [MessageTemplates.CHAT_CONFIGURED.format(chat_id="987")]
    assert await state_store.get(StateKeys.TELEGRAM_CHAT_ID) == "987"


@pytest.mark.asyncio
async def test_detected_chat_is_restored_when_none_configured(bot, clock, state_store) -> None:
    await state_store.set(StateKeys.TELEGRAM_CHAT_ID, "987")
    settings = make_settings(chat_id=None)
    gateway = make_gateway(settings, bot, clock, state_store=state_store)

    await gateway.load_state()

    assert settings.telegram.chat_id == "987"
