from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from aiogram.methods import GetUpdates, SendMessage
from aiogram.types import Chat, Message, Update, User

from netguard.config.settings import (
    EnrichmentSettings,
    PanelSettings,
    ProbeSettings,
    ScanSettings,
    Settings,
    StorageSettings,
    TelegramSettings,
)
from netguard.storage.manager import StateStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBot:
    """Records Bot API calls; errors are raised from queues per method."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.poll_calls: List[Dict[str, Any]] = []
        self.me_calls = 0
        self.batches: List[List[Update]] = []
        self.send_errors: List[Exception] = []
        self.poll_errors: List[Exception] = []
        self.me_error: Optional[Exception] = None

    async def get_me(self) -> User:
        self.me_calls += 1
        if self.me_error is not None:
            raise self.me_error
        return User(id=1, is_bot=True, first_name="NetGuard", username="netguard_bot")

    async def send_message(self, chat_id: Any, text: str, parse_mode: Optional[str] = None) -> None:
        self.sent.append({"chat_id": chat_id, "text": text, "parse_mode": parse_mode})
        if self.send_errors:
            raise self.send_errors.pop(0)

    async def get_updates(self, offset: int, limit: int, timeout: int) -> List[Update]:
        self.poll_calls.append({"offset": offset, "limit": limit, "timeout": timeout})
        if self.poll_errors:
            raise self.poll_errors.pop(0)
        if self.batches:
            return self.batches.pop(0)
        return []

    def texts(self) -> List[str]:
        return [m["text"] for m in self.sent]


def make_update(update_id: int, text: Optional[str], chat_id: int = 4242) -> Update:
    return Update(
        update_id=update_id,
        message=Message(
            message_id=update_id,
            date=datetime.now(),
            chat=Chat(id=chat_id, type="private"),
            text=text,
        ),
    )


def send_method() -> SendMessage:
    return SendMessage(chat_id=1, text="x")


def poll_method() -> GetUpdates:
    return GetUpdates()


def make_settings(
    *,
    api_url: str = "https://panel.example.com",
    api_token: str = "secret-token",
    bot_token: str = "123456:TEST",
    chat_id: Optional[str] = "1001",
    gemini_key: str = "",
    interval: float = 0,
    relay_url: str = "https://relay.example.com/?",
) -> Settings:
    return Settings(
        panel=PanelSettings(api_url=api_url, api_token=api_token, relay_url=relay_url),
        telegram=TelegramSettings(bot_token=bot_token, chat_id=chat_id),
        scan=ScanSettings(interval=interval),
        probe=ProbeSettings(test_url="https://cdn.example.com/ref.js"),
        enrichment=EnrichmentSettings(api_key=gemini_key),
        storage=StorageSettings(url="sqlite+aiosqlite:///:memory:"),
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bot() -> FakeBot:
    return FakeBot()


@pytest_asyncio.fixture
async def state_store():
    store = StateStore(StorageSettings(url="sqlite+aiosqlite:///:memory:"))
    await store.initialize()
    yield store
    await store.close()
