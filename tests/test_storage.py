from __future__ import annotations

import pytest

from netguard.config.settings import StorageSettings
from netguard.storage.manager import StateKeys, StateStore


@pytest.mark.asyncio
async def test_missing_keys_use_defaults(state_store) -> None:
    assert await state_store.get(StateKeys.TELEGRAM_CHAT_ID) is None
    assert await state_store.get_int(StateKeys.TELEGRAM_OFFSET) == 0
    assert await state_store.get_float(StateKeys.ALERT_LAST_SENT_AT) is None


@pytest.mark.asyncio
async def test_set_replaces_existing_value(state_store) -> None:
    await state_store.set(StateKeys.TELEGRAM_OFFSET, 10)
    await state_store.set(StateKeys.TELEGRAM_OFFSET, 11)

    assert await state_store.get_int(StateKeys.TELEGRAM_OFFSET) == 11


@pytest.mark.asyncio
async def test_float_values_round_trip(state_store) -> None:
    await state_store.set(StateKeys.ALERT_LAST_SENT_AT, 1_700_000_123.5)
    assert await state_store.get_float(StateKeys.ALERT_LAST_SENT_AT) == 1_700_000_123.5


@pytest.mark.asyncio
async def test_non_numeric_values_fall_back_to_default(state_store) -> None:
    await state_store.set(StateKeys.TELEGRAM_OFFSET, "garbage")
    assert await state_store.get_int(StateKeys.TELEGRAM_OFFSET, default=7) == 7


@pytest.mark.asyncio
async def test_delete(state_store) -> None:
    await state_store.set(StateKeys.TELEGRAM_CHAT_ID, "42")
    await state_store.delete(StateKeys.TELEGRAM_CHAT_ID)
    assert await state_store.get(StateKeys.TELEGRAM_CHAT_ID) is None


@pytest.mark.asyncio
async def test_file_database_survives_reopen(tmp_path) -> None:
    settings = StorageSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'state' / 'netguard.db'}")

    store = StateStore(settings)
    await store.initialize()
    await store.set(StateKeys.TELEGRAM_OFFSET, 99)
    await store.close()

    reopened = StateStore(settings)
    await reopened.initialize()
    try:
        assert await reopened.get_int(StateKeys.TELEGRAM_OFFSET) == 99
    finally:
        await reopened.close()
