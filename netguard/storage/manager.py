"""
============================================================================
NETGUARD MONITOR - STATE STORE
============================================================================
Async SQLAlchemy engine and session handling for the runtime state
table. Holds the Telegram message offset, the alert rate-limiter
timestamp and the auto-detected chat id.
============================================================================
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from netguard.config.settings import StorageSettings
from netguard.storage.models import Base, RuntimeState
from netguard.utils.logger import get_logger


logger = get_logger("StateStore")


class StateKeys:
    """Keys of the persisted runtime values."""

    TELEGRAM_OFFSET = "telegram.offset"
    ALERT_LAST_SENT_AT = "alerts.last_sent_at"
    TELEGRAM_CHAT_ID = "telegram.chat_id"


# ============================================================================
# STATE STORE CLASS
# ============================================================================

class StateStore:
    """
    Key/value store on top of an async SQLAlchemy engine.

    SQLite files use NullPool; in-memory databases use StaticPool so
    every session sees the same connection.
    """

    def __init__(self, settings: StorageSettings):
        """
        Initialize state store.

        Args:
            settings: Storage section of the application settings
        """
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    def _engine_kwargs(self) -> dict:
        url = make_url(self.settings.url)
        kwargs = {"echo": self.settings.echo}

        if url.get_backend_name() == "sqlite":
            if url.database in (None, "", ":memory:"):
                kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
            else:
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
                kwargs["poolclass"] = NullPool

        return kwargs

    async def initialize(self) -> None:
        """
        Create the engine and session factory, then create missing tables.
        """
        async with self._lock:
            if self._is_initialized:
                logger.warning("[StateStore] Already initialized")
                return

            try:
                self.engine = create_async_engine(self.settings.url, **self._engine_kwargs())
                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)

                self._is_initialized = True
                logger.info("[StateStore] ✓ Initialized")

            except Exception as e:
                logger.error(f"[StateStore] Failed to initialize: {e}")
                raise

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for state operations.

        Yields:
            AsyncSession instance
        """
        if not self._is_initialized:
            await self.initialize()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"[StateStore] Session error: {e}")
            raise
        finally:
            await session.close()

    # ========================================================================
    # KEY/VALUE ACCESS
    # ========================================================================

    async def get(self, key: str) -> Optional[str]:
        """Return the stored value for ``key`` or None."""
        async with self.session() as session:
            result = await session.execute(
                select(RuntimeState.value).where(RuntimeState.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: object) -> None:
        """Insert or replace the value for ``key``."""
        async with self.session() as session:
            row = await session.get(RuntimeState, key)
            if row is None:
                session.add(RuntimeState(key=key, value=str(value)))
            else:
                row.value = str(value)

    async def delete(self, key: str) -> None:
        async with self.session() as session:
            row = await session.get(RuntimeState, key)
            if row is not None:
                await session.delete(row)

    async def get_int(self, key: str, default: int = 0) -> int:
        value = await self.get(key)
        try:
            return int(value) if value is not None else default
        except ValueError:
            logger.warning(f"[StateStore] Ignoring non-integer value for {key}: {value!r}")
            return default

    async def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        value = await self.get(key)
        try:
            return float(value) if value is not None else default
        except ValueError:
            logger.warning(f"[StateStore] Ignoring non-numeric value for {key}: {value!r}")
            return default

    async def close(self) -> None:
        """
        Dispose the engine and release connections.
        """
        if self.engine:
            await self.engine.dispose()
            self._is_initialized = False
            logger.info("[StateStore] Connections closed")
