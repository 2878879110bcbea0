"""
============================================================================
NETGUARD MONITOR - STATE MODELS
============================================================================
SQLAlchemy ORM model for the small amount of runtime state that must
survive a restart.
============================================================================
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RuntimeState(Base):
    """
    Key/value row for persisted runtime state.

    Known keys are listed in ``netguard.storage.manager.StateKeys``.
    """

    __tablename__ = "runtime_state"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utc_now,
        onupdate=_utc_now,
    )

    def __repr__(self) -> str:
        return f"<RuntimeState(key={self.key!r}, value={self.value!r})>"
