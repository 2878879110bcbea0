"""
Storage Package for NetGuard Monitor

Persists the runtime values that must survive a restart.
"""

from netguard.storage.models import Base, RuntimeState
from netguard.storage.manager import StateStore, StateKeys

__all__ = [
    "Base",
    "RuntimeState",
    "StateStore",
    "StateKeys",
]
