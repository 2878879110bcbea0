"""
Bot Package for NetGuard Monitor

Telegram connection state, command texts and the polling gateway.
"""

from netguard.bot.state import BotConnectionState, BotStatus
from netguard.bot.commands import (
    normalize_command,
    help_text,
    format_scan_summary,
    format_status,
    format_nodes,
)
from netguard.bot.gateway import BotGateway

__all__ = [
    "BotConnectionState",
    "BotStatus",
    "normalize_command",
    "help_text",
    "format_scan_summary",
    "format_status",
    "format_nodes",
    "BotGateway",
]
